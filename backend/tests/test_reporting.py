"""
Dashboard and report tests.
"""

from datetime import datetime

import pytest

from salesdesk.models import Product
from salesdesk.services.reporting_service import period_start

from conftest import make_sale


@pytest.fixture
def history(db_session, product, customer, seller_user, other_seller):
    return [
        make_sale(db_session, product=product, customer=customer, seller=seller_user,
                  quantity=1, unit_price_cents=10000, sale_date=datetime(2024, 1, 15, 10)),
        make_sale(db_session, product=product, customer=customer, seller=seller_user,
                  quantity=2, unit_price_cents=10000, sale_date=datetime(2024, 1, 15, 16)),
        make_sale(db_session, product=product, customer=customer, seller=other_seller,
                  quantity=5, unit_price_cents=10000, sale_date=datetime(2024, 2, 1, 9)),
    ]


class TestDashboard:
    def test_seller_gets_own_block(self, client, history, seller_headers):
        resp = client.get("/api/stats/dashboard", headers=seller_headers)

        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["general"]["sales"] == 3
        assert data["general"]["revenue"] == {"cents": 80000, "amount": "800.00"}
        assert data["seller"]["sales"] == 2
        assert data["seller"]["revenue"]["cents"] == 30000
        assert data["inventory"]["threshold"] == 10
        assert set(data["warranties"]) == {
            "total_active_warranties", "expiring_soon_count", "expired_count", "average_warranty_period",
        }

    def test_admin_has_no_seller_block(self, client, history, admin_headers):
        assert client.get("/api/stats/dashboard", headers=admin_headers).json["data"]["seller"] is None


class TestSalesStatistics:
    def test_admin_sees_top_sellers(self, client, history, other_seller, admin_headers):
        data = client.get("/api/stats/sales?period=all", headers=admin_headers).json["data"]

        assert data["since"] is None
        assert data["top_sellers"][0]["seller_id"] == other_seller.id
        assert data["top_sellers"][0]["revenue"]["cents"] == 50000
        assert data["top_products"][0]["total_quantity"] == 8
        assert [d["date"] for d in data["daily_sales"]] == ["2024-02-01", "2024-01-15"]
        assert data["daily_sales"][1]["sales_count"] == 2

    def test_seller_is_scoped(self, client, history, seller_headers):
        data = client.get("/api/stats/sales?period=all", headers=seller_headers).json["data"]

        assert data["top_sellers"] == []
        assert data["top_products"][0]["total_quantity"] == 3

    def test_unknown_period(self, client, db_session, seller_headers):
        assert client.get("/api/stats/sales?period=decade", headers=seller_headers).status_code == 400


@pytest.mark.parametrize(
    "period, expected",
    [
        ("week", datetime(2025, 5, 7)),
        ("month", datetime(2025, 5, 1)),
        ("quarter", datetime(2025, 4, 1)),
        ("year", datetime(2025, 1, 1)),
        ("all", None),
    ],
)
def test_period_start(period, expected):
    assert period_start(period, now=datetime(2025, 5, 14, 15, 30)) == expected


class TestReports:
    def test_inventory_report(self, client, db_session, product, admin_headers):
        db_session.add(Product(sku="GONE", name="Gone", stock=7, price_cents=100, is_active=False))
        db_session.commit()

        data = client.get("/api/reports/inventory", headers=admin_headers).json["data"]
        assert data["product_count"] == 1
        assert data["total_value"] == {"cents": 100000, "amount": "1000.00"}
        assert data["rows"][0]["low_stock"] is True

        data = client.get("/api/reports/inventory?include_inactive=true", headers=admin_headers).json["data"]
        assert data["product_count"] == 2
        assert data["total_units"] == 17

    def test_inventory_report_is_admin_only(self, client, db_session, seller_headers):
        assert client.get("/api/reports/inventory", headers=seller_headers).status_code == 403

    def test_sales_report_forces_seller_scope(self, client, history, seller_user, other_seller, seller_headers):
        resp = client.get(f"/api/reports/sales?seller_id={other_seller.id}", headers=seller_headers)
        data = resp.json["data"]

        assert data["filters"]["seller_id"] == seller_user.id
        assert data["sales_count"] == 2
        assert data["units_sold"] == 3
        assert {row["seller_id"] for row in data["rows"]} == {seller_user.id}

    def test_sales_report_date_range_includes_end_day(self, client, history, admin_headers):
        data = client.get(
            "/api/reports/sales?start_date=2024-01-15&end_date=2024-01-15", headers=admin_headers,
        ).json["data"]

        assert data["sales_count"] == 2
        assert data["revenue"]["amount"] == "300.00"
        assert data["rows"][0]["customer_name"] == "Ana Garcia"
