"""
Customer tests: unique e-mail, guarded delete, purchase history and statistics.
"""

from datetime import datetime

import pytest

from salesdesk.models import Customer, Product

from conftest import make_sale


def _create(client, headers, **fields):
    payload = {"first_name": "Luis", "last_name": "Perez", "email": "Luis@Example.com", "phone": "600000001"}
    payload.update(fields)
    return client.post("/api/customers", json=payload, headers=headers)


class TestCreateCustomer:
    def test_seller_can_create(self, client, db_session, seller_headers):
        resp = _create(client, seller_headers)

        assert resp.status_code == 201
        assert resp.json["data"]["customer"]["email"] == "luis@example.com"

    def test_email_is_unique_case_insensitively(self, client, db_session, seller_headers):
        _create(client, seller_headers)
        resp = _create(client, seller_headers, email="LUIS@example.COM")

        assert resp.status_code == 409
        assert db_session.query(Customer).count() == 1

    @pytest.mark.parametrize("email", ["no-at-sign", "a@b", "@example.com", "a@.com"])
    def test_invalid_email(self, client, db_session, seller_headers, email):
        assert _create(client, seller_headers, email=email).status_code == 400

    def test_missing_last_name(self, client, db_session, seller_headers):
        resp = client.post("/api/customers", json={"first_name": "A", "email": "a@example.com"}, headers=seller_headers)
        assert resp.status_code == 400

    def test_update_to_taken_email(self, client, db_session, customer, seller_headers):
        other = _create(client, seller_headers).json["data"]["customer"]

        resp = client.put(f"/api/customers/{other['id']}", json={"email": "ANA@example.com"}, headers=seller_headers)
        assert resp.status_code == 409


class TestListCustomers:
    def test_search_by_name(self, client, db_session, customer, seller_headers):
        _create(client, seller_headers)

        resp = client.get("/api/customers?search=garc", headers=seller_headers)
        assert [c["email"] for c in resp.json["data"]["customers"]] == ["ana@example.com"]

    def test_sorted_by_last_name(self, client, db_session, customer, seller_headers):
        _create(client, seller_headers)

        resp = client.get("/api/customers", headers=seller_headers)
        assert [c["last_name"] for c in resp.json["data"]["customers"]] == ["Garcia", "Perez"]


class TestDeleteCustomer:
    def test_admin_deletes_customer_without_sales(self, client, db_session, customer, admin_headers):
        resp = client.delete(f"/api/customers/{customer.id}", headers=admin_headers)

        assert resp.status_code == 200
        assert db_session.query(Customer).count() == 0

    def test_customer_with_sales_is_kept(self, client, db_session, product, customer, seller_user, admin_headers):
        make_sale(db_session, product=product, customer=customer, seller=seller_user)
        make_sale(db_session, product=product, customer=customer, seller=seller_user)

        resp = client.delete(f"/api/customers/{customer.id}", headers=admin_headers)

        assert resp.status_code == 409
        assert resp.json["details"] == {"sales_count": 2}
        assert db_session.query(Customer).count() == 1

    def test_seller_forbidden(self, client, db_session, customer, seller_headers):
        assert client.delete(f"/api/customers/{customer.id}", headers=seller_headers).status_code == 403

    def test_missing(self, client, db_session, admin_headers):
        assert client.delete("/api/customers/999", headers=admin_headers).status_code == 404


class TestCustomerHistory:
    def test_sales_newest_first(self, client, db_session, product, customer, seller_user, seller_headers):
        older = make_sale(db_session, product=product, customer=customer, seller=seller_user,
                          sale_date=datetime(2024, 1, 1, 10))
        newer = make_sale(db_session, product=product, customer=customer, seller=seller_user,
                          sale_date=datetime(2024, 3, 1, 10))

        resp = client.get(f"/api/customers/{customer.id}/sales", headers=seller_headers)
        assert [s["id"] for s in resp.json["data"]["sales"]] == [newer.id, older.id]

    def test_statistics(self, client, db_session, product, customer, seller_user, seller_headers):
        mouse = Product(sku="MOUSE", name="Mouse", stock=5, price_cents=2500)
        db_session.add(mouse)
        db_session.commit()
        make_sale(db_session, product=product, customer=customer, seller=seller_user,
                  quantity=2, unit_price_cents=10000, sale_date=datetime(2024, 1, 1, 10))
        make_sale(db_session, product=mouse, customer=customer, seller=seller_user,
                  quantity=1, unit_price_cents=2500, sale_date=datetime(2024, 2, 1, 10))

        resp = client.get(f"/api/customers/{customer.id}/statistics", headers=seller_headers)
        stats = resp.json["data"]["statistics"]

        assert stats["total_purchases"] == 2
        assert stats["total_spent_cents"] == 22500
        assert stats["total_spent"] == "225.00"
        assert stats["average_purchase_cents"] == 11250
        assert stats["unique_products"] == 2
        assert stats["first_purchase"].startswith("2024-01-01")
        assert stats["last_purchase"].startswith("2024-02-01")

    def test_statistics_without_sales(self, client, db_session, customer, seller_headers):
        stats = client.get(f"/api/customers/{customer.id}/statistics", headers=seller_headers).json["data"]["statistics"]
        assert stats["total_purchases"] == 0
        assert stats["first_purchase"] is None

    def test_unknown_customer(self, client, db_session, seller_headers):
        assert client.get("/api/customers/999/sales", headers=seller_headers).status_code == 404


class TestSellerScope:
    @pytest.fixture
    def mixed(self, db_session, product, customer, seller_user, other_seller):
        mine = make_sale(db_session, product=product, customer=customer, seller=seller_user,
                         quantity=1, sale_date=datetime(2024, 1, 1, 10))
        theirs = make_sale(db_session, product=product, customer=customer, seller=other_seller,
                           quantity=3, sale_date=datetime(2024, 2, 1, 10))
        return mine, theirs

    def test_sales_history_hides_other_sellers(self, client, mixed, customer, seller_headers, admin_headers):
        mine, theirs = mixed

        resp = client.get(f"/api/customers/{customer.id}/sales", headers=seller_headers)
        assert [s["id"] for s in resp.json["data"]["sales"]] == [mine.id]
        assert resp.json["data"]["pagination"]["total"] == 1

        resp = client.get(f"/api/customers/{customer.id}/sales", headers=admin_headers)
        assert [s["id"] for s in resp.json["data"]["sales"]] == [theirs.id, mine.id]

    def test_statistics_count_own_sales_only(self, client, mixed, customer, seller_headers, admin_headers):
        stats = client.get(f"/api/customers/{customer.id}/statistics", headers=seller_headers).json["data"]["statistics"]
        assert stats["total_purchases"] == 1
        assert stats["total_spent_cents"] == 10000

        stats = client.get(f"/api/customers/{customer.id}/statistics", headers=admin_headers).json["data"]["statistics"]
        assert stats["total_purchases"] == 2
        assert stats["total_spent_cents"] == 40000
