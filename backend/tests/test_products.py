"""
Product catalog tests: admin-only writes, SKU uniqueness, money parsing,
list filters, low-stock view and stock adjustment.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from salesdesk.models import Product


def _create(client, headers, **fields):
    payload = {"sku": "kb-01", "name": "Keyboard", "price": "19.99", "stock": 5}
    payload.update(fields)
    return client.post("/api/products", json=payload, headers=headers)


class TestCreateProduct:
    def test_admin_creates_product(self, client, db_session, admin_headers):
        resp = _create(client, admin_headers)

        assert resp.status_code == 201
        product = resp.json["data"]["product"]
        assert product["sku"] == "KB-01"
        assert product["price_cents"] == 1999
        assert product["price"] == "19.99"
        assert product["is_active"] is True

    def test_duplicate_sku_conflicts(self, client, db_session, admin_headers):
        _create(client, admin_headers)
        resp = _create(client, admin_headers, sku="KB-01", name="Another")

        assert resp.status_code == 409
        assert "KB-01" in resp.json["error"]
        assert db_session.query(Product).count() == 1

    def test_seller_forbidden(self, client, db_session, seller_headers):
        assert _create(client, seller_headers).status_code == 403

    def test_anonymous_unauthorized(self, client, db_session):
        resp = client.post("/api/products", json={"sku": "X", "name": "X", "price": "1"})
        assert resp.status_code == 401

    @pytest.mark.parametrize(
        "fields",
        [
            {"price": "0"},
            {"price": "-5"},
            {"price": "abc"},
            {"price": "1.234"},
            {"price": "10.00", "price_cents": 1000},
            {"stock": -1},
            {"stock": "many"},
            {"name": ""},
            {"colour": "red"},
        ],
    )
    def test_invalid_payload(self, client, db_session, admin_headers, fields):
        resp = _create(client, admin_headers, **fields)
        assert resp.status_code == 400
        assert db_session.query(Product).count() == 0

    def test_missing_required(self, client, db_session, admin_headers):
        resp = client.post("/api/products", json={"name": "No SKU", "price": "5.00"}, headers=admin_headers)
        assert resp.status_code == 400
        assert "sku" in resp.json["error"]


class TestListProducts:
    @pytest.fixture
    def catalog(self, db_session):
        rows = [
            Product(sku="MOUSE-1", name="Mouse", stock=50, price_cents=1500),
            Product(sku="MON-27", name="Monitor 27", stock=3, price_cents=25000),
            Product(sku="OLD-1", name="Old Modem", stock=0, price_cents=900, is_active=False),
        ]
        db_session.add_all(rows)
        db_session.commit()
        return rows

    def test_defaults_to_active_sorted_by_name(self, client, catalog, seller_headers):
        resp = client.get("/api/products", headers=seller_headers)

        assert resp.status_code == 200
        assert [p["sku"] for p in resp.json["data"]["products"]] == ["MON-27", "MOUSE-1"]
        assert resp.json["data"]["pagination"]["total"] == 2

    def test_filters(self, client, catalog, seller_headers):
        def skus(query):
            return [p["sku"] for p in client.get(f"/api/products?{query}", headers=seller_headers).json["data"]["products"]]

        assert skus("search=mon") == ["MON-27"]
        assert skus("min_price=20") == ["MON-27"]
        assert skus("max_stock=10&is_active=all") == ["MON-27", "OLD-1"]
        assert skus("is_active=false") == ["OLD-1"]
        assert skus("sort_by=price&sort_order=desc") == ["MON-27", "MOUSE-1"]

    def test_paging(self, client, catalog, seller_headers):
        resp = client.get("/api/products?limit=1&page=2", headers=seller_headers)
        meta = resp.json["data"]["pagination"]

        assert [p["sku"] for p in resp.json["data"]["products"]] == ["MOUSE-1"]
        assert meta["total_pages"] == 2
        assert meta["has_prev"] is True
        assert meta["has_next"] is False

    @pytest.mark.parametrize("query", ["limit=101", "limit=0", "page=0", "is_active=maybe", "min_price=x"])
    def test_bad_query(self, client, catalog, seller_headers, query):
        assert client.get(f"/api/products?{query}", headers=seller_headers).status_code == 400

    def test_get_missing(self, client, db_session, seller_headers):
        assert client.get("/api/products/999", headers=seller_headers).status_code == 404


class TestUpdateAndDelete:
    def test_update_price_and_name(self, client, db_session, product, admin_headers):
        resp = client.put(f"/api/products/{product.id}", json={"price": "120.50", "name": "Laptop Pro 15"},
                          headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["data"]["product"]["price_cents"] == 12050
        assert resp.json["data"]["product"]["name"] == "Laptop Pro 15"

    def test_update_to_taken_sku(self, client, db_session, product, admin_headers):
        db_session.add(Product(sku="TAKEN", name="Other", stock=1, price_cents=100))
        db_session.commit()

        resp = client.put(f"/api/products/{product.id}", json={"sku": "taken"}, headers=admin_headers)
        assert resp.status_code == 409

    def test_empty_update(self, client, db_session, product, admin_headers):
        assert client.put(f"/api/products/{product.id}", json={}, headers=admin_headers).status_code == 400

    def test_delete_is_soft(self, client, db_session, product, admin_headers):
        resp = client.delete(f"/api/products/{product.id}", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["data"]["product"]["is_active"] is False
        db_session.expire_all()
        assert db_session.get(Product, product.id) is not None


class TestLowStock:
    def test_status_and_order(self, client, db_session, seller_headers):
        db_session.add_all([
            Product(sku="A", name="Alpha", stock=4, price_cents=100),
            Product(sku="B", name="Beta", stock=0, price_cents=100),
            Product(sku="C", name="Gamma", stock=40, price_cents=100),
            Product(sku="D", name="Delta", stock=0, price_cents=100, is_active=False),
        ])
        db_session.commit()

        resp = client.get("/api/products/low-stock", headers=seller_headers)
        data = resp.json["data"]

        assert data["threshold"] == 10
        assert [(p["sku"], p["stock_status"]) for p in data["products"]] == [("B", "out_of_stock"), ("A", "low")]

    def test_custom_threshold(self, client, db_session, product, seller_headers):
        resp = client.get("/api/products/low-stock?threshold=10", headers=seller_headers)
        assert resp.json["data"]["count"] == 1
        resp = client.get("/api/products/low-stock?threshold=9", headers=seller_headers)
        assert resp.json["data"]["count"] == 0


class TestAdjustStock:
    def _adjust(self, client, product_id, headers, **payload):
        return client.post(f"/api/products/{product_id}/adjust-stock", json=payload, headers=headers)

    def test_add_units(self, client, db_session, product, admin_headers):
        resp = self._adjust(client, product.id, admin_headers, adjustment=5, reason="restock")
        assert resp.status_code == 200
        assert resp.json["data"]["product"]["stock"] == 15

    def test_remove_units(self, client, db_session, product, admin_headers):
        resp = self._adjust(client, product.id, admin_headers, adjustment=-10)
        assert resp.json["data"]["product"]["stock"] == 0

    def test_cannot_go_negative(self, client, db_session, product, admin_headers):
        resp = self._adjust(client, product.id, admin_headers, adjustment=-20)

        assert resp.status_code == 400
        assert resp.json["details"] == {"current_stock": 10, "adjustment": -20}
        db_session.expire_all()
        assert db_session.get(Product, product.id).stock == 10

    @pytest.mark.parametrize("payload", [{}, {"adjustment": 0}, {"adjustment": 1.5}, {"adjustment": 2, "reason": 7}])
    def test_bad_payload(self, client, db_session, product, admin_headers, payload):
        assert self._adjust(client, product.id, admin_headers, **payload).status_code == 400

    def test_inactive_product(self, client, db_session, product, admin_headers):
        product.is_active = False
        db_session.commit()
        assert self._adjust(client, product.id, admin_headers, adjustment=1).status_code == 404

    def test_seller_forbidden(self, client, db_session, product, seller_headers):
        assert self._adjust(client, product.id, seller_headers, adjustment=1).status_code == 403


def test_negative_stock_violates_check_constraint(db_session, product):
    product.stock = -3
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()
