"""
Sale image attachment tests.

Covers the multipart contract, one image per type, validation of every file
before any upload, and the upload timeout.
"""

import io
import time

import pytest

from salesdesk.errors import ServiceUnavailableError
from salesdesk.models import Sale, SaleImage
from salesdesk.services.image_service import ImageStorage

from conftest import make_sale

JPEG = b"\xff\xd8\xff\xe0fake-jpeg-bytes"


def _files(*specs):
    """specs: (filename, image_type) pairs -> multipart form data."""
    return {
        "images": [(io.BytesIO(JPEG), name) for name, _ in specs],
        "image_types": [image_type for _, image_type in specs],
    }


def _post(client, sale_id, data, headers):
    return client.post(
        f"/api/sales/{sale_id}/images",
        data=data,
        headers=headers,
        content_type="multipart/form-data",
    )


@pytest.fixture
def sale(db_session, product, customer, seller_user):
    return make_sale(db_session, product=product, customer=customer, seller=seller_user)


class TestUploadImages:
    def test_upload_two_types(self, client, db_session, sale, seller_headers):
        resp = _post(client, sale.id, _files(("box.jpg", "sealed"), ("front.png", "full_product")), seller_headers)

        assert resp.status_code == 201
        images = resp.json["data"]["images"]
        assert [i["image_type"] for i in images] == ["sealed", "full_product"]
        assert "w_800,h_600" in images[0]["image_url"]
        assert db_session.query(SaleImage).filter_by(sale_id=sale.id).count() == 2

    def test_upload_all_three_types(self, client, db_session, sale, seller_headers):
        resp = _post(
            client, sale.id,
            _files(("box.jpg", "sealed"), ("front.png", "full_product"), ("sn.webp", "serial_number")),
            seller_headers,
        )

        assert resp.status_code == 201
        assert sorted(i["image_type"] for i in resp.json["data"]["images"]) == [
            "full_product", "sealed", "serial_number",
        ]
        assert db_session.query(SaleImage).filter_by(sale_id=sale.id).count() == 3

    def test_sale_detail_lists_images(self, client, db_session, sale, seller_headers):
        _post(client, sale.id, _files(("sn.webp", "serial_number")), seller_headers)

        resp = client.get(f"/api/sales/{sale.id}", headers=seller_headers)
        assert [i["image_type"] for i in resp.json["data"]["sale"]["images"]] == ["serial_number"]

    @pytest.mark.parametrize(
        "specs",
        [
            (("a.jpg", "sealed"), ("b.jpg", "sealed")),
            (("a.jpg", "receipt"),),
            (("a.pdf", "sealed"),),
            (("a.jpg", "sealed"), ("b.jpg", "full_product"), ("c.jpg", "serial_number"), ("d.jpg", "sealed")),
        ],
        ids=["duplicate-type", "unknown-type", "not-an-image", "too-many"],
    )
    def test_rejected_requests_store_nothing(self, client, db_session, sale, seller_headers, specs):
        resp = _post(client, sale.id, _files(*specs), seller_headers)

        assert resp.status_code == 400
        assert resp.json["success"] is False
        assert db_session.query(SaleImage).count() == 0

    def test_count_mismatch(self, client, db_session, sale, seller_headers):
        data = _files(("a.jpg", "sealed"), ("b.jpg", "full_product"))
        data["image_types"] = ["sealed"]

        resp = _post(client, sale.id, data, seller_headers)
        assert resp.status_code == 400
        assert resp.json["details"] == {"images": 2, "image_types": 1}

    def test_no_files(self, client, db_session, sale, seller_headers):
        resp = _post(client, sale.id, {"image_types": ["sealed"]}, seller_headers)
        assert resp.status_code == 400

    def test_existing_type_is_conflict(self, client, db_session, sale, seller_headers):
        db_session.add(SaleImage(sale_id=sale.id, image_type="sealed", image_url="https://img/x.jpg"))
        db_session.commit()

        resp = _post(client, sale.id, _files(("new.jpg", "full_product"), ("again.jpg", "sealed")), seller_headers)

        assert resp.status_code == 409
        assert resp.json["details"] == {"image_types": ["sealed"]}
        assert db_session.query(SaleImage).count() == 1

    def test_oversized_file(self, app, client, db_session, sale, seller_headers):
        app.extensions["image_storage"] = ImageStorage("https://img.test", max_size=8)

        resp = _post(client, sale.id, _files(("big.jpg", "sealed")), seller_headers)
        assert resp.status_code == 400
        assert resp.json["details"]["size"] == len(JPEG)

    def test_slow_storage_times_out_as_503(self, app, client, db_session, sale, seller_headers, monkeypatch):
        class SlowStorage(ImageStorage):
            def upload(self, data, filename, type_hint):
                time.sleep(0.5)
                return super().upload(data, filename, type_hint)

        app.extensions["image_storage"] = SlowStorage("https://img.test", max_size=1024)
        monkeypatch.setitem(app.config, "IMAGE_UPLOAD_TIMEOUT", 0.05)

        resp = _post(client, sale.id, _files(("a.jpg", "sealed")), seller_headers)

        assert resp.status_code == 503
        assert resp.json["retryable"] is True
        assert db_session.query(SaleImage).count() == 0

    def test_failed_upload_releases_earlier_uploads(self, app, client, db_session, sale, seller_headers):
        released = []

        class FlakyStorage(ImageStorage):
            calls = 0

            def upload(self, data, filename, type_hint):
                FlakyStorage.calls += 1
                if FlakyStorage.calls == 2:
                    raise ServiceUnavailableError("Image service timed out, please retry")
                return super().upload(data, filename, type_hint)

            def delete(self, public_id):
                released.append(public_id)
                return True

        app.extensions["image_storage"] = FlakyStorage("https://img.test", max_size=1024)

        resp = _post(client, sale.id, _files(("box.jpg", "sealed"), ("front.jpg", "full_product")), seller_headers)

        assert resp.status_code == 503
        assert len(released) == 1
        assert released[0].startswith("sales-system/sealed/")
        assert db_session.query(SaleImage).count() == 0

    def test_other_sellers_sale_is_hidden(self, client, db_session, product, customer, other_seller, seller_headers):
        theirs = make_sale(db_session, product=product, customer=customer, seller=other_seller)

        resp = _post(client, theirs.id, _files(("a.jpg", "sealed")), seller_headers)
        assert resp.status_code == 404

    def test_missing_sale(self, client, db_session, seller_headers):
        resp = _post(client, 424242, _files(("a.jpg", "sealed")), seller_headers)
        assert resp.status_code == 404

    def test_admin_can_attach_to_any_sale(self, client, db_session, sale, admin_headers):
        resp = _post(client, sale.id, _files(("a.jpg", "sealed")), admin_headers)
        assert resp.status_code == 201


def test_deleting_a_sale_removes_its_images(db_session, sale):
    db_session.add(SaleImage(sale_id=sale.id, image_type="sealed", image_url="https://img/a.jpg"))
    db_session.commit()

    db_session.delete(db_session.get(Sale, sale.id))
    db_session.commit()

    assert db_session.query(SaleImage).count() == 0


def test_storage_urls_follow_type_transformations():
    storage = ImageStorage("https://img.test/", max_size=1024)
    result = storage.upload(JPEG, "Serial Shot.JPG", "serial_number")

    assert result["url"].startswith("https://img.test/w_1920,h_1080,c_fit,q_95/sales-system/serial_number/")
    assert (result["width"], result["height"]) == (1920, 1080)
    assert result["size"] == len(JPEG)
