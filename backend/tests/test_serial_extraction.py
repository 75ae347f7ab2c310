"""
Serial number extraction tests.

The reader is swapped for a fixed one so results are deterministic. A serial
already on the sale is never overwritten.
"""

import io
import random

import pytest

from salesdesk.models import Sale, SaleImage
from salesdesk.services import sales_service
from salesdesk.services.ocr_service import SerialReader, clean_serial, looks_like_serial

from conftest import make_sale


class FixedReader:
    def __init__(self, text="SN123ABC", confidence=0.9):
        self.text = text
        self.confidence = confidence
        self.calls = 0

    def extract(self, data, filename):
        self.calls += 1
        return {"text": self.text, "confidence": self.confidence}


@pytest.fixture
def reader(app):
    fixed = FixedReader()
    app.extensions["serial_reader"] = fixed
    return fixed


def _extract(client, sale_id, headers, filename="label.jpg"):
    return client.post(
        f"/api/sales/{sale_id}/extract-serial",
        data={"image": (io.BytesIO(b"\xff\xd8label"), filename)},
        headers=headers,
        content_type="multipart/form-data",
    )


class TestExtractSerial:
    def test_fills_empty_serial(self, client, db_session, product, customer, seller_user, seller_headers, reader):
        sale = make_sale(db_session, product=product, customer=customer, seller=seller_user)

        resp = _extract(client, sale.id, seller_headers)

        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["extracted_serial"] == "SN123ABC"
        assert data["confidence"] == 0.9
        assert data["serial_number_updated"] is True
        assert data["image_url"]
        db_session.expire_all()
        assert db_session.get(Sale, sale.id).serial_number == "SN123ABC"
        assert db_session.query(SaleImage).filter_by(sale_id=sale.id, image_type="serial_number").count() == 1

    def test_existing_serial_is_kept(self, client, db_session, product, customer, seller_user, seller_headers, reader):
        sale = make_sale(db_session, product=product, customer=customer, seller=seller_user, serial_number="TYPED-001")

        resp = _extract(client, sale.id, seller_headers)

        assert resp.status_code == 200
        assert resp.json["data"]["serial_number_updated"] is False
        assert resp.json["data"]["extracted_serial"] == "SN123ABC"
        db_session.expire_all()
        assert db_session.get(Sale, sale.id).serial_number == "TYPED-001"

    def test_second_extraction_conflicts(self, client, db_session, product, customer, seller_user, seller_headers, reader):
        sale = make_sale(db_session, product=product, customer=customer, seller=seller_user)

        assert _extract(client, sale.id, seller_headers).status_code == 200
        resp = _extract(client, sale.id, seller_headers)

        assert resp.status_code == 409
        assert reader.calls == 1

    def test_image_is_required(self, client, db_session, product, customer, seller_user, seller_headers, reader):
        sale = make_sale(db_session, product=product, customer=customer, seller=seller_user)

        resp = client.post(
            f"/api/sales/{sale.id}/extract-serial",
            data={},
            headers=seller_headers,
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert reader.calls == 0

    def test_non_image_rejected(self, client, db_session, product, customer, seller_user, seller_headers, reader):
        sale = make_sale(db_session, product=product, customer=customer, seller=seller_user)

        resp = _extract(client, sale.id, seller_headers, filename="label.txt")
        assert resp.status_code == 400
        assert reader.calls == 0

    def test_other_sellers_sale(self, client, db_session, product, customer, other_seller, seller_headers, reader):
        sale = make_sale(db_session, product=product, customer=customer, seller=other_seller)
        assert _extract(client, sale.id, seller_headers).status_code == 404


def test_set_serial_if_empty_first_write_wins(db_session, product, customer, seller_user):
    sale = make_sale(db_session, product=product, customer=customer, seller=seller_user)

    assert sales_service.set_serial_if_empty(sale.id, "FIRST1") is True
    assert sales_service.set_serial_if_empty(sale.id, "SECOND2") is False
    db_session.commit()
    db_session.expire_all()
    assert db_session.get(Sale, sale.id).serial_number == "FIRST1"


def test_default_reader_output_shape():
    reader = SerialReader(random.Random(7))
    result = reader.extract(b"bytes", "abc-123.jpg")

    assert result["text"].startswith("ABC")
    assert len(result["text"]) == 12
    assert 0.70 <= result["confidence"] <= 0.95
    assert looks_like_serial(result["text"])


@pytest.mark.parametrize(
    "value, expected",
    [("abc-123", "ABC123"), (" sn 99x ", "SN99X"), ("", ""), (None, "")],
)
def test_clean_serial(value, expected):
    assert clean_serial(value) == expected


@pytest.mark.parametrize(
    "value, expected",
    [("AB12CD", True), ("123456", False), ("ABCDEF", False), ("A1", False)],
)
def test_looks_like_serial(value, expected):
    assert looks_like_serial(value) is expected
