# Overview: Service-layer operations for sales; stock decrement, warranty window, images and serial capture.

"""
Sale transactions.

create_sale is the only place stock goes down because of a sale. Everything
happens in one write transaction:

1. lock the product row (BEGIN IMMEDIATE on SQLite, FOR UPDATE elsewhere)
2. re-read stock and reject insufficient quantity
3. insert the sale with its computed total and warranty window
4. decrement with a guarded UPDATE (stock >= quantity in the WHERE clause)

If the guarded UPDATE touches no row the whole sale is rolled back. The
stock >= 0 CHECK constraint is the last backstop for writers that bypass
this service.

Sales are immutable afterwards. The only later write is serial_number, which
is filled at most once (first write wins).
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError, translate_integrity_error
from ..extensions import db
from ..models import Customer, Product, Sale, SaleImage, SALE_IMAGE_TYPES, USER_ROLES
from ..query_builder import Pagination, QueryBuilder
from ..time_utils import utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry
from .image_service import UploadedImage, get_storage, upload_image, validate_image_file
from .ocr_service import looks_like_serial, read_serial
from .warranty_service import calculate_warranty_dates

logger = logging.getLogger(__name__)

MAX_IMAGES_PER_REQUEST = 3

SALE_SORTABLE = {
    "sale_date": Sale.sale_date,
    "total_price": Sale.total_price_cents,
    "quantity": Sale.quantity,
    "warranty_end": Sale.warranty_end,
    "created_at": Sale.created_at,
}


def _insufficient_stock(available: int, requested: int) -> ValidationError:
    return ValidationError(
        f"Insufficient stock (available: {available}, requested: {requested})",
        {"available": available, "requested": requested},
    )


def create_sale(
    *,
    seller_id: int,
    seller_role: str,
    product_id: int,
    customer_id: int,
    quantity: int,
    unit_price_cents: int,
    warranty_period_months: int,
    serial_number: str | None = None,
    sale_date: datetime | None = None,
) -> Sale:
    """
    Record a sale and decrement stock atomically.

    Raises NotFoundError (product missing/inactive, customer missing),
    ValidationError (insufficient stock, bad quantity or price) and
    ServiceUnavailableError when the store stays locked after retries.
    """
    if seller_role not in USER_ROLES:
        raise ForbiddenError("Only sellers and admins can record sales")
    if quantity < 1:
        raise ValidationError("quantity must be at least 1")
    if unit_price_cents <= 0:
        raise ValidationError("unit_price must be greater than 0")
    if warranty_period_months < 1:
        raise ValidationError("warranty_period_months must be at least 1")

    def _op():
        begin_write()
        try:
            product = lock_for_update(
                db.session.query(Product).filter_by(id=product_id)
            ).first()
            if product is None or not product.is_active:
                raise NotFoundError("Product not found or inactive")

            if product.stock < quantity:
                raise _insufficient_stock(product.stock, quantity)

            if db.session.get(Customer, customer_id) is None:
                raise NotFoundError("Customer not found")

            when = sale_date or utcnow()
            warranty_start, warranty_end = calculate_warranty_dates(when, warranty_period_months)

            sale = Sale(
                product_id=product.id,
                customer_id=customer_id,
                seller_id=seller_id,
                quantity=quantity,
                unit_price_cents=unit_price_cents,
                total_price_cents=quantity * unit_price_cents,
                sale_date=when,
                warranty_period_months=warranty_period_months,
                warranty_start=warranty_start,
                warranty_end=warranty_end,
                serial_number=serial_number or None,
            )
            db.session.add(sale)
            db.session.flush()

            result = db.session.execute(
                update(Product)
                .where(Product.id == product.id, Product.stock >= quantity)
                .values(stock=Product.stock - quantity),
                execution_options={"synchronize_session": False},
            )
            if result.rowcount != 1:
                available = db.session.query(Product.stock).filter_by(id=product.id).scalar()
                raise _insufficient_stock(available or 0, quantity)

            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise translate_integrity_error(exc) from exc
        except (ValidationError, NotFoundError):
            db.session.rollback()
            raise
        return sale

    try:
        sale = run_with_retry(_op)
    except (ValidationError, NotFoundError) as exc:
        logger.warning(
            "Sale rejected for product %s by seller %s: %s", product_id, seller_id, exc.message
        )
        raise

    logger.info(
        "Sale %s recorded: product=%s qty=%s total_cents=%s seller=%s warranty_end=%s",
        sale.id, product_id, quantity, sale.total_price_cents, seller_id, sale.warranty_end,
    )
    return sale


def _visible_sale(sale_id: int, *, viewer_id: int | None = None, viewer_role: str = "admin") -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    # Sellers only ever see their own sales
    if viewer_role != "admin" and viewer_id is not None and sale.seller_id != viewer_id:
        raise NotFoundError("Sale not found")
    return sale


def get_sale(sale_id: int, *, viewer_id: int | None = None, viewer_role: str = "admin") -> Sale:
    return _visible_sale(sale_id, viewer_id=viewer_id, viewer_role=viewer_role)


def list_sales(
    *,
    viewer_id: int,
    viewer_role: str,
    pagination: Pagination,
    product_id: int | None = None,
    customer_id: int | None = None,
    seller_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    min_total_cents: int | None = None,
    max_total_cents: int | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> tuple[list[Sale], dict]:
    if viewer_role != "admin":
        seller_id = viewer_id

    qb = QueryBuilder(
        db.session.query(Sale),
        sortable=SALE_SORTABLE,
        default_sort=Sale.sale_date.desc(),
    )
    (
        qb.equals(Sale.product_id, product_id)
        .equals(Sale.customer_id, customer_id)
        .equals(Sale.seller_id, seller_id)
        .date_range(Sale.sale_date, start_date, end_date)
        .between(Sale.total_price_cents, min_total_cents, max_total_cents)
        .sort(sort_by, sort_order)
    )
    return qb.paginate(pagination)


def _check_image_types(files: list[UploadedImage]) -> None:
    if not files:
        raise ValidationError("No images provided")
    if len(files) > MAX_IMAGES_PER_REQUEST:
        raise ValidationError(f"At most {MAX_IMAGES_PER_REQUEST} images per request")

    seen: set[str] = set()
    for f in files:
        if f.image_type not in SALE_IMAGE_TYPES:
            raise ValidationError(
                f"Invalid image type: {f.image_type}",
                {"allowed": list(SALE_IMAGE_TYPES)},
            )
        if f.image_type in seen:
            raise ValidationError(f"Duplicate image type in request: {f.image_type}")
        seen.add(f.image_type)


def _existing_types(sale_id: int) -> set[str]:
    rows = db.session.query(SaleImage.image_type).filter_by(sale_id=sale_id).all()
    return {row[0] for row in rows}


def _release(uploads: list[dict]) -> None:
    storage = get_storage()
    for uploaded in uploads:
        storage.delete(uploaded["public_id"])


def attach_images(sale_id: int, files: list[UploadedImage]) -> list[SaleImage]:
    """
    Store 1-3 photos for a sale, at most one per image type.

    Every file is validated before anything is uploaded. An image type the
    sale already has is a ConflictError; the unique (sale_id, image_type)
    constraint backs this up against concurrent uploads.
    """
    _check_image_types(files)

    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")

    clashes = sorted(_existing_types(sale_id) & {f.image_type for f in files})
    if clashes:
        raise ConflictError(
            f"Sale already has an image of type: {', '.join(clashes)}",
            {"image_types": clashes},
        )

    max_size = get_storage().max_size
    for f in files:
        validate_image_file(f.data, f.filename, max_size=max_size)

    uploads: list[dict] = []
    try:
        for f in files:
            uploads.append(upload_image(f))
    except Exception:
        _release(uploads)
        raise

    images = [
        SaleImage(sale_id=sale_id, image_type=f.image_type, image_url=uploaded["url"])
        for f, uploaded in zip(files, uploads)
    ]
    try:
        db.session.add_all(images)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        _release(uploads)
        error = translate_integrity_error(exc)
        if isinstance(error, ConflictError):
            error = ConflictError("Sale already has an image of one of these types")
        raise error from exc

    logger.info(
        "Attached %d image(s) to sale %s: %s",
        len(images), sale_id, ", ".join(i.image_type for i in images),
    )
    return images


def set_serial_if_empty(sale_id: int, serial: str) -> bool:
    """Conditional write; True only for the caller that actually filled the serial."""
    result = db.session.execute(
        update(Sale)
        .where(Sale.id == sale_id, or_(Sale.serial_number.is_(None), Sale.serial_number == ""))
        .values(serial_number=serial),
        execution_options={"synchronize_session": False},
    )
    return result.rowcount == 1


def extract_serial(sale_id: int, data: bytes, filename: str) -> dict:
    """
    Read a serial number off a photo and keep the photo as the sale's
    serial_number image.

    The sale's serial is only written when it is still empty, so a serial
    typed in at checkout (or extracted earlier) is never overwritten.
    """
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")

    if "serial_number" in _existing_types(sale_id):
        raise ConflictError("Sale already has a serial_number image")

    validate_image_file(data, filename, max_size=get_storage().max_size)

    reading = read_serial(data, filename)
    uploaded = upload_image(UploadedImage("serial_number", data, filename))
    extracted = reading["text"]
    if not looks_like_serial(extracted):
        logger.warning("Reader returned an implausible serial for sale %s: %r", sale_id, extracted)

    try:
        db.session.add(SaleImage(sale_id=sale_id, image_type="serial_number", image_url=uploaded["url"]))
        db.session.flush()
        updated = set_serial_if_empty(sale_id, extracted)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        _release([uploaded])
        raise ConflictError("Sale already has a serial_number image") from exc

    logger.info(
        "Serial extracted for sale %s (confidence %.2f, stored=%s)",
        sale_id, reading["confidence"], updated,
    )
    return {
        "extracted_serial": extracted,
        "image_url": uploaded["url"],
        "confidence": reading["confidence"],
        "serial_number_updated": updated,
    }

