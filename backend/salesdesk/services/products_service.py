# backend/salesdesk/services/products_service.py
"""
Products Service

Catalog CRUD plus the two stock paths that are not sales: explicit
adjustment and the low-stock view. SKU uniqueness is enforced by the
database; the pre-check here only produces a nicer message.

LIFECYCLE: delete is a soft delete (is_active=False). Sales keep pointing
at the product row.
"""
from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError, translate_integrity_error
from ..extensions import db
from ..models import Product
from ..query_builder import Pagination, QueryBuilder
from .concurrency import begin_write, lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "description", "price_cents", "stock", "is_active"}

PRODUCT_SORTABLE = {
    "name": Product.name,
    "sku": Product.sku,
    "price": Product.price_cents,
    "stock": Product.stock,
    "created_at": Product.created_at,
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _sku_taken(sku: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


def _commit_or_conflict(message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        error = translate_integrity_error(exc)
        if isinstance(error, ConflictError):
            error = ConflictError(message)
        raise error from exc


def list_products(
    *,
    pagination: Pagination,
    search: str | None = None,
    sku: str | None = None,
    is_active: bool | None = True,
    min_price_cents: int | None = None,
    max_price_cents: int | None = None,
    min_stock: int | None = None,
    max_stock: int | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> tuple[list[Product], dict]:
    qb = QueryBuilder(
        db.session.query(Product),
        sortable=PRODUCT_SORTABLE,
        default_sort=Product.name.asc(),
    )
    (
        qb.contains(Product.name, search)
        .contains(Product.sku, sku)
        .equals(Product.is_active, is_active)
        .between(Product.price_cents, min_price_cents, max_price_cents)
        .between(Product.stock, min_stock, max_stock)
        .sort(sort_by, sort_order)
    )
    return qb.paginate(pagination)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def create_product(*, patch: dict) -> Product:
    """Create product using a validated patch dict."""
    if _sku_taken(patch["sku"]):
        raise ConflictError(f"SKU already exists: {patch['sku']}")

    product = Product()
    apply_product_patch(product, patch)
    if product.stock is None:
        product.stock = 0
    db.session.add(product)
    _commit_or_conflict(f"SKU already exists: {patch['sku']}")

    logger.info("Created product %s (%s)", product.id, product.sku)
    return product


def update_product(product_id: int, *, patch: dict) -> Product:
    product = get_product(product_id)

    if "sku" in patch and patch["sku"] != product.sku and _sku_taken(patch["sku"], exclude_id=product_id):
        raise ConflictError(f"SKU already exists: {patch['sku']}")

    apply_product_patch(product, patch)
    _commit_or_conflict(f"SKU already exists: {patch.get('sku', product.sku)}")
    return product


def deactivate_product(product_id: int) -> Product:
    product = get_product(product_id)
    if not product.is_active:
        return product
    product.is_active = False
    db.session.commit()
    logger.info("Deactivated product %s (%s)", product.id, product.sku)
    return product


def low_stock(threshold: int) -> list[dict]:
    if threshold < 0:
        raise ValidationError("threshold must be >= 0")
    products = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock <= threshold)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )
    items = []
    for p in products:
        data = p.to_dict()
        data["stock_status"] = "out_of_stock" if p.stock == 0 else "low"
        items.append(data)
    return items


def adjust_stock(product_id: int, adjustment: int, reason: str | None = None) -> Product:
    """
    Add (positive) or remove (negative) units outside of a sale.

    The guarded UPDATE refuses any adjustment that would leave stock negative.
    """
    if adjustment == 0:
        raise ValidationError("adjustment cannot be zero")

    def _op():
        begin_write()
        try:
            product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
            if product is None or not product.is_active:
                raise NotFoundError("Product not found or inactive")

            previous = product.stock
            if previous + adjustment < 0:
                raise ValidationError(
                    f"Adjustment would make stock negative (current: {previous}, adjustment: {adjustment})",
                    {"current_stock": previous, "adjustment": adjustment},
                )

            result = db.session.execute(
                update(Product)
                .where(Product.id == product_id, Product.stock + adjustment >= 0)
                .values(stock=Product.stock + adjustment),
                execution_options={"synchronize_session": False},
            )
            if result.rowcount != 1:
                raise ValidationError("Adjustment would make stock negative")
            db.session.commit()
        except (ValidationError, NotFoundError):
            db.session.rollback()
            raise
        return previous

    previous = run_with_retry(_op)
    product = get_product(product_id)
    logger.info(
        "Stock adjusted for product %s: %s -> %s (%+d) reason=%s",
        product_id, previous, product.stock, adjustment, reason or "-",
    )
    return product
