# Overview: Service-layer operations for customers; CRUD, purchase history and guarded delete.

from __future__ import annotations

import logging

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, translate_integrity_error
from ..extensions import db
from ..models import Customer, Sale
from ..money import cents_to_str
from ..query_builder import Pagination, QueryBuilder
from ..time_utils import to_utc_z

logger = logging.getLogger(__name__)

CUSTOMER_MUTABLE_FIELDS = {"first_name", "last_name", "email", "phone", "address"}

CUSTOMER_SORTABLE = {
    "first_name": Customer.first_name,
    "last_name": Customer.last_name,
    "email": Customer.email,
    "created_at": Customer.created_at,
}


def _email_taken(email: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Customer.id).filter(Customer.email == email)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    return query.first() is not None


def _commit(email: str | None) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        error = translate_integrity_error(exc)
        if isinstance(error, ConflictError):
            error = ConflictError(f"Email already registered: {email}")
        raise error from exc


def list_customers(
    *,
    pagination: Pagination,
    name: str | None = None,
    email: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> tuple[list[Customer], dict]:
    qb = QueryBuilder(
        db.session.query(Customer),
        sortable=CUSTOMER_SORTABLE,
        default_sort=Customer.last_name.asc(),
    )
    if name and name.strip():
        term = name.strip().lower()
        qb.where(or_(
            func.lower(Customer.first_name).contains(term, autoescape=True),
            func.lower(Customer.last_name).contains(term, autoescape=True),
        ))
    qb.contains(Customer.email, email).sort(sort_by, sort_order)
    return qb.paginate(pagination)


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def create_customer(*, patch: dict) -> Customer:
    if _email_taken(patch["email"]):
        raise ConflictError(f"Email already registered: {patch['email']}")
    customer = Customer(**{k: v for k, v in patch.items() if k in CUSTOMER_MUTABLE_FIELDS})
    db.session.add(customer)
    _commit(patch["email"])
    logger.info("Created customer %s", customer.id)
    return customer


def update_customer(customer_id: int, *, patch: dict) -> Customer:
    customer = get_customer(customer_id)
    if "email" in patch and patch["email"] != customer.email and _email_taken(patch["email"], exclude_id=customer_id):
        raise ConflictError(f"Email already registered: {patch['email']}")
    for k, v in patch.items():
        if k in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, k, v)
    _commit(patch.get("email"))
    return customer


def delete_customer(customer_id: int) -> None:
    """
    Hard delete, allowed only while the customer owns no sales.

    The sales foreign key (no cascade) rejects the delete if a sale sneaks
    in between the count and the commit.
    """
    customer = get_customer(customer_id)
    sale_count = db.session.query(func.count(Sale.id)).filter(Sale.customer_id == customer_id).scalar()
    if sale_count:
        raise ConflictError(
            f"Cannot delete customer with {sale_count} associated sale(s)",
            {"sales_count": sale_count},
        )
    db.session.delete(customer)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("Cannot delete customer with associated sales") from exc
    logger.info("Deleted customer %s", customer_id)


def customer_sales(
    customer_id: int,
    pagination: Pagination,
    *,
    seller_id: int | None = None,
) -> tuple[list[Sale], dict]:
    """Sales history, limited to one seller's sales when seller_id is given."""
    get_customer(customer_id)
    qb = QueryBuilder(
        db.session.query(Sale),
        default_sort=Sale.sale_date.desc(),
    ).equals(Sale.customer_id, customer_id).equals(Sale.seller_id, seller_id)
    return qb.paginate(pagination)


def customer_statistics(customer_id: int, *, seller_id: int | None = None) -> dict:
    get_customer(customer_id)
    query = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_price_cents), 0),
        func.avg(Sale.total_price_cents),
        func.min(Sale.sale_date),
        func.max(Sale.sale_date),
        func.count(func.distinct(Sale.product_id)),
    ).filter(Sale.customer_id == customer_id)
    if seller_id is not None:
        query = query.filter(Sale.seller_id == seller_id)
    count, total, average, first, last, unique_products = query.one()
    total = int(total or 0)
    average_cents = int(round(float(average))) if average is not None else 0
    return {
        "total_purchases": int(count or 0),
        "total_spent_cents": total,
        "total_spent": cents_to_str(total),
        "average_purchase_cents": average_cents,
        "average_purchase": cents_to_str(average_cents),
        "first_purchase": _as_iso(first),
        "last_purchase": _as_iso(last),
        "unique_products": int(unique_products or 0),
    }


def _as_iso(value):
    # SQLite hands aggregates of datetime columns back as strings
    if value is None or isinstance(value, str):
        return value
    return to_utc_z(value)
