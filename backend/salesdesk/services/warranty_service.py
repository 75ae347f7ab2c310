# Overview: Service-layer operations for warranties; date arithmetic and warranty queries.

"""
Warranty windows and warranty queries.

A warranty starts on the sale's calendar day and ends after a whole number of
calendar months. Month addition clamps to the last valid day of the target
month, so Jan 31 + 1 month is Feb 29 in a leap year and Feb 28 otherwise.

"Today" is always a calendar date (UTC) and can be injected for tests:
- active:         warranty_end >  today
- expiring soon:  today < warranty_end <= today + 30 days
- expired:        warranty_end <= today
A warranty that ends today is therefore expired, neither active nor expiring
soon. list_expiring() is the exception: it includes today, because a
warranty ending today is still one the shop wants to call about.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, timedelta

from sqlalchemy import case, func

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Product, Sale
from ..time_utils import to_iso_date, today as utc_today
from ..validation import MAX_WARRANTY_MONTHS

logger = logging.getLogger(__name__)

EXPIRING_SOON_DAYS = 30
MAX_EXPIRING_DAYS = 3650


def add_months(start: date, months: int) -> date:
    """Calendar-month addition, clamping the day to the target month's length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(start.day, last_day))


def calculate_warranty_dates(sale_date: date | datetime, months: int) -> tuple[date, date]:
    """Return (warranty_start, warranty_end) for a sale."""
    if isinstance(months, bool) or not isinstance(months, int) or months <= 0:
        raise ValueError("warranty period must be a positive number of months")
    start = sale_date.date() if isinstance(sale_date, datetime) else sale_date
    return start, add_months(start, months)


def days_until(warranty_end: date, today: date | None = None) -> int:
    return (warranty_end - (today or utc_today())).days


def _expiring_row(sale_id, first_name, last_name, email, product_name, warranty_end, today: date) -> dict:
    return {
        "sale_id": sale_id,
        "customer_name": f"{first_name} {last_name}",
        "customer_email": email,
        "product_name": product_name,
        "warranty_end": to_iso_date(warranty_end),
        "days_until_expiry": days_until(warranty_end, today),
    }


def _warranty_rows_query():
    return (
        db.session.query(
            Sale.id,
            Customer.first_name,
            Customer.last_name,
            Customer.email,
            Product.name,
            Sale.warranty_end,
        )
        .join(Customer, Sale.customer_id == Customer.id)
        .join(Product, Sale.product_id == Product.id)
    )


def list_expiring(days_threshold: int = EXPIRING_SOON_DAYS, *, today: date | None = None, seller_id: int | None = None) -> list[dict]:
    """Sales whose warranty ends within [today, today + days], soonest first."""
    if days_threshold < 0 or days_threshold > MAX_EXPIRING_DAYS:
        raise ValidationError(f"days must be between 0 and {MAX_EXPIRING_DAYS}")
    today = today or utc_today()
    horizon = today + timedelta(days=days_threshold)

    query = _warranty_rows_query().filter(Sale.warranty_end >= today, Sale.warranty_end <= horizon)
    if seller_id is not None:
        query = query.filter(Sale.seller_id == seller_id)

    rows = query.order_by(Sale.warranty_end.asc(), Sale.id.asc()).all()
    return [_expiring_row(*row, today=today) for row in rows]


def status_for(warranty_end: date, today: date | None = None) -> dict:
    remaining = days_until(warranty_end, today)
    return {
        "is_active": remaining > 0,
        "is_expiring_soon": 0 < remaining <= EXPIRING_SOON_DAYS,
        "days_until_expiry": remaining,
        "warranty_end": to_iso_date(warranty_end),
    }


def check_status(sale_id: int, *, today: date | None = None) -> dict:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    return status_for(sale.warranty_end, today)


def statistics(*, today: date | None = None, seller_id: int | None = None) -> dict:
    today = today or utc_today()
    soon = today + timedelta(days=EXPIRING_SOON_DAYS)

    query = db.session.query(
        func.count(case((Sale.warranty_end > today, 1))),
        func.count(case(((Sale.warranty_end > today) & (Sale.warranty_end <= soon), 1))),
        func.count(case((Sale.warranty_end <= today, 1))),
        func.avg(Sale.warranty_period_months),
    )
    if seller_id is not None:
        query = query.filter(Sale.seller_id == seller_id)

    active, expiring_soon, expired, average = query.one()
    return {
        "total_active_warranties": int(active or 0),
        "expiring_soon_count": int(expiring_soon or 0),
        "expired_count": int(expired or 0),
        "average_warranty_period": round(float(average or 0), 2),
    }


def customer_warranties(customer_id: int, *, today: date | None = None, seller_id: int | None = None) -> dict:
    """A customer's warranties split into active and expired, latest end first."""
    if db.session.get(Customer, customer_id) is None:
        raise NotFoundError("Customer not found")
    today = today or utc_today()

    query = _warranty_rows_query().filter(Sale.customer_id == customer_id)
    if seller_id is not None:
        query = query.filter(Sale.seller_id == seller_id)
    rows = (
        query
        .order_by(Sale.warranty_end.desc(), Sale.id.desc())
        .all()
    )
    warranties = [_expiring_row(*row, today=today) for row in rows]
    return {
        "active": [w for w in warranties if w["days_until_expiry"] > 0],
        "expired": [w for w in warranties if w["days_until_expiry"] <= 0],
    }


def extend_warranty(sale_id: int, additional_months: int) -> Sale:
    """
    Lengthen a sale's warranty.

    The new end is recomputed from the original start with the total number
    of months, so repeated extensions never accumulate month-end clamping.
    """
    if isinstance(additional_months, bool) or not isinstance(additional_months, int) or additional_months <= 0:
        raise ValidationError("additional_months must be a positive integer")

    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")

    total_months = sale.warranty_period_months + additional_months
    if total_months > MAX_WARRANTY_MONTHS:
        raise ValidationError(f"Total warranty cannot exceed {MAX_WARRANTY_MONTHS} months")

    sale.warranty_period_months = total_months
    sale.warranty_end = add_months(sale.warranty_start, total_months)
    db.session.commit()

    logger.info("Extended warranty of sale %s by %s months (ends %s)", sale.id, additional_months, sale.warranty_end)
    return sale
