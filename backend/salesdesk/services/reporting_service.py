# Overview: Service-layer operations for reporting; dashboard, sales statistics and reports.

from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Customer, Product, Sale, User
from ..money import cents_to_str
from ..query_builder import QueryBuilder
from ..time_utils import to_iso_date, to_utc_z, utcnow
from . import warranty_service

PERIODS = ("week", "month", "quarter", "year", "all")
TOP_LIMIT = 10
DAILY_SERIES_LIMIT = 30


def _money(cents) -> dict:
    cents = int(round(float(cents or 0)))
    return {"cents": cents, "amount": cents_to_str(cents)}


def period_start(period: str, now: datetime | None = None) -> datetime | None:
    """First instant of the reporting period containing `now` (None for all)."""
    now = now or utcnow()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        return midnight - timedelta(days=7)
    if period == "month":
        return midnight.replace(day=1)
    if period == "quarter":
        first_month = 3 * ((now.month - 1) // 3) + 1
        return midnight.replace(month=first_month, day=1)
    if period == "year":
        return midnight.replace(month=1, day=1)
    if period == "all":
        return None
    raise ValidationError(f"period must be one of: {', '.join(PERIODS)}")


def _totals(query) -> dict:
    count, total, average = query.with_entities(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_price_cents), 0),
        func.avg(Sale.total_price_cents),
    ).one()
    return {
        "sales": int(count or 0),
        "revenue": _money(total),
        "average_sale": _money(average),
    }


def dashboard(*, viewer_id: int, viewer_role: str, low_stock_threshold: int, today: date | None = None) -> dict:
    general = _totals(db.session.query(Sale))
    general.update({
        "active_products": db.session.query(func.count(Product.id)).filter(Product.is_active.is_(True)).scalar(),
        "total_customers": db.session.query(func.count(Customer.id)).scalar(),
        "active_users": db.session.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar(),
    })

    month_start = period_start("month")
    monthly = _totals(db.session.query(Sale).filter(Sale.sale_date >= month_start))

    low_stock_count = (
        db.session.query(func.count(Product.id))
        .filter(Product.is_active.is_(True), Product.stock <= low_stock_threshold)
        .scalar()
    )

    seller = None
    if viewer_role != "admin":
        seller = _totals(db.session.query(Sale).filter(Sale.seller_id == viewer_id))

    return {
        "general": general,
        "monthly": monthly,
        "inventory": {"low_stock_products": int(low_stock_count or 0), "threshold": low_stock_threshold},
        "warranties": warranty_service.statistics(today=today),
        "seller": seller,
    }


def sales_statistics(*, period: str, viewer_id: int, viewer_role: str) -> dict:
    start = period_start(period)

    def _scoped(query):
        if start is not None:
            query = query.filter(Sale.sale_date >= start)
        if viewer_role != "admin":
            query = query.filter(Sale.seller_id == viewer_id)
        return query

    day = func.date(Sale.sale_date)
    daily_rows = (
        _scoped(db.session.query(
            day.label("day"),
            func.count(Sale.id).label("sales_count"),
            func.sum(Sale.total_price_cents).label("revenue_cents"),
            func.avg(Sale.total_price_cents).label("avg_cents"),
        ))
        .group_by(day)
        .order_by(day.desc())
        .limit(DAILY_SERIES_LIMIT)
        .all()
    )

    product_revenue = func.sum(Sale.total_price_cents)
    product_rows = (
        _scoped(db.session.query(
            Product.id,
            Product.name,
            Product.sku,
            func.sum(Sale.quantity).label("total_quantity"),
            product_revenue.label("revenue_cents"),
            func.count(Sale.id).label("sales_count"),
        ).join(Product, Sale.product_id == Product.id))
        .group_by(Product.id, Product.name, Product.sku)
        .order_by(product_revenue.desc())
        .limit(TOP_LIMIT)
        .all()
    )

    top_sellers = []
    if viewer_role == "admin":
        seller_revenue = func.sum(Sale.total_price_cents)
        seller_rows = (
            _scoped(db.session.query(
                User.id,
                User.first_name,
                User.last_name,
                User.email,
                func.count(Sale.id).label("sales_count"),
                seller_revenue.label("revenue_cents"),
                func.avg(Sale.total_price_cents).label("avg_cents"),
            ).join(User, Sale.seller_id == User.id))
            .group_by(User.id, User.first_name, User.last_name, User.email)
            .order_by(seller_revenue.desc())
            .limit(TOP_LIMIT)
            .all()
        )
        top_sellers = [
            {
                "seller_id": row.id,
                "first_name": row.first_name,
                "last_name": row.last_name,
                "email": row.email,
                "sales_count": int(row.sales_count),
                "revenue": _money(row.revenue_cents),
                "average_sale": _money(row.avg_cents),
            }
            for row in seller_rows
        ]

    return {
        "period": period,
        "since": to_utc_z(start) if start else None,
        "daily_sales": [
            {
                "date": row.day if isinstance(row.day, str) else to_iso_date(row.day),
                "sales_count": int(row.sales_count),
                "revenue": _money(row.revenue_cents),
                "average_sale": _money(row.avg_cents),
            }
            for row in daily_rows
        ],
        "top_products": [
            {
                "product_id": row.id,
                "name": row.name,
                "sku": row.sku,
                "total_quantity": int(row.total_quantity or 0),
                "revenue": _money(row.revenue_cents),
                "sales_count": int(row.sales_count),
            }
            for row in product_rows
        ],
        "top_sellers": top_sellers,
    }


def inventory_report(*, include_inactive: bool = False, low_stock_threshold: int) -> dict:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    products = query.order_by(Product.name.asc(), Product.id.asc()).all()

    rows = []
    total_units = 0
    total_value_cents = 0
    for p in products:
        value = p.stock * p.price_cents
        total_units += p.stock
        total_value_cents += value
        rows.append({
            "product_id": p.id,
            "sku": p.sku,
            "name": p.name,
            "stock": p.stock,
            "price_cents": p.price_cents,
            "stock_value_cents": value,
            "is_active": p.is_active,
            "low_stock": p.stock <= low_stock_threshold,
        })

    return {
        "generated_at": to_utc_z(utcnow()),
        "product_count": len(rows),
        "total_units": total_units,
        "total_value": _money(total_value_cents),
        "rows": rows,
    }


def sales_report(
    *,
    viewer_id: int,
    viewer_role: str,
    start: datetime | None = None,
    end: datetime | None = None,
    seller_id: int | None = None,
    product_id: int | None = None,
    customer_id: int | None = None,
) -> dict:
    if viewer_role != "admin":
        seller_id = viewer_id

    qb = QueryBuilder(
        db.session.query(Sale, Product.name, Customer.first_name, Customer.last_name)
        .join(Product, Sale.product_id == Product.id)
        .join(Customer, Sale.customer_id == Customer.id),
        default_sort=Sale.sale_date.desc(),
    )
    (
        qb.date_range(Sale.sale_date, start, end)
        .equals(Sale.seller_id, seller_id)
        .equals(Sale.product_id, product_id)
        .equals(Sale.customer_id, customer_id)
    )
    rows = qb.build().all()

    total_cents = 0
    total_units = 0
    items = []
    for sale, product_name, first_name, last_name in rows:
        total_cents += sale.total_price_cents
        total_units += sale.quantity
        items.append({
            "sale_id": sale.id,
            "sale_date": to_utc_z(sale.sale_date),
            "product_name": product_name,
            "customer_name": f"{first_name} {last_name}",
            "seller_id": sale.seller_id,
            "quantity": sale.quantity,
            "total_price_cents": sale.total_price_cents,
            "warranty_end": to_iso_date(sale.warranty_end),
        })

    return {
        "filters": {
            "start": to_utc_z(start) if start else None,
            "end": to_utc_z(end) if end else None,
            "seller_id": seller_id,
            "product_id": product_id,
            "customer_id": customer_id,
        },
        "sales_count": len(items),
        "units_sold": total_units,
        "revenue": _money(total_cents),
        "rows": items,
    }
