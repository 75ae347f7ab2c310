# Overview: Composable filter/sort/paginate helper shared by list endpoints and reports.

"""
Dynamic list queries.

Every filter is expressed as a SQLAlchemy clause, so values always travel as
bound parameters. Sorting is restricted to a whitelist of column names; an
unknown sort key falls back to the default instead of reaching the SQL text.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func

from .errors import ValidationError

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class Pagination:
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def parse_pagination(args) -> Pagination:
    """Read `page` and `limit` from request args (limit capped at 100)."""
    try:
        page = int(args.get("page", 1))
        limit = int(args.get("limit", DEFAULT_PAGE_SIZE))
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    return Pagination(page=page, limit=limit)


class QueryBuilder:
    """
    Accumulates optional filters over a base query.

    Each helper ignores a None value so callers can pass request args
    straight through:

        qb = QueryBuilder(db.session.query(Product), sortable={"name": Product.name})
        qb.contains(Product.name, args.get("name")).equals(Product.is_active, True)
        page = qb.paginate(Pagination(page=1, limit=20))
    """

    def __init__(self, query, *, sortable: dict[str, Any] | None = None, default_sort=None):
        self.query = query
        self.sortable = sortable or {}
        self.default_sort = default_sort
        self.clauses: list = []
        self._order_by: list = []

    def where(self, clause) -> "QueryBuilder":
        self.clauses.append(clause)
        return self

    def equals(self, column, value) -> "QueryBuilder":
        if value is None:
            return self
        return self.where(column == value)

    def contains(self, column, value: str | None) -> "QueryBuilder":
        """Case-insensitive substring match."""
        if value is None or str(value).strip() == "":
            return self
        term = str(value).strip().lower()
        return self.where(func.lower(column).contains(term, autoescape=True))

    def gte(self, column, value) -> "QueryBuilder":
        if value is None:
            return self
        return self.where(column >= value)

    def lte(self, column, value) -> "QueryBuilder":
        if value is None:
            return self
        return self.where(column <= value)

    def between(self, column, start, end) -> "QueryBuilder":
        return self.gte(column, start).lte(column, end)

    def date_range(self, column, start: datetime | None, end: datetime | None) -> "QueryBuilder":
        """Inclusive range; an end at midnight is widened to the whole day."""
        if end is not None and end.hour == 0 and end.minute == 0 and end.second == 0:
            end = end.replace(hour=23, minute=59, second=59, microsecond=999999)
        return self.between(column, start, end)

    def sort(self, sort_by: str | None, sort_order: str | None = "desc") -> "QueryBuilder":
        column = self.sortable.get(sort_by or "")
        if column is None:
            if self.default_sort is not None:
                self._order_by = [self.default_sort]
            return self
        direction = (sort_order or "desc").lower()
        if direction not in ("asc", "desc"):
            raise ValidationError("sort_order must be asc or desc")
        self._order_by = [column.asc() if direction == "asc" else column.desc()]
        return self

    def build(self):
        query = self.query
        if self.clauses:
            query = query.filter(*self.clauses)
        order_by = self._order_by or ([self.default_sort] if self.default_sort is not None else [])
        if order_by:
            query = query.order_by(*order_by)
        return query

    def filtered(self):
        """Base query with filters but without ordering (for aggregates)."""
        if self.clauses:
            return self.query.filter(*self.clauses)
        return self.query

    def paginate(self, pagination: Pagination) -> tuple[list, dict]:
        query = self.build()
        total = self.filtered().order_by(None).count()
        items = query.offset(pagination.offset).limit(pagination.limit).all()
        total_pages = (total + pagination.limit - 1) // pagination.limit if total > 0 else 0
        meta = {
            "page": pagination.page,
            "limit": pagination.limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": pagination.page < total_pages,
            "has_prev": pagination.page > 1,
        }
        return items, meta
