# Overview: Shared query-string parsing for list endpoints.

from __future__ import annotations

from ..errors import ValidationError
from ..money import parse_amount_to_cents
from ..time_utils import parse_iso_datetime


def arg_int(args, name: str, *, minimum: int | None = None) -> int | None:
    raw = args.get(name)
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}")
    return value


def arg_bool(args, name: str, default: bool | None = None) -> bool | None:
    raw = args.get(name)
    if raw is None or raw == "":
        return default
    lowered = raw.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    if lowered == "all":
        return None
    raise ValidationError(f"{name} must be true or false")


def arg_cents(args, name: str) -> int | None:
    raw = args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return parse_amount_to_cents(raw, name)
    except ValueError as e:
        raise ValidationError(str(e))


def arg_datetime(args, name: str):
    raw = args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime")


def paged(items: list, meta: dict, key: str) -> dict:
    return {"success": True, "data": {key: items, "pagination": meta}}
