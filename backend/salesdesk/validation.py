from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .money import parse_amount_to_cents
from .time_utils import parse_iso_datetime


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999
MAX_WARRANTY_MONTHS = 120
MAX_SERIAL_LENGTH = 255
MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    """Strict integer parsing: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
            return value.strip().lower() in ("true", "1")
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a string")
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def pop_decimal_amount(payload: dict, *, decimal_key: str, cents_key: str) -> dict:
    """
    Accept a money field as either a decimal ("19.99") or integer cents.

    Returns a copy of the payload where the decimal form has been replaced by
    its cents equivalent. Supplying both forms is rejected.
    """
    if not isinstance(payload, dict) or decimal_key not in payload:
        return payload
    if cents_key in payload:
        raise ValidationError(f"Provide either {decimal_key} or {cents_key}, not both")
    data = dict(payload)
    raw = data.pop(decimal_key)
    try:
        data[cents_key] = parse_amount_to_cents(raw, decimal_key)
    except ValueError as e:
        raise ValidationError(str(e))
    return data


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "price_cents" in patch and patch["price_cents"] is not None:
        price = patch["price_cents"]
        if price <= 0:
            raise ValidationError("price must be greater than 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")
    if "stock" in patch and patch["stock"] is not None and patch["stock"] < 0:
        raise ValidationError("stock cannot be negative")
    if "sku" in patch and patch["sku"]:
        patch["sku"] = patch["sku"].upper()


def enforce_rules_customer(patch: dict) -> None:
    if "email" in patch and patch["email"]:
        email = patch["email"].lower()
        local, _, domain = email.partition("@")
        if not local or "." not in domain or domain.startswith(".") or domain.endswith("."):
            raise ValidationError("email must be a valid email address")
        patch["email"] = email


def validate_sale_payload(payload: dict) -> dict:
    """
    Normalize a sale creation request into service keyword arguments.

    quantity: integer >= 1
    unit_price / unit_price_cents: > 0, at most two decimals
    warranty_period_months: integer 1..120
    serial_number: optional, <= 255 chars
    sale_date: optional ISO-8601 datetime
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    data = pop_decimal_amount(payload, decimal_key="unit_price", cents_key="unit_price_cents")

    allowed = {
        "product_id", "customer_id", "quantity", "unit_price_cents",
        "warranty_period_months", "serial_number", "sale_date",
    }
    for k in data.keys():
        if k not in allowed:
            raise ValidationError(f"Field not allowed: {k}")

    required = ["product_id", "customer_id", "quantity", "unit_price_cents", "warranty_period_months"]
    missing = [k for k in required if data.get(k) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    result = {
        "product_id": coerce_int(data["product_id"], "product_id"),
        "customer_id": coerce_int(data["customer_id"], "customer_id"),
        "quantity": coerce_int(data["quantity"], "quantity"),
        "unit_price_cents": coerce_int(data["unit_price_cents"], "unit_price_cents"),
        "warranty_period_months": coerce_int(data["warranty_period_months"], "warranty_period_months"),
    }

    if result["quantity"] < 1:
        raise ValidationError("quantity must be at least 1")
    if result["unit_price_cents"] <= 0:
        raise ValidationError("unit_price must be greater than 0")
    if result["unit_price_cents"] > MAX_PRICE_CENTS:
        raise ValidationError(f"unit_price_cents cannot exceed {MAX_PRICE_CENTS}")
    months = result["warranty_period_months"]
    if months < 1 or months > MAX_WARRANTY_MONTHS:
        raise ValidationError(f"warranty_period_months must be between 1 and {MAX_WARRANTY_MONTHS}")

    serial = data.get("serial_number")
    if serial is not None:
        if not isinstance(serial, str):
            raise ValidationError("serial_number must be a string")
        serial = serial.strip()
        if len(serial) > MAX_SERIAL_LENGTH:
            raise ValidationError(f"serial_number exceeds max length {MAX_SERIAL_LENGTH}")
        result["serial_number"] = serial or None

    if data.get("sale_date") is not None:
        raw_date = data["sale_date"]
        if not isinstance(raw_date, str):
            raise ValidationError("sale_date must be an ISO-8601 datetime")
        try:
            result["sale_date"] = parse_iso_datetime(raw_date)
        except ValueError:
            raise ValidationError("sale_date must be an ISO-8601 datetime")

    return result


def validate_password(password: Any) -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    return password
