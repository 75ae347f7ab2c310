# backend/salesdesk/routes/products.py
"""
Product management routes.

SECURITY: All routes require authentication.
- Read operations are open to every authenticated user
- Write operations (create, update, delete, adjust stock) are admin-only
"""
from flask import Blueprint, current_app, request

from ..decorators import require_admin, require_auth
from ..errors import ValidationError
from ..models import Product
from ..query_builder import parse_pagination
from ..services import products_service
from ..validation import (
    ModelValidationPolicy,
    coerce_int,
    enforce_rules_product,
    pop_decimal_amount,
    validate_payload,
)
from ._params import arg_bool, arg_cents, arg_int, paged

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "description", "price_cents", "stock", "is_active"},
    required_on_create={"sku", "name", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _product_patch(partial: bool) -> dict:
    payload = request.get_json(silent=True)
    payload = pop_decimal_amount(payload, decimal_key="price", cents_key="price_cents")
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=partial)
    enforce_rules_product(patch)
    return patch


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products.

    Query params: search, sku, is_active (true/false/all, default true),
    min_price, max_price, min_stock, max_stock, sort_by, sort_order, page, limit
    """
    args = request.args
    items, meta = products_service.list_products(
        pagination=parse_pagination(args),
        search=args.get("search"),
        sku=args.get("sku"),
        is_active=arg_bool(args, "is_active", default=True),
        min_price_cents=arg_cents(args, "min_price"),
        max_price_cents=arg_cents(args, "max_price"),
        min_stock=arg_int(args, "min_stock"),
        max_stock=arg_int(args, "max_stock"),
        sort_by=args.get("sort_by"),
        sort_order=args.get("sort_order"),
    )
    return paged([p.to_dict() for p in items], meta, "products")


@products_bp.get("/low-stock")
@require_auth
def low_stock_route():
    threshold = arg_int(request.args, "threshold", minimum=0)
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    items = products_service.low_stock(threshold)
    return {"success": True, "data": {"products": items, "count": len(items), "threshold": threshold}}


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    return {"success": True, "data": {"product": products_service.get_product(product_id).to_dict()}}


@products_bp.post("")
@require_auth
@require_admin
def create_product_route():
    product = products_service.create_product(patch=_product_patch(partial=False))
    return {"success": True, "message": "Product created", "data": {"product": product.to_dict()}}, 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    patch = _product_patch(partial=True)
    if not patch:
        raise ValidationError("No fields to update")
    product = products_service.update_product(product_id, patch=patch)
    return {"success": True, "message": "Product updated", "data": {"product": product.to_dict()}}


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: int):
    """Soft delete: the product is deactivated, its sales are kept."""
    product = products_service.deactivate_product(product_id)
    return {"success": True, "message": "Product deactivated", "data": {"product": product.to_dict()}}


@products_bp.post("/<int:product_id>/adjust-stock")
@require_auth
@require_admin
def adjust_stock_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    if "adjustment" not in payload:
        raise ValidationError("adjustment is required")
    adjustment = coerce_int(payload["adjustment"], "adjustment")
    reason = payload.get("reason")
    if reason is not None and (not isinstance(reason, str) or len(reason) > 500):
        raise ValidationError("reason must be a string of at most 500 characters")

    product = products_service.adjust_stock(product_id, adjustment, reason)
    return {"success": True, "message": "Stock adjusted", "data": {"product": product.to_dict()}}
