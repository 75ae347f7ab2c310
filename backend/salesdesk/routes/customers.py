# backend/salesdesk/routes/customers.py
"""Customer routes. Any authenticated user may manage customers; delete is admin-only."""
from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth
from ..errors import ValidationError
from ..models import Customer
from ..query_builder import parse_pagination
from ..services import customers_service
from ..validation import ModelValidationPolicy, enforce_rules_customer, validate_payload
from ._params import paged

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"first_name", "last_name", "email", "phone", "address"},
    required_on_create={"first_name", "last_name", "email"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _customer_patch(partial: bool) -> dict:
    patch = validate_payload(
        model=Customer,
        payload=request.get_json(silent=True),
        policy=CUSTOMER_POLICY,
        partial=partial,
    )
    enforce_rules_customer(patch)
    return patch


@customers_bp.get("")
@require_auth
def list_customers_route():
    args = request.args
    items, meta = customers_service.list_customers(
        pagination=parse_pagination(args),
        name=args.get("name") or args.get("search"),
        email=args.get("email"),
        sort_by=args.get("sort_by"),
        sort_order=args.get("sort_order"),
    )
    return paged([c.to_dict() for c in items], meta, "customers")


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    return {"success": True, "data": {"customer": customers_service.get_customer(customer_id).to_dict()}}


@customers_bp.post("")
@require_auth
def create_customer_route():
    customer = customers_service.create_customer(patch=_customer_patch(partial=False))
    return {"success": True, "message": "Customer created", "data": {"customer": customer.to_dict()}}, 201


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    patch = _customer_patch(partial=True)
    if not patch:
        raise ValidationError("No fields to update")
    customer = customers_service.update_customer(customer_id, patch=patch)
    return {"success": True, "message": "Customer updated", "data": {"customer": customer.to_dict()}}


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_admin
def delete_customer_route(customer_id: int):
    customers_service.delete_customer(customer_id)
    return {"success": True, "message": "Customer deleted"}


@customers_bp.get("/<int:customer_id>/sales")
@require_auth
def customer_sales_route(customer_id: int):
    seller_id = None if g.current_user.is_admin else g.current_user.id
    items, meta = customers_service.customer_sales(
        customer_id, parse_pagination(request.args), seller_id=seller_id,
    )
    return paged([s.to_dict() for s in items], meta, "sales")


@customers_bp.get("/<int:customer_id>/statistics")
@require_auth
def customer_statistics_route(customer_id: int):
    seller_id = None if g.current_user.is_admin else g.current_user.id
    stats = customers_service.customer_statistics(customer_id, seller_id=seller_id)
    return {"success": True, "data": {"statistics": stats}}
