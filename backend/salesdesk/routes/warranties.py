# backend/salesdesk/routes/warranties.py
"""Warranty queries. Sellers see warranties of their own sales; extension is admin-only."""
from flask import Blueprint, current_app, g, request

from ..decorators import require_admin, require_auth
from ..errors import ValidationError
from ..services import sales_service, warranty_service
from ..validation import coerce_int
from ._params import arg_int

warranties_bp = Blueprint("warranties", __name__, url_prefix="/api/warranties")


def _seller_scope() -> int | None:
    return None if g.current_user.is_admin else g.current_user.id


@warranties_bp.get("/expiring")
@require_auth
def expiring_route():
    days = arg_int(request.args, "days", minimum=0)
    if days is None:
        days = current_app.config["WARRANTY_EXPIRING_SOON_DAYS"]
    warranties = warranty_service.list_expiring(days, seller_id=_seller_scope())
    return {
        "success": True,
        "data": {"warranties": warranties, "count": len(warranties), "days_threshold": days},
    }


@warranties_bp.get("/statistics")
@require_auth
def statistics_route():
    stats = warranty_service.statistics(seller_id=_seller_scope())
    return {"success": True, "data": {"statistics": stats}}


@warranties_bp.get("/check/<int:sale_id>")
@require_auth
def check_route(sale_id: int):
    sales_service.get_sale(sale_id, viewer_id=g.current_user.id, viewer_role=g.current_user.role)
    status = warranty_service.check_status(sale_id)
    return {"success": True, "data": {"sale_id": sale_id, "warranty_status": status}}


@warranties_bp.get("/customer/<int:customer_id>")
@require_auth
def customer_route(customer_id: int):
    warranties = warranty_service.customer_warranties(customer_id, seller_id=_seller_scope())
    return {
        "success": True,
        "data": {
            "customer_id": customer_id,
            "warranties": warranties,
            "summary": {
                "active_count": len(warranties["active"]),
                "expired_count": len(warranties["expired"]),
            },
        },
    }


@warranties_bp.post("/<int:sale_id>/extend")
@require_auth
@require_admin
def extend_route(sale_id: int):
    payload = request.get_json(silent=True) or {}
    if "additional_months" not in payload:
        raise ValidationError("additional_months is required")
    months = coerce_int(payload["additional_months"], "additional_months")

    sale = warranty_service.extend_warranty(sale_id, months)
    return {
        "success": True,
        "message": "Warranty extended",
        "data": {
            "sale_id": sale.id,
            "warranty_period_months": sale.warranty_period_months,
            "warranty_end": sale.warranty_end.isoformat(),
            "warranty_status": warranty_service.status_for(sale.warranty_end),
        },
    }
