# backend/salesdesk/routes/stats.py
"""Dashboard statistics and reports."""
from flask import Blueprint, current_app, g, request

from ..decorators import require_admin, require_auth
from ..services import reporting_service
from ._params import arg_bool, arg_datetime, arg_int

stats_bp = Blueprint("stats", __name__, url_prefix="/api/stats")
reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@stats_bp.get("/dashboard")
@require_auth
def dashboard_route():
    data = reporting_service.dashboard(
        viewer_id=g.current_user.id,
        viewer_role=g.current_user.role,
        low_stock_threshold=current_app.config["LOW_STOCK_THRESHOLD"],
    )
    return {"success": True, "data": data}


@stats_bp.get("/sales")
@require_auth
def sales_stats_route():
    period = (request.args.get("period") or "month").lower()
    data = reporting_service.sales_statistics(
        period=period,
        viewer_id=g.current_user.id,
        viewer_role=g.current_user.role,
    )
    return {"success": True, "data": data}


@reports_bp.get("/inventory")
@require_auth
@require_admin
def inventory_report_route():
    data = reporting_service.inventory_report(
        include_inactive=bool(arg_bool(request.args, "include_inactive", default=False)),
        low_stock_threshold=current_app.config["LOW_STOCK_THRESHOLD"],
    )
    return {"success": True, "data": data}


@reports_bp.get("/sales")
@require_auth
def sales_report_route():
    """Sellers always get their own sales regardless of seller_id."""
    args = request.args
    data = reporting_service.sales_report(
        viewer_id=g.current_user.id,
        viewer_role=g.current_user.role,
        start=arg_datetime(args, "start_date"),
        end=arg_datetime(args, "end_date"),
        seller_id=arg_int(args, "seller_id"),
        product_id=arg_int(args, "product_id"),
        customer_id=arg_int(args, "customer_id"),
    )
    return {"success": True, "data": data}
