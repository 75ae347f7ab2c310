# backend/salesdesk/routes/sales.py
"""
Sale routes.

Sellers see only their own sales; admins see everyone's. Images arrive as
multipart form data: `images` (1-3 files) with a parallel `image_types`
list, one type per file in the same order.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth
from ..errors import ValidationError
from ..query_builder import parse_pagination
from ..services import sales_service
from ..services.image_service import UploadedImage
from ..validation import validate_sale_payload
from ._params import arg_cents, arg_datetime, arg_int, paged

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _viewer() -> dict:
    return {"viewer_id": g.current_user.id, "viewer_role": g.current_user.role}


def _visible_or_404(sale_id: int):
    return sales_service.get_sale(sale_id, **_viewer())


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    Query params: product_id, customer_id, seller_id (admins only), start_date,
    end_date, min_total, max_total, sort_by, sort_order, page, limit
    """
    args = request.args
    items, meta = sales_service.list_sales(
        pagination=parse_pagination(args),
        product_id=arg_int(args, "product_id"),
        customer_id=arg_int(args, "customer_id"),
        seller_id=arg_int(args, "seller_id"),
        start_date=arg_datetime(args, "start_date"),
        end_date=arg_datetime(args, "end_date"),
        min_total_cents=arg_cents(args, "min_total"),
        max_total_cents=arg_cents(args, "max_total"),
        sort_by=args.get("sort_by"),
        sort_order=args.get("sort_order"),
        **_viewer(),
    )
    return paged([s.to_dict(include_related=True) for s in items], meta, "sales")


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    sale = _visible_or_404(sale_id)
    return {"success": True, "data": {"sale": sale.to_dict(include_related=True)}}


@sales_bp.post("")
@require_auth
def create_sale_route():
    fields = validate_sale_payload(request.get_json(silent=True))
    sale = sales_service.create_sale(
        seller_id=g.current_user.id,
        seller_role=g.current_user.role,
        **fields,
    )
    return {
        "success": True,
        "message": "Sale created",
        "data": {"sale": sale.to_dict(include_related=True)},
    }, 201


@sales_bp.post("/<int:sale_id>/images")
@require_auth
def upload_images_route(sale_id: int):
    files = request.files.getlist("images")
    types = request.form.getlist("image_types")
    if not files:
        raise ValidationError("No images provided")
    if len(types) != len(files):
        raise ValidationError(
            "Number of images must match number of image types",
            {"images": len(files), "image_types": len(types)},
        )

    _visible_or_404(sale_id)
    uploads = [
        UploadedImage(image_type=t.strip(), data=f.read(), filename=f.filename or "")
        for f, t in zip(files, types)
    ]
    images = sales_service.attach_images(sale_id, uploads)
    return {
        "success": True,
        "message": f"{len(images)} image(s) uploaded",
        "data": {"images": [i.to_dict() for i in images]},
    }, 201


@sales_bp.post("/<int:sale_id>/extract-serial")
@require_auth
def extract_serial_route(sale_id: int):
    image = request.files.get("image")
    if image is None:
        raise ValidationError("Image file required")

    _visible_or_404(sale_id)
    result = sales_service.extract_serial(sale_id, image.read(), image.filename or "")
    return {"success": True, "message": "Serial number extracted", "data": result}

