# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales and payment-status API routes"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service
from ..errors import InventoryError, error_response
from ..time_utils import parse_date_range
from ..decorators import require_actor


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _date_range():
    try:
        start_dt, end_dt = parse_date_range(request.args.get("start_date"), request.args.get("end_date"))
    except ValueError:
        return None, None, (jsonify({"error": "start_date and end_date must be ISO-8601 datetimes"}), 400)
    return start_dt, end_dt, None


@sales_bp.get("")
def list_sales_route():
    """Query params: payment_method, payment_status, q, start_date, end_date."""
    start_dt, end_dt, error = _date_range()
    if error:
        return error

    try:
        sales = sales_service.list_sales(
            payment_method=request.args.get("payment_method") or None,
            payment_status=request.args.get("payment_status") or None,
            search=request.args.get("q"),
            start=start_dt,
            end=end_dt,
        )
    except InventoryError as e:
        return error_response(e)
    return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200


@sales_bp.get("/summary")
def sales_summary_route():
    start_dt, end_dt, error = _date_range()
    if error:
        return error

    try:
        summary = sales_service.sales_summary(start=start_dt, end=end_dt)
    except InventoryError as e:
        return error_response(e)
    return jsonify(summary), 200


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
    except InventoryError as e:
        return error_response(e)
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.post("")
@require_actor
def record_sale_route():
    """
    Record a direct sale.

    Body: {"product_id": int, "quantity": int, "payment_method": str,
           "notes": str?, "payment_status": str?, "paid_amount_cents": int?}
    """
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        return jsonify({"error": "product_id required"}), 400

    try:
        sale = sales_service.record_sale(
            product_id=product_id,
            quantity=data.get("quantity"),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
            actor_id=g.actor_id,
            actor_name=g.actor_name,
            payment_status=data.get("payment_status") or "paid",
            paid_amount_cents=data.get("paid_amount_cents"),
        )
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict()}), 201


@sales_bp.post("/<int:sale_id>/payment-status")
@require_actor
def set_payment_status_route(sale_id: int):
    """Body: {"status": "paid" | "partial" | "unpaid", "partial_amount_cents": int?}"""
    data = request.get_json(silent=True) or {}

    try:
        sale = sales_service.set_payment_status(
            sale_id=sale_id,
            status=data.get("status"),
            partial_amount_cents=data.get("partial_amount_cents"),
            actor_id=g.actor_id,
        )
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.delete("/<int:sale_id>")
@require_actor
def delete_sale_route(sale_id: int):
    """?restore_stock=true puts the sold units back (default false)."""
    restore_stock = request.args.get("restore_stock", "false").strip().lower() in ("1", "true", "yes")

    try:
        sale = sales_service.delete_sale(
            sale_id=sale_id,
            restore_stock=restore_stock,
            actor_id=g.actor_id,
            actor_name=g.actor_name,
        )
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict()}), 200
