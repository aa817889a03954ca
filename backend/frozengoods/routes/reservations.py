# Overview: Flask API routes for reservation operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import reservation_service
from ..errors import InventoryError, error_response
from ..decorators import require_actor

reservations_bp = Blueprint("reservations", __name__, url_prefix="/api/reservations")


@reservations_bp.get("")
def list_reservations_route():
    """Query params: status (held|converted|released), q (product/customer search)."""
    try:
        reservations = reservation_service.list_reservations(
            status=request.args.get("status") or None,
            search=request.args.get("q"),
        )
    except InventoryError as e:
        return error_response(e)
    return jsonify({"items": [r.to_dict() for r in reservations], "count": len(reservations)}), 200


@reservations_bp.get("/<int:reservation_id>")
def get_reservation_route(reservation_id: int):
    try:
        reservation = reservation_service.get_reservation(reservation_id)
    except InventoryError as e:
        return error_response(e)
    return jsonify({"reservation": reservation.to_dict()}), 200


@reservations_bp.post("")
@require_actor
def hold_route():
    """
    Hold stock for a customer.

    Body: {"product_id": int, "quantity": int, "customer_name": str (optional)}
    """
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        return jsonify({"error": "product_id required"}), 400

    try:
        reservation = reservation_service.hold(
            product_id=product_id,
            quantity=data.get("quantity"),
            customer_name=data.get("customer_name"),
            actor_id=g.actor_id,
            actor_name=g.actor_name,
        )
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to hold reservation")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"reservation": reservation.to_dict()}), 201


@reservations_bp.post("/<int:reservation_id>/convert")
@require_actor
def convert_route(reservation_id: int):
    """Body: {"payment_method": "Cash" | "GCash" | "PayMaya"}"""
    data = request.get_json(silent=True) or {}

    try:
        reservation = reservation_service.convert(
            reservation_id=reservation_id,
            payment_method=data.get("payment_method"),
            actor_id=g.actor_id,
            actor_name=g.actor_name,
        )
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to convert reservation")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"reservation": reservation.to_dict()}), 200


@reservations_bp.post("/<int:reservation_id>/release")
@require_actor
def release_route(reservation_id: int):
    try:
        reservation = reservation_service.release(
            reservation_id=reservation_id,
            actor_id=g.actor_id,
            actor_name=g.actor_name,
        )
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to release reservation")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"reservation": reservation.to_dict()}), 200
