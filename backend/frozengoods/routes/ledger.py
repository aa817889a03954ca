# Overview: Flask API routes for ledger operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..time_utils import parse_date_range
from ..services import ledger_service
from ..errors import InventoryError, error_response

"""
Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- start_date/end_date filtering is inclusive on occurred_at.
"""

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("")
def list_ledger_entries_route():
    """
    Query params:
    - product_id: int
    - type: sale | product_added | product_updated | product_deleted | inventory_adjustment
    - start_date, end_date: ISO-8601; a bare end date covers the whole day
    - q: search over product name, notes and actor name
    - limit: default 100, max 500
    """
    limit = request.args.get("limit", default=100, type=int)

    try:
        start_dt, end_dt = parse_date_range(request.args.get("start_date"), request.args.get("end_date"))
    except ValueError:
        return jsonify({"error": "start_date and end_date must be ISO-8601 datetimes"}), 400

    try:
        entries = ledger_service.query_entries(
            product_id=request.args.get("product_id", type=int),
            entry_type=request.args.get("type") or None,
            start=start_dt,
            end=end_dt,
            search=request.args.get("q"),
            limit=limit,
        )
    except InventoryError as e:
        return error_response(e)

    return jsonify({
        "items": [entry.to_dict() for entry in entries],
        "count": len(entries),
        "limit": max(1, min(limit, ledger_service.MAX_QUERY_LIMIT)),
    }), 200


@ledger_bp.get("/<int:entry_id>")
def get_ledger_entry_route(entry_id: int):
    try:
        entry = ledger_service.get_entry(entry_id)
    except InventoryError as e:
        return error_response(e)
    return jsonify({"entry": entry.to_dict()}), 200


@ledger_bp.get("/reconcile")
def reconcile_all_route():
    results = ledger_service.reconcile_all()
    return jsonify({
        "items": results,
        "consistent": all(r["consistent"] for r in results),
    }), 200


@ledger_bp.get("/reconcile/<int:product_id>")
def reconcile_product_route(product_id: int):
    try:
        result = ledger_service.reconcile_product(product_id)
    except InventoryError as e:
        return error_response(e)
    return jsonify(result), 200
