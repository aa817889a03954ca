# Overview: Flask API routes for the reorder planner; parses input and returns JSON responses.

"""
Reorder planner routes.

Draft:     GET /api/reorder, PUT /cap, POST /items, PUT|DELETE /items/<id>, DELETE /items
Snapshots: GET|POST /snapshots, GET|DELETE /snapshots/<id>,
           POST /snapshots/<id>/merge, POST /snapshots/restore
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import reorder_service
from ..errors import InventoryError, error_response
from ..decorators import require_actor

reorder_bp = Blueprint("reorder", __name__, url_prefix="/api/reorder")


def _run(label: str, func, status: int = 200):
    try:
        result = func()
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to %s", label)
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(result), status


@reorder_bp.get("")
def get_draft_route():
    return jsonify(reorder_service.get_draft()), 200


@reorder_bp.put("/cap")
@require_actor
def set_cap_route():
    """Body: {"max_total_amount_cents": int >= 0}"""
    data = request.get_json(silent=True) or {}
    return _run(
        "set reorder cap",
        lambda: reorder_service.set_cap(
            amount_cents=data.get("max_total_amount_cents"),
            actor_id=g.actor_id,
        ).to_dict(),
    )


@reorder_bp.post("/items")
@require_actor
def add_item_route():
    """Body: {"product_id": int, "quantity": int, "notes": str?}"""
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        return jsonify({"error": "product_id required"}), 400

    return _run(
        "add reorder item",
        lambda: {
            "item": reorder_service.add_item(
                product_id=product_id,
                quantity=data.get("quantity"),
                notes=data.get("notes"),
                actor_id=g.actor_id,
            ).to_dict()
        },
        status=201,
    )


@reorder_bp.put("/items/<int:line_id>")
@require_actor
def edit_item_route(line_id: int):
    """Body: {"quantity": int, "notes": str?}"""
    data = request.get_json(silent=True) or {}
    return _run(
        "edit reorder item",
        lambda: {
            "item": reorder_service.edit_item(
                line_id=line_id,
                quantity=data.get("quantity"),
                notes=data.get("notes"),
                actor_id=g.actor_id,
            ).to_dict()
        },
    )


@reorder_bp.delete("/items/<int:line_id>")
@require_actor
def remove_item_route(line_id: int):
    def _remove():
        reorder_service.remove_item(line_id=line_id)
        return {"ok": True}

    return _run("remove reorder item", _remove)


@reorder_bp.delete("/items")
@require_actor
def clear_draft_route():
    return _run("clear reorder draft", lambda: {"removed": reorder_service.clear_draft()})


@reorder_bp.get("/snapshots")
def list_snapshots_route():
    snapshots = reorder_service.list_snapshots()
    return jsonify({
        "items": [s.to_dict(include_items=False) for s in snapshots],
        "count": len(snapshots),
    }), 200


@reorder_bp.post("/snapshots")
@require_actor
def save_snapshot_route():
    """Body: {"name": str}"""
    data = request.get_json(silent=True) or {}
    return _run(
        "save reorder snapshot",
        lambda: {
            "snapshot": reorder_service.save_snapshot(
                name=data.get("name"),
                actor_id=g.actor_id,
            ).to_dict()
        },
        status=201,
    )


@reorder_bp.post("/snapshots/restore")
@require_actor
def restore_snapshot_route():
    return _run(
        "restore reorder snapshot",
        lambda: {"snapshot": reorder_service.restore_snapshot(actor_id=g.actor_id).to_dict()},
    )


@reorder_bp.get("/snapshots/<int:snapshot_id>")
def get_snapshot_route(snapshot_id: int):
    return _run(
        "load reorder snapshot",
        lambda: {"snapshot": reorder_service.get_snapshot(snapshot_id).to_dict()},
    )


@reorder_bp.delete("/snapshots/<int:snapshot_id>")
@require_actor
def delete_snapshot_route(snapshot_id: int):
    def _delete():
        reorder_service.delete_snapshot(snapshot_id=snapshot_id, actor_id=g.actor_id)
        return {"ok": True, "undo_available": True}

    return _run("delete reorder snapshot", _delete)


@reorder_bp.post("/snapshots/<int:snapshot_id>/merge")
@require_actor
def merge_snapshot_items_route(snapshot_id: int):
    """Body: {"item_ids": [int], "target": "draft" | "snapshot"}"""
    data = request.get_json(silent=True) or {}
    return _run(
        "merge reorder snapshot items",
        lambda: reorder_service.merge_items_from_snapshot(
            snapshot_id=snapshot_id,
            item_ids=data.get("item_ids"),
            target=data.get("target") or "draft",
            actor_id=g.actor_id,
        ),
    )
