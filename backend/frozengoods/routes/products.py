# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product management routes.

Reads are open; writes require X-Actor-Id (@require_actor) so every ledger
entry names who made the change.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..services import products_service
from ..errors import InventoryError, error_response
from ..decorators import require_actor

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    """
    List active products with optional pagination.

    Query params:
    - category: str (optional) - case-insensitive exact match
    - q: str (optional) - name search
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    return products_service.list_products(
        category=request.args.get("category"),
        search=request.args.get("q"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.get("/categories")
def list_categories_route():
    return {"items": products_service.list_categories()}


@products_bp.get("/low-stock")
def low_stock_route():
    """Reorder candidates; ?threshold= overrides LOW_STOCK_THRESHOLD."""
    threshold = request.args.get("threshold", type=int)
    products = products_service.list_low_stock(threshold)
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except InventoryError as e:
        return error_response(e)
    return product.to_dict()


@products_bp.post("")
@require_actor
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        created = products_service.create_product(
            payload=payload,
            actor_id=g.actor_id,
            actor_name=g.actor_name,
        )
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    return created.to_dict(), 201


@products_bp.put("/<int:product_id>")
@require_actor
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        updated = products_service.update_product(
            product_id=product_id,
            payload=payload,
            actor_id=g.actor_id,
            actor_name=g.actor_name,
        )
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500

    return updated.to_dict(), 200


@products_bp.delete("/<int:product_id>")
@require_actor
def delete_product_route(product_id: int):
    """Soft delete. 409 while the product has held reservations."""
    try:
        products_service.delete_product(
            product_id=product_id,
            actor_id=g.actor_id,
            actor_name=g.actor_name,
        )
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500

    return {"ok": True}, 200


@products_bp.post("/<int:product_id>/adjust")
@require_actor
def adjust_inventory_route(product_id: int):
    """
    Manual stock correction.

    Body: {"quantity_delta": int (non-zero), "notes": str (optional)}
    """
    data = request.get_json(silent=True) or {}

    try:
        result = products_service.adjust_inventory(
            product_id=product_id,
            quantity_delta=data.get("quantity_delta"),
            notes=data.get("notes"),
            actor_id=g.actor_id,
            actor_name=g.actor_name,
        )
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return jsonify({"error": "Internal server error"}), 500

    return result, 201
