# backend/frozengoods/services/products_service.py
"""
Product Store

Owns Product rows and is the only module that changes Product.quantity.

- create/update/delete write product_added / product_updated / product_deleted
  ledger entries; cosmetic-only updates (description, image) write none
- adjust_quantity() is the single stock primitive: callers run it inside
  run_atomic(..., lock_key=product_lock_key(id)) and append the matching
  ledger entry before the transaction commits
- deletes are soft (is_active=False) so ledger/sale/reservation ids stay valid
"""
from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..errors import InsufficientStockError, InvalidStateError, NotFoundError, ValidationError
from ..models import Product, Reservation
from ..models.ledger import (
    ENTRY_INVENTORY_ADJUSTMENT,
    ENTRY_PRODUCT_ADDED,
    ENTRY_PRODUCT_DELETED,
    ENTRY_PRODUCT_UPDATED,
)
from ..models.reservations import RESERVATION_HELD
from ..validation import (
    ModelValidationPolicy,
    coerce_int,
    enforce_rules_product,
    validate_payload,
    MAX_QUANTITY,
)
from .concurrency import lock_for_update, product_lock_key, run_atomic
from .ledger_service import append_entry

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = frozenset({
    "name",
    "category",
    "description",
    "price_cents",
    "distributor_price_cents",
    "quantity",
    "image_url",
})

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_MUTABLE_FIELDS,
    required_on_create=frozenset({"name", "category"}),
)

# Field -> label used in product_updated notes. Fields not listed are cosmetic.
TRACKED_CHANGES = {
    "name": "Name",
    "category": "Category",
    "price_cents": "Price",
    "distributor_price_cents": "Distributor price",
    "quantity": "Quantity",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def marked_up_price_cents(distributor_price_cents: int, markup_bps: int | None = None) -> int:
    """Selling price derived from the distributor price (half-up to the cent)."""
    if markup_bps is None:
        markup_bps = current_app.config.get("PRICE_MARKUP_BPS", 2000)
    return (distributor_price_cents * (10_000 + markup_bps) + 5_000) // 10_000


def describe_changes(p: Product, patch: dict) -> list[str]:
    changes = []
    for field, label in TRACKED_CHANGES.items():
        if field not in patch:
            continue
        old, new = getattr(p, field), patch[field]
        if old == new:
            continue
        if isinstance(new, str) or isinstance(old, str):
            changes.append(f'{label} changed from "{old}" to "{new}"')
        else:
            changes.append(f"{label} changed from {old} to {new}")
    return changes


# =============================================================================
# READS
# =============================================================================

def get_product(product_id: int, *, include_inactive: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or (not product.is_active and not include_inactive):
        raise NotFoundError(f"Product {product_id} not found")
    return product


def get_product_for_update(product_id: int, *, include_inactive: bool = False) -> Product:
    """Locked, freshly-read product row. Use only inside run_atomic()."""
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None or (not product.is_active and not include_inactive):
        raise NotFoundError(f"Product {product_id} not found")
    return product


def list_products(
    *,
    category: str | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Active products ordered by name, with optional pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product).filter(Product.is_active.is_(True))

    if category:
        base_query = base_query.filter(db.func.lower(Product.category) == category.strip().lower())
    if search:
        base_query = base_query.filter(Product.name.ilike(f"%{search.strip()}%"))

    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def list_categories() -> list[str]:
    """Distinct categories, case-insensitively de-duplicated, first spelling wins."""
    seen = {}
    rows = (
        db.session.query(Product.category)
        .filter(Product.is_active.is_(True))
        .order_by(Product.id.asc())
        .all()
    )
    for (category,) in rows:
        key = category.strip().lower()
        if key and key not in seen:
            seen[key] = category.strip()
    return list(seen.values())


def list_low_stock(threshold: int | None = None) -> list[Product]:
    """Reorder candidates: active products at or below threshold, lowest stock first."""
    if threshold is None:
        threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 5)
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.quantity <= threshold)
        .order_by(Product.quantity.asc(), Product.name.asc())
        .all()
    )


# =============================================================================
# STOCK PRIMITIVE
# =============================================================================

def adjust_quantity(product_id: int, delta: int, *, include_inactive: bool = False) -> Product:
    """
    Apply a signed stock change to a locked product row.

    Must run inside run_atomic() holding the product lock; the caller appends
    the ledger entry documenting the change before commit. include_inactive
    lets stock flow back onto a soft-deleted product (sale deletion).

    Raises:
        NotFoundError: unknown product, or deleted unless include_inactive
        InsufficientStockError: current + delta < 0 (nothing is changed)
    """
    product = get_product_for_update(product_id, include_inactive=include_inactive)
    new_quantity = product.quantity + delta
    if new_quantity < 0:
        logger.warning(
            "Rejected stock change product_id=%s delta=%s on_hand=%s",
            product_id, delta, product.quantity,
        )
        raise InsufficientStockError(product_id, requested=-delta, available=product.quantity)
    if new_quantity > MAX_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}")
    product.quantity = new_quantity
    db.session.flush()
    return product


# =============================================================================
# MUTATIONS
# =============================================================================

def create_product(*, payload: dict, actor_id: str, actor_name: str | None = None) -> Product:
    """
    Create a product and record it with a product_added entry carrying the
    initial quantity.

    When price_cents is omitted but distributor_price_cents is given, the
    selling price is the distributor price plus PRICE_MARKUP_BPS.
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    if patch.get("price_cents") is None:
        if patch.get("distributor_price_cents") is None:
            raise ValidationError("price_cents is required")
        patch["price_cents"] = marked_up_price_cents(patch["distributor_price_cents"])
        enforce_rules_product(patch)
    patch.setdefault("quantity", 0)

    def _op():
        p = Product(is_active=True)
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.flush()  # ensure p.id exists before ledger append

        append_entry(
            entry_type=ENTRY_PRODUCT_ADDED,
            product=p,
            quantity_delta=p.quantity,
            actor_id=actor_id,
            actor_name=actor_name,
            notes=f"Added new product: {p.name}",
        )
        return p

    product = run_atomic(_op)
    logger.info("Product created id=%s name=%r quantity=%s", product.id, product.name, product.quantity)
    return product


def update_product(*, product_id: int, payload: dict, actor_id: str, actor_name: str | None = None) -> Product:
    """
    Patch a product. A product_updated entry is written only when a tracked
    field actually changed; its quantity_delta is new minus old quantity.
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op():
        p = get_product_for_update(product_id)
        changes = describe_changes(p, patch)
        old_quantity = p.quantity

        apply_product_patch(p, patch)
        db.session.flush()

        if changes:
            append_entry(
                entry_type=ENTRY_PRODUCT_UPDATED,
                product=p,
                quantity_delta=p.quantity - old_quantity,
                actor_id=actor_id,
                actor_name=actor_name,
                notes="; ".join(changes),
            )
        return p

    return run_atomic(_op, lock_key=product_lock_key(product_id))


def delete_product(*, product_id: int, actor_id: str, actor_name: str | None = None) -> Product:
    """
    Soft-delete a product. Stock is not touched (quantity_delta=0).

    Raises:
        InvalidStateError: the product still has held reservations
    """
    def _op():
        p = get_product_for_update(product_id)

        held = (
            db.session.query(Reservation)
            .filter(Reservation.product_id == p.id, Reservation.status == RESERVATION_HELD)
            .count()
        )
        if held:
            raise InvalidStateError(
                "Cannot delete a product with held reservations",
                details={"product_id": p.id, "held_reservations": held},
            )

        p.is_active = False
        db.session.flush()

        append_entry(
            entry_type=ENTRY_PRODUCT_DELETED,
            product=p,
            quantity_delta=0,
            actor_id=actor_id,
            actor_name=actor_name,
            notes=f"Deleted product: {p.name}",
        )
        return p

    product = run_atomic(_op, lock_key=product_lock_key(product_id))
    logger.info("Product soft-deleted id=%s", product.id)
    return product


def adjust_inventory(
    *,
    product_id: int,
    quantity_delta,
    notes: str | None = None,
    actor_id: str,
    actor_name: str | None = None,
) -> dict:
    """Manual stock correction documented by an inventory_adjustment entry."""
    delta = coerce_int(quantity_delta, "quantity_delta") if quantity_delta is not None else None
    if not delta:
        raise ValidationError("quantity_delta must be non-zero")

    def _op():
        p = adjust_quantity(product_id, delta)
        entry = append_entry(
            entry_type=ENTRY_INVENTORY_ADJUSTMENT,
            product=p,
            quantity_delta=delta,
            actor_id=actor_id,
            actor_name=actor_name,
            notes=(notes or "").strip() or f"Manual adjustment of {delta:+d} units",
        )
        return {"product": p.to_dict(), "entry": entry.to_dict()}

    result = run_atomic(_op, lock_key=product_lock_key(product_id))
    logger.info("Inventory adjusted product_id=%s delta=%s", product_id, delta)
    return result
