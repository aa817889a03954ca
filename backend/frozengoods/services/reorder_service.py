# Overview: Service-layer operations for the reorder planner; capped draft, snapshots and undo.

"""
Reorder planning

Invariants:
- Draft total (sum of line subtotals) never exceeds the active cap after a
  successful add/edit/merge. Checks use the total EXCLUDING the line being
  changed, so editing a line down always succeeds.
- A cap of 0 means drafting is closed; save_snapshot() resets it to 0 so every
  cycle starts with an explicit set_cap().
- Snapshot headers never change. merge_items_from_snapshot(target="snapshot")
  is the only way a snapshot grows, and it is bounded by cap_at_save_time_cents.
- The undo buffer holds one deleted snapshot; deleting another overwrites it.

All mutations take the "reorder" named lock plus the settings row lock.
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..extensions import db
from ..errors import (
    BudgetExceededError,
    CapNotSetError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..models import ReorderDraftItem, ReorderSettings, ReorderSnapshot, ReorderSnapshotItem
from ..models.reorder import REORDER_SETTINGS_ID
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import (
    MAX_PRICE_CENTS,
    coerce_int,
    require_non_negative_int,
    require_positive_int,
    require_text,
)
from .concurrency import REORDER_LOCK_KEY, lock_for_update, run_atomic
from .products_service import get_product_for_update

logger = logging.getLogger(__name__)

MERGE_TARGET_DRAFT = "draft"
MERGE_TARGET_SNAPSHOT = "snapshot"
MERGE_TARGETS = (MERGE_TARGET_DRAFT, MERGE_TARGET_SNAPSHOT)


# =============================================================================
# HELPERS
# =============================================================================

def _settings_for_update() -> ReorderSettings:
    settings = lock_for_update(
        db.session.query(ReorderSettings).filter_by(id=REORDER_SETTINGS_ID)
    ).first()
    if settings is None:
        settings = ReorderSettings(id=REORDER_SETTINGS_ID, max_total_amount_cents=0)
        db.session.add(settings)
        db.session.flush()
    return settings


def _draft_total() -> int:
    total = db.session.query(func.coalesce(func.sum(ReorderDraftItem.subtotal_cents), 0)).scalar()
    return int(total or 0)


def _check_budget(current_total: int, added: int, cap: int) -> None:
    attempted = current_total + added
    if attempted > cap:
        logger.warning("Reorder change rejected: total=%s cap=%s", attempted, cap)
        raise BudgetExceededError(
            overage_cents=attempted - cap,
            cap_cents=cap,
            attempted_total_cents=attempted,
        )


def _distributor_price(product) -> int:
    if product.distributor_price_cents is None:
        raise ValidationError(
            f"Product {product.id} has no distributor price",
            details={"product_id": product.id},
        )
    return product.distributor_price_cents


def _clean_notes(notes) -> str | None:
    if notes is None:
        return None
    return str(notes).strip() or None


def _locked_draft_item(line_id: int) -> ReorderDraftItem:
    item = lock_for_update(db.session.query(ReorderDraftItem).filter_by(id=line_id)).first()
    if item is None:
        raise NotFoundError(f"Reorder item {line_id} not found")
    return item


def _snapshot_payload(snapshot: ReorderSnapshot) -> dict:
    """Full-fidelity copy of a snapshot for the undo buffer (JSON-safe)."""
    return {
        "id": snapshot.id,
        "name": snapshot.name,
        "total_amount_cents": snapshot.total_amount_cents,
        "cap_at_save_time_cents": snapshot.cap_at_save_time_cents,
        "created_by_id": snapshot.created_by_id,
        "created_at": snapshot.created_at.isoformat() if snapshot.created_at else None,
        "items": [
            {
                "id": item.id,
                "product_id": item.product_id,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_price_cents": item.unit_price_cents,
                "subtotal_cents": item.subtotal_cents,
                "notes": item.notes,
            }
            for item in snapshot.items
        ],
    }


# =============================================================================
# SETTINGS / DRAFT READS
# =============================================================================

def get_settings() -> ReorderSettings:
    settings = db.session.get(ReorderSettings, REORDER_SETTINGS_ID)
    if settings is None:
        settings = run_atomic(_settings_for_update, lock_key=REORDER_LOCK_KEY)
    return settings


def get_draft() -> dict:
    settings = get_settings()
    items = db.session.query(ReorderDraftItem).order_by(ReorderDraftItem.id.asc()).all()
    total = sum(item.subtotal_cents for item in items)
    cap = settings.max_total_amount_cents
    return {
        "items": [item.to_dict() for item in items],
        "item_count": len(items),
        "total_amount_cents": total,
        "max_total_amount_cents": cap,
        "remaining_cents": max(cap - total, 0),
        "has_undo": settings.undo_snapshot_json is not None,
    }


# =============================================================================
# CAP + DRAFT MUTATIONS
# =============================================================================

def set_cap(*, amount_cents, actor_id: str | None = None) -> ReorderSettings:
    """Replace the cycle's spending cap. Refused if the draft already exceeds it."""
    amount = require_non_negative_int(amount_cents, "amount_cents")
    if amount > MAX_PRICE_CENTS:
        raise ValidationError(f"amount_cents cannot exceed {MAX_PRICE_CENTS}")

    def _op():
        settings = _settings_for_update()
        total = _draft_total()
        if total > amount:
            raise BudgetExceededError(
                overage_cents=total - amount,
                cap_cents=amount,
                attempted_total_cents=total,
            )
        settings.max_total_amount_cents = amount
        settings.updated_by_id = str(actor_id) if actor_id else None
        db.session.flush()
        return settings

    settings = run_atomic(_op, lock_key=REORDER_LOCK_KEY)
    logger.info("Reorder cap set to %s cents by %s", amount, actor_id)
    return settings


def add_item(*, product_id: int, quantity, notes: str | None = None, actor_id: str | None = None) -> ReorderDraftItem:
    """
    Add a line priced at the product's current distributor price.

    Raises:
        CapNotSetError: cap is 0
        BudgetExceededError: draft total + subtotal > cap (draft unchanged)
    """
    qty = require_positive_int(quantity, "quantity")

    def _op():
        settings = _settings_for_update()
        cap = settings.max_total_amount_cents
        if cap <= 0:
            raise CapNotSetError()

        product = get_product_for_update(product_id)
        unit_price = _distributor_price(product)
        subtotal = qty * unit_price

        _check_budget(_draft_total(), subtotal, cap)

        item = ReorderDraftItem(
            product_id=product.id,
            product_name=product.name,
            quantity=qty,
            unit_price_cents=unit_price,
            subtotal_cents=subtotal,
            notes=_clean_notes(notes),
            created_by_id=str(actor_id) if actor_id else None,
        )
        db.session.add(item)
        db.session.flush()
        return item

    item = run_atomic(_op, lock_key=REORDER_LOCK_KEY)
    logger.info("Reorder item added id=%s product_id=%s subtotal=%s", item.id, item.product_id, item.subtotal_cents)
    return item


def edit_item(*, line_id: int, quantity, notes=None, actor_id: str | None = None) -> ReorderDraftItem:
    """Change a line's quantity (and notes); the line keeps its original unit price."""
    qty = require_positive_int(quantity, "quantity")

    def _op():
        settings = _settings_for_update()
        item = _locked_draft_item(line_id)

        new_subtotal = qty * item.unit_price_cents
        others = _draft_total() - item.subtotal_cents
        _check_budget(others, new_subtotal, settings.max_total_amount_cents)

        item.quantity = qty
        item.subtotal_cents = new_subtotal
        if notes is not None:
            item.notes = _clean_notes(notes)
        db.session.flush()
        return item

    return run_atomic(_op, lock_key=REORDER_LOCK_KEY)


def remove_item(*, line_id: int) -> None:
    def _op():
        _settings_for_update()
        item = _locked_draft_item(line_id)
        db.session.delete(item)
        db.session.flush()

    run_atomic(_op, lock_key=REORDER_LOCK_KEY)


def clear_draft() -> int:
    """Remove every draft line; the cap is kept. Returns the number removed."""
    def _op():
        _settings_for_update()
        return db.session.query(ReorderDraftItem).delete(synchronize_session=False)

    removed = run_atomic(_op, lock_key=REORDER_LOCK_KEY)
    logger.info("Reorder draft cleared (%s items)", removed)
    return removed


# =============================================================================
# SNAPSHOTS
# =============================================================================

def list_snapshots() -> list[ReorderSnapshot]:
    return (
        db.session.query(ReorderSnapshot)
        .order_by(ReorderSnapshot.created_at.desc(), ReorderSnapshot.id.desc())
        .all()
    )


def get_snapshot(snapshot_id: int) -> ReorderSnapshot:
    snapshot = db.session.get(ReorderSnapshot, snapshot_id)
    if snapshot is None:
        raise NotFoundError(f"Reorder snapshot {snapshot_id} not found")
    return snapshot


def save_snapshot(*, name, actor_id: str | None = None) -> ReorderSnapshot:
    """
    Finalize the cycle: copy the draft into a named snapshot, clear the draft
    and reset the cap to 0.
    """
    snapshot_name = require_text(name, "name")

    def _op():
        settings = _settings_for_update()
        items = db.session.query(ReorderDraftItem).order_by(ReorderDraftItem.id.asc()).all()
        if not items:
            raise ValidationError("Cannot save an empty reorder list")

        snapshot = ReorderSnapshot(
            name=snapshot_name,
            total_amount_cents=sum(item.subtotal_cents for item in items),
            cap_at_save_time_cents=settings.max_total_amount_cents,
            created_by_id=str(actor_id) if actor_id else None,
            created_at=utcnow(),
        )
        for item in items:
            snapshot.items.append(
                ReorderSnapshotItem(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    unit_price_cents=item.unit_price_cents,
                    subtotal_cents=item.subtotal_cents,
                    notes=item.notes,
                )
            )
        db.session.add(snapshot)

        for item in items:
            db.session.delete(item)
        settings.max_total_amount_cents = 0
        settings.updated_by_id = str(actor_id) if actor_id else None
        db.session.flush()
        return snapshot

    snapshot = run_atomic(_op, lock_key=REORDER_LOCK_KEY)
    logger.info("Reorder snapshot saved id=%s total=%s", snapshot.id, snapshot.total_amount_cents)
    return snapshot


def merge_items_from_snapshot(
    *,
    snapshot_id: int,
    item_ids,
    target: str = MERGE_TARGET_DRAFT,
    actor_id: str | None = None,
) -> dict:
    """
    Copy selected snapshot items into the active draft or back into the same
    snapshot. All-or-nothing: one bad item or a cap violation copies nothing.

    target="draft":    priced at the current distributor price, bounded by the active cap
    target="snapshot": saved prices, bounded by the snapshot's cap_at_save_time_cents
    """
    if target not in MERGE_TARGETS:
        raise ValidationError(f"target must be one of: {', '.join(MERGE_TARGETS)}")
    if not isinstance(item_ids, (list, tuple)) or not item_ids:
        raise ValidationError("item_ids must be a non-empty list")
    wanted = [coerce_int(item_id, "item_ids") for item_id in item_ids]
    if len(set(wanted)) != len(wanted):
        raise ValidationError("item_ids must not contain duplicates")

    def _op():
        settings = _settings_for_update()
        snapshot = get_snapshot(snapshot_id)

        by_id = {item.id: item for item in snapshot.items}
        missing = [item_id for item_id in wanted if item_id not in by_id]
        if missing:
            raise NotFoundError(
                f"Items not found in snapshot {snapshot_id}",
                details={"snapshot_id": snapshot_id, "missing_item_ids": missing},
            )
        selected = [by_id[item_id] for item_id in wanted]

        if target == MERGE_TARGET_DRAFT:
            cap = settings.max_total_amount_cents
            if cap <= 0:
                raise CapNotSetError()

            lines = []
            for source in selected:
                product = get_product_for_update(source.product_id)
                unit_price = _distributor_price(product)
                lines.append((source, product, unit_price, source.quantity * unit_price))
            _check_budget(_draft_total(), sum(line[3] for line in lines), cap)

            created = []
            for source, product, unit_price, subtotal in lines:
                item = ReorderDraftItem(
                    product_id=product.id,
                    product_name=product.name,
                    quantity=source.quantity,
                    unit_price_cents=unit_price,
                    subtotal_cents=subtotal,
                    notes=source.notes,
                    created_by_id=str(actor_id) if actor_id else None,
                )
                db.session.add(item)
                created.append(item)
            db.session.flush()
            return {
                "target": target,
                "items": [item.to_dict() for item in created],
                "total_amount_cents": _draft_total(),
            }

        added = sum(source.subtotal_cents for source in selected)
        _check_budget(snapshot.total_amount_cents, added, snapshot.cap_at_save_time_cents)

        created = []
        for source in selected:
            item = ReorderSnapshotItem(
                product_id=source.product_id,
                product_name=source.product_name,
                quantity=source.quantity,
                unit_price_cents=source.unit_price_cents,
                subtotal_cents=source.subtotal_cents,
                notes=source.notes,
            )
            snapshot.items.append(item)
            created.append(item)
        snapshot.total_amount_cents += added
        db.session.flush()
        return {
            "target": target,
            "items": [item.to_dict() for item in created],
            "total_amount_cents": snapshot.total_amount_cents,
        }

    result = run_atomic(_op, lock_key=REORDER_LOCK_KEY)
    logger.info(
        "Merged %s items from snapshot %s into %s",
        len(result["items"]), snapshot_id, target,
    )
    return result


def delete_snapshot(*, snapshot_id: int, actor_id: str | None = None) -> dict:
    """Delete a snapshot, keeping it in the single-slot undo buffer."""
    def _op():
        settings = _settings_for_update()
        snapshot = get_snapshot(snapshot_id)
        payload = _snapshot_payload(snapshot)

        settings.undo_snapshot_json = payload
        settings.updated_by_id = str(actor_id) if actor_id else None
        db.session.delete(snapshot)
        db.session.flush()
        return payload

    payload = run_atomic(_op, lock_key=REORDER_LOCK_KEY)
    logger.info("Reorder snapshot deleted id=%s (undo available)", snapshot_id)
    return payload


def restore_snapshot(*, actor_id: str | None = None) -> ReorderSnapshot:
    """
    Recreate the last deleted snapshot exactly (same ids, items, totals, cap,
    created_at) and empty the undo buffer.
    """
    def _op():
        settings = _settings_for_update()
        payload = settings.undo_snapshot_json
        if not payload:
            raise NotFoundError("No deleted reorder snapshot to restore")

        if db.session.get(ReorderSnapshot, payload["id"]) is not None:
            raise InvalidStateError(
                f"Reorder snapshot {payload['id']} already exists",
                details={"snapshot_id": payload["id"]},
            )

        snapshot = ReorderSnapshot(
            id=payload["id"],
            name=payload["name"],
            total_amount_cents=payload["total_amount_cents"],
            cap_at_save_time_cents=payload["cap_at_save_time_cents"],
            created_by_id=payload.get("created_by_id"),
            created_at=parse_iso_datetime(payload.get("created_at")) or utcnow(),
        )
        for data in payload.get("items", []):
            snapshot.items.append(
                ReorderSnapshotItem(
                    id=data["id"],
                    product_id=data["product_id"],
                    product_name=data["product_name"],
                    quantity=data["quantity"],
                    unit_price_cents=data["unit_price_cents"],
                    subtotal_cents=data["subtotal_cents"],
                    notes=data.get("notes"),
                )
            )
        db.session.add(snapshot)

        settings.undo_snapshot_json = None
        settings.updated_by_id = str(actor_id) if actor_id else None
        db.session.flush()
        return snapshot

    snapshot = run_atomic(_op, lock_key=REORDER_LOCK_KEY)
    logger.info("Reorder snapshot restored id=%s", snapshot.id)
    return snapshot
