# Overview: Service-layer operations for the inventory ledger; append, query and reconcile.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import LedgerEntry, Product
from ..models.ledger import ENTRY_TYPES, ENTRY_SALE
from ..time_utils import utcnow
"""
Inventory Ledger Invariants (authoritative)

- Append-only: there is no update or delete API, and ORM listeners reject both.
- Every change of Product.quantity is documented by exactly one entry written
  in the same DB transaction (the caller commits).
- Corrections are new entries with compensates_entry_id set to the original.
- For a product created through the engine:
      SUM(quantity_delta) == Product.quantity
  because product_added carries the initial quantity.
- Reads are newest first: occurred_at desc, id desc. Date filters are inclusive.
"""

MAX_QUERY_LIMIT = 500


def append_entry(
    *,
    entry_type: str,
    product: Product,
    quantity_delta: int,
    actor_id: str,
    actor_name: str | None = None,
    notes: str | None = None,
    reservation_id: int | None = None,
    compensates_entry_id: int | None = None,
    unit_price_cents: int | None = None,
    amount_cents: int | None = None,
    payment_method: str | None = None,
    occurred_at: datetime | None = None,
) -> LedgerEntry:
    """
    Append one ledger entry and flush it so its id is assigned.

    - No domain logic here beyond shape validation.
    - Never commits: the caller's transaction owns the entry.
    """
    if entry_type not in ENTRY_TYPES:
        raise ValidationError(f"Unknown ledger entry type: {entry_type}")
    if product is None or product.id is None:
        raise ValidationError("Ledger entry requires a persisted product")
    if not product.name or not product.name.strip():
        raise ValidationError("Ledger entry requires a product name")
    if not actor_id or not str(actor_id).strip():
        raise ValidationError("Ledger entry requires an actor")
    if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int):
        raise ValidationError("quantity_delta must be an integer")
    if entry_type == ENTRY_SALE and quantity_delta >= 0:
        raise ValidationError("Sale entries must remove stock")

    entry = LedgerEntry(
        entry_type=entry_type,
        product_id=product.id,
        product_name=product.name,
        quantity_delta=quantity_delta,
        actor_id=str(actor_id),
        actor_name=actor_name,
        notes=notes,
        reservation_id=reservation_id,
        compensates_entry_id=compensates_entry_id,
        unit_price_cents=unit_price_cents,
        amount_cents=amount_cents,
        payment_method=payment_method,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def get_entry(entry_id: int) -> LedgerEntry:
    entry = db.session.get(LedgerEntry, entry_id)
    if entry is None:
        raise NotFoundError(f"Ledger entry {entry_id} not found")
    return entry


def query_entries(
    *,
    product_id: int | None = None,
    entry_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    search: str | None = None,
    limit: int | None = None,
) -> list[LedgerEntry]:
    """Filtered ledger read, newest first."""
    if entry_type is not None and entry_type not in ENTRY_TYPES:
        raise ValidationError(f"Unknown ledger entry type: {entry_type}")
    if start is not None and end is not None and start > end:
        raise ValidationError("start must not be after end")

    q = db.session.query(LedgerEntry)

    if product_id is not None:
        q = q.filter(LedgerEntry.product_id == product_id)
    if entry_type is not None:
        q = q.filter(LedgerEntry.entry_type == entry_type)
    if start is not None:
        q = q.filter(LedgerEntry.occurred_at >= start)
    if end is not None:
        q = q.filter(LedgerEntry.occurred_at <= end)

    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(
            or_(
                LedgerEntry.product_name.ilike(pattern),
                LedgerEntry.notes.ilike(pattern),
                LedgerEntry.actor_name.ilike(pattern),
            )
        )

    q = q.order_by(LedgerEntry.occurred_at.desc(), LedgerEntry.id.desc())

    if limit is not None:
        q = q.limit(max(1, min(limit, MAX_QUERY_LIMIT)))

    return q.all()


def ledger_total(product_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(LedgerEntry.quantity_delta), 0))
        .filter(LedgerEntry.product_id == product_id)
        .scalar()
    )
    return int(total or 0)


def reconcile_product(product_id: int) -> dict:
    """
    Compare the stored quantity with the sum of its ledger deltas.

    A mismatch means some code path changed stock without documenting it.
    """
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")

    total = ledger_total(product_id)
    return {
        "product_id": product.id,
        "product_name": product.name,
        "quantity": product.quantity,
        "ledger_total": total,
        "difference": product.quantity - total,
        "consistent": product.quantity == total,
    }


def reconcile_all() -> list[dict]:
    product_ids = [row.id for row in db.session.query(Product.id).order_by(Product.id.asc())]
    return [reconcile_product(pid) for pid in product_ids]
