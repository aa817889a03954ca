from __future__ import annotations

from sqlalchemy import event, inspect

from ..extensions import db
from ..errors import LedgerImmutabilityError
from ..time_utils import to_utc_z

ENTRY_SALE = "sale"
ENTRY_PRODUCT_ADDED = "product_added"
ENTRY_PRODUCT_UPDATED = "product_updated"
ENTRY_PRODUCT_DELETED = "product_deleted"
ENTRY_INVENTORY_ADJUSTMENT = "inventory_adjustment"

ENTRY_TYPES = (
    ENTRY_SALE,
    ENTRY_PRODUCT_ADDED,
    ENTRY_PRODUCT_UPDATED,
    ENTRY_PRODUCT_DELETED,
    ENTRY_INVENTORY_ADJUSTMENT,
)


class LedgerEntry(db.Model):
    """
    Append-only record of one inventory-affecting event.

    - quantity_delta > 0: stock added back; < 0: stock removed; 0: documentation only
    - product_name is a snapshot taken when the entry was written
    - compensates_entry_id points at the entry this one reverses (never deleted)
    - reservation_id is a generic pointer, not a FK, so reservations can
      reference their hold entry without a cycle
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_product_occurred", "product_id", "occurred_at"),
        db.Index("ix_ledger_type_occurred", "entry_type", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    entry_type = db.Column(db.String(32), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity_delta = db.Column(db.Integer, nullable=False)

    # Identity comes from the external auth collaborator
    actor_id = db.Column(db.String(128), nullable=False, index=True)
    actor_name = db.Column(db.String(255), nullable=True)

    # Business vs system time
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    notes = db.Column(db.Text, nullable=True)

    reservation_id = db.Column(db.Integer, nullable=True, index=True)
    compensates_entry_id = db.Column(db.Integer, db.ForeignKey("ledger_entries.id"), nullable=True, index=True)

    # Sale-only fields
    unit_price_cents = db.Column(db.Integer, nullable=True)
    amount_cents = db.Column(db.Integer, nullable=True)
    payment_method = db.Column(db.String(32), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<LedgerEntry id={self.id} type={self.entry_type} product_id={self.product_id} delta={self.quantity_delta}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entry_type": self.entry_type,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity_delta": self.quantity_delta,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "notes": self.notes,
            "reservation_id": self.reservation_id,
            "compensates_entry_id": self.compensates_entry_id,
            "unit_price_cents": self.unit_price_cents,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
        }


@event.listens_for(LedgerEntry, "before_update")
def _reject_ledger_update(mapper, connection, target):
    if not any(attr.history.has_changes() for attr in inspect(target).attrs):
        return
    raise LedgerImmutabilityError(
        f"Ledger entry {target.id} is immutable; append a compensating entry instead",
        details={"entry_id": target.id},
    )


@event.listens_for(LedgerEntry, "before_delete")
def _reject_ledger_delete(mapper, connection, target):
    raise LedgerImmutabilityError(
        f"Ledger entry {target.id} cannot be deleted; append a compensating entry instead",
        details={"entry_id": target.id},
    )
