from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_UNPAID = "unpaid"

PAYMENT_STATUSES = (PAYMENT_STATUS_PAID, PAYMENT_STATUS_PARTIAL, PAYMENT_STATUS_UNPAID)

PAYMENT_METHOD_CASH = "Cash"
PAYMENT_METHOD_GCASH = "GCash"
PAYMENT_METHOD_PAYMAYA = "PayMaya"

PAYMENT_METHODS = (PAYMENT_METHOD_CASH, PAYMENT_METHOD_GCASH, PAYMENT_METHOD_PAYMAYA)


class Sale(db.Model):
    """
    Payment tracking for one completed sale.

    WHY a separate row: the sale LedgerEntry is immutable, but payment status
    moves unpaid -> partial -> paid after the fact. Stock and amount live on the
    ledger entry; this row only carries what may change.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "payment_status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    ledger_entry_id = db.Column(db.Integer, db.ForeignKey("ledger_entries.id"), nullable=False, unique=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(32), nullable=False, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PAID, index=True)

    # Baseline captured on the first payment-status transition only
    original_amount_cents = db.Column(db.Integer, nullable=True)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    reservation_id = db.Column(db.Integer, nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    actor_id = db.Column(db.String(128), nullable=False)
    actor_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    # Soft delete; the ledger entry stays
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by_id = db.Column(db.String(128), nullable=True)
    restored_stock = db.Column(db.Boolean, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    ledger_entry = db.relationship("LedgerEntry", foreign_keys=[ledger_entry_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def baseline_amount_cents(self) -> int:
        if self.original_amount_cents is not None:
            return self.original_amount_cents
        return self.amount_cents

    @property
    def balance_due_cents(self) -> int:
        return self.baseline_amount_cents - self.paid_amount_cents

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ledger_entry_id": self.ledger_entry_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "original_amount_cents": self.original_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "balance_due_cents": self.balance_due_cents,
            "reservation_id": self.reservation_id,
            "notes": self.notes,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "deleted_by_id": self.deleted_by_id,
            "restored_stock": self.restored_stock,
            "version_id": self.version_id,
        }
