from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

RESERVATION_HELD = "held"
RESERVATION_CONVERTED = "converted"
RESERVATION_RELEASED = "released"

TERMINAL_RESERVATION_STATES = (RESERVATION_CONVERTED, RESERVATION_RELEASED)


class Reservation(db.Model):
    """
    Stock held against a pending customer order.

    Lifecycle: held -> converted | released. Both are terminal.
    The held quantity is already deducted from Product.quantity; converting
    keeps it deducted, releasing puts it back.
    """
    __tablename__ = "reservations"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_reservations_quantity_positive"),
        db.Index("ix_reservations_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    customer_name = db.Column(db.String(255), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=RESERVATION_HELD, index=True)

    # The inventory_adjustment entry that established the hold
    hold_entry_id = db.Column(db.Integer, db.ForeignKey("ledger_entries.id"), nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)

    actor_id = db.Column(db.String(128), nullable=False)
    actor_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    released_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("reservations", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RESERVATION_STATES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "amount_cents": self.amount_cents,
            "customer_name": self.customer_name,
            "status": self.status,
            "hold_entry_id": self.hold_entry_id,
            "sale_id": self.sale_id,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "created_at": to_utc_z(self.created_at),
            "converted_at": to_utc_z(self.converted_at) if self.converted_at else None,
            "released_at": to_utc_z(self.released_at) if self.released_at else None,
            "version_id": self.version_id,
        }
