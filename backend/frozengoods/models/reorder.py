from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

REORDER_SETTINGS_ID = 1


class ReorderSettings(db.Model):
    """
    Single-row reorder cycle state.

    - max_total_amount_cents: cap for the active draft; 0 means drafting is not allowed
    - undo_snapshot_json: the last deleted snapshot, kept for exactly one restore
    """
    __tablename__ = "reorder_settings"

    id = db.Column(db.Integer, primary_key=True)
    max_total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    undo_snapshot_json = db.Column(db.JSON, nullable=True)

    updated_by_id = db.Column(db.String(128), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "max_total_amount_cents": self.max_total_amount_cents,
            "has_undo": self.undo_snapshot_json is not None,
            "updated_by_id": self.updated_by_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class ReorderDraftItem(db.Model):
    __tablename__ = "reorder_draft_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_reorder_draft_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    # Distributor price at the time the line was priced
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    notes = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
            "notes": self.notes,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ReorderSnapshot(db.Model):
    """
    Named copy of a finalized reorder draft.

    Header fields never change after save. Items may only be appended through
    reorder_service.merge_items_from_snapshot(), within cap_at_save_time_cents.
    """
    __tablename__ = "reorder_snapshots"
    __table_args__ = (
        db.Index("ix_reorder_snapshots_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    cap_at_save_time_cents = db.Column(db.Integer, nullable=False)

    created_by_id = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "ReorderSnapshotItem",
        backref="snapshot",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ReorderSnapshotItem.id",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "total_amount_cents": self.total_amount_cents,
            "cap_at_save_time_cents": self.cap_at_save_time_cents,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
            "item_count": len(self.items),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class ReorderSnapshotItem(db.Model):
    __tablename__ = "reorder_snapshot_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_reorder_snapshot_item_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    snapshot_id = db.Column(db.Integer, db.ForeignKey("reorder_snapshots.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "snapshot_id": self.snapshot_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
            "notes": self.notes,
        }
