"""
Sales and payment tracking

WHY: The sale LedgerEntry is immutable, but payment status changes after the
fact (a customer pays half now, the rest later). Stock movement is recorded
once by the ledger; the Sale row carries only what may change.

- record_sale: stock deduction + sale entry + Sale row, one transaction
- set_payment_status: Sale row only, never the ledger or stock
- delete_sale: soft delete, optionally putting the stock back
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_

from ..extensions import db
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models import Product, Sale
from ..models.ledger import ENTRY_INVENTORY_ADJUSTMENT, ENTRY_SALE
from ..models.sales import (
    PAYMENT_METHODS,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_UNPAID,
    PAYMENT_STATUSES,
)
from ..time_utils import utcnow
from ..validation import coerce_int, require_positive_int
from .concurrency import lock_for_update, product_lock_key, run_atomic
from .ledger_service import append_entry
from .products_service import adjust_quantity

logger = logging.getLogger(__name__)


def _require_payment_method(payment_method) -> str:
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    return payment_method


def _require_payment_status(status) -> str:
    if status not in PAYMENT_STATUSES:
        raise ValidationError(f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}")
    return status


def _partial_amount(value, baseline_cents: int) -> int:
    if value is None:
        raise ValidationError("partial_amount_cents is required for partial payments")
    amount = coerce_int(value, "partial_amount_cents")
    if amount <= 0 or amount >= baseline_cents:
        raise ValidationError(
            "Partial amount must be greater than 0 and less than the original amount",
            details={"partial_amount_cents": amount, "original_amount_cents": baseline_cents},
        )
    return amount


def _apply_payment_status(sale: Sale, status: str, partial_amount_cents) -> None:
    baseline = sale.baseline_amount_cents
    if status == PAYMENT_STATUS_PARTIAL:
        paid = _partial_amount(partial_amount_cents, baseline)
    elif status == PAYMENT_STATUS_PAID:
        paid = baseline
    else:
        paid = 0

    # Baseline is captured once so repeated partial edits keep the true total
    if sale.original_amount_cents is None:
        sale.original_amount_cents = baseline

    sale.payment_status = status
    sale.paid_amount_cents = paid


# =============================================================================
# READS
# =============================================================================

def get_sale(sale_id: int, *, include_deleted: bool = False) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None or (sale.is_deleted and not include_deleted):
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def _sales_query(start: datetime | None = None, end: datetime | None = None):
    if start is not None and end is not None and start > end:
        raise ValidationError("start must not be after end")
    q = db.session.query(Sale).filter(Sale.deleted_at.is_(None))
    if start is not None:
        q = q.filter(Sale.created_at >= start)
    if end is not None:
        q = q.filter(Sale.created_at <= end)
    return q


def list_sales(
    *,
    payment_method: str | None = None,
    payment_status: str | None = None,
    search: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Sale]:
    """Non-deleted sales, newest first."""
    q = _sales_query(start, end)
    if payment_method is not None:
        q = q.filter(Sale.payment_method == _require_payment_method(payment_method))
    if payment_status is not None:
        q = q.filter(Sale.payment_status == _require_payment_status(payment_status))
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Sale.product_name.ilike(pattern), Sale.notes.ilike(pattern)))
    return q.order_by(Sale.created_at.desc(), Sale.id.desc()).all()


def sales_summary(*, start: datetime | None = None, end: datetime | None = None) -> dict:
    """Totals over non-deleted sales: value, collected, outstanding, per payment method."""
    by_method = {method: {"count": 0, "amount_cents": 0} for method in PAYMENT_METHODS}
    by_status = {status: 0 for status in PAYMENT_STATUSES}
    total = paid = count = units = 0

    for sale in _sales_query(start, end).all():
        baseline = sale.baseline_amount_cents
        count += 1
        units += sale.quantity
        total += baseline
        paid += sale.paid_amount_cents
        by_status[sale.payment_status] = by_status.get(sale.payment_status, 0) + 1
        bucket = by_method.setdefault(sale.payment_method, {"count": 0, "amount_cents": 0})
        bucket["count"] += 1
        bucket["amount_cents"] += baseline

    return {
        "sale_count": count,
        "units_sold": units,
        "total_amount_cents": total,
        "paid_amount_cents": paid,
        "outstanding_cents": total - paid,
        "by_payment_method": by_method,
        "by_payment_status": by_status,
    }


# =============================================================================
# MUTATIONS
# =============================================================================

def record_sale(
    *,
    product_id: int,
    quantity,
    payment_method: str,
    notes: str | None = None,
    actor_id: str,
    actor_name: str | None = None,
    payment_status: str = PAYMENT_STATUS_PAID,
    paid_amount_cents=None,
) -> Sale:
    """
    Sell stock directly (no reservation).

    The amount is quantity * price read from the locked product row, so a
    concurrent price edit can never be half-applied.

    Raises:
        ValidationError: bad quantity, payment method or status
        NotFoundError: unknown or deleted product
        InsufficientStockError: not enough stock (nothing is written)
    """
    qty = require_positive_int(quantity, "quantity")
    _require_payment_method(payment_method)
    _require_payment_status(payment_status)
    notes = (notes or "").strip() or None

    def _op():
        product = adjust_quantity(product_id, -qty)
        unit_price = product.price_cents
        amount = qty * unit_price

        entry = append_entry(
            entry_type=ENTRY_SALE,
            product=product,
            quantity_delta=-qty,
            actor_id=actor_id,
            actor_name=actor_name,
            unit_price_cents=unit_price,
            amount_cents=amount,
            payment_method=payment_method,
            notes=notes or f"Sold {qty} units of {product.name}",
        )

        sale = Sale(
            ledger_entry_id=entry.id,
            product_id=product.id,
            product_name=product.name,
            quantity=qty,
            unit_price_cents=unit_price,
            amount_cents=amount,
            payment_method=payment_method,
            payment_status=PAYMENT_STATUS_PAID,
            paid_amount_cents=amount,
            notes=notes,
            actor_id=str(actor_id),
            actor_name=actor_name,
        )
        if payment_status != PAYMENT_STATUS_PAID:
            _apply_payment_status(sale, payment_status, paid_amount_cents)

        db.session.add(sale)
        db.session.flush()
        return sale

    sale = run_atomic(_op, lock_key=product_lock_key(product_id))
    logger.info(
        "Sale recorded id=%s product_id=%s quantity=%s amount_cents=%s",
        sale.id, sale.product_id, sale.quantity, sale.amount_cents,
    )
    return sale


def set_payment_status(
    *,
    sale_id: int,
    status: str,
    partial_amount_cents=None,
    actor_id: str | None = None,
) -> Sale:
    """
    Move a sale between paid / partial / unpaid.

    original_amount_cents is stored on the first transition only; later
    transitions validate against it.
    """
    _require_payment_status(status)

    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None or sale.is_deleted:
            raise NotFoundError(f"Sale {sale_id} not found")

        _apply_payment_status(sale, status, partial_amount_cents)
        db.session.flush()
        return sale

    sale = run_atomic(_op)
    logger.info(
        "Sale payment status id=%s status=%s paid_cents=%s actor=%s",
        sale.id, sale.payment_status, sale.paid_amount_cents, actor_id,
    )
    return sale


def delete_sale(
    *,
    sale_id: int,
    restore_stock: bool,
    actor_id: str,
    actor_name: str | None = None,
) -> Sale:
    """
    Soft-delete a sale.

    restore_stock=True: the sale never happened; stock goes back with a
    compensating +quantity adjustment.
    restore_stock=False: the record was wrong but the goods are gone; a
    zero-delta adjustment documents the removal and the deduction stands.

    Raises:
        InvalidStateError: sale already deleted
    """
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    lock_key = product_lock_key(sale.product_id)
    db.session.rollback()

    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale.is_deleted:
            raise InvalidStateError(
                f"Sale {sale_id} is already deleted",
                details={"sale_id": sale_id},
            )

        if restore_stock:
            product = adjust_quantity(sale.product_id, sale.quantity, include_inactive=True)
            append_entry(
                entry_type=ENTRY_INVENTORY_ADJUSTMENT,
                product=product,
                quantity_delta=sale.quantity,
                actor_id=actor_id,
                actor_name=actor_name,
                reservation_id=sale.reservation_id,
                compensates_entry_id=sale.ledger_entry_id,
                notes=f"Sale #{sale.id} deleted; restored {sale.quantity} units",
            )
        else:
            product = db.session.get(Product, sale.product_id)
            append_entry(
                entry_type=ENTRY_INVENTORY_ADJUSTMENT,
                product=product,
                quantity_delta=0,
                actor_id=actor_id,
                actor_name=actor_name,
                reservation_id=sale.reservation_id,
                compensates_entry_id=sale.ledger_entry_id,
                notes=f"Sale #{sale.id} deleted; stock not restored",
            )

        sale.deleted_at = utcnow()
        sale.deleted_by_id = str(actor_id)
        sale.restored_stock = bool(restore_stock)
        db.session.flush()
        return sale

    sale = run_atomic(_op, lock_key=lock_key)
    logger.info("Sale deleted id=%s restored_stock=%s", sale.id, sale.restored_stock)
    return sale
