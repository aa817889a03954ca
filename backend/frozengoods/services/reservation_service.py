# Overview: Service-layer operations for reservations; hold, convert and release stock.

"""
Reservation lifecycle: held -> converted | released (both terminal).

Ledger shape per reservation:
- hold:    inventory_adjustment  -q  (reservation_id set)         stock -q
- convert: sale                  -q  (reservation_id set)         stock unchanged
           inventory_adjustment  +q  (compensates the hold entry)
- release: inventory_adjustment  +q  (compensates the hold entry) stock +q

A converted reservation nets to exactly one sale in the ledger; a released one
nets to zero.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models import Reservation, Sale
from ..models.ledger import ENTRY_INVENTORY_ADJUSTMENT, ENTRY_SALE
from ..models.reservations import (
    RESERVATION_CONVERTED,
    RESERVATION_HELD,
    RESERVATION_RELEASED,
)
from ..models.sales import PAYMENT_METHODS, PAYMENT_STATUS_PAID
from ..time_utils import utcnow
from ..validation import require_positive_int
from .concurrency import lock_for_update, product_lock_key, run_atomic
from .ledger_service import append_entry
from .products_service import adjust_quantity, get_product_for_update

logger = logging.getLogger(__name__)

RESERVATION_STATUSES = (RESERVATION_HELD, RESERVATION_CONVERTED, RESERVATION_RELEASED)


def get_reservation(reservation_id: int) -> Reservation:
    reservation = db.session.get(Reservation, reservation_id)
    if reservation is None:
        raise NotFoundError(f"Reservation {reservation_id} not found")
    return reservation


def list_reservations(*, status: str | None = None, search: str | None = None) -> list[Reservation]:
    if status is not None and status not in RESERVATION_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(RESERVATION_STATUSES)}")

    q = db.session.query(Reservation)
    if status is not None:
        q = q.filter(Reservation.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Reservation.product_name.ilike(pattern), Reservation.customer_name.ilike(pattern)))

    return q.order_by(Reservation.created_at.desc(), Reservation.id.desc()).all()


def _locked_held_reservation(reservation_id: int) -> Reservation:
    reservation = lock_for_update(
        db.session.query(Reservation).filter_by(id=reservation_id)
    ).first()
    if reservation is None:
        raise NotFoundError(f"Reservation {reservation_id} not found")
    if reservation.status != RESERVATION_HELD:
        raise InvalidStateError(
            f"Reservation {reservation_id} is {reservation.status}; only held reservations can change",
            details={"reservation_id": reservation_id, "status": reservation.status},
        )
    return reservation


def _product_key_for(reservation_id: int) -> str:
    # Peek outside the transaction to learn which product lock to take;
    # the row is re-read and re-checked under that lock.
    product_id = (
        db.session.query(Reservation.product_id).filter(Reservation.id == reservation_id).scalar()
    )
    db.session.rollback()
    if product_id is None:
        raise NotFoundError(f"Reservation {reservation_id} not found")
    return product_lock_key(product_id)


def hold(
    *,
    product_id: int,
    quantity,
    customer_name: str | None = None,
    actor_id: str,
    actor_name: str | None = None,
) -> Reservation:
    """
    Deduct stock for a pending order.

    Raises:
        ValidationError: quantity not a positive integer
        NotFoundError: unknown or deleted product
        InsufficientStockError: not enough stock (nothing is written)
    """
    qty = require_positive_int(quantity, "quantity")
    customer = (customer_name or "").strip() or current_app.config.get("DEFAULT_CUSTOMER_NAME", "Walk-in Customer")

    def _op():
        product = get_product_for_update(product_id)
        unit_price = product.price_cents

        product = adjust_quantity(product_id, -qty)

        reservation = Reservation(
            product_id=product.id,
            product_name=product.name,
            quantity=qty,
            unit_price_cents=unit_price,
            amount_cents=qty * unit_price,
            customer_name=customer,
            status=RESERVATION_HELD,
            actor_id=str(actor_id),
            actor_name=actor_name,
        )
        db.session.add(reservation)
        db.session.flush()

        entry = append_entry(
            entry_type=ENTRY_INVENTORY_ADJUSTMENT,
            product=product,
            quantity_delta=-qty,
            actor_id=actor_id,
            actor_name=actor_name,
            reservation_id=reservation.id,
            notes=f"Reserved {qty} units for {customer}",
        )
        reservation.hold_entry_id = entry.id
        db.session.flush()
        return reservation

    reservation = run_atomic(_op, lock_key=product_lock_key(product_id))
    logger.info(
        "Reservation held id=%s product_id=%s quantity=%s",
        reservation.id, reservation.product_id, reservation.quantity,
    )
    return reservation


def convert(
    *,
    reservation_id: int,
    payment_method: str,
    actor_id: str,
    actor_name: str | None = None,
) -> Reservation:
    """
    Turn a held reservation into a paid sale. Stock was deducted at hold
    time and is not touched again.

    Raises:
        InvalidStateError: reservation is not held
    """
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    lock_key = _product_key_for(reservation_id)

    def _op():
        reservation = _locked_held_reservation(reservation_id)
        product = reservation.product

        sale_entry = append_entry(
            entry_type=ENTRY_SALE,
            product=product,
            quantity_delta=-reservation.quantity,
            actor_id=actor_id,
            actor_name=actor_name,
            reservation_id=reservation.id,
            unit_price_cents=reservation.unit_price_cents,
            amount_cents=reservation.amount_cents,
            payment_method=payment_method,
            notes=f"Sale from reservation #{reservation.id} for {reservation.customer_name}",
        )
        append_entry(
            entry_type=ENTRY_INVENTORY_ADJUSTMENT,
            product=product,
            quantity_delta=reservation.quantity,
            actor_id=actor_id,
            actor_name=actor_name,
            reservation_id=reservation.id,
            compensates_entry_id=reservation.hold_entry_id,
            notes=f"Reservation #{reservation.id} converted to sale; hold entry #{reservation.hold_entry_id} offset",
        )

        sale = Sale(
            ledger_entry_id=sale_entry.id,
            product_id=product.id,
            product_name=product.name,
            quantity=reservation.quantity,
            unit_price_cents=reservation.unit_price_cents,
            amount_cents=reservation.amount_cents,
            payment_method=payment_method,
            payment_status=PAYMENT_STATUS_PAID,
            paid_amount_cents=reservation.amount_cents,
            reservation_id=reservation.id,
            actor_id=str(actor_id),
            actor_name=actor_name,
        )
        db.session.add(sale)
        db.session.flush()

        reservation.status = RESERVATION_CONVERTED
        reservation.sale_id = sale.id
        reservation.converted_at = utcnow()
        db.session.flush()
        return reservation

    reservation = run_atomic(_op, lock_key=lock_key)
    logger.info("Reservation converted id=%s sale_id=%s", reservation.id, reservation.sale_id)
    return reservation


def release(*, reservation_id: int, actor_id: str, actor_name: str | None = None) -> Reservation:
    """
    Cancel a held reservation and put its stock back.

    Raises:
        InvalidStateError: reservation is not held
    """
    lock_key = _product_key_for(reservation_id)

    def _op():
        reservation = _locked_held_reservation(reservation_id)
        product = adjust_quantity(reservation.product_id, reservation.quantity)

        append_entry(
            entry_type=ENTRY_INVENTORY_ADJUSTMENT,
            product=product,
            quantity_delta=reservation.quantity,
            actor_id=actor_id,
            actor_name=actor_name,
            reservation_id=reservation.id,
            compensates_entry_id=reservation.hold_entry_id,
            notes=f"Released reservation #{reservation.id} for {reservation.customer_name}",
        )

        reservation.status = RESERVATION_RELEASED
        reservation.released_at = utcnow()
        db.session.flush()
        return reservation

    reservation = run_atomic(_op, lock_key=lock_key)
    logger.info("Reservation released id=%s quantity=%s", reservation.id, reservation.quantity)
    return reservation
