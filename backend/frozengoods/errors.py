# Overview: Typed engine errors and their JSON/HTTP translation.

"""
Engine error kinds.

Every service operation fails synchronously with one of these. Expected,
user-facing outcomes (insufficient stock, budget exceeded) are ordinary
subclasses like the rest; routes translate them with error_response().
"""

from __future__ import annotations

from flask import jsonify


class InventoryError(Exception):
    """Base class for engine errors. `details` is returned to API callers."""

    status_code = 400
    code = "INVENTORY_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class NotFoundError(InventoryError):
    """Unknown product, reservation, sale or snapshot id."""

    status_code = 404
    code = "NOT_FOUND"


class InsufficientStockError(InventoryError):
    """Raised when an operation would drive Product.quantity below zero."""

    status_code = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            f"Not enough inventory. Only {available} units available.",
            details={"product_id": product_id, "requested": requested, "available": available},
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InvalidStateError(InventoryError):
    status_code = 409
    code = "INVALID_STATE"


class BudgetExceededError(InventoryError):
    """Reorder cap violation. overage_cents is how far over the cap the change would go."""

    status_code = 409
    code = "BUDGET_EXCEEDED"

    def __init__(self, overage_cents: int, cap_cents: int, attempted_total_cents: int):
        super().__init__(
            f"Change would exceed the maximum total amount by {overage_cents} cents",
            details={
                "overage_cents": overage_cents,
                "cap_cents": cap_cents,
                "attempted_total_cents": attempted_total_cents,
            },
        )
        self.overage_cents = overage_cents
        self.cap_cents = cap_cents
        self.attempted_total_cents = attempted_total_cents


class CapNotSetError(InventoryError):
    status_code = 409
    code = "CAP_NOT_SET"

    def __init__(self, message: str = "Please set a maximum total amount before adding items"):
        super().__init__(message)


class ValidationError(InventoryError, ValueError):
    """400-level input problem."""

    status_code = 400
    code = "VALIDATION_ERROR"


class LedgerImmutabilityError(InventoryError):
    """Raised when code tries to update or delete a ledger entry."""

    status_code = 500
    code = "LEDGER_IMMUTABLE"


def error_response(exc: InventoryError):
    return jsonify(exc.to_dict()), exc.status_code
