from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

# Upper bound for any single stock movement or stored quantity
MAX_QUANTITY = 1_000_000


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which payload keys a client may send for a model.

    writable_fields bounds both create and update payloads; required_on_create
    only applies when partial=False.
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def coerce_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def require_positive_int(value: Any, field: str = "quantity") -> int:
    if value is None:
        raise ValidationError(f"{field} is required")
    number = coerce_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be > 0")
    if number > MAX_QUANTITY:
        raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}")
    return number


def require_non_negative_int(value: Any, field: str) -> int:
    if value is None:
        raise ValidationError(f"{field} is required")
    number = coerce_int(value, field)
    if number < 0:
        raise ValidationError(f"{field} must be >= 0")
    return number


def require_text(value: Any, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()


def _clean_value(col, value: Any):
    if value is None:
        if not col.nullable:
            raise ValidationError(f"{col.key} cannot be null")
        return None

    coltype = col.type
    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)
    if isinstance(coltype, Boolean):
        return value if isinstance(value, bool) else bool(value)
    if not isinstance(coltype, (String, Text)):
        return value

    text = str(value).strip()
    if not text and not col.nullable:
        raise ValidationError(f"{col.key} cannot be blank")
    max_length = getattr(coltype, "length", None)
    if max_length and len(text) > max_length:
        raise ValidationError(f"{col.key} exceeds max length {max_length}")
    return text


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Normalize a JSON body into a column patch for ``model``.

    Keys must be writable under ``policy`` and map to a mapped column; values
    are coerced by column type (strict integers, trimmed strings checked
    against nullability and String(n) length). With partial=False every
    required_on_create key must be present.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    rejected = [k for k in payload if k not in policy.writable_fields or k not in cols]
    if rejected:
        raise ValidationError(f"Field not allowed: {rejected[0]}")

    return {k: _clean_value(cols[k], raw) for k, raw in payload.items()}


def _check_price(patch: dict, field: str) -> None:
    if field in patch and patch[field] is not None:
        price = patch[field]
        if price < 0:
            raise ValidationError(f"{field} must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_price(patch, "price_cents")
    _check_price(patch, "distributor_price_cents")

    if "quantity" in patch and patch["quantity"] is not None:
        qty = patch["quantity"]
        if qty < 0:
            raise ValidationError("quantity must be >= 0")
        if qty > MAX_QUANTITY:
            raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}")
