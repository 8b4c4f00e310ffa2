from __future__ import annotations
from datetime import date, datetime
from stockroom.time_utils import parse_iso_datetime, parse_iso_date

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .models import ProductBatch, PurchaseOrder
from .services.errors import InvalidArgumentError


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


class ValidationError(InvalidArgumentError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


BATCH_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_id",
        "batch_number",
        "quantity",
        "available_quantity",
        "cost_price_cents",
        "manufacture_date",
        "expiry_date",
        "supplier_id",
        "notes",
    },
    required_on_create={"product_id", "batch_number", "quantity"},
)

# product_id is fixed once a batch exists
BATCH_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=(BATCH_POLICY.writable_fields - {"product_id"}) | {"is_active"},
)

PURCHASE_ORDER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"supplier_id", "order_date", "expected_delivery_date", "notes"},
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Calendar dates ("YYYY-MM-DD")
    if isinstance(coltype, Date):
        if isinstance(value, (date, str)):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
            if d is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
            return d
        raise ValidationError(f"{col.key} must be a date")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)

    A key absent from the payload is absent from the patch; a key sent as
    null is present with value None. Services rely on that distinction.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_batch(patch: dict) -> None:
    """Business rules that are not captured by SQLAlchemy metadata alone."""
    if "quantity" in patch and patch["quantity"] is not None and patch["quantity"] <= 0:
        raise ValidationError("quantity must be > 0")

    if "available_quantity" in patch and patch["available_quantity"] is not None:
        if patch["available_quantity"] < 0:
            raise ValidationError("available_quantity must be >= 0")

    cost = patch.get("cost_price_cents")
    if cost is not None:
        if cost < 0:
            raise ValidationError("cost_price_cents must be >= 0")
        if cost > MAX_PRICE_CENTS:
            raise ValidationError(f"cost_price_cents cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")

    made, expires = patch.get("manufacture_date"), patch.get("expiry_date")
    if made is not None and expires is not None and expires < made:
        raise ValidationError("expiry_date cannot be before manufacture_date")


def validate_batch_create(payload: dict) -> dict:
    patch = validate_payload(model=ProductBatch, payload=payload, policy=BATCH_POLICY, partial=False)
    enforce_rules_batch(patch)
    return patch


def validate_batch_update(payload: dict) -> dict:
    patch = validate_payload(model=ProductBatch, payload=payload, policy=BATCH_UPDATE_POLICY, partial=True)
    enforce_rules_batch(patch)
    return patch


def validate_purchase_order_update(payload: dict) -> dict:
    patch = validate_payload(
        model=PurchaseOrder, payload=payload, policy=PURCHASE_ORDER_UPDATE_POLICY, partial=True
    )
    ordered, expected = patch.get("order_date"), patch.get("expected_delivery_date")
    if ordered is not None and expected is not None and expected < ordered:
        raise ValidationError("expected_delivery_date cannot be before order_date")
    return patch
