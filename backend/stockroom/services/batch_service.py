# Overview: Service-layer operations for product batches; lot/expiry sub-ledger kept in step with stock.

"""
Stockroom Batch Tracker

LIFECYCLE:
1. create_batch(): insert the lot AND move its available quantity into stock
   (In transaction, reference = batch number) in one transaction.
2. update_batch() / update_batch_quantity(): edit the lot.
   - a change of `quantity` is a real stock movement (In/Out of the delta)
   - `available_quantity` alone is bookkeeping inside the lot, no stock effect
3. delete_batch(): reverse whatever is still available (Out) and remove the lot.

The procurement engine calls _create_batch_inner() only: its goods receipt
already recorded the In for the received quantity.

INVARIANT: 0 <= available_quantity <= quantity (also a DB check constraint).
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import ProductBatch
from stockroom.time_utils import today as utc_today
from .catalog_service import get_product, get_supplier
from .concurrency import atomic
from .errors import ConflictError, InvalidArgumentError, NotFoundError
from .transaction_service import (
    REFERENCE_BATCH,
    _record_in_inner,
    _record_out_inner,
)

logger = logging.getLogger(__name__)


BATCH_PATCH_FIELDS = {
    "batch_number",
    "quantity",
    "available_quantity",
    "cost_price_cents",
    "manufacture_date",
    "expiry_date",
    "supplier_id",
    "notes",
    "is_active",
}


def _require_int(name: str, value, *, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{name} must be an integer")
    if value < minimum:
        raise InvalidArgumentError(f"{name} must be >= {minimum}")
    return value


def _check_available(available: int, quantity: int) -> None:
    if available < 0 or available > quantity:
        raise InvalidArgumentError(
            f"available_quantity must be between 0 and {quantity}"
        )


def _ensure_unique_number(product_id: int, batch_number: str, *, exclude_id: int | None = None) -> None:
    q = db.session.query(ProductBatch.id).filter(
        ProductBatch.product_id == product_id,
        ProductBatch.batch_number == batch_number,
    )
    if exclude_id is not None:
        q = q.filter(ProductBatch.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Batch number already exists for this product")


def _flush_batch() -> None:
    try:
        db.session.flush()
    except IntegrityError as e:
        # Concurrent insert of the same (product_id, batch_number)
        raise ConflictError("Batch number already exists for this product") from e


def get_batch(batch_id: int) -> ProductBatch:
    batch = db.session.query(ProductBatch).filter_by(id=batch_id).first()
    if batch is None:
        raise NotFoundError("Batch not found")
    return batch


def list_batches(product_id: int | None = None) -> list[ProductBatch]:
    """Active batches. Per product: soonest expiry first. Otherwise newest first."""
    q = db.session.query(ProductBatch).filter(ProductBatch.is_active.is_(True))
    if product_id is not None:
        return (
            q.filter(ProductBatch.product_id == product_id)
            .order_by(ProductBatch.expiry_date.asc(), ProductBatch.id.asc())
            .all()
        )
    return q.order_by(ProductBatch.created_at.desc(), ProductBatch.id.desc()).all()


def list_expiring_within(days: int, *, today: date | None = None) -> list[ProductBatch]:
    """
    Active batches with stock left that expire on or before today + days.

    Already-expired batches are included. Ordered by expiry date, then id.
    """
    _require_int("days", days, minimum=0)
    cutoff = (today or utc_today()) + timedelta(days=days)

    return (
        db.session.query(ProductBatch)
        .filter(
            ProductBatch.is_active.is_(True),
            ProductBatch.expiry_date.isnot(None),
            ProductBatch.expiry_date <= cutoff,
            ProductBatch.available_quantity > 0,
        )
        .order_by(ProductBatch.expiry_date.asc(), ProductBatch.id.asc())
        .all()
    )


def _create_batch_inner(
    *,
    product_id: int,
    batch_number: str,
    quantity: int,
    available_quantity: int | None = None,
    cost_price_cents: int | None = None,
    manufacture_date: date | None = None,
    expiry_date: date | None = None,
    supplier_id: int | None = None,
    notes: str | None = None,
) -> ProductBatch:
    """Insert a batch without touching stock. Does not commit."""
    batch_number = (batch_number or "").strip()
    if not batch_number:
        raise InvalidArgumentError("Batch number is required")
    _require_int("quantity", quantity, minimum=1)

    if available_quantity is None:
        available_quantity = quantity
    _require_int("available_quantity", available_quantity, minimum=0)
    _check_available(available_quantity, quantity)

    if cost_price_cents is not None:
        _require_int("cost_price_cents", cost_price_cents, minimum=0)

    product = get_product(product_id)
    if product.has_expiry and expiry_date is None:
        raise InvalidArgumentError("Expiry date is required for products with expiry tracking")
    if supplier_id is not None:
        get_supplier(supplier_id)

    _ensure_unique_number(product_id, batch_number)

    batch = ProductBatch(
        product_id=product_id,
        batch_number=batch_number,
        quantity=quantity,
        available_quantity=available_quantity,
        cost_price_cents=cost_price_cents,
        manufacture_date=manufacture_date,
        expiry_date=expiry_date,
        supplier_id=supplier_id,
        notes=notes,
    )
    db.session.add(batch)
    _flush_batch()
    return batch


def create_batch(*, actor_id: int | None, **fields) -> ProductBatch:
    """
    Create a batch and bring its available quantity into stock.

    Raises:
        InvalidArgumentError, NotFoundError, ConflictError
    """
    with atomic():
        batch = _create_batch_inner(**fields)
        if batch.available_quantity > 0:
            _record_in_inner(
                product_id=batch.product_id,
                quantity=batch.available_quantity,
                actor_id=actor_id,
                reference_id=batch.batch_number,
                reference_type=REFERENCE_BATCH,
                unit_cost_cents=batch.cost_price_cents,
                note=f"Batch {batch.batch_number} created",
            )

    logger.info("Created batch %s for product %s", batch.batch_number, batch.product_id)
    return batch


def update_batch(batch_id: int, patch: dict, *, actor_id: int | None) -> ProductBatch:
    """
    Apply only the fields present in `patch`.

    A quantity change moves stock by the delta (In or Out) and shifts
    available_quantity by the same delta unless the patch sets it explicitly.
    """
    unknown = set(patch) - BATCH_PATCH_FIELDS
    if unknown:
        raise InvalidArgumentError(f"Field not allowed: {', '.join(sorted(unknown))}")

    with atomic():
        batch = get_batch(batch_id)
        product = get_product(batch.product_id)

        new_quantity = batch.quantity
        if "quantity" in patch:
            new_quantity = _require_int("quantity", patch["quantity"], minimum=1)
        delta = new_quantity - batch.quantity

        if "available_quantity" in patch:
            new_available = _require_int("available_quantity", patch["available_quantity"], minimum=0)
        else:
            new_available = batch.available_quantity + delta
        _check_available(new_available, new_quantity)

        if "batch_number" in patch:
            number = (patch["batch_number"] or "").strip()
            if not number:
                raise InvalidArgumentError("Batch number is required")
            _ensure_unique_number(batch.product_id, number, exclude_id=batch.id)
            batch.batch_number = number

        if "expiry_date" in patch and patch["expiry_date"] is None and product.has_expiry:
            raise InvalidArgumentError("Expiry date is required for products with expiry tracking")
        if patch.get("supplier_id") is not None:
            get_supplier(patch["supplier_id"])
        if patch.get("cost_price_cents") is not None:
            _require_int("cost_price_cents", patch["cost_price_cents"], minimum=0)

        for key in ("cost_price_cents", "manufacture_date", "expiry_date", "supplier_id", "notes", "is_active"):
            if key in patch:
                setattr(batch, key, patch[key])

        if delta > 0:
            _record_in_inner(
                product_id=batch.product_id,
                quantity=delta,
                actor_id=actor_id,
                reference_id=batch.batch_number,
                reference_type=REFERENCE_BATCH,
                unit_cost_cents=batch.cost_price_cents,
                note=f"Batch {batch.batch_number} quantity increased",
            )
        elif delta < 0:
            _record_out_inner(
                product_id=batch.product_id,
                quantity=-delta,
                actor_id=actor_id,
                reference_id=batch.batch_number,
                reference_type=REFERENCE_BATCH,
                note=f"Batch {batch.batch_number} quantity decreased",
            )

        batch.quantity = new_quantity
        batch.available_quantity = new_available
        _flush_batch()

    return batch


def update_batch_quantity(batch_id: int, available_quantity: int) -> ProductBatch:
    """Set the remaining quantity of a lot. No stock effect; idempotent."""
    _require_int("available_quantity", available_quantity, minimum=0)

    with atomic():
        batch = get_batch(batch_id)
        _check_available(available_quantity, batch.quantity)
        batch.available_quantity = available_quantity

    return batch


def delete_batch(batch_id: int, *, actor_id: int | None) -> None:
    """
    Remove a batch, first taking its remaining quantity out of stock.

    Raises InsufficientStockError (and deletes nothing) if product stock no
    longer covers the batch's available quantity.
    """
    with atomic():
        batch = get_batch(batch_id)
        if batch.available_quantity > 0:
            _record_out_inner(
                product_id=batch.product_id,
                quantity=batch.available_quantity,
                actor_id=actor_id,
                reference_id=batch.batch_number,
                reference_type=REFERENCE_BATCH,
                note=f"Batch {batch.batch_number} removed",
            )
        product_id, number = batch.product_id, batch.batch_number
        db.session.delete(batch)

    logger.info("Deleted batch %s for product %s", number, product_id)
