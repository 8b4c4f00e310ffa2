# Overview: Stock Transaction Recorder; pairs every stock mutation with its ledger row.

# backend/stockroom/services/transaction_service.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy import case, func

from ..extensions import db
from ..models import Product, StockTransaction
from .concurrency import atomic
from .errors import InsufficientStockError, InvalidArgumentError, NotFoundError
from .stock_service import (
    MODE_ADD,
    MODE_SET,
    MODE_SUBTRACT,
    STOCK_MODES,
    adjust_stock,
    get_product_for_update,
)
"""
Stockroom Ledger Invariants (authoritative)

Ledger model:
- stock_transactions is append-only; rows are never updated or deleted.
- Product.current_stock is a projection of the ledger, maintained eagerly:
      current_stock == SUM(In.quantity) - SUM(Out.quantity) + SUM(Adjustment.quantity)
- Every ledger row and its paired stock mutation are written in the same DB
  transaction. Either both are visible or neither is.

Business invariants:
- Stock may never go negative. Out re-reads stock inside the transaction and
  the decrement itself is conditional, so a lost race is still refused.
- In / Out quantities are strictly positive magnitudes.
- Adjustment records the signed delta to a target level; the target may not
  be negative, the delta may be zero.

Composition:
- _record_*_inner() functions never commit; the sales and procurement engines
  call them inside their own atomic() block.
- record_*() public functions wrap one inner call in atomic().
"""


TYPE_IN = "In"
TYPE_OUT = "Out"
TYPE_ADJUSTMENT = "Adjustment"
TRANSACTION_TYPES = {TYPE_IN, TYPE_OUT, TYPE_ADJUSTMENT}

REFERENCE_MANUAL = "Manual"
REFERENCE_SALE = "Sale"
REFERENCE_PURCHASE = "Purchase"
REFERENCE_BATCH = "Batch"


@dataclass
class StockMovement:
    """Outcome of one recorded movement: the ledger row plus before/after stock."""
    transaction: StockTransaction
    previous_stock: int
    new_stock: int

    def to_dict(self) -> dict:
        return {
            "transaction": self.transaction.to_dict(),
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
        }


def _require_positive_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidArgumentError("Quantity must be an integer")
    if quantity <= 0:
        raise InvalidArgumentError("Quantity must be greater than 0")
    return quantity


def _append(
    *,
    product_id: int,
    transaction_type: str,
    quantity: int,
    actor_id: int | None,
    reference_id: str | None,
    reference_type: str,
    unit_cost_cents: int | None,
    note: str | None,
) -> StockTransaction:
    tx = StockTransaction(
        product_id=product_id,
        transaction_type=transaction_type,
        quantity=quantity,
        reference_id=reference_id,
        reference_type=reference_type,
        unit_cost_cents=unit_cost_cents,
        note=note,
        created_by=actor_id,
    )
    db.session.add(tx)
    db.session.flush()
    return tx


def _record_in_inner(
    *,
    product_id: int,
    quantity: int,
    actor_id: int | None,
    reference_id: str | None = None,
    reference_type: str = REFERENCE_MANUAL,
    unit_cost_cents: int | None = None,
    note: str | None = None,
) -> StockMovement:
    """Core IN logic without commit."""
    _require_positive_quantity(quantity)
    previous = get_product_for_update(product_id).current_stock

    tx = _append(
        product_id=product_id,
        transaction_type=TYPE_IN,
        quantity=quantity,
        actor_id=actor_id,
        reference_id=reference_id,
        reference_type=reference_type,
        unit_cost_cents=unit_cost_cents,
        note=note,
    )
    adjust_stock(product_id, quantity, MODE_ADD)
    return StockMovement(tx, previous, previous + quantity)


def _record_out_inner(
    *,
    product_id: int,
    quantity: int,
    actor_id: int | None,
    reference_id: str | None = None,
    reference_type: str = REFERENCE_MANUAL,
    note: str | None = None,
) -> StockMovement:
    """Core OUT logic without commit."""
    _require_positive_quantity(quantity)
    previous = get_product_for_update(product_id).current_stock
    if previous < quantity:
        raise InsufficientStockError(
            f"Insufficient stock. Available: {previous}, Requested: {quantity}",
            product_id=product_id,
            available=previous,
            requested=quantity,
        )

    tx = _append(
        product_id=product_id,
        transaction_type=TYPE_OUT,
        quantity=quantity,
        actor_id=actor_id,
        reference_id=reference_id,
        reference_type=reference_type,
        unit_cost_cents=None,
        note=note,
    )
    # Conditional UPDATE: a concurrent decrement that got there first makes this raise
    adjust_stock(product_id, quantity, MODE_SUBTRACT)
    return StockMovement(tx, previous, previous - quantity)


def _record_adjustment_inner(
    *,
    product_id: int,
    new_quantity: int,
    actor_id: int | None,
    reference_id: str | None = None,
    note: str | None = None,
) -> StockMovement:
    """Core ADJUSTMENT logic without commit."""
    if isinstance(new_quantity, bool) or not isinstance(new_quantity, int):
        raise InvalidArgumentError("New quantity must be an integer")
    if new_quantity < 0:
        raise InvalidArgumentError("New quantity cannot be negative")

    previous = get_product_for_update(product_id).current_stock
    delta = new_quantity - previous

    tx = _append(
        product_id=product_id,
        transaction_type=TYPE_ADJUSTMENT,
        quantity=delta,
        actor_id=actor_id,
        reference_id=reference_id,
        reference_type=REFERENCE_MANUAL,
        unit_cost_cents=None,
        note=note,
    )
    adjust_stock(product_id, new_quantity, MODE_SET)
    return StockMovement(tx, previous, new_quantity)


def record_in(
    product_id: int,
    quantity: int,
    actor_id: int | None,
    reference_id: str | None = None,
    *,
    note: str | None = None,
) -> StockMovement:
    """Receive stock outside of a purchase order (returns, found stock, opening balance)."""
    with atomic():
        return _record_in_inner(
            product_id=product_id,
            quantity=quantity,
            actor_id=actor_id,
            reference_id=reference_id,
            note=note,
        )


def record_out(
    product_id: int,
    quantity: int,
    actor_id: int | None,
    reference_id: str | None = None,
    *,
    note: str | None = None,
) -> StockMovement:
    """Issue stock outside of an invoice (damage, internal use)."""
    with atomic():
        return _record_out_inner(
            product_id=product_id,
            quantity=quantity,
            actor_id=actor_id,
            reference_id=reference_id,
            note=note,
        )


def record_adjustment(
    product_id: int,
    new_quantity: int,
    actor_id: int | None,
    reference_id: str | None = None,
    *,
    note: str | None = None,
) -> StockMovement:
    """
    Set stock to a counted level, recording the signed difference.

    Example: stock 10, counted 7 -> Adjustment row with quantity -3, stock 7.
    """
    with atomic():
        return _record_adjustment_inner(
            product_id=product_id,
            new_quantity=new_quantity,
            actor_id=actor_id,
            reference_id=reference_id,
            note=note,
        )


def apply_stock_update(
    product_id: int,
    quantity: int,
    mode: str,
    actor_id: int | None,
    reference_id: str | None = None,
) -> StockMovement:
    """
    Direct stock edit (set / add / subtract) that still leaves ledger history.

    set -> Adjustment, add -> In, subtract -> Out.
    """
    if mode not in STOCK_MODES:
        raise InvalidArgumentError("Operation must be set, add, or subtract")
    if mode == MODE_SET:
        return record_adjustment(product_id, quantity, actor_id, reference_id)
    if mode == MODE_ADD:
        return record_in(product_id, quantity, actor_id, reference_id)
    return record_out(product_id, quantity, actor_id, reference_id)


# =============================================================================
# History queries
# =============================================================================

def _signed_quantity_expr():
    return case(
        (StockTransaction.transaction_type == TYPE_OUT, -StockTransaction.quantity),
        else_=StockTransaction.quantity,
    )


def _day_bounds(date_from: date | None, date_to: date | None):
    start = datetime.combine(date_from, time.min) if date_from else None
    end = datetime.combine(date_to + timedelta(days=1), time.min) if date_to else None
    return start, end


def get_transaction(transaction_id: int) -> StockTransaction:
    tx = db.session.query(StockTransaction).filter_by(id=transaction_id).first()
    if tx is None:
        raise NotFoundError("Stock transaction not found")
    return tx


def list_transactions(
    *,
    product_id: int | None = None,
    transaction_type: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    created_by: int | None = None,
    limit: int | None = None,
) -> list[StockTransaction]:
    """Ledger rows, newest first. date_from/date_to are inclusive calendar days."""
    if transaction_type is not None and transaction_type not in TRANSACTION_TYPES:
        raise InvalidArgumentError(
            f"Invalid transaction_type. Must be one of: {', '.join(sorted(TRANSACTION_TYPES))}"
        )

    q = db.session.query(StockTransaction)
    if product_id is not None:
        q = q.filter(StockTransaction.product_id == product_id)
    if transaction_type is not None:
        q = q.filter(StockTransaction.transaction_type == transaction_type)
    if created_by is not None:
        q = q.filter(StockTransaction.created_by == created_by)

    start, end = _day_bounds(date_from, date_to)
    if start is not None:
        q = q.filter(StockTransaction.created_at >= start)
    if end is not None:
        q = q.filter(StockTransaction.created_at < end)

    q = q.order_by(StockTransaction.created_at.desc(), StockTransaction.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def get_transaction_stats() -> dict:
    row = db.session.query(
        func.count(StockTransaction.id).label("total"),
        func.sum(case((StockTransaction.transaction_type == TYPE_IN, 1), else_=0)).label("in_count"),
        func.sum(case((StockTransaction.transaction_type == TYPE_OUT, 1), else_=0)).label("out_count"),
        func.sum(case((StockTransaction.transaction_type == TYPE_ADJUSTMENT, 1), else_=0)).label("adj_count"),
        func.sum(
            case((StockTransaction.transaction_type == TYPE_IN, StockTransaction.quantity), else_=0)
        ).label("total_in"),
        func.sum(
            case((StockTransaction.transaction_type == TYPE_OUT, StockTransaction.quantity), else_=0)
        ).label("total_out"),
    ).one()

    return {
        "total_transactions": int(row.total or 0),
        "stock_in_count": int(row.in_count or 0),
        "stock_out_count": int(row.out_count or 0),
        "adjustment_count": int(row.adj_count or 0),
        "total_stock_in": int(row.total_in or 0),
        "total_stock_out": int(row.total_out or 0),
    }


def get_movement_summary(*, date_from: date | None = None, date_to: date | None = None) -> list[dict]:
    """Per-day, per-type movement totals, most recent day first."""
    day = func.date(StockTransaction.created_at)
    q = db.session.query(
        day.label("day"),
        StockTransaction.transaction_type,
        func.count(StockTransaction.id).label("transaction_count"),
        func.sum(StockTransaction.quantity).label("total_quantity"),
    )

    start, end = _day_bounds(date_from, date_to)
    if start is not None:
        q = q.filter(StockTransaction.created_at >= start)
    if end is not None:
        q = q.filter(StockTransaction.created_at < end)

    rows = (
        q.group_by(day, StockTransaction.transaction_type)
        .order_by(day.desc(), StockTransaction.transaction_type.asc())
        .all()
    )
    return [
        {
            "date": str(r.day),
            "transaction_type": r.transaction_type,
            "transaction_count": int(r.transaction_count),
            "total_quantity": int(r.total_quantity or 0),
        }
        for r in rows
    ]


def get_ledger_balance(product_id: int) -> int:
    """Replay the ledger: signed sum of every transaction for the product."""
    total = (
        db.session.query(func.coalesce(func.sum(_signed_quantity_expr()), 0))
        .filter(StockTransaction.product_id == product_id)
        .scalar()
    )
    return int(total or 0)


def verify_ledger() -> list[dict]:
    """
    Products whose current_stock disagrees with their ledger replay.

    An empty list means invariant holds for the whole catalog.
    """
    balances = dict(
        db.session.query(StockTransaction.product_id, func.sum(_signed_quantity_expr()))
        .group_by(StockTransaction.product_id)
        .all()
    )

    drift = []
    for product_id, current_stock in db.session.query(Product.id, Product.current_stock).order_by(Product.id):
        ledger = int(balances.get(product_id) or 0)
        if ledger != current_stock:
            drift.append({
                "product_id": product_id,
                "current_stock": current_stock,
                "ledger_balance": ledger,
                "difference": current_stock - ledger,
            })
    return drift
