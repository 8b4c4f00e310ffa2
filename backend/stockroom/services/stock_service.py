# Overview: Ledger primitives; the only code allowed to write Product.current_stock.

"""
Stockroom Ledger Primitives (authoritative)

- adjust_stock() is the single write path to products.current_stock.
- 'subtract' is ONE conditional UPDATE:
      UPDATE products SET current_stock = current_stock - :q
      WHERE id = :id AND current_stock >= :q
  There is no read-then-write window, so concurrent decrements on the same
  product produce at most one winner per unit of stock; the loser sees zero
  affected rows and gets InsufficientStockError.
- Zero affected rows is always a failure, never silently ignored.
- These functions never commit. Callers (the recorder, the engines) pair each
  call with a StockTransaction row inside one atomic() block.
"""

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.orm.util import identity_key

from ..extensions import db
from ..models import Product
from .concurrency import lock_for_update
from .errors import InvalidArgumentError, InsufficientStockError, NotFoundError


MODE_SET = "set"
MODE_ADD = "add"
MODE_SUBTRACT = "subtract"
STOCK_MODES = {MODE_SET, MODE_ADD, MODE_SUBTRACT}


def get_product_for_update(product_id: int) -> Product:
    """Load a product with a row lock and fresh column values."""
    product = (
        lock_for_update(db.session.query(Product).filter_by(id=product_id))
        .populate_existing()
        .first()
    )
    if product is None:
        raise NotFoundError(f"Product with ID {product_id} not found")
    return product


def read_current_stock(product_id: int) -> int:
    """Re-read current_stock from the database inside the caller's transaction."""
    return get_product_for_update(product_id).current_stock


def _stock_update_stmt(product_id: int, quantity: int, mode: str):
    stmt = update(Product).where(Product.id == product_id)
    if mode == MODE_ADD:
        stmt = stmt.values(current_stock=Product.current_stock + quantity)
    elif mode == MODE_SUBTRACT:
        stmt = stmt.where(Product.current_stock >= quantity).values(
            current_stock=Product.current_stock - quantity
        )
    else:
        stmt = stmt.values(current_stock=quantity)
    return stmt.execution_options(synchronize_session=False)


def _expire_cached_stock(product_id: int) -> None:
    cached = db.session.identity_map.get(identity_key(Product, product_id))
    if cached is not None:
        db.session.expire(cached, ["current_stock"])


def apply_stock_mutation(product_id: int, quantity: int, mode: str) -> int:
    """Run the raw UPDATE and return the affected row count (0 or 1)."""
    if mode not in STOCK_MODES:
        raise InvalidArgumentError("Operation must be set, add, or subtract")
    if quantity is None or quantity < 0:
        raise InvalidArgumentError("Quantity must be a non-negative integer")

    result = db.session.execute(_stock_update_stmt(product_id, quantity, mode))
    if result.rowcount:
        _expire_cached_stock(product_id)
    return result.rowcount


def adjust_stock(product_id: int, quantity: int, mode: str = MODE_SET) -> bool:
    """
    Mutate a product's stock level.

    Returns True when exactly the requested change was applied. Raises:
        InvalidArgumentError: unknown mode or negative quantity
        NotFoundError: product does not exist
        InsufficientStockError: subtract would drive stock below zero
    """
    affected = apply_stock_mutation(product_id, quantity, mode)
    if affected:
        return True

    current = (
        db.session.query(Product.current_stock).filter(Product.id == product_id).scalar()
    )
    if current is None:
        raise NotFoundError(f"Product with ID {product_id} not found")
    if mode == MODE_SUBTRACT:
        raise InsufficientStockError(
            f"Insufficient stock. Available: {current}, Requested: {quantity}",
            product_id=product_id,
            available=current,
            requested=quantity,
        )
    raise InvalidArgumentError("Stock could not be updated")
