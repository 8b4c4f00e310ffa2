# Overview: Catalog lookups used to validate engine input, plus the product delete guard.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import (
    Product,
    Supplier,
    StockTransaction,
    InvoiceItem,
    PurchaseOrderItem,
    ProductBatch,
)
from .concurrency import atomic
from .errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError(f"Product with ID {product_id} not found")
    return product


def product_exists(product_id: int) -> bool:
    return db.session.query(Product.id).filter_by(id=product_id).first() is not None


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if supplier is None:
        raise NotFoundError(f"Supplier with ID {supplier_id} not found")
    return supplier


def list_low_stock_products() -> list[Product]:
    """Active products at or below their minimum stock, emptiest first."""
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.current_stock <= Product.minimum_stock)
        .order_by(Product.current_stock.asc(), Product.id.asc())
        .all()
    )


def list_active_products() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .order_by(Product.name.asc())
        .all()
    )


_PRODUCT_REFERENCES = (
    (StockTransaction, "stock transactions"),
    (InvoiceItem, "invoice items"),
    (PurchaseOrderItem, "purchase order items"),
    (ProductBatch, "product batches"),
)


def delete_product(product_id: int) -> None:
    """
    Physically delete a product.

    RULE: a product referenced by ledger history, sales, purchasing or
    batches is never deleted (ConflictError). Deactivate it instead.
    """
    with atomic():
        product = get_product(product_id)

        for model, label in _PRODUCT_REFERENCES:
            referenced = (
                db.session.query(model.id).filter(model.product_id == product_id).first()
            )
            if referenced is not None:
                raise ConflictError(
                    f"Cannot delete product {product_id} - it is referenced in {label}"
                )

        db.session.delete(product)

    logger.info("Deleted product %s", product_id)
