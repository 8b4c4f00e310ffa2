from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z, to_iso_date


class StockTransaction(db.Model):
    """
    Append-only stock ledger entry.

    QUANTITY SIGN CONVENTION:
    - In / Out: quantity is the unsigned magnitude moved
    - Adjustment: quantity is the signed delta (new - previous), may be 0

    Rows are never updated or deleted. Product.current_stock must always equal
    SUM(signed_quantity) over a product's rows.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        db.CheckConstraint(
            "transaction_type = 'Adjustment' OR quantity > 0",
            name="ck_stock_tx_in_out_positive",
        ),
        db.Index("ix_stock_tx_product_created", "product_id", "created_at"),
        db.Index("ix_stock_tx_type_created", "transaction_type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    # Document that caused the movement (invoice number, receipt number, batch number...)
    reference_id = db.Column(db.String(64), nullable=True, index=True)
    reference_type = db.Column(db.String(16), nullable=False, default="Manual")

    unit_cost_cents = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    # Actor id injected by the auth layer; users live outside this service
    created_by = db.Column(db.Integer, nullable=True, index=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    product = db.relationship("Product")

    @property
    def signed_quantity(self) -> int:
        if self.transaction_type == "Out":
            return -self.quantity
        return self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "transaction_type": self.transaction_type,
            "quantity": self.quantity,
            "signed_quantity": self.signed_quantity,
            "reference_id": self.reference_id,
            "reference_type": self.reference_type,
            "unit_cost_cents": self.unit_cost_cents,
            "note": self.note,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class ProductBatch(db.Model):
    """
    Lot/expiry sub-ledger for products with has_batches=True.

    quantity is the total received into the lot; available_quantity is what
    remains. 0 <= available_quantity <= quantity at all times.
    """
    __tablename__ = "product_batches"
    __table_args__ = (
        # Batch numbers are unique per product, not globally
        db.UniqueConstraint("product_id", "batch_number", name="uq_product_batches_product_number"),
        db.CheckConstraint(
            "available_quantity >= 0 AND available_quantity <= quantity",
            name="ck_product_batches_available_range",
        ),
        db.Index("ix_product_batches_expiry", "expiry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    batch_number = db.Column(db.String(64), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    available_quantity = db.Column(db.Integer, nullable=False)

    cost_price_cents = db.Column(db.Integer, nullable=True)
    manufacture_date = db.Column(db.Date, nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))
    supplier = db.relationship("Supplier")

    def __repr__(self) -> str:
        return f"<ProductBatch id={self.id} product_id={self.product_id} batch={self.batch_number!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "batch_number": self.batch_number,
            "quantity": self.quantity,
            "available_quantity": self.available_quantity,
            "cost_price_cents": self.cost_price_cents,
            "manufacture_date": to_iso_date(self.manufacture_date),
            "expiry_date": to_iso_date(self.expiry_date),
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
