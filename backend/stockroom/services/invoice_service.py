# Overview: Sales Fulfillment Engine; invoices are created together with their stock decrements.

"""
Invoice Service

LIFECYCLE:
1. create_invoice(): number allocation, header, lines, stock decrements and
   Out transactions in ONE transaction. Any failing line rolls back everything,
   including the allocated invoice number.
2. update_payment_status(): Unpaid <-> Paid. No stock effect.

IMMUTABLE: lines and total_amount_cents never change after creation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from ..extensions import db
from ..models import Invoice, InvoiceItem
from stockroom.time_utils import parse_iso_date, today
from .concurrency import atomic
from .document_service import next_document_number
from .errors import InsufficientStockError, InvalidArgumentError, NotFoundError
from .lifecycle_service import PAYMENT_UNPAID, validate_payment_status
from .reporting_service import InvoiceSnapshot, daily_sales, summarize_sales
from .stock_service import get_product_for_update
from .transaction_service import REFERENCE_SALE, _record_out_inner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvoiceLine:
    product_id: int
    quantity: int
    unit_price_cents: int

    @property
    def total_price_cents(self) -> int:
        return self.quantity * self.unit_price_cents


def _as_int(raw, field: str, position: int) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise InvalidArgumentError(f"Line {position}: {field} must be an integer")
    return raw


def _parse_lines(lines) -> list[InvoiceLine]:
    if not isinstance(lines, list) or not lines:
        raise InvalidArgumentError("Invoice must have at least one item")

    parsed = []
    for position, raw in enumerate(lines, start=1):
        if not isinstance(raw, dict):
            raise InvalidArgumentError(f"Line {position}: must be an object")
        for key in ("product_id", "quantity", "unit_price_cents"):
            if raw.get(key) is None:
                raise InvalidArgumentError(f"Line {position}: {key} is required")

        line = InvoiceLine(
            product_id=_as_int(raw["product_id"], "product_id", position),
            quantity=_as_int(raw["quantity"], "quantity", position),
            unit_price_cents=_as_int(raw["unit_price_cents"], "unit_price_cents", position),
        )
        if line.quantity <= 0:
            raise InvalidArgumentError(f"Line {position}: quantity must be greater than 0")
        if line.unit_price_cents < 0:
            raise InvalidArgumentError(f"Line {position}: unit_price_cents must be >= 0")
        parsed.append(line)
    return parsed


def _parse_date(value, field: str) -> date | None:
    try:
        return parse_iso_date(value)
    except ValueError:
        raise InvalidArgumentError(f"{field} must be an ISO-8601 date")


def create_invoice(
    *,
    customer_name: str,
    lines: list[dict],
    actor_id: int | None,
    invoice_date=None,
    payment_status: str | None = None,
) -> Invoice:
    """
    Create an invoice and decrement stock for every line.

    Lines are processed in input order. The same product may appear on more
    than one line; each line sees the stock left by the previous ones.

    Raises:
        InvalidArgumentError: bad header or line input (before any write)
        NotFoundError: a line references a missing product
        InsufficientStockError: a line exceeds the product's current stock
    """
    customer_name = (customer_name or "").strip() if isinstance(customer_name, str) else ""
    if not customer_name:
        raise InvalidArgumentError("Customer name is required")

    parsed = _parse_lines(lines)
    status = payment_status or PAYMENT_UNPAID
    validate_payment_status(status)
    inv_date = _parse_date(invoice_date, "invoice_date") or today()

    with atomic():
        invoice_number = next_document_number(document_type="INVOICE")

        invoice = Invoice(
            invoice_number=invoice_number,
            customer_name=customer_name,
            invoice_date=inv_date,
            total_amount_cents=sum(line.total_price_cents for line in parsed),
            payment_status=status,
            created_by=actor_id,
        )
        db.session.add(invoice)
        db.session.flush()

        for line in parsed:
            product = get_product_for_update(line.product_id)
            if product.current_stock < line.quantity:
                raise InsufficientStockError(
                    f"Insufficient stock for product ID {line.product_id}. "
                    f"Available: {product.current_stock}, Requested: {line.quantity}",
                    product_id=line.product_id,
                    available=product.current_stock,
                    requested=line.quantity,
                )

            db.session.add(
                InvoiceItem(
                    invoice_id=invoice.id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    total_price_cents=line.total_price_cents,
                )
            )
            _record_out_inner(
                product_id=line.product_id,
                quantity=line.quantity,
                actor_id=actor_id,
                reference_id=invoice_number,
                reference_type=REFERENCE_SALE,
            )

    logger.info(
        "Created invoice %s with %s line(s), total %s cents",
        invoice_number,
        len(parsed),
        invoice.total_amount_cents,
    )
    return invoice


def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(id=invoice_id).first()
    if invoice is None:
        raise NotFoundError("Invoice not found")
    return invoice


def get_invoice_with_items(invoice_id: int) -> dict:
    invoice = get_invoice(invoice_id)
    data = invoice.to_dict()
    data["items"] = [item.to_dict() for item in invoice.items]
    return data


def _filtered_invoices(
    *,
    payment_status: str | None = None,
    customer_name: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    created_by: int | None = None,
):
    q = db.session.query(Invoice)
    if payment_status:
        validate_payment_status(payment_status)
        q = q.filter(Invoice.payment_status == payment_status)
    if customer_name:
        q = q.filter(Invoice.customer_name.ilike(f"%{customer_name}%"))
    if date_from:
        q = q.filter(Invoice.invoice_date >= date_from)
    if date_to:
        q = q.filter(Invoice.invoice_date <= date_to)
    if created_by is not None:
        q = q.filter(Invoice.created_by == created_by)
    return q


def list_invoices(*, limit: int | None = None, **filters) -> list[Invoice]:
    q = _filtered_invoices(**filters).order_by(Invoice.created_at.desc(), Invoice.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def update_payment_status(invoice_id: int, payment_status: str) -> Invoice:
    """Set payment status. Setting the current status again is a no-op."""
    validate_payment_status(payment_status)

    with atomic():
        invoice = get_invoice(invoice_id)
        if invoice.payment_status != payment_status:
            invoice.payment_status = payment_status
            logger.info("Invoice %s marked %s", invoice.invoice_number, payment_status)

    return invoice


def get_sales_stats(*, date_from: date | None = None, date_to: date | None = None) -> dict:
    invoices = _filtered_invoices(date_from=date_from, date_to=date_to).all()
    snapshots = [InvoiceSnapshot.from_model(i) for i in invoices]

    stats = summarize_sales(snapshots)
    stats["daily"] = daily_sales(snapshots)
    return stats
