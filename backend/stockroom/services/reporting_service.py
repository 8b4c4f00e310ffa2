# Overview: Derived fields and summaries; pure functions over entity snapshots plus thin DB loaders.

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from typing import Iterable

from ..extensions import db
from ..models import Invoice, Product
from .lifecycle_service import PAYMENT_PAID, PAYMENT_UNPAID


STOCK_STATUS_LOW = "Low Stock"
STOCK_STATUS_OVERSTOCK = "Overstock"
STOCK_STATUS_NORMAL = "Normal"


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    name: str
    sku: str | None
    current_stock: int
    minimum_stock: int
    maximum_stock: int | None
    cost_price_cents: int
    selling_price_cents: int

    @classmethod
    def from_model(cls, product: Product) -> "ProductSnapshot":
        return cls(
            id=product.id,
            name=product.name,
            sku=product.sku,
            current_stock=product.current_stock,
            minimum_stock=product.minimum_stock,
            maximum_stock=product.maximum_stock,
            cost_price_cents=product.cost_price_cents,
            selling_price_cents=product.selling_price_cents,
        )


@dataclass(frozen=True)
class InvoiceSnapshot:
    invoice_date: date
    total_amount_cents: int
    payment_status: str

    @classmethod
    def from_model(cls, invoice: Invoice) -> "InvoiceSnapshot":
        return cls(
            invoice_date=invoice.invoice_date,
            total_amount_cents=invoice.total_amount_cents,
            payment_status=invoice.payment_status,
        )


def stock_status(current_stock: int, minimum_stock: int, maximum_stock: int | None) -> str:
    """Low Stock at or below minimum; Overstock at or above a set maximum; else Normal."""
    if current_stock <= minimum_stock:
        return STOCK_STATUS_LOW
    if maximum_stock is not None and current_stock >= maximum_stock:
        return STOCK_STATUS_OVERSTOCK
    return STOCK_STATUS_NORMAL


def stock_value_cents(current_stock: int, cost_price_cents: int) -> int:
    return current_stock * cost_price_cents


def margin_cents(selling_price_cents: int, cost_price_cents: int) -> int:
    return selling_price_cents - cost_price_cents


def margin_percent(selling_price_cents: int, cost_price_cents: int) -> float | None:
    """Gross margin as a percentage of the selling price. None when nothing is charged."""
    if selling_price_cents <= 0:
        return None
    return round((selling_price_cents - cost_price_cents) * 100 / selling_price_cents, 2)


def stock_report_row(p: ProductSnapshot) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "sku": p.sku,
        "current_stock": p.current_stock,
        "minimum_stock": p.minimum_stock,
        "maximum_stock": p.maximum_stock,
        "stock_value_cents": stock_value_cents(p.current_stock, p.cost_price_cents),
        "margin_cents": margin_cents(p.selling_price_cents, p.cost_price_cents),
        "margin_percent": margin_percent(p.selling_price_cents, p.cost_price_cents),
        "stock_status": stock_status(p.current_stock, p.minimum_stock, p.maximum_stock),
    }


def summarize_stock(products: Iterable[ProductSnapshot]) -> dict:
    total = low = over = 0
    value = 0
    for p in products:
        total += 1
        value += stock_value_cents(p.current_stock, p.cost_price_cents)
        status = stock_status(p.current_stock, p.minimum_stock, p.maximum_stock)
        if status == STOCK_STATUS_LOW:
            low += 1
        elif status == STOCK_STATUS_OVERSTOCK:
            over += 1

    return {
        "total_products": total,
        "total_stock_value_cents": value,
        "low_stock_items": low,
        "overstock_items": over,
        "normal_stock_items": total - low - over,
    }


def summarize_sales(invoices: Iterable[InvoiceSnapshot]) -> dict:
    count = paid_count = unpaid_count = 0
    total = paid = unpaid = 0
    for inv in invoices:
        count += 1
        total += inv.total_amount_cents
        if inv.payment_status == PAYMENT_PAID:
            paid_count += 1
            paid += inv.total_amount_cents
        elif inv.payment_status == PAYMENT_UNPAID:
            unpaid_count += 1
            unpaid += inv.total_amount_cents

    return {
        "total_invoices": count,
        "total_sales_cents": total,
        "paid_amount_cents": paid,
        "unpaid_amount_cents": unpaid,
        "paid_invoices": paid_count,
        "unpaid_invoices": unpaid_count,
        # Integer cents, half-up
        "average_invoice_cents": (total * 2 + count) // (count * 2) if count else 0,
    }


def daily_sales(invoices: Iterable[InvoiceSnapshot]) -> list[dict]:
    """Per invoice_date totals, most recent day first."""
    days: "OrderedDict[date, dict]" = OrderedDict()
    for inv in sorted(invoices, key=lambda i: i.invoice_date, reverse=True):
        row = days.setdefault(
            inv.invoice_date,
            {"date": inv.invoice_date.isoformat(), "invoice_count": 0, "sales_cents": 0, "paid_sales_cents": 0},
        )
        row["invoice_count"] += 1
        row["sales_cents"] += inv.total_amount_cents
        if inv.payment_status == PAYMENT_PAID:
            row["paid_sales_cents"] += inv.total_amount_cents
    return list(days.values())


def stock_report(*, low_stock_only: bool = False) -> dict:
    """Active products with derived fields, plus the catalog-wide summary."""
    products = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    snapshots = [ProductSnapshot.from_model(p) for p in products]
    rows = [stock_report_row(s) for s in snapshots]
    if low_stock_only:
        rows = [r for r in rows if r["stock_status"] == STOCK_STATUS_LOW]

    return {"summary": summarize_stock(snapshots), "items": rows}
