# Overview: Pytest coverage for the pure status machines and derived reporting fields.

from datetime import date

import pytest

from stockroom.services.errors import InvalidArgumentError, InvalidStateError
from stockroom.services.lifecycle_service import (
    can_delete,
    can_edit,
    can_receive,
    can_transition,
    derive_po_status,
    validate_initial_po_status,
    validate_po_transition,
)
from stockroom.services.reporting_service import (
    InvoiceSnapshot,
    ProductSnapshot,
    daily_sales,
    margin_cents,
    margin_percent,
    stock_report,
    stock_report_row,
    stock_status,
    summarize_sales,
    summarize_stock,
)


class TestDerivePoStatus:
    @pytest.mark.parametrize(
        "items, expected",
        [
            ([(10, 0), (5, 0)], "Confirmed"),
            ([(10, 10), (5, 0)], "Partially_Received"),
            ([(10, 1), (5, 0)], "Partially_Received"),
            ([(10, 10), (5, 5)], "Received"),
            ([(3, 3)], "Received"),
            ([], "Confirmed"),
        ],
    )
    def test_derivation(self, items, expected):
        assert derive_po_status(items) == expected

    def test_idempotent(self):
        items = [(10, 4), (2, 2)]
        assert derive_po_status(items) == derive_po_status(list(items))


class TestPoTransitions:
    @pytest.mark.parametrize(
        "src, dst",
        [
            ("Draft", "Sent"),
            ("Sent", "Confirmed"),
            ("Confirmed", "Partially_Received"),
            ("Confirmed", "Received"),
            ("Partially_Received", "Received"),
            ("Draft", "Cancelled"),
            ("Partially_Received", "Cancelled"),
            ("Received", "Received"),
        ],
    )
    def test_allowed(self, src, dst):
        assert can_transition(src, dst) is True
        validate_po_transition(src, dst)

    @pytest.mark.parametrize(
        "src, dst",
        [
            ("Sent", "Draft"),
            ("Draft", "Received"),
            ("Received", "Cancelled"),
            ("Cancelled", "Draft"),
            ("Partially_Received", "Confirmed"),
        ],
    )
    def test_refused(self, src, dst):
        assert can_transition(src, dst) is False
        with pytest.raises(InvalidStateError) as exc:
            validate_po_transition(src, dst)
        assert exc.value.state == src

    def test_unknown_status(self):
        with pytest.raises(InvalidArgumentError):
            can_transition("Draft", "Shipped")

    def test_initial_status(self):
        assert validate_initial_po_status(None) == "Draft"
        assert validate_initial_po_status("Confirmed") == "Confirmed"
        with pytest.raises(InvalidArgumentError):
            validate_initial_po_status("Received")

    def test_capabilities(self):
        assert [s for s in ("Draft", "Sent", "Confirmed") if can_edit(s)] == ["Draft", "Sent"]
        assert can_delete("Draft") and not can_delete("Sent")
        assert not can_receive("Draft")
        assert can_receive("Partially_Received")
        assert not can_receive("Received")


def _snapshot(**overrides):
    fields = dict(
        id=1,
        name="Widget",
        sku="W",
        current_stock=10,
        minimum_stock=5,
        maximum_stock=None,
        cost_price_cents=300,
        selling_price_cents=500,
    )
    fields.update(overrides)
    return ProductSnapshot(**fields)


class TestStockDerivations:
    @pytest.mark.parametrize(
        "current, minimum, maximum, expected",
        [
            (5, 5, None, "Low Stock"),
            (0, 0, 10, "Low Stock"),
            (6, 5, None, "Normal"),
            (10, 5, 10, "Overstock"),
            (9, 5, 10, "Normal"),
        ],
    )
    def test_stock_status(self, current, minimum, maximum, expected):
        assert stock_status(current, minimum, maximum) == expected

    def test_margins(self):
        assert margin_cents(500, 300) == 200
        assert margin_percent(500, 300) == 40.0
        assert margin_percent(300, 200) == 33.33
        assert margin_percent(0, 100) is None

    def test_report_row(self):
        row = stock_report_row(_snapshot())
        assert row["stock_value_cents"] == 3000
        assert row["margin_cents"] == 200
        assert row["stock_status"] == "Normal"

    def test_summarize_stock(self):
        summary = summarize_stock([
            _snapshot(id=1, current_stock=1),
            _snapshot(id=2, current_stock=50, maximum_stock=40),
            _snapshot(id=3, current_stock=10),
        ])
        assert summary == {
            "total_products": 3,
            "total_stock_value_cents": (1 + 50 + 10) * 300,
            "low_stock_items": 1,
            "overstock_items": 1,
            "normal_stock_items": 1,
        }

    def test_stock_report_reads_active_products(self, db_session, make_product):
        make_product(stock=1, name="Bolt", minimum_stock=5)
        make_product(stock=20, name="Anchor", minimum_stock=5)
        make_product(stock=20, name="Hidden", is_active=False)

        report = stock_report()
        assert [r["name"] for r in report["items"]] == ["Anchor", "Bolt"]
        assert report["summary"]["total_products"] == 2

        low = stock_report(low_stock_only=True)
        assert [r["name"] for r in low["items"]] == ["Bolt"]
        assert low["summary"]["total_products"] == 2


class TestSalesSummaries:
    def test_empty(self):
        assert summarize_sales([])["average_invoice_cents"] == 0

    def test_summarize_and_daily(self):
        invoices = [
            InvoiceSnapshot(date(2026, 3, 1), 1000, "Paid"),
            InvoiceSnapshot(date(2026, 3, 1), 500, "Unpaid"),
            InvoiceSnapshot(date(2026, 3, 2), 250, "Paid"),
        ]

        summary = summarize_sales(invoices)
        assert summary["total_sales_cents"] == 1750
        assert summary["paid_amount_cents"] == 1250
        assert summary["unpaid_invoices"] == 1
        assert summary["average_invoice_cents"] == 583

        assert daily_sales(invoices) == [
            {"date": "2026-03-02", "invoice_count": 1, "sales_cents": 250, "paid_sales_cents": 250},
            {"date": "2026-03-01", "invoice_count": 2, "sales_cents": 1500, "paid_sales_cents": 1000},
        ]
