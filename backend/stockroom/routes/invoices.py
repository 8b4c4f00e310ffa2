# Overview: Flask API routes for invoices; parses input and returns JSON responses.

from flask import Blueprint, current_app, request, g

from ..decorators import require_auth
from ..services import invoice_service
from ..services.errors import StockError
from .common import date_arg, error_response, internal_error, limit_arg, ok


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("")
@require_auth
def list_invoices_route():
    """
    Query parameters:
    - payment_status: Unpaid | Paid
    - customer_name: substring match
    - date_from, date_to: invoice_date range, YYYY-MM-DD, inclusive
    - created_by, limit
    """
    try:
        invoices = invoice_service.list_invoices(
            payment_status=request.args.get("payment_status") or None,
            customer_name=request.args.get("customer_name") or None,
            date_from=date_arg("date_from"),
            date_to=date_arg("date_to"),
            created_by=request.args.get("created_by", type=int),
            limit=limit_arg(),
        )
        return ok("Invoices retrieved successfully", [i.to_dict() for i in invoices])
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return internal_error()


@invoices_bp.get("/stats")
@require_auth
def sales_stats_route():
    try:
        stats = invoice_service.get_sales_stats(
            date_from=date_arg("date_from"),
            date_to=date_arg("date_to"),
        )
        return ok("Sales statistics retrieved successfully", stats)
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load sales stats")
        return internal_error()


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    try:
        return ok("Invoice retrieved successfully", invoice_service.get_invoice_with_items(invoice_id))
    except StockError as e:
        return error_response(e)


@invoices_bp.post("")
@require_auth
def create_invoice_route():
    """
    Request body:
    {
        "customer_name": "Walk-in",     // required
        "invoice_date": "2026-03-14",   // optional, defaults to today
        "payment_status": "Unpaid",     // optional: Unpaid (default) | Paid
        "items": [                      // required, non-empty
            {"product_id": 1, "quantity": 2, "unit_price_cents": 1000}
        ]
    }

    All-or-nothing: one failing line leaves no invoice, no items and no
    stock change behind.
    """
    data = request.get_json(silent=True) or {}

    if not data.get("customer_name") or not data.get("items"):
        return ok("Customer name and items are required", status=400)

    try:
        invoice = invoice_service.create_invoice(
            customer_name=data.get("customer_name"),
            lines=data.get("items"),
            actor_id=g.actor_id,
            invoice_date=data.get("invoice_date"),
            payment_status=data.get("payment_status"),
        )
        return ok("Invoice created successfully", invoice_service.get_invoice_with_items(invoice.id), 201)
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return internal_error()


@invoices_bp.patch("/<int:invoice_id>/payment")
@require_auth
def update_payment_route(invoice_id: int):
    """
    Request body:
    {"payment_status": "Paid"}
    """
    data = request.get_json(silent=True) or {}
    status = data.get("payment_status")
    if not status:
        return ok("Payment status is required", status=400)

    try:
        invoice = invoice_service.update_payment_status(invoice_id, status)
        return ok("Payment status updated successfully", invoice.to_dict())
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return internal_error()
