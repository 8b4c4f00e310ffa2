# Overview: Flask API routes for stock transactions; parses input and returns JSON responses.

"""
Stock Transaction Routes

All routes require an authenticated actor (X-User-Id).
Every stock movement posted here appends exactly one ledger row and updates
the product's current stock in the same transaction.
"""

from flask import Blueprint, current_app, request, g

from ..decorators import require_auth
from ..services import transaction_service
from ..services.catalog_service import get_product
from ..services.errors import StockError
from .common import date_arg, error_response, internal_error, limit_arg, ok


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@stock_bp.get("")
@require_auth
def list_transactions_route():
    """
    Query parameters:
    - product_id, transaction_type (In, Out, Adjustment), created_by
    - date_from, date_to: YYYY-MM-DD, inclusive
    - limit: default 100, max 500
    """
    try:
        txs = transaction_service.list_transactions(
            product_id=request.args.get("product_id", type=int),
            transaction_type=request.args.get("transaction_type") or None,
            date_from=date_arg("date_from"),
            date_to=date_arg("date_to"),
            created_by=request.args.get("created_by", type=int),
            limit=limit_arg(),
        )
        return ok("Stock transactions retrieved successfully", [t.to_dict() for t in txs])
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock transactions")
        return internal_error()


@stock_bp.get("/stats")
@require_auth
def transaction_stats_route():
    try:
        stats = transaction_service.get_transaction_stats()
        return ok("Transaction statistics retrieved successfully", stats)
    except Exception:
        current_app.logger.exception("Failed to load transaction stats")
        return internal_error()


@stock_bp.get("/summary")
@require_auth
def movement_summary_route():
    try:
        rows = transaction_service.get_movement_summary(
            date_from=date_arg("date_from"),
            date_to=date_arg("date_to"),
        )
        return ok("Stock movement summary retrieved successfully", rows)
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load stock movement summary")
        return internal_error()


@stock_bp.get("/product/<int:product_id>")
@require_auth
def product_transactions_route(product_id: int):
    try:
        product = get_product(product_id)
        txs = transaction_service.list_transactions(
            product_id=product_id,
            transaction_type=request.args.get("transaction_type") or None,
            limit=limit_arg(),
        )
        return ok(
            "Stock transactions retrieved successfully",
            {
                "product": product.to_dict(),
                "ledger_balance": transaction_service.get_ledger_balance(product_id),
                "transactions": [t.to_dict() for t in txs],
            },
        )
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list product stock transactions")
        return internal_error()


@stock_bp.get("/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    try:
        tx = transaction_service.get_transaction(transaction_id)
        return ok("Stock transaction retrieved successfully", tx.to_dict())
    except StockError as e:
        return error_response(e)


@stock_bp.post("/in")
@require_auth
def stock_in_route():
    """
    Request body:
    {
        "product_id": 1,        // required
        "quantity": 10,         // required, > 0
        "reference_id": "...",  // optional
        "note": "..."           // optional
    }
    """
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    quantity = data.get("quantity")

    if product_id is None or quantity is None:
        return ok("Product ID and quantity are required", status=400)
    if not _is_int(product_id) or not _is_int(quantity):
        return ok("Product ID and quantity must be valid integers", status=400)

    try:
        movement = transaction_service.record_in(
            product_id,
            quantity,
            g.actor_id,
            data.get("reference_id"),
            note=data.get("note"),
        )
        return ok("Stock in recorded successfully", movement.to_dict(), 201)
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record stock in")
        return internal_error()


@stock_bp.post("/out")
@require_auth
def stock_out_route():
    """
    Request body:
    {
        "product_id": 1,        // required
        "quantity": 10,         // required, > 0, <= current stock
        "reference_id": "...",  // optional
        "note": "..."           // optional
    }
    """
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    quantity = data.get("quantity")

    if product_id is None or quantity is None:
        return ok("Product ID and quantity are required", status=400)
    if not _is_int(product_id) or not _is_int(quantity):
        return ok("Product ID and quantity must be valid integers", status=400)

    try:
        movement = transaction_service.record_out(
            product_id,
            quantity,
            g.actor_id,
            data.get("reference_id"),
            note=data.get("note"),
        )
        return ok("Stock out recorded successfully", movement.to_dict(), 201)
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record stock out")
        return internal_error()


@stock_bp.post("/adjustment")
@require_auth
def stock_adjustment_route():
    """
    Request body:
    {
        "product_id": 1,        // required
        "new_quantity": 7,      // required, >= 0 (counted level)
        "reference_id": "...",  // optional
        "note": "..."           // optional
    }

    Returns previous_stock and new_stock alongside the Adjustment row.
    """
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    new_quantity = data.get("new_quantity")

    if product_id is None or new_quantity is None:
        return ok("Product ID and new quantity are required", status=400)
    if not _is_int(product_id) or not _is_int(new_quantity):
        return ok("Product ID and new quantity must be valid integers", status=400)

    try:
        movement = transaction_service.record_adjustment(
            product_id,
            new_quantity,
            g.actor_id,
            data.get("reference_id"),
            note=data.get("note"),
        )
        return ok("Stock adjustment recorded successfully", movement.to_dict(), 201)
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record stock adjustment")
        return internal_error()
