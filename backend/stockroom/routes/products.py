# Overview: Flask API routes for products; lookups, derived stock summaries, direct stock edits.

from flask import Blueprint, current_app, request, g

from ..decorators import require_auth
from ..services import catalog_service, reporting_service, transaction_service
from ..services.errors import StockError
from .common import error_response, internal_error, ok


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _with_derived_fields(product) -> dict:
    data = product.to_dict()
    snapshot = reporting_service.ProductSnapshot.from_model(product)
    row = reporting_service.stock_report_row(snapshot)
    for key in ("stock_value_cents", "margin_cents", "margin_percent", "stock_status"):
        data[key] = row[key]
    return data


@products_bp.get("/low-stock")
@require_auth
def low_stock_route():
    try:
        products = catalog_service.list_low_stock_products()
        return ok("Low stock products retrieved successfully", [_with_derived_fields(p) for p in products])
    except Exception:
        current_app.logger.exception("Failed to list low stock products")
        return internal_error()


@products_bp.get("/stock-summary")
@require_auth
def stock_summary_route():
    """
    Query parameters:
    - low_stock_only: "true" to list only Low Stock items (summary still covers all)
    """
    low_only = request.args.get("low_stock_only", "").lower() == "true"
    try:
        report = reporting_service.stock_report(low_stock_only=low_only)
        return ok("Stock summary retrieved successfully", report)
    except Exception:
        current_app.logger.exception("Failed to build stock summary")
        return internal_error()


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
        return ok("Product retrieved successfully", _with_derived_fields(product))
    except StockError as e:
        return error_response(e)


@products_bp.patch("/<int:product_id>/stock")
@require_auth
def update_stock_route(product_id: int):
    """
    Direct stock edit. Still written to the ledger:
    set -> Adjustment, add -> In, subtract -> Out.

    Request body:
    {
        "quantity": 5,            // required, integer >= 0
        "operation": "set"        // optional: set (default), add, subtract
    }
    """
    data = request.get_json(silent=True) or {}
    quantity = data.get("quantity")
    operation = data.get("operation") or "set"

    if quantity is None or isinstance(quantity, bool) or not isinstance(quantity, int):
        return ok("Valid quantity is required", status=400)
    if quantity < 0:
        return ok("Quantity cannot be negative", status=400)

    try:
        movement = transaction_service.apply_stock_update(
            product_id,
            quantity,
            operation,
            g.actor_id,
            data.get("reference_id"),
        )
        return ok("Product stock updated successfully", movement.to_dict())
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product stock")
        return internal_error()


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    try:
        catalog_service.delete_product(product_id)
        return ok("Product deleted successfully")
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return internal_error()
