# Overview: Flask API routes for product batches; parses input and returns JSON responses.

from flask import Blueprint, current_app, request, g

from ..decorators import require_auth, require_role
from ..services import batch_service
from ..services.errors import StockError
from ..validation import validate_batch_create, validate_batch_update
from .common import error_response, internal_error, ok


product_batches_bp = Blueprint("product_batches", __name__, url_prefix="/api/product-batches")


@product_batches_bp.get("")
@require_auth
def list_batches_route():
    """
    Query parameters:
    - product_id: only this product's active batches, soonest expiry first
    """
    try:
        batches = batch_service.list_batches(request.args.get("product_id", type=int))
        return ok("Batches retrieved successfully", [b.to_dict() for b in batches])
    except Exception:
        current_app.logger.exception("Failed to list batches")
        return internal_error()


@product_batches_bp.get("/expiring")
@require_auth
def expiring_batches_route():
    """
    Query parameters:
    - days: look-ahead window (default EXPIRY_WARNING_DAYS)
    """
    days = request.args.get("days", current_app.config["EXPIRY_WARNING_DAYS"], type=int)
    try:
        batches = batch_service.list_expiring_within(days)
        return ok("Expiring batches retrieved successfully", [b.to_dict() for b in batches])
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list expiring batches")
        return internal_error()


@product_batches_bp.get("/<int:batch_id>")
@require_auth
def get_batch_route(batch_id: int):
    try:
        return ok("Batch retrieved successfully", batch_service.get_batch(batch_id).to_dict())
    except StockError as e:
        return error_response(e)


@product_batches_bp.post("")
@require_auth
def create_batch_route():
    """
    Request body:
    {
        "product_id": 1,                // required
        "batch_number": "LOT-42",       // required, unique per product
        "quantity": 20,                 // required, > 0
        "available_quantity": 20,       // optional, defaults to quantity
        "cost_price_cents": 450,        // optional
        "manufacture_date": "2026-01-01",
        "expiry_date": "2027-01-01",    // required when the product tracks expiry
        "supplier_id": 1,
        "notes": "..."
    }

    The available quantity is added to the product's stock (In transaction).
    """
    data = request.get_json(silent=True) or {}

    try:
        fields = validate_batch_create(data)
        batch = batch_service.create_batch(actor_id=g.actor_id, **fields)
        return ok("Batch created successfully", batch.to_dict(), 201)
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create batch")
        return internal_error()


@product_batches_bp.put("/<int:batch_id>")
@require_auth
def update_batch_route(batch_id: int):
    """
    Only fields present in the body change. A new `quantity` moves stock by
    the difference.
    """
    data = request.get_json(silent=True) or {}

    try:
        patch = validate_batch_update(data)
        batch = batch_service.update_batch(batch_id, patch, actor_id=g.actor_id)
        return ok("Batch updated successfully", batch.to_dict())
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update batch")
        return internal_error()


@product_batches_bp.patch("/<int:batch_id>/quantity")
@require_auth
def update_batch_quantity_route(batch_id: int):
    """
    Request body:
    {"available_quantity": 12}      // 0 <= value <= batch quantity; no stock effect
    """
    data = request.get_json(silent=True) or {}
    available = data.get("available_quantity")
    if available is None or isinstance(available, bool) or not isinstance(available, int) or available < 0:
        return ok("Valid available_quantity is required", status=400)

    try:
        batch = batch_service.update_batch_quantity(batch_id, available)
        return ok("Batch quantity updated successfully", batch.to_dict())
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update batch quantity")
        return internal_error()


@product_batches_bp.delete("/<int:batch_id>")
@require_auth
@require_role("Owner", "Manager")
def delete_batch_route(batch_id: int):
    """Remaining available quantity is taken out of stock before the batch is removed."""
    try:
        batch_service.delete_batch(batch_id, actor_id=g.actor_id)
        return ok("Batch deleted successfully")
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete batch")
        return internal_error()
