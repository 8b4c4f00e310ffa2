# Overview: Flask API routes for purchase orders and goods receipts; parses input and returns JSON responses.

"""
Purchase Order Routes

Creating or editing a purchase order never moves stock. Only
POST /<id>/receipt does, and it recomputes the order's status.
"""

from flask import Blueprint, current_app, request, g

from ..decorators import require_auth
from ..services import purchase_order_service
from ..services.errors import StockError
from ..validation import validate_purchase_order_update
from .common import date_arg, error_response, internal_error, limit_arg, ok


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("")
@require_auth
def list_purchase_orders_route():
    """
    Query parameters:
    - supplier_id, status
    - search: matches PO number, supplier name or notes
    - date_from, date_to: order_date range, YYYY-MM-DD, inclusive
    - limit
    """
    try:
        orders = purchase_order_service.list_purchase_orders(
            supplier_id=request.args.get("supplier_id", type=int),
            status=request.args.get("status") or None,
            search=request.args.get("search") or None,
            date_from=date_arg("date_from"),
            date_to=date_arg("date_to"),
            limit=limit_arg(),
        )
        return ok("Purchase orders retrieved successfully", [po.to_dict() for po in orders])
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list purchase orders")
        return internal_error()


@purchase_orders_bp.get("/stats")
@require_auth
def purchase_order_stats_route():
    try:
        return ok(
            "Purchase order statistics retrieved successfully",
            purchase_order_service.get_purchase_order_stats(),
        )
    except Exception:
        current_app.logger.exception("Failed to load purchase order stats")
        return internal_error()


@purchase_orders_bp.get("/<int:po_id>")
@require_auth
def get_purchase_order_route(po_id: int):
    try:
        return ok(
            "Purchase order retrieved successfully",
            purchase_order_service.get_purchase_order_with_items(po_id),
        )
    except StockError as e:
        return error_response(e)


@purchase_orders_bp.post("")
@require_auth
def create_purchase_order_route():
    """
    Request body:
    {
        "supplier_id": 1,                       // required
        "order_date": "2026-03-14",             // required
        "expected_delivery_date": "2026-03-20", // optional
        "status": "Draft",                      // optional: Draft | Sent | Confirmed
        "notes": "...",                         // optional
        "items": [                              // required, non-empty
            {"product_id": 1, "quantity": 10, "unit_cost_cents": 450, "notes": "..."}
        ]
    }
    """
    data = request.get_json(silent=True) or {}

    if not data.get("supplier_id") or not data.get("order_date") or not data.get("items"):
        return ok("Supplier ID, order date, and items are required", status=400)

    try:
        po = purchase_order_service.create_purchase_order(
            supplier_id=data.get("supplier_id"),
            order_date=data.get("order_date"),
            items=data.get("items"),
            actor_id=g.actor_id,
            expected_delivery_date=data.get("expected_delivery_date"),
            notes=data.get("notes"),
            status=data.get("status"),
        )
        return ok(
            "Purchase order created successfully",
            purchase_order_service.get_purchase_order_with_items(po.id),
            201,
        )
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return internal_error()


@purchase_orders_bp.put("/<int:po_id>")
@require_auth
def update_purchase_order_route(po_id: int):
    """
    Header edits for Draft / Sent orders. Only fields present in the body change.
    Status is changed through PATCH /<id>/status.
    """
    data = request.get_json(silent=True) or {}

    try:
        patch = validate_purchase_order_update(data)
        po = purchase_order_service.update_purchase_order(po_id, patch)
        return ok("Purchase order updated successfully", po.to_dict())
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update purchase order")
        return internal_error()


@purchase_orders_bp.patch("/<int:po_id>/status")
@require_auth
def update_status_route(po_id: int):
    """
    Request body:
    {"status": "Sent"}
    """
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if not status:
        return ok("Status is required", status=400)

    try:
        po = purchase_order_service.update_status(po_id, status)
        return ok("Purchase order status updated successfully", po.to_dict())
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update purchase order status")
        return internal_error()


@purchase_orders_bp.delete("/<int:po_id>")
@require_auth
def delete_purchase_order_route(po_id: int):
    try:
        purchase_order_service.delete_purchase_order(po_id)
        return ok("Purchase order deleted successfully")
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete purchase order")
        return internal_error()


@purchase_orders_bp.post("/<int:po_id>/receipt")
@require_auth
def record_receipt_route(po_id: int):
    """
    Request body:
    {
        "received_date": "2026-03-18",          // required
        "notes": "...",                         // optional
        "items": [                              // required, non-empty
            {
                "purchase_order_item_id": 3,    // required
                "product_id": 1,                // required, must match the PO item
                "received_quantity": 10,        // required, > 0, no over-receipt
                "unit_cost_cents": 450,         // required
                "batch_number": "LOT-42",       // optional
                "expiry_date": "2027-01-31",    // optional
                "notes": "..."                  // optional
            }
        ]
    }
    """
    data = request.get_json(silent=True) or {}

    if not data.get("received_date") or not data.get("items"):
        return ok("Received date and items are required", status=400)

    try:
        receipt = purchase_order_service.record_goods_receipt(
            po_id,
            received_date=data.get("received_date"),
            items=data.get("items"),
            actor_id=g.actor_id,
            notes=data.get("notes"),
        )
        po = purchase_order_service.get_purchase_order(po_id)
        return ok(
            "Goods receipt recorded successfully",
            {
                "receipt": {**receipt.to_dict(), "items": [i.to_dict() for i in receipt.items]},
                "purchase_order": po.to_dict(),
            },
            201,
        )
    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record goods receipt")
        return internal_error()
