# Overview: Procurement Engine; purchase orders, goods receipts and PO status recomputation.

"""
Purchase Order Service

LIFECYCLE (see lifecycle_service.py for the transition table):
1. create_purchase_order(): Draft (or Sent / Confirmed). NO stock effect.
2. update_purchase_order(): header edits while Draft or Sent.
3. update_status(): manual transitions (send, confirm, cancel).
4. record_goods_receipt(): while Sent, Confirmed or Partially_Received.
   In ONE transaction, per received item:
     - GoodsReceiptItem row
     - PurchaseOrderItem.received_quantity += received (never above ordered)
     - stock In (reference = receipt number, reference_type Purchase)
     - optional ProductBatch when the product tracks batches
   then status := derive_po_status(items).
5. delete_purchase_order(): Draft only.

IMMUTABLE: goods receipts are never edited or deleted.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, or_, update

from ..extensions import db
from ..models import (
    GoodsReceipt,
    GoodsReceiptItem,
    PurchaseOrder,
    PurchaseOrderItem,
    Supplier,
)
from stockroom.time_utils import parse_iso_date, today
from .batch_service import _create_batch_inner
from .catalog_service import get_product, get_supplier
from .concurrency import atomic, lock_for_update
from .document_service import next_document_number
from .errors import InvalidArgumentError, InvalidStateError, NotFoundError
from .lifecycle_service import (
    RECEIVABLE_STATUSES,
    can_delete,
    can_edit,
    can_receive,
    derive_po_status,
    validate_initial_po_status,
    validate_po_status,
    validate_po_transition,
)
from .transaction_service import REFERENCE_PURCHASE, _record_in_inner

logger = logging.getLogger(__name__)


PO_PATCH_FIELDS = {"supplier_id", "order_date", "expected_delivery_date", "notes"}


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int
    unit_cost_cents: int
    notes: str | None = None

    @property
    def total_cost_cents(self) -> int:
        return self.quantity * self.unit_cost_cents


@dataclass(frozen=True)
class ReceiptLine:
    purchase_order_item_id: int
    product_id: int
    received_quantity: int
    unit_cost_cents: int
    batch_number: str | None = None
    expiry_date: date | None = None
    notes: str | None = None


def _as_int(raw, field: str, position: int) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise InvalidArgumentError(f"Item {position}: {field} must be an integer")
    return raw


def _parse_date(value, field: str) -> date | None:
    try:
        return parse_iso_date(value)
    except ValueError:
        raise InvalidArgumentError(f"{field} must be an ISO-8601 date")


def _require_fields(raw, position: int, fields: tuple[str, ...]) -> None:
    if not isinstance(raw, dict):
        raise InvalidArgumentError(f"Item {position}: must be an object")
    for key in fields:
        if raw.get(key) is None:
            raise InvalidArgumentError(f"Item {position}: {key} is required")


def _parse_order_lines(items) -> list[OrderLine]:
    if not isinstance(items, list) or not items:
        raise InvalidArgumentError("Purchase order must have at least one item")

    parsed = []
    for position, raw in enumerate(items, start=1):
        _require_fields(raw, position, ("product_id", "quantity", "unit_cost_cents"))
        line = OrderLine(
            product_id=_as_int(raw["product_id"], "product_id", position),
            quantity=_as_int(raw["quantity"], "quantity", position),
            unit_cost_cents=_as_int(raw["unit_cost_cents"], "unit_cost_cents", position),
            notes=raw.get("notes"),
        )
        if line.quantity <= 0:
            raise InvalidArgumentError(f"Item {position}: quantity must be greater than 0")
        if line.unit_cost_cents < 0:
            raise InvalidArgumentError(f"Item {position}: unit_cost_cents must be >= 0")
        parsed.append(line)
    return parsed


def _parse_receipt_lines(items) -> list[ReceiptLine]:
    if not isinstance(items, list) or not items:
        raise InvalidArgumentError("Goods receipt must have at least one item")

    parsed = []
    for position, raw in enumerate(items, start=1):
        _require_fields(
            raw,
            position,
            ("purchase_order_item_id", "product_id", "received_quantity", "unit_cost_cents"),
        )
        batch_number = raw.get("batch_number")
        if batch_number is not None:
            batch_number = str(batch_number).strip() or None

        line = ReceiptLine(
            purchase_order_item_id=_as_int(raw["purchase_order_item_id"], "purchase_order_item_id", position),
            product_id=_as_int(raw["product_id"], "product_id", position),
            received_quantity=_as_int(raw["received_quantity"], "received_quantity", position),
            unit_cost_cents=_as_int(raw["unit_cost_cents"], "unit_cost_cents", position),
            batch_number=batch_number,
            expiry_date=_parse_date(raw.get("expiry_date"), f"Item {position}: expiry_date"),
            notes=raw.get("notes"),
        )
        if line.received_quantity <= 0:
            raise InvalidArgumentError(f"Item {position}: received_quantity must be greater than 0")
        if line.unit_cost_cents < 0:
            raise InvalidArgumentError(f"Item {position}: unit_cost_cents must be >= 0")
        parsed.append(line)
    return parsed


def get_purchase_order(po_id: int) -> PurchaseOrder:
    po = db.session.query(PurchaseOrder).filter_by(id=po_id).first()
    if po is None:
        raise NotFoundError("Purchase order not found")
    return po


def _get_purchase_order_for_update(po_id: int) -> PurchaseOrder:
    po = (
        lock_for_update(db.session.query(PurchaseOrder).filter_by(id=po_id))
        .populate_existing()
        .first()
    )
    if po is None:
        raise NotFoundError("Purchase order not found")
    return po


def get_purchase_order_with_items(po_id: int) -> dict:
    po = get_purchase_order(po_id)
    data = po.to_dict()
    data["items"] = [item.to_dict() for item in po.items]
    data["receipts"] = [
        {**receipt.to_dict(), "items": [i.to_dict() for i in receipt.items]}
        for receipt in po.receipts
    ]
    return data


def list_purchase_orders(
    *,
    supplier_id: int | None = None,
    status: str | None = None,
    search: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int | None = None,
) -> list[PurchaseOrder]:
    q = db.session.query(PurchaseOrder).outerjoin(Supplier, PurchaseOrder.supplier_id == Supplier.id)
    if supplier_id is not None:
        q = q.filter(PurchaseOrder.supplier_id == supplier_id)
    if status:
        validate_po_status(status)
        q = q.filter(PurchaseOrder.status == status)
    if search:
        like = f"%{search}%"
        q = q.filter(
            or_(
                PurchaseOrder.po_number.ilike(like),
                Supplier.name.ilike(like),
                PurchaseOrder.notes.ilike(like),
            )
        )
    if date_from:
        q = q.filter(PurchaseOrder.order_date >= date_from)
    if date_to:
        q = q.filter(PurchaseOrder.order_date <= date_to)

    q = q.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def create_purchase_order(
    *,
    supplier_id: int,
    order_date,
    items: list[dict],
    actor_id: int | None,
    expected_delivery_date=None,
    notes: str | None = None,
    status: str | None = None,
) -> PurchaseOrder:
    """
    Create a purchase order with its items. Stock is untouched.

    Raises:
        InvalidArgumentError: bad header/items or an initial status outside Draft/Sent/Confirmed
        NotFoundError: supplier or a product does not exist
    """
    if isinstance(supplier_id, bool) or not isinstance(supplier_id, int):
        raise InvalidArgumentError("supplier_id is required")
    ordered_on = _parse_date(order_date, "order_date")
    if ordered_on is None:
        raise InvalidArgumentError("order_date is required")
    expected_on = _parse_date(expected_delivery_date, "expected_delivery_date")
    initial_status = validate_initial_po_status(status)
    lines = _parse_order_lines(items)

    with atomic():
        get_supplier(supplier_id)
        for line in lines:
            get_product(line.product_id)

        po = PurchaseOrder(
            po_number=next_document_number(document_type="PURCHASE_ORDER"),
            supplier_id=supplier_id,
            order_date=ordered_on,
            expected_delivery_date=expected_on,
            status=initial_status,
            total_amount_cents=sum(line.total_cost_cents for line in lines),
            notes=notes,
            created_by=actor_id,
        )
        for line in lines:
            po.items.append(
                PurchaseOrderItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_cost_cents=line.unit_cost_cents,
                    total_cost_cents=line.total_cost_cents,
                    received_quantity=0,
                    notes=line.notes,
                )
            )
        db.session.add(po)
        db.session.flush()
        po_number = po.po_number

    logger.info("Created purchase order %s (%s)", po_number, initial_status)
    return po


def update_purchase_order(po_id: int, patch: dict) -> PurchaseOrder:
    """Apply only the header fields present in `patch`. Draft and Sent only."""
    unknown = set(patch) - PO_PATCH_FIELDS
    if unknown:
        raise InvalidArgumentError(f"Field not allowed: {', '.join(sorted(unknown))}")

    with atomic():
        po = _get_purchase_order_for_update(po_id)
        if not can_edit(po.status):
            raise InvalidStateError(
                "Only draft and sent purchase orders can be updated", state=po.status
            )

        if "supplier_id" in patch:
            if patch["supplier_id"] is None:
                raise InvalidArgumentError("supplier_id cannot be null")
            get_supplier(patch["supplier_id"])
            po.supplier_id = patch["supplier_id"]
        if "order_date" in patch:
            ordered_on = _parse_date(patch["order_date"], "order_date")
            if ordered_on is None:
                raise InvalidArgumentError("order_date cannot be null")
            po.order_date = ordered_on
        if "expected_delivery_date" in patch:
            po.expected_delivery_date = _parse_date(
                patch["expected_delivery_date"], "expected_delivery_date"
            )
        if "notes" in patch:
            po.notes = patch["notes"]

    return po


def update_status(po_id: int, status: str) -> PurchaseOrder:
    """
    Manual status transition, checked against the transition table.

    Same status is a no-op.
    """
    with atomic():
        po = _get_purchase_order_for_update(po_id)
        validate_po_transition(po.status, status)
        if po.status != status:
            logger.info("Purchase order %s: %s -> %s", po.po_number, po.status, status)
            po.status = status

    return po


def delete_purchase_order(po_id: int) -> None:
    with atomic():
        po = _get_purchase_order_for_update(po_id)
        if not can_delete(po.status):
            raise InvalidStateError("Only draft purchase orders can be deleted", state=po.status)
        po_number = po.po_number
        db.session.delete(po)

    logger.info("Deleted purchase order %s", po_number)


def _over_receipt(po_item: PurchaseOrderItem, receiving: int) -> InvalidArgumentError:
    return InvalidArgumentError(
        f"Over-receipt on purchase order item {po_item.id}: ordered {po_item.quantity}, "
        f"already received {po_item.received_quantity}, receiving {receiving}"
    )


def _increment_received(po_item: PurchaseOrderItem, receiving: int) -> None:
    """Conditional increment; received_quantity can never pass quantity, even under concurrent receipts."""
    stmt = (
        update(PurchaseOrderItem)
        .where(
            PurchaseOrderItem.id == po_item.id,
            PurchaseOrderItem.received_quantity + receiving <= PurchaseOrderItem.quantity,
        )
        .values(received_quantity=PurchaseOrderItem.received_quantity + receiving)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    db.session.expire(po_item, ["received_quantity"])
    if not result.rowcount:
        raise _over_receipt(po_item, receiving)


def record_goods_receipt(
    po_id: int,
    *,
    received_date,
    items: list[dict],
    actor_id: int | None,
    notes: str | None = None,
) -> GoodsReceipt:
    """
    Receive goods against a purchase order.

    Raises:
        InvalidArgumentError: bad items, item of another PO, product mismatch, over-receipt
        NotFoundError: purchase order or purchase order item does not exist
        InvalidStateError: PO not in Sent, Confirmed or Partially_Received
        ConflictError: batch number already used for the product
    """
    received_on = _parse_date(received_date, "received_date")
    if received_on is None:
        raise InvalidArgumentError("received_date is required")
    lines = _parse_receipt_lines(items)

    with atomic():
        po = _get_purchase_order_for_update(po_id)
        if not can_receive(po.status):
            raise InvalidStateError(
                f"Cannot receive goods for a purchase order in status '{po.status}'. "
                f"Must be one of: {', '.join(sorted(RECEIVABLE_STATUSES))}",
                state=po.status,
            )

        receipt = GoodsReceipt(
            receipt_number=next_document_number(document_type="GOODS_RECEIPT"),
            purchase_order_id=po.id,
            received_date=received_on,
            notes=notes,
            created_by=actor_id,
        )
        db.session.add(receipt)
        db.session.flush()

        for line in lines:
            po_item = (
                db.session.query(PurchaseOrderItem)
                .filter_by(id=line.purchase_order_item_id)
                .first()
            )
            if po_item is None:
                raise NotFoundError(f"Purchase order item {line.purchase_order_item_id} not found")
            if po_item.purchase_order_id != po.id:
                raise InvalidArgumentError(
                    f"Purchase order item {po_item.id} does not belong to purchase order {po.po_number}"
                )
            if po_item.product_id != line.product_id:
                raise InvalidArgumentError(
                    f"Purchase order item {po_item.id} is for product {po_item.product_id}, not {line.product_id}"
                )

            if po_item.received_quantity + line.received_quantity > po_item.quantity:
                raise _over_receipt(po_item, line.received_quantity)

            db.session.add(
                GoodsReceiptItem(
                    goods_receipt_id=receipt.id,
                    purchase_order_item_id=po_item.id,
                    product_id=line.product_id,
                    received_quantity=line.received_quantity,
                    unit_cost_cents=line.unit_cost_cents,
                    batch_number=line.batch_number,
                    expiry_date=line.expiry_date,
                    notes=line.notes,
                )
            )
            _increment_received(po_item, line.received_quantity)

            _record_in_inner(
                product_id=line.product_id,
                quantity=line.received_quantity,
                actor_id=actor_id,
                reference_id=receipt.receipt_number,
                reference_type=REFERENCE_PURCHASE,
                unit_cost_cents=line.unit_cost_cents,
                note=f"Goods receipt from PO {po.po_number}",
            )

            if line.batch_number and get_product(line.product_id).has_batches:
                _create_batch_inner(
                    product_id=line.product_id,
                    batch_number=line.batch_number,
                    quantity=line.received_quantity,
                    available_quantity=line.received_quantity,
                    cost_price_cents=line.unit_cost_cents,
                    manufacture_date=received_on,
                    expiry_date=line.expiry_date,
                    supplier_id=po.supplier_id,
                )

        db.session.flush()
        po.status = derive_po_status((i.quantity, i.received_quantity) for i in po.items)
        receipt_number, po_number, new_status = receipt.receipt_number, po.po_number, po.status

    logger.info(
        "Recorded goods receipt %s for PO %s (%s item(s)); status now %s",
        receipt_number,
        po_number,
        len(lines),
        new_status,
    )
    return receipt


def recompute_po_status(po_id: int) -> PurchaseOrder:
    """Re-derive and store a PO's status from its items. Idempotent."""
    with atomic():
        po = _get_purchase_order_for_update(po_id)
        derived = derive_po_status((i.quantity, i.received_quantity) for i in po.items)
        if po.status != derived:
            po.status = derived
    return po


def get_purchase_order_stats(*, months: int = 12, today_: date | None = None) -> dict:
    by_status = [
        {"status": status, "count": int(count), "total_amount_cents": int(total or 0)}
        for status, count, total in (
            db.session.query(
                PurchaseOrder.status,
                func.count(PurchaseOrder.id),
                func.sum(PurchaseOrder.total_amount_cents),
            )
            .group_by(PurchaseOrder.status)
            .order_by(PurchaseOrder.status.asc())
            .all()
        )
    ]

    ref = today_ or today()
    # First day of the month `months - 1` months back
    start_index = ref.year * 12 + ref.month - 1 - (months - 1)
    start = date(start_index // 12, start_index % 12 + 1, 1)

    monthly: "OrderedDict[tuple[int, int], dict]" = OrderedDict()
    rows = (
        db.session.query(PurchaseOrder.order_date, PurchaseOrder.total_amount_cents)
        .filter(PurchaseOrder.order_date >= start)
        .order_by(PurchaseOrder.order_date.desc())
        .all()
    )
    for order_date, total in rows:
        bucket = monthly.setdefault(
            (order_date.year, order_date.month),
            {"year": order_date.year, "month": order_date.month, "count": 0, "total_amount_cents": 0},
        )
        bucket["count"] += 1
        bucket["total_amount_cents"] += total

    return {
        "total": sum(row["count"] for row in by_status),
        "pending": sum(row["count"] for row in by_status if row["status"] in RECEIVABLE_STATUSES),
        "by_status": by_status,
        "monthly": list(monthly.values()),
    }
