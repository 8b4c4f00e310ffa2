# Overview: Status state machines for purchase orders and invoice payments.

"""
Stockroom Document Lifecycle Service

================================================================================
PURPOSE: Legal status transitions for purchase orders and invoice payments
================================================================================

PURCHASE ORDER STATE MACHINE:
    Draft -> Sent -> Confirmed -> Partially_Received -> Received
    Confirmed -> Received          (single full receipt)
    any non-terminal -> Cancelled

    Draft:              editable, deletable, not receivable
    Sent:               editable, receivable
    Confirmed:          receivable
    Partially_Received: receivable
    Received:           TERMINAL
    Cancelled:          TERMINAL

RULES:
1. Setting the current status again is a no-op, never an error.
2. Terminal states accept no transition.
3. After a goods receipt the status is DERIVED from received quantities
   (derive_po_status); the manual transition table does not apply there.

INVOICE PAYMENT MACHINE:
    Unpaid <-> Paid
================================================================================
"""

from __future__ import annotations

from typing import Iterable, Literal

from .errors import InvalidArgumentError, InvalidStateError


PO_DRAFT = "Draft"
PO_SENT = "Sent"
PO_CONFIRMED = "Confirmed"
PO_PARTIALLY_RECEIVED = "Partially_Received"
PO_RECEIVED = "Received"
PO_CANCELLED = "Cancelled"

PO_STATUSES = {
    PO_DRAFT,
    PO_SENT,
    PO_CONFIRMED,
    PO_PARTIALLY_RECEIVED,
    PO_RECEIVED,
    PO_CANCELLED,
}
PurchaseOrderStatus = Literal[
    "Draft", "Sent", "Confirmed", "Partially_Received", "Received", "Cancelled"
]

INITIAL_PO_STATUSES = {PO_DRAFT, PO_SENT, PO_CONFIRMED}
RECEIVABLE_STATUSES = {PO_SENT, PO_CONFIRMED, PO_PARTIALLY_RECEIVED}
EDITABLE_STATUSES = {PO_DRAFT, PO_SENT}
DELETABLE_STATUSES = {PO_DRAFT}
TERMINAL_STATUSES = {PO_RECEIVED, PO_CANCELLED}

PO_TRANSITIONS = {
    PO_DRAFT: {PO_SENT, PO_CANCELLED},
    PO_SENT: {PO_CONFIRMED, PO_CANCELLED},
    PO_CONFIRMED: {PO_PARTIALLY_RECEIVED, PO_RECEIVED, PO_CANCELLED},
    PO_PARTIALLY_RECEIVED: {PO_RECEIVED, PO_CANCELLED},
    PO_RECEIVED: set(),
    PO_CANCELLED: set(),
}

PAYMENT_UNPAID = "Unpaid"
PAYMENT_PAID = "Paid"
PAYMENT_STATUSES = {PAYMENT_UNPAID, PAYMENT_PAID}


def validate_po_status(status: str) -> None:
    if status not in PO_STATUSES:
        raise InvalidArgumentError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(PO_STATUSES))}"
        )


def validate_payment_status(status: str) -> None:
    if status not in PAYMENT_STATUSES:
        raise InvalidArgumentError(
            f"Invalid payment status '{status}'. Must be one of: {', '.join(sorted(PAYMENT_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    """
    Check a manual purchase order transition against PO_TRANSITIONS.

    Same-status transitions are allowed (no-op).
    """
    validate_po_status(from_status)
    validate_po_status(to_status)

    if from_status == to_status:
        return True
    return to_status in PO_TRANSITIONS[from_status]


def validate_po_transition(from_status: str, to_status: str) -> None:
    """
    Raises:
        InvalidArgumentError: unknown status
        InvalidStateError: transition not allowed from the current status
    """
    if not can_transition(from_status, to_status):
        raise InvalidStateError(
            f"Cannot change purchase order status from '{from_status}' to '{to_status}'",
            state=from_status,
        )


def validate_initial_po_status(status: str | None) -> str:
    if status is None:
        return PO_DRAFT
    if status not in INITIAL_PO_STATUSES:
        raise InvalidArgumentError(
            f"Invalid initial status '{status}'. Must be one of: {', '.join(sorted(INITIAL_PO_STATUSES))}"
        )
    return status


def can_edit(status: str) -> bool:
    return status in EDITABLE_STATUSES


def can_delete(status: str) -> bool:
    return status in DELETABLE_STATUSES


def can_receive(status: str) -> bool:
    return status in RECEIVABLE_STATUSES


def derive_po_status(items: Iterable[tuple[int, int]]) -> str:
    """
    Derive a purchase order's status from (ordered, received) pairs per item.

    - every item fully received -> Received
    - any item with received > 0 -> Partially_Received
    - otherwise (including no items) -> Confirmed

    Pure: same input, same output. Recomputing after a receipt is idempotent.
    """
    pairs = list(items)
    if not pairs:
        return PO_CONFIRMED

    if all(received >= ordered for ordered, received in pairs):
        return PO_RECEIVED
    if any(received > 0 for _, received in pairs):
        return PO_PARTIALLY_RECEIVED
    return PO_CONFIRMED
