# Overview: Domain error taxonomy shared by every stock-moving service.

"""
Stockroom error kinds (authoritative)

Every engine operation fails with exactly one of these. The kind decides the
HTTP status; the message is safe to show to the caller verbatim, except for
INTERNAL which is logged server-side and replaced by a generic message.
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    INVALID_ARGUMENT = "InvalidArgument"
    NOT_FOUND = "NotFound"
    CONFLICT = "Conflict"
    INSUFFICIENT_STOCK = "InsufficientStock"
    INVALID_STATE = "InvalidState"
    INTERNAL = "Internal"


HTTP_STATUS_BY_KIND = {
    ErrorKind.INVALID_ARGUMENT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 400,
    ErrorKind.INSUFFICIENT_STOCK: 400,
    ErrorKind.INVALID_STATE: 400,
    ErrorKind.INTERNAL: 500,
}


class StockError(Exception):
    """Base class for domain failures raised by the services layer."""
    kind = ErrorKind.INTERNAL

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]


class InvalidArgumentError(StockError):
    """Malformed or out-of-range input."""
    kind = ErrorKind.INVALID_ARGUMENT


class NotFoundError(StockError):
    """Referenced product, batch, invoice or purchase order does not exist."""
    kind = ErrorKind.NOT_FOUND


class ConflictError(StockError):
    """Uniqueness or referential conflict (duplicate batch number, product still referenced)."""
    kind = ErrorKind.CONFLICT


class InsufficientStockError(StockError):
    """A decrement would drive current_stock below zero. Never clamped."""
    kind = ErrorKind.INSUFFICIENT_STOCK

    def __init__(self, message: str, *, product_id: int, available: int, requested: int):
        super().__init__(
            message,
            details={"product_id": product_id, "available": available, "requested": requested},
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class InvalidStateError(StockError):
    """Operation not legal in the entity's current lifecycle state."""
    kind = ErrorKind.INVALID_STATE

    def __init__(self, message: str, *, state: str | None = None):
        super().__init__(message, details={"state": state} if state else None)
        self.state = state
