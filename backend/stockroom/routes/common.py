# Overview: Shared response and query-string helpers for the API blueprints.

from __future__ import annotations

from flask import jsonify, request

from ..services.errors import InsufficientStockError, InvalidArgumentError, StockError
from stockroom.time_utils import parse_iso_date


def ok(message: str, data=None, status: int = 200):
    body = {"message": message}
    if data is not None:
        body["data"] = data
    return jsonify(body), status


def error_response(e: StockError):
    """Translate a domain error into {message[, details]} with its kind's status code."""
    body = {"message": str(e), "error": e.kind.value}
    if isinstance(e, InsufficientStockError):
        body["details"] = e.details
    return jsonify(body), e.http_status


def internal_error():
    return jsonify({"message": "Internal server error"}), 500


def date_arg(name: str):
    """Optional YYYY-MM-DD query parameter."""
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise InvalidArgumentError(f"Invalid {name} format")


def limit_arg(default: int = 100, maximum: int = 500) -> int:
    limit = request.args.get("limit", default, type=int)
    # Clamp limit
    if limit < 1:
        limit = 1
    if limit > maximum:
        limit = maximum
    return limit
