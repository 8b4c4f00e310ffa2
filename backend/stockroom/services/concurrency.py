# Overview: Service-layer operations for concurrency; transaction scope and row locking.

from __future__ import annotations

from contextlib import contextmanager

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Correctness of stock decrements does not depend on it: the decrement
    itself is a conditional UPDATE (see stock_service.adjust_stock).
    """
    return query.with_for_update()


@contextmanager
def atomic():
    """
    One unit of work on the request-scoped session.

    Commits when the block finishes; on ANY exception the session is rolled
    back before the exception propagates, so no partial stock mutation,
    ledger row or document can survive a failed operation.

    Engine operations are not retried automatically: invoice, PO and receipt
    creation allocate document numbers and are not safe to replay blindly.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
