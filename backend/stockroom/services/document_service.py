# Overview: Service-layer operations for document numbering; encapsulates database work.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from stockroom.time_utils import today


DOCUMENT_PREFIXES = {
    "INVOICE": "INV",
    "PURCHASE_ORDER": "PO",
    "GOODS_RECEIPT": "GR",
}


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _increment(document_type: str, on_date: date) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.sequence_date == on_date,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, sequence_date=on_date)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    document_type: str,
    on_date: date | None = None,
    pad: int = 3,
) -> str:
    """
    Allocate the next daily document number, e.g. INV-20260314-007.

    Runs inside the caller's transaction: the increment holds the sequence
    row's write lock until the caller commits, so two concurrent creates can
    never observe the same number, and a rolled-back create releases nothing
    that another create could have seen. The first allocation of a day inserts
    the row under a savepoint; losing that insert race falls back to the
    increment.
    """
    if document_type not in DOCUMENT_PREFIXES:
        raise DocumentSequenceError(f"Unknown document_type: {document_type}")

    seq_date = on_date or today()

    next_num = _increment(document_type, seq_date)
    if next_num is None:
        try:
            with db.session.begin_nested():
                db.session.add(
                    DocumentSequence(document_type=document_type, sequence_date=seq_date, next_number=2)
                )
            next_num = 1
        except IntegrityError:
            next_num = _increment(document_type, seq_date)
            if next_num is None:
                raise DocumentSequenceError(
                    f"Could not allocate {document_type} number for {seq_date.isoformat()}"
                )

    prefix = DOCUMENT_PREFIXES[document_type]
    return f"{prefix}-{seq_date:%Y%m%d}-{next_num:0{pad}d}"
