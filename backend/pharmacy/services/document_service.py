# Overview: Service-layer operations for document numbering; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence, Sale, PurchaseOrder


SALE_SEQUENCE = "SALE"
PURCHASE_ORDER_SEQUENCE = "PURCHASE_ORDER"

# document_type -> (prefix, model, number column)
SEQUENCES = {
    SALE_SEQUENCE: ("INV", Sale, Sale.invoice_number),
    PURCHASE_ORDER_SEQUENCE: ("PO", PurchaseOrder, PurchaseOrder.order_number),
}

NUMBER_PAD = 6


def format_document_number(prefix: str, number: int, pad: int = NUMBER_PAD) -> str:
    return f"{prefix}{number:0{pad}d}"


def _seed_value(document_type: str) -> int:
    """
    First number for a counter that does not exist yet: one past the
    existing document count, or past the highest number already issued if
    deletions have left the count behind it.
    """
    prefix, model, column = SEQUENCES[document_type]
    count = db.session.query(func.count(model.id)).scalar() or 0
    # Numbers outgrow the padding, so longer means larger
    highest = (
        db.session.query(column)
        .filter(column.like(f"{prefix}%"))
        .order_by(func.length(column).desc(), column.desc())
        .limit(1)
        .scalar()
    )
    highest_number = 0
    if highest and highest.startswith(prefix) and highest[len(prefix):].isdigit():
        highest_number = int(highest[len(prefix):])
    return max(count, highest_number) + 1


def _increment(document_type: str) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(document_type: str) -> str:
    """
    Allocate the next number for a document type (e.g. "INV000123").

    Must be called inside the caller's transaction: the counter UPDATE holds
    the row until commit, and a rollback returns the number.
    """
    if document_type not in SEQUENCES:
        raise ValidationError(f"Unknown document type: {document_type}")
    prefix = SEQUENCES[document_type][0]

    number = _increment(document_type)
    if number is None:
        seed = _seed_value(document_type)
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=seed + 1))
            number = seed
        except IntegrityError:
            # Another writer created the counter first
            number = _increment(document_type)
            if number is None:
                raise

    return format_document_number(prefix, number)
