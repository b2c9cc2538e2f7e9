# Overview: Service-layer operations for document numbering; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _read_allocated(org_id: int, document_type: str) -> int:
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(org_id=org_id, document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    org_id: int,
    document_type: str,
    prefix: str,
    pad: int = 4,
) -> str:
    """
    Allocate the next human-readable number for an org/type (RES-0001, ...).

    Runs inside the caller's transaction: the UPDATE ... SET n = n + 1 takes a
    write lock on the sequence row, so a rolled-back booking gives its number
    back and two committed bookings never share one. The first allocation for
    an org inserts the row in a SAVEPOINT so a concurrent first insert does not
    abort the caller's transaction.
    """
    if not org_id:
        raise DocumentSequenceError("org_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.org_id == org_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _read_allocated(org_id, document_type)
    else:
        try:
            with db.session.begin_nested():
                db.session.add(
                    DocumentSequence(org_id=org_id, document_type=document_type, next_number=2)
                )
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _read_allocated(org_id, document_type)

    return f"{prefix}-{next_num:0{pad}d}"
