# Overview: Human-readable document numbers (DEL-2026-0001 and friends).

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..errors import ValidationError
from ..time_utils import utcnow


PREFIXES = {
    "DELIVERY": "DEL",
    "ISSUE": "ISS",
    "TRANSFER": "TRF",
    "NCR": "NCR",
}


def next_document_number(*, document_type: str, year: int | None = None, pad: int = 4) -> str:
    """
    Allocate the next number for a document type within a calendar year.

    Runs inside the caller's transaction: a rolled-back posting gives its
    number back. The UPDATE takes a row lock on (document_type, year); the
    first allocation of a year races on the unique constraint and falls back
    to the UPDATE inside a savepoint.
    """
    prefix = PREFIXES.get(document_type)
    if not prefix:
        raise ValidationError(f"Unknown document type {document_type}")
    if year is None:
        year = utcnow().year

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, year=year, next_number=2))
            return f"{prefix}-{year}-{1:0{pad}d}"
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, year=year)
        .scalar()
    )
    return f"{prefix}-{year}-{current - 1:0{pad}d}"
