"""
salesdocs/numbering.py

Sequential, human-readable document numbers: ``{PREFIX}-{YEAR}-{NNNN}``.

- PREFIX is INV for invoices and OFFER for offers.
- The sequence restarts at 0001 every calendar year, per company and type.

Concurrency:
- Two requests may compute the same "next" number. The unique constraint
  uq_documents_company_number makes the second flush fail; insert_numbered()
  rolls back, recomputes and tries again, up to NUMBERING_MAX_ATTEMPTS.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Callable, Optional, TypeVar

from flask import current_app
from sqlalchemy.exc import IntegrityError

from .errors import NumberingConflictError
from .extensions import db
from .models import Document, DocumentType

logger = logging.getLogger(__name__)

PREFIXES = {
    DocumentType.INVOICE: "INV",
    DocumentType.OFFER: "OFFER",
}

_WELL_FORMED = re.compile(r"^[A-Z]+-\d{4}-(\d+)$")

T = TypeVar("T")


def number_prefix(doc_type: DocumentType, year: int) -> str:
    return f"{PREFIXES[DocumentType(doc_type)]}-{year:04d}-"


def format_document_number(doc_type: DocumentType, year: int, sequence: int) -> str:
    return f"{number_prefix(doc_type, year)}{sequence:04d}"


def parse_sequence(document_number: str | None) -> int | None:
    """Return the numeric sequence of a number, or None when it is malformed."""
    if not document_number:
        return None
    parts = document_number.split("-")
    if len(parts) != 3:
        return None
    try:
        return int(parts[2])
    except ValueError:
        return None


def next_document_number(doc_type: DocumentType, year: int, latest_number: str | None) -> str:
    """
    Next number after ``latest_number`` (the highest existing one for the
    same company, type and year).

    No prior number => 0001. A prior number that does not parse falls back
    to 0001 as well; the unique constraint still prevents a duplicate.
    """
    sequence = 1
    if latest_number:
        parsed = parse_sequence(latest_number)
        if parsed is None:
            logger.warning(
                "Malformed document number, restarting sequence",
                extra={"document_number": latest_number, "document_type": DocumentType(doc_type).value},
            )
        else:
            sequence = parsed + 1
    return format_document_number(doc_type, year, sequence)


def latest_document_number(company_id: int, doc_type: DocumentType, year: int) -> Optional[str]:
    """
    Highest well-formed number for company + type + year.

    Compared numerically, so OFFER-2025-10000 sorts after OFFER-2025-9999.
    """
    prefix = number_prefix(doc_type, year)
    numbers = (
        db.session.query(Document.document_number)
        .filter(
            Document.company_id == company_id,
            Document.type == DocumentType(doc_type),
            Document.document_number.startswith(prefix, autoescape=True),
        )
        .all()
    )

    best_number = None
    best_sequence = 0
    for (number,) in numbers:
        match = _WELL_FORMED.match(number or "")
        if not match:
            logger.warning("Ignoring malformed document number %s", number)
            continue
        sequence = int(match.group(1))
        if sequence > best_sequence:
            best_sequence = sequence
            best_number = number
    return best_number


def allocate_document_number(company_id: int, doc_type: DocumentType, year: int) -> str:
    return next_document_number(doc_type, year, latest_document_number(company_id, doc_type, year))


def _is_number_conflict(exc: IntegrityError) -> bool:
    """True only for a violation of uq_documents_company_number."""
    orig = getattr(exc, "orig", exc)
    constraint = getattr(getattr(orig, "diag", None), "constraint_name", None)
    if constraint:
        return constraint == "uq_documents_company_number"
    message = str(orig)
    if "uq_documents_company_number" in message:
        return True
    # SQLite reports the columns instead of the constraint name
    return "UNIQUE constraint failed" in message and "documents.document_number" in message


def insert_numbered(
    company_id: int,
    doc_type: DocumentType,
    build: Callable[[str], T],
    *,
    today: date | None = None,
    max_attempts: int | None = None,
) -> T:
    """
    Allocate a number and run ``build(number)`` inside one transaction.

    ``build`` must add its rows to the session; this helper flushes them so a
    number collision surfaces here. On a collision the whole transaction is
    rolled back and ``build`` runs again with a fresh number. The caller
    commits.
    """
    year = (today or date.today()).year
    attempts = max_attempts or current_app.config.get("NUMBERING_MAX_ATTEMPTS", 5)

    for attempt in range(1, attempts + 1):
        number = allocate_document_number(company_id, doc_type, year)
        try:
            result = build(number)
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            if not _is_number_conflict(exc):
                raise
            logger.warning(
                "Document number %s already taken (attempt %d/%d)", number, attempt, attempts
            )
            continue
        return result

    raise NumberingConflictError(
        "Could not allocate a unique document number, please retry.",
        details={"document_type": DocumentType(doc_type).value, "attempts": attempts},
    )
