"""
salesdocs/documents.py

Document lifecycle: create, update, status change, delete, PDF reference,
email delivery, listing.

Transaction rules:
- Each public function is one transaction and commits on success.
- Validation (schemas, edit lock, transition table) runs before anything
  is written; a rejected request leaves no partial state behind.
- Numbering runs inside the insert transaction (numbering.insert_numbered).
- Writes to an existing document are optimistic: Document.version is
  checked on UPDATE. A lost race rolls back, re-reads the document and
  re-validates against the state the winner left.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional

from flask import current_app
from sqlalchemy import or_, update
from sqlalchemy.orm.exc import StaleDataError

from .audit import log_action, serialize_model
from .errors import (
    ConcurrentUpdateError,
    DocumentError,
    EditLockedError,
    PreconditionFailedError,
    ValidationError,
)
from .extensions import db
from .mail import Attachment, MailMessage, get_mail_sender
from .models import Company, Customer, Document, DocumentStatus, DocumentType, LineItem, Template
from .money import compute_totals
from .numbering import insert_numbered
from .schemas import DocumentListQuery, DocumentUpdate, InvoiceCreate, LineItemIn, OfferCreate, SendEmailIn
from .status import EDITABLE_FIELDS, REQUIRED_FIELDS, check_update, ensure_transition, is_editable

logger = logging.getLogger(__name__)

INVOICE_DUE_DAYS = 30

# Fields that only make sense on one document type
_TYPE_ONLY_FIELDS = {
    "due_date": DocumentType.INVOICE,
    "valid_until": DocumentType.OFFER,
}


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _today(today: date | None) -> date:
    return today or date.today()


def check_language(language_code: str) -> None:
    supported = current_app.config.get("SUPPORTED_LANGUAGES", ())
    if supported and language_code not in supported:
        raise ValidationError(
            f"Unsupported language: {language_code}",
            details={"fields": {"language_code": f"must be one of {', '.join(supported)}"}},
        )


def _resolve_customer(company_id: int, customer_id: int) -> Customer:
    customer = Customer.query.filter_by(id=customer_id, company_id=company_id).first()
    if customer is None:
        raise ValidationError("Customer not found", details={"fields": {"customer_id": "unknown customer"}})
    return customer


def default_template(company_id: int, doc_type: DocumentType, language_code: str) -> Optional[Template]:
    return Template.query.filter_by(
        company_id=company_id,
        type=DocumentType(doc_type),
        language_code=language_code,
        is_default=True,
    ).first()


def _resolve_template(
    company_id: int, doc_type: DocumentType, template_id: int | None, language_code: str
) -> Optional[Template]:
    """Explicit template (must match company and type) or the language default."""
    if template_id is None:
        return default_template(company_id, doc_type, language_code)

    template = Template.query.filter_by(id=template_id, company_id=company_id).first()
    if template is None or template.type != DocumentType(doc_type):
        raise ValidationError(
            "Template not found for this document type",
            details={"fields": {"template_id": "unknown template"}},
        )
    return template


def build_line_items(items: Iterable[LineItemIn]) -> list[LineItem]:
    return [
        LineItem(
            position=position,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            discount=item.discount,
            tax_rate=item.tax_rate,
        )
        for position, item in enumerate(items, start=1)
    ]


def apply_totals(document: Document) -> None:
    """Recompute the cached totals from the document's current line items."""
    totals = compute_totals(document.line_items).quantized()
    document.total_amount = totals.total_amount
    document.total_tax = totals.total_tax
    document.total_discount = totals.total_discount


def _save_with_retry(document: Document, mutate: Callable[[Document], str], *, action: str) -> Document:
    """
    Run ``mutate(document)`` and commit, retrying on a lost optimistic race.

    ``mutate`` validates and applies its change; it returns the audit action
    to record (or None to record nothing). It runs again on a freshly
    loaded document after a race, so it must rebuild everything it writes.
    """
    attempts = current_app.config.get("UPDATE_MAX_ATTEMPTS", 3)

    for attempt in range(1, attempts + 1):
        before = serialize_model(document)
        try:
            audit_action = mutate(document)
        except DocumentError:
            db.session.rollback()
            raise
        if db.session.is_modified(document):
            # a line-items-only edit must still UPDATE the row so the version is checked
            document.updated_at = datetime.utcnow()
        try:
            db.session.flush()
        except StaleDataError:
            db.session.rollback()
            logger.info(
                "Document %s changed concurrently, re-validating (attempt %d/%d)",
                document.id, attempt, attempts,
            )
            continue
        if audit_action:
            log_action(document, audit_action, before=before, after=serialize_model(document))
        db.session.commit()
        return document

    raise ConcurrentUpdateError(
        f"Document could not be saved ({action}) because it kept changing. Please retry.",
        details={"document_id": document.id},
    )


def _apply_status(document: Document, target: DocumentStatus, today: date) -> None:
    current = DocumentStatus(document.status)
    target = DocumentStatus(target)
    ensure_transition(document.type, current, target)
    if current == DocumentStatus.DRAFT and target == DocumentStatus.SENT:
        document.issue_date = today
    document.status = target


# ---------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------
def create_document(company_id: int, payload: OfferCreate | InvoiceCreate, *, today: date | None = None) -> Document:
    """Create a DRAFT offer or invoice with a freshly allocated number."""
    doc_type = DocumentType(payload.type)
    today = _today(today)

    customer = _resolve_customer(company_id, payload.customer_id)
    language_code = (
        payload.language_code
        or customer.preferred_language
        or current_app.config.get("DEFAULT_LANGUAGE", "en")
    )
    check_language(language_code)
    template = _resolve_template(company_id, doc_type, payload.template_id, language_code)
    template_id = template.id if template else None

    issue_date = payload.issue_date or today
    due_date = None
    valid_until = None
    if doc_type == DocumentType.INVOICE:
        due_date = payload.due_date or issue_date + timedelta(days=INVOICE_DUE_DAYS)
    else:
        valid_until = payload.valid_until

    def build(document_number: str) -> Document:
        document = Document(
            company_id=company_id,
            customer_id=payload.customer_id,
            template_id=template_id,
            type=doc_type,
            status=DocumentStatus.DRAFT,
            document_number=document_number,
            language_code=language_code,
            issue_date=issue_date,
            due_date=due_date,
            valid_until=valid_until,
            payment_terms=payload.payment_terms,
            notes=payload.notes,
        )
        document.line_items = build_line_items(payload.line_items)
        apply_totals(document)
        db.session.add(document)
        return document

    document = insert_numbered(company_id, doc_type, build, today=today)
    log_action(document, "CREATE", before=None, after=serialize_model(document))
    db.session.commit()

    logger.info(
        "Created %s %s",
        doc_type.value.lower(),
        document.document_number,
        extra={"document_id": document.id, "company_id": company_id},
    )
    return document


# ---------------------------------------------------------------------
# Update / status
# ---------------------------------------------------------------------
def _apply_fields(document: Document, changes: dict) -> None:
    """Apply sent fields to a DRAFT document (schema-validated values)."""
    company_id = document.company_id

    for field, doc_type in _TYPE_ONLY_FIELDS.items():
        if changes.get(field) is not None and document.type != doc_type:
            raise ValidationError(
                f"{field} is not a field of {document.type.value.lower()}s",
                details={"fields": {field: "not allowed for this document type"}},
            )

    if changes.get("language_code") is not None:
        check_language(changes["language_code"])
    if changes.get("customer_id") is not None:
        _resolve_customer(company_id, changes["customer_id"])
    if "template_id" in changes:
        language = changes.get("language_code") or document.language_code
        template = _resolve_template(company_id, document.type, changes["template_id"], language)
        changes = dict(changes, template_id=template.id if template else None)

    for field in EDITABLE_FIELDS:
        if field not in changes or field == "line_items":
            continue
        value = changes[field]
        if value is None and field in REQUIRED_FIELDS:
            continue
        setattr(document, field, value)

    if changes.get("line_items") is not None:
        document.line_items = build_line_items(changes["line_items"])
        apply_totals(document)


def update_document(document: Document, payload: DocumentUpdate, *, today: date | None = None) -> Document:
    """
    Partial update.

    DRAFT: fields and line items are replaced and totals recomputed; a
    status in the same request is applied afterwards.
    Not DRAFT: only a status transition; any CHANGED field is rejected.
    """
    changes = payload.sent_fields()
    today = _today(today)

    def mutate(doc: Document) -> str:
        check_update(doc, changes)
        target = changes.get("status")
        if is_editable(doc.status):
            _apply_fields(doc, {k: v for k, v in changes.items() if k != "status"})
        if target is not None and DocumentStatus(target) != doc.status:
            _apply_status(doc, target, today)
            return "STATUS" if len(changes) == 1 else "UPDATE"
        return "UPDATE"

    document = _save_with_retry(document, mutate, action="update")
    logger.info("Updated document %s", document.document_number, extra={"document_id": document.id})
    return document


def change_status(document: Document, target: DocumentStatus, *, today: date | None = None) -> Document:
    """Status-only transition, validated against the table for the document's type."""
    target = DocumentStatus(target)
    today = _today(today)
    previous = {}

    def mutate(doc: Document) -> str:
        previous["status"] = doc.status
        _apply_status(doc, target, today)
        return "STATUS"

    document = _save_with_retry(document, mutate, action="status change")
    logger.info(
        "Document %s: %s -> %s",
        document.document_number,
        previous["status"].value,
        target.value,
        extra={"document_id": document.id},
    )
    return document


# ---------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------
def delete_document(document: Document) -> None:
    """Delete a DRAFT document; an offer it was converted from becomes convertible again."""
    if not is_editable(document.status):
        raise EditLockedError(
            f"Only DRAFT documents can be deleted; this document is {document.status.value}.",
            details={"status": document.status.value},
        )

    before = serialize_model(document)
    document_id = document.id
    number = document.document_number

    if document.type == DocumentType.INVOICE:
        db.session.execute(
            update(Document)
            .where(Document.converted_to_invoice_id == document_id)
            .values(converted_to_invoice_id=None, version=Document.version + 1)
            .execution_options(synchronize_session=False)
        )

    db.session.delete(document)
    log_action(document, "DELETE", before=before, after=None)
    try:
        db.session.flush()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrentUpdateError("Document changed while deleting it. Please retry.") from exc
    db.session.commit()
    logger.info("Deleted document %s", number, extra={"document_id": document_id})


# ---------------------------------------------------------------------
# PDF reference & email
# ---------------------------------------------------------------------
def attach_pdf(document: Document, pdf_url: str, pdf_drive_id: str | None = None) -> Document:
    """Record an externally generated PDF (rendering and upload happen elsewhere)."""

    def mutate(doc: Document) -> str:
        doc.pdf_url = pdf_url
        doc.pdf_drive_id = pdf_drive_id
        return "UPDATE"

    return _save_with_retry(document, mutate, action="pdf reference")


def send_document_email(document: Document, payload: SendEmailIn, *, today: date | None = None) -> str:
    """
    Email the document's PDF and, for a DRAFT, advance it to SENT.

    The status only changes after the sender returned successfully; a
    failing sender raises and leaves the document untouched.
    """
    today = _today(today)

    if document.status == DocumentStatus.VOIDED:
        raise PreconditionFailedError("Voided documents cannot be sent.")
    if not document.pdf_url:
        raise PreconditionFailedError("PDF must be generated before sending the document via email.")

    recipient = payload.recipient_email or (document.customer.email if document.customer else None)
    if not recipient:
        raise PreconditionFailedError("No recipient email provided and customer has no email.")

    company = db.session.get(Company, document.company_id)
    sender = (company.email if company else None) or current_app.config["MAIL_FROM"]

    message_id = get_mail_sender().send(
        MailMessage(
            to=recipient,
            sender=sender,
            subject=payload.subject,
            html=payload.body,
            attachments=[Attachment(filename=f"{document.document_number}.pdf", path=document.pdf_url)],
        )
    )

    def mutate(doc: Document) -> str:
        if doc.status == DocumentStatus.DRAFT:
            _apply_status(doc, DocumentStatus.SENT, today)
        doc.email_sent = True
        doc.last_email_sent_at = datetime.utcnow()
        return "EMAIL"

    try:
        _save_with_retry(document, mutate, action="email")
    except ConcurrentUpdateError as exc:
        # the message is already out; a client retry would send it again
        logger.warning(
            "Sent document %s to %s but could not record it",
            document.document_number,
            recipient,
            extra={"document_id": document.id, "message_id": message_id},
        )
        exc.details = dict(exc.details or {}, message_id=message_id, email_sent=True)
        raise
    logger.info(
        "Sent document %s to %s",
        document.document_number,
        recipient,
        extra={"document_id": document.id, "message_id": message_id},
    )
    return message_id


# ---------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------
_SORT_COLUMNS = {
    "issue_date": Document.issue_date,
    "document_number": Document.document_number,
    "total_amount": Document.total_amount,
    "created_at": Document.created_at,
}


def list_documents(company_id: int, doc_type: DocumentType, query: DocumentListQuery):
    """Filtered, sorted, paginated documents plus pagination metadata."""
    q = Document.query.filter(Document.company_id == company_id, Document.type == DocumentType(doc_type))

    if query.status is not None:
        q = q.filter(Document.status == query.status)
    if query.customer_id is not None:
        q = q.filter(Document.customer_id == query.customer_id)
    if query.language_code:
        q = q.filter(Document.language_code == query.language_code)
    if query.start_date:
        q = q.filter(Document.issue_date >= query.start_date)
    if query.end_date:
        q = q.filter(Document.issue_date <= query.end_date)
    if query.search:
        term = f"%{query.search}%"
        q = q.join(Customer, Customer.id == Document.customer_id).filter(
            or_(
                Document.document_number.ilike(term),
                Customer.company_name.ilike(term),
                Document.notes.ilike(term),
            )
        )

    column = _SORT_COLUMNS[query.sort_by]
    q = q.order_by(column.asc() if query.sort_direction == "asc" else column.desc(), Document.id.asc())

    total_count = q.count()
    documents = q.offset((query.page - 1) * query.limit).limit(query.limit).all()
    total_pages = math.ceil(total_count / query.limit) if total_count else 0

    pagination = {
        "total_count": total_count,
        "total_pages": total_pages,
        "current_page": query.page,
        "page_size": query.limit,
        "has_next_page": query.page < total_pages,
        "has_previous_page": query.page > 1,
    }
    return documents, pagination
