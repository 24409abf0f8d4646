"""
salesdocs/conversion.py

Offer -> Invoice conversion.

Preconditions:
- the source is an OFFER in ACCEPTED and has not been converted yet
- a default INVOICE template exists for the offer's language in the same
  company (missing template is an error, never silently defaulted)

The new invoice is a DRAFT that copies customer, language, totals, payment
terms, notes and every line item VERBATIM from the offer (nothing is
recomputed, so totals cannot drift). The offer keeps its ACCEPTED status
and gets converted_to_invoice_id.

Atomicity / races:
- invoice, its line items and the offer back-reference commit together.
- The back-reference is written with a conditional UPDATE that only
  matches while converted_to_invoice_id IS NULL; the loser of two
  concurrent conversions matches nothing, rolls back and fails.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy import update

from .audit import log_action, serialize_model
from .documents import INVOICE_DUE_DAYS, default_template
from .errors import PreconditionFailedError
from .extensions import db
from .models import Document, DocumentStatus, DocumentType, LineItem
from .numbering import insert_numbered

logger = logging.getLogger(__name__)


def check_convertible(offer: Document) -> None:
    if offer.type != DocumentType.OFFER:
        raise PreconditionFailedError("Only offers can be converted to invoices.")
    if offer.status != DocumentStatus.ACCEPTED:
        raise PreconditionFailedError(
            "Only accepted offers can be converted to invoices.",
            details={"status": offer.status.value},
        )
    if offer.converted_to_invoice_id is not None:
        raise PreconditionFailedError(
            "Offer has already been converted to an invoice.",
            details={"invoice_id": offer.converted_to_invoice_id},
        )


def _default_invoice_template(offer: Document):
    template = default_template(offer.company_id, DocumentType.INVOICE, offer.language_code)
    if template is None:
        raise PreconditionFailedError(
            f"No default invoice template found for language: {offer.language_code}",
            details={"language_code": offer.language_code},
        )
    return template


def _clone_line_items(offer: Document) -> list[LineItem]:
    return [
        LineItem(
            position=item.position,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            discount=item.discount,
            tax_rate=item.tax_rate,
        )
        for item in offer.line_items
    ]


def convert_offer_to_invoice(offer: Document, *, today: date | None = None) -> Document:
    """Create the invoice for an ACCEPTED offer and link both records."""
    today = today or date.today()

    check_convertible(offer)
    template_id = _default_invoice_template(offer).id

    offer_id = offer.id
    company_id = offer.company_id

    def build(document_number: str) -> Document:
        # runs again after a numbering rollback; re-reads the (expired) offer
        invoice = Document(
            company_id=company_id,
            customer_id=offer.customer_id,
            template_id=template_id,
            type=DocumentType.INVOICE,
            status=DocumentStatus.DRAFT,
            document_number=document_number,
            language_code=offer.language_code,
            issue_date=today,
            due_date=today + timedelta(days=INVOICE_DUE_DAYS),
            total_amount=offer.total_amount,
            total_tax=offer.total_tax,
            total_discount=offer.total_discount,
            payment_terms=offer.payment_terms,
            notes=offer.notes,
            converted_from_offer_id=offer_id,
        )
        invoice.line_items = _clone_line_items(offer)
        db.session.add(invoice)
        return invoice

    invoice = insert_numbered(company_id, DocumentType.INVOICE, build, today=today)

    result = db.session.execute(
        update(Document)
        .where(
            Document.id == offer_id,
            Document.type == DocumentType.OFFER,
            Document.status == DocumentStatus.ACCEPTED,
            Document.converted_to_invoice_id.is_(None),
        )
        .values(converted_to_invoice_id=invoice.id, version=Document.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        logger.warning("Offer %s was converted or changed concurrently", offer_id)
        raise PreconditionFailedError(
            "Offer has already been converted to an invoice or is no longer accepted.",
            details={"offer_id": offer_id},
        )

    log_action(invoice, "CREATE", before=None, after=serialize_model(invoice))
    log_action(offer, "CONVERT", before=None, after={"converted_to_invoice_id": str(invoice.id)})
    db.session.commit()

    logger.info(
        "Converted offer %s into invoice %s",
        offer.document_number,
        invoice.document_number,
        extra={"offer_id": offer_id, "invoice_id": invoice.id},
    )
    return invoice
