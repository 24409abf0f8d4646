from datetime import timedelta

import pytest
from sqlalchemy.orm.attributes import set_committed_value

from salesdocs.conversion import convert_offer_to_invoice
from salesdocs.documents import change_status, delete_document
from salesdocs.errors import PreconditionFailedError
from salesdocs.extensions import db
from salesdocs.models import Document, DocumentStatus, DocumentType, Template

from conftest import TODAY


def _item_key(item):
    return (item.description, item.quantity, item.unit_price, item.discount, item.tax_rate)


@pytest.fixture()
def accepted_offer(create_doc):
    offer = create_doc("OFFER", payment_terms="50% upfront", notes="Phase 1")
    change_status(offer, DocumentStatus.SENT, today=TODAY)
    change_status(offer, DocumentStatus.ACCEPTED)
    return offer


def test_conversion_copies_items_and_totals_verbatim(accepted_offer):
    invoice = convert_offer_to_invoice(accepted_offer, today=TODAY)

    assert invoice.type == DocumentType.INVOICE
    assert invoice.status == DocumentStatus.DRAFT
    assert invoice.document_number == "INV-2025-0001"
    assert invoice.customer_id == accepted_offer.customer_id
    assert invoice.language_code == accepted_offer.language_code
    assert invoice.payment_terms == "50% upfront"
    assert invoice.notes == "Phase 1"
    assert invoice.issue_date == TODAY
    assert invoice.due_date == TODAY + timedelta(days=30)
    assert [_item_key(i) for i in invoice.line_items] == [_item_key(i) for i in accepted_offer.line_items]
    assert (invoice.total_amount, invoice.total_tax, invoice.total_discount) == (
        accepted_offer.total_amount,
        accepted_offer.total_tax,
        accepted_offer.total_discount,
    )


def test_conversion_links_both_documents_and_keeps_offer_accepted(accepted_offer):
    invoice = convert_offer_to_invoice(accepted_offer, today=TODAY)

    assert invoice.converted_from_offer_id == accepted_offer.id
    assert accepted_offer.converted_to_invoice_id == invoice.id
    assert accepted_offer.status == DocumentStatus.ACCEPTED


def test_conversion_uses_default_invoice_template(accepted_offer, seeded):
    default = Template.query.filter_by(
        company_id=seeded.company_id, type=DocumentType.INVOICE, language_code="en", is_default=True
    ).one()

    invoice = convert_offer_to_invoice(accepted_offer, today=TODAY)

    assert invoice.template_id == default.id


@pytest.mark.parametrize("status", [DocumentStatus.DRAFT, DocumentStatus.SENT])
def test_only_accepted_offers_convert(create_doc, status):
    offer = create_doc("OFFER")
    if status == DocumentStatus.SENT:
        change_status(offer, DocumentStatus.SENT, today=TODAY)

    with pytest.raises(PreconditionFailedError):
        convert_offer_to_invoice(offer, today=TODAY)

    assert Document.query.filter_by(type=DocumentType.INVOICE).count() == 0


def test_invoices_cannot_be_converted(create_doc):
    invoice = create_doc("INVOICE")

    with pytest.raises(PreconditionFailedError):
        convert_offer_to_invoice(invoice, today=TODAY)


def test_missing_default_invoice_template_fails(accepted_offer, seeded):
    Template.query.filter_by(company_id=seeded.company_id, type=DocumentType.INVOICE).delete()
    db.session.commit()

    with pytest.raises(PreconditionFailedError) as excinfo:
        convert_offer_to_invoice(accepted_offer, today=TODAY)

    assert excinfo.value.details == {"language_code": "en"}
    assert Document.query.filter_by(type=DocumentType.INVOICE).count() == 0


def test_second_conversion_is_rejected(accepted_offer):
    convert_offer_to_invoice(accepted_offer, today=TODAY)

    with pytest.raises(PreconditionFailedError):
        convert_offer_to_invoice(accepted_offer, today=TODAY)

    assert Document.query.filter_by(type=DocumentType.INVOICE).count() == 1


def test_concurrent_conversion_produces_one_invoice(accepted_offer):
    first = convert_offer_to_invoice(accepted_offer, today=TODAY)
    first_id = first.id
    assert accepted_offer.converted_to_invoice_id == first_id

    # the losing request read the offer before the winner linked it
    set_committed_value(accepted_offer, "converted_to_invoice_id", None)

    with pytest.raises(PreconditionFailedError):
        convert_offer_to_invoice(accepted_offer, today=TODAY)

    db.session.expire_all()
    invoices = Document.query.filter_by(type=DocumentType.INVOICE).all()
    assert [i.id for i in invoices] == [first_id]
    assert accepted_offer.converted_to_invoice_id == first_id


def test_deleting_draft_invoice_frees_the_offer(accepted_offer):
    invoice = convert_offer_to_invoice(accepted_offer, today=TODAY)

    delete_document(invoice)
    db.session.expire_all()
    assert accepted_offer.converted_to_invoice_id is None

    again = convert_offer_to_invoice(accepted_offer, today=TODAY)
    assert accepted_offer.converted_to_invoice_id == again.id
