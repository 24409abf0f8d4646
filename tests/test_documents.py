from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm.attributes import set_committed_value

from salesdocs.documents import (
    attach_pdf,
    change_status,
    delete_document,
    list_documents,
    send_document_email,
    update_document,
)
from salesdocs.errors import (
    ConcurrentUpdateError,
    EditLockedError,
    IllegalTransitionError,
    PreconditionFailedError,
    ValidationError,
)
from salesdocs.extensions import db
from salesdocs.models import AuditLog, Customer, Document, DocumentStatus, DocumentType, Template
from salesdocs.schemas import DocumentListQuery, DocumentUpdate, SendEmailIn

from conftest import TODAY


def test_create_stores_rounded_totals_and_defaults(create_doc):
    invoice = create_doc("INVOICE")

    assert invoice.status == DocumentStatus.DRAFT
    assert invoice.document_number == "INV-2025-0001"
    assert invoice.issue_date == TODAY
    assert invoice.due_date == TODAY + timedelta(days=30)
    assert invoice.total_amount == Decimal("1020.00")
    assert invoice.total_tax == Decimal("214.20")
    assert invoice.total_discount == Decimal("80.00")
    assert invoice.grand_total == Decimal("1234.20")
    assert [item.position for item in invoice.line_items] == [1, 2]
    assert invoice.template.is_default


def test_create_records_audit_entry(create_doc):
    offer = create_doc("OFFER")

    entry = AuditLog.query.filter_by(entity_type="Document", entity_id=offer.id).one()
    assert entry.action == "CREATE"


def test_create_with_empty_items_has_zero_totals(create_doc):
    offer = create_doc("OFFER", items=[])

    assert offer.total_amount == 0
    assert offer.total_tax == 0
    assert offer.total_discount == 0


def test_language_defaults_to_customer_preference(create_doc, seeded):
    customer = db.session.get(Customer, seeded.customer_id)
    customer.preferred_language = "nl"
    db.session.commit()

    offer = create_doc("OFFER", language_code=None)

    assert offer.language_code == "nl"
    assert offer.template.language_code == "nl"


def test_create_rejects_unsupported_language(create_doc):
    with pytest.raises(ValidationError):
        create_doc("OFFER", language_code="fr")

    assert Document.query.count() == 0


def test_create_rejects_template_of_other_type(create_doc, seeded):
    invoice_template = Template.query.filter_by(
        company_id=seeded.company_id, type=DocumentType.INVOICE, language_code="en"
    ).first()

    with pytest.raises(ValidationError):
        create_doc("OFFER", template_id=invoice_template.id)


def test_draft_update_replaces_items_and_recomputes(create_doc):
    offer = create_doc("OFFER")
    payload = DocumentUpdate(
        notes="Revised",
        line_items=[{"description": "Audit", "quantity": "1", "unit_price": "99.99", "tax_rate": "9"}],
    )

    offer = update_document(offer, payload, today=TODAY)

    assert offer.notes == "Revised"
    assert [item.description for item in offer.line_items] == ["Audit"]
    assert offer.total_amount == Decimal("99.99")
    assert offer.total_tax == Decimal("9.00")
    assert offer.total_discount == Decimal("0.00")


def test_update_draft_to_sent_sets_issue_date(create_doc):
    offer = create_doc("OFFER", today=date(2025, 3, 1))

    offer = update_document(offer, DocumentUpdate(status="SENT"), today=TODAY)

    assert offer.status == DocumentStatus.SENT
    assert offer.issue_date == TODAY


def test_sent_document_is_edit_locked(create_doc):
    invoice = create_doc("INVOICE")
    change_status(invoice, DocumentStatus.SENT, today=TODAY)

    with pytest.raises(EditLockedError):
        update_document(invoice, DocumentUpdate(notes="late change"))

    with pytest.raises(EditLockedError):
        update_document(invoice, DocumentUpdate(status="PAID", notes="late change"))

    db.session.expire_all()
    assert invoice.status == DocumentStatus.SENT
    assert invoice.notes is None


def test_status_only_update_on_sent_document(create_doc):
    invoice = create_doc("INVOICE")
    change_status(invoice, DocumentStatus.SENT, today=TODAY)

    invoice = update_document(invoice, DocumentUpdate(status="PARTIALLY_PAID"))

    assert invoice.status == DocumentStatus.PARTIALLY_PAID
    assert invoice.total_amount == Decimal("1020.00")


def test_same_status_update_is_a_no_op(create_doc):
    offer = create_doc("OFFER")
    change_status(offer, DocumentStatus.SENT, today=TODAY)

    offer = update_document(offer, DocumentUpdate(status="SENT"))

    assert offer.status == DocumentStatus.SENT


def test_illegal_status_change_is_rejected(create_doc):
    offer = create_doc("OFFER")

    with pytest.raises(IllegalTransitionError):
        change_status(offer, DocumentStatus.ACCEPTED)

    db.session.expire_all()
    assert offer.status == DocumentStatus.DRAFT


def test_invoice_only_field_is_rejected_on_offer(create_doc):
    offer = create_doc("OFFER")

    with pytest.raises(ValidationError):
        update_document(offer, DocumentUpdate(due_date=TODAY))


def test_status_change_revalidates_after_losing_a_race(create_doc):
    offer = create_doc("OFFER")
    change_status(offer, DocumentStatus.SENT, today=TODAY)
    change_status(offer, DocumentStatus.ACCEPTED)

    # this request read the offer while it was still SENT
    stale_version = offer.version - 1
    set_committed_value(offer, "status", DocumentStatus.SENT)
    set_committed_value(offer, "version", stale_version)

    with pytest.raises(IllegalTransitionError):
        change_status(offer, DocumentStatus.DECLINED)

    db.session.expire_all()
    assert offer.status == DocumentStatus.ACCEPTED


def test_status_change_retries_when_still_legal(create_doc):
    invoice = create_doc("INVOICE")
    change_status(invoice, DocumentStatus.SENT, today=TODAY)
    change_status(invoice, DocumentStatus.OVERDUE)

    # stale read taken while SENT; PAID is legal from OVERDUE as well
    stale_version = invoice.version - 1
    set_committed_value(invoice, "status", DocumentStatus.SENT)
    set_committed_value(invoice, "version", stale_version)

    invoice = change_status(invoice, DocumentStatus.PAID)

    assert invoice.status == DocumentStatus.PAID


def test_update_gives_up_after_repeated_races(app, create_doc):
    invoice = create_doc("INVOICE")
    app.config["UPDATE_MAX_ATTEMPTS"] = 1

    assert invoice.version == 1
    set_committed_value(invoice, "version", 0)

    with pytest.raises(ConcurrentUpdateError):
        change_status(invoice, DocumentStatus.SENT, today=TODAY)

    db.session.expire_all()
    assert invoice.status == DocumentStatus.DRAFT


def test_delete_draft_only(create_doc):
    draft = create_doc("OFFER")
    sent = create_doc("OFFER")
    change_status(sent, DocumentStatus.SENT, today=TODAY)

    with pytest.raises(EditLockedError):
        delete_document(sent)

    delete_document(draft)
    assert [d.document_number for d in Document.query.all()] == ["OFFER-2025-0002"]


def test_email_requires_pdf_reference(create_doc, mail_sender):
    offer = create_doc("OFFER")

    with pytest.raises(PreconditionFailedError):
        send_document_email(offer, SendEmailIn(subject="Your offer", body="<p>Hi</p>"))

    assert mail_sender.messages == []


def test_email_sends_and_moves_draft_to_sent(create_doc, mail_sender):
    offer = create_doc("OFFER", today=date(2025, 3, 1))
    attach_pdf(offer, "https://files.example/offer-1.pdf", "drive-1")

    message_id = send_document_email(offer, SendEmailIn(subject="Your offer", body="<p>Hi</p>"), today=TODAY)

    assert message_id == "msg-1"
    message = mail_sender.messages[0]
    assert message.to == "ap@globex.test"
    assert message.sender == "billing@acme.test"
    assert message.attachments[0].filename == "OFFER-2025-0001.pdf"
    assert offer.status == DocumentStatus.SENT
    assert offer.issue_date == TODAY
    assert offer.email_sent is True
    assert offer.last_email_sent_at is not None


def test_failed_email_leaves_document_untouched(create_doc, mail_sender):
    invoice = create_doc("INVOICE")
    attach_pdf(invoice, "https://files.example/inv-1.pdf")
    mail_sender.fail = True

    with pytest.raises(RuntimeError):
        send_document_email(invoice, SendEmailIn(subject="Invoice", body="<p>Due</p>"))

    db.session.expire_all()
    assert invoice.status == DocumentStatus.DRAFT
    assert invoice.email_sent is False


def test_lost_race_after_sending_reports_the_sent_message(app, create_doc, mail_sender):
    offer = create_doc("OFFER")
    attach_pdf(offer, "https://files.example/offer-1.pdf")
    app.config["UPDATE_MAX_ATTEMPTS"] = 1
    assert offer.version == 2
    set_committed_value(offer, "version", 0)

    with pytest.raises(ConcurrentUpdateError) as excinfo:
        send_document_email(offer, SendEmailIn(subject="Your offer", body="<p>Hi</p>"), today=TODAY)

    assert len(mail_sender.messages) == 1
    assert excinfo.value.details["message_id"] == "msg-1"
    assert excinfo.value.details["email_sent"] is True
    db.session.expire_all()
    assert offer.status == DocumentStatus.DRAFT


def test_voided_document_cannot_be_emailed(create_doc):
    invoice = create_doc("INVOICE")
    attach_pdf(invoice, "https://files.example/inv-1.pdf")
    change_status(invoice, DocumentStatus.VOIDED)

    with pytest.raises(PreconditionFailedError):
        send_document_email(invoice, SendEmailIn(subject="Invoice", body="<p>Due</p>"))


def test_resend_keeps_non_draft_status(create_doc, mail_sender):
    invoice = create_doc("INVOICE")
    attach_pdf(invoice, "https://files.example/inv-1.pdf")
    change_status(invoice, DocumentStatus.SENT, today=TODAY)
    change_status(invoice, DocumentStatus.OVERDUE)

    send_document_email(
        invoice,
        SendEmailIn(subject="Reminder", body="<p>Overdue</p>", recipient_email="cfo@globex.test"),
    )

    assert invoice.status == DocumentStatus.OVERDUE
    assert mail_sender.messages[-1].to == "cfo@globex.test"


def test_list_filters_and_paginates(create_doc, seeded):
    for _ in range(3):
        create_doc("INVOICE")
    sent = create_doc("INVOICE", notes="rush order")
    change_status(sent, DocumentStatus.SENT, today=TODAY)
    create_doc("OFFER")

    documents, pagination = list_documents(
        seeded.company_id, DocumentType.INVOICE, DocumentListQuery(limit=3, sort_by="document_number", sort_direction="asc")
    )
    assert [d.document_number for d in documents] == ["INV-2025-0001", "INV-2025-0002", "INV-2025-0003"]
    assert pagination == {
        "total_count": 4,
        "total_pages": 2,
        "current_page": 1,
        "page_size": 3,
        "has_next_page": True,
        "has_previous_page": False,
    }

    documents, _ = list_documents(seeded.company_id, DocumentType.INVOICE, DocumentListQuery(status="SENT"))
    assert [d.id for d in documents] == [sent.id]

    documents, _ = list_documents(seeded.company_id, DocumentType.INVOICE, DocumentListQuery(search="rush"))
    assert [d.id for d in documents] == [sent.id]

    documents, _ = list_documents(seeded.company_id, DocumentType.INVOICE, DocumentListQuery(search="globex"))
    assert len(documents) == 4
