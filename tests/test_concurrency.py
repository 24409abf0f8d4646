"""Two requests on one document, each with its own app context and session."""

from decimal import Decimal

import pytest

from config import TestConfig
from salesdocs import create_app
from salesdocs.documents import update_document
from salesdocs.extensions import db
from salesdocs.mail import init_mail
from salesdocs.models import Document, LineItem
from salesdocs.money import compute_totals
from salesdocs.schemas import DocumentUpdate

from conftest import TODAY, RecordingMailSender


@pytest.fixture()
def app(tmp_path):
    # a file database, so each app context gets its own connection
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'salesdocs.db'}"

    app = create_app(FileConfig)
    init_mail(app, RecordingMailSender())
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


def _item(description, quantity):
    return {"description": description, "quantity": quantity, "unit_price": "400", "tax_rate": "21"}


def test_concurrent_line_item_edits_keep_totals_consistent(app, create_doc):
    offer = create_doc("OFFER", items=[_item("Consulting", "1")])
    offer_id = offer.id
    # this request has read the draft; every edit below keeps the same totals
    assert [item.description for item in offer.line_items] == ["Consulting"]

    with app.app_context():
        other = db.session.get(Document, offer_id)
        update_document(other, DocumentUpdate(line_items=[_item("Consulting (B)", "1")]), today=TODAY)

    offer = update_document(offer, DocumentUpdate(line_items=[_item("Consulting (A)", "1")]), today=TODAY)

    db.session.expire_all()
    assert [item.description for item in offer.line_items] == ["Consulting (A)"]
    assert LineItem.query.filter_by(document_id=offer_id).count() == 1
    totals = compute_totals(offer.line_items).quantized()
    assert offer.total_amount == totals.total_amount == Decimal("400.00")
    assert offer.total_tax == totals.total_tax


def test_line_item_edit_bumps_version(create_doc):
    offer = create_doc("OFFER", items=[_item("Consulting", "1")])
    version = offer.version

    offer = update_document(offer, DocumentUpdate(line_items=[_item("Consulting, onsite", "1")]), today=TODAY)

    assert offer.version == version + 1
