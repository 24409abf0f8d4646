from datetime import date
from types import SimpleNamespace

import pytest

from config import TestConfig
from salesdocs import create_app
from salesdocs.documents import create_document
from salesdocs.extensions import db
from salesdocs.mail import MailSender, init_mail
from salesdocs.models import Company, Customer, Document, User
from salesdocs.schemas import InvoiceCreate, OfferCreate
from salesdocs.seed import seed_default_templates

TODAY = date(2025, 3, 14)

PASSWORD = "correct horse battery"

# Two lines: 2 x 400 at 10% discount, 1 x 300, both at 21% tax
EXAMPLE_ITEMS = [
    {"description": "Consulting", "quantity": "2", "unit_price": "400", "discount": "10", "tax_rate": "21"},
    {"description": "Setup", "quantity": "1", "unit_price": "300", "discount": "0", "tax_rate": "21"},
]


class RecordingMailSender(MailSender):
    """Keeps messages in memory; set ``fail`` to make send() raise."""

    def __init__(self):
        self.messages = []
        self.fail = False

    def send(self, message):
        if self.fail:
            raise RuntimeError("mail provider unavailable")
        self.messages.append(message)
        return f"msg-{len(self.messages)}"


@pytest.fixture()
def app():
    app = create_app(TestConfig)
    init_mail(app, RecordingMailSender())
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def mail_sender(app):
    return app.extensions["salesdocs.mail_sender"]


@pytest.fixture()
def seeded(app):
    """Company with a user, a customer and default templates; returns ids."""
    with app.app_context():
        company = Company(name="ACME BV", email="billing@acme.test")
        db.session.add(company)
        db.session.flush()

        user = User(email="owner@acme.test", name="Owner", company_id=company.id)
        user.set_password(PASSWORD)
        customer = Customer(
            company_id=company.id,
            company_name="Globex",
            email="ap@globex.test",
            preferred_language="en",
        )
        db.session.add_all([user, customer])
        db.session.commit()

        seed_default_templates(company.id)

        return SimpleNamespace(
            company_id=company.id,
            user_id=user.id,
            customer_id=customer.id,
            email=user.email,
        )


@pytest.fixture()
def ctx(app, seeded):
    """App context for tests that call the core directly (not through the client)."""
    with app.app_context():
        yield
        db.session.rollback()


@pytest.fixture()
def create_doc(ctx, seeded):
    def _create(doc_type="OFFER", items=None, today=TODAY, **fields) -> Document:
        schema = OfferCreate if doc_type == "OFFER" else InvoiceCreate
        payload = schema(
            customer_id=seeded.customer_id,
            language_code=fields.pop("language_code", "en"),
            line_items=EXAMPLE_ITEMS if items is None else items,
            **fields,
        )
        return create_document(seeded.company_id, payload, today=today)

    return _create


@pytest.fixture()
def client(app, seeded):
    """Test client logged in as the seeded user."""
    client = app.test_client()
    response = client.post("/auth/login", json={"email": seeded.email, "password": PASSWORD})
    assert response.status_code == 200
    return client
