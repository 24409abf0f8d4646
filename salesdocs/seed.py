"""
salesdocs/seed.py

Bootstrap data for the CLI.

Rules:
- Safe to run multiple times (idempotent).
- Seeds one default template per company x document type x supported
  language, but only where that combination has no default yet.
- create_user bootstraps a user and (optionally) their company profile.

NOTE:
- Template content is a minimal placeholder. Rendering happens outside this
  service; companies are expected to edit their templates.
"""

from __future__ import annotations

from flask import current_app

from .extensions import db
from .models import Company, DocumentType, Template, User


DEFAULT_TEMPLATE_NAMES = {
    (DocumentType.OFFER, "en"): "Standard Offer",
    (DocumentType.OFFER, "nl"): "Standaard Offerte",
    (DocumentType.INVOICE, "en"): "Standard Invoice",
    (DocumentType.INVOICE, "nl"): "Standaard Factuur",
}

DEFAULT_TEMPLATE_CONTENT = (
    "<h1>{{ document.document_number }}</h1>\n"
    "<p>{{ company.name }}</p>\n"
    "<p>{{ customer.company_name }}</p>\n"
    "{% for item in document.line_items %}"
    "<p>{{ item.description }}: {{ item.line_total }}</p>"
    "{% endfor %}\n"
    "<p>{{ document.grand_total }}</p>\n"
)


def _template_name(doc_type: DocumentType, language_code: str) -> str:
    name = DEFAULT_TEMPLATE_NAMES.get((doc_type, language_code))
    if name:
        return name
    return f"Standard {doc_type.value.title()} ({language_code})"


def seed_default_templates(company_id: int | None = None) -> int:
    """
    Create missing default templates. Returns how many were created.

    Idempotent behavior:
    - A (company, type, language) that already has a default is left alone.
    """
    languages = current_app.config.get("SUPPORTED_LANGUAGES", ("en",))

    query = Company.query.order_by(Company.id.asc())
    if company_id is not None:
        query = query.filter(Company.id == company_id)

    created = 0
    for company in query.all():
        for doc_type in DocumentType:
            for language_code in languages:
                exists = Template.query.filter_by(
                    company_id=company.id,
                    type=doc_type,
                    language_code=language_code,
                    is_default=True,
                ).first()
                if exists:
                    continue

                db.session.add(
                    Template(
                        company_id=company.id,
                        name=_template_name(doc_type, language_code),
                        type=doc_type,
                        language_code=language_code,
                        content=DEFAULT_TEMPLATE_CONTENT,
                        is_default=True,
                    )
                )
                created += 1

    db.session.commit()
    return created


def create_user(email: str, password: str, *, name: str | None = None, company_name: str | None = None) -> User:
    """Create an active user; with ``company_name`` also create and link a company."""
    email = (email or "").strip().lower()
    if not email or not password:
        raise ValueError("Email and password are required.")
    if User.query.filter_by(email=email).first():
        raise ValueError(f"User {email} already exists.")

    company = None
    if company_name:
        company = Company(name=company_name.strip(), email=email)
        db.session.add(company)
        db.session.flush()  # Get company.id without full commit

    user = User(email=email, name=name, is_active=True, company_id=company.id if company else None)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    if company is not None:
        seed_default_templates(company.id)
    return user
