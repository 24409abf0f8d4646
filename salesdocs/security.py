"""
salesdocs/security.py

Access control helpers.

Key rules:
- Requests are never trusted; all permission checks are server-side.
- Tenant isolation: a user sees and mutates only records of their own
  Company. Records of another company answer 404, never 403, so ids of
  other tenants cannot be discovered.
- Most endpoints require the user to have a company profile first.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable

from flask import abort, jsonify
from flask_login import current_user

from .extensions import db
from .models import Customer, Document, DocumentType, Template


def _forbidden(message: str):
    """Consistent JSON 403."""
    response = jsonify({"error": "forbidden", "message": message})
    response.status_code = 403
    return response


def company_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: authenticated user with a company profile."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not current_user.is_authenticated:
            abort(401)
        if not getattr(current_user, "company_id", None):
            return _forbidden("Company profile required")
        return view_func(*args, **kwargs)

    return wrapper


def current_company_id() -> int:
    return current_user.company_id


def get_customer_or_404(customer_id: int) -> Customer:
    customer = Customer.query.filter_by(id=customer_id, company_id=current_company_id()).first()
    if customer is None:
        abort(404)
    return customer


def get_template_or_404(template_id: int) -> Template:
    template = Template.query.filter_by(id=template_id, company_id=current_company_id()).first()
    if template is None:
        abort(404)
    return template


def get_document_or_404(doc_type: DocumentType, document_id: int) -> Document:
    """Load a document of the current company; wrong type or tenant is a 404."""
    document = db.session.execute(
        db.select(Document).filter_by(
            id=document_id,
            company_id=current_company_id(),
            type=DocumentType(doc_type),
        )
    ).scalar_one_or_none()
    if document is None:
        abort(404)
    return document
