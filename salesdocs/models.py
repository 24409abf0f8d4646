"""
Sales Documents – Domain Models

Entities:
- Company (tenant) with per-language CompanyTranslation texts
- User (login, belongs to a Company)
- Customer (per company)
- Template (per company, document type and language; at most one default)
- Document (OFFER | INVOICE, discriminated by ``type``) with LineItem rows
- AuditLog

Document invariants:
- document_number is unique per company and assigned once, at creation.
- total_amount / total_tax / total_discount are cached sums of the line
  items as of the last DRAFT save; once non-DRAFT they are frozen.
- converted_to_invoice_id (offer side) and converted_from_offer_id
  (invoice side) link a conversion both ways.

IMPORTANT:
- Requests are never trusted. Validation lives in schemas.py, state rules
  in status.py, and the mutations themselves in documents.py / conversion.py.
"""

from __future__ import annotations

import enum
from datetime import datetime

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db
from .money import grand_total, line_amounts, money


def _iso(value):
    return value.isoformat() if value is not None else None


def _money_str(value):
    return str(money(value)) if value is not None else None


# ---------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------
class DocumentType(str, enum.Enum):
    OFFER = "OFFER"
    INVOICE = "INVOICE"


class DocumentStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"
    PAID = "PAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    OVERDUE = "OVERDUE"
    VOIDED = "VOIDED"


# ---------------------------------------------------------------------
# Tenancy & users
# ---------------------------------------------------------------------
class Company(db.Model):
    """Company profile. Every customer, template and document belongs to one."""

    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255))
    phone_number = db.Column(db.String(50))
    vat_id = db.Column(db.String(32))
    address_line1 = db.Column(db.String(255))
    address_line2 = db.Column(db.String(255))
    postal_code = db.Column(db.String(20))
    city = db.Column(db.String(100))
    country = db.Column(db.String(100))
    bank_account = db.Column(db.String(64))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    users = db.relationship("User", back_populates="company", lazy=True)
    translations = db.relationship(
        "CompanyTranslation",
        back_populates="company",
        cascade="all, delete-orphan",
        order_by="CompanyTranslation.language_code",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone_number": self.phone_number,
            "vat_id": self.vat_id,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "postal_code": self.postal_code,
            "city": self.city,
            "country": self.country,
            "bank_account": self.bank_account,
        }

    def __repr__(self):
        return f"<Company {self.name}>"


class CompanyTranslation(db.Model):
    """Language-specific company texts (address lines, payment terms, footers)."""

    __tablename__ = "company_translations"

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    language_code = db.Column(db.String(8), nullable=False)

    address_line1 = db.Column(db.String(255))
    address_line2 = db.Column(db.String(255))
    payment_terms_text = db.Column(db.Text)
    invoice_footer_text = db.Column(db.Text)
    offer_footer_text = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = db.relationship("Company", back_populates="translations")

    __table_args__ = (
        db.UniqueConstraint("company_id", "language_code", name="uq_company_translations_language"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "language_code": self.language_code,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "payment_terms_text": self.payment_terms_text,
            "invoice_footer_text": self.invoice_footer_text,
            "offer_footer_text": self.offer_footer_text,
        }


class User(UserMixin, db.Model):
    """System login user."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255))
    image = db.Column(db.String(1024))
    password_hash = db.Column(db.String(255), nullable=False)

    is_active = db.Column(db.Boolean, default=True, nullable=False)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    company = db.relationship("Company", back_populates="users")

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "image": self.image,
            "company_id": self.company_id,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.email}>"


# ---------------------------------------------------------------------
# Customers & templates
# ---------------------------------------------------------------------
class Customer(db.Model):
    __tablename__ = "customers"

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    company_name = db.Column(db.String(255), nullable=False, index=True)
    contact_person = db.Column(db.String(255))
    email = db.Column(db.String(255))
    phone_number = db.Column(db.String(50))
    billing_address = db.Column(db.Text)
    shipping_address = db.Column(db.Text)
    vat_id = db.Column(db.String(32))
    preferred_language = db.Column(db.String(8))
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    documents = db.relationship("Document", back_populates="customer", lazy=True, passive_deletes=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_name": self.company_name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone_number": self.phone_number,
            "billing_address": self.billing_address,
            "shipping_address": self.shipping_address,
            "vat_id": self.vat_id,
            "preferred_language": self.preferred_language,
            "notes": self.notes,
        }

    def __repr__(self):
        return f"<Customer {self.company_name}>"


class Template(db.Model):
    """
    Document template for one (type, language).

    At most one template per (company, type, language) is the default;
    set_default in the templates blueprint maintains that.
    """

    __tablename__ = "templates"

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.Enum(DocumentType, name="document_type"), nullable=False, index=True)
    language_code = db.Column(db.String(8), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False, default="")
    is_default = db.Column(db.Boolean, default=False, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "language_code": self.language_code,
            "content": self.content,
            "is_default": self.is_default,
        }


# ---------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------
class Document(db.Model):
    __tablename__ = "documents"

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id = db.Column(
        db.Integer,
        db.ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    template_id = db.Column(
        db.Integer,
        db.ForeignKey("templates.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    type = db.Column(db.Enum(DocumentType, name="document_type"), nullable=False, index=True)
    status = db.Column(
        db.Enum(DocumentStatus, name="document_status"),
        nullable=False,
        default=DocumentStatus.DRAFT,
        index=True,
    )

    document_number = db.Column(db.String(32), nullable=False, index=True)
    language_code = db.Column(db.String(8), nullable=False)

    issue_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)  # INVOICE only
    valid_until = db.Column(db.Date, nullable=True)  # OFFER only

    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_tax = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_discount = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    payment_terms = db.Column(db.Text)
    notes = db.Column(db.Text)

    # Externally generated PDF (rendering/upload live outside this service)
    pdf_url = db.Column(db.String(1024))
    pdf_drive_id = db.Column(db.String(255))

    email_sent = db.Column(db.Boolean, default=False, nullable=False)
    last_email_sent_at = db.Column(db.DateTime)

    converted_to_invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("documents.id", ondelete="SET NULL"),
        nullable=True,
    )
    converted_from_offer_id = db.Column(
        db.Integer,
        db.ForeignKey("documents.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Optimistic concurrency: every ORM UPDATE checks and bumps this
    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = db.relationship("Customer", back_populates="documents")
    template = db.relationship("Template", foreign_keys=[template_id])

    line_items = db.relationship(
        "LineItem",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="LineItem.position",
    )

    __table_args__ = (
        db.UniqueConstraint("company_id", "document_number", name="uq_documents_company_number"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def grand_total(self):
        return grand_total(self.total_amount, self.total_tax)

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "document_number": self.document_number,
            "customer_id": self.customer_id,
            "template_id": self.template_id,
            "language_code": self.language_code,
            "issue_date": _iso(self.issue_date),
            "due_date": _iso(self.due_date),
            "valid_until": _iso(self.valid_until),
            "total_amount": _money_str(self.total_amount),
            "total_tax": _money_str(self.total_tax),
            "total_discount": _money_str(self.total_discount),
            "grand_total": _money_str(self.grand_total),
            "payment_terms": self.payment_terms,
            "notes": self.notes,
            "pdf_url": self.pdf_url,
            "email_sent": self.email_sent,
            "last_email_sent_at": _iso(self.last_email_sent_at),
            "converted_to_invoice_id": self.converted_to_invoice_id,
            "converted_from_offer_id": self.converted_from_offer_id,
        }
        if include_items:
            data["line_items"] = [item.to_dict() for item in self.line_items]
        return data

    def __repr__(self):
        return f"<Document {self.document_number} {self.status.value}>"


class LineItem(db.Model):
    __tablename__ = "line_items"

    id = db.Column(db.Integer, primary_key=True)

    document_id = db.Column(
        db.Integer,
        db.ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    position = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.Text, nullable=False)

    quantity = db.Column(db.Numeric(12, 3), nullable=False, default=1)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(5, 2), nullable=False, default=0)  # percent
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)  # percent

    document = db.relationship("Document", back_populates="line_items")

    def to_dict(self) -> dict:
        amounts = line_amounts(self)
        return {
            "id": self.id,
            "description": self.description,
            "quantity": str(self.quantity),
            "unit_price": str(self.unit_price),
            "discount": str(self.discount),
            "tax_rate": str(self.tax_rate),
            "subtotal": _money_str(amounts.subtotal),
            "discount_amount": _money_str(amounts.discount_amount),
            "tax_amount": _money_str(amounts.tax_amount),
            "line_total": _money_str(amounts.line_total),
        }


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Who did what to which entity, with before/after snapshots."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    username_snapshot = db.Column(db.String(255), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship("User", backref=db.backref("audit_entries", lazy=True))
