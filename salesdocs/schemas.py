"""
salesdocs/schemas.py

Request schemas. Every JSON body goes through parse() before it reaches
the core; unknown keys and wrong shapes are rejected (fail closed) with a
ValidationError carrying per-field messages.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import DocumentStatus, DocumentType

EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
LANGUAGE_PATTERN = r"^[a-z]{2}$"

Percent = Annotated[Decimal, Field(ge=0, le=100, max_digits=5, decimal_places=2)]
Language = Annotated[str, Field(pattern=LANGUAGE_PATTERN)]
Email = Annotated[str, Field(pattern=EMAIL_PATTERN, max_length=255)]


class Schema(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


def parse(schema: Any, payload: Any):
    """Validate ``payload`` against ``schema`` (a model class or an Annotated union)."""
    if payload is None:
        raise ValidationError("Request body must be a JSON object.")
    try:
        return TypeAdapter(schema).validate_python(payload)
    except PydanticValidationError as exc:
        fields = {}
        tag = payload.get("type") if isinstance(payload, dict) else None
        for err in exc.errors():
            parts = err.get("loc", ())
            # tagged unions prefix the location with the tag
            if tag is not None and parts and parts[0] == tag:
                parts = parts[1:]
            loc = ".".join(str(part) for part in parts) or "__root__"
            fields[loc] = err.get("msg")
        raise ValidationError("Invalid request data.", details={"fields": fields}) from exc


# ---------------------------------------------------------------------
# Auth / company / customers
# ---------------------------------------------------------------------
class LoginIn(Schema):
    email: Email
    password: str = Field(min_length=1)


class CompanyIn(Schema):
    name: str = Field(min_length=1, max_length=255)
    email: Optional[Email] = None
    phone_number: Optional[str] = Field(default=None, max_length=50)
    vat_id: Optional[str] = Field(default=None, max_length=32)
    address_line1: Optional[str] = Field(default=None, max_length=255)
    address_line2: Optional[str] = Field(default=None, max_length=255)
    postal_code: Optional[str] = Field(default=None, max_length=20)
    city: Optional[str] = Field(default=None, max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)
    bank_account: Optional[str] = Field(default=None, max_length=64)


class CompanyTranslationIn(Schema):
    language_code: Language
    address_line1: Optional[str] = Field(default=None, max_length=255)
    address_line2: Optional[str] = Field(default=None, max_length=255)
    payment_terms_text: Optional[str] = None
    invoice_footer_text: Optional[str] = None
    offer_footer_text: Optional[str] = None


class ProfileUpdate(Schema):
    name: str = Field(min_length=1, max_length=255)
    image: Optional[str] = Field(default=None, max_length=1024)


class CustomerIn(Schema):
    company_name: str = Field(min_length=1, max_length=255)
    contact_person: Optional[str] = Field(default=None, max_length=255)
    email: Optional[Email] = None
    phone_number: Optional[str] = Field(default=None, pattern=r"^[\d\s\-\+\(\)]+$", max_length=50)
    billing_address: Optional[str] = None
    shipping_address: Optional[str] = None
    vat_id: Optional[str] = Field(default=None, max_length=32)
    preferred_language: Optional[Language] = None
    notes: Optional[str] = None

    @field_validator("vat_id")
    @classmethod
    def _normalize_vat_id(cls, value):
        if value is None:
            return None
        return value.replace(" ", "").upper() or None


class CustomerUpdate(CustomerIn):
    company_name: Optional[str] = Field(default=None, min_length=1, max_length=255)


# ---------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------
class TemplateIn(Schema):
    name: str = Field(min_length=1, max_length=255)
    type: DocumentType
    language_code: Language
    content: str = ""
    is_default: bool = False


class TemplateUpdate(Schema):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    content: Optional[str] = None


# ---------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------
class LineItemIn(Schema):
    description: str = Field(min_length=1)
    quantity: Decimal = Field(gt=0, max_digits=12, decimal_places=3)
    unit_price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    discount: Percent = Decimal("0")
    tax_rate: Percent = Decimal("0")

    @field_validator("discount", "tax_rate", mode="before")
    @classmethod
    def _missing_is_zero(cls, value):
        return Decimal("0") if value is None else value


class _DocumentCreateBase(Schema):
    customer_id: int
    template_id: Optional[int] = None
    # omitted: the customer's preferred language, then DEFAULT_LANGUAGE
    language_code: Optional[Language] = None
    issue_date: Optional[date] = None
    payment_terms: Optional[str] = None
    notes: Optional[str] = None
    line_items: List[LineItemIn] = Field(default_factory=list)


class OfferCreate(_DocumentCreateBase):
    type: Literal["OFFER"] = "OFFER"
    valid_until: Optional[date] = None


class InvoiceCreate(_DocumentCreateBase):
    type: Literal["INVOICE"] = "INVOICE"
    due_date: Optional[date] = None


DocumentCreate = Annotated[Union[OfferCreate, InvoiceCreate], Field(discriminator="type")]


class DocumentUpdate(Schema):
    """
    Partial update. Only the keys present in the body count as "sent";
    use ``sent_fields()`` to get them, never ``model_dump()`` defaults.
    """

    status: Optional[DocumentStatus] = None
    customer_id: Optional[int] = None
    template_id: Optional[int] = None
    language_code: Optional[Language] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    valid_until: Optional[date] = None
    payment_terms: Optional[str] = None
    notes: Optional[str] = None
    line_items: Optional[List[LineItemIn]] = None

    def sent_fields(self) -> dict:
        return {name: getattr(self, name) for name in self.model_fields_set}


class StatusChange(Schema):
    status: DocumentStatus


class PdfReferenceIn(Schema):
    pdf_url: str = Field(min_length=1, max_length=1024)
    pdf_drive_id: Optional[str] = Field(default=None, max_length=255)


class SendEmailIn(Schema):
    subject: str = Field(min_length=1, max_length=255)
    body: str = Field(min_length=1)
    recipient_email: Optional[Email] = None


class DocumentListQuery(Schema):
    status: Optional[DocumentStatus] = None
    customer_id: Optional[int] = None
    language_code: Optional[Language] = None
    search: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    sort_by: Literal["issue_date", "document_number", "total_amount", "created_at"] = "issue_date"
    sort_direction: Literal["asc", "desc"] = "desc"
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
