"""
salesdocs/blueprints/documents/routes.py

Offer and invoice routes. Both document types share one set of handlers;
the URL segment (/offers or /invoices) picks the type.

Includes:
- list with filters, sorting and pagination
- create / get / update / delete
- explicit status change, PDF reference, send-email
- POST /offers/<id>/convert-to-invoice
- POST /invoices/<id>/mark-as-partially-paid
- GET /<kind>/statuses (transition table for clients)

IMPORTANT:
- Handlers only parse, scope by tenant and delegate. Every rule (edit lock,
  transitions, numbering, conversion) lives in the core modules and
  surfaces here as a DocumentError handled by the app factory.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from ...conversion import convert_offer_to_invoice
from ...documents import (
    attach_pdf,
    change_status,
    create_document,
    delete_document,
    list_documents,
    send_document_email,
    update_document,
)
from ...errors import ValidationError
from ...models import Document, DocumentStatus, DocumentType
from ...schemas import (
    DocumentCreate,
    DocumentListQuery,
    DocumentUpdate,
    PdfReferenceIn,
    SendEmailIn,
    StatusChange,
    parse,
)
from ...security import company_required, current_company_id, get_document_or_404
from ...status import allowed_transitions, transition_table

documents_bp = Blueprint("documents", __name__)

KINDS = {
    "offers": DocumentType.OFFER,
    "invoices": DocumentType.INVOICE,
}
KIND = "<any(offers, invoices):kind>"


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _doc_type(kind: str) -> DocumentType:
    return KINDS[kind]


def _document_payload(document: Document) -> dict:
    data = document.to_dict()
    data["allowed_transitions"] = sorted(
        s.value for s in allowed_transitions(document.type, document.status)
    )
    return data


def _create_body(doc_type: DocumentType) -> dict:
    """JSON body with ``type`` taken from the URL; a conflicting type is rejected."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object.")
    sent_type = body.get("type")
    if sent_type is not None and sent_type != doc_type.value:
        raise ValidationError(
            "Document type does not match the endpoint.",
            details={"fields": {"type": f"must be {doc_type.value}"}},
        )
    return dict(body, type=doc_type.value)


# ---------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------
@documents_bp.route(f"/{KIND}", methods=["GET"])
@company_required
def list_view(kind: str):
    query = parse(DocumentListQuery, request.args.to_dict())
    documents, pagination = list_documents(current_company_id(), _doc_type(kind), query)
    return jsonify({
        "documents": [d.to_dict(include_items=False) for d in documents],
        "pagination": pagination,
    })


@documents_bp.route(f"/{KIND}", methods=["POST"])
@company_required
def create_view(kind: str):
    payload = parse(DocumentCreate, _create_body(_doc_type(kind)))
    document = create_document(current_company_id(), payload)
    return jsonify({"document": _document_payload(document)}), 201


@documents_bp.route(f"/{KIND}/statuses", methods=["GET"])
@company_required
def statuses_view(kind: str):
    return jsonify({"transitions": transition_table(_doc_type(kind))})


# ---------------------------------------------------------------------
# Single document
# ---------------------------------------------------------------------
@documents_bp.route(f"/{KIND}/<int:document_id>", methods=["GET"])
@company_required
def get_view(kind: str, document_id: int):
    document = get_document_or_404(_doc_type(kind), document_id)
    return jsonify({"document": _document_payload(document)})


@documents_bp.route(f"/{KIND}/<int:document_id>", methods=["PUT"])
@company_required
def update_view(kind: str, document_id: int):
    document = get_document_or_404(_doc_type(kind), document_id)
    payload = parse(DocumentUpdate, request.get_json(silent=True))
    document = update_document(document, payload)
    return jsonify({"document": _document_payload(document)})


@documents_bp.route(f"/{KIND}/<int:document_id>", methods=["DELETE"])
@company_required
def delete_view(kind: str, document_id: int):
    document = get_document_or_404(_doc_type(kind), document_id)
    delete_document(document)
    return jsonify({"message": "Document deleted."})


@documents_bp.route(f"/{KIND}/<int:document_id>/status", methods=["POST"])
@company_required
def status_view(kind: str, document_id: int):
    document = get_document_or_404(_doc_type(kind), document_id)
    data = parse(StatusChange, request.get_json(silent=True))
    document = change_status(document, data.status)
    return jsonify({"document": _document_payload(document)})


@documents_bp.route(f"/{KIND}/<int:document_id>/pdf", methods=["POST"])
@company_required
def pdf_view(kind: str, document_id: int):
    document = get_document_or_404(_doc_type(kind), document_id)
    data = parse(PdfReferenceIn, request.get_json(silent=True))
    document = attach_pdf(document, data.pdf_url, data.pdf_drive_id)
    return jsonify({"document": _document_payload(document)})


@documents_bp.route(f"/{KIND}/<int:document_id>/send-email", methods=["POST"])
@company_required
def send_email_view(kind: str, document_id: int):
    document = get_document_or_404(_doc_type(kind), document_id)
    data = parse(SendEmailIn, request.get_json(silent=True))
    message_id = send_document_email(document, data)
    return jsonify({"message_id": message_id, "document": _document_payload(document)})


# ---------------------------------------------------------------------
# Type specific actions
# ---------------------------------------------------------------------
@documents_bp.route("/offers/<int:document_id>/convert-to-invoice", methods=["POST"])
@company_required
def convert_view(document_id: int):
    offer = get_document_or_404(DocumentType.OFFER, document_id)
    invoice = convert_offer_to_invoice(offer)
    return jsonify({"invoice": _document_payload(invoice), "offer": _document_payload(offer)}), 201


@documents_bp.route("/invoices/<int:document_id>/mark-as-partially-paid", methods=["POST"])
@company_required
def mark_partially_paid_view(document_id: int):
    invoice = get_document_or_404(DocumentType.INVOICE, document_id)
    invoice = change_status(invoice, DocumentStatus.PARTIALLY_PAID)
    return jsonify({"document": _document_payload(invoice)})
