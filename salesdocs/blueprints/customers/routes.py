"""
salesdocs/blueprints/customers/routes.py

Customer routes (tenant scoped).

Includes:
- list (optional ?search= on company name, contact person or email)
- create / get / update
- delete

IMPORTANT:
- A customer with any non-DRAFT document cannot be deleted: those
  documents were issued and must keep their customer. DRAFT documents of
  the customer are deleted with it.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy import or_, update

from ...audit import log_action, serialize_model
from ...errors import PreconditionFailedError
from ...extensions import db
from ...models import Customer, Document, DocumentStatus
from ...schemas import CustomerIn, CustomerUpdate, parse
from ...security import company_required, current_company_id, get_customer_or_404

logger = logging.getLogger(__name__)

customers_bp = Blueprint("customers", __name__, url_prefix="/customers")


@customers_bp.route("", methods=["GET"])
@company_required
def list_customers():
    q = Customer.query.filter(Customer.company_id == current_company_id())

    search = (request.args.get("search") or "").strip()
    if search:
        term = f"%{search}%"
        q = q.filter(
            or_(
                Customer.company_name.ilike(term),
                Customer.contact_person.ilike(term),
                Customer.email.ilike(term),
            )
        )

    customers = q.order_by(Customer.company_name.asc(), Customer.id.asc()).all()
    return jsonify({"customers": [c.to_dict() for c in customers]})


@customers_bp.route("", methods=["POST"])
@company_required
def create_customer():
    data = parse(CustomerIn, request.get_json(silent=True))

    customer = Customer(company_id=current_company_id(), **data.model_dump())
    db.session.add(customer)
    db.session.flush()
    log_action(customer, "CREATE", before=None, after=serialize_model(customer))
    db.session.commit()

    logger.info("Created customer %s", customer.company_name, extra={"customer_id": customer.id})
    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.route("/<int:customer_id>", methods=["GET"])
@company_required
def get_customer(customer_id: int):
    customer = get_customer_or_404(customer_id)
    documents = (
        Document.query.filter_by(customer_id=customer.id, company_id=customer.company_id)
        .order_by(Document.issue_date.desc(), Document.id.desc())
        .all()
    )
    payload = customer.to_dict()
    payload["documents"] = [d.to_dict(include_items=False) for d in documents]
    return jsonify({"customer": payload})


@customers_bp.route("/<int:customer_id>", methods=["PUT"])
@company_required
def update_customer(customer_id: int):
    customer = get_customer_or_404(customer_id)
    data = parse(CustomerUpdate, request.get_json(silent=True))

    before = serialize_model(customer)
    for field in data.model_fields_set:
        value = getattr(data, field)
        if field == "company_name" and value is None:
            continue
        setattr(customer, field, value)

    db.session.flush()
    log_action(customer, "UPDATE", before=before, after=serialize_model(customer))
    db.session.commit()
    return jsonify({"customer": customer.to_dict()})


@customers_bp.route("/<int:customer_id>", methods=["DELETE"])
@company_required
def delete_customer(customer_id: int):
    customer = get_customer_or_404(customer_id)

    issued = Document.query.filter(
        Document.customer_id == customer.id,
        Document.status != DocumentStatus.DRAFT,
    ).count()
    if issued:
        raise PreconditionFailedError(
            "Customer has issued documents and cannot be deleted.",
            details={"documents": issued},
        )

    drafts = Document.query.filter_by(customer_id=customer.id, status=DocumentStatus.DRAFT).all()
    draft_ids = [d.id for d in drafts]
    if draft_ids:
        # offers converted into one of these draft invoices become convertible again
        db.session.execute(
            update(Document)
            .where(Document.converted_to_invoice_id.in_(draft_ids))
            .values(converted_to_invoice_id=None, version=Document.version + 1)
            .execution_options(synchronize_session=False)
        )
    for document in drafts:
        log_action(document, "DELETE", before=serialize_model(document), after=None)
        db.session.delete(document)

    log_action(customer, "DELETE", before=serialize_model(customer), after=None)
    db.session.delete(customer)
    db.session.commit()

    logger.info(
        "Deleted customer %s with %d draft document(s)",
        customer_id, len(draft_ids), extra={"customer_id": customer_id},
    )
    return jsonify({"message": "Customer deleted."})
