"""
salesdocs/blueprints/templates/routes.py

Document template routes (tenant scoped).

Includes:
- list (optional ?type= and ?language_code=), create, get, update, delete
- POST /templates/<id>/set-default
- POST /templates/<id>/duplicate

IMPORTANT:
- At most one default template per (company, type, language). Making a
  template the default clears the flag on its siblings in the same
  transaction.
- Offer -> invoice conversion needs the default INVOICE template of the
  offer's language; deleting it makes conversion fail until a new default
  is set.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy import update

from ...audit import log_action, serialize_model
from ...errors import ValidationError
from ...extensions import db
from ...models import Document, DocumentType, Template
from ...schemas import TemplateIn, TemplateUpdate, parse
from ...security import company_required, current_company_id, get_template_or_404

logger = logging.getLogger(__name__)

templates_bp = Blueprint("templates", __name__, url_prefix="/templates")


def _make_default(template: Template) -> None:
    """Flag ``template`` as default and clear its siblings (no commit)."""
    siblings = Template.query.filter(
        Template.company_id == template.company_id,
        Template.type == template.type,
        Template.language_code == template.language_code,
        Template.is_default.is_(True),
        Template.id != template.id,
    ).all()
    for sibling in siblings:
        sibling.is_default = False
    template.is_default = True


@templates_bp.route("", methods=["GET"])
@company_required
def list_templates():
    q = Template.query.filter(Template.company_id == current_company_id())

    doc_type = request.args.get("type")
    if doc_type:
        try:
            q = q.filter(Template.type == DocumentType(doc_type.upper()))
        except ValueError as exc:
            raise ValidationError(
                "Unknown document type.", details={"fields": {"type": "must be OFFER or INVOICE"}}
            ) from exc

    language_code = request.args.get("language_code")
    if language_code:
        q = q.filter(Template.language_code == language_code)

    templates = q.order_by(Template.type.asc(), Template.language_code.asc(), Template.name.asc()).all()
    return jsonify({"templates": [t.to_dict() for t in templates]})


@templates_bp.route("", methods=["POST"])
@company_required
def create_template():
    data = parse(TemplateIn, request.get_json(silent=True))

    template = Template(
        company_id=current_company_id(),
        name=data.name,
        type=data.type,
        language_code=data.language_code,
        content=data.content,
        is_default=False,
    )
    db.session.add(template)
    db.session.flush()
    if data.is_default:
        _make_default(template)

    log_action(template, "CREATE", before=None, after=serialize_model(template))
    db.session.commit()
    return jsonify({"template": template.to_dict()}), 201


@templates_bp.route("/<int:template_id>", methods=["GET"])
@company_required
def get_template(template_id: int):
    return jsonify({"template": get_template_or_404(template_id).to_dict()})


@templates_bp.route("/<int:template_id>", methods=["PUT"])
@company_required
def update_template(template_id: int):
    template = get_template_or_404(template_id)
    data = parse(TemplateUpdate, request.get_json(silent=True))

    before = serialize_model(template)
    if data.name is not None:
        template.name = data.name
    if data.content is not None:
        template.content = data.content

    db.session.flush()
    log_action(template, "UPDATE", before=before, after=serialize_model(template))
    db.session.commit()
    return jsonify({"template": template.to_dict()})


@templates_bp.route("/<int:template_id>", methods=["DELETE"])
@company_required
def delete_template(template_id: int):
    template = get_template_or_404(template_id)

    # detach documents that used this template
    db.session.execute(
        update(Document)
        .where(Document.template_id == template.id)
        .values(template_id=None, version=Document.version + 1)
        .execution_options(synchronize_session=False)
    )
    log_action(template, "DELETE", before=serialize_model(template), after=None)
    db.session.delete(template)
    db.session.commit()

    logger.info("Deleted template %s", template_id, extra={"template_id": template_id})
    return jsonify({"message": "Template deleted."})


@templates_bp.route("/<int:template_id>/set-default", methods=["POST"])
@company_required
def set_default(template_id: int):
    template = get_template_or_404(template_id)

    before = serialize_model(template)
    _make_default(template)
    db.session.flush()
    log_action(template, "UPDATE", before=before, after=serialize_model(template))
    db.session.commit()
    return jsonify({"template": template.to_dict()})


@templates_bp.route("/<int:template_id>/duplicate", methods=["POST"])
@company_required
def duplicate_template(template_id: int):
    source = get_template_or_404(template_id)

    copy = Template(
        company_id=source.company_id,
        name=f"{source.name} (Copy)",
        type=source.type,
        language_code=source.language_code,
        content=source.content,
        is_default=False,
    )
    db.session.add(copy)
    db.session.flush()
    log_action(copy, "CREATE", before=None, after=serialize_model(copy))
    db.session.commit()
    return jsonify({"template": copy.to_dict()}), 201
