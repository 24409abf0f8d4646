"""
salesdocs/blueprints/company/routes.py

Company profile (the tenant of the current user).

- GET  /company               -> profile or null
- PUT  /company               -> full replace; the first PUT creates the profile,
                                 links the current user to it and seeds the
                                 default templates.
- GET  /company/translations  -> per-language company texts
- POST /company/translations  -> upsert the texts of one language

IMPORTANT:
- One translation per (company, language_code). A POST for a language that
  already has one replaces its texts; a concurrent first POST for the same
  language loses on uq_company_translations_language and is applied as an
  update instead.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy.exc import IntegrityError

from ...audit import log_action, serialize_model
from ...documents import check_language
from ...extensions import db
from ...models import Company, CompanyTranslation
from ...schemas import CompanyIn, CompanyTranslationIn, parse
from ...security import company_required, current_company_id
from ...seed import seed_default_templates

logger = logging.getLogger(__name__)

company_bp = Blueprint("company", __name__, url_prefix="/company")


@company_bp.route("", methods=["GET"])
@login_required
def get_company():
    company = current_user.company
    return jsonify({"company": company.to_dict() if company else None})


@company_bp.route("", methods=["PUT"])
@login_required
def save_company():
    """Create or update the company profile."""
    data = parse(CompanyIn, request.get_json(silent=True))

    company = current_user.company
    if company is None:
        company = Company(**data.model_dump())
        db.session.add(company)
        db.session.flush()
        current_user.company_id = company.id
        log_action(company, "CREATE", before=None, after=serialize_model(company))
        db.session.commit()

        seed_default_templates(company.id)
        logger.info("Created company %s", company.name, extra={"company_id": company.id})
        return jsonify({"company": company.to_dict()}), 201

    before = serialize_model(company)
    for field, value in data.model_dump().items():
        setattr(company, field, value)
    db.session.flush()
    log_action(company, "UPDATE", before=before, after=serialize_model(company))
    db.session.commit()
    return jsonify({"company": company.to_dict()})


# ============================================================
# TRANSLATIONS
# ============================================================

def _find_translation(language_code: str) -> CompanyTranslation | None:
    return CompanyTranslation.query.filter_by(
        company_id=current_company_id(), language_code=language_code
    ).first()


def _apply_texts(translation: CompanyTranslation, data: CompanyTranslationIn) -> None:
    for field, value in data.model_dump(exclude={"language_code"}).items():
        setattr(translation, field, value)


def _update_translation(translation: CompanyTranslation, data: CompanyTranslationIn):
    before = serialize_model(translation)
    _apply_texts(translation, data)
    db.session.flush()
    log_action(translation, "UPDATE", before=before, after=serialize_model(translation))
    db.session.commit()
    return jsonify({"translation": translation.to_dict()})


@company_bp.route("/translations", methods=["GET"])
@company_required
def list_translations():
    translations = (
        CompanyTranslation.query.filter_by(company_id=current_company_id())
        .order_by(CompanyTranslation.language_code.asc())
        .all()
    )
    return jsonify({"translations": [t.to_dict() for t in translations]})


@company_bp.route("/translations", methods=["POST"])
@company_required
def save_translation():
    """Create or replace the company texts of one language."""
    data = parse(CompanyTranslationIn, request.get_json(silent=True))
    check_language(data.language_code)

    existing = _find_translation(data.language_code)
    if existing is not None:
        return _update_translation(existing, data)

    translation = CompanyTranslation(company_id=current_company_id(), language_code=data.language_code)
    _apply_texts(translation, data)
    db.session.add(translation)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        existing = _find_translation(data.language_code)
        if existing is None:
            raise
        return _update_translation(existing, data)

    log_action(translation, "CREATE", before=None, after=serialize_model(translation))
    db.session.commit()
    logger.info(
        "Created %s company texts",
        translation.language_code,
        extra={"company_id": translation.company_id},
    )
    return jsonify({"translation": translation.to_dict()}), 201
