"""
Authentication Routes

Provides:
- POST /auth/login
- POST /auth/logout
- GET  /auth/csrf-token
- GET  /auth/me
- GET  /auth/profile, PATCH /auth/profile (name, image)

Rules:
- Only active users may log in.
- Credentials validated via password hash; the same message for unknown
  email and wrong password.
- Mutating requests need the CSRF token (X-CSRFToken header) unless CSRF
  is disabled in config. Fetch it from /auth/csrf-token.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import User
from ...schemas import LoginIn, ProfileUpdate, parse

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _error(code: str, message: str, status: int):
    response = jsonify({"error": code, "message": message})
    response.status_code = status
    return response


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """Authenticate a user and start a session."""
    data = parse(LoginIn, request.get_json(silent=True))

    user = User.query.filter_by(email=data.email.lower()).first()
    if not user or not user.check_password(data.password):
        logger.info("Failed login for %s", data.email)
        return _error("invalid_credentials", "Invalid email or password.", 401)

    if not user.is_active:
        return _error("inactive_user", "This account is inactive.", 403)

    login_user(user)
    logger.info("User %s logged in", user.email, extra={"user_id": user.id})
    return jsonify({"user": user.to_dict()})


# ============================================================
# LOGOUT
# ============================================================

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user."""
    logout_user()
    return jsonify({"message": "Logged out."})


# ============================================================
# SESSION HELPERS
# ============================================================

@auth_bp.route("/csrf-token")
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


@auth_bp.route("/me")
@login_required
def me():
    company = current_user.company
    return jsonify({
        "user": current_user.to_dict(),
        "company": company.to_dict() if company else None,
    })


# ============================================================
# PROFILE
# ============================================================

@auth_bp.route("/profile", methods=["GET"])
@login_required
def get_profile():
    return jsonify({"user": current_user.to_dict()})


@auth_bp.route("/profile", methods=["PATCH"])
@login_required
def update_profile():
    """Change the display name and avatar; email and password are not editable here."""
    data = parse(ProfileUpdate, request.get_json(silent=True))

    user = db.session.get(User, current_user.id)
    before = serialize_model(user)
    user.name = data.name
    if "image" in data.model_fields_set:
        user.image = data.image
    db.session.flush()
    log_action(user, "UPDATE", before=before, after=serialize_model(user))
    db.session.commit()
    return jsonify({"user": user.to_dict()})
