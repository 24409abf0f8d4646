"""
salesdocs/__init__.py

Flask application factory for the Sales Documents service (offers & invoices).

Architecture:
- The document core (money, numbering, status, documents, conversion) is plain
  Python on top of Flask-SQLAlchemy; blueprints only parse JSON, scope by
  tenant and call into it.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
- Clients are never trusted; access control and validation are server-side.

Errors:
- Every DocumentError maps to its own status code and a JSON body
  {"error": <code>, "message": ..., "details"?: ...}. The generic HTTP errors
  (401/403/404/405) answer in the same shape.
"""

from __future__ import annotations

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .errors import DocumentError
from .extensions import csrf, db, login_manager, migrate
from .log import configure_logging
from .mail import init_mail
from .models import User

# Blueprint imports kept inside create_app() where possible to reduce import side effects.


def create_app(config_object: str | object = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    login_manager.init_app(app)
    init_mail(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        if not user_id.isdigit():
            return None
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        response = jsonify({"error": "unauthorized", "message": "Authentication required"})
        response.status_code = 401
        return response

    # ----------------------------------------------------------------------
    # Error handlers
    # ----------------------------------------------------------------------
    @app.errorhandler(DocumentError)
    def handle_document_error(exc: DocumentError):
        if exc.status_code >= 500:
            app.logger.error("%s: %s", exc.code, exc.message, extra={"details": exc.details})
        response = jsonify(exc.to_dict())
        response.status_code = exc.status_code
        return response

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        code = (exc.name or "error").lower().replace(" ", "_")
        response = jsonify({"error": code, "message": exc.description})
        response.status_code = exc.code or 500
        return response

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.company import company_bp
    from .blueprints.customers import customers_bp
    from .blueprints.documents import documents_bp
    from .blueprints.templates import templates_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(company_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(documents_bp)
    app.register_blueprint(templates_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("seed-templates")
    @click.option("--company-id", type=int, default=None, help="Only seed this company.")
    def seed_templates_command(company_id: int | None):
        """Seed default offer/invoice templates per supported language."""
        from .seed import seed_default_templates

        created = seed_default_templates(company_id)
        click.echo(f"Default templates seeded ({created} created).")

    @app.cli.command("create-user")
    @click.option("--email", required=True)
    @click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option("--name", default=None)
    @click.option("--company", "company_name", default=None, help="Create and link a company profile.")
    def create_user_command(email: str, password: str, name: str | None, company_name: str | None):
        """Create a user, optionally with a fresh company profile."""
        from .seed import create_user

        try:
            user = create_user(email, password, name=name, company_name=company_name)
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"User {user.email} created.")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """Service banner (also used as a health check)."""
        return jsonify({"name": app.config["APP_NAME"], "status": "ok"})

    return app
