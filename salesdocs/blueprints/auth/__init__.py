"""
salesdocs/blueprints/auth/__init__.py

Session login for API clients. Exposes auth_bp for create_app().
"""

from __future__ import annotations

from .routes import auth_bp  # noqa: F401
