"""
salesdocs/blueprints/templates/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose templates_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import templates_bp  # noqa: F401
