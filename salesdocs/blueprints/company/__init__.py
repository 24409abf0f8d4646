"""
salesdocs/blueprints/company/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose company_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import company_bp  # noqa: F401
