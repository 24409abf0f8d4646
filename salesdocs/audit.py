"""
salesdocs/audit.py

Audit trail for companies, customers, templates and documents.

Every mutation of the core records one AuditLog row:
  CREATE / UPDATE / DELETE / STATUS / CONVERT / EMAIL
with JSON snapshots of the record before and after the change. Document
snapshots include their line items, so a DRAFT edit shows which lines
changed and not only the new totals.

IMPORTANT:
- log_action() only ADDS the row to the session. It is committed in the same
  transaction as the change it describes, or rolled back with it.
- Core functions also run outside a request (CLI, tests). Then the row is
  written without user, email snapshot or IP address.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user

from .extensions import db
from .models import AuditLog

Snapshot = Dict[str, Any]

# never copied into audit rows
_SECRET_COLUMNS = frozenset({"password_hash"})


def _plain(value: Any) -> Optional[str]:
    """Column value as text: enums by value (DRAFT), Decimals and dates via str()."""
    if value is None:
        return None
    enum_value = getattr(value, "value", None)
    if isinstance(enum_value, str):
        return enum_value
    return str(value)


def _columns(instance: Any) -> Snapshot:
    return {
        column.name: _plain(getattr(instance, column.name))
        for column in instance.__table__.columns
        if column.name not in _SECRET_COLUMNS
    }


def serialize_model(instance: Any) -> Snapshot:
    """
    Snapshot of a model's columns.

    A Document also carries ``line_items``, one dict per line in position
    order. Other relationships are not followed.
    """
    data = _columns(instance)
    items = getattr(instance, "line_items", None)
    if items is not None and instance.__tablename__ == "documents":
        data["line_items"] = [_columns(item) for item in items]
    return data


def _actor():
    """(user id, email, ip) of the logged-in caller, or Nones outside a request."""
    if not has_request_context() or not current_user.is_authenticated:
        return None, None, None
    return current_user.id, current_user.email, request.remote_addr


def log_action(
    entity: Any,
    action: str,
    *,
    before: Optional[Snapshot] = None,
    after: Optional[Snapshot] = None,
) -> None:
    """
    Add an AuditLog row for ``entity`` to the current session.

    The entity must already have an id (flush a new row first).

    NOTE:
    - request.remote_addr is the peer Flask sees. Behind a reverse proxy,
      wrap the app in werkzeug's ProxyFix to record the client address.
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError(f"Cannot audit {entity!r} before it has an id; flush first.")

    user_id, email, ip_address = _actor()

    db.session.add(
        AuditLog(
            user_id=user_id,
            username_snapshot=email,
            entity_type=type(entity).__name__,
            entity_id=int(entity_id),
            action=action,
            before_data=json.dumps(before, ensure_ascii=False) if before else None,
            after_data=json.dumps(after, ensure_ascii=False) if after else None,
            ip_address=ip_address,
        )
    )
