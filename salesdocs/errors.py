"""
salesdocs/errors.py

Typed failures raised by the document core.

Every error carries an HTTP status code and a stable machine-readable
``code``. The app factory registers one errorhandler for DocumentError,
so routes never translate these by hand.

IMPORTANT:
- NumberingConflictError is transient. The numbering helpers retry it
  internally and only surface it once the retry bound is exhausted.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DocumentError(Exception):
    """Base class for every failure of the document core."""

    status_code = 400
    code = "document_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(DocumentError):
    """Malformed or out-of-range input, rejected before any computation."""

    status_code = 400
    code = "validation_error"


class IllegalTransitionError(DocumentError):
    """Requested status change is not in the transition table."""

    status_code = 409
    code = "illegal_transition"


class EditLockedError(DocumentError):
    """Non-status fields changed on a document that is no longer DRAFT."""

    status_code = 409
    code = "edit_locked"


class PreconditionFailedError(DocumentError):
    """Operation requires a state the document (or company setup) is not in."""

    status_code = 422
    code = "precondition_failed"


class NumberingConflictError(DocumentError):
    """Document number collided with a concurrent writer too many times."""

    status_code = 503
    code = "numbering_conflict"


class ConcurrentUpdateError(DocumentError):
    """Document kept changing under a read-modify-write; the client may retry."""

    status_code = 409
    code = "concurrent_update"
