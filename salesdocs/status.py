"""
salesdocs/status.py

Offer / invoice status state machine and the DRAFT-only edit rule.

OFFER:
  DRAFT    -> SENT, VOIDED
  SENT     -> ACCEPTED, DECLINED, EXPIRED, VOIDED
  ACCEPTED -> VOIDED   (and conversion to an invoice, see conversion.py)
  DECLINED, EXPIRED, VOIDED are terminal

INVOICE:
  DRAFT          -> SENT, VOIDED
  SENT           -> PAID, PARTIALLY_PAID, OVERDUE, VOIDED
  PARTIALLY_PAID -> PAID, OVERDUE, VOIDED
  OVERDUE        -> PAID, PARTIALLY_PAID, VOIDED
  PAID           -> VOIDED
  VOIDED is terminal

Edit rule:
- Fields and line items may change only while status is DRAFT.
- On any other status the only legal mutation is a listed transition.
  Sending unchanged values alongside a status change is fine; sending a
  CHANGED non-status field is an EditLockedError, status change or not.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, FrozenSet, Mapping

from .errors import EditLockedError, IllegalTransitionError
from .models import DocumentStatus, DocumentType

S = DocumentStatus

TRANSITIONS: Dict[DocumentType, Dict[DocumentStatus, FrozenSet[DocumentStatus]]] = {
    DocumentType.OFFER: {
        S.DRAFT: frozenset({S.SENT, S.VOIDED}),
        S.SENT: frozenset({S.ACCEPTED, S.DECLINED, S.EXPIRED, S.VOIDED}),
        S.ACCEPTED: frozenset({S.VOIDED}),
        S.DECLINED: frozenset(),
        S.EXPIRED: frozenset(),
        S.VOIDED: frozenset(),
    },
    DocumentType.INVOICE: {
        S.DRAFT: frozenset({S.SENT, S.VOIDED}),
        S.SENT: frozenset({S.PAID, S.PARTIALLY_PAID, S.OVERDUE, S.VOIDED}),
        S.PARTIALLY_PAID: frozenset({S.PAID, S.OVERDUE, S.VOIDED}),
        S.OVERDUE: frozenset({S.PAID, S.PARTIALLY_PAID, S.VOIDED}),
        S.PAID: frozenset({S.VOIDED}),
        S.VOIDED: frozenset(),
    },
}

# Fields a client may send on an update; anything else is rejected by the schema.
EDITABLE_FIELDS = (
    "customer_id",
    "template_id",
    "language_code",
    "issue_date",
    "due_date",
    "valid_until",
    "payment_terms",
    "notes",
    "line_items",
)

STATUS_ONLY_FIELDS = frozenset({"status"})

# NOT NULL columns: a null sent for one of these means "keep the current value"
REQUIRED_FIELDS = frozenset({"customer_id", "language_code", "issue_date"})


def statuses_for(doc_type: DocumentType) -> FrozenSet[DocumentStatus]:
    """All statuses a document of this type can ever be in."""
    return frozenset(TRANSITIONS[DocumentType(doc_type)])


def allowed_transitions(doc_type: DocumentType, current: DocumentStatus) -> FrozenSet[DocumentStatus]:
    return TRANSITIONS[DocumentType(doc_type)].get(DocumentStatus(current), frozenset())


def can_transition(doc_type: DocumentType, current: DocumentStatus, target: DocumentStatus) -> bool:
    return DocumentStatus(target) in allowed_transitions(doc_type, current)


def ensure_transition(doc_type: DocumentType, current: DocumentStatus, target: DocumentStatus) -> None:
    """Raise IllegalTransitionError unless current -> target is in the table."""
    if can_transition(doc_type, current, target):
        return
    doc_type = DocumentType(doc_type)
    current = DocumentStatus(current)
    target = DocumentStatus(target)
    allowed = sorted(s.value for s in allowed_transitions(doc_type, current))
    raise IllegalTransitionError(
        f"{doc_type.value.title()} cannot move from {current.value} to {target.value}.",
        details={"from": current.value, "to": target.value, "allowed": allowed},
    )


def is_editable(status: DocumentStatus) -> bool:
    return DocumentStatus(status) == DocumentStatus.DRAFT


def is_final_status(doc_type: DocumentType, status: DocumentStatus) -> bool:
    """True when no transition leaves this status."""
    return not allowed_transitions(doc_type, status)


# ---------------------------------------------------------------------
# Field-level diff
# ---------------------------------------------------------------------
def _as_decimal(value: Any):
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return value


def _line_key(item: Any) -> tuple:
    """Comparable view of one line item (LineItem row, schema object or dict)."""
    get = item.get if isinstance(item, Mapping) else lambda name: getattr(item, name, None)
    return (
        (get("description") or "").strip(),
        _as_decimal(get("quantity") or 0),
        _as_decimal(get("unit_price") or 0),
        _as_decimal(get("discount") or 0),
        _as_decimal(get("tax_rate") or 0),
    )


def _same_value(field: str, current: Any, requested: Any) -> bool:
    if field == "line_items":
        current_items = [_line_key(i) for i in (current or [])]
        requested_items = [_line_key(i) for i in (requested or [])]
        return current_items == requested_items
    if isinstance(current, Decimal) or isinstance(requested, Decimal):
        return _as_decimal(current) == _as_decimal(requested)
    return current == requested


def changed_fields(document: Any, changes: Mapping[str, Any]) -> list[str]:
    """Names of requested fields whose value differs from the document's current one."""
    changed = []
    for field, requested in changes.items():
        if field in STATUS_ONLY_FIELDS:
            continue
        if requested is None and field in REQUIRED_FIELDS:
            continue
        if not _same_value(field, getattr(document, field, None), requested):
            changed.append(field)
    return sorted(changed)


def check_update(document: Any, changes: Mapping[str, Any]) -> None:
    """
    Validate an update request against the edit rule and transition table.

    ``changes`` holds only the fields the client actually sent.
    Nothing is applied here; raising leaves the document untouched.
    """
    target = changes.get("status")
    current = DocumentStatus(document.status)

    if not is_editable(current):
        changed = changed_fields(document, changes)
        if changed:
            raise EditLockedError(
                f"Only DRAFT documents can be edited; this document is {current.value}. "
                "Only its status can change.",
                details={"fields": changed, "status": current.value},
            )

    if target is not None and DocumentStatus(target) != current:
        ensure_transition(document.type, current, target)


def transition_table(doc_type: DocumentType) -> Dict[str, list]:
    """Serializable view of the table (used by the API for clients)."""
    return {
        status.value: sorted(t.value for t in targets)
        for status, targets in TRANSITIONS[DocumentType(doc_type)].items()
    }

