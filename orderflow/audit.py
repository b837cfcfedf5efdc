"""
orderflow/audit.py

Audit logging helpers.

Goals:
- Record who changed which entity on every engine write, with before/after snapshots.
- Store an actor snapshot (user e-mail or portal client) so identity survives renames.

IMPORTANT:
- log_action() only ADDS rows to the session of the running unit of work.
  The calling unit of work controls transaction boundaries (commit/rollback).
- Engine operations also run outside requests (CLI, tests): request data is
  optional.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user

from .extensions import db
from .models import AuditLog


def _safe_str(value: Any) -> Optional[str]:
    """Stable string form for JSON storage (Decimal/datetime -> str)."""
    if value is None:
        return None
    return str(value)


def serialize_model(instance: Any, *fields: str) -> Dict[str, Optional[str]]:
    """
    Snapshot scalar column values of a model instance.

    When field names are given only those columns are captured.
    """
    names = fields or tuple(column.name for column in instance.__table__.columns)
    return {name: _safe_str(getattr(instance, name)) for name in names}


def _current_actor() -> tuple[Optional[int], Optional[str]]:
    if not has_request_context():
        return None, None
    if current_user.is_authenticated:
        return current_user.id, current_user.email
    return None, None


def log_action(
    entity: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    actor: Optional[str] = None,
) -> AuditLog:
    """
    Stage an AuditLog row for `entity` in the running transaction.

    Parameters:
        entity: model instance with .id (flush first for new rows)
        action: CREATE / UPDATE / STATUS / RESPOND ...
        before / after: dict snapshots (optional)
        actor: explicit actor label, e.g. "client:12" for portal actions
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError("log_action entity must have an 'id' attribute (after flush).")

    user_id, user_label = _current_actor()

    entry = AuditLog(
        user_id=user_id,
        actor_snapshot=actor or user_label,
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=str(action),
        before_data=json.dumps(before, ensure_ascii=False) if before else None,
        after_data=json.dumps(after, ensure_ascii=False) if after else None,
        ip_address=request.remote_addr if has_request_context() else None,
    )
    db.session.add(entry)
    return entry
