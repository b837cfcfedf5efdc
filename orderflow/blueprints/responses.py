"""
orderflow/blueprints/responses.py

Shared request parsing and response helpers for the JSON blueprints.

Error mapping:
- NotFoundError      -> 404
- InvalidStateError  -> 409
- PersistenceError   -> 503
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

from flask import abort, jsonify, request

from ..errors import InvalidStateError, NotFoundError, OperationResult, PersistenceError

ERROR_STATUS = {
    NotFoundError: 404,
    InvalidStateError: 409,
    PersistenceError: 503,
}


# ---------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------
def json_body() -> Dict[str, Any]:
    """Request JSON object (form data as fallback)."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def parse_text(value) -> str:
    """Stripped text from a JSON scalar; lists and objects answer 400."""
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        abort(400, description="Expected a text value.")
    return str(value).strip()


def parse_decimal(value) -> Optional[Decimal]:
    """Parse decimal from user input (accepts comma or dot)."""
    if value is None:
        return None
    raw = str(value).strip().replace(",", ".")
    if raw == "":
        return None
    try:
        return Decimal(raw)
    except (InvalidOperation, ValueError):
        return None


def parse_optional_int(value) -> Optional[int]:
    if value is None:
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


# ---------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------
def bad_request(message: str):
    return jsonify({"error": {"code": "bad_request", "message": message}}), 400


def result_response(result: OperationResult, serializer: Callable[[Any], Dict[str, Any]], status: int = 200):
    """Serialize a success payload or map the typed error to an HTTP status."""
    if result.ok:
        return jsonify(serializer(result.value)), status

    error = result.error
    http_status = ERROR_STATUS.get(type(error), 500)
    return jsonify({"error": {"code": error.code, "message": error.message}}), http_status


# ---------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------
def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _money(value) -> Optional[str]:
    return str(value) if value is not None else None


def task_to_dict(task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "status": task.status,
        "completed_at": _iso(task.completed_at),
        "milestone": milestone_to_dict(task.milestone) if task.milestone else None,
        "order": {"id": task.order.id, "progress_percent": task.order.progress_percent},
    }


def milestone_to_dict(milestone) -> Dict[str, Any]:
    return {
        "id": milestone.id,
        "title": milestone.title,
        "status": milestone.status,
        "progress_percent": milestone.progress_percent,
        "completed_at": _iso(milestone.completed_at),
        "client_approved_at": _iso(milestone.client_approved_at),
    }


def order_to_dict(order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "number": order.number,
        "title": order.title,
        "priority": order.priority,
        "progress_percent": order.progress_percent,
        "status": {"id": order.status.id, "code": order.status.code, "name": order.status.name},
        "client_id": order.client_id,
        "currency": order.currency,
        "estimated_budget": _money(order.estimated_budget),
    }


def item_to_dict(item) -> Dict[str, Any]:
    return {
        "description": item.description,
        "quantity": _money(item.quantity),
        "unit_price": _money(item.unit_price),
        "total": _money(item.total),
        "position": item.position,
    }


def proposal_to_dict(proposal) -> Dict[str, Any]:
    return {
        "id": proposal.id,
        "number": proposal.number,
        "title": proposal.title,
        "status": proposal.status,
        "currency": proposal.currency,
        "total_amount": _money(proposal.total_amount),
        "order_id": proposal.order_id,
        "responded_at": _iso(proposal.responded_at),
        "items": [item_to_dict(item) for item in proposal.items],
    }


def invoice_to_dict(invoice) -> Dict[str, Any]:
    return {
        "id": invoice.id,
        "number": invoice.number,
        "status": invoice.status,
        "client_id": invoice.client_id,
        "order_id": invoice.order_id,
        "issue_date": _iso(invoice.issue_date),
        "due_date": _iso(invoice.due_date),
        "subtotal": _money(invoice.subtotal),
        "tax_amount": _money(invoice.tax_amount),
        "total": _money(invoice.total),
        "items": [item_to_dict(item) for item in invoice.items],
    }
