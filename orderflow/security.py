"""
orderflow/security.py

Access control helpers for the staff API and the client portal.

Key rules:
- Staff routes use Flask-Login sessions; order-level changes need ADMIN/MANAGER.
- Portal routes authenticate a Client by its portal token (X-Portal-Token
  header or ?token=). The resolved client is stored on flask.g.
- Authorization stops here: the engine additionally scopes every portal
  operation to the resolved client id.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional, Tuple

from flask import g, jsonify, request
from flask_login import current_user

from .models import Client

PORTAL_TOKEN_HEADER = "X-Portal-Token"


def _error(status: int, code: str, message: str) -> Tuple[Any, int]:
    """Consistent JSON error body."""
    return jsonify({"error": {"code": code, "message": message}}), status


def is_manager() -> bool:
    """Return True if the current user is an authenticated ADMIN or MANAGER."""
    if not current_user.is_authenticated:
        return False
    can_manage = getattr(current_user, "can_manage", None)
    return bool(callable(can_manage) and can_manage())


def manager_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: ADMIN/MANAGER only (use after login_required)."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_manager():
            return _error(403, "forbidden", "Manager role required.")
        return view_func(*args, **kwargs)

    return wrapper


def resolve_portal_client(token: Optional[str]) -> Optional[Client]:
    """Active (non-archived) client owning the token, or None."""
    token = (token or "").strip()
    if not token:
        return None
    return Client.query.filter_by(portal_token=token, is_archived=False).first()


def portal_client_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: resolve the portal client or answer 401."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        token = request.headers.get(PORTAL_TOKEN_HEADER) or request.args.get("token")
        client = resolve_portal_client(token)
        if client is None:
            return _error(401, "unauthorized", "Invalid portal token.")
        g.portal_client = client
        return view_func(*args, **kwargs)

    return wrapper
