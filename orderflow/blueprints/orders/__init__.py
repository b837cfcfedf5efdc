"""
orderflow/blueprints/orders/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose orders_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import orders_bp  # noqa: F401
