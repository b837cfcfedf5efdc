"""
Finance blueprint package (proposals and invoices).

Exposes finance_bp for the app factory.
"""

from .routes import finance_bp  # noqa: F401
