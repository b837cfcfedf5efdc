"""
Client portal blueprint package.

Exposes portal_bp for the app factory.
"""

from .routes import portal_bp  # noqa: F401
