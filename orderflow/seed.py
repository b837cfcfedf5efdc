"""
orderflow/seed.py

Seed the order-status catalog and the Settings singleton.

Rules:
- Safe to run multiple times (idempotent).
- Existing counters are NEVER reset: numbers already issued depend on them.
- Catalog rows are matched by code; name/position/flags are kept in sync.
"""

from __future__ import annotations

from .extensions import db
from .models import OrderStatus, Settings


DEFAULT_ORDER_STATUSES = [
    # code, name, color, flags
    ("new", "New request", "#6B7280", {"is_initial": True}),
    ("estimation", "Estimation", "#3B82F6", {}),
    ("proposal_sent", "Proposal sent", "#8B5CF6", {"notify_client": True}),
    ("in_progress", "In progress", "#F59E0B", {}),
    ("testing", "Testing", "#F97316", {}),
    ("client_review", "Client review", "#EC4899", {"notify_client": True}),
    ("completed", "Completed", "#10B981", {"is_final": True, "notify_client": True}),
    ("cancelled", "Cancelled", "#EF4444", {"is_final": True}),
]


def seed_settings(currency: str = "TJS") -> Settings:
    """Create the Settings singleton if missing."""
    settings = db.session.get(Settings, Settings.DEFAULT_ID)
    if settings is None:
        settings = Settings(
            id=Settings.DEFAULT_ID,
            currency=currency,
            order_prefix="ORD",
            invoice_prefix="INV",
            proposal_prefix="KP",
            next_order_number=1,
            next_invoice_number=1,
            next_proposal_number=1,
        )
        db.session.add(settings)
        db.session.flush()
    return settings


def seed_order_statuses() -> None:
    for position, (code, name, color, flags) in enumerate(DEFAULT_ORDER_STATUSES, start=1):
        status = OrderStatus.query.filter_by(code=code).first()
        if not status:
            status = OrderStatus(code=code)
            db.session.add(status)

        status.name = name
        status.color = color
        status.position = position
        status.is_initial = flags.get("is_initial", False)
        status.is_final = flags.get("is_final", False)
        status.notify_client = flags.get("notify_client", False)
        if status.is_active is None:
            status.is_active = True

    db.session.flush()


def seed_defaults(currency: str = "TJS") -> None:
    """Seed settings + order-status catalog and commit."""
    seed_settings(currency=currency)
    seed_order_statuses()
    db.session.commit()
