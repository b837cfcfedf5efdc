"""
orderflow/notifications.py

Notification events emitted by the fulfillment engine.

The engine computes WHO should hear about a change and WHAT the event says.
Delivery (in-app rows, e-mail, channel selection) belongs to a Notifier
collaborator registered on the app.

Rules:
- Events are buffered in a NotificationOutbox during the transaction and
  dispatched only after commit. A rolled-back operation emits nothing.
- Dispatch is best-effort: delivery failures are logged, never surfaced to
  the caller of the engine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .models import Notification, Order, Role, User

logger = logging.getLogger(__name__)

EXTENSION_KEY = "orderflow.notifier"


class NotificationType:
    STATUS = "STATUS"
    COMMENT = "COMMENT"
    ASSIGNMENT = "ASSIGNMENT"
    DEADLINE = "DEADLINE"


class Channel:
    IN_APP = "in_app"
    # "milestone ready for client review" (client e-mail in production)
    CLIENT_REVIEW = "client_review"
    # order moved to a catalog status flagged notify_client
    CLIENT_STATUS = "client_status"


@dataclass(frozen=True)
class NotificationEvent:
    type: str
    title: str
    description: str
    link_url: Optional[str]
    entity_type: str
    entity_id: int
    recipient_user_ids: Tuple[int, ...] = ()
    channel: str = Channel.IN_APP


# ---------------------------------------------------------------------
# Recipients
# ---------------------------------------------------------------------
def _dedupe(ids: Iterable[Optional[int]]) -> List[int]:
    seen: List[int] = []
    for user_id in ids:
        if user_id is not None and user_id not in seen:
            seen.append(user_id)
    return seen


def staff_recipients() -> List[int]:
    """All active ADMIN and MANAGER users."""
    rows = (
        db.session.query(User.id)
        .filter(User.role.in_(Role.STAFF_NOTIFIED), User.is_active.is_(True))
        .order_by(User.id.asc())
        .all()
    )
    return [row.id for row in rows]


def order_notification_recipients(order: Order) -> List[int]:
    """Order manager, assignees of the order's tasks, then admins/managers."""
    assignees = [task.assignee_id for task in order.tasks]
    return _dedupe([order.manager_id, *assignees, *staff_recipients()])


# ---------------------------------------------------------------------
# Delivery collaborators
# ---------------------------------------------------------------------
class Notifier:
    """Delivery collaborator interface."""

    def deliver(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class InAppNotifier(Notifier):
    """
    Default notifier: one Notification row per recipient for in-app events.

    Client-facing channels are handed to the outbound mailer, which is not part
    of this application; they are only logged here.
    """

    def deliver(self, event: NotificationEvent) -> None:
        if event.channel != Channel.IN_APP:
            logger.info(
                "Client notification %s for %s #%s queued for external delivery",
                event.channel,
                event.entity_type,
                event.entity_id,
            )
            return

        if not event.recipient_user_ids:
            return

        db.session.add_all(
            [
                Notification(
                    user_id=user_id,
                    type=event.type,
                    title=event.title[:255],
                    description=event.description,
                    link_url=event.link_url,
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                )
                for user_id in event.recipient_user_ids
            ]
        )
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise


def init_notifier(app, notifier: Optional[Notifier] = None) -> None:
    app.extensions[EXTENSION_KEY] = notifier or InAppNotifier()


def get_notifier() -> Notifier:
    notifier = current_app.extensions.get(EXTENSION_KEY)
    if notifier is None:
        notifier = InAppNotifier()
        current_app.extensions[EXTENSION_KEY] = notifier
    return notifier


# ---------------------------------------------------------------------
# Outbox
# ---------------------------------------------------------------------
@dataclass
class NotificationOutbox:
    """Events collected during one unit of work."""

    events: List[NotificationEvent] = field(default_factory=list)

    def emit(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def discard(self) -> None:
        self.events.clear()

    def dispatch(self, notifier: Notifier) -> int:
        """Deliver buffered events; returns how many were delivered."""
        delivered = 0
        pending, self.events = self.events, []
        for event in pending:
            try:
                notifier.deliver(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "Notification delivery failed for %s #%s (%s)",
                    event.entity_type,
                    event.entity_id,
                    event.title,
                )
        return delivered
