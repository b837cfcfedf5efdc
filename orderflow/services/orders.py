"""
orderflow/services/orders.py

Order progress rollup, order creation and manual status changes.

Rollup rule:
- progress_percent = round(100 * (COMPLETED + APPROVED milestones) / milestones)
- Orders without milestones are left untouched (standalone tasks do not roll up).
- The rollup never changes the order's catalog status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from flask import current_app

from ..audit import log_action, serialize_model
from ..errors import InvalidStateError, NotFoundError, OperationResult, OrderflowError
from ..extensions import db
from ..models import Client, Milestone, MilestoneStatus, Order, OrderStatus, OrderStatusHistory, Priority, User
from ..notifications import Channel, NotificationEvent, NotificationType, order_notification_recipients
from ..utils import get_initial_order_status, round_percent
from .numbering import next_number
from .transaction import UnitOfWork, unit_of_work

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderProgress:
    order_id: int
    progress_percent: int


def load_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found.")
    return order


# ---------------------------------------------------------------------
# Rollup
# ---------------------------------------------------------------------
def rollup_order(order: Order) -> OrderProgress:
    """Recompute order progress inside the caller's transaction."""
    statuses = [
        row.status
        for row in db.session.query(Milestone.status).filter(Milestone.order_id == order.id).all()
    ]
    if statuses:
        finished = sum(1 for status in statuses if status in MilestoneStatus.FINISHED)
        order.progress_percent = round_percent(finished, len(statuses))
        db.session.flush()
    return OrderProgress(order_id=order.id, progress_percent=order.progress_percent or 0)


def recompute_order(order_id: int) -> OperationResult[OrderProgress]:
    try:
        with unit_of_work():
            progress = rollup_order(load_order(order_id))
    except OrderflowError as exc:
        logger.warning("Order %s rollup failed: %s", order_id, exc.message)
        return OperationResult.failure(exc)
    return OperationResult.success(progress)


# ---------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------
def build_order(
    uow: UnitOfWork,
    *,
    title: str,
    client_id: int,
    currency: Optional[str] = None,
    estimated_budget: Optional[Decimal] = None,
    priority: str = Priority.MEDIUM,
    **extra,
) -> Order:
    """Number and add a new order in the initial catalog status."""
    if priority not in Priority.ALL:
        raise InvalidStateError(f"Unknown priority {priority!r}.")

    initial_status = get_initial_order_status()
    if initial_status is None:
        raise InvalidStateError("No initial order status is configured.")

    number = next_number("order")
    order = Order(
        number=number.formatted,
        title=title,
        client_id=client_id,
        status_id=initial_status.id,
        currency=currency or current_app.config.get("DEFAULT_CURRENCY", "TJS"),
        estimated_budget=estimated_budget,
        priority=priority,
        progress_percent=0,
        **extra,
    )
    uow.session.add(order)
    uow.session.flush()
    log_action(order, "CREATE", after=serialize_model(order, "number", "title", "client_id", "status_id"))
    return order


def create_order(
    *,
    title: str,
    client_id: int,
    currency: Optional[str] = None,
    estimated_budget: Optional[Decimal] = None,
    priority: str = Priority.MEDIUM,
    description: Optional[str] = None,
    manager_id: Optional[int] = None,
    deadline=None,
    estimated_hours: Optional[Decimal] = None,
) -> OperationResult[Order]:
    try:
        with unit_of_work() as uow:
            if db.session.get(Client, client_id) is None:
                raise NotFoundError(f"Client {client_id} not found.")
            if manager_id is not None and db.session.get(User, manager_id) is None:
                raise NotFoundError(f"User {manager_id} not found.")
            order = build_order(
                uow,
                title=title,
                client_id=client_id,
                currency=currency,
                estimated_budget=estimated_budget,
                priority=priority,
                description=description,
                manager_id=manager_id,
                deadline=deadline,
                estimated_hours=estimated_hours,
            )
    except OrderflowError as exc:
        logger.warning("Order creation failed: %s", exc.message)
        return OperationResult.failure(exc)

    logger.info("Order %s created", order.number)
    return OperationResult.success(order)


# ---------------------------------------------------------------------
# Manual status change (pipeline stage)
# ---------------------------------------------------------------------
def change_order_status(
    order_id: int,
    status_id: int,
    *,
    comment: Optional[str] = None,
    changed_by_id: Optional[int] = None,
) -> OperationResult[Order]:
    """
    Move an order to another catalog status and append the history row.

    Emits a STATUS event for the team and, when the target status is flagged
    notify_client, a client-status event.
    """
    try:
        with unit_of_work() as uow:
            order = load_order(order_id)
            new_status = db.session.get(OrderStatus, status_id)
            if new_status is None or not new_status.is_active:
                raise NotFoundError(f"Order status {status_id} not found.")

            before = serialize_model(order, "status_id")
            previous_status_id = order.status_id
            order.status_id = new_status.id
            uow.session.add(
                OrderStatusHistory(
                    order_id=order.id,
                    from_status_id=previous_status_id,
                    to_status_id=new_status.id,
                    comment=(comment or "").strip() or None,
                    changed_by_id=changed_by_id,
                )
            )
            uow.session.flush()
            log_action(order, "STATUS", before=before, after=serialize_model(order, "status_id"))

            link = f"/orders/{order.id}"
            uow.emit(
                NotificationEvent(
                    type=NotificationType.STATUS,
                    title="Order status changed",
                    description=f"{order.number} moved to «{new_status.name}»",
                    link_url=link,
                    entity_type="order",
                    entity_id=order.id,
                    recipient_user_ids=tuple(order_notification_recipients(order)),
                )
            )
            if new_status.notify_client:
                uow.emit(
                    NotificationEvent(
                        type=NotificationType.STATUS,
                        title="Order status changed",
                        description=f"{order.number}: {new_status.name}",
                        link_url=f"/portal/orders/{order.id}",
                        entity_type="order",
                        entity_id=order.id,
                        channel=Channel.CLIENT_STATUS,
                    )
                )
    except OrderflowError as exc:
        logger.warning("Order %s status change failed: %s", order_id, exc.message)
        return OperationResult.failure(exc)

    return OperationResult.success(order)
