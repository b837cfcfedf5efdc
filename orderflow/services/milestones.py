"""
orderflow/services/milestones.py

Milestone progress cascade and milestone status workflow.

Cascade (run after every task status write):
1) progress_percent = round(100 * done / total) over the CURRENT task set (0 if empty)
2) forward:  100% and IN_PROGRESS -> COMPLETED (+ completed_at, team event,
             client-review event when requires_approval)
3) reverse:  <100% and COMPLETED  -> IN_PROGRESS (completed_at cleared)

IMPORTANT:
- APPROVED never auto-reverts. Only an explicit staff/client action undoes an
  approval.
- PENDING milestones are not auto-completed.
- A second recompute without task changes is a no-op (no duplicate events).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..audit import log_action, serialize_model
from ..errors import InvalidStateError, NotFoundError, OperationResult, OrderflowError
from ..extensions import db
from ..models import Milestone, MilestoneStatus, Order, Task, TaskStatus, utcnow
from ..notifications import Channel, NotificationEvent, NotificationType, order_notification_recipients
from ..utils import round_percent
from .orders import rollup_order
from .transaction import UnitOfWork, unit_of_work

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    MilestoneStatus.PENDING: "Pending",
    MilestoneStatus.IN_PROGRESS: "In progress",
    MilestoneStatus.COMPLETED: "Completed",
    MilestoneStatus.APPROVED: "Approved",
    MilestoneStatus.CANCELLED: "Cancelled",
}


@dataclass(frozen=True)
class MilestoneProgress:
    milestone_id: int
    progress_percent: int
    status: str


def load_milestone(milestone_id: int) -> Milestone:
    milestone = db.session.get(Milestone, milestone_id)
    if milestone is None:
        raise NotFoundError(f"Milestone {milestone_id} not found.")
    return milestone


def _load_client_milestone(client_id: int, milestone_id: int) -> Milestone:
    """Milestone of an order owned by the client; NotFoundError otherwise."""
    milestone = (
        Milestone.query.join(Order, Milestone.order_id == Order.id)
        .filter(Milestone.id == milestone_id, Order.client_id == client_id)
        .first()
    )
    if milestone is None:
        raise NotFoundError("Milestone not found.")
    return milestone


def _team_event(milestone: Milestone, title: str, description: str) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.STATUS,
        title=title,
        description=description,
        link_url=f"/orders/{milestone.order_id}",
        entity_type="milestone",
        entity_id=milestone.id,
        recipient_user_ids=tuple(order_notification_recipients(milestone.order)),
    )


def _client_review_event(milestone: Milestone) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.STATUS,
        title="Milestone ready for review",
        description=f"«{milestone.title}» (order {milestone.order.number}) is ready for your review",
        link_url=f"/portal/orders/{milestone.order_id}",
        entity_type="milestone",
        entity_id=milestone.id,
        channel=Channel.CLIENT_REVIEW,
    )


# ---------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------
def cascade_milestone(milestone: Milestone, uow: UnitOfWork) -> MilestoneProgress:
    """Recompute progress and apply automatic transitions in the caller's transaction."""
    statuses = [
        row.status for row in db.session.query(Task.status).filter(Task.milestone_id == milestone.id).all()
    ]
    done = sum(1 for status in statuses if status == TaskStatus.DONE)
    percent = round_percent(done, len(statuses))

    milestone.progress_percent = percent

    if percent == 100 and milestone.status == MilestoneStatus.IN_PROGRESS:
        before = serialize_model(milestone, "status", "completed_at")
        milestone.status = MilestoneStatus.COMPLETED
        milestone.completed_at = utcnow()
        db.session.flush()
        log_action(milestone, "AUTO_COMPLETE", before=before, after=serialize_model(milestone, "status", "completed_at"))

        uow.emit(
            _team_event(
                milestone,
                "Milestone completed automatically",
                f"All tasks of «{milestone.title}» are done",
            )
        )
        if milestone.requires_approval:
            uow.emit(_client_review_event(milestone))
        logger.info("Milestone %s auto-completed", milestone.id)

    elif percent < 100 and milestone.status == MilestoneStatus.COMPLETED:
        before = serialize_model(milestone, "status", "completed_at")
        milestone.status = MilestoneStatus.IN_PROGRESS
        milestone.completed_at = None
        db.session.flush()
        log_action(milestone, "AUTO_REOPEN", before=before, after=serialize_model(milestone, "status", "completed_at"))
        logger.info("Milestone %s reopened: %s%% done", milestone.id, percent)

    db.session.flush()
    return MilestoneProgress(milestone_id=milestone.id, progress_percent=percent, status=milestone.status)


def recompute_milestone(milestone_id: int) -> OperationResult[MilestoneProgress]:
    try:
        with unit_of_work() as uow:
            progress = cascade_milestone(load_milestone(milestone_id), uow)
    except OrderflowError as exc:
        logger.warning("Milestone %s recompute failed: %s", milestone_id, exc.message)
        return OperationResult.failure(exc)
    return OperationResult.success(progress)


# ---------------------------------------------------------------------
# Explicit status changes
# ---------------------------------------------------------------------
def _apply_status(milestone: Milestone, status: str) -> None:
    """Timestamp workflow of a manual status change."""
    previous = milestone.status
    milestone.status = status

    if status == MilestoneStatus.COMPLETED:
        milestone.completed_at = utcnow()
    elif status == MilestoneStatus.IN_PROGRESS and previous == MilestoneStatus.COMPLETED:
        # Request changes: clear approval
        milestone.completed_at = None
        milestone.client_approved_at = None
    elif status == MilestoneStatus.APPROVED:
        milestone.client_approved_at = utcnow()
    elif status in (MilestoneStatus.PENDING, MilestoneStatus.CANCELLED):
        milestone.completed_at = None
        milestone.client_approved_at = None


def set_milestone_status(milestone_id: int, status: str) -> OperationResult[Milestone]:
    """Staff action: set a milestone status, notify the team, roll up the order."""
    try:
        if status not in MilestoneStatus.ALL:
            raise InvalidStateError(f"Unknown milestone status {status!r}.")

        with unit_of_work() as uow:
            milestone = load_milestone(milestone_id)
            before = serialize_model(milestone, "status", "completed_at", "client_approved_at")
            _apply_status(milestone, status)
            db.session.flush()
            log_action(
                milestone,
                "STATUS",
                before=before,
                after=serialize_model(milestone, "status", "completed_at", "client_approved_at"),
            )

            uow.emit(
                _team_event(
                    milestone,
                    "Milestone status changed",
                    f"«{milestone.title}»: {STATUS_LABELS[status]} (order {milestone.order.number})",
                )
            )
            if status == MilestoneStatus.COMPLETED and milestone.requires_approval:
                uow.emit(_client_review_event(milestone))

            rollup_order(milestone.order)
    except OrderflowError as exc:
        logger.warning("Milestone %s status change failed: %s", milestone_id, exc.message)
        return OperationResult.failure(exc)

    return OperationResult.success(milestone)


def approve_milestone(client_id: int, milestone_id: int) -> OperationResult[Milestone]:
    """Portal action: the client approves a milestone."""
    try:
        with unit_of_work() as uow:
            milestone = _load_client_milestone(client_id, milestone_id)
            before = serialize_model(milestone, "status", "client_approved_at")
            milestone.status = MilestoneStatus.APPROVED
            milestone.client_approved_at = utcnow()
            db.session.flush()
            log_action(
                milestone,
                "APPROVE",
                before=before,
                after=serialize_model(milestone, "status", "client_approved_at"),
                actor=f"client:{client_id}",
            )

            uow.emit(
                _team_event(
                    milestone,
                    "Milestone approved by client",
                    f"«{milestone.title}»: order {milestone.order.number}",
                )
            )
            rollup_order(milestone.order)
    except OrderflowError as exc:
        logger.warning("Milestone %s approval failed: %s", milestone_id, exc.message)
        return OperationResult.failure(exc)

    return OperationResult.success(milestone)


def reject_milestone(client_id: int, milestone_id: int, comment: str = "") -> OperationResult[Milestone]:
    """Portal action: the client sends a COMPLETED milestone back for revisions."""
    try:
        with unit_of_work() as uow:
            milestone = _load_client_milestone(client_id, milestone_id)
            if milestone.status != MilestoneStatus.COMPLETED:
                # Same answer as a foreign milestone
                raise NotFoundError("Milestone not found or cannot be rejected.")

            before = serialize_model(milestone, "status", "completed_at", "client_approved_at")
            milestone.status = MilestoneStatus.IN_PROGRESS
            milestone.completed_at = None
            milestone.client_approved_at = None
            db.session.flush()

            reason = (comment or "").strip()
            after = serialize_model(milestone, "status", "completed_at", "client_approved_at")
            if reason:
                after["reason"] = reason
            log_action(milestone, "REJECT", before=before, after=after, actor=f"client:{client_id}")

            uow.emit(
                _team_event(
                    milestone,
                    "Client rejected milestone",
                    f"«{milestone.title}»: order {milestone.order.number}. Reason: {reason[:100]}",
                )
            )
            rollup_order(milestone.order)
    except OrderflowError as exc:
        logger.warning("Milestone %s rejection failed: %s", milestone_id, exc.message)
        return OperationResult.failure(exc)

    return OperationResult.success(milestone)
