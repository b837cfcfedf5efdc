from __future__ import annotations

from orderflow.errors import InvalidStateError, NotFoundError
from orderflow.extensions import db
from orderflow.models import AuditLog, MilestoneStatus, TaskStatus
from orderflow.notifications import Channel
from orderflow.services import (
    approve_milestone,
    recompute_milestone,
    reject_milestone,
    set_milestone_status,
)


def test_recompute_is_idempotent(factory, notifier):
    order = factory.order()
    milestone = factory.milestone(order, requires_approval=True)
    factory.task(order, milestone, status=TaskStatus.DONE)
    factory.task(order, milestone, status=TaskStatus.DONE)

    first = recompute_milestone(milestone.id).unwrap()
    second = recompute_milestone(milestone.id).unwrap()

    assert first.status == second.status == MilestoneStatus.COMPLETED
    assert first.progress_percent == second.progress_percent == 100
    assert [event.channel for event in notifier.events] == [Channel.IN_APP, Channel.CLIENT_REVIEW]
    assert AuditLog.query.filter_by(entity_type="Milestone", action="AUTO_COMPLETE").count() == 1


def test_client_review_event_only_when_approval_required(factory, notifier):
    order = factory.order()
    milestone = factory.milestone(order, requires_approval=False)
    factory.task(order, milestone, status=TaskStatus.DONE)

    recompute_milestone(milestone.id).unwrap()

    assert [event.channel for event in notifier.events] == [Channel.IN_APP]


def test_pending_milestone_is_not_auto_completed(factory):
    order = factory.order()
    milestone = factory.milestone(order, status=MilestoneStatus.PENDING)
    factory.task(order, milestone, status=TaskStatus.DONE)

    progress = recompute_milestone(milestone.id).unwrap()

    assert progress.progress_percent == 100
    assert progress.status == MilestoneStatus.PENDING


def test_milestone_without_tasks(factory):
    milestone = factory.milestone(factory.order())

    progress = recompute_milestone(milestone.id).unwrap()

    assert progress.progress_percent == 0
    assert progress.status == MilestoneStatus.IN_PROGRESS


def test_one_of_eight_rounds_half_up(factory):
    order = factory.order()
    milestone = factory.milestone(order)
    factory.task(order, milestone, status=TaskStatus.DONE)
    for idx in range(7):
        factory.task(order, milestone, title=f"Task {idx}")

    assert recompute_milestone(milestone.id).unwrap().progress_percent == 13


def test_recompute_unknown_milestone(app):
    assert isinstance(recompute_milestone(999).error, NotFoundError)


def test_set_status_completed_rolls_up_order(factory, notifier):
    manager = factory.user("pm@example.com", role="MANAGER")
    order = factory.order(manager=manager)
    first = factory.milestone(order, title="Design", requires_approval=True)
    factory.milestone(order, title="Build")

    milestone = set_milestone_status(first.id, MilestoneStatus.COMPLETED).unwrap()

    assert milestone.completed_at is not None
    assert order.progress_percent == 50
    assert notifier.titles() == ["Milestone status changed", "Milestone ready for review"]
    assert notifier.events[0].recipient_user_ids == (manager.id,)


def test_set_status_back_to_in_progress_clears_timestamps(factory):
    order = factory.order()
    milestone = factory.milestone(order, status=MilestoneStatus.COMPLETED)
    set_milestone_status(milestone.id, MilestoneStatus.APPROVED).unwrap()
    assert milestone.client_approved_at is not None

    set_milestone_status(milestone.id, MilestoneStatus.CANCELLED).unwrap()

    assert milestone.completed_at is None
    assert milestone.client_approved_at is None
    assert order.progress_percent == 0


def test_set_status_rejects_unknown_value(factory):
    milestone = factory.milestone(factory.order())

    assert isinstance(set_milestone_status(milestone.id, "DONE").error, InvalidStateError)


def test_client_approves_milestone(factory, notifier):
    client = factory.client()
    order = factory.order(client=client)
    milestone = factory.milestone(order, status=MilestoneStatus.COMPLETED)

    approved = approve_milestone(client.id, milestone.id).unwrap()

    assert approved.status == MilestoneStatus.APPROVED
    assert approved.client_approved_at is not None
    assert order.progress_percent == 100
    assert notifier.titles() == ["Milestone approved by client"]
    entry = AuditLog.query.filter_by(entity_type="Milestone", action="APPROVE").one()
    assert entry.actor_snapshot == f"client:{client.id}"


def test_foreign_client_cannot_approve(factory):
    owner = factory.client()
    stranger = factory.client(name="Globex", token="globex-token")
    milestone = factory.milestone(factory.order(client=owner), status=MilestoneStatus.COMPLETED)

    result = approve_milestone(stranger.id, milestone.id)

    assert isinstance(result.error, NotFoundError)
    db.session.expire_all()
    assert milestone.status == MilestoneStatus.COMPLETED


def test_client_rejects_completed_milestone(factory, notifier):
    client = factory.client()
    order = factory.order(client=client)
    milestone = factory.milestone(order, status=MilestoneStatus.COMPLETED)

    rejected = reject_milestone(client.id, milestone.id, "  Logo is too small  ").unwrap()

    assert rejected.status == MilestoneStatus.IN_PROGRESS
    assert rejected.completed_at is None
    assert order.progress_percent == 0
    assert "Logo is too small" in notifier.events[0].description
    entry = AuditLog.query.filter_by(entity_type="Milestone", action="REJECT").one()
    assert '"reason": "Logo is too small"' in entry.after_data


def test_reject_requires_completed_milestone(factory):
    client = factory.client()
    milestone = factory.milestone(factory.order(client=client), status=MilestoneStatus.APPROVED)

    result = reject_milestone(client.id, milestone.id, "late")

    assert isinstance(result.error, NotFoundError)
    assert milestone.status == MilestoneStatus.APPROVED
