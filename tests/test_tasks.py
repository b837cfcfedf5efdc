from __future__ import annotations

import pytest
from sqlalchemy.exc import SQLAlchemyError

from orderflow.errors import InvalidStateError, NotFoundError, PersistenceError
from orderflow.extensions import db
from orderflow.models import AuditLog, MilestoneStatus, TaskStatus
from orderflow.services import set_task_status


@pytest.fixture
def milestone_with_tasks(factory):
    order = factory.order()
    milestone = factory.milestone(order)
    tasks = [
        factory.task(order, milestone, status=TaskStatus.DONE, title="Wireframes"),
        factory.task(order, milestone, status=TaskStatus.DONE, title="Mockups"),
        factory.task(order, milestone, status=TaskStatus.REVIEW, title="Style guide"),
    ]
    return order, milestone, tasks


def test_done_sets_completed_at_and_leaving_done_clears_it(factory):
    order = factory.order()
    task = factory.task(order)

    result = set_task_status(task.id, TaskStatus.DONE)
    assert result.ok
    assert task.status == TaskStatus.DONE
    assert task.completed_at is not None

    set_task_status(task.id, TaskStatus.IN_PROGRESS).unwrap()
    assert task.completed_at is None


def test_any_known_status_can_be_set(factory):
    task = factory.task(factory.order())

    assert set_task_status(task.id, TaskStatus.DONE).ok
    assert set_task_status(task.id, TaskStatus.TODO).ok
    assert set_task_status(task.id, TaskStatus.CANCELLED).ok
    assert task.completed_at is None


def test_last_task_done_completes_milestone(milestone_with_tasks, notifier):
    order, milestone, tasks = milestone_with_tasks

    set_task_status(tasks[2].id, TaskStatus.DONE).unwrap()

    assert milestone.progress_percent == 100
    assert milestone.status == MilestoneStatus.COMPLETED
    assert milestone.completed_at is not None
    assert order.progress_percent == 100
    assert notifier.titles() == ["Milestone completed automatically"]


def test_reopening_task_reverts_completed_milestone(milestone_with_tasks):
    order, milestone, tasks = milestone_with_tasks
    set_task_status(tasks[2].id, TaskStatus.DONE).unwrap()

    set_task_status(tasks[0].id, TaskStatus.IN_PROGRESS).unwrap()

    assert milestone.status == MilestoneStatus.IN_PROGRESS
    assert milestone.completed_at is None
    assert milestone.progress_percent == 67
    assert order.progress_percent == 0


def test_approved_milestone_is_not_reverted(factory):
    order = factory.order()
    milestone = factory.milestone(order, status=MilestoneStatus.APPROVED)
    task = factory.task(order, milestone, status=TaskStatus.DONE)
    factory.task(order, milestone, status=TaskStatus.DONE)

    set_task_status(task.id, TaskStatus.IN_PROGRESS).unwrap()

    assert milestone.status == MilestoneStatus.APPROVED
    assert milestone.progress_percent == 50
    assert order.progress_percent == 100


def test_standalone_task_leaves_order_progress(factory):
    order = factory.order()
    order.progress_percent = 40
    db.session.commit()
    task = factory.task(order)

    set_task_status(task.id, TaskStatus.DONE).unwrap()

    assert order.progress_percent == 40


def test_unknown_task(app):
    result = set_task_status(404, TaskStatus.DONE)

    assert not result.ok
    assert isinstance(result.error, NotFoundError)


def test_unknown_status(factory):
    task = factory.task(factory.order())

    result = set_task_status(task.id, "ARCHIVED")

    assert isinstance(result.error, InvalidStateError)
    assert task.status == TaskStatus.TODO


def test_status_change_is_audited(factory):
    task = factory.task(factory.order())

    set_task_status(task.id, TaskStatus.REVIEW).unwrap()

    entry = AuditLog.query.filter_by(entity_type="Task", entity_id=task.id).one()
    assert entry.action == "STATUS"
    assert '"REVIEW"' in entry.after_data


def test_cascade_failure_rolls_back_task_write(milestone_with_tasks, monkeypatch, notifier):
    order, milestone, tasks = milestone_with_tasks

    def broken_rollup(order):
        raise SQLAlchemyError("database went away")

    monkeypatch.setattr("orderflow.services.tasks.rollup_order", broken_rollup)

    result = set_task_status(tasks[2].id, TaskStatus.DONE)

    assert isinstance(result.error, PersistenceError)
    db.session.expire_all()
    assert tasks[2].status == TaskStatus.REVIEW
    assert tasks[2].completed_at is None
    assert milestone.status == MilestoneStatus.IN_PROGRESS
    assert milestone.progress_percent == 0
    assert AuditLog.query.filter_by(entity_type="Task").count() == 0
    assert notifier.events == []
