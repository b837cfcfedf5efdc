"""
orderflow/services/tasks.py

Task status machine.

Any known status may be set from any other; there is no transition table.
completed_at is set exactly when the task becomes DONE and cleared otherwise.
The task write, the milestone cascade and the order rollup share one
transaction: either all three are committed or none is.
"""

from __future__ import annotations

import logging

from ..audit import log_action, serialize_model
from ..errors import InvalidStateError, NotFoundError, OperationResult, OrderflowError
from ..extensions import db
from ..models import Task, TaskStatus, utcnow
from .milestones import cascade_milestone
from .orders import rollup_order
from .transaction import unit_of_work

logger = logging.getLogger(__name__)


def set_task_status(task_id: int, new_status: str) -> OperationResult[Task]:
    try:
        if new_status not in TaskStatus.ALL:
            raise InvalidStateError(f"Unknown task status {new_status!r}.")

        with unit_of_work() as uow:
            task = db.session.get(Task, task_id)
            if task is None:
                raise NotFoundError(f"Task {task_id} not found.")

            before = serialize_model(task, "status", "completed_at")
            task.status = new_status
            task.completed_at = utcnow() if new_status == TaskStatus.DONE else None
            db.session.flush()
            log_action(task, "STATUS", before=before, after=serialize_model(task, "status", "completed_at"))

            if task.milestone is not None:
                cascade_milestone(task.milestone, uow)
            if task.order is not None:
                rollup_order(task.order)
    except OrderflowError as exc:
        logger.warning("Task %s status change to %s failed: %s", task_id, new_status, exc.message)
        return OperationResult.failure(exc)

    logger.debug("Task %s set to %s", task_id, new_status)
    return OperationResult.success(task)
