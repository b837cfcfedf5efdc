"""
orderflow/services/transaction.py

One database transaction per engine operation.

Pattern (same as the request handlers): mutate -> flush -> audit -> commit.
On any failure the session is rolled back and buffered notifications are
dropped; after a successful commit they are dispatched to the notifier.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..errors import PersistenceError
from ..extensions import db
from ..notifications import NotificationOutbox, Notifier, get_notifier

logger = logging.getLogger(__name__)


@dataclass
class UnitOfWork:
    outbox: NotificationOutbox = field(default_factory=NotificationOutbox)

    @property
    def session(self):
        return db.session

    def emit(self, event) -> None:
        self.outbox.emit(event)


@contextmanager
def unit_of_work(notifier: Optional[Notifier] = None) -> Iterator[UnitOfWork]:
    """
    Run the enclosed block as a single transaction.

    SQLAlchemy failures (including failures at commit time) surface as
    PersistenceError. Engine errors raised inside the block propagate
    unchanged after the rollback.
    """
    uow = UnitOfWork()
    try:
        yield uow
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        uow.outbox.discard()
        logger.error("Transaction rolled back: %s", exc)
        raise PersistenceError("The operation could not be saved.") from exc
    except BaseException:
        db.session.rollback()
        uow.outbox.discard()
        raise

    uow.outbox.dispatch(notifier or get_notifier())
