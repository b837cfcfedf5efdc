"""
orderflow/services/numbering.py

Business-document numbers (orders, invoices, proposals).

The Settings row stores the NEXT value of each counter. A number is taken with
one atomic "increment and return" UPDATE, so two concurrent creations can never
receive the same value. Formatting embeds (post-increment value - 1):

    ORD-2026-007

IMPORTANT:
- The off-by-one formatting matches numbers already issued; do not "fix" it.
- The UPDATE joins the caller's transaction. If the caller rolls back, the
  counter rolls back with it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from ..errors import PersistenceError
from ..extensions import db
from ..models import Settings

logger = logging.getLogger(__name__)


# kind -> (counter column, prefix column)
COUNTERS = {
    "order": (Settings.next_order_number, Settings.order_prefix),
    "invoice": (Settings.next_invoice_number, Settings.invoice_prefix),
    "proposal": (Settings.next_proposal_number, Settings.proposal_prefix),
}


@dataclass(frozen=True)
class IssuedNumber:
    prefix: str
    value: int
    year: int

    @property
    def formatted(self) -> str:
        return f"{self.prefix}-{self.year}-{self.value - 1:03d}"

    def __str__(self) -> str:
        return self.formatted


def next_number(kind: str, *, today: Optional[date] = None) -> IssuedNumber:
    """
    Advance the `kind` counter and return the issued value.

    Raises:
        ValueError: unknown counter kind.
        PersistenceError: settings row missing or the store failed.
    """
    if kind not in COUNTERS:
        raise ValueError(f"Unknown counter kind: {kind!r}")

    counter, prefix = COUNTERS[kind]
    stmt = (
        update(Settings)
        .where(Settings.id == Settings.DEFAULT_ID)
        .values({counter: counter + 1})
        .execution_options(synchronize_session=False)
    )

    try:
        if db.engine.dialect.update_returning:
            row = db.session.execute(stmt.returning(counter, prefix)).first()
        else:
            # The UPDATE holds the row write lock until commit, so re-reading
            # inside the same transaction is still atomic.
            result = db.session.execute(stmt)
            row = None
            if result.rowcount:
                row = db.session.execute(
                    select(counter, prefix).where(Settings.id == Settings.DEFAULT_ID)
                ).first()
    except SQLAlchemyError as exc:
        logger.error("Counter %s could not be advanced: %s", kind, exc)
        raise PersistenceError(f"Could not issue a {kind} number.") from exc

    if row is None:
        raise PersistenceError("Settings are not initialised; run `flask seed-defaults`.")

    issued = IssuedNumber(prefix=row[1], value=int(row[0]), year=(today or date.today()).year)
    logger.debug("Issued %s number %s", kind, issued.formatted)
    return issued
