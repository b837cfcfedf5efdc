"""
orderflow/services/proposals.py

Proposal lifecycle and the acceptance pipeline.

    DRAFT --send--> SENT --client opens--> VIEWED
    SENT | VIEWED --client responds--> ACCEPTED | REJECTED

On ACCEPTED, in the SAME transaction as the response:
  a) a numbered Order in the initial catalog status (title/client/currency from
     the proposal, estimated_budget = total_amount)
  b) proposal.order_id = order.id
  c) a numbered SENT Invoice for the same client/order, due after the payment
     term, with the proposal items value-copied 1:1

IMPORTANT:
- Responses to proposals that are not the client's, or not awaiting a
  response, are reported as NotFoundError (no existence leak).
- Any failure rolls back the response, the order and the invoice together.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from flask import current_app

from ..audit import log_action, serialize_model
from ..errors import InvalidStateError, NotFoundError, OperationResult, OrderflowError, PersistenceError
from ..extensions import db
from ..models import Client, InvoiceStatus, Order, Priority, Proposal, ProposalItem, ProposalStatus, utcnow
from ..notifications import NotificationEvent, NotificationType, staff_recipients
from .invoices import LineItem, build_invoice, line_items_total, parse_line_items
from .numbering import next_number
from .orders import build_order
from .transaction import UnitOfWork, unit_of_work

logger = logging.getLogger(__name__)


def _load_proposal(proposal_id: int) -> Proposal:
    proposal = db.session.get(Proposal, proposal_id)
    if proposal is None:
        raise NotFoundError(f"Proposal {proposal_id} not found.")
    return proposal


# ---------------------------------------------------------------------
# Staff actions
# ---------------------------------------------------------------------
def create_proposal(
    *,
    client_id: int,
    title: str,
    items: Iterable,
    currency: Optional[str] = None,
    order_id: Optional[int] = None,
    valid_until: Optional[datetime] = None,
) -> OperationResult[Proposal]:
    """Create a numbered DRAFT proposal; total_amount is the sum of item totals."""
    try:
        line_items = parse_line_items(items)
        with unit_of_work() as uow:
            if db.session.get(Client, client_id) is None:
                raise NotFoundError(f"Client {client_id} not found.")
            if order_id is not None:
                order = db.session.get(Order, order_id)
                if order is None or order.client_id != client_id:
                    raise NotFoundError(f"Order {order_id} not found.")

            number = next_number("proposal")
            proposal = Proposal(
                number=number.formatted,
                title=title,
                client_id=client_id,
                order_id=order_id,
                status=ProposalStatus.DRAFT,
                currency=currency or current_app.config.get("DEFAULT_CURRENCY", "TJS"),
                total_amount=line_items_total(line_items),
                valid_until=valid_until,
                items=[
                    ProposalItem(
                        description=item.description,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        total=item.total,
                        position=idx,
                    )
                    for idx, item in enumerate(line_items)
                ],
            )
            uow.session.add(proposal)
            uow.session.flush()
            log_action(proposal, "CREATE", after=serialize_model(proposal, "number", "client_id", "total_amount"))
    except OrderflowError as exc:
        logger.warning("Proposal creation failed: %s", exc.message)
        return OperationResult.failure(exc)

    return OperationResult.success(proposal)


def send_proposal(proposal_id: int) -> OperationResult[Proposal]:
    """DRAFT -> SENT."""
    try:
        with unit_of_work():
            proposal = _load_proposal(proposal_id)
            if proposal.status != ProposalStatus.DRAFT:
                raise InvalidStateError(f"Proposal {proposal.number} has already been sent.")
            before = serialize_model(proposal, "status")
            proposal.status = ProposalStatus.SENT
            proposal.sent_at = utcnow()
            db.session.flush()
            log_action(proposal, "STATUS", before=before, after=serialize_model(proposal, "status", "sent_at"))
    except OrderflowError as exc:
        logger.warning("Proposal %s could not be sent: %s", proposal_id, exc.message)
        return OperationResult.failure(exc)

    return OperationResult.success(proposal)


# ---------------------------------------------------------------------
# Portal actions
# ---------------------------------------------------------------------
def view_proposal(client_id: int, proposal_id: int) -> OperationResult[Proposal]:
    """Client opens a proposal: drafts stay hidden, SENT becomes VIEWED."""
    try:
        with unit_of_work():
            proposal = Proposal.query.filter(
                Proposal.id == proposal_id,
                Proposal.client_id == client_id,
                Proposal.status != ProposalStatus.DRAFT,
            ).first()
            if proposal is None:
                raise NotFoundError("Proposal not found.")
            if proposal.status == ProposalStatus.SENT:
                proposal.status = ProposalStatus.VIEWED
                proposal.viewed_at = utcnow()
    except OrderflowError as exc:
        return OperationResult.failure(exc)

    return OperationResult.success(proposal)


def _materialize_order_and_invoice(uow: UnitOfWork, proposal: Proposal, responded_at: datetime) -> None:
    # Snapshot before anything else touches the proposal
    items = [LineItem.from_row(item) for item in proposal.items]

    order = build_order(
        uow,
        title=proposal.title,
        client_id=proposal.client_id,
        currency=proposal.currency,
        estimated_budget=proposal.total_amount,
        priority=Priority.MEDIUM,
    )
    proposal.order_id = order.id
    uow.session.flush()

    term_days = int(current_app.config.get("INVOICE_PAYMENT_TERM_DAYS", 14))
    invoice = build_invoice(
        uow,
        client_id=proposal.client_id,
        order_id=order.id,
        items=items,
        status=InvoiceStatus.SENT,
        currency=proposal.currency,
        issue_date=responded_at,
        due_date=responded_at + timedelta(days=term_days),
    )
    logger.info("Proposal %s accepted: order %s, invoice %s", proposal.number, order.number, invoice.number)


def respond_to_proposal(proposal_id: int, client_id: int, response: str) -> OperationResult[Proposal]:
    try:
        if response not in ProposalStatus.RESPONSES:
            raise InvalidStateError(f"Unsupported proposal response {response!r}.")

        with unit_of_work() as uow:
            proposal = (
                Proposal.query.filter(
                    Proposal.id == proposal_id,
                    Proposal.client_id == client_id,
                    Proposal.status.in_(ProposalStatus.AWAITING_RESPONSE),
                )
                .with_for_update()
                .first()
            )
            if proposal is None:
                raise NotFoundError("Proposal not found.")

            now = utcnow()
            before = serialize_model(proposal, "status")
            proposal.status = response
            proposal.responded_at = now
            db.session.flush()
            log_action(
                proposal,
                "RESPOND",
                before=before,
                after=serialize_model(proposal, "status", "responded_at"),
                actor=f"client:{client_id}",
            )

            accepted = response == ProposalStatus.ACCEPTED
            uow.emit(
                NotificationEvent(
                    type=NotificationType.STATUS,
                    title="Proposal accepted by client" if accepted else "Proposal rejected by client",
                    description=f"{proposal.client.name}: {proposal.title}",
                    link_url=f"/proposals/{proposal.id}",
                    entity_type="proposal",
                    entity_id=proposal.id,
                    recipient_user_ids=tuple(staff_recipients()),
                )
            )

            if accepted:
                try:
                    _materialize_order_and_invoice(uow, proposal, now)
                except InvalidStateError as exc:
                    raise PersistenceError(f"Order could not be created: {exc.message}") from exc
    except OrderflowError as exc:
        logger.warning("Response to proposal %s failed: %s", proposal_id, exc.message)
        return OperationResult.failure(exc)

    return OperationResult.success(proposal)
