"""
orderflow/services/invoices.py

Invoice creation (manual and derived from accepted proposals).

Items are VALUE copies: the invoice never references proposal rows, so later
proposal edits cannot change an issued invoice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from flask import current_app

from ..audit import log_action, serialize_model
from ..errors import InvalidStateError, NotFoundError, OperationResult, OrderflowError
from ..extensions import db
from ..models import Client, Invoice, InvoiceItem, InvoiceStatus, Order, money, to_decimal, utcnow
from .numbering import next_number
from .transaction import UnitOfWork, unit_of_work

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineItem:
    description: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal

    @classmethod
    def from_row(cls, row) -> "LineItem":
        """Snapshot any object (or dict) exposing the line item fields."""
        get = row.get if isinstance(row, dict) else lambda name: getattr(row, name)
        quantity = to_decimal(get("quantity"))
        unit_price = to_decimal(get("unit_price"))
        total = get("total")
        return cls(
            description=str(get("description") or "").strip(),
            quantity=quantity,
            unit_price=unit_price,
            total=money(to_decimal(total) if total is not None else quantity * unit_price),
        )


def parse_line_items(rows: Iterable) -> List[LineItem]:
    """Snapshot posted rows; every line needs a description."""
    items = [LineItem.from_row(row) for row in rows]
    for position, item in enumerate(items):
        if not item.description:
            raise InvalidStateError(f"Item {position + 1} has no description.")
    return items


def line_items_total(items: Iterable[LineItem]) -> Decimal:
    return money(sum((item.total for item in items), Decimal("0.00")))


def build_invoice(
    uow: UnitOfWork,
    *,
    client_id: int,
    items: List[LineItem],
    order_id: Optional[int] = None,
    status: str = InvoiceStatus.DRAFT,
    currency: Optional[str] = None,
    issue_date: Optional[datetime] = None,
    due_date: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> Invoice:
    """Number and add an invoice with positioned item copies (an empty list is allowed)."""
    if status not in InvoiceStatus.ALL:
        raise InvalidStateError(f"Unknown invoice status {status!r}.")

    number = next_number("invoice")
    subtotal = line_items_total(items)

    invoice = Invoice(
        number=number.formatted,
        client_id=client_id,
        order_id=order_id,
        status=status,
        currency=currency or current_app.config.get("DEFAULT_CURRENCY", "TJS"),
        issue_date=issue_date or utcnow(),
        due_date=due_date,
        subtotal=subtotal,
        discount_amount=Decimal("0.00"),
        tax_amount=Decimal("0.00"),
        total=subtotal,
        notes=notes,
        items=[
            InvoiceItem(
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total=item.total,
                position=idx,
            )
            for idx, item in enumerate(items)
        ],
    )
    uow.session.add(invoice)
    uow.session.flush()
    log_action(invoice, "CREATE", after=serialize_model(invoice, "number", "client_id", "order_id", "total", "status"))
    return invoice


def create_invoice(
    *,
    client_id: int,
    items: Iterable,
    order_id: Optional[int] = None,
    currency: Optional[str] = None,
    issue_date: Optional[datetime] = None,
    due_date: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> OperationResult[Invoice]:
    """Staff action: create a DRAFT invoice."""
    try:
        line_items = parse_line_items(items)
        if not line_items:
            raise InvalidStateError("An invoice needs at least one item.")
        with unit_of_work() as uow:
            if db.session.get(Client, client_id) is None:
                raise NotFoundError(f"Client {client_id} not found.")
            if order_id is not None:
                order = db.session.get(Order, order_id)
                if order is None or order.client_id != client_id:
                    raise NotFoundError(f"Order {order_id} not found.")
            invoice = build_invoice(
                uow,
                client_id=client_id,
                items=line_items,
                order_id=order_id,
                currency=currency,
                issue_date=issue_date,
                due_date=due_date,
                notes=notes,
            )
    except OrderflowError as exc:
        logger.warning("Invoice creation failed: %s", exc.message)
        return OperationResult.failure(exc)

    logger.info("Invoice %s created", invoice.number)
    return OperationResult.success(invoice)
