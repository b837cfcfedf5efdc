"""
orderflow/blueprints/finance/routes.py

Staff routes for commercial proposals and invoices.

- POST /proposals                 create a DRAFT proposal with items
- POST /proposals/<id>/send       DRAFT -> SENT
- POST /invoices                  create a DRAFT invoice with items
"""

from __future__ import annotations

from flask import Blueprint
from flask_login import login_required

from ...services import create_invoice, create_proposal, send_proposal
from ..responses import (
    bad_request,
    invoice_to_dict,
    json_body,
    parse_decimal,
    parse_optional_int,
    parse_text,
    proposal_to_dict,
    result_response,
)

finance_bp = Blueprint("finance", __name__)


def _parse_items(raw_items) -> list[dict] | None:
    """Validate posted line items; None when any line is unusable."""
    if not isinstance(raw_items, list) or not raw_items:
        return None

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            return None
        description = parse_text(raw.get("description"))
        quantity = parse_decimal(raw.get("quantity"))
        unit_price = parse_decimal(raw.get("unit_price"))
        if not description or quantity is None or unit_price is None:
            return None
        items.append(
            {
                "description": description,
                "quantity": quantity,
                "unit_price": unit_price,
                "total": parse_decimal(raw.get("total")),
            }
        )
    return items


@finance_bp.route("/proposals", methods=["POST"])
@login_required
def create_proposal_view():
    data = json_body()
    title = parse_text(data.get("title"))
    client_id = parse_optional_int(data.get("client_id"))
    items = _parse_items(data.get("items"))
    if not title or client_id is None or items is None:
        return bad_request("Title, client and at least one valid item are required.")

    result = create_proposal(
        client_id=client_id,
        title=title,
        items=items,
        currency=parse_text(data.get("currency")).upper() or None,
        order_id=parse_optional_int(data.get("order_id")),
    )
    return result_response(result, proposal_to_dict, status=201)


@finance_bp.route("/proposals/<int:proposal_id>/send", methods=["POST"])
@login_required
def send_proposal_view(proposal_id: int):
    return result_response(send_proposal(proposal_id), proposal_to_dict)


@finance_bp.route("/invoices", methods=["POST"])
@login_required
def create_invoice_view():
    data = json_body()
    client_id = parse_optional_int(data.get("client_id"))
    items = _parse_items(data.get("items"))
    if client_id is None or items is None:
        return bad_request("Client and at least one valid item are required.")

    result = create_invoice(
        client_id=client_id,
        items=items,
        order_id=parse_optional_int(data.get("order_id")),
        currency=parse_text(data.get("currency")).upper() or None,
        notes=parse_text(data.get("notes")) or None,
    )
    return result_response(result, invoice_to_dict, status=201)
