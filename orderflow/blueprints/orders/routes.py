"""
orderflow/blueprints/orders/routes.py

Staff routes for orders, milestones and tasks.

- POST /orders                      create an order (manager)
- POST /orders/<id>/status          move the order to a catalog status (manager)
- POST /milestones/<id>/status      manual milestone status (staff)
- POST /tasks/<id>/status           task status change + cascade (staff)

IMPORTANT:
- Handlers only parse input and map OperationResult to HTTP; all rules live in
  orderflow.services.
"""

from __future__ import annotations

from flask import Blueprint
from flask_login import login_required, current_user

from ...models import Priority
from ...security import manager_required
from ...services import change_order_status, create_order, set_milestone_status, set_task_status
from ..responses import (
    bad_request,
    json_body,
    milestone_to_dict,
    order_to_dict,
    parse_decimal,
    parse_optional_int,
    parse_text,
    result_response,
    task_to_dict,
)

orders_bp = Blueprint("orders", __name__)


@orders_bp.route("/orders", methods=["POST"])
@login_required
@manager_required
def create_order_view():
    data = json_body()

    title = parse_text(data.get("title"))
    client_id = parse_optional_int(data.get("client_id"))
    if not title or client_id is None:
        return bad_request("Title and client are required.")

    priority = parse_text(data.get("priority")).upper() or Priority.MEDIUM

    result = create_order(
        title=title,
        client_id=client_id,
        currency=parse_text(data.get("currency")).upper() or None,
        estimated_budget=parse_decimal(data.get("estimated_budget")),
        estimated_hours=parse_decimal(data.get("estimated_hours")),
        priority=priority,
        description=parse_text(data.get("description")) or None,
        manager_id=parse_optional_int(data.get("manager_id")),
    )
    return result_response(result, order_to_dict, status=201)


@orders_bp.route("/orders/<int:order_id>/status", methods=["POST"])
@login_required
@manager_required
def change_order_status_view(order_id: int):
    data = json_body()
    status_id = parse_optional_int(data.get("status_id"))
    if status_id is None:
        return bad_request("status_id is required.")

    result = change_order_status(
        order_id,
        status_id,
        comment=parse_text(data.get("comment")),
        changed_by_id=current_user.id,
    )
    return result_response(result, order_to_dict)


@orders_bp.route("/milestones/<int:milestone_id>/status", methods=["POST"])
@login_required
def milestone_status_view(milestone_id: int):
    status = parse_text(json_body().get("status")).upper()
    if not status:
        return bad_request("status is required.")
    return result_response(set_milestone_status(milestone_id, status), milestone_to_dict)


@orders_bp.route("/tasks/<int:task_id>/status", methods=["POST"])
@login_required
def task_status_view(task_id: int):
    status = parse_text(json_body().get("status")).upper()
    if not status:
        return bad_request("status is required.")
    return result_response(set_task_status(task_id, status), task_to_dict)
