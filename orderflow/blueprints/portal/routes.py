"""
orderflow/blueprints/portal/routes.py

Client-facing portal routes (token authenticated, CSRF exempt).

- GET  /portal/proposals/<id>             view a proposal (SENT -> VIEWED)
- POST /portal/proposals/<id>/respond     {"response": "ACCEPTED" | "REJECTED"}
- POST /portal/milestones/<id>/approve
- POST /portal/milestones/<id>/reject     {"comment": "..."}

IMPORTANT:
- Every operation is scoped to g.portal_client; foreign ids answer 404.
"""

from __future__ import annotations

from flask import Blueprint, g

from ...security import portal_client_required
from ...services import approve_milestone, reject_milestone, respond_to_proposal, view_proposal
from ..responses import bad_request, json_body, milestone_to_dict, parse_text, proposal_to_dict, result_response

portal_bp = Blueprint("portal", __name__, url_prefix="/portal")


@portal_bp.route("/proposals/<int:proposal_id>", methods=["GET"])
@portal_client_required
def proposal_detail(proposal_id: int):
    return result_response(view_proposal(g.portal_client.id, proposal_id), proposal_to_dict)


@portal_bp.route("/proposals/<int:proposal_id>/respond", methods=["POST"])
@portal_client_required
def proposal_respond(proposal_id: int):
    response = parse_text(json_body().get("response")).upper()
    if not response:
        return bad_request("response is required.")
    return result_response(respond_to_proposal(proposal_id, g.portal_client.id, response), proposal_to_dict)


@portal_bp.route("/milestones/<int:milestone_id>/approve", methods=["POST"])
@portal_client_required
def milestone_approve(milestone_id: int):
    return result_response(approve_milestone(g.portal_client.id, milestone_id), milestone_to_dict)


@portal_bp.route("/milestones/<int:milestone_id>/reject", methods=["POST"])
@portal_client_required
def milestone_reject(milestone_id: int):
    comment = parse_text(json_body().get("comment"))
    return result_response(reject_milestone(g.portal_client.id, milestone_id, comment), milestone_to_dict)
