from __future__ import annotations

import pytest

from orderflow.models import MilestoneStatus, ProposalStatus, Role, TaskStatus


@pytest.fixture
def http(app):
    return app.test_client()


def login(http, email, password="secret"):
    return http.post("/auth/login", json={"email": email, "password": password})


def test_health(http):
    assert http.get("/health").get_json() == {"status": "ok", "app": "Orderflow"}


def test_login_rejects_wrong_password(http, factory):
    factory.user("dev@example.com")

    response = login(http, "dev@example.com", "nope")

    assert response.status_code == 401
    assert response.get_json()["error"]["code"] == "unauthorized"


def test_task_status_requires_login(http, factory):
    task = factory.task(factory.order())

    response = http.post(f"/tasks/{task.id}/status", json={"status": "DONE"})

    assert response.status_code == 401


def test_task_status_cascades(http, factory):
    factory.user("dev@example.com")
    order = factory.order()
    milestone = factory.milestone(order)
    task = factory.task(order, milestone)
    assert login(http, "DEV@example.com").status_code == 200

    response = http.post(f"/tasks/{task.id}/status", json={"status": "done"})

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == TaskStatus.DONE
    assert body["completed_at"] is not None
    assert body["milestone"]["status"] == MilestoneStatus.COMPLETED
    assert body["milestone"]["progress_percent"] == 100
    assert body["order"]["progress_percent"] == 100


def test_error_mapping(http, factory):
    factory.user("dev@example.com")
    task = factory.task(factory.order())
    login(http, "dev@example.com")

    missing = http.post("/tasks/999/status", json={"status": "DONE"})
    invalid = http.post(f"/tasks/{task.id}/status", json={"status": "ARCHIVED"})
    empty = http.post(f"/tasks/{task.id}/status", json={})

    assert (missing.status_code, missing.get_json()["error"]["code"]) == (404, "not_found")
    assert (invalid.status_code, invalid.get_json()["error"]["code"]) == (409, "invalid_state")
    assert empty.status_code == 400


def test_order_creation_needs_manager(http, factory):
    client = factory.client()
    factory.user("dev@example.com")
    login(http, "dev@example.com")

    response = http.post("/orders", json={"title": "Shop", "client_id": client.id})

    assert response.status_code == 403


def test_manager_creates_order(http, factory):
    client = factory.client()
    factory.user("pm@example.com", role=Role.MANAGER)
    login(http, "pm@example.com")

    response = http.post(
        "/orders",
        json={"title": "Shop", "client_id": client.id, "estimated_budget": "1500", "priority": "high"},
    )

    assert response.status_code == 201
    body = response.get_json()
    assert body["number"].startswith("ORD-")
    assert body["priority"] == "HIGH"
    assert body["status"]["code"] == "new"
    assert body["estimated_budget"] == "1500.00"


def test_proposal_send_and_accept_through_portal(http, factory):
    client = factory.client(token="portal-secret")
    factory.user("pm@example.com", role=Role.MANAGER)
    login(http, "pm@example.com")

    created = http.post(
        "/proposals",
        json={
            "title": "Mobile app",
            "client_id": client.id,
            "items": [
                {"description": "Design", "quantity": "1", "unit_price": "5000"},
                {"description": "Development", "quantity": "2", "unit_price": "5000"},
            ],
        },
    )
    assert created.status_code == 201
    proposal_id = created.get_json()["id"]
    assert created.get_json()["total_amount"] == "15000.00"

    headers = {"X-Portal-Token": "portal-secret"}
    assert http.get(f"/portal/proposals/{proposal_id}", headers=headers).status_code == 404

    assert http.post(f"/proposals/{proposal_id}/send").status_code == 200
    viewed = http.get(f"/portal/proposals/{proposal_id}", headers=headers)
    assert viewed.get_json()["status"] == ProposalStatus.VIEWED

    accepted = http.post(f"/portal/proposals/{proposal_id}/respond", json={"response": "accepted"}, headers=headers)
    assert accepted.status_code == 200
    assert accepted.get_json()["status"] == ProposalStatus.ACCEPTED
    assert accepted.get_json()["order_id"] is not None

    again = http.post(f"/portal/proposals/{proposal_id}/respond", json={"response": "ACCEPTED"}, headers=headers)
    assert again.status_code == 404


def test_portal_requires_valid_token(http, factory):
    client = factory.client()
    proposal = factory.proposal(client)

    assert http.get(f"/portal/proposals/{proposal.id}").status_code == 401
    assert http.get(f"/portal/proposals/{proposal.id}?token=wrong").status_code == 401
    assert http.get(f"/portal/proposals/{proposal.id}?token=acme-token").status_code == 200


def test_portal_milestone_reject(http, factory):
    client = factory.client()
    milestone = factory.milestone(factory.order(client=client), status=MilestoneStatus.COMPLETED)

    response = http.post(
        f"/portal/milestones/{milestone.id}/reject",
        json={"comment": "Colours are off"},
        headers={"X-Portal-Token": "acme-token"},
    )

    assert response.status_code == 200
    assert response.get_json()["status"] == MilestoneStatus.IN_PROGRESS


def test_manual_invoice_route(http, factory):
    client = factory.client()
    factory.user("pm@example.com", role=Role.MANAGER)
    login(http, "pm@example.com")

    bad = http.post("/invoices", json={"client_id": client.id, "items": []})
    good = http.post(
        "/invoices",
        json={"client_id": client.id, "items": [{"description": "Support", "quantity": "3", "unit_price": "40,5"}]},
    )

    assert bad.status_code == 400
    assert good.status_code == 201
    assert good.get_json()["total"] == "121.50"
    assert good.get_json()["status"] == "DRAFT"


def test_non_text_json_values_are_rejected(http, factory):
    client = factory.client()
    proposal = factory.proposal(client)
    factory.user("pm@example.com", role=Role.MANAGER)
    task = factory.task(factory.order())
    login(http, "pm@example.com")

    listed = http.post(f"/tasks/{task.id}/status", json={"status": ["DONE"]})
    numeric = http.post(f"/tasks/{task.id}/status", json={"status": 5})
    order = http.post("/orders", json={"title": {"name": "Shop"}, "client_id": client.id})
    respond = http.post(
        f"/portal/proposals/{proposal.id}/respond",
        json={"response": ["ACCEPTED"]},
        headers={"X-Portal-Token": "acme-token"},
    )

    assert (listed.status_code, listed.get_json()["error"]["code"]) == (400, "bad_request")
    assert numeric.status_code == 409
    assert order.status_code == 400
    assert respond.status_code == 400
    assert proposal.status == ProposalStatus.SENT


def test_login_with_non_text_password(http, factory):
    factory.user("dev@example.com")

    response = login(http, "dev@example.com", 12345)

    assert response.status_code == 400
