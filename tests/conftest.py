from __future__ import annotations

from decimal import Decimal

import pytest

from config import TestingConfig
from orderflow import create_app
from orderflow.extensions import db
from orderflow.models import (
    Client,
    Milestone,
    MilestoneStatus,
    Order,
    Proposal,
    ProposalItem,
    ProposalStatus,
    Role,
    Task,
    TaskStatus,
    User,
    utcnow,
)
from orderflow.notifications import Notifier
from orderflow.seed import seed_defaults
from orderflow.utils import get_initial_order_status


class RecordingNotifier(Notifier):
    """Collects delivered events instead of writing notification rows."""

    def __init__(self) -> None:
        self.events = []

    def deliver(self, event) -> None:
        self.events.append(event)

    def titles(self) -> list[str]:
        return [event.title for event in self.events]


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def app(notifier):
    app = create_app(TestingConfig, notifier=notifier)
    with app.app_context():
        db.create_all()
        seed_defaults()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def factory(app):
    return Factory()


class Factory:
    """Small builders for committed domain rows."""

    def __init__(self) -> None:
        self._order_seq = 0

    def user(self, email: str = "dev@example.com", role: str = Role.DEVELOPER, password: str = "secret") -> User:
        user = User(name=email.split("@")[0], email=email, role=role)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    def client(self, name: str = "Acme", token: str | None = "acme-token") -> Client:
        client = Client(name=name, email=f"{name.lower()}@example.com", portal_token=token)
        db.session.add(client)
        db.session.commit()
        return client

    def order(self, client: Client | None = None, manager: User | None = None, title: str = "Website") -> Order:
        self._order_seq += 1
        order = Order(
            number=f"TEST-{self._order_seq:03d}",
            title=title,
            client=client or self.client(name=f"Client{self._order_seq}", token=None),
            status_id=get_initial_order_status().id,
            manager_id=manager.id if manager else None,
        )
        db.session.add(order)
        db.session.commit()
        return order

    def milestone(
        self,
        order: Order,
        status: str = MilestoneStatus.IN_PROGRESS,
        requires_approval: bool = False,
        title: str = "Design",
    ) -> Milestone:
        milestone = Milestone(order=order, title=title, status=status, requires_approval=requires_approval)
        db.session.add(milestone)
        db.session.commit()
        return milestone

    def task(
        self,
        order: Order,
        milestone: Milestone | None = None,
        status: str = TaskStatus.TODO,
        assignee: User | None = None,
        title: str = "Task",
    ) -> Task:
        task = Task(
            order=order,
            milestone=milestone,
            title=title,
            status=status,
            assignee_id=assignee.id if assignee else None,
        )
        if status == TaskStatus.DONE:
            task.completed_at = utcnow()
        db.session.add(task)
        db.session.commit()
        return task

    def proposal(
        self,
        client: Client,
        status: str = ProposalStatus.SENT,
        items: list[tuple[str, str, str]] | None = None,
        number: str = "KP-TEST-001",
    ) -> Proposal:
        items = items or [("Design", "1", "5000"), ("Development", "2", "5000")]
        proposal = Proposal(
            number=number,
            title="Corporate website",
            client=client,
            status=status,
            currency="USD",
        )
        total = Decimal("0.00")
        for idx, (description, quantity, unit_price) in enumerate(items):
            line_total = Decimal(quantity) * Decimal(unit_price)
            total += line_total
            proposal.items.append(
                ProposalItem(
                    description=description,
                    quantity=Decimal(quantity),
                    unit_price=Decimal(unit_price),
                    total=line_total,
                    position=idx,
                )
            )
        proposal.total_amount = total
        db.session.add(proposal)
        db.session.commit()
        return proposal
