"""
Orderflow – Domain Models

Covers the entities the order-fulfillment engine keeps consistent:
- Order / Milestone / Task (progress + status cascade)
- Proposal / ProposalItem (client offer, accepted through the portal)
- Invoice / InvoiceItem (billing documents, numbered)
- Settings singleton (document counters + prefixes)
- OrderStatus catalog + append-only OrderStatusHistory
- Notification (in-app store used by the default notifier)
- AuditLog

IMPORTANT:
- Derived fields (progress_percent) are written by the services layer only.
- Status values are plain strings; the allowed sets live on the *Status classes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def utcnow() -> datetime:
    """Naive UTC timestamp (stored as-is in SQLite and PostgreSQL)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_decimal(value) -> Decimal:
    """Convert Numeric/None/float to Decimal safely."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value))


def money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------
# Status vocabularies
# ---------------------------------------------------------------------
class Role:
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    DEVELOPER = "DEVELOPER"

    STAFF_NOTIFIED = (ADMIN, MANAGER)


class Priority:
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"

    ALL = (LOW, MEDIUM, HIGH, URGENT)


class TaskStatus:
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    DONE = "DONE"
    CANCELLED = "CANCELLED"

    ALL = (TODO, IN_PROGRESS, REVIEW, DONE, CANCELLED)


class MilestoneStatus:
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    APPROVED = "APPROVED"
    CANCELLED = "CANCELLED"

    ALL = (PENDING, IN_PROGRESS, COMPLETED, APPROVED, CANCELLED)
    FINISHED = (COMPLETED, APPROVED)


class ProposalStatus:
    DRAFT = "DRAFT"
    SENT = "SENT"
    VIEWED = "VIEWED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"

    ALL = (DRAFT, SENT, VIEWED, ACCEPTED, REJECTED, EXPIRED)
    AWAITING_RESPONSE = (SENT, VIEWED)
    RESPONSES = (ACCEPTED, REJECTED)


class InvoiceStatus:
    DRAFT = "DRAFT"
    SENT = "SENT"
    VIEWED = "VIEWED"
    PAID = "PAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"

    ALL = (DRAFT, SENT, VIEWED, PAID, PARTIALLY_PAID, OVERDUE, CANCELLED)


# ---------------------------------------------------------------------
# People
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """Staff login user."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(20), default=Role.DEVELOPER, nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def can_manage(self) -> bool:
        return self.role in Role.STAFF_NOTIFIED

    def __repr__(self):
        return f"<User {self.email}>"


class Client(db.Model):
    """Customer organisation. Portal access is granted through portal_token."""

    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    portal_token = db.Column(db.String(64), unique=True, nullable=True, index=True)
    is_archived = db.Column(db.Boolean, default=False, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    orders = db.relationship("Order", back_populates="client", lazy=True)

    def __repr__(self):
        return f"<Client {self.name}>"


# ---------------------------------------------------------------------
# Settings singleton (document counters)
# ---------------------------------------------------------------------
class Settings(db.Model):
    """
    Singleton row holding the NEXT value of each document counter.

    IMPORTANT:
    - Counters are only ever advanced with an atomic UPDATE (see services/numbering.py).
    """

    __tablename__ = "settings"

    DEFAULT_ID = "default"

    id = db.Column(db.String(20), primary_key=True, default=DEFAULT_ID)

    company_name = db.Column(db.String(255), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="TJS")

    order_prefix = db.Column(db.String(20), nullable=False, default="ORD")
    invoice_prefix = db.Column(db.String(20), nullable=False, default="INV")
    proposal_prefix = db.Column(db.String(20), nullable=False, default="KP")

    next_order_number = db.Column(db.Integer, nullable=False, default=1)
    next_invoice_number = db.Column(db.Integer, nullable=False, default=1)
    next_proposal_number = db.Column(db.Integer, nullable=False, default=1)

    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


# ---------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------
class OrderStatus(db.Model):
    """Pipeline stage catalog. Opaque data: never drives the progress cascade."""

    __tablename__ = "order_statuses"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(50), unique=True, nullable=False, index=True)
    color = db.Column(db.String(20), nullable=True)
    position = db.Column(db.Integer, default=0, nullable=False)

    is_initial = db.Column(db.Boolean, default=False, nullable=False)
    is_final = db.Column(db.Boolean, default=False, nullable=False)
    notify_client = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    def __repr__(self):
        return f"<OrderStatus {self.code}>"


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)

    number = db.Column(db.String(50), unique=True, nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    priority = db.Column(db.String(10), default=Priority.MEDIUM, nullable=False, index=True)
    progress_percent = db.Column(db.Integer, default=0, nullable=False)

    status_id = db.Column(
        db.Integer,
        db.ForeignKey("order_statuses.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    manager_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    currency = db.Column(db.String(3), nullable=False, default="TJS")
    estimated_budget = db.Column(db.Numeric(12, 2), nullable=True)
    estimated_hours = db.Column(db.Numeric(8, 2), nullable=True)
    deadline = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    status = db.relationship("OrderStatus", foreign_keys=[status_id])
    client = db.relationship("Client", back_populates="orders")
    manager = db.relationship("User", foreign_keys=[manager_id])

    milestones = db.relationship(
        "Milestone",
        back_populates="order",
        order_by="Milestone.position",
        cascade="all, delete-orphan",
    )
    tasks = db.relationship(
        "Task",
        back_populates="order",
        order_by="Task.position",
        cascade="all, delete-orphan",
    )
    status_history = db.relationship(
        "OrderStatusHistory",
        back_populates="order",
        order_by="OrderStatusHistory.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Order {self.number}>"


class OrderStatusHistory(db.Model):
    """Append-only log of manual order status changes."""

    __tablename__ = "order_status_history"

    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status_id = db.Column(db.Integer, db.ForeignKey("order_statuses.id"), nullable=True)
    to_status_id = db.Column(db.Integer, db.ForeignKey("order_statuses.id"), nullable=False)
    comment = db.Column(db.Text, nullable=True)
    changed_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    order = db.relationship("Order", back_populates="status_history")
    from_status = db.relationship("OrderStatus", foreign_keys=[from_status_id])
    to_status = db.relationship("OrderStatus", foreign_keys=[to_status_id])


class Milestone(db.Model):
    __tablename__ = "milestones"

    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    position = db.Column(db.Integer, default=0, nullable=False)

    status = db.Column(db.String(20), default=MilestoneStatus.PENDING, nullable=False, index=True)
    progress_percent = db.Column(db.Integer, default=0, nullable=False)
    requires_approval = db.Column(db.Boolean, default=False, nullable=False)

    due_date = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    client_approved_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    order = db.relationship("Order", back_populates="milestones")
    tasks = db.relationship("Task", back_populates="milestone", order_by="Task.position")

    def __repr__(self):
        return f"<Milestone {self.title} ({self.status})>"


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Standalone tasks have no milestone
    milestone_id = db.Column(
        db.Integer,
        db.ForeignKey("milestones.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    assignee_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    title = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), default=TaskStatus.TODO, nullable=False, index=True)
    priority = db.Column(db.String(10), default=Priority.MEDIUM, nullable=False)
    position = db.Column(db.Integer, default=0, nullable=False)

    due_date = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    order = db.relationship("Order", back_populates="tasks")
    milestone = db.relationship("Milestone", back_populates="tasks")
    assignee = db.relationship("User", foreign_keys=[assignee_id])

    def __repr__(self):
        return f"<Task {self.title} ({self.status})>"


# ---------------------------------------------------------------------
# Proposals
# ---------------------------------------------------------------------
class Proposal(db.Model):
    __tablename__ = "proposals"

    id = db.Column(db.Integer, primary_key=True)

    number = db.Column(db.String(50), unique=True, nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)

    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    status = db.Column(db.String(20), default=ProposalStatus.DRAFT, nullable=False, index=True)
    currency = db.Column(db.String(3), nullable=False, default="TJS")
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    valid_until = db.Column(db.DateTime, nullable=True)
    sent_at = db.Column(db.DateTime, nullable=True)
    viewed_at = db.Column(db.DateTime, nullable=True)
    responded_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    client = db.relationship("Client")
    order = db.relationship("Order")

    items = db.relationship(
        "ProposalItem",
        back_populates="proposal",
        order_by="ProposalItem.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Proposal {self.number} ({self.status})>"


class ProposalItem(db.Model):
    __tablename__ = "proposal_items"

    id = db.Column(db.Integer, primary_key=True)

    proposal_id = db.Column(
        db.Integer,
        db.ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=1)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    position = db.Column(db.Integer, default=0, nullable=False)

    proposal = db.relationship("Proposal", back_populates="items")


# ---------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------
class Invoice(db.Model):
    __tablename__ = "invoices"

    id = db.Column(db.Integer, primary_key=True)

    number = db.Column(db.String(50), unique=True, nullable=False, index=True)

    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    status = db.Column(db.String(20), default=InvoiceStatus.DRAFT, nullable=False, index=True)
    currency = db.Column(db.String(3), nullable=False, default="TJS")

    issue_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    due_date = db.Column(db.DateTime, nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    client = db.relationship("Client")
    order = db.relationship("Order", backref=db.backref("invoices", lazy=True))

    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        order_by="InvoiceItem.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Invoice {self.number} ({self.status})>"


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"

    id = db.Column(db.Integer, primary_key=True)

    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=1)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    position = db.Column(db.Integer, default=0, nullable=False)

    invoice = db.relationship("Invoice", back_populates="items")


# ---------------------------------------------------------------------
# Notifications & audit
# ---------------------------------------------------------------------
class Notification(db.Model):
    """In-app notification row (one per recipient)."""

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    type = db.Column(db.String(20), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    link_url = db.Column(db.String(255), nullable=True)
    entity_type = db.Column(db.String(50), nullable=True)
    entity_id = db.Column(db.Integer, nullable=True)

    is_read = db.Column(db.Boolean, default=False, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    user = db.relationship("User", backref=db.backref("notifications", lazy=True))


class AuditLog(db.Model):
    """Who changed which entity, with before/after snapshots."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    actor_snapshot = db.Column(db.String(255), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
