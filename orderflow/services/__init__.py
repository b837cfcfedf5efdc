"""
Fulfillment engine entry points.

Every public function runs as one transaction and returns an OperationResult.
"""

from .milestones import (  # noqa: F401
    MilestoneProgress,
    approve_milestone,
    recompute_milestone,
    reject_milestone,
    set_milestone_status,
)
from .numbering import IssuedNumber, next_number  # noqa: F401
from .orders import OrderProgress, change_order_status, create_order, recompute_order  # noqa: F401
from .invoices import create_invoice  # noqa: F401
from .proposals import create_proposal, respond_to_proposal, send_proposal, view_proposal  # noqa: F401
from .tasks import set_task_status  # noqa: F401
