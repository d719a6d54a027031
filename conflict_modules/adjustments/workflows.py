"""Home Size Adjustment Workflows.

State machine for adjustment requests.  ``expired`` is a stored terminal
value only; live expiry is derived from ``expires_at``.
"""

from conflict_kernel.domain.workflow import Guard, Transition, Workflow
from conflict_kernel.logging_config import get_logger

logger = get_logger("modules.adjustments.workflows")


HOMEOWNER_WITHIN_WINDOW = Guard(
    name="homeowner_within_window",
    description="Homeowner responds before expires_at",
)

ADJUSTMENT_WORKFLOW = Workflow(
    name="adjustment",
    description="Home size adjustment request lifecycle",
    initial_state="pending_homeowner",
    states=(
        "pending_homeowner",
        "pending_owner",
        "approved",
        "denied",
        "owner_approved",
        "owner_denied",
        "expired",
    ),
    transitions=(
        Transition("pending_homeowner", "approved", action="homeowner_accept",
                   guard=HOMEOWNER_WITHIN_WINDOW, moves_money=True),
        Transition("pending_homeowner", "pending_owner", action="homeowner_reject",
                   guard=HOMEOWNER_WITHIN_WINDOW),
        Transition("pending_homeowner", "owner_approved", action="owner_approve",
                   moves_money=True),
        Transition("pending_homeowner", "owner_denied", action="owner_deny"),
        Transition("pending_owner", "owner_approved", action="owner_approve",
                   moves_money=True),
        Transition("pending_owner", "owner_denied", action="owner_deny"),
    ),
    terminal_states=("approved", "denied", "owner_approved", "owner_denied", "expired"),
)

logger.info(
    "adjustment_workflow_defined",
    extra={
        "workflow": ADJUSTMENT_WORKFLOW.name,
        "states": list(ADJUSTMENT_WORKFLOW.states),
        "transition_count": len(ADJUSTMENT_WORKFLOW.transitions),
    },
)
