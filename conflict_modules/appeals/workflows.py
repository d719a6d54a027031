"""Cancellation Appeal Workflows.

State machine for appeal review.
"""

from conflict_kernel.domain.workflow import Guard, Transition, Workflow
from conflict_kernel.logging_config import get_logger

logger = get_logger("modules.appeals.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

REVIEWER_ASSIGNED = Guard(
    name="reviewer_assigned",
    description="An HR or owner reviewer is assigned",
)

WITHIN_REFUND_CEILING = Guard(
    name="within_refund_ceiling",
    description="Granted refund does not exceed price minus prior refunds",
)

logger.info(
    "appeal_workflow_guards_defined",
    extra={"guards": [REVIEWER_ASSIGNED.name, WITHIN_REFUND_CEILING.name]},
)


# -----------------------------------------------------------------------------
# Appeal Workflow
# -----------------------------------------------------------------------------

APPEAL_WORKFLOW = Workflow(
    name="appeal",
    description="Cancellation appeal review lifecycle",
    initial_state="submitted",
    states=(
        "submitted",
        "under_review",
        "awaiting_documents",
        "escalated",
        "approved",
        "partially_approved",
        "denied",
    ),
    transitions=(
        Transition("submitted", "under_review", action="start_review", guard=REVIEWER_ASSIGNED),
        Transition("submitted", "awaiting_documents", action="request_documents"),
        Transition("submitted", "escalated", action="escalate"),
        Transition("submitted", "denied", action="deny"),
        Transition("under_review", "awaiting_documents", action="request_documents"),
        Transition("under_review", "escalated", action="escalate"),
        Transition("under_review", "approved", action="approve",
                   guard=WITHIN_REFUND_CEILING, moves_money=True),
        Transition("under_review", "partially_approved", action="partially_approve",
                   guard=WITHIN_REFUND_CEILING, moves_money=True),
        Transition("under_review", "denied", action="deny"),
        Transition("awaiting_documents", "under_review", action="resume_review"),
        Transition("awaiting_documents", "escalated", action="escalate"),
        Transition("awaiting_documents", "approved", action="approve",
                   guard=WITHIN_REFUND_CEILING, moves_money=True),
        Transition("awaiting_documents", "partially_approved", action="partially_approve",
                   guard=WITHIN_REFUND_CEILING, moves_money=True),
        Transition("awaiting_documents", "denied", action="deny"),
        Transition("escalated", "under_review", action="resume_review"),
        Transition("escalated", "approved", action="approve",
                   guard=WITHIN_REFUND_CEILING, moves_money=True),
        Transition("escalated", "partially_approved", action="partially_approve",
                   guard=WITHIN_REFUND_CEILING, moves_money=True),
        Transition("escalated", "denied", action="deny"),
    ),
    terminal_states=("approved", "partially_approved", "denied"),
)

logger.info(
    "appeal_workflow_defined",
    extra={
        "workflow": APPEAL_WORKFLOW.name,
        "states": list(APPEAL_WORKFLOW.states),
        "transition_count": len(APPEAL_WORKFLOW.transitions),
    },
)
