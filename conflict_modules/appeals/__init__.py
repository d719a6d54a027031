"""
Cancellation appeals.

Homeowners and cleaners contest a cancellation; HR or the owner reviews,
decides, and the decision's refund, fee reversal and unfreeze actions are
applied through the ledger and the payment gateway.
"""

from conflict_modules.appeals.models import (
    Appeal,
    AppealDecision,
    AppealResolution,
    AppealSeverity,
    AppealStatus,
    ResolutionActions,
    determine_priority,
)
from conflict_modules.appeals.scrutiny import ScrutinyEngine
from conflict_modules.appeals.service import AppealWorkflow
from conflict_modules.appeals.workflows import APPEAL_WORKFLOW

__all__ = [
    "APPEAL_WORKFLOW",
    "Appeal",
    "AppealDecision",
    "AppealResolution",
    "AppealSeverity",
    "AppealStatus",
    "AppealWorkflow",
    "ResolutionActions",
    "ScrutinyEngine",
    "determine_priority",
]
