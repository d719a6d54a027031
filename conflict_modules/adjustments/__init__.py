"""
Home size adjustments.

A cleaner reports a home larger or smaller than booked; the homeowner
accepts or rejects the new price; the owner settles disputes.
"""

from conflict_modules.adjustments.models import (
    AdjustmentCase,
    AdjustmentDecision,
    AdjustmentStatus,
    HomeSize,
)
from conflict_modules.adjustments.service import AdjustmentWorkflow
from conflict_modules.adjustments.workflows import ADJUSTMENT_WORKFLOW

__all__ = [
    "ADJUSTMENT_WORKFLOW",
    "AdjustmentCase",
    "AdjustmentDecision",
    "AdjustmentStatus",
    "AdjustmentWorkflow",
    "HomeSize",
]
