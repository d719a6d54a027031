"""
conflict_services -- orchestration over the conflict modules.

Dependency direction:
    conflict_services -> conflict_modules -> conflict_kernel
    conflict_kernel never imports either package.
"""

from conflict_services.conflict_queue import ConflictQueue, QueueCase, QueuePage, QueueStats
from conflict_services.engine import ConflictEngine
from conflict_services.money_movement import MoneyMovement, MovementResult, RefundInfo
from conflict_services.rate_limit import InMemoryTTLStore, RateLimiter
from conflict_services.reconciliation_service import ReconciliationJob
from conflict_services.stores import SqlAppointmentStore, SqlUserStore

__all__ = [
    "ConflictEngine",
    "ConflictQueue",
    "InMemoryTTLStore",
    "MoneyMovement",
    "MovementResult",
    "QueueCase",
    "QueuePage",
    "QueueStats",
    "RateLimiter",
    "ReconciliationJob",
    "RefundInfo",
    "SqlAppointmentStore",
    "SqlUserStore",
]
