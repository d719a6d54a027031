"""
conflict_services.engine -- Central wiring for the conflict engine.

Responsibility:
    Creates every store, workflow and service exactly once over one
    session and wires them together.  Hosts embed the engine and call its
    public attributes.

Invariants enforced:
    - All services share the same Session, Clock and ConflictPolicy.
    - The audit log writes through its own session factory, never the
      workflow session.

Usage:
    engine = ConflictEngine(
        session=session,
        audit_session_factory=get_session_factory(),
        gateway=stripe_gateway,
    )
    engine.appeals.submit(...)
    engine.queue.get(case_type="appeal")
    engine.money.refund("appeal", appeal_id, 2500, "Partial refund", reviewer)
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Executor

from sqlalchemy.orm import Session

from conflict_config import ConflictPolicy, get_active_config
from conflict_kernel.domain.clock import Clock, SystemClock
from conflict_kernel.domain.ports import NotificationHook, PaymentGateway
from conflict_kernel.logging_config import get_logger
from conflict_kernel.selectors.audit_selector import AuditSelector
from conflict_kernel.selectors.ledger_selector import LedgerSelector
from conflict_kernel.services.audit_log import AuditLog, SqlAuditStore
from conflict_modules.adjustments import AdjustmentWorkflow
from conflict_modules.appeals import AppealWorkflow, ScrutinyEngine
from conflict_services.conflict_queue import ConflictQueue
from conflict_services.money_movement import MoneyMovement
from conflict_services.rate_limit import RateLimiter, TTLStore
from conflict_services.reconciliation_service import ReconciliationJob
from conflict_services.stores import SqlAppointmentStore, SqlUserStore

logger = get_logger("services.engine")


class ConflictEngine:
    """
    Contract:
        Receives the workflow Session, a session factory for audit writes
        and the external collaborators.  Does NOT own the Session lifecycle.
    """

    def __init__(
        self,
        session: Session,
        audit_session_factory: Callable[[], Session],
        gateway: PaymentGateway,
        notifier: NotificationHook | None = None,
        clock: Clock | None = None,
        policy: ConflictPolicy | None = None,
        rate_limit_store: TTLStore | None = None,
        audit_executor: Executor | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.policy = policy or get_active_config()

        self.appointments = SqlAppointmentStore(session)
        self.users = SqlUserStore(session)
        self.audit_log = AuditLog(SqlAuditStore(audit_session_factory), audit_executor)

        self.appeals = AppealWorkflow(
            session, self.appointments, self.users, self.audit_log,
            gateway=gateway, notifier=notifier, clock=self.clock, policy=self.policy,
        )
        self.adjustments = AdjustmentWorkflow(
            session, self.appointments, self.users, self.audit_log,
            notifier=notifier, clock=self.clock, policy=self.policy,
        )
        self.scrutiny = ScrutinyEngine(session, self.users, self.clock, self.policy.scrutiny)
        self.queue = ConflictQueue(
            session, self.appeals, self.adjustments, self.users,
            clock=self.clock, policy=self.policy,
        )
        self.money = MoneyMovement(
            session, self.appeals, self.adjustments, self.appointments, self.users,
            self.audit_log, gateway,
            rate_limiter=RateLimiter(rate_limit_store, self.policy.rate_limit, self.clock),
            notifier=notifier, clock=self.clock, policy=self.policy,
        )
        self.reconciliation = ReconciliationJob(session, gateway, self.clock, self.policy)
        self.ledger = LedgerSelector(session)
        self.audit = AuditSelector(session)

        logger.info(
            "conflict_engine_ready",
            extra={"config_id": self.policy.config_id, "config_version": self.policy.version},
        )
