"""
UnitOfWork -- one transaction per workflow operation, side effects after commit.

Responsibility:
    Owns the commit/rollback boundary for a workflow operation and holds
    the audit records and notifications it produced.  Those are released
    only after the commit succeeds; on rollback they are discarded.  Failure
    events that must survive a rollback are logged by the caller after the
    unit of work has exited.

Architecture position:
    Kernel > Services.  Used by every module service that mutates state.

Invariants enforced:
    - Status change, ledger writes and appointment updates of one operation
      commit together or not at all.
    - Audit and notification dispatch never happens inside the transaction
      and can never undo it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from conflict_kernel.domain.audit import AuditRecord
from conflict_kernel.domain.ports import NotificationHook
from conflict_kernel.logging_config import get_logger
from conflict_kernel.services.audit_log import AuditLog

logger = get_logger("services.unit_of_work")


@dataclass(frozen=True)
class PendingNotification:
    user_id: UUID
    event: str
    payload: dict[str, Any]


class UnitOfWork:
    """
    Context manager around a session transaction.

    Usage::

        with UnitOfWork(session, audit_log, notifier) as uow:
            appeal.status = "under_review"
            uow.record(AuditRecord(...))
        # committed; audit records dispatched
    """

    def __init__(
        self,
        session: Session,
        audit_log: AuditLog,
        notifier: NotificationHook | None = None,
    ):
        self._session = session
        self._audit_log = audit_log
        self._notifier = notifier
        self._records: list[AuditRecord] = []
        self._notifications: list[PendingNotification] = []

    def __enter__(self) -> UnitOfWork:
        self._records = []
        self._notifications = []
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self._session.rollback()
            logger.info(
                "unit_of_work_rolled_back",
                extra={"error_type": exc_type.__name__, "discarded_events": len(self._records)},
            )
            return False

        try:
            self._session.commit()
        except Exception:
            self._session.rollback()
            logger.exception("unit_of_work_commit_failed")
            raise

        self._audit_log.dispatch(self._records)
        self._flush_notifications()
        return False

    def record(self, record: AuditRecord) -> None:
        """Queue an audit record for dispatch after commit."""
        self._records.append(record)

    def notify(self, user_id: UUID, event: str, payload: dict[str, Any] | None = None) -> None:
        self._notifications.append(PendingNotification(user_id, event, payload or {}))

    def _flush_notifications(self) -> None:
        if self._notifier is None:
            return
        for note in self._notifications:
            try:
                self._notifier.notify(note.user_id, note.event, note.payload)
            except Exception:
                logger.warning(
                    "notification_failed",
                    exc_info=True,
                    extra={"user_id": note.user_id, "event": note.event},
                )
