"""
AuditLog -- append-only, hash-chained audit events that never block callers.

Responsibility:
    Persists ``AuditRecord``s produced by the workflows as immutable
    ``AuditEvent`` rows, each linked to its predecessor by a SHA-256 hash
    chain.  Provides chain validation for tamper detection.

Architecture position:
    Kernel > Services.  Workflows never call the store directly: they queue
    records on a ``UnitOfWork`` which hands them to ``AuditLog.dispatch()``
    after the primary transaction has committed (or, for failure events,
    rolled back).

Invariants enforced:
    - ``AuditLog.log()`` never raises.  Store failures are logged at ERROR
      with the record's identifying fields and otherwise swallowed.
    - Audit writes run in their own session and transaction, so a failed
      audit write cannot roll back a workflow and a rolled-back workflow
      does not take its failure event down with it.
    - Sequence numbers come from SequenceService; hash =
      H(subject | event_type | payload_hash | prev_hash).

Failure modes:
    - Store unavailable / constraint error: swallowed by AuditLog, logged as
      ``audit_log_write_failed``.
    - AuditChainBrokenError from ``validate_chain()`` when a stored hash or
      link does not recompute.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import Executor
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from conflict_kernel.domain.audit import AuditRecord
from conflict_kernel.exceptions import AuditChainBrokenError
from conflict_kernel.logging_config import get_logger
from conflict_kernel.models.audit_event import AuditEvent
from conflict_kernel.services.sequence_service import SequenceService
from conflict_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.audit_log")


class AuditStore(Protocol):
    def append(self, record: AuditRecord) -> None: ...


def _utc_iso(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


def _hashed_payload(event: AuditEvent) -> dict:
    return {
        "event_data": event.event_data,
        "previous_state": event.previous_state,
        "new_state": event.new_state,
        "actor_id": str(event.actor_id) if event.actor_id else None,
        "actor_role": event.actor_role,
        "occurred_at": _utc_iso(event.occurred_at),
        "request_id": event.request_id,
    }


class SqlAuditStore:
    """
    SQLAlchemy-backed audit store.

    Contract:
        Each ``append`` opens a fresh session from ``session_factory``,
        allocates the next audit sequence, links the hash chain and
        commits.  Errors roll back that session and propagate to AuditLog.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def append(self, record: AuditRecord) -> None:
        session = self._session_factory()
        try:
            seq = SequenceService(session).next_value(SequenceService.AUDIT_EVENT)
            prev_hash = session.execute(
                select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
            ).scalar_one_or_none()

            event = AuditEvent(
                seq=seq,
                event_type=record.event_type.value,
                appointment_id=record.appointment_id,
                appeal_id=record.appeal_id,
                adjustment_id=record.adjustment_id,
                actor_id=record.actor.id if record.actor else None,
                actor_role=record.actor.role.value if record.actor else None,
                event_data=to_json_safe(record.event_data),
                previous_state=to_json_safe(record.previous_state),
                new_state=to_json_safe(record.new_state),
                occurred_at=record.occurred_at,
                request_id=record.request_id,
                prev_hash=prev_hash,
            )
            event.payload_hash = hash_payload(_hashed_payload(event))
            event.hash = hash_audit_event(
                subject=event.subject,
                event_type=event.event_type,
                payload_hash=event.payload_hash,
                prev_hash=prev_hash,
            )
            session.add(event)
            session.commit()
            logger.info(
                "audit_event_created",
                extra={"event_type": event.event_type, "seq": seq},
            )
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class AuditLog:
    """
    Best-effort front door to the audit store.

    Contract:
        ``log``/``dispatch`` return normally whatever the store does.  With an
        ``executor`` the write runs off the caller's thread; without one it
        runs inline (deterministic, used by tests and batch jobs).

    Guarantees:
        Every failure produces one ``audit_log_write_failed`` log record
        carrying the event type and subject ids, so dropped events can be
        replayed from logs.
    """

    def __init__(self, store: AuditStore, executor: Executor | None = None):
        self._store = store
        self._executor = executor

    def log(self, record: AuditRecord) -> None:
        if self._executor is None:
            self._write(record)
            return
        try:
            self._executor.submit(self._write, record)
        except Exception:
            # Executor shut down or saturated
            logger.exception("audit_log_dispatch_failed", extra=self._describe(record))

    def dispatch(self, records: Iterable[AuditRecord]) -> None:
        for record in records:
            self.log(record)

    def _write(self, record: AuditRecord) -> bool:
        try:
            self._store.append(record)
            return True
        except Exception:
            logger.exception("audit_log_write_failed", extra=self._describe(record))
            return False

    @staticmethod
    def _describe(record: AuditRecord) -> dict:
        return {
            "event_type": record.event_type.value,
            "appointment_id": record.appointment_id,
            "appeal_id": record.appeal_id,
            "adjustment_id": record.adjustment_id,
        }


def validate_chain(session: Session) -> bool:
    """
    Recompute every stored hash and link, in sequence order.

    Raises:
        AuditChainBrokenError: on the first event whose hash or prev_hash
            does not match.
    """
    events = session.execute(select(AuditEvent).order_by(AuditEvent.seq)).scalars().all()

    prev: AuditEvent | None = None
    for event in events:
        expected_prev = prev.hash if prev is not None else None
        if event.prev_hash != expected_prev:
            logger.critical("audit_chain_broken", extra={"seq": event.seq})
            raise AuditChainBrokenError(
                str(event.id), expected_prev or "None", event.prev_hash or "None"
            )

        payload_hash = hash_payload(_hashed_payload(event))
        expected_hash = hash_audit_event(
            subject=event.subject,
            event_type=event.event_type,
            payload_hash=payload_hash,
            prev_hash=event.prev_hash,
        )
        if event.hash != expected_hash or event.payload_hash != payload_hash:
            logger.critical("audit_chain_broken", extra={"seq": event.seq})
            raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)
        prev = event

    logger.info("audit_chain_valid", extra={"event_count": len(events)})
    return True
