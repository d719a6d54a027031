"""
Pytest fixtures for the conflict engine test suite.

Provides:
- A file-backed SQLite database per test (tables, immutability listeners)
- Deterministic clock, fake payment gateway and notifier
- Seeded users and appointments
- A wired ConflictEngine
- Structured log capture
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from conflict_config import ConflictPolicy
from conflict_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from conflict_kernel.db.immutability import unregister_immutability_listeners
from conflict_kernel.domain.clock import DeterministicClock
from conflict_kernel.domain.ledger import GatewayObjectType
from conflict_kernel.domain.ports import GatewayObject, GatewayRefund, GatewayTransfer
from conflict_kernel.domain.values import Actor, ActorRole
from conflict_kernel.exceptions import ExternalGatewayError
from conflict_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from conflict_kernel.models.marketplace import AppointmentModel, UserModel
from conflict_kernel.services.audit_log import AuditLog, SqlAuditStore
from conflict_services import ConflictEngine

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture conflict_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.appeals.submit(...)
            assert any(r["message"] == "appeal_submitted" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("conflict_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'conflict.db'}")
    create_tables()
    yield engine
    unregister_immutability_listeners()
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    s = get_session()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def audit_log(db_engine) -> AuditLog:
    return AuditLog(SqlAuditStore(get_session_factory()))


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(NOW)


@pytest.fixture
def policy() -> ConflictPolicy:
    return ConflictPolicy()


# =============================================================================
# Fakes
# =============================================================================


@dataclass
class FakeGateway:
    """In-memory PaymentGateway.  ``fail_with`` makes every call raise."""

    fail_with: Exception | None = None
    refunds: list[dict] = field(default_factory=list)
    transfers: list[dict] = field(default_factory=list)
    objects: dict[str, int] = field(default_factory=dict)
    retrieve_errors: set[str] = field(default_factory=set)

    def refund(self, payment_ref, amount, reason, idempotency_key=None):
        if self.fail_with is not None:
            raise self.fail_with
        refund_id = f"re_{len(self.refunds) + 1}"
        self.refunds.append({
            "payment_ref": payment_ref,
            "amount": amount,
            "reason": reason,
            "idempotency_key": idempotency_key,
            "id": refund_id,
        })
        return GatewayRefund(external_id=refund_id, status="succeeded")

    def transfer(self, destination_ref, amount, idempotency_key=None):
        if self.fail_with is not None:
            raise self.fail_with
        transfer_id = f"tr_{len(self.transfers) + 1}"
        self.transfers.append({
            "destination": destination_ref,
            "amount": amount,
            "idempotency_key": idempotency_key,
            "id": transfer_id,
        })
        return GatewayTransfer(external_id=transfer_id)

    def retrieve(self, object_type: GatewayObjectType, object_id: str):
        if object_id in self.retrieve_errors:
            raise ExternalGatewayError("retrieve", "connection reset")
        if object_id not in self.objects:
            return None
        return GatewayObject(object_id=object_id, amount=self.objects[object_id])


@dataclass
class FakeNotifier:
    raise_on_notify: bool = False
    sent: list[tuple[UUID, str, dict]] = field(default_factory=list)

    def notify(self, user_id, event, payload):
        if self.raise_on_notify:
            raise RuntimeError("push service down")
        self.sent.append((user_id, event, payload))

    def events(self) -> list[str]:
        return [event for _, event, _ in self.sent]


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def make_user(session):
    def _make(role: ActorRole, **fields) -> Actor:
        user = UserModel(
            id=uuid4(),
            role=role.value,
            first_name=fields.pop("first_name", role.value.title()),
            last_name=fields.pop("last_name", "Tester"),
            **fields,
        )
        session.add(user)
        session.commit()
        return Actor(id=user.id, role=role)

    return _make


@pytest.fixture
def homeowner(make_user) -> Actor:
    return make_user(
        ActorRole.HOMEOWNER,
        first_name="Hannah",
        last_name="Owens",
        email="hannah@example.com",
        phone="(555) 010-4477",
    )


@pytest.fixture
def cleaner(make_user) -> Actor:
    return make_user(
        ActorRole.CLEANER,
        first_name="Carlos",
        last_name="Diaz",
        email="carlos@example.com",
        payout_account_ref="acct_cleaner_1",
    )


@pytest.fixture
def hr(make_user) -> Actor:
    return make_user(ActorRole.HR, first_name="Rita", last_name="Reviewer")


@pytest.fixture
def owner(make_user) -> Actor:
    return make_user(ActorRole.OWNER, first_name="Olga", last_name="Owner")


@pytest.fixture
def make_appointment(session, clock, homeowner, cleaner):
    def _make(**fields) -> UUID:
        appointment = AppointmentModel(
            id=uuid4(),
            homeowner_id=fields.pop("homeowner_id", homeowner.id),
            cleaner_ids=fields.pop("cleaner_ids", [str(cleaner.id)]),
            price=fields.pop("price", 15000),
            was_cancelled=fields.pop("was_cancelled", True),
            cancelled_at=fields.pop("cancelled_at", clock.now() - timedelta(hours=2)),
            payment_intent_ref=fields.pop("payment_intent_ref", "pi_123"),
            cancellation_fee_charged=fields.pop("cancellation_fee_charged", 2500),
            refund_withheld=fields.pop("refund_withheld", 5000),
            **fields,
        )
        session.add(appointment)
        session.commit()
        return appointment.id

    return _make


@pytest.fixture
def appointment_id(make_appointment) -> UUID:
    return make_appointment()


# =============================================================================
# Engine
# =============================================================================


@pytest.fixture
def engine(session, gateway, notifier, clock, policy) -> ConflictEngine:
    return ConflictEngine(
        session=session,
        audit_session_factory=get_session_factory(),
        gateway=gateway,
        notifier=notifier,
        clock=clock,
        policy=policy,
    )


@pytest.fixture
def submitted_appeal(engine, appointment_id, homeowner):
    return engine.appeals.submit(
        appointment_id,
        homeowner,
        "medical_emergency",
        "Hospitalized the morning of the clean",
    )
