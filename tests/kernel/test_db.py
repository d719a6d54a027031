"""Engine lifecycle, transactional scope and column types."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from conflict_kernel.db.engine import get_engine, get_session, reset_engine, session_scope
from conflict_kernel.domain.values import ActorRole
from conflict_kernel.models.marketplace import AppointmentModel, UserModel


def _user(**fields) -> UserModel:
    return UserModel(id=uuid4(), role=ActorRole.HR.value, first_name="Sam", last_name="Scope", **fields)


class TestSessionScope:

    def test_commits_on_success(self, db_engine):
        user = _user()
        with session_scope() as s:
            s.add(user)

        with session_scope() as s:
            assert s.get(UserModel, user.id) is not None

    def test_rolls_back_on_error(self, db_engine):
        user = _user()
        with pytest.raises(RuntimeError):
            with session_scope() as s:
                s.add(user)
                s.flush()
                raise RuntimeError("abort")

        with session_scope() as s:
            assert s.get(UserModel, user.id) is None


class TestUninitialized:

    def test_engine_required(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session()


class TestUTCDateTime:

    def test_aware_round_trip(self, session, homeowner):
        offset = timezone(timedelta(hours=-5))
        cancelled = datetime(2026, 3, 1, 7, 30, tzinfo=offset)
        row = AppointmentModel(
            id=uuid4(), homeowner_id=homeowner.id, price=1000,
            was_cancelled=True, cancelled_at=cancelled,
        )
        session.add(row)
        session.commit()
        session.expire_all()

        loaded = session.get(AppointmentModel, row.id)
        assert loaded.cancelled_at == datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)
        assert loaded.cancelled_at.tzinfo is not None

    def test_naive_values_are_utc(self, session, homeowner):
        row = AppointmentModel(
            id=uuid4(), homeowner_id=homeowner.id, price=1000,
            was_cancelled=True, cancelled_at=datetime(2026, 3, 1, 9, 0),
        )
        session.add(row)
        session.commit()
        session.expire_all()

        loaded = session.get(AppointmentModel, row.id)
        assert loaded.cancelled_at == datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
