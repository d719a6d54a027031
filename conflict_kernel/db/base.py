"""
Declarative ORM base for the conflict engine.

Every table gets a uuid4 primary key stored as text so the same schema runs
on SQLite and PostgreSQL.  Datetimes are normalized to UTC on write and come
back timezone-aware on read; SQLite would otherwise hand back naive values
and comparisons against ``Clock.now()`` would fail.  Money columns are plain
``int`` (minor units), mapped to BigInteger.

Nothing in here may import from models/, services/ or any outer package.
"""

from datetime import datetime, timezone
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

# Actor recorded on rows written by batch jobs and other system processes.
SYSTEM_ACTOR_ID = PyUUID(int=0)


class UUIDString(TypeDecorator):
    """uuid.UUID <-> 36-character text."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Naive input is taken as UTC; output is always aware UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = _as_utc(value)
        # SQLite has no tz-aware storage.
        return value.replace(tzinfo=None) if dialect.name == "sqlite" else value

    def process_result_value(self, value, dialect):
        return None if value is None else _as_utc(value)


class Base(DeclarativeBase):
    """Root of every mapped class; owns the ``id`` column and the type map."""

    type_annotation_map: ClassVar[dict] = {
        PyUUID: UUIDString(),
        datetime: UTCDateTime(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds who/when bookkeeping columns.

    These four columns stay writable on append-only rows; the immutability
    listeners in db/immutability.py skip them.
    """

    __abstract__ = True

    created_by_id: Mapped[PyUUID] = mapped_column(UUIDString())
    updated_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString())
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
