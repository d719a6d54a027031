"""
Named, gap-tolerant counters for audit ordering and case numbers.

Each sequence is one row in ``sequence_counters``.  Allocation locks that row
(``SELECT ... FOR UPDATE`` on PostgreSQL) and bumps it inside the caller's
transaction, so the value is only consumed if the caller commits.  The row is
created lazily; two transactions racing on the very first allocation of a
sequence can hit the unique constraint, which surfaces as IntegrityError.
"""

from sqlalchemy import String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from conflict_kernel.db.base import Base
from conflict_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), unique=True)
    value: Mapped[int] = mapped_column(default=0)


class SequenceService:
    """Never commits; the caller owns the transaction."""

    AUDIT_EVENT = "audit_event"
    APPEAL_CASE = "appeal_case"
    ADJUSTMENT_CASE = "adjustment_case"

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, name: str) -> int:
        stmt = (
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        counter = self._session.scalars(stmt).one_or_none()
        if counter is None:
            counter = SequenceCounter(name=name, value=0)
            self._session.add(counter)

        counter.value += 1
        self._session.flush()
        logger.debug("sequence_allocated", extra={"sequence": name, "value": counter.value})
        return counter.value
