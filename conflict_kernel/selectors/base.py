"""
Read side of the engine.

Selectors run queries against a session the caller owns and hand back
frozen dataclasses or plain values.  They never add, delete, flush or commit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from conflict_kernel.db.base import Base

M = TypeVar("M", bound=Base)


class BaseSelector(ABC, Generic[M]):
    """Parameterized by the model it reads, for documentation and type checkers."""

    def __init__(self, session: Session):
        self.session = session
