"""
Shared value objects for the conflict kernel.

Actors, case types, priorities and the external case-number format.  All
frozen; no I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from conflict_kernel.exceptions import InvalidCaseNumberError


class ActorRole(str, Enum):
    HOMEOWNER = "homeowner"
    CLEANER = "cleaner"
    HR = "hr"
    OWNER = "owner"
    SYSTEM = "system"


STAFF_ROLES: frozenset[ActorRole] = frozenset({ActorRole.HR, ActorRole.OWNER})


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as supplied by the upstream AuthZ layer."""

    id: UUID
    role: ActorRole

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


class CaseType(str, Enum):
    APPEAL = "appeal"
    ADJUSTMENT = "adjustment"

    @property
    def prefix(self) -> str:
        return _CASE_PREFIXES[self]


_CASE_PREFIXES: dict[CaseType, str] = {
    CaseType.APPEAL: "APL",
    CaseType.ADJUSTMENT: "ADJ",
}

_CASE_NUMBER_RE = re.compile(r"^([A-Z]{3})-(\d+)$")


def format_case_number(case_type: CaseType, number: int) -> str:
    """``APL-000123`` style external identifier."""
    return f"{case_type.prefix}-{number:06d}"


def parse_case_number(case_number: str) -> tuple[CaseType, int]:
    """Inverse of :func:`format_case_number`.

    Raises:
        InvalidCaseNumberError: unknown prefix or malformed number.
    """
    match = _CASE_NUMBER_RE.match(case_number.strip().upper())
    if match is None:
        raise InvalidCaseNumberError(case_number)
    prefix, digits = match.groups()
    for case_type, known in _CASE_PREFIXES.items():
        if known == prefix:
            return case_type, int(digits)
    raise InvalidCaseNumberError(case_number)


class Priority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"

    @property
    def rank(self) -> int:
        """Sort key: lower ranks are served first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK: dict[Priority, int] = {
    Priority.URGENT: 0,
    Priority.HIGH: 1,
    Priority.NORMAL: 2,
}


class ScrutinyLevel(str, Enum):
    NONE = "none"
    WATCH = "watch"
    HIGH_RISK = "high_risk"
