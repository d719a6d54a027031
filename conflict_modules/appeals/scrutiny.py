"""
ScrutinyEngine (``conflict_modules.appeals.scrutiny``).

Responsibility
--------------
Loads an appellant's full appeal history, derives their scrutiny profile
with the pure ``compute_scrutiny_profile`` and stores it through the
UserStore port.  Runs after every appeal resolution.

Invariants enforced
-------------------
* The profile is recomputed from history each time; nothing is
  incremented in place.
* Runs inside the caller's transaction and never commits.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from conflict_kernel.domain.clock import Clock, SystemClock
from conflict_kernel.domain.ports import UserStore
from conflict_kernel.domain.scrutiny import (
    ScrutinyProfile,
    ScrutinyThresholds,
    compute_scrutiny_profile,
)
from conflict_kernel.logging_config import get_logger
from conflict_modules.appeals.selectors import AppealSelector

logger = get_logger("modules.appeals.scrutiny")


class ScrutinyEngine:
    def __init__(
        self,
        session: Session,
        user_store: UserStore,
        clock: Clock | None = None,
        thresholds: ScrutinyThresholds | None = None,
    ):
        self._selector = AppealSelector(session)
        self._users = user_store
        self._clock = clock or SystemClock()
        self._thresholds = thresholds or ScrutinyThresholds()

    def profile(self, user_id: UUID) -> ScrutinyProfile:
        """Derive without persisting."""
        return compute_scrutiny_profile(
            self._selector.history_for(user_id),
            now=self._clock.now(),
            thresholds=self._thresholds,
        )

    def recompute(self, user_id: UUID) -> ScrutinyProfile:
        profile = self.profile(user_id)
        self._users.save_scrutiny(user_id, profile, self._clock.now())
        logger.info(
            "scrutiny_recomputed",
            extra={
                "user_id": user_id,
                "level": profile.level.value,
                "recent_appeals": profile.recent_appeals,
                "recent_denials": profile.recent_denials,
            },
        )
        return profile
