"""
Per-actor rate limiting for money movement (``conflict_services.rate_limit``).

Counts are kept in an injected ``TTLStore`` keyed by ``(actor, action)``.
The first hit opens a fixed window; further hits inside it increment the
count.  ``InMemoryTTLStore`` serves a single process and the tests; a
shared store (Redis or similar) plugs in through the same protocol.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol
from uuid import UUID

from conflict_config import RateLimitPolicy
from conflict_kernel.domain.clock import Clock, SystemClock
from conflict_kernel.exceptions import RateLimitExceededError
from conflict_kernel.logging_config import get_logger

logger = get_logger("services.rate_limit")


@dataclass(frozen=True)
class Window:
    count: int
    expires_at: datetime


class TTLStore(Protocol):
    def get(self, key: str, now: datetime) -> Window | None: ...

    def put(self, key: str, window: Window) -> None: ...


class InMemoryTTLStore:
    """Process-local store; every expired window is swept out on each read."""

    def __init__(self):
        self._windows: dict[str, Window] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._windows)

    def get(self, key: str, now: datetime) -> Window | None:
        with self._lock:
            expired = [k for k, w in self._windows.items() if now >= w.expires_at]
            for k in expired:
                del self._windows[k]
            return self._windows.get(key)

    def put(self, key: str, window: Window) -> None:
        with self._lock:
            self._windows[key] = window


class RateLimiter:
    def __init__(
        self,
        store: TTLStore | None = None,
        policy: RateLimitPolicy | None = None,
        clock: Clock | None = None,
    ):
        self._store = store or InMemoryTTLStore()
        self._policy = policy or RateLimitPolicy()
        self._clock = clock or SystemClock()

    @staticmethod
    def key(actor_id: UUID, action: str) -> str:
        return f"ratelimit:{action}:{actor_id}"

    def hit(self, actor_id: UUID, action: str) -> int:
        """
        Count one action.  Returns the number of actions left in the window.

        Raises:
            RateLimitExceededError: limit already reached in this window.
        """
        now = self._clock.now()
        key = self.key(actor_id, action)
        window = self._store.get(key, now)
        if window is None:
            window = Window(
                count=0,
                expires_at=now + timedelta(seconds=self._policy.window_seconds),
            )
        if window.count >= self._policy.max_actions:
            retry_after = max(math.ceil((window.expires_at - now).total_seconds()), 1)
            logger.warning(
                "rate_limit_exceeded",
                extra={"actor_id": actor_id, "action": action, "retry_after_seconds": retry_after},
            )
            raise RateLimitExceededError(str(actor_id), action, retry_after)
        window = Window(count=window.count + 1, expires_at=window.expires_at)
        self._store.put(key, window)
        return self._policy.max_actions - window.count
