"""Fixed-window rate limiter over a TTL store."""

from datetime import timedelta
from uuid import uuid4

import pytest

from conflict_config import RateLimitPolicy
from conflict_kernel.exceptions import RateLimitExceededError
from conflict_services.rate_limit import InMemoryTTLStore, RateLimiter, Window


@pytest.fixture
def limiter(clock) -> RateLimiter:
    return RateLimiter(InMemoryTTLStore(), RateLimitPolicy(max_actions=3, window_seconds=60), clock)


class TestRateLimiter:

    def test_remaining_count(self, limiter):
        actor = uuid4()
        assert [limiter.hit(actor, "refund") for _ in range(3)] == [2, 1, 0]

    def test_exceeded_reports_retry_after(self, limiter, clock):
        actor = uuid4()
        for _ in range(3):
            limiter.hit(actor, "refund")
        clock.advance(20)
        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.hit(actor, "refund")
        assert exc_info.value.retry_after_seconds == 40
        assert exc_info.value.action == "refund"

    def test_window_expiry_resets(self, limiter, clock):
        actor = uuid4()
        for _ in range(3):
            limiter.hit(actor, "refund")
        clock.advance(60)
        assert limiter.hit(actor, "refund") == 2

    def test_actions_and_actors_are_independent(self, limiter):
        actor = uuid4()
        for _ in range(3):
            limiter.hit(actor, "refund")
        assert limiter.hit(actor, "payout") == 2
        assert limiter.hit(uuid4(), "refund") == 2

    def test_rejected_hit_does_not_extend_window(self, limiter, clock):
        actor = uuid4()
        for _ in range(3):
            limiter.hit(actor, "refund")
        clock.advance(59)
        with pytest.raises(RateLimitExceededError):
            limiter.hit(actor, "refund")
        clock.advance(1)
        assert limiter.hit(actor, "refund") == 2

    def test_logs_exceeded(self, limiter, captured_logs):
        actor = uuid4()
        for _ in range(3):
            limiter.hit(actor, "payout")
        with pytest.raises(RateLimitExceededError):
            limiter.hit(actor, "payout")
        [record] = [r for r in captured_logs() if r["message"] == "rate_limit_exceeded"]
        assert record["actor_id"] == str(actor)
        assert record["retry_after_seconds"] == 60


class TestInMemoryTTLStore:

    def test_expired_window_is_dropped(self, clock):
        store = InMemoryTTLStore()
        store.put("k", Window(count=1, expires_at=clock.now()))
        assert store.get("k", clock.now()) is None
        assert store.get("k", clock.now()) is None

    def test_live_window(self, clock):
        store = InMemoryTTLStore()
        store.put("k", Window(count=2, expires_at=clock.now() + timedelta(seconds=1)))
        assert store.get("k", clock.now()).count == 2

    def test_read_sweeps_other_expired_keys(self, clock):
        store = InMemoryTTLStore()
        store.put("gone", Window(count=1, expires_at=clock.now()))
        store.put("live", Window(count=1, expires_at=clock.now() + timedelta(seconds=60)))
        assert len(store) == 2

        assert store.get("unrelated", clock.now()) is None
        assert len(store) == 1
        assert store.get("live", clock.now()).count == 1
