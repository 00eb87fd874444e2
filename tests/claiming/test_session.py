"""Tests for the claim session rate-limit state machine."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from polymarket_trade_assistant.claiming import ClaimSession


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 19, tzinfo=UTC))


class TestRateLimit:
    def test_not_limited_initially(self, clock: FakeClock) -> None:
        session = ClaimSession(clock=clock)

        assert not session.is_rate_limited()
        status = session.rate_limit_status()
        assert not status.is_limited
        assert status.resets_in is None

    def test_reset_hint_sets_window(self, clock: FakeClock) -> None:
        session = ClaimSession(clock=clock)
        session.handle_rate_limit_error("quota exceeded: 0 units remaining, resets in 120 seconds")

        assert session.is_rate_limited()
        assert session.rate_limit.remaining_units == 0
        assert session.rate_limit_status().resets_in == 120.0

        clock.advance(119)
        assert session.is_rate_limited()
        assert session.rate_limit_status().resets_in == 1.0

        clock.advance(1)
        assert not session.is_rate_limited()
        assert not session.rate_limit.is_limited

    def test_missing_hint_uses_fallback(self, clock: FakeClock) -> None:
        session = ClaimSession(clock=clock, fallback_cooldown_seconds=300)
        session.handle_rate_limit_error("429 Too Many Requests")

        assert session.rate_limit_status().resets_in == 300.0
        clock.advance(300)
        assert not session.is_rate_limited()


class TestExecutorLifecycle:
    def test_executor_is_created_once(self) -> None:
        executor = MagicMock()
        factory = MagicMock(return_value=executor)
        session = ClaimSession(executor_factory=factory)

        assert not session.has_executor
        assert session.get_executor() is executor
        assert session.get_executor() is executor
        factory.assert_called_once()

    def test_missing_factory_raises(self) -> None:
        with pytest.raises(RuntimeError):
            ClaimSession().get_executor()

    @pytest.mark.asyncio
    async def test_reset_closes_executor_and_clears_state(self, clock: FakeClock) -> None:
        executor = MagicMock()
        executor.close = AsyncMock()
        session = ClaimSession(executor_factory=lambda: executor, clock=clock)
        session.get_executor()
        session.handle_rate_limit_error("resets in 60 seconds")

        await session.reset()

        executor.close.assert_awaited_once()
        assert not session.has_executor
        assert not session.is_rate_limited()
