"""Process-scoped claiming session.

The session owns the state that outlives a single claim call: the relayer
rate-limit window, the lazily created transaction executor, and the lock
that serializes claim cycles. It is constructed once and passed to the
engine; nothing here is module-global.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from polymarket_trade_assistant.claiming.errors import (
    parse_rate_limit_reset,
    parse_remaining_units,
)

if TYPE_CHECKING:
    from polymarket_trade_assistant.claiming.executor import TransactionExecutor

logger = logging.getLogger(__name__)

# Applied when a quota error carries no reset hint. Real relayer windows are
# usually hours long, so this tends to under-back-off.
DEFAULT_RATE_LIMIT_FALLBACK_SECONDS = 60


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class RateLimitState:
    """Relayer quota window as last reported by the relayer."""

    is_limited: bool = False
    reset_at: datetime | None = None
    remaining_units: int | None = None


@dataclass(frozen=True)
class RateLimitStatus:
    """Snapshot for callers: whether limited and seconds until reset."""

    is_limited: bool
    resets_in: float | None


class ClaimSession:
    """Mutable state shared by every claim call in the process.

    The executor is created on first use through ``executor_factory`` and
    reused until :meth:`reset`.

    Example:
        ```python
        session = ClaimSession(executor_factory=lambda: RelayerExecutor(...))
        if not session.is_rate_limited():
            executor = session.get_executor()
        ```
    """

    def __init__(
        self,
        *,
        executor_factory: Callable[[], TransactionExecutor] | None = None,
        fallback_cooldown_seconds: int = DEFAULT_RATE_LIMIT_FALLBACK_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._executor_factory = executor_factory
        self._fallback_cooldown = fallback_cooldown_seconds
        self._clock = clock
        self._executor: TransactionExecutor | None = None
        self.rate_limit = RateLimitState()
        self.cycle_lock = asyncio.Lock()

    def get_executor(self) -> TransactionExecutor:
        """Return the executor, creating it on first use."""
        if self._executor is None:
            if self._executor_factory is None:
                raise RuntimeError("ClaimSession has no executor factory")
            self._executor = self._executor_factory()
            logger.info("Transaction executor initialized")
        return self._executor

    @property
    def has_executor(self) -> bool:
        return self._executor is not None

    async def reset(self) -> None:
        """Drop the executor and clear the rate-limit window."""
        executor, self._executor = self._executor, None
        self.rate_limit = RateLimitState()
        if executor is not None:
            await executor.close()
        logger.info("Claim session reset")

    def handle_rate_limit_error(self, message: str) -> None:
        """Enter the rate-limited state from a quota error message."""
        seconds = parse_rate_limit_reset(message)
        if seconds is None:
            seconds = self._fallback_cooldown
            logger.warning(
                "Relayer rate limited with no reset hint; backing off %ds", seconds
            )
        else:
            logger.warning("Relayer rate limited; resets in %ds", seconds)
        self.rate_limit = RateLimitState(
            is_limited=True,
            reset_at=self._clock() + timedelta(seconds=seconds),
            remaining_units=parse_remaining_units(message),
        )

    def is_rate_limited(self) -> bool:
        """Check the window, clearing it once ``reset_at`` has passed."""
        state = self.rate_limit
        if not state.is_limited:
            return False
        if state.reset_at is not None and self._clock() >= state.reset_at:
            self.rate_limit = RateLimitState()
            logger.info("Relayer rate limit window expired")
            return False
        return True

    def rate_limit_status(self) -> RateLimitStatus:
        if not self.is_rate_limited():
            return RateLimitStatus(is_limited=False, resets_in=None)
        reset_at = self.rate_limit.reset_at
        resets_in = (
            max(0.0, (reset_at - self._clock()).total_seconds()) if reset_at else None
        )
        return RateLimitStatus(is_limited=True, resets_in=resets_in)
