"""Data models for the trader classifier."""

from dataclasses import dataclass
from typing import Literal

from polymarket_trade_assistant.gateway.models import (
    ActivityItem,
    ClosedPosition,
    LeaderboardEntry,
    Position,
    Profile,
)

TraderType = Literal["insider", "bot", "whale", "normal"]


@dataclass(frozen=True)
class TraderInputs:
    """Everything the scoring rules look at for one wallet."""

    profile: Profile | None
    leaderboard: LeaderboardEntry | None
    activity: tuple[ActivityItem, ...]
    positions: tuple[Position, ...]
    closed_positions: tuple[ClosedPosition, ...]


@dataclass(frozen=True)
class TraderClassification:
    """Multi-axis wallet score.

    ``insider_score``, ``bot_score`` and ``whale_score`` are additive and
    unbounded above; ``follow_score`` is clamped to [0, 100].
    """

    type: TraderType
    confidence: int
    insider_score: int
    bot_score: int
    whale_score: int
    follow_score: int
    follow_worthy: bool
    reasons: tuple[str, ...] = ()
    follow_reasons: tuple[str, ...] = ()
    profile: Profile | None = None
    leaderboard_rank: int | None = None
    total_volume: float = 0.0
    total_pnl: float = 0.0
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0
    account_age_days: int | None = None
    markets_traded: int = 0
    win_rate: float | None = None
    avg_trade_size: float = 0.0
    trades_per_day: float = 0.0
