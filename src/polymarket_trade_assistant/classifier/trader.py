"""Wallet behaviour classifier.

This module turns a wallet's public profile, leaderboard entry, activity
and positions into insider, bot, whale and follow scores. The rules are
deterministic and additive; each signal that fires may also contribute a
human-readable reason string.
"""

import asyncio
import logging
import math
from collections.abc import Awaitable
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TypeVar

from polymarket_trade_assistant.classifier.models import (
    TraderClassification,
    TraderInputs,
    TraderType,
)
from polymarket_trade_assistant.gateway import PolymarketGateway
from polymarket_trade_assistant.gateway.models import parse_iso_datetime

logger = logging.getLogger(__name__)

T = TypeVar("T")

SECONDS_PER_DAY = 86_400
ACTIVITY_LIMIT = 500
CLOSED_POSITIONS_LIMIT = 100

# A wallet gets a primary type only when its strongest score reaches this.
TYPE_THRESHOLD = 40
FOLLOW_WORTHY_THRESHOLD = 50

LARGE_BET_USD = 1000
SMALL_TRADE_USD = 10


def _fixed(value: float, digits: int = 0) -> str:
    """Format like JavaScript's ``Number.prototype.toFixed``."""
    quantum = Decimal(1).scaleb(-digits)
    return str(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def _account_age_days(created_at: str | None, now: datetime) -> int | None:
    created = parse_iso_datetime(created_at)
    if created is None:
        return None
    if created.tzinfo is None:
        created = created.replace(tzinfo=UTC)
    return math.floor((now - created).total_seconds() / SECONDS_PER_DAY)


def score_trader(inputs: TraderInputs, *, now: datetime | None = None) -> TraderClassification:
    """Score a wallet from already-fetched inputs.

    Pure function: identical inputs and ``now`` always give identical output.

    Args:
        inputs: Profile, leaderboard, activity and positions of the wallet.
        now: Reference time for account age (defaults to the current time).

    Returns:
        TraderClassification with all four scores and reason strings.
    """
    now = now or datetime.now(UTC)
    profile = inputs.profile
    leaderboard = inputs.leaderboard
    closed = inputs.closed_positions

    trades = [a for a in inputs.activity if a.type == "TRADE"]
    reasons: list[str] = []

    total_volume = sum(t.usdc_size or 0 for t in trades)
    markets_traded = len({t.title for t in trades})
    avg_trade_size = total_volume / len(trades) if trades else 0.0

    ordered = sorted(trades, key=lambda t: t.timestamp)
    trades_per_day = 0.0
    if len(trades) >= 2:
        day_span = (ordered[-1].timestamp - ordered[0].timestamp) / SECONDS_PER_DAY
        trades_per_day = len(trades) / day_span if day_span > 0 else float(len(trades))

    win_rate: float | None = None
    if closed:
        wins = sum(1 for p in closed if p.realized_pnl > 0)
        win_rate = wins / len(closed) * 100

    account_age_days = _account_age_days(profile.created_at if profile else None, now)

    unrealized_pnl = sum(p.cash_pnl for p in inputs.positions)
    realized_pnl = sum(p.realized_pnl for p in closed)
    total_pnl = unrealized_pnl + realized_pnl
    rank = leaderboard.rank if leaderboard else None

    # Insider
    insider = 0
    if account_age_days is not None and account_age_days < 7:
        insider += 30
        reasons.append(f"New account: {account_age_days} days old")
    elif account_age_days is not None and account_age_days < 30:
        insider += 15

    if markets_traded < 3:
        insider += 25
        reasons.append(f"Only {markets_traded} markets traded")
    elif markets_traded < 5:
        insider += 15

    max_trade = max([t.usdc_size or 0 for t in trades] + [0])
    if total_volume > 0 and max_trade / total_volume > 0.5:
        insider += 20
        reasons.append(f"Single trade is {_fixed(max_trade / total_volume * 100)}% of volume")

    extreme_large = [
        t for t in trades if (t.price < 0.1 or t.price > 0.9) and (t.usdc_size or 0) > LARGE_BET_USD
    ]
    if extreme_large:
        insider += 15
        reasons.append(f"{len(extreme_large)} large bets on extreme odds")

    if not (profile and (profile.bio or profile.x_username or profile.profile_image)):
        insider += 10
        reasons.append("No profile info")

    if win_rate is not None and win_rate > 80 and 3 <= len(closed) < 20:
        insider += 15
        reasons.append(f"{_fixed(win_rate)}% win rate on {len(closed)} markets")

    # Bot
    bot = 0
    if trades_per_day > 50:
        bot += 35
        reasons.append(f"High frequency: {_fixed(trades_per_day, 1)} trades/day")
    elif trades_per_day > 20:
        bot += 20

    if len(trades) >= 10:
        gaps = sum(b.timestamp - a.timestamp for a, b in zip(ordered, ordered[1:]))
        avg_gap = gaps / (len(ordered) - 1)
        if avg_gap < 60:
            bot += 25
            reasons.append(f"Avg {_fixed(avg_gap)}s between trades")
        elif avg_gap < 300:
            bot += 10

    small = [t for t in trades if (t.usdc_size or 0) < SMALL_TRADE_USD]
    if len(trades) > 20 and len(small) / len(trades) > 0.8:
        bot += 20
        reasons.append(f"{_fixed(len(small) / len(trades) * 100)}% trades under $10")

    extreme_price = [t for t in trades if t.price < 0.01 or t.price > 0.99]
    if len(trades) > 10 and len(extreme_price) / len(trades) > 0.3:
        bot += 15
        reasons.append("Frequent extreme price trades")

    # Whale
    whale = 0
    if total_volume > 1_000_000:
        whale += 40
        reasons.append(f"${_fixed(total_volume / 1_000_000, 1)}M total volume")
    elif total_volume > 500_000:
        whale += 25
        reasons.append(f"${_fixed(total_volume / 1000)}k total volume")

    if avg_trade_size > 25_000:
        whale += 35
        reasons.append(f"Avg trade: ${_fixed(avg_trade_size / 1000, 1)}k")
    elif avg_trade_size > 10_000:
        whale += 20
        reasons.append(f"Avg trade: ${_fixed(avg_trade_size / 1000, 1)}k")

    if rank is not None:
        if rank <= 100:
            whale += 25
            reasons.append(f"Leaderboard rank #{rank}")
        elif rank <= 500:
            whale += 15

    if profile and profile.verified_badge:
        whale += 10
        insider = max(0, insider - 20)

    if markets_traded > 20:
        insider = max(0, insider - 15)

    # Follow
    follow = 0
    follow_reasons: list[str] = []
    if total_pnl > 50_000:
        follow += 30
        follow_reasons.append(f"+${_fixed(total_pnl / 1000)}k profit")
    elif total_pnl > 10_000:
        follow += 20
        follow_reasons.append(f"+${_fixed(total_pnl / 1000)}k profit")
    elif total_pnl > 1000:
        follow += 10
    elif total_pnl < -5000:
        follow -= 20
        follow_reasons.append(f"Losing: ${_fixed(total_pnl / 1000)}k")
    elif total_pnl < 0:
        follow -= 10

    if win_rate is not None and len(closed) >= 5:
        if win_rate >= 70:
            follow += 25
            follow_reasons.append(f"{_fixed(win_rate)}% win rate")
        elif win_rate >= 60:
            follow += 15
            follow_reasons.append(f"{_fixed(win_rate)}% win rate")
        elif win_rate >= 55:
            follow += 10
        elif win_rate < 40:
            follow -= 15
            follow_reasons.append(f"Poor {_fixed(win_rate)}% win rate")

    if len(closed) >= 20:
        follow += 15
        follow_reasons.append(f"{len(closed)} resolved bets")
    elif len(closed) >= 10:
        follow += 10
    elif len(closed) < 3:
        follow -= 10
        follow_reasons.append("Too few resolved bets")

    if markets_traded >= 20:
        follow += 10
    elif markets_traded >= 10:
        follow += 5

    if account_age_days is not None:
        if account_age_days >= 180:
            follow += 10
            follow_reasons.append(f"{account_age_days // 30}mo track record")
        elif account_age_days >= 90:
            follow += 5
        elif account_age_days < 14:
            follow -= 10
            follow_reasons.append("New account")

    if rank is not None:
        if rank <= 100:
            follow += 15
            follow_reasons.append(f"Top 100 (#{rank})")
        elif rank <= 500:
            follow += 10
            follow_reasons.append(f"Top 500 (#{rank})")
        elif rank <= 1000:
            follow += 5

    if bot >= 50:
        follow -= 20
        follow_reasons.append("Bot behavior (hard to copy)")
    elif bot >= 30:
        follow -= 10

    if 500 <= avg_trade_size <= 50_000:
        follow += 5
    elif avg_trade_size < 50:
        follow -= 5
        follow_reasons.append("Micro trades")

    follow = max(0, min(100, follow))

    trader_type: TraderType = "normal"
    confidence = 0
    top = max(insider, bot, whale)
    if top >= TYPE_THRESHOLD:
        if insider == top:
            trader_type = "insider"
        elif bot == top:
            trader_type = "bot"
        else:
            trader_type = "whale"
        confidence = min(100, top)

    return TraderClassification(
        type=trader_type,
        confidence=confidence,
        insider_score=insider,
        bot_score=bot,
        whale_score=whale,
        follow_score=follow,
        follow_worthy=follow >= FOLLOW_WORTHY_THRESHOLD,
        reasons=tuple(reasons),
        follow_reasons=tuple(follow_reasons),
        profile=profile,
        leaderboard_rank=rank,
        total_volume=total_volume,
        total_pnl=total_pnl,
        realized_pnl=realized_pnl,
        unrealized_pnl=unrealized_pnl,
        account_age_days=account_age_days,
        markets_traded=markets_traded,
        win_rate=win_rate,
        avg_trade_size=avg_trade_size,
        trades_per_day=trades_per_day,
    )


class TraderClassifier:
    """Fetches a wallet's public data and scores it.

    The activity feed is the primary input: its failure propagates. Every
    other fetch degrades to ``None`` or an empty list so a partial picture
    still yields a best-effort score.

    Example:
        ```python
        classifier = TraderClassifier(gateway)
        result = await classifier.classify("0xabc...")
        if result.follow_worthy:
            print(result.follow_reasons)
        ```
    """

    def __init__(self, gateway: PolymarketGateway) -> None:
        self._gateway = gateway

    async def _degrade(self, coro: Awaitable[T], default: T, *, what: str, wallet: str) -> T:
        try:
            return await coro
        except Exception as e:
            logger.warning("Failed to fetch %s for %s: %s", what, wallet, e)
            return default

    async def fetch_inputs(self, wallet: str) -> TraderInputs:
        profile, leaderboard, activity, positions, closed = await asyncio.gather(
            self._degrade(self._gateway.fetch_profile(wallet), None, what="profile", wallet=wallet),
            self._degrade(
                self._gateway.fetch_leaderboard_rank(wallet), None, what="leaderboard", wallet=wallet
            ),
            self._gateway.fetch_activity(wallet, limit=ACTIVITY_LIMIT, offset=0),
            self._degrade(self._gateway.fetch_positions(wallet), [], what="positions", wallet=wallet),
            self._degrade(
                self._gateway.fetch_closed_positions(wallet, limit=CLOSED_POSITIONS_LIMIT),
                [],
                what="closed positions",
                wallet=wallet,
            ),
        )
        return TraderInputs(
            profile=profile,
            leaderboard=leaderboard,
            activity=tuple(activity),
            positions=tuple(positions),
            closed_positions=tuple(closed),
        )

    async def classify(self, wallet: str, *, now: datetime | None = None) -> TraderClassification:
        """Classify a wallet.

        Raises:
            GatewayError: If the activity feed cannot be fetched.
        """
        inputs = await self.fetch_inputs(wallet)
        result = score_trader(inputs, now=now)
        logger.debug(
            "Classified %s: type=%s follow=%d insider=%d bot=%d whale=%d",
            wallet,
            result.type,
            result.follow_score,
            result.insider_score,
            result.bot_score,
            result.whale_score,
        )
        return result
