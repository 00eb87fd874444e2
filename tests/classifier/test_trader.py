"""Tests for the trader classifier."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from polymarket_trade_assistant.classifier import TraderClassifier, TraderInputs, score_trader
from polymarket_trade_assistant.gateway import (
    ActivityItem,
    ClosedPosition,
    GatewayTransientError,
    LeaderboardEntry,
    Position,
    Profile,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
DAY = 86_400


def _created(days_ago: int) -> str:
    return (NOW - timedelta(days=days_ago)).isoformat().replace("+00:00", "Z")


def _position(cash_pnl: float) -> Position:
    return Position(
        proxy_wallet="0xabc",
        asset="1",
        condition_id="0xcond",
        size=100.0,
        avg_price=0.5,
        cur_price=0.7,
        current_value=70.0,
        cash_pnl=cash_pnl,
        realized_pnl=0.0,
        title="Open market",
        slug="open-market",
        outcome="Yes",
    )


def _daily_trades(count: int, usdc_size: float) -> tuple[ActivityItem, ...]:
    start = int(NOW.timestamp()) - count * DAY
    return tuple(
        ActivityItem(
            timestamp=start + i * DAY,
            type="TRADE",
            usdc_size=usdc_size,
            price=0.5,
            title=f"Market {i}",
        )
        for i in range(count)
    )


def _established(activity: tuple[ActivityItem, ...]) -> TraderInputs:
    return TraderInputs(
        profile=Profile(created_at=_created(400), bio="Macro trader"),
        leaderboard=None,
        activity=activity,
        positions=(),
        closed_positions=(),
    )


@pytest.fixture
def insider_inputs() -> TraderInputs:
    """A three-day-old wallet with one large bet on extreme odds."""
    return TraderInputs(
        profile=Profile(created_at=_created(3)),
        leaderboard=None,
        activity=(
            ActivityItem(
                timestamp=int(NOW.timestamp()),
                type="TRADE",
                usdc_size=5000.0,
                price=0.95,
                title="Election",
            ),
        ),
        positions=(),
        closed_positions=(),
    )


@pytest.fixture
def good_trader_inputs() -> TraderInputs:
    """An established, profitable, ranked wallet trading many markets."""
    start = int(NOW.timestamp()) - 30 * DAY
    activity = tuple(
        ActivityItem(
            timestamp=start + i * DAY,
            type="TRADE",
            usdc_size=2000.0,
            price=0.5,
            title=f"Market {i}",
        )
        for i in range(25)
    )
    closed = tuple(
        ClosedPosition(condition_id=f"0x{i}", realized_pnl=100.0 if i < 20 else -50.0)
        for i in range(25)
    )
    return TraderInputs(
        profile=Profile(created_at=_created(400), bio="Macro trader"),
        leaderboard=LeaderboardEntry(rank=50, proxy_wallet="0xabc", vol=1e6, pnl=6e4),
        activity=activity,
        positions=(_position(60_000.0),),
        closed_positions=closed,
    )


class TestScoreTrader:
    def test_new_concentrated_wallet_is_insider(self, insider_inputs: TraderInputs) -> None:
        result = score_trader(insider_inputs, now=NOW)

        assert result.insider_score == 100
        assert result.type == "insider"
        assert result.confidence == 100
        assert result.reasons == (
            "New account: 3 days old",
            "Only 1 markets traded",
            "Single trade is 100% of volume",
            "1 large bets on extreme odds",
            "No profile info",
        )
        assert result.follow_score == 0
        assert not result.follow_worthy
        assert "Too few resolved bets" in result.follow_reasons
        assert "New account" in result.follow_reasons

    def test_established_profitable_wallet_is_follow_worthy(
        self, good_trader_inputs: TraderInputs
    ) -> None:
        result = score_trader(good_trader_inputs, now=NOW)

        assert result.type == "normal"
        assert result.confidence == 0
        assert result.whale_score == 25
        assert result.reasons == ("Leaderboard rank #50",)
        assert result.follow_score == 100
        assert result.follow_worthy
        assert result.follow_reasons == (
            "+$62k profit",
            "80% win rate",
            "25 resolved bets",
            "13mo track record",
            "Top 100 (#50)",
        )
        assert result.win_rate == 80.0
        assert result.markets_traded == 25

    def test_high_frequency_wallet_is_bot(self) -> None:
        start = int(NOW.timestamp()) - 3600
        activity = tuple(
            ActivityItem(timestamp=start + i * 10, type="TRADE", usdc_size=5.0, price=0.5, title=f"M{i % 30}")
            for i in range(100)
        )
        result = score_trader(
            TraderInputs(
                profile=Profile(created_at=_created(365), bio="bot"),
                leaderboard=None,
                activity=activity,
                positions=(),
                closed_positions=(),
            ),
            now=NOW,
        )

        # 35 (frequency) + 25 (gap) + 20 (small trades)
        assert result.bot_score == 80
        assert result.type == "bot"
        assert "Avg 10s between trades" in result.reasons
        assert "100% trades under $10" in result.reasons
        assert "Bot behavior (hard to copy)" in result.follow_reasons

    def test_million_dollar_volume_with_large_average_is_whale(self) -> None:
        result = score_trader(_established(_daily_trades(30, 40_000.0)), now=NOW)

        assert result.whale_score == 75
        assert result.insider_score == 0
        assert result.type == "whale"
        assert result.confidence == 75
        assert result.reasons == ("$1.2M total volume", "Avg trade: $40.0k")

    def test_half_million_volume_with_mid_average(self) -> None:
        result = score_trader(_established(_daily_trades(40, 15_000.0)), now=NOW)

        assert result.whale_score == 45
        assert result.type == "whale"
        assert result.reasons == ("$600k total volume", "Avg trade: $15.0k")

    def test_verified_badge_moves_points_from_insider_to_whale(
        self, insider_inputs: TraderInputs
    ) -> None:
        verified = TraderInputs(
            profile=Profile(created_at=_created(3), verified_badge=True),
            leaderboard=None,
            activity=insider_inputs.activity,
            positions=(),
            closed_positions=(),
        )

        result = score_trader(verified, now=NOW)

        assert result.insider_score == 80
        assert result.whale_score == 10
        assert result.type == "insider"
        assert result.confidence == 80

    def test_tied_scores_prefer_insider_over_whale(self) -> None:
        inputs = TraderInputs(
            profile=Profile(created_at=_created(20), bio="Sports"),
            leaderboard=LeaderboardEntry(rank=50, proxy_wallet="0xabc", vol=3e4, pnl=1e3),
            activity=_daily_trades(1, 30_000.0),
            positions=(),
            closed_positions=(),
        )

        result = score_trader(inputs, now=NOW)

        assert result.insider_score == result.whale_score == 60
        assert result.type == "insider"
        assert result.confidence == 60
        assert result.reasons == (
            "Only 1 markets traded",
            "Single trade is 100% of volume",
            "Avg trade: $30.0k",
            "Leaderboard rank #50",
        )

    def test_non_trade_activity_is_ignored(self, insider_inputs: TraderInputs) -> None:
        redeem = ActivityItem(timestamp=0, type="REDEEM", usdc_size=1e7, price=1.0, title="x")
        with_redeem = TraderInputs(
            profile=insider_inputs.profile,
            leaderboard=None,
            activity=insider_inputs.activity + (redeem,),
            positions=(),
            closed_positions=(),
        )

        assert score_trader(with_redeem, now=NOW) == score_trader(insider_inputs, now=NOW)

    def test_scoring_is_deterministic(self, good_trader_inputs: TraderInputs) -> None:
        assert score_trader(good_trader_inputs, now=NOW) == score_trader(
            good_trader_inputs, now=NOW
        )

    def test_follow_score_never_negative(self) -> None:
        losing = TraderInputs(
            profile=None,
            leaderboard=None,
            activity=(),
            positions=(_position(-20_000.0),),
            closed_positions=tuple(
                ClosedPosition(condition_id=f"0x{i}", realized_pnl=-10.0) for i in range(5)
            ),
        )
        result = score_trader(losing, now=NOW)

        assert result.follow_score == 0
        assert "Losing: $-20k" in result.follow_reasons
        assert "Poor 0% win rate" in result.follow_reasons


class TestTraderClassifier:
    @pytest.fixture
    def gateway(self, insider_inputs: TraderInputs) -> MagicMock:
        gw = MagicMock()
        gw.fetch_profile = AsyncMock(return_value=insider_inputs.profile)
        gw.fetch_leaderboard_rank = AsyncMock(return_value=None)
        gw.fetch_activity = AsyncMock(return_value=list(insider_inputs.activity))
        gw.fetch_positions = AsyncMock(return_value=[])
        gw.fetch_closed_positions = AsyncMock(return_value=[])
        return gw

    @pytest.mark.asyncio
    async def test_classify_matches_pure_scoring(
        self, gateway: MagicMock, insider_inputs: TraderInputs
    ) -> None:
        result = await TraderClassifier(gateway).classify("0xabc", now=NOW)

        assert result == score_trader(insider_inputs, now=NOW)
        gateway.fetch_activity.assert_awaited_once_with("0xabc", limit=500, offset=0)

    @pytest.mark.asyncio
    async def test_secondary_fetch_failures_degrade(self, gateway: MagicMock) -> None:
        gateway.fetch_profile.side_effect = GatewayTransientError("boom")
        gateway.fetch_closed_positions.side_effect = GatewayTransientError("boom")

        result = await TraderClassifier(gateway).classify("0xabc", now=NOW)

        assert result.profile is None
        assert result.account_age_days is None

    @pytest.mark.asyncio
    async def test_activity_failure_propagates(self, gateway: MagicMock) -> None:
        gateway.fetch_activity.side_effect = GatewayTransientError("boom")

        with pytest.raises(GatewayTransientError):
            await TraderClassifier(gateway).classify("0xabc", now=NOW)
