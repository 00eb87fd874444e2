"""Tests for copy trading and share sizing."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from polymarket_trade_assistant.betting import BetResult, CopyTrader, calculate_shares, copy_price
from polymarket_trade_assistant.storage import BetLogRepository, DatabaseManager


class TestCopyPrice:
    @pytest.mark.parametrize(
        ("side", "original", "expected"),
        [
            ("BUY", "0.60", "0.65"),
            ("BUY", "0.93", "0.95"),
            ("BUY", "0.445", "0.50"),
            ("SELL", "0.60", "0.55"),
            ("SELL", "0.08", "0.05"),
        ],
    )
    def test_buffer_and_bounds(self, side: str, original: str, expected: str) -> None:
        assert copy_price(side, Decimal(original)) == Decimal(expected)

    def test_custom_buffer(self) -> None:
        assert copy_price("BUY", Decimal("0.50"), Decimal("0.02")) == Decimal("0.52")


class TestCalculateShares:
    def test_default_shares_when_above_minimum(self) -> None:
        result = calculate_shares(0.8)

        assert result.shares == 5.0
        assert result.cost == 4.0

    def test_sizes_up_to_minimum_cost(self) -> None:
        result = calculate_shares(0.4)

        assert result.shares == 7.5
        assert result.cost == 3.0

    def test_rounds_shares_to_tenth(self) -> None:
        result = calculate_shares(0.35)

        assert result.shares == 8.6
        assert result.cost == 3.01

    def test_rejects_non_positive_price(self) -> None:
        with pytest.raises(ValueError):
            calculate_shares(0)


class TestCopyTrader:
    @pytest.mark.asyncio
    async def test_placed_copy_is_logged(self, db: DatabaseManager, trade_factory) -> None:
        betting = MagicMock()
        betting.place_bet = AsyncMock(
            return_value=BetResult(
                success=True,
                order_id="order-9",
                size=3.08,
                order_type="GTC",
                condition_id="0xcond1",
                token_id="111",
            )
        )
        trade = trade_factory("0xtrigger", price="0.60")

        entry = await CopyTrader(betting, db).auto_copy_trade(trade, follow_score=72)

        betting.place_bet.assert_awaited_once_with(
            market_slug="will-it-happen", outcome="Yes", side="BUY", amount=2.0, price=0.65
        )
        assert entry.status == "placed"
        assert entry.source == "auto"
        assert entry.placed_at is not None
        async with db.get_async_session() as session:
            (logged,) = await BetLogRepository(session).list_recent()
        assert logged.order_id == "order-9"
        assert logged.token_id == "111"
        assert logged.price == Decimal("0.65")
        assert logged.trigger_transaction_hash == "0xtrigger"
        assert logged.trigger_follow_score == 72

    @pytest.mark.asyncio
    async def test_failed_copy_is_logged(self, db: DatabaseManager, trade_factory) -> None:
        betting = MagicMock()
        betting.place_bet = AsyncMock(
            return_value=BetResult(success=False, error="Market is closed")
        )

        entry = await CopyTrader(betting, db, amount_usdc=Decimal(5)).auto_copy_trade(
            trade_factory("0xtrigger"), follow_score=None
        )

        assert entry.status == "failed"
        assert entry.error_message == "Market is closed"
        assert entry.condition_id == "0xcond1"
        assert entry.amount == Decimal(5)
        assert entry.placed_at is None
