"""Tests for the top P/V snapshot and top trader trade ledger."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from polymarket_trade_assistant.gateway import DataTrade, GatewayTransientError, LeaderboardEntry
from polymarket_trade_assistant.storage import (
    DatabaseManager,
    TopPVTraderDTO,
    TopPVTraderRepository,
    TopTraderTradeRepository,
)
from polymarket_trade_assistant.sync import TopPVSync, TopTraderTradesSync, merge_top_pv

ALICE = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
BOB = "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"
CAROL = "0xcccccccccccccccccccccccccccccccccccccccc"


def _entry(wallet: str, pnl: float, vol: float, rank: int = 1) -> LeaderboardEntry:
    return LeaderboardEntry(rank=rank, proxy_wallet=wallet, vol=vol, pnl=pnl)


def _trade(
    tx: str,
    wallet: str,
    *,
    timestamp: int,
    side: str = "BUY",
    size: float = 100.0,
    price: float = 0.5,
    outcome: str = "Yes",
) -> DataTrade:
    return DataTrade(
        transaction_hash=tx,
        proxy_wallet=wallet,
        side=side,  # type: ignore[arg-type]
        asset="1",
        condition_id="0xcond",
        size=size,
        price=price,
        timestamp=timestamp,
        title="Market",
        slug="market",
        event_slug="event",
        outcome=outcome,
        outcome_index=0,
    )


class TestMergeTopPV:
    def test_tags_sources_and_ranks_by_pv(self) -> None:
        weekly = [_entry(ALICE, 50, 100), _entry("0x" + "B" * 40, 10, 100)]
        monthly = [_entry(BOB, 90, 100), _entry(CAROL, 30, 100)]

        merged = merge_top_pv(weekly, monthly)

        assert [(t.proxy_wallet, t.source, t.rank) for t in merged] == [
            (BOB, "both", 1),
            (ALICE, "7d", 2),
            (CAROL, "30d", 3),
        ]
        assert merged[0].pv == Decimal("0.9")
        assert merged[0].pnl == Decimal("90")

    def test_drops_losing_and_zero_volume_entries(self) -> None:
        merged = merge_top_pv([_entry(ALICE, -5, 100), _entry(BOB, 5, 0)], [])

        assert merged == []

    def test_keeps_fifteen_per_period(self) -> None:
        weekly = [_entry(f"0x{i:040x}", i + 1, 1000) for i in range(20)]

        merged = merge_top_pv(weekly, [])

        assert len(merged) == 15
        assert merged[0].proxy_wallet == f"0x{19:040x}"


class TestTopPVSync:
    @pytest.mark.asyncio
    async def test_replaces_snapshot(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            await TopPVTraderRepository(session).replace_all(
                [
                    TopPVTraderDTO(
                        proxy_wallet=CAROL, pnl=Decimal(1), vol=Decimal(2), pv=Decimal("0.5"), source="7d"
                    )
                ]
            )

        gateway = MagicMock()
        gateway.fetch_leaderboard = AsyncMock(
            side_effect=lambda *, time_period, order_by, limit: (
                [_entry(ALICE, 20, 100)] if time_period == "WEEK" else [_entry(BOB, 10, 100)]
            )
        )

        result = await TopPVSync(gateway, db).run()

        assert (result.weekly, result.monthly, result.saved) == (1, 1, 2)
        async with db.get_async_session() as session:
            wallets = await TopPVTraderRepository(session).list_wallets()
        assert sorted(wallets) == [ALICE, BOB]


class TestTopTraderTradesSync:
    @pytest.fixture
    async def tracked(self, db: DatabaseManager) -> DatabaseManager:
        async with db.get_async_session() as session:
            await TopPVTraderRepository(session).replace_all(
                merge_top_pv([_entry(ALICE, 20, 100), _entry(BOB, 10, 100)], [])
            )
        return db

    @pytest.mark.asyncio
    async def test_accumulates_buy_fills(self, tracked: DatabaseManager) -> None:
        feeds = {
            ALICE: [
                _trade("0xa1", ALICE, timestamp=1, size=100, price=0.4),
                _trade("0xa2", ALICE, timestamp=2, size=100, price=0.6),
                _trade("0xa3", ALICE, timestamp=3, side="SELL"),
            ],
            BOB: [],
        }
        gateway = MagicMock()
        gateway.fetch_trades = AsyncMock(side_effect=lambda *, user, limit: feeds[user])
        sync = TopTraderTradesSync(gateway, tracked, batch_delay_seconds=0)

        first = await sync.run()

        assert first.wallets == 2
        assert first.fetched == 3
        assert first.inserted == 1
        async with tracked.get_async_session() as session:
            (position,) = await TopTraderTradeRepository(session).list_recent()
        assert position.total_size == Decimal(200)
        assert position.total_value == Decimal(100)
        assert position.avg_price == Decimal("0.5")
        assert position.trade_count == 2

        second = await sync.run()
        assert second.skipped == 1
        assert second.inserted == second.updated == 0

        feeds[ALICE].append(_trade("0xa4", ALICE, timestamp=4, size=200, price=0.8))
        third = await sync.run()
        assert third.updated == 1
        async with tracked.get_async_session() as session:
            (position,) = await TopTraderTradeRepository(session).list_recent()
        assert position.total_size == Decimal(400)
        assert position.avg_price == Decimal("0.65")
        assert position.last_transaction_hash == "0xa4"

    @pytest.mark.asyncio
    async def test_failed_wallet_contributes_nothing(self, tracked: DatabaseManager) -> None:
        async def fetch(*, user: str, limit: int) -> list[DataTrade]:
            if user == BOB:
                raise GatewayTransientError("timeout")
            return [_trade("0xa1", ALICE, timestamp=1)]

        gateway = MagicMock()
        gateway.fetch_trades = AsyncMock(side_effect=fetch)

        result = await TopTraderTradesSync(gateway, tracked, batch_delay_seconds=0).run()

        assert result.fetched == 1
        assert result.inserted == 1

    @pytest.mark.asyncio
    async def test_failed_write_skips_only_that_position(
        self, tracked: DatabaseManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        store = TopTraderTradeRepository.accumulate

        async def accumulate(self, fills):
            if fills[0].proxy_wallet == BOB:
                raise RuntimeError("disk full")
            return await store(self, fills)

        monkeypatch.setattr(TopTraderTradeRepository, "accumulate", accumulate)
        feeds = {
            ALICE: [_trade("0xa1", ALICE, timestamp=1)],
            BOB: [_trade("0xb1", BOB, timestamp=1)],
        }
        gateway = MagicMock()
        gateway.fetch_trades = AsyncMock(side_effect=lambda *, user, limit: feeds[user])

        result = await TopTraderTradesSync(gateway, tracked, batch_delay_seconds=0).run()

        assert result.errors == 1
        assert result.inserted == 1
        async with tracked.get_async_session() as session:
            (position,) = await TopTraderTradeRepository(session).list_recent()
        assert position.proxy_wallet == ALICE

    @pytest.mark.asyncio
    async def test_no_tracked_wallets(self, db: DatabaseManager) -> None:
        gateway = MagicMock()
        gateway.fetch_trades = AsyncMock()

        result = await TopTraderTradesSync(gateway, db).run()

        assert result.wallets == 0
        gateway.fetch_trades.assert_not_awaited()
