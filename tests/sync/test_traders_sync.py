"""Tests for trader backfill and take-bet cleanup."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from polymarket_trade_assistant.classifier import TraderClassification
from polymarket_trade_assistant.gateway import GatewayTransientError
from polymarket_trade_assistant.storage import DatabaseManager, TradeRepository
from polymarket_trade_assistant.sync import DuplicateTakeCleanup, TraderBackfill

GOOD = "0x1111111111111111111111111111111111111111"
BAD = "0x2222222222222222222222222222222222222222"
FLAKY = "0x3333333333333333333333333333333333333333"


def _classification(*, follow_worthy: bool) -> TraderClassification:
    return TraderClassification(
        type="normal",
        confidence=0,
        insider_score=0 if follow_worthy else 60,
        bot_score=0,
        whale_score=25,
        follow_score=80 if follow_worthy else 10,
        follow_worthy=follow_worthy,
    )


@pytest.fixture
def classifier() -> MagicMock:
    async def classify(wallet: str) -> TraderClassification:
        if wallet == FLAKY:
            raise GatewayTransientError("activity feed down")
        return _classification(follow_worthy=wallet == GOOD)

    mock = MagicMock()
    mock.classify = AsyncMock(side_effect=classify)
    return mock


@pytest.fixture
async def seeded(db: DatabaseManager, trade_factory) -> DatabaseManager:
    async with db.get_async_session() as session:
        await TradeRepository(session).upsert_ignore_duplicates(
            [
                trade_factory("0xgood-first", wallet=GOOD, timestamp=100),
                trade_factory("0xgood-repeat", wallet=GOOD, timestamp=200),
                trade_factory("0xgood-other", wallet=GOOD, outcome="No", timestamp=300),
                trade_factory("0xgood-sell", wallet=GOOD, side="SELL", condition_id="0xc2"),
                trade_factory("0xbad", wallet=BAD),
                trade_factory("0xflaky", wallet=FLAKY),
            ]
        )
    return db


async def _take_flags(db: DatabaseManager) -> dict[str, bool | None]:
    async with db.get_async_session() as session:
        repo = TradeRepository(session)
        hashes = ["0xgood-first", "0xgood-repeat", "0xgood-other", "0xgood-sell", "0xbad", "0xflaky"]
        return {tx: (await repo.get(tx)).take_bet for tx in hashes}


class TestTraderBackfill:
    @pytest.mark.asyncio
    async def test_marks_one_take_per_market_outcome(
        self, seeded: DatabaseManager, classifier: MagicMock
    ) -> None:
        result = await TraderBackfill(classifier, seeded, wallet_delay_seconds=0).run()

        assert result.wallets == 3
        assert result.processed == 2
        assert result.errors == 1
        assert result.good_traders == 1
        assert result.take_bets == 2
        assert await _take_flags(seeded) == {
            "0xgood-first": True,
            "0xgood-repeat": False,
            "0xgood-other": True,
            "0xgood-sell": False,
            "0xbad": False,
            "0xflaky": None,
        }

        async with seeded.get_async_session() as session:
            good = await TradeRepository(session).get("0xgood-first")
        assert good.good_trader is True
        assert good.follow_score == 80
        assert good.classification == "normal"

    @pytest.mark.asyncio
    async def test_failed_wallet_is_retried_next_run(
        self, seeded: DatabaseManager, classifier: MagicMock
    ) -> None:
        backfill = TraderBackfill(classifier, seeded, wallet_delay_seconds=0)
        await backfill.run()
        classifier.classify.reset_mock()

        second = await backfill.run()

        assert second.wallets == 1
        classifier.classify.assert_awaited_once_with(FLAKY)

    @pytest.mark.asyncio
    async def test_new_takes_are_copied(
        self, seeded: DatabaseManager, classifier: MagicMock
    ) -> None:
        copy_trader = MagicMock()
        copy_trader.auto_copy_trade = AsyncMock(
            side_effect=[MagicMock(status="placed"), MagicMock(status="failed")]
        )

        result = await TraderBackfill(
            classifier, seeded, copy_trader=copy_trader, wallet_delay_seconds=0
        ).run()

        assert result.copied == 1
        assert copy_trader.auto_copy_trade.await_count == 2
        copied = [c.args[0].transaction_hash for c in copy_trader.auto_copy_trade.await_args_list]
        assert copied == ["0xgood-first", "0xgood-other"]
        assert copy_trader.auto_copy_trade.await_args.kwargs == {"follow_score": 80}

    @pytest.mark.asyncio
    async def test_copy_errors_do_not_stop_backfill(
        self, seeded: DatabaseManager, classifier: MagicMock
    ) -> None:
        copy_trader = MagicMock()
        copy_trader.auto_copy_trade = AsyncMock(side_effect=RuntimeError("clob down"))

        result = await TraderBackfill(
            classifier, seeded, copy_trader=copy_trader, wallet_delay_seconds=0
        ).run()

        assert result.take_bets == 2
        assert result.copied == 0
        assert result.errors == 1


class TestDuplicateTakeCleanup:
    @pytest.mark.asyncio
    async def test_keeps_oldest_take(self, db: DatabaseManager, trade_factory) -> None:
        async with db.get_async_session() as session:
            repo = TradeRepository(session)
            await repo.upsert_ignore_duplicates(
                [
                    trade_factory("0xnewer", timestamp=300),
                    trade_factory("0xoldest", timestamp=100),
                    trade_factory("0xmiddle", timestamp=200),
                    trade_factory("0xsolo", condition_id="0xother"),
                ]
            )
            for tx in ("0xnewer", "0xoldest", "0xmiddle", "0xsolo"):
                await repo.set_take_bet(tx, True)

        result = await DuplicateTakeCleanup(db).run()

        assert result.checked == 4
        assert result.duplicates == 2
        assert result.cleaned == 2
        async with db.get_async_session() as session:
            remaining = await TradeRepository(session).list_take_bets()
        assert [t.transaction_hash for t in remaining] == ["0xoldest", "0xsolo"]
