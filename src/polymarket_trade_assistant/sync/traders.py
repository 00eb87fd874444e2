"""Trader classification backfill and take-bet maintenance."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING

from polymarket_trade_assistant.classifier import TraderClassification, TraderClassifier
from polymarket_trade_assistant.storage import (
    DatabaseManager,
    TradeDTO,
    TradeRepository,
    TraderScores,
)

if TYPE_CHECKING:
    from polymarket_trade_assistant.betting import CopyTrader

logger = logging.getLogger(__name__)

DEFAULT_WALLET_DELAY_SECONDS = 0.5


@dataclass
class TraderBackfillResult:
    wallets: int = 0
    processed: int = 0
    good_traders: int = 0
    take_bets: int = 0
    copied: int = 0
    errors: int = 0


@dataclass
class CleanupResult:
    checked: int = 0
    duplicates: int = 0
    cleaned: int = 0


def scores_from(classification: TraderClassification) -> TraderScores:
    return TraderScores(
        good_trader=classification.follow_worthy,
        follow_score=classification.follow_score,
        insider_score=classification.insider_score,
        bot_score=classification.bot_score,
        whale_score=classification.whale_score,
        classification=classification.type,
    )


class TraderBackfill:
    """Classifies every wallet with unclassified trades and marks take bets.

    A trade becomes a take bet when its wallet is follow-worthy, it is a BUY,
    and the wallet has no take bet yet on the same market outcome. The
    existing-take lookup runs right before each write.
    """

    def __init__(
        self,
        classifier: TraderClassifier,
        db: DatabaseManager,
        *,
        copy_trader: CopyTrader | None = None,
        wallet_delay_seconds: float = DEFAULT_WALLET_DELAY_SECONDS,
    ) -> None:
        self._classifier = classifier
        self._db = db
        self._copy_trader = copy_trader
        self._delay = wallet_delay_seconds

    async def run(self) -> TraderBackfillResult:
        async with self._db.get_async_session() as session:
            wallets = await TradeRepository(session).list_unclassified_wallets()

        result = TraderBackfillResult(wallets=len(wallets))
        if not wallets:
            logger.info("Trader backfill: all wallets classified")
            return result
        logger.info("Trader backfill: %d wallets need classification", len(wallets))

        for index, wallet in enumerate(wallets):
            if index and self._delay > 0:
                await asyncio.sleep(self._delay)
            await self._process_wallet(wallet, result)

        logger.info(
            "Trader backfill: processed=%d good=%d take_bets=%d copied=%d errors=%d",
            result.processed,
            result.good_traders,
            result.take_bets,
            result.copied,
            result.errors,
        )
        return result

    async def _process_wallet(self, wallet: str, result: TraderBackfillResult) -> None:
        try:
            classification = await self._classifier.classify(wallet)
        except Exception as e:
            result.errors += 1
            logger.warning("Failed to classify %s: %s", wallet, e)
            return

        try:
            new_takes = await self._persist(wallet, classification)
        except Exception as e:
            result.errors += 1
            logger.error("Failed to store classification for %s: %s", wallet, e)
            return

        result.processed += 1
        result.take_bets += len(new_takes)
        if classification.follow_worthy:
            result.good_traders += 1
        logger.debug(
            "%s -> %s (follow=%d type=%s)",
            wallet,
            "GOOD" if classification.follow_worthy else "skip",
            classification.follow_score,
            classification.type,
        )

        if self._copy_trader is None:
            return
        for trade in new_takes:
            try:
                entry = await self._copy_trader.auto_copy_trade(
                    trade, follow_score=classification.follow_score
                )
            except Exception as e:
                logger.error("Copy trade for %s failed: %s", trade.transaction_hash, e)
                continue
            if entry.status == "placed":
                result.copied += 1

    async def _persist(self, wallet: str, classification: TraderClassification) -> list[TradeDTO]:
        new_takes: list[TradeDTO] = []
        async with self._db.get_async_session() as session:
            repo = TradeRepository(session)
            await repo.apply_classification(wallet, scores_from(classification))
            for trade in await repo.list_pending_take_bets(wallet):
                take = (
                    classification.follow_worthy
                    and trade.side == "BUY"
                    and not await repo.has_take_bet(wallet, trade.condition_id, trade.outcome)
                )
                await repo.set_take_bet(trade.transaction_hash, take)
                if take:
                    new_takes.append(trade)
        return new_takes


class DuplicateTakeCleanup:
    """Keeps only the oldest take bet per (wallet, condition, outcome)."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def run(self) -> CleanupResult:
        async with self._db.get_async_session() as session:
            bets = await TradeRepository(session).list_take_bets()

        groups: dict[tuple[str, str, str], list[TradeDTO]] = defaultdict(list)
        for bet in bets:
            groups[(bet.proxy_wallet, bet.condition_id, bet.outcome)].append(bet)

        result = CleanupResult(checked=len(bets))
        for key, group in groups.items():
            if len(group) < 2:
                continue
            group.sort(key=lambda b: (b.timestamp, b.transaction_hash))
            keep, *remove = group
            result.duplicates += len(remove)
            logger.info(
                "Keeping %s for %s, clearing %d duplicates",
                keep.transaction_hash,
                ":".join(key),
                len(remove),
            )
            for bet in remove:
                try:
                    async with self._db.get_async_session() as session:
                        await TradeRepository(session).set_take_bet(bet.transaction_hash, False)
                except Exception as e:
                    logger.error("Failed to clear take bet %s: %s", bet.transaction_hash, e)
                    continue
                result.cleaned += 1

        logger.info(
            "Duplicate take cleanup: checked=%d duplicates=%d cleaned=%d",
            result.checked,
            result.duplicates,
            result.cleaned,
        )
        return result
