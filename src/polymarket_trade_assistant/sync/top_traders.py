"""Top P/V leaderboard snapshot and the aggregated trade ledger of those wallets."""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from polymarket_trade_assistant.gateway import (
    DataTrade,
    GatewayError,
    LeaderboardEntry,
    PolymarketGateway,
)
from polymarket_trade_assistant.storage import (
    DatabaseManager,
    TopPVTraderDTO,
    TopPVTraderRepository,
    TopTraderFill,
    TopTraderTradeRepository,
)

logger = logging.getLogger(__name__)

LEADERBOARD_LIMIT = 50
TOP_PER_PERIOD = 15
TRADES_PER_WALLET = 50
WALLET_BATCH_SIZE = 5
BATCH_DELAY_SECONDS = 0.2


@dataclass
class TopPVSyncResult:
    weekly: int = 0
    monthly: int = 0
    saved: int = 0


@dataclass
class TopTraderTradesSyncResult:
    wallets: int = 0
    fetched: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0


def _profit_per_volume(entries: list[LeaderboardEntry]) -> list[tuple[LeaderboardEntry, Decimal]]:
    scored = [
        (e, Decimal(str(e.pnl)) / Decimal(str(e.vol)))
        for e in entries
        if e.vol > 0 and e.pnl > 0
    ]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:TOP_PER_PERIOD]


def merge_top_pv(
    weekly: list[LeaderboardEntry], monthly: list[LeaderboardEntry]
) -> list[TopPVTraderDTO]:
    """Merge the best weekly and monthly P/V wallets into one ranked list.

    A wallet in both lists is tagged ``both`` and keeps its higher P/V.
    """
    merged: dict[str, TopPVTraderDTO] = {}
    for source, entries in (("7d", weekly), ("30d", monthly)):
        for entry, pv in _profit_per_volume(entries):
            wallet = entry.proxy_wallet.lower()
            current = merged.get(wallet)
            if current is None:
                merged[wallet] = TopPVTraderDTO(
                    proxy_wallet=wallet,
                    pnl=Decimal(str(entry.pnl)),
                    vol=Decimal(str(entry.vol)),
                    pv=pv,
                    source=source,  # type: ignore[arg-type]
                    user_name=entry.user_name,
                    x_username=entry.x_username,
                    verified_badge=entry.verified_badge,
                    profile_image=entry.profile_image,
                )
                continue
            current.source = "both"
            if pv > current.pv:
                current.pv = pv
                current.pnl = Decimal(str(entry.pnl))
                current.vol = Decimal(str(entry.vol))

    ranked = sorted(merged.values(), key=lambda dto: dto.pv, reverse=True)
    for rank, dto in enumerate(ranked, start=1):
        dto.rank = rank
    return ranked


class TopPVSync:
    """Rewrites the top P/V trader snapshot from the PNL leaderboards."""

    def __init__(self, gateway: PolymarketGateway, db: DatabaseManager) -> None:
        self._gateway = gateway
        self._db = db

    async def run(self) -> TopPVSyncResult:
        weekly, monthly = await asyncio.gather(
            self._gateway.fetch_leaderboard(
                time_period="WEEK", order_by="PNL", limit=LEADERBOARD_LIMIT
            ),
            self._gateway.fetch_leaderboard(
                time_period="MONTH", order_by="PNL", limit=LEADERBOARD_LIMIT
            ),
        )
        traders = merge_top_pv(weekly, monthly)

        async with self._db.get_async_session() as session:
            saved = await TopPVTraderRepository(session).replace_all(traders)

        logger.info(
            "Top P/V sync: %d weekly, %d monthly entries -> %d traders saved",
            len(weekly),
            len(monthly),
            saved,
        )
        return TopPVSyncResult(weekly=len(weekly), monthly=len(monthly), saved=saved)


def to_fill(trade: DataTrade) -> TopTraderFill:
    return TopTraderFill(
        transaction_hash=trade.transaction_hash,
        proxy_wallet=trade.proxy_wallet.lower(),
        slug=trade.slug,
        event_slug=trade.event_slug,
        title=trade.title,
        condition_id=trade.condition_id,
        outcome=trade.outcome,
        outcome_index=trade.outcome_index,
        side=trade.side,
        size=Decimal(str(trade.size)),
        price=Decimal(str(trade.price)),
        timestamp=trade.timestamp,
        name=trade.name,
        pseudonym=trade.pseudonym,
        profile_image=trade.profile_image,
        icon=trade.icon,
    )


class TopTraderTradesSync:
    """Accumulates recent BUY fills of every top P/V wallet.

    Wallets are fetched in small concurrent batches. A wallet whose fetch
    fails contributes nothing this run.
    """

    def __init__(
        self,
        gateway: PolymarketGateway,
        db: DatabaseManager,
        *,
        batch_size: int = WALLET_BATCH_SIZE,
        batch_delay_seconds: float = BATCH_DELAY_SECONDS,
    ) -> None:
        self._gateway = gateway
        self._db = db
        self._batch_size = batch_size
        self._batch_delay = batch_delay_seconds

    async def _fetch_wallet(self, wallet: str) -> list[DataTrade]:
        try:
            return await self._gateway.fetch_trades(user=wallet, limit=TRADES_PER_WALLET)
        except GatewayError as e:
            logger.warning("Failed to fetch trades for %s: %s", wallet, e)
            return []

    async def fetch_all(self, wallets: list[str]) -> list[DataTrade]:
        trades: list[DataTrade] = []
        for start in range(0, len(wallets), self._batch_size):
            if start and self._batch_delay > 0:
                await asyncio.sleep(self._batch_delay)
            batch = wallets[start : start + self._batch_size]
            for wallet_trades in await asyncio.gather(*(self._fetch_wallet(w) for w in batch)):
                trades.extend(wallet_trades)
        return trades

    async def run(self) -> TopTraderTradesSyncResult:
        async with self._db.get_async_session() as session:
            wallets = await TopPVTraderRepository(session).list_wallets()

        result = TopTraderTradesSyncResult(wallets=len(wallets))
        if not wallets:
            logger.info("No top P/V traders yet, skipping trade sync")
            return result

        trades = await self.fetch_all(wallets)
        result.fetched = len(trades)

        positions: dict[tuple[str, str, str, str], list[TopTraderFill]] = defaultdict(list)
        for trade in trades:
            if trade.side != "BUY":
                continue
            fill = to_fill(trade)
            positions[(fill.proxy_wallet, fill.slug, fill.side, fill.outcome)].append(fill)

        for key, fills in positions.items():
            try:
                async with self._db.get_async_session() as session:
                    outcome = await TopTraderTradeRepository(session).accumulate(fills)
            except Exception as e:
                result.errors += 1
                logger.error("Failed to store top trader trade %s: %s", key, e)
                continue
            if outcome == "inserted":
                result.inserted += 1
            elif outcome == "updated":
                result.updated += 1
            else:
                result.skipped += 1

        logger.info(
            "Top trader trades sync: wallets=%d fetched=%d inserted=%d updated=%d "
            "skipped=%d errors=%d",
            result.wallets,
            result.fetched,
            result.inserted,
            result.updated,
            result.skipped,
            result.errors,
        )
        return result
