"""Large-trade ingestion from the public trades feed."""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal

from polymarket_trade_assistant.gateway import DataTrade, PolymarketGateway
from polymarket_trade_assistant.storage import DatabaseManager, TradeDTO, TradeRepository

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 500
DEFAULT_PAGE_COUNT = 3
DEFAULT_MIN_AMOUNT_USD = Decimal(2500)


@dataclass
class TradesSyncResult:
    fetched: int = 0
    eligible: int = 0
    inserted: int = 0


def to_trade_dto(trade: DataTrade) -> TradeDTO:
    return TradeDTO(
        transaction_hash=trade.transaction_hash,
        proxy_wallet=trade.proxy_wallet,
        side=trade.side,
        asset=trade.asset,
        condition_id=trade.condition_id,
        size=Decimal(str(trade.size)),
        price=Decimal(str(trade.price)),
        timestamp=trade.timestamp,
        title=trade.title,
        slug=trade.slug,
        event_slug=trade.event_slug,
        outcome=trade.outcome,
        outcome_index=trade.outcome_index,
        icon=trade.icon,
        name=trade.name,
        pseudonym=trade.pseudonym,
        bio=trade.bio,
        profile_image=trade.profile_image,
        profile_image_optimized=trade.profile_image_optimized,
    )


class TradesSync:
    """Pulls the latest public trades and stores those above a notional floor.

    Re-running over the same feed window is a no-op: rows are keyed by
    transaction hash and existing rows are never overwritten.
    """

    def __init__(
        self,
        gateway: PolymarketGateway,
        db: DatabaseManager,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        page_count: int = DEFAULT_PAGE_COUNT,
        min_amount_usd: Decimal = DEFAULT_MIN_AMOUNT_USD,
    ) -> None:
        self._gateway = gateway
        self._db = db
        self._page_size = page_size
        self._page_count = page_count
        self._min_amount = min_amount_usd

    async def fetch_latest(self) -> list[DataTrade]:
        """Fetch the feed pages concurrently, deduplicated by transaction hash."""
        pages = await asyncio.gather(
            *(
                self._gateway.fetch_trades(limit=self._page_size, offset=page * self._page_size)
                for page in range(self._page_count)
            )
        )
        unique: dict[str, DataTrade] = {}
        for page in pages:
            for trade in page:
                unique.setdefault(trade.transaction_hash, trade)
        return list(unique.values())

    async def run(self) -> TradesSyncResult:
        trades = await self.fetch_latest()
        large = [t for t in trades if to_trade_dto(t).amount >= self._min_amount]
        result = TradesSyncResult(fetched=len(trades), eligible=len(large))

        if large:
            async with self._db.get_async_session() as session:
                repo = TradeRepository(session)
                result.inserted = await repo.upsert_ignore_duplicates(
                    [to_trade_dto(t) for t in large]
                )

        logger.info(
            "Trades sync: fetched=%d eligible=%d (>= $%s) inserted=%d",
            result.fetched,
            result.eligible,
            self._min_amount,
            result.inserted,
        )
        return result
