"""Resolution sync: marks stored rows won or lost once their market resolves.

The same job serves ingested trades and aggregated top-trader positions;
only the repository differs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

from polymarket_trade_assistant.gateway import GatewayError, PolymarketGateway
from polymarket_trade_assistant.storage import (
    DEFAULT_RESOLUTION_BATCH_LIMIT,
    DatabaseManager,
    ResolvableRow,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from polymarket_trade_assistant.storage.repos import ResolvedStatus

logger = logging.getLogger(__name__)

DEFAULT_CONDITION_DELAY_SECONDS = 0.2


class ResolvableRepository(Protocol):
    async def list_unresolved(
        self, *, now: datetime, limit: int = DEFAULT_RESOLUTION_BATCH_LIMIT
    ) -> list[ResolvableRow]: ...

    async def mark_checked(
        self, keys: Sequence[str | int], *, now: datetime, end_date: datetime | None = None
    ) -> None: ...

    async def mark_resolved(
        self,
        key: str | int,
        *,
        status: ResolvedStatus,
        profit_per_dollar: Decimal | None,
        now: datetime,
        end_date: datetime | None = None,
    ) -> None: ...


RepositoryFactory = Callable[["AsyncSession"], ResolvableRepository]


@dataclass
class ResolutionSyncResult:
    checked: int = 0
    resolved: int = 0
    won: int = 0
    lost: int = 0
    pending: int = 0
    errors: int = 0


def compute_profit_per_dollar(side: str, price: Decimal, won: bool) -> Decimal | None:
    """Profit per dollar staked; only defined for BUY trades.

    A winning BUY at price p pays 1 per share, so it earns (1 - p) / p per
    dollar. A losing BUY loses the whole stake.
    """
    if side != "BUY" or price <= 0:
        return None
    if won:
        return (Decimal(1) - price) / price
    return Decimal(-1)


class ResolutionSync:
    """Checks unresolved rows against the CLOB market status.

    Rows are grouped by condition so each market is fetched once per run.
    A failure on one market or one row is counted and logged without
    stopping the run.

    Example:
        ```python
        sync = ResolutionSync(gateway, db, TradeRepository, name="trades")
        result = await sync.run()
        print(result.won, result.lost, result.pending)
        ```
    """

    def __init__(
        self,
        gateway: PolymarketGateway,
        db: DatabaseManager,
        repository_factory: RepositoryFactory,
        *,
        name: str = "trades",
        condition_delay_seconds: float = DEFAULT_CONDITION_DELAY_SECONDS,
        batch_limit: int = DEFAULT_RESOLUTION_BATCH_LIMIT,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._gateway = gateway
        self._db = db
        self._repository_factory = repository_factory
        self.name = name
        self._delay = condition_delay_seconds
        self._batch_limit = batch_limit
        self._clock = clock or (lambda: datetime.now(UTC))

    async def _load_rows(self, now: datetime) -> list[ResolvableRow]:
        async with self._db.get_async_session() as session:
            repo = self._repository_factory(session)
            return await repo.list_unresolved(now=now, limit=self._batch_limit)

    async def run(self) -> ResolutionSyncResult:
        now = self._clock()
        result = ResolutionSyncResult()
        rows = await self._load_rows(now)
        if not rows:
            logger.info("Resolution sync (%s): nothing to check", self.name)
            return result

        by_condition: dict[str, list[ResolvableRow]] = {}
        for row in rows:
            by_condition.setdefault(row.condition_id, []).append(row)
        logger.info(
            "Resolution sync (%s): %d rows across %d markets",
            self.name,
            len(rows),
            len(by_condition),
        )

        for index, (condition_id, group) in enumerate(by_condition.items()):
            if index and self._delay > 0:
                await asyncio.sleep(self._delay)
            await self._resolve_condition(condition_id, group, now, result)

        logger.info(
            "Resolution sync (%s): checked=%d resolved=%d (%dW/%dL) pending=%d errors=%d",
            self.name,
            result.checked,
            result.resolved,
            result.won,
            result.lost,
            result.pending,
            result.errors,
        )
        return result

    async def _resolve_condition(
        self,
        condition_id: str,
        rows: list[ResolvableRow],
        now: datetime,
        result: ResolutionSyncResult,
    ) -> None:
        try:
            status = await self._gateway.fetch_market_status(condition_id)
        except GatewayError as e:
            result.errors += 1
            logger.warning("Failed to fetch market %s: %s", condition_id, e)
            return

        if status is None:
            result.errors += 1
            logger.info("Market not found: %s", condition_id)
            return

        result.checked += len(rows)

        if not status.resolved:
            try:
                async with self._db.get_async_session() as session:
                    await self._repository_factory(session).mark_checked(
                        [r.key for r in rows], now=now, end_date=status.end_date
                    )
            except Exception as e:
                result.errors += 1
                logger.error("Failed to mark %s as checked: %s", condition_id, e)
                return
            result.pending += len(rows)
            logger.debug("Pending: %s (%d rows)", condition_id, len(rows))
            return

        for row in rows:
            won = row.outcome == status.winning_outcome
            resolved_status: ResolvedStatus = "won" if won else "lost"
            try:
                async with self._db.get_async_session() as session:
                    await self._repository_factory(session).mark_resolved(
                        row.key,
                        status=resolved_status,
                        profit_per_dollar=compute_profit_per_dollar(row.side, row.price, won),
                        now=now,
                        end_date=status.end_date,
                    )
            except Exception as e:
                result.errors += 1
                logger.error("Failed to update %s: %s", row.key, e)
                continue

            result.resolved += 1
            if won:
                result.won += 1
            else:
                result.lost += 1
            logger.debug(
                "%s: %s (%s vs %s)",
                resolved_status.upper(),
                row.key,
                row.outcome,
                status.winning_outcome,
            )
