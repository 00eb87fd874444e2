"""Repository pattern implementations for data access.

This module provides data access abstractions for ingested trades, the
claim log, the bet log, and the top P/V trader tables.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Literal

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from polymarket_trade_assistant.storage.models import (
    BetLogModel,
    ClaimLogModel,
    TopPVTraderModel,
    TopTraderTradeModel,
    TradeModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Unresolved rows whose market ends within (or was last checked before) this
# window are picked up by the resolution sync.
RESOLUTION_WINDOW = timedelta(days=7)
DEFAULT_RESOLUTION_BATCH_LIMIT = 500

ResolvedStatus = Literal["won", "lost"]
AccumulateOutcome = Literal["inserted", "updated", "skipped"]


def _insert(session: AsyncSession, model: type[Any]) -> Any:
    """Dialect-specific INSERT supporting ON CONFLICT."""
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


def _unresolved_filter(model: Any, now: datetime) -> Any:
    soon = now + RESOLUTION_WINDOW
    stale = now - RESOLUTION_WINDOW
    return (model.resolved_status.is_(None)) & or_(
        model.end_date.is_(None),
        model.end_date <= soon,
        model.last_resolution_check.is_(None),
        model.last_resolution_check <= stale,
    )


@dataclass
class TradeDTO:
    """Data transfer object for ingested trades."""

    transaction_hash: str
    proxy_wallet: str
    side: str
    asset: str
    condition_id: str
    size: Decimal
    price: Decimal
    timestamp: int
    title: str
    slug: str
    event_slug: str
    outcome: str
    outcome_index: int
    icon: str | None = None
    name: str | None = None
    pseudonym: str | None = None
    bio: str | None = None
    profile_image: str | None = None
    profile_image_optimized: str | None = None
    good_trader: bool | None = None
    follow_score: int | None = None
    insider_score: int | None = None
    bot_score: int | None = None
    whale_score: int | None = None
    classification: str | None = None
    take_bet: bool | None = None
    resolved_status: str | None = None
    end_date: datetime | None = None
    last_resolution_check: datetime | None = None
    profit_per_dollar: Decimal | None = None
    created_at: datetime | None = None

    @property
    def amount(self) -> Decimal:
        return self.size * self.price

    @classmethod
    def from_model(cls, model: TradeModel) -> TradeDTO:
        return cls(
            transaction_hash=model.transaction_hash,
            proxy_wallet=model.proxy_wallet,
            side=model.side,
            asset=model.asset,
            condition_id=model.condition_id,
            size=model.size,
            price=model.price,
            timestamp=model.timestamp,
            title=model.title,
            slug=model.slug,
            event_slug=model.event_slug,
            outcome=model.outcome,
            outcome_index=model.outcome_index,
            icon=model.icon,
            name=model.name,
            pseudonym=model.pseudonym,
            bio=model.bio,
            profile_image=model.profile_image,
            profile_image_optimized=model.profile_image_optimized,
            good_trader=model.good_trader,
            follow_score=model.follow_score,
            insider_score=model.insider_score,
            bot_score=model.bot_score,
            whale_score=model.whale_score,
            classification=model.classification,
            take_bet=model.take_bet,
            resolved_status=model.resolved_status,
            end_date=model.end_date,
            last_resolution_check=model.last_resolution_check,
            profit_per_dollar=model.profit_per_dollar,
            created_at=model.created_at,
        )


@dataclass(frozen=True)
class ResolvableRow:
    """Minimal projection of an unresolved row for the resolution sync."""

    key: str | int
    condition_id: str
    outcome: str
    side: str
    price: Decimal
    end_date: datetime | None = None


@dataclass(frozen=True)
class TraderScores:
    """Classifier output persisted onto every trade of a wallet."""

    good_trader: bool
    follow_score: int
    insider_score: int
    bot_score: int
    whale_score: int
    classification: str


@dataclass(frozen=True)
class ResolvedStats:
    """Outcome statistics over resolved BUY trades."""

    all_count: int
    all_won: int
    all_lost: int
    all_profit: Decimal
    take_count: int
    take_won: int
    take_lost: int
    take_profit: Decimal


class TradeRepository:
    """Repository for ingested trades."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, transaction_hash: str) -> TradeDTO | None:
        result = await self.session.execute(
            select(TradeModel).where(TradeModel.transaction_hash == transaction_hash)
        )
        model = result.scalar_one_or_none()
        return TradeDTO.from_model(model) if model else None

    async def count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(TradeModel))
        return int(result.scalar_one())

    async def upsert_ignore_duplicates(self, dtos: Sequence[TradeDTO]) -> int:
        """Insert trades, leaving rows with an existing transaction hash untouched.

        Returns:
            Number of rows actually inserted.
        """
        if not dtos:
            return 0

        # Dedupe within the batch, first occurrence wins.
        unique: dict[str, TradeDTO] = {}
        for dto in dtos:
            unique.setdefault(dto.transaction_hash, dto)

        existing_result = await self.session.execute(
            select(TradeModel.transaction_hash).where(
                TradeModel.transaction_hash.in_(list(unique))
            )
        )
        existing = set(existing_result.scalars().all())

        now = datetime.now(UTC)
        rows = [
            {
                "transaction_hash": dto.transaction_hash,
                "proxy_wallet": dto.proxy_wallet.lower(),
                "side": dto.side,
                "asset": dto.asset,
                "condition_id": dto.condition_id,
                "size": dto.size,
                "price": dto.price,
                "amount": dto.amount,
                "timestamp": dto.timestamp,
                "title": dto.title,
                "slug": dto.slug,
                "icon": dto.icon,
                "event_slug": dto.event_slug,
                "outcome": dto.outcome,
                "outcome_index": dto.outcome_index,
                "name": dto.name,
                "pseudonym": dto.pseudonym,
                "bio": dto.bio,
                "profile_image": dto.profile_image,
                "profile_image_optimized": dto.profile_image_optimized,
                "created_at": now,
            }
            for tx_hash, dto in unique.items()
            if tx_hash not in existing
        ]
        if not rows:
            return 0

        stmt = _insert(self.session, TradeModel).values(rows)
        stmt = stmt.on_conflict_do_nothing(index_elements=["transaction_hash"])
        await self.session.execute(stmt)
        await self.session.flush()
        return len(rows)

    async def list_unresolved(
        self, *, now: datetime, limit: int = DEFAULT_RESOLUTION_BATCH_LIMIT
    ) -> list[ResolvableRow]:
        result = await self.session.execute(
            select(TradeModel).where(_unresolved_filter(TradeModel, now)).limit(limit)
        )
        return [
            ResolvableRow(
                key=m.transaction_hash,
                condition_id=m.condition_id,
                outcome=m.outcome,
                side=m.side,
                price=m.price,
                end_date=m.end_date,
            )
            for m in result.scalars().all()
        ]

    async def mark_checked(
        self, keys: Sequence[str | int], *, now: datetime, end_date: datetime | None = None
    ) -> None:
        values: dict[str, Any] = {"last_resolution_check": now}
        if end_date is not None:
            values["end_date"] = end_date
        await self.session.execute(
            update(TradeModel).where(TradeModel.transaction_hash.in_(list(keys))).values(**values)
        )
        await self.session.flush()

    async def mark_resolved(
        self,
        key: str | int,
        *,
        status: ResolvedStatus,
        profit_per_dollar: Decimal | None,
        now: datetime,
        end_date: datetime | None = None,
    ) -> None:
        values: dict[str, Any] = {
            "resolved_status": status,
            "profit_per_dollar": profit_per_dollar,
            "last_resolution_check": now,
        }
        if end_date is not None:
            values["end_date"] = end_date
        await self.session.execute(
            update(TradeModel).where(TradeModel.transaction_hash == key).values(**values)
        )
        await self.session.flush()

    async def list_unclassified_wallets(self) -> list[str]:
        result = await self.session.execute(
            select(TradeModel.proxy_wallet)
            .where(TradeModel.good_trader.is_(None))
            .distinct()
            .order_by(TradeModel.proxy_wallet)
        )
        return list(result.scalars().all())

    async def apply_classification(self, wallet: str, scores: TraderScores) -> int:
        """Write classifier scores onto every trade of a wallet."""
        result = await self.session.execute(
            update(TradeModel)
            .where(TradeModel.proxy_wallet == wallet.lower())
            .values(
                good_trader=scores.good_trader,
                follow_score=scores.follow_score,
                insider_score=scores.insider_score,
                bot_score=scores.bot_score,
                whale_score=scores.whale_score,
                classification=scores.classification,
            )
        )
        await self.session.flush()
        return int(result.rowcount or 0)

    async def list_pending_take_bets(self, wallet: str) -> list[TradeDTO]:
        """Trades of a wallet whose take-bet flag has not been evaluated yet."""
        result = await self.session.execute(
            select(TradeModel)
            .where(
                (TradeModel.proxy_wallet == wallet.lower()) & (TradeModel.take_bet.is_(None))
            )
            .order_by(TradeModel.timestamp.asc(), TradeModel.transaction_hash.asc())
        )
        return [TradeDTO.from_model(m) for m in result.scalars().all()]

    async def has_take_bet(self, wallet: str, condition_id: str, outcome: str) -> bool:
        result = await self.session.execute(
            select(TradeModel.transaction_hash)
            .where(
                (TradeModel.proxy_wallet == wallet.lower())
                & (TradeModel.condition_id == condition_id)
                & (TradeModel.outcome == outcome)
                & (TradeModel.take_bet.is_(True))
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def set_take_bet(self, transaction_hash: str, value: bool) -> None:
        await self.session.execute(
            update(TradeModel)
            .where(TradeModel.transaction_hash == transaction_hash)
            .values(take_bet=value)
        )
        await self.session.flush()

    async def list_take_bets(self) -> list[TradeDTO]:
        result = await self.session.execute(
            select(TradeModel)
            .where(TradeModel.take_bet.is_(True))
            .order_by(TradeModel.timestamp.asc(), TradeModel.transaction_hash.asc())
        )
        return [TradeDTO.from_model(m) for m in result.scalars().all()]

    async def resolved_stats(self) -> ResolvedStats:
        resolved = TradeModel.resolved_status.is_not(None)
        take = TradeModel.take_bet.is_(True)
        won = TradeModel.resolved_status == "won"
        lost = TradeModel.resolved_status == "lost"
        profit = TradeModel.amount * TradeModel.profit_per_dollar

        def _count(cond: Any) -> Any:
            return func.coalesce(func.sum(case((cond, 1), else_=0)), 0)

        def _profit(cond: Any) -> Any:
            return func.coalesce(func.sum(case((cond, profit), else_=None)), 0)

        result = await self.session.execute(
            select(
                _count(resolved),
                _count(won),
                _count(lost),
                _profit(resolved),
                _count(resolved & take),
                _count(won & take),
                _count(lost & take),
                _profit(resolved & take),
            ).where(TradeModel.side == "BUY")
        )
        row = result.one()
        return ResolvedStats(
            all_count=int(row[0]),
            all_won=int(row[1]),
            all_lost=int(row[2]),
            all_profit=Decimal(str(row[3])),
            take_count=int(row[4]),
            take_won=int(row[5]),
            take_lost=int(row[6]),
            take_profit=Decimal(str(row[7])),
        )


@dataclass
class ClaimLogDTO:
    """Data transfer object for claim log entries."""

    condition_id: str
    market_slug: str
    outcome: str
    value: Decimal
    status: Literal["claimed", "failed", "skipped"]
    tx_hash: str | None = None
    error_message: str | None = None
    claimed_at: datetime | None = None
    id: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: ClaimLogModel) -> ClaimLogDTO:
        return cls(
            id=model.id,
            condition_id=model.condition_id,
            market_slug=model.market_slug,
            outcome=model.outcome,
            value=model.value,
            status=model.status,  # type: ignore[arg-type]
            tx_hash=model.tx_hash,
            error_message=model.error_message,
            claimed_at=model.claimed_at,
            created_at=model.created_at,
        )


class ClaimLogRepository:
    """Repository for the append-only claim log."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, dto: ClaimLogDTO) -> ClaimLogDTO:
        now = datetime.now(UTC)
        model = ClaimLogModel(
            condition_id=dto.condition_id,
            market_slug=dto.market_slug,
            outcome=dto.outcome,
            value=dto.value,
            status=dto.status,
            tx_hash=dto.tx_hash,
            error_message=dto.error_message,
            claimed_at=dto.claimed_at or (now if dto.status == "claimed" else None),
            created_at=now,
        )
        self.session.add(model)
        await self.session.flush()
        return ClaimLogDTO.from_model(model)

    async def was_already_claimed(self, condition_id: str) -> bool:
        result = await self.session.execute(
            select(ClaimLogModel.id)
            .where(
                (ClaimLogModel.condition_id == condition_id) & (ClaimLogModel.status == "claimed")
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def claimed_condition_ids(self, condition_ids: Iterable[str]) -> set[str]:
        ids = sorted(set(condition_ids))
        if not ids:
            return set()
        result = await self.session.execute(
            select(ClaimLogModel.condition_id).where(
                (ClaimLogModel.condition_id.in_(ids)) & (ClaimLogModel.status == "claimed")
            )
        )
        return set(result.scalars().all())

    async def list_recent(self, *, limit: int = 50) -> list[ClaimLogDTO]:
        result = await self.session.execute(
            select(ClaimLogModel)
            .order_by(ClaimLogModel.created_at.desc(), ClaimLogModel.id.desc())
            .limit(limit)
        )
        return [ClaimLogDTO.from_model(m) for m in result.scalars().all()]


@dataclass
class BetLogDTO:
    """Data transfer object for placed bets."""

    market_slug: str
    outcome: str
    side: str
    amount: Decimal
    price: Decimal
    status: str = "pending"
    source: str = "manual"
    order_id: str | None = None
    condition_id: str | None = None
    token_id: str | None = None
    size: Decimal | None = None
    order_type: str | None = None
    error_message: str | None = None
    trigger_transaction_hash: str | None = None
    trigger_wallet: str | None = None
    trigger_follow_score: int | None = None
    placed_at: datetime | None = None
    id: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: BetLogModel) -> BetLogDTO:
        return cls(
            id=model.id,
            order_id=model.order_id,
            market_slug=model.market_slug,
            condition_id=model.condition_id,
            token_id=model.token_id,
            outcome=model.outcome,
            side=model.side,
            amount=model.amount,
            price=model.price,
            size=model.size,
            order_type=model.order_type,
            status=model.status,
            error_message=model.error_message,
            source=model.source,
            trigger_transaction_hash=model.trigger_transaction_hash,
            trigger_wallet=model.trigger_wallet,
            trigger_follow_score=model.trigger_follow_score,
            placed_at=model.placed_at,
            created_at=model.created_at,
        )


class BetLogRepository:
    """Repository for the bet log."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, dto: BetLogDTO) -> BetLogDTO:
        model = BetLogModel(
            order_id=dto.order_id,
            market_slug=dto.market_slug,
            condition_id=dto.condition_id,
            token_id=dto.token_id,
            outcome=dto.outcome,
            side=dto.side,
            amount=dto.amount,
            price=dto.price,
            size=dto.size,
            order_type=dto.order_type,
            status=dto.status,
            error_message=dto.error_message,
            source=dto.source,
            trigger_transaction_hash=dto.trigger_transaction_hash,
            trigger_wallet=dto.trigger_wallet,
            trigger_follow_score=dto.trigger_follow_score,
            placed_at=dto.placed_at,
            created_at=datetime.now(UTC),
        )
        self.session.add(model)
        await self.session.flush()
        return BetLogDTO.from_model(model)

    async def list_recent(self, *, limit: int = 50) -> list[BetLogDTO]:
        result = await self.session.execute(
            select(BetLogModel)
            .order_by(BetLogModel.created_at.desc(), BetLogModel.id.desc())
            .limit(limit)
        )
        return [BetLogDTO.from_model(m) for m in result.scalars().all()]


@dataclass
class TopPVTraderDTO:
    """Data transfer object for the top P/V leaderboard snapshot."""

    proxy_wallet: str
    pnl: Decimal
    vol: Decimal
    pv: Decimal
    source: Literal["7d", "30d", "both"]
    rank: int = 0
    user_name: str | None = None
    x_username: str | None = None
    verified_badge: bool = False
    profile_image: str | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, model: TopPVTraderModel) -> TopPVTraderDTO:
        return cls(
            proxy_wallet=model.proxy_wallet,
            pnl=model.pnl,
            vol=model.vol,
            pv=model.pv,
            source=model.source,  # type: ignore[arg-type]
            rank=model.rank,
            user_name=model.user_name,
            x_username=model.x_username,
            verified_badge=model.verified_badge,
            profile_image=model.profile_image,
            updated_at=model.updated_at,
        )


class TopPVTraderRepository:
    """Repository for the top P/V trader snapshot (wiped and rewritten each sync)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def replace_all(self, dtos: Sequence[TopPVTraderDTO]) -> int:
        await self.session.execute(delete(TopPVTraderModel))
        now = datetime.now(UTC)
        for dto in dtos:
            self.session.add(
                TopPVTraderModel(
                    proxy_wallet=dto.proxy_wallet.lower(),
                    user_name=dto.user_name,
                    x_username=dto.x_username,
                    verified_badge=dto.verified_badge,
                    profile_image=dto.profile_image,
                    pnl=dto.pnl,
                    vol=dto.vol,
                    pv=dto.pv,
                    source=dto.source,
                    rank=dto.rank,
                    updated_at=now,
                )
            )
        await self.session.flush()
        return len(dtos)

    async def list_all(self) -> list[TopPVTraderDTO]:
        result = await self.session.execute(
            select(TopPVTraderModel).order_by(TopPVTraderModel.rank.asc())
        )
        return [TopPVTraderDTO.from_model(m) for m in result.scalars().all()]

    async def list_wallets(self) -> list[str]:
        result = await self.session.execute(
            select(TopPVTraderModel.proxy_wallet).order_by(TopPVTraderModel.rank.asc())
        )
        return list(result.scalars().all())

    async def is_empty(self) -> bool:
        result = await self.session.execute(select(TopPVTraderModel.id).limit(1))
        return result.scalar_one_or_none() is None


@dataclass(frozen=True)
class TopTraderFill:
    """A single BUY fill of a top trader, before aggregation."""

    transaction_hash: str
    proxy_wallet: str
    slug: str
    event_slug: str
    title: str
    condition_id: str
    outcome: str
    outcome_index: int
    side: str
    size: Decimal
    price: Decimal
    timestamp: int
    name: str | None = None
    pseudonym: str | None = None
    profile_image: str | None = None
    icon: str | None = None


@dataclass
class TopTraderTradeDTO:
    """Data transfer object for aggregated top trader positions."""

    id: int
    proxy_wallet: str
    slug: str
    title: str
    condition_id: str
    outcome: str
    side: str
    total_size: Decimal
    total_value: Decimal
    avg_price: Decimal
    trade_count: int
    first_timestamp: int
    latest_timestamp: int
    last_transaction_hash: str
    name: str | None = None
    resolved_status: str | None = None
    profit_per_dollar: Decimal | None = None

    @classmethod
    def from_model(cls, model: TopTraderTradeModel) -> TopTraderTradeDTO:
        return cls(
            id=model.id,
            proxy_wallet=model.proxy_wallet,
            slug=model.slug,
            title=model.title,
            condition_id=model.condition_id,
            outcome=model.outcome,
            side=model.side,
            total_size=model.total_size,
            total_value=model.total_value,
            avg_price=model.avg_price,
            trade_count=model.trade_count,
            first_timestamp=model.first_timestamp,
            latest_timestamp=model.latest_timestamp,
            last_transaction_hash=model.last_transaction_hash,
            name=model.name,
            resolved_status=model.resolved_status,
            profit_per_dollar=model.profit_per_dollar,
        )


@dataclass(frozen=True)
class TopTraderStats:
    """Outcome statistics over resolved top trader positions."""

    total_count: int
    won_count: int
    lost_count: int
    profit_per_dollar: Decimal


class TopTraderTradeRepository:
    """Repository for aggregated top trader positions.

    Keyed by (proxy_wallet, slug, side, outcome). Accumulation only adds
    fills newer than the stored ``latest_timestamp`` so re-reading the same
    upstream page is a no-op.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(
        self, *, proxy_wallet: str, slug: str, side: str, outcome: str
    ) -> TopTraderTradeDTO | None:
        model = await self._get_model(
            proxy_wallet=proxy_wallet, slug=slug, side=side, outcome=outcome
        )
        return TopTraderTradeDTO.from_model(model) if model else None

    async def _get_model(
        self, *, proxy_wallet: str, slug: str, side: str, outcome: str
    ) -> TopTraderTradeModel | None:
        result = await self.session.execute(
            select(TopTraderTradeModel).where(
                (TopTraderTradeModel.proxy_wallet == proxy_wallet.lower())
                & (TopTraderTradeModel.slug == slug)
                & (TopTraderTradeModel.side == side)
                & (TopTraderTradeModel.outcome == outcome)
            )
        )
        return result.scalar_one_or_none()

    async def accumulate(self, fills: Sequence[TopTraderFill]) -> AccumulateOutcome:
        """Fold fills sharing one position key into the stored aggregate.

        Args:
            fills: Fills for a single (wallet, slug, side, outcome) key.

        Returns:
            ``inserted`` for a new position, ``updated`` when newer fills were
            added, ``skipped`` when every fill was already accounted for.
        """
        if not fills:
            return "skipped"
        first = fills[0]
        existing = await self._get_model(
            proxy_wallet=first.proxy_wallet,
            slug=first.slug,
            side=first.side,
            outcome=first.outcome,
        )
        newer = [
            f for f in fills if existing is None or f.timestamp > existing.latest_timestamp
        ]
        if not newer:
            return "skipped"

        newest = max(newer, key=lambda f: f.timestamp)
        add_size = sum((f.size for f in newer), Decimal(0))
        add_value = sum((f.size * f.price for f in newer), Decimal(0))
        now = datetime.now(UTC)

        if existing is None:
            self.session.add(
                TopTraderTradeModel(
                    last_transaction_hash=newest.transaction_hash,
                    proxy_wallet=first.proxy_wallet.lower(),
                    name=first.name,
                    pseudonym=first.pseudonym,
                    profile_image=first.profile_image,
                    slug=first.slug,
                    event_slug=first.event_slug,
                    title=first.title,
                    icon=first.icon,
                    condition_id=first.condition_id,
                    outcome=first.outcome,
                    outcome_index=first.outcome_index,
                    side=first.side,
                    total_size=add_size,
                    total_value=add_value,
                    avg_price=add_value / add_size if add_size else Decimal(0),
                    trade_count=len(newer),
                    first_timestamp=min(f.timestamp for f in newer),
                    latest_timestamp=newest.timestamp,
                    created_at=now,
                    updated_at=now,
                )
            )
            await self.session.flush()
            return "inserted"

        total_size = existing.total_size + add_size
        total_value = existing.total_value + add_value
        existing.total_size = total_size
        existing.total_value = total_value
        existing.avg_price = total_value / total_size if total_size else Decimal(0)
        existing.trade_count = existing.trade_count + len(newer)
        existing.first_timestamp = min(existing.first_timestamp, *(f.timestamp for f in newer))
        existing.latest_timestamp = newest.timestamp
        existing.last_transaction_hash = newest.transaction_hash
        existing.updated_at = now
        await self.session.flush()
        return "updated"

    async def list_unresolved(
        self, *, now: datetime, limit: int = DEFAULT_RESOLUTION_BATCH_LIMIT
    ) -> list[ResolvableRow]:
        result = await self.session.execute(
            select(TopTraderTradeModel)
            .where(_unresolved_filter(TopTraderTradeModel, now))
            .limit(limit)
        )
        return [
            ResolvableRow(
                key=m.id,
                condition_id=m.condition_id,
                outcome=m.outcome,
                side=m.side,
                price=m.avg_price,
                end_date=m.end_date,
            )
            for m in result.scalars().all()
        ]

    async def mark_checked(
        self, keys: Sequence[str | int], *, now: datetime, end_date: datetime | None = None
    ) -> None:
        values: dict[str, Any] = {"last_resolution_check": now}
        if end_date is not None:
            values["end_date"] = end_date
        await self.session.execute(
            update(TopTraderTradeModel)
            .where(TopTraderTradeModel.id.in_(list(keys)))
            .values(**values)
        )
        await self.session.flush()

    async def mark_resolved(
        self,
        key: str | int,
        *,
        status: ResolvedStatus,
        profit_per_dollar: Decimal | None,
        now: datetime,
        end_date: datetime | None = None,
    ) -> None:
        values: dict[str, Any] = {
            "resolved_status": status,
            "profit_per_dollar": profit_per_dollar,
            "last_resolution_check": now,
        }
        if end_date is not None:
            values["end_date"] = end_date
        await self.session.execute(
            update(TopTraderTradeModel).where(TopTraderTradeModel.id == key).values(**values)
        )
        await self.session.flush()

    async def list_recent(self, *, limit: int = 50) -> list[TopTraderTradeDTO]:
        result = await self.session.execute(
            select(TopTraderTradeModel)
            .order_by(TopTraderTradeModel.latest_timestamp.desc())
            .limit(limit)
        )
        return [TopTraderTradeDTO.from_model(m) for m in result.scalars().all()]

    async def stats(self) -> TopTraderStats:
        m = TopTraderTradeModel
        result = await self.session.execute(
            select(
                func.count(),
                func.coalesce(func.sum(case((m.resolved_status == "won", 1), else_=0)), 0),
                func.coalesce(func.sum(case((m.resolved_status == "lost", 1), else_=0)), 0),
                func.sum(m.total_value * m.profit_per_dollar),
                func.sum(m.total_value),
            ).where(m.profit_per_dollar.is_not(None))
        )
        row = result.one()
        weighted, total_value = row[3], row[4]
        ppd = Decimal(0)
        if weighted is not None and total_value:
            ppd = Decimal(str(weighted)) / Decimal(str(total_value))
        return TopTraderStats(
            total_count=int(row[0]),
            won_count=int(row[1]),
            lost_count=int(row[2]),
            profit_per_dollar=ppd,
        )
