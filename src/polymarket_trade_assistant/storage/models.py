"""SQLAlchemy models for persistent storage.

This module defines the database schema for ingested trades, the claim
audit log, placed bets, and the top P/V trader tables.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TradeModel(Base):
    """Large trades ingested from the public trade feed.

    Rows are immutable facts at ingestion time and later enriched with
    trader classification, take-bet marking and resolution results.
    """

    __tablename__ = "trades"

    transaction_hash: Mapped[str] = mapped_column(String(80), primary_key=True)
    proxy_wallet: Mapped[str] = mapped_column(String(42), nullable=False)
    side: Mapped[str] = mapped_column(String(4), nullable=False)
    asset: Mapped[str] = mapped_column(String(100), nullable=False)
    condition_id: Mapped[str] = mapped_column(String(80), nullable=False)
    size: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 8), nullable=False)
    # size * price, materialised at insert time
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_slug: Mapped[str] = mapped_column(Text, nullable=False)
    outcome: Mapped[str] = mapped_column(Text, nullable=False)
    outcome_index: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    pseudonym: Mapped[str | None] = mapped_column(Text, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    profile_image: Mapped[str | None] = mapped_column(Text, nullable=True)
    profile_image_optimized: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Trader classification (null until the backfill has classified the wallet)
    good_trader: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    follow_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    insider_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bot_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    whale_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    classification: Mapped[str | None] = mapped_column(String(10), nullable=True)
    take_bet: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    # Resolution tracking
    resolved_status: Mapped[str | None] = mapped_column(String(4), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_resolution_check: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    profit_per_dollar: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_trades_proxy_wallet", "proxy_wallet"),
        Index("idx_trades_timestamp", "timestamp"),
        Index("idx_trades_event_slug", "event_slug"),
        Index("idx_trades_side", "side"),
        Index("idx_trades_condition_id", "condition_id"),
        Index("idx_trades_resolved_status", "resolved_status"),
        Index("idx_trades_take_bet", "proxy_wallet", "condition_id", "outcome", "take_bet"),
    )


class ClaimLogModel(Base):
    """Append-only audit trail of claim attempts.

    A condition with a ``claimed`` row is never claimed again; the partial
    unique index makes a second ``claimed`` row for the same condition fail.
    """

    __tablename__ = "claim_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    condition_id: Mapped[str] = mapped_column(String(80), nullable=False)
    market_slug: Mapped[str] = mapped_column(Text, nullable=False)
    outcome: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    tx_hash: Mapped[str | None] = mapped_column(String(80), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_claim_log_condition_status", "condition_id", "status"),
        Index("idx_claim_log_created_at", "created_at"),
        Index(
            "idx_claim_log_unique_claimed",
            "condition_id",
            unique=True,
            postgresql_where=text("status = 'claimed'"),
            sqlite_where=text("status = 'claimed'"),
        ),
    )


class BetLogModel(Base):
    """Orders placed through the CLOB, manual or copied."""

    __tablename__ = "bet_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str | None] = mapped_column(String(100), nullable=True, unique=True)
    market_slug: Mapped[str] = mapped_column(Text, nullable=False)
    condition_id: Mapped[str | None] = mapped_column(String(80), nullable=True)
    token_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    outcome: Mapped[str] = mapped_column(Text, nullable=False)
    side: Mapped[str] = mapped_column(String(4), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 8), nullable=False)
    size: Mapped[Decimal | None] = mapped_column(Numeric(20, 8), nullable=True)
    order_type: Mapped[str | None] = mapped_column(String(3), nullable=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="pending")
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(String(6), nullable=False, default="manual")

    # Trigger info for copied bets
    trigger_transaction_hash: Mapped[str | None] = mapped_column(String(80), nullable=True)
    trigger_wallet: Mapped[str | None] = mapped_column(String(42), nullable=True)
    trigger_follow_score: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    placed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_bet_log_status", "status"),
        Index("idx_bet_log_market_slug", "market_slug"),
        Index("idx_bet_log_created_at", "created_at"),
        Index("idx_bet_log_source", "source"),
    )


class TopPVTraderModel(Base):
    """Leaderboard snapshot of the best profit-to-volume traders."""

    __tablename__ = "top_pv_traders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    proxy_wallet: Mapped[str] = mapped_column(String(42), nullable=False, unique=True)
    user_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    x_username: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified_badge: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    profile_image: Mapped[str | None] = mapped_column(Text, nullable=True)
    pnl: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)
    vol: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)
    pv: Mapped[Decimal] = mapped_column(Numeric(12, 6), nullable=False)
    source: Mapped[str] = mapped_column(String(4), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_top_pv_traders_pv", "pv"),
        Index("idx_top_pv_traders_rank", "rank"),
    )


class TopTraderTradeModel(Base):
    """Aggregated BUY position of a top P/V trader in one market outcome."""

    __tablename__ = "top_trader_trades"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    last_transaction_hash: Mapped[str] = mapped_column(String(80), nullable=False)

    proxy_wallet: Mapped[str] = mapped_column(String(42), nullable=False)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    pseudonym: Mapped[str | None] = mapped_column(Text, nullable=True)
    profile_image: Mapped[str | None] = mapped_column(Text, nullable=True)

    slug: Mapped[str] = mapped_column(Text, nullable=False)
    event_slug: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str | None] = mapped_column(Text, nullable=True)
    condition_id: Mapped[str] = mapped_column(String(80), nullable=False)
    outcome: Mapped[str] = mapped_column(Text, nullable=False)
    outcome_index: Mapped[int] = mapped_column(Integer, nullable=False)

    side: Mapped[str] = mapped_column(String(4), nullable=False)
    total_size: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    total_value: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    avg_price: Mapped[Decimal] = mapped_column(Numeric(10, 8), nullable=False)
    trade_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    first_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    latest_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    resolved_status: Mapped[str | None] = mapped_column(String(4), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_resolution_check: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    profit_per_dollar: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "proxy_wallet", "slug", "side", "outcome", name="uq_top_trader_trades_position"
        ),
        Index("idx_ttt_proxy_wallet", "proxy_wallet"),
        Index("idx_ttt_latest_timestamp", "latest_timestamp"),
        Index("idx_ttt_slug", "slug"),
        Index("idx_ttt_side", "side"),
    )
