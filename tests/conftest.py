"""Pytest configuration and fixtures."""

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from polymarket_trade_assistant.storage import Base, DatabaseManager, TradeDTO

WALLET = "0x1234567890abcdef1234567890abcdef12345678"
FUNDER = "0xf00df00df00df00df00df00df00df00df00df00d"


@pytest.fixture
def sample_wallet() -> str:
    return WALLET


@pytest.fixture
async def async_engine():
    """Create an async in-memory SQLite engine shared across sessions."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def async_session(async_engine) -> AsyncSession:
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def db(async_engine) -> DatabaseManager:
    return DatabaseManager.from_engine(async_engine)


def make_trade(
    tx: str,
    *,
    wallet: str = WALLET,
    side: str = "BUY",
    condition_id: str = "0xcond1",
    outcome: str = "Yes",
    size: str = "5000",
    price: str = "0.60",
    timestamp: int = 1_700_000_000,
    slug: str = "will-it-happen",
) -> TradeDTO:
    return TradeDTO(
        transaction_hash=tx,
        proxy_wallet=wallet,
        side=side,
        asset="123456",
        condition_id=condition_id,
        size=Decimal(size),
        price=Decimal(price),
        timestamp=timestamp,
        title="Will it happen?",
        slug=slug,
        event_slug="will-it-happen-event",
        outcome=outcome,
        outcome_index=0 if outcome == "Yes" else 1,
        name="trader",
    )


@pytest.fixture
def trade_factory():
    return make_trade
