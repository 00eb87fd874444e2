"""Tests for the database manager."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from polymarket_trade_assistant.storage import (
    BetLogModel,
    DatabaseManager,
    to_async_url,
)


def _bet(slug: str) -> BetLogModel:
    return BetLogModel(
        market_slug=slug,
        outcome="Yes",
        side="BUY",
        amount=Decimal(2),
        price=Decimal("0.5"),
        status="placed",
        source="manual",
    )


class TestToAsyncUrl:
    def test_sync_postgres_url_uses_asyncpg(self) -> None:
        assert to_async_url("postgresql://u:p@db/app") == "postgresql+asyncpg://u:p@db/app"

    def test_other_urls_unchanged(self) -> None:
        assert to_async_url("postgresql+asyncpg://db/app") == "postgresql+asyncpg://db/app"
        assert to_async_url("sqlite+aiosqlite:///:memory:") == "sqlite+aiosqlite:///:memory:"

    def test_manager_normalises_url(self) -> None:
        assert DatabaseManager("postgresql://db/app").database_url == "postgresql+asyncpg://db/app"


class TestSessions:
    @pytest.mark.asyncio
    async def test_commits_on_success(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            session.add(_bet("kept"))

        async with db.get_async_session() as session:
            slugs = (await session.execute(select(BetLogModel.market_slug))).scalars().all()
        assert slugs == ["kept"]

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, db: DatabaseManager) -> None:
        with pytest.raises(RuntimeError):
            async with db.get_async_session() as session:
                session.add(_bet("dropped"))
                await session.flush()
                raise RuntimeError("write failed")

        async with db.get_async_session() as session:
            slugs = (await session.execute(select(BetLogModel.market_slug))).scalars().all()
        assert slugs == []

    @pytest.mark.asyncio
    async def test_close_keeps_borrowed_engine(self, db: DatabaseManager) -> None:
        engine = db.engine

        await db.close()

        assert db.engine is engine
        async with db.get_async_session() as session:
            session.add(_bet("after-close"))
