"""Alembic environment for the trade store.

Migrations target the database the application itself uses. The URL is
taken from ``SQLALCHEMY_DATABASE_URL`` when set, otherwise from the app
settings (``DATABASE_URL`` in the environment or ``.env``), and always runs
through the asyncpg driver.
"""

from __future__ import annotations

import asyncio
import os
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from polymarket_trade_assistant.config import get_settings
from polymarket_trade_assistant.storage import Base, to_async_url

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

load_dotenv(override=False)

target_metadata = Base.metadata


def _database_url() -> str:
    override = os.environ.get("SQLALCHEMY_DATABASE_URL")
    if override:
        return to_async_url(os.path.expandvars(override))
    return to_async_url(get_settings().database.url)


config.set_main_option("sqlalchemy.url", _database_url())


def _configure(**kwargs: object) -> None:
    # compare_type also flags Numeric precision and String length changes.
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def run_migrations_offline() -> None:
    """Emit SQL for the migrations without connecting."""
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _apply(connection: Connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Apply the migrations over a throwaway async engine."""
    engine = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_apply)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
