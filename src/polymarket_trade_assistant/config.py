"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Polymarket Trade Assistant, loading and validating environment variables
at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

Command = Literal["run", "claim", "bet", "sync"]


def _validate_http_url(v: str, name: str) -> str:
    if not v.startswith(("http://", "https://")):
        raise ValueError(f"{name} must be an HTTP(S) endpoint")
    return v.rstrip("/")


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL connection string")
        return v


class PolygonSettings(BaseSettings):
    """Polygon blockchain RPC settings."""

    model_config = SettingsConfigDict(env_prefix="POLYGON_", extra="ignore")

    rpc_url: str = Field(
        default="https://polygon-rpc.com",
        alias="POLYGON_RPC_URL",
        description="Primary Polygon RPC endpoint (used for simulated redeem calls)",
    )
    fallback_rpc_url: str | None = Field(
        default=None,
        alias="POLYGON_FALLBACK_RPC_URL",
        description="Fallback Polygon RPC endpoint",
    )

    @field_validator("rpc_url", "fallback_rpc_url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate RPC URL format."""
        if v is None:
            return v
        return _validate_http_url(v, "RPC URL")


class PolymarketSettings(BaseSettings):
    """Polymarket API and wallet settings."""

    model_config = SettingsConfigDict(env_prefix="POLYMARKET_", extra="ignore")

    data_api_url: str = Field(
        default="https://data-api.polymarket.com",
        alias="POLYMARKET_DATA_API_URL",
        description="Data API (trades, positions, activity, leaderboard)",
    )
    gamma_api_url: str = Field(
        default="https://gamma-api.polymarket.com",
        alias="POLYMARKET_GAMMA_API_URL",
        description="Gamma API (markets, public profiles)",
    )
    clob_host: str = Field(
        default="https://clob.polymarket.com",
        alias="POLYMARKET_CLOB_HOST",
        description="CLOB HTTP API host",
    )
    chain_id: int = Field(
        default=137,
        alias="POLYMARKET_CHAIN_ID",
        description="Chain ID for signing (Polygon=137)",
    )
    private_key: SecretStr | None = Field(
        default=None,
        alias="POLYMARKET_PRIVATE_KEY",
        description="Signer private key for claiming and order placement",
    )
    funder_address: str | None = Field(
        default=None,
        alias="POLYMARKET_FUNDER_ADDRESS",
        description="Proxy/Safe wallet holding the positions",
    )
    signature_type: int = Field(
        default=0,
        alias="POLYMARKET_SIGNATURE_TYPE",
        ge=0,
        le=2,
        description="1 = PROXY wallet, anything else = SAFE wallet",
    )
    clob_api_key: SecretStr | None = Field(
        default=None,
        alias="POLYMARKET_CLOB_API_KEY",
        description="CLOB API key (L2 auth); derived from the private key when unset",
    )
    clob_api_secret: SecretStr | None = Field(
        default=None,
        alias="POLYMARKET_CLOB_API_SECRET",
        description="CLOB API secret (L2 auth)",
    )
    clob_api_passphrase: SecretStr | None = Field(
        default=None,
        alias="POLYMARKET_CLOB_API_PASSPHRASE",
        description="CLOB API passphrase (L2 auth)",
    )

    @field_validator("data_api_url", "gamma_api_url", "clob_host")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        return _validate_http_url(v, "Polymarket API URL")


class BuilderSettings(BaseSettings):
    """Builder relayer credentials (gas-sponsored transactions)."""

    model_config = SettingsConfigDict(env_prefix="BUILDER_", extra="ignore")

    api_key: SecretStr | None = Field(
        default=None,
        alias="BUILDER_API_KEY",
        description="Builder API key",
    )
    api_secret: SecretStr | None = Field(
        default=None,
        alias="BUILDER_API_SECRET",
        description="Builder API secret (base64)",
    )
    passphrase: SecretStr | None = Field(
        default=None,
        alias="BUILDER_PASSPHRASE",
        description="Builder API passphrase",
    )
    relayer_url: str = Field(
        default="https://relayer-v2.polymarket.com",
        alias="BUILDER_RELAYER_URL",
        description="Relayer endpoint",
    )

    @field_validator("relayer_url")
    @classmethod
    def validate_relayer_url(cls, v: str) -> str:
        return _validate_http_url(v, "BUILDER_RELAYER_URL")

    @property
    def enabled(self) -> bool:
        """Check if all builder credentials are present."""
        return bool(self.api_key and self.api_secret and self.passphrase)


class ClaimingSettings(BaseSettings):
    """Claim engine tuning."""

    model_config = SettingsConfigDict(env_prefix="CLAIMING_", extra="ignore")

    max_batch_size: int = Field(
        default=8,
        alias="CLAIMING_MAX_BATCH_SIZE",
        ge=1,
        le=50,
        description="Maximum redeem calls per relayer transaction",
    )
    poll_interval_seconds: float = Field(
        default=2.0,
        alias="CLAIMING_POLL_INTERVAL_SECONDS",
        ge=0.1,
        le=60.0,
        description="Interval between relayer state polls",
    )
    poll_max_attempts: int = Field(
        default=60,
        alias="CLAIMING_POLL_MAX_ATTEMPTS",
        ge=1,
        le=1000,
        description="Polls before a submitted batch is considered timed out",
    )
    rate_limit_fallback_seconds: int = Field(
        default=60,
        alias="CLAIMING_RATE_LIMIT_FALLBACK_SECONDS",
        ge=1,
        le=86_400,
        description="Cooldown applied when a quota error carries no reset hint",
    )


class SchedulerSettings(BaseSettings):
    """Background job intervals."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_", extra="ignore")

    trades_interval_seconds: int = Field(
        default=600,
        alias="SCHEDULER_TRADES_INTERVAL_SECONDS",
        ge=10,
        description="Trade ingestion interval",
    )
    resolution_interval_seconds: int = Field(
        default=900,
        alias="SCHEDULER_RESOLUTION_INTERVAL_SECONDS",
        ge=10,
        description="Trade resolution check interval",
    )
    resolution_initial_delay_seconds: int = Field(
        default=300,
        alias="SCHEDULER_RESOLUTION_INITIAL_DELAY_SECONDS",
        ge=0,
        description="Delay before the first resolution run",
    )
    claiming_interval_seconds: int = Field(
        default=1800,
        alias="SCHEDULER_CLAIMING_INTERVAL_SECONDS",
        ge=60,
        description="Claiming cycle interval",
    )
    backfill_interval_seconds: int = Field(
        default=1800,
        alias="SCHEDULER_BACKFILL_INTERVAL_SECONDS",
        ge=60,
        description="Trader classification backfill interval",
    )
    top_pv_interval_seconds: int = Field(
        default=3600,
        alias="SCHEDULER_TOP_PV_INTERVAL_SECONDS",
        ge=60,
        description="Top P/V leaderboard snapshot interval",
    )
    top_trader_trades_interval_seconds: int = Field(
        default=900,
        alias="SCHEDULER_TOP_TRADER_TRADES_INTERVAL_SECONDS",
        ge=60,
        description="Top trader trade aggregation interval",
    )
    top_trader_resolution_interval_seconds: int = Field(
        default=900,
        alias="SCHEDULER_TOP_TRADER_RESOLUTION_INTERVAL_SECONDS",
        ge=60,
        description="Top trader trade resolution interval",
    )
    claiming_enabled: bool = Field(
        default=True,
        alias="SCHEDULER_CLAIMING_ENABLED",
        description="Run the claiming job (still requires claiming credentials)",
    )
    backfill_enabled: bool = Field(
        default=True,
        alias="SCHEDULER_BACKFILL_ENABLED",
        description="Run the trader classification backfill job",
    )
    top_traders_enabled: bool = Field(
        default=True,
        alias="SCHEDULER_TOP_TRADERS_ENABLED",
        description="Run the top P/V trader jobs",
    )


class CopyTradingSettings(BaseSettings):
    """Automatic copy-trading of take bets."""

    model_config = SettingsConfigDict(env_prefix="COPY_", extra="ignore")

    enabled: bool = Field(
        default=False,
        alias="COPY_TRADING_ENABLED",
        description="Place a copy order for each newly marked take bet",
    )
    amount_usdc: float = Field(
        default=2.0,
        alias="COPY_AMOUNT_USDC",
        gt=0.0,
        le=10_000.0,
        description="Fixed USDC amount per copied trade",
    )
    price_buffer: float = Field(
        default=0.05,
        alias="COPY_PRICE_BUFFER",
        ge=0.0,
        le=0.5,
        description="Price buffer added to BUY / subtracted from SELL copies",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from polymarket_trade_assistant.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    polygon: PolygonSettings = Field(
        default_factory=lambda: PolygonSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    polymarket: PolymarketSettings = Field(
        default_factory=lambda: PolymarketSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    builder: BuilderSettings = Field(
        default_factory=lambda: BuilderSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    claiming: ClaimingSettings = Field(
        default_factory=lambda: ClaimingSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    scheduler: SchedulerSettings = Field(
        default_factory=lambda: SchedulerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    copy_trading: CopyTradingSettings = Field(
        default_factory=lambda: CopyTradingSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Simulate claims and skip order placement",
    )

    @property
    def claiming_configured(self) -> bool:
        """Check if every credential required for claiming is present."""
        return bool(
            self.polymarket.private_key
            and self.polymarket.funder_address
            and self.builder.enabled
        )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "polygon": {
                "rpc_url": self.polygon.rpc_url,
                "fallback_rpc_url": self.polygon.fallback_rpc_url or "(not set)",
            },
            "polymarket": {
                "data_api_url": self.polymarket.data_api_url,
                "gamma_api_url": self.polymarket.gamma_api_url,
                "clob_host": self.polymarket.clob_host,
                "chain_id": str(self.polymarket.chain_id),
                "private_key": "(set)" if self.polymarket.private_key else "(not set)",
                "funder_address": self.polymarket.funder_address or "(not set)",
                "signature_type": str(self.polymarket.signature_type),
                "clob_api_key": "(set)" if self.polymarket.clob_api_key else "(not set)",
            },
            "builder": {
                "relayer_url": self.builder.relayer_url,
                "api_key": "(set)" if self.builder.api_key else "(not set)",
            },
            "claiming": {
                "configured": str(self.claiming_configured),
                "max_batch_size": str(self.claiming.max_batch_size),
                "rate_limit_fallback_seconds": str(self.claiming.rate_limit_fallback_seconds),
            },
            "scheduler": {
                "trades_interval_seconds": str(self.scheduler.trades_interval_seconds),
                "resolution_interval_seconds": str(self.scheduler.resolution_interval_seconds),
                "claiming_interval_seconds": str(self.scheduler.claiming_interval_seconds),
            },
            "copy_trading_enabled": str(self.copy_trading.enabled),
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }

    def validate_requirements(self, *, command: Command) -> None:
        """Validate command-specific requirements.

        Claiming and betting refuse to run without their credentials; the
        scheduler only needs them when the jobs that use them are enabled.
        """
        if command == "claim" and not self.claiming_configured:
            raise ValueError(
                "POLYMARKET_PRIVATE_KEY, POLYMARKET_FUNDER_ADDRESS and "
                "BUILDER_API_KEY/BUILDER_API_SECRET/BUILDER_PASSPHRASE are required for claiming"
            )

        needs_signer = command == "bet" or (command == "run" and self.copy_trading.enabled)
        if needs_signer and not self.polymarket.private_key:
            raise ValueError("POLYMARKET_PRIVATE_KEY is required for order placement")

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            # URL has credentials - redact the password
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
