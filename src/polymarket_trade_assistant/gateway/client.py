"""Async Polymarket read API client (data API, gamma API, CLOB REST).

All responses are validated into the typed models of
:mod:`polymarket_trade_assistant.gateway.models` before they leave this
module.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Literal, TypeVar

import httpx

from polymarket_trade_assistant.gateway.models import (
    ActivityItem,
    ClobMarket,
    ClosedPosition,
    DataTrade,
    GammaMarket,
    LeaderboardEntry,
    MarketStatus,
    Position,
    Profile,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DATA_API_URL = "https://data-api.polymarket.com"
DEFAULT_GAMMA_API_URL = "https://gamma-api.polymarket.com"
DEFAULT_CLOB_HOST = "https://clob.polymarket.com"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0
RETRY_STATUS_CODES = (429, 500, 502, 503, 504)

DEFAULT_ACTIVITY_LIMIT = 500
DEFAULT_POSITIONS_LIMIT = 500
DEFAULT_CLOSED_POSITIONS_LIMIT = 100

TimePeriod = Literal["DAY", "WEEK", "MONTH", "ALL"]
LeaderboardOrder = Literal["PNL", "VOL"]


class GatewayError(Exception):
    """Base exception for gateway errors."""


class GatewayHTTPError(GatewayError):
    """Raised for a non-2xx upstream response."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class GatewayNotFoundError(GatewayHTTPError):
    """Raised when a requested resource does not exist (404)."""


class GatewayTransientError(GatewayError):
    """Raised for retryable errors (429/5xx, network issues) once retries are exhausted."""


class GatewayParseError(GatewayError):
    """Raised when a response payload does not have the expected shape."""


class PolymarketGateway:
    """Typed read-only access to the Polymarket public APIs.

    Transient failures are retried with exponential backoff; a 404 on a
    single-entity lookup is returned as ``None``.

    Example:
        ```python
        gateway = PolymarketGateway()
        trades = await gateway.fetch_trades(limit=500, offset=0)
        status = await gateway.fetch_market_status("0xabc...")
        await gateway.close()
        ```
    """

    def __init__(
        self,
        *,
        data_api_url: str = DEFAULT_DATA_API_URL,
        gamma_api_url: str = DEFAULT_GAMMA_API_URL,
        clob_host: str = DEFAULT_CLOB_HOST,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_BASE_DELAY,
    ) -> None:
        """Initialize the gateway.

        Args:
            data_api_url: Data API base URL.
            gamma_api_url: Gamma API base URL.
            clob_host: CLOB REST base URL.
            client: Optional pre-built httpx client (tests pass a MockTransport client).
            timeout_seconds: Request timeout for the lazily created client.
            max_retries: Retry attempts for transient errors.
            retry_delay_seconds: Initial delay between retries (doubles each attempt).
        """
        self._data_api_url = data_api_url.rstrip("/")
        self._gamma_api_url = gamma_api_url.rstrip("/")
        self._clob_host = clob_host.rstrip("/")
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> "PolymarketGateway":
        return cls(
            data_api_url=settings.polymarket.data_api_url,
            gamma_api_url=settings.polymarket.gamma_api_url,
            clob_host=settings.polymarket.clob_host,
            **kwargs,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "PolymarketGateway":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def _request_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET a JSON document with retry on transient failures.

        Raises:
            GatewayNotFoundError: On 404.
            GatewayHTTPError: On any other non-retryable non-2xx status.
            GatewayTransientError: When retries are exhausted.
            GatewayParseError: When the body is not JSON.
        """
        client = await self._get_client()
        delay = self._retry_delay
        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            try:
                response = await client.get(url, params=params)
            except httpx.HTTPError as e:
                last_error = e
            else:
                status = response.status_code
                if status == 404:
                    raise GatewayNotFoundError(f"Not found: {url}", status)
                if status in RETRY_STATUS_CODES:
                    last_error = GatewayHTTPError(f"HTTP {status} from {url}", status)
                elif status >= 400:
                    raise GatewayHTTPError(f"HTTP {status} from {url}", status)
                else:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise GatewayParseError(f"Invalid JSON from {url}: {e}") from e

            if attempt == self._max_retries:
                break
            logger.warning(
                "Attempt %d/%d failed for %s: %s. Retrying in %.1f seconds...",
                attempt + 1,
                self._max_retries + 1,
                url,
                last_error,
                delay,
            )
            await asyncio.sleep(delay)
            delay *= 2

        raise GatewayTransientError(
            f"All {self._max_retries + 1} attempts failed for {url}: {last_error}"
        )

    @staticmethod
    def _parse_list(payload: Any, parse: Callable[[dict[str, Any]], T], *, source: str) -> list[T]:
        """Validate a list payload, skipping malformed rows."""
        if not isinstance(payload, list):
            raise GatewayParseError(f"Unexpected {source} response shape")
        out: list[T] = []
        skipped = 0
        for raw in payload:
            if not isinstance(raw, dict):
                skipped += 1
                continue
            try:
                out.append(parse(raw))
            except (KeyError, TypeError, ValueError):
                skipped += 1
        if skipped:
            logger.warning("Skipped %d malformed rows from %s", skipped, source)
        return out

    # ==================== DATA API ====================

    async def fetch_trades(
        self, *, limit: int = 500, offset: int = 0, user: str | None = None
    ) -> list[DataTrade]:
        """Fetch recent public trades (optionally for one wallet)."""
        params: dict[str, Any] = {"limit": limit}
        if offset:
            params["offset"] = offset
        if user:
            params["user"] = user
        payload = await self._request_json(f"{self._data_api_url}/trades", params)
        return self._parse_list(payload, DataTrade.from_dict, source="trades")

    async def fetch_positions(
        self,
        wallet: str,
        *,
        only_redeemable: bool = False,
        limit: int = DEFAULT_POSITIONS_LIMIT,
    ) -> list[Position]:
        """Fetch a wallet's positions."""
        params: dict[str, Any] = {"user": wallet, "limit": limit}
        if only_redeemable:
            params["redeemable"] = "true"
        payload = await self._request_json(f"{self._data_api_url}/positions", params)
        positions = self._parse_list(payload, Position.from_dict, source="positions")
        if only_redeemable:
            positions = [p for p in positions if p.redeemable]
        return positions

    async def fetch_activity(
        self, wallet: str, *, limit: int = DEFAULT_ACTIVITY_LIMIT, offset: int = 0
    ) -> list[ActivityItem]:
        payload = await self._request_json(
            f"{self._data_api_url}/activity",
            {"user": wallet, "limit": limit, "offset": offset},
        )
        return self._parse_list(payload, ActivityItem.from_dict, source="activity")

    async def fetch_closed_positions(
        self, wallet: str, *, limit: int = DEFAULT_CLOSED_POSITIONS_LIMIT
    ) -> list[ClosedPosition]:
        payload = await self._request_json(
            f"{self._data_api_url}/closed-positions",
            {"user": wallet, "limit": limit},
        )
        return self._parse_list(payload, ClosedPosition.from_dict, source="closed-positions")

    async def fetch_leaderboard(
        self,
        *,
        time_period: TimePeriod = "ALL",
        order_by: LeaderboardOrder = "PNL",
        limit: int = 50,
    ) -> list[LeaderboardEntry]:
        payload = await self._request_json(
            f"{self._data_api_url}/v1/leaderboard",
            {"timePeriod": time_period, "orderBy": order_by, "limit": limit},
        )
        return self._parse_list(payload, LeaderboardEntry.from_dict, source="leaderboard")

    async def fetch_leaderboard_rank(self, wallet: str) -> LeaderboardEntry | None:
        """Fetch a wallet's all-time leaderboard entry, or None if unranked."""
        try:
            payload = await self._request_json(
                f"{self._data_api_url}/v1/leaderboard",
                {"user": wallet, "timePeriod": "ALL"},
            )
        except GatewayNotFoundError:
            return None
        entries = self._parse_list(payload, LeaderboardEntry.from_dict, source="leaderboard")
        return entries[0] if entries else None

    # ==================== GAMMA API ====================

    async def fetch_profile(self, wallet: str) -> Profile | None:
        try:
            payload = await self._request_json(
                f"{self._gamma_api_url}/public-profile", {"address": wallet}
            )
        except GatewayNotFoundError:
            return None
        try:
            return Profile.from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayParseError(f"Invalid profile payload for {wallet}: {e}") from e

    async def fetch_gamma_market_by_slug(self, slug: str) -> GammaMarket | None:
        payload = await self._request_json(f"{self._gamma_api_url}/markets", {"slug": slug})
        markets = self._parse_list(payload, GammaMarket.from_dict, source="gamma markets")
        return markets[0] if markets else None

    # ==================== CLOB API ====================

    async def fetch_clob_market(self, condition_id: str) -> ClobMarket | None:
        try:
            payload = await self._request_json(f"{self._clob_host}/markets/{condition_id}")
        except GatewayNotFoundError:
            return None
        if not isinstance(payload, dict):
            raise GatewayParseError(f"Unexpected market response shape for {condition_id}")
        try:
            return ClobMarket.from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayParseError(f"Invalid market payload for {condition_id}: {e}") from e

    async def fetch_market_status(self, condition_id: str) -> MarketStatus | None:
        """Resolution status of a market; None when the market is unknown."""
        market = await self.fetch_clob_market(condition_id)
        if market is None:
            return None
        return MarketStatus.from_clob_market(market)
