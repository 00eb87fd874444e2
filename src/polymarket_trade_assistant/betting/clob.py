"""Order placement through py-clob-client with rate limiting and retry logic.

py-clob-client is synchronous; every call into it runs in a worker thread
so the event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from functools import wraps
from typing import TYPE_CHECKING, Any, Literal, ParamSpec, TypeVar

from py_clob_client.client import ClobClient as BaseClobClient
from py_clob_client.clob_types import (
    ApiCreds,
    AssetType,
    BalanceAllowanceParams,
    MarketOrderArgs,
    OpenOrderParams,
    OrderArgs,
    OrderType,
    PartialCreateOrderOptions,
)
from py_clob_client.exceptions import PolyApiException
from py_clob_client.order_builder.constants import BUY, SELL

from polymarket_trade_assistant.gateway import GatewayError, PolymarketGateway

if TYPE_CHECKING:
    from polymarket_trade_assistant.config import Settings

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_HOST = "https://clob.polymarket.com"
MAX_REQUESTS_PER_SECOND = 10
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0

# USDC has 6 decimals.
USDC_UNITS = 1_000_000

Side = Literal["BUY", "SELL"]
BetOrderType = Literal["GTC", "GTD", "FOK"]


class BettingError(Exception):
    """Base exception for betting errors."""


class BettingNotConfiguredError(BettingError):
    """Raised when no signer key is configured."""


class RateLimiter:
    """Minimum-interval rate limiter for CLOB requests."""

    def __init__(self, max_requests_per_second: float = MAX_REQUESTS_PER_SECOND) -> None:
        self._min_interval = 1.0 / max_requests_per_second
        self._last_request_time: float = 0.0

    def acquire_sync(self) -> None:
        """Block the calling (worker) thread until a request slot is free."""
        now = time.monotonic()
        elapsed = now - self._last_request_time
        if elapsed < self._min_interval:
            time.sleep(self._min_interval - elapsed)
        self._last_request_time = time.monotonic()


def with_retry(
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    retry_on: tuple[type[Exception], ...] = (PolyApiException,),
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator for adding retry logic with exponential backoff.

    Only for idempotent reads; order placement is never retried.

    Args:
        max_retries: Maximum number of retry attempts.
        base_delay: Base delay in seconds (doubles with each retry).
        retry_on: Tuple of exception types to retry on.
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    if attempt == max_retries:
                        raise BettingError(
                            f"All {max_retries + 1} attempts failed for {func.__name__}: {e}"
                        ) from e
                    delay = base_delay * (2**attempt)
                    logger.warning(
                        "Attempt %d/%d failed: %s. Retrying in %.1f seconds...",
                        attempt + 1,
                        max_retries + 1,
                        str(e),
                        delay,
                    )
                    time.sleep(delay)
            raise AssertionError("unreachable")

        return wrapper

    return decorator


@dataclass(frozen=True)
class ApiCredentials:
    api_key: str
    api_secret: str
    passphrase: str


@dataclass(frozen=True)
class TokenInfo:
    """CLOB token selected for a market outcome."""

    condition_id: str
    token_id: str
    tick_size: str
    neg_risk: bool


@dataclass(frozen=True)
class BetResult:
    success: bool
    order_id: str | None = None
    error: str | None = None
    market_slug: str | None = None
    outcome: str | None = None
    side: Side | None = None
    amount: float | None = None
    price: float | None = None
    size: float | None = None
    order_type: BetOrderType | None = None
    condition_id: str | None = None
    token_id: str | None = None


@dataclass(frozen=True)
class OpenOrder:
    order_id: str
    market: str
    asset: str
    side: Side
    price: float
    original_size: float
    size_matched: float
    status: str
    created_at: int

    @property
    def size_remaining(self) -> float:
        return self.original_size - self.size_matched

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OpenOrder:
        return cls(
            order_id=str(data["id"]),
            market=str(data.get("market", "")),
            asset=str(data.get("asset_id", "")),
            side="BUY" if str(data.get("side", "")).upper() == "BUY" else "SELL",
            price=float(data.get("price") or 0),
            original_size=float(data.get("original_size") or 0),
            size_matched=float(data.get("size_matched") or 0),
            status=str(data.get("status", "")),
            created_at=int(data.get("created_at") or 0),
        )


@dataclass(frozen=True)
class OrderActionResult:
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class Balances:
    usdc: float
    collateral: float


def _tick_size(value: float) -> str:
    return f"{value:g}"


class BettingClient:
    """Places and manages CLOB orders for the configured wallet.

    API credentials are derived from the signer key on first use unless they
    are supplied up front.

    Example:
        ```python
        betting = BettingClient.from_settings(settings, gateway)
        result = await betting.place_bet(
            market_slug="will-it-rain", outcome="Yes", side="BUY", amount=2.0, price=0.45
        )
        if not result.success:
            print(result.error)
        ```
    """

    def __init__(
        self,
        gateway: PolymarketGateway,
        *,
        private_key: str | None,
        host: str = DEFAULT_HOST,
        chain_id: int = 137,
        signature_type: int | None = None,
        funder: str | None = None,
        api_creds: ApiCreds | None = None,
        client_factory: Callable[..., BaseClobClient] = BaseClobClient,
        requests_per_second: float = MAX_REQUESTS_PER_SECOND,
    ) -> None:
        self._gateway = gateway
        self._private_key = private_key
        self._host = host
        self._chain_id = chain_id
        self._signature_type = signature_type
        self._funder = funder
        self._api_creds = api_creds
        self._client_factory = client_factory
        self._rate_limiter = RateLimiter(requests_per_second)
        self._client: BaseClobClient | None = None
        self._client_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, gateway: PolymarketGateway) -> BettingClient:
        pm = settings.polymarket
        api_creds = None
        if pm.clob_api_key and pm.clob_api_secret and pm.clob_api_passphrase:
            api_creds = ApiCreds(
                api_key=pm.clob_api_key.get_secret_value(),
                api_secret=pm.clob_api_secret.get_secret_value(),
                api_passphrase=pm.clob_api_passphrase.get_secret_value(),
            )
        return cls(
            gateway,
            private_key=pm.private_key.get_secret_value() if pm.private_key else None,
            host=pm.clob_host,
            chain_id=pm.chain_id,
            signature_type=pm.signature_type,
            funder=pm.funder_address,
            api_creds=api_creds,
        )

    @property
    def is_configured(self) -> bool:
        return self._private_key is not None

    def _require_key(self) -> str:
        if self._private_key is None:
            raise BettingNotConfiguredError("POLYMARKET_PRIVATE_KEY is not configured")
        return self._private_key

    async def derive_api_credentials(self) -> ApiCredentials:
        """Create or derive the CLOB API credentials for the signer key."""
        key = self._require_key()

        def _derive() -> ApiCreds:
            self._rate_limiter.acquire_sync()
            temp = self._client_factory(self._host, chain_id=self._chain_id, key=key)
            return temp.create_or_derive_api_creds()

        creds = await asyncio.to_thread(_derive)
        self._api_creds = creds
        logger.info("Derived CLOB API credentials")
        return ApiCredentials(
            api_key=creds.api_key,
            api_secret=creds.api_secret,
            passphrase=creds.api_passphrase,
        )

    async def _get_client(self) -> BaseClobClient:
        async with self._client_lock:
            if self._client is not None:
                return self._client
            key = self._require_key()
            if self._api_creds is None:
                await self.derive_api_credentials()
            self._client = self._client_factory(
                self._host,
                chain_id=self._chain_id,
                key=key,
                creds=self._api_creds,
                signature_type=self._signature_type,
                funder=self._funder,
            )
            logger.info("CLOB client initialized (host=%s)", self._host)
            return self._client

    async def _call(self, func: Callable[[], T]) -> T:
        def _run() -> T:
            self._rate_limiter.acquire_sync()
            return func()

        return await asyncio.to_thread(_run)

    async def resolve_token(self, market_slug: str, outcome: str) -> TokenInfo | str:
        """Find the CLOB token for an outcome.

        Returns:
            TokenInfo, or an error message when the market cannot take orders.
        """
        gamma = await self._gateway.fetch_gamma_market_by_slug(market_slug)
        if gamma is None:
            return f"Market or outcome not found: {market_slug} - {outcome}"
        if gamma.closed:
            return "Market is closed"
        if not gamma.active:
            return "Market is inactive"

        market = await self._gateway.fetch_clob_market(gamma.condition_id)
        if market is None:
            return "No orderbook for this market"

        token = market.token_for_outcome(outcome)
        if token is None:
            return f'Outcome "{outcome}" not found'
        if market.winning_token is not None:
            return "Market has already resolved"

        return TokenInfo(
            condition_id=market.condition_id,
            token_id=token.token_id,
            tick_size=_tick_size(market.minimum_tick_size),
            neg_risk=market.neg_risk,
        )

    async def place_bet(
        self,
        *,
        market_slug: str,
        outcome: str,
        side: Side,
        amount: float,
        price: float,
        order_type: BetOrderType = "GTC",
    ) -> BetResult:
        """Place an order for ``amount`` USDC on an outcome.

        Order failures are reported in the result, not raised.

        Args:
            market_slug: Gamma market slug.
            outcome: Outcome label (case-insensitive).
            side: BUY or SELL.
            amount: USDC amount (BUY) or shares (SELL).
            price: Limit price between 0 and 1.
            order_type: GTC/GTD limit order, or FOK market order.

        Raises:
            BettingNotConfiguredError: If no signer key is configured.
        """
        client = await self._get_client()
        failed = BetResult(success=False, market_slug=market_slug, outcome=outcome, side=side)

        try:
            token = await self.resolve_token(market_slug, outcome)
        except GatewayError as e:
            return replace(failed, error=str(e))
        if isinstance(token, str):
            return replace(failed, error=token)

        size = amount / price if side == "BUY" else amount
        options = PartialCreateOrderOptions(tick_size=token.tick_size, neg_risk=token.neg_risk)
        clob_side = BUY if side == "BUY" else SELL

        def _submit() -> Any:
            if order_type == "FOK":
                order = client.create_market_order(
                    MarketOrderArgs(
                        token_id=token.token_id,
                        amount=amount,
                        side=clob_side,
                        price=price,
                        order_type=OrderType.FOK,
                    ),
                    options,
                )
                return client.post_order(order, OrderType.FOK)
            order = client.create_order(
                OrderArgs(token_id=token.token_id, price=price, size=size, side=clob_side),
                options,
            )
            return client.post_order(order, OrderType.GTD if order_type == "GTD" else OrderType.GTC)

        try:
            response = await self._call(_submit)
        except Exception as e:
            logger.warning("Order on %s (%s) failed: %s", market_slug, outcome, e)
            return replace(failed, error=str(e))

        response = response if isinstance(response, dict) else {}
        if response.get("success") is False or response.get("errorMsg"):
            return replace(failed, error=response.get("errorMsg") or "Order failed")

        logger.info(
            "Placed %s %s order on %s (%s) @ %s: %s",
            order_type,
            side,
            market_slug,
            outcome,
            price,
            response.get("orderID"),
        )
        return BetResult(
            success=True,
            order_id=response.get("orderID"),
            market_slug=market_slug,
            outcome=outcome,
            side=side,
            amount=amount,
            price=price,
            size=size,
            order_type=order_type,
            condition_id=token.condition_id,
            token_id=token.token_id,
        )

    async def get_open_orders(self) -> list[OpenOrder]:
        client = await self._get_client()

        @with_retry()
        def _orders() -> list[dict[str, Any]]:
            return client.get_orders(OpenOrderParams())

        return [OpenOrder.from_dict(o) for o in await self._call(_orders)]

    async def cancel_order(self, order_id: str) -> OrderActionResult:
        client = await self._get_client()
        try:
            await self._call(lambda: client.cancel(order_id=order_id))
        except Exception as e:
            return OrderActionResult(success=False, error=str(e))
        return OrderActionResult(success=True)

    async def cancel_all(self) -> OrderActionResult:
        client = await self._get_client()
        try:
            await self._call(client.cancel_all)
        except Exception as e:
            return OrderActionResult(success=False, error=str(e))
        return OrderActionResult(success=True)

    async def get_balances(self) -> Balances:
        client = await self._get_client()
        params = BalanceAllowanceParams(asset_type=AssetType.COLLATERAL)

        @with_retry()
        def _balance() -> dict[str, Any]:
            return client.get_balance_allowance(params)

        data = await self._call(_balance)
        return Balances(
            usdc=float(data.get("balance") or 0) / USDC_UNITS,
            collateral=float(data.get("allowance") or 0) / USDC_UNITS,
        )
