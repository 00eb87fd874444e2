"""Typed views of Polymarket data/gamma/CLOB API payloads.

Every model is validated at construction: ``from_dict`` raises ``KeyError``,
``TypeError`` or ``ValueError`` for a payload that lacks a required field or
carries a value of the wrong shape. The gateway turns those into skipped
rows or a ``GatewayParseError``.
"""

import contextlib
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal


def _str(data: dict[str, Any], key: str) -> str:
    value = data[key]
    if value is None:
        raise ValueError(f"{key} is null")
    return str(value)


def _opt_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    return str(value)


def _float(data: dict[str, Any], key: str, default: float | None = None) -> float:
    value = data.get(key, default)
    if value is None:
        if default is None:
            raise KeyError(key)
        return default
    if isinstance(value, bool):
        raise TypeError(f"{key} must be numeric")
    return float(value)


def _int(data: dict[str, Any], key: str, default: int | None = None) -> int:
    return int(_float(data, key, None if default is None else float(default)))


def _side(data: dict[str, Any]) -> Literal["BUY", "SELL"]:
    side = str(data["side"]).upper()
    if side not in ("BUY", "SELL"):
        raise ValueError(f"Invalid side: {side}")
    return side  # type: ignore[return-value]


def parse_iso_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, tolerating a trailing ``Z``."""
    if not value:
        return None
    with contextlib.suppress(ValueError, AttributeError):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return None


@dataclass(frozen=True)
class DataTrade:
    """A public trade from the data API ``/trades`` feed."""

    transaction_hash: str
    proxy_wallet: str
    side: Literal["BUY", "SELL"]
    asset: str
    condition_id: str
    size: float
    price: float
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

    @property
    def amount(self) -> float:
        return self.size * self.price

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DataTrade":
        """Create a DataTrade from a data API row."""
        return cls(
            transaction_hash=_str(data, "transactionHash"),
            proxy_wallet=_str(data, "proxyWallet"),
            side=_side(data),
            asset=str(data.get("asset") or ""),
            condition_id=_str(data, "conditionId"),
            size=_float(data, "size"),
            price=_float(data, "price"),
            timestamp=_int(data, "timestamp"),
            title=str(data.get("title") or ""),
            slug=str(data.get("slug") or ""),
            event_slug=str(data.get("eventSlug") or ""),
            outcome=str(data.get("outcome") or ""),
            outcome_index=_int(data, "outcomeIndex", 0),
            icon=_opt_str(data, "icon"),
            name=_opt_str(data, "name"),
            pseudonym=_opt_str(data, "pseudonym"),
            bio=_opt_str(data, "bio"),
            profile_image=_opt_str(data, "profileImage"),
            profile_image_optimized=_opt_str(data, "profileImageOptimized"),
        )


@dataclass(frozen=True)
class Position:
    """An open (or resolved but unredeemed) position of a wallet."""

    proxy_wallet: str
    asset: str
    condition_id: str
    size: float
    avg_price: float
    cur_price: float
    current_value: float
    cash_pnl: float
    realized_pnl: float
    title: str
    slug: str
    outcome: str
    redeemable: bool = False
    negative_risk: bool = False
    percent_pnl: float = 0.0
    end_date: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Position":
        """Create a Position from a data API ``/positions`` row."""
        return cls(
            proxy_wallet=str(data.get("proxyWallet") or ""),
            asset=str(data.get("asset") or ""),
            condition_id=_str(data, "conditionId"),
            size=_float(data, "size", 0.0),
            avg_price=_float(data, "avgPrice", 0.0),
            cur_price=_float(data, "curPrice", 0.0),
            current_value=_float(data, "currentValue", 0.0),
            cash_pnl=_float(data, "cashPnl", 0.0),
            realized_pnl=_float(data, "realizedPnl", 0.0),
            title=str(data.get("title") or ""),
            slug=str(data.get("slug") or ""),
            outcome=str(data.get("outcome") or ""),
            redeemable=bool(data.get("redeemable", False)),
            negative_risk=bool(data.get("negativeRisk", False)),
            percent_pnl=_float(data, "percentPnl", 0.0),
            end_date=_opt_str(data, "endDate"),
        )


@dataclass(frozen=True)
class ClosedPosition:
    """A closed position with realized profit and loss."""

    condition_id: str
    realized_pnl: float
    avg_price: float = 0.0
    total_bought: float = 0.0
    cur_price: float = 0.0
    timestamp: int = 0
    title: str = ""
    slug: str = ""
    outcome: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClosedPosition":
        return cls(
            condition_id=str(data.get("conditionId") or ""),
            realized_pnl=_float(data, "realizedPnl"),
            avg_price=_float(data, "avgPrice", 0.0),
            total_bought=_float(data, "totalBought", 0.0),
            cur_price=_float(data, "curPrice", 0.0),
            timestamp=_int(data, "timestamp", 0),
            title=str(data.get("title") or ""),
            slug=str(data.get("slug") or ""),
            outcome=str(data.get("outcome") or ""),
        )


@dataclass(frozen=True)
class ActivityItem:
    """One entry of a wallet's activity feed (trades, redeems, splits...)."""

    timestamp: int
    type: str
    usdc_size: float = 0.0
    price: float = 0.0
    title: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ActivityItem":
        return cls(
            timestamp=_int(data, "timestamp"),
            type=_str(data, "type"),
            usdc_size=_float(data, "usdcSize", 0.0),
            price=_float(data, "price", 0.0),
            title=str(data.get("title") or ""),
        )


@dataclass(frozen=True)
class Profile:
    """Public gamma profile of a wallet."""

    created_at: str | None = None
    proxy_wallet: str | None = None
    profile_image: str | None = None
    bio: str | None = None
    pseudonym: str | None = None
    name: str | None = None
    x_username: str | None = None
    verified_badge: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Profile":
        if not isinstance(data, dict):
            raise TypeError("profile payload must be an object")
        return cls(
            created_at=_opt_str(data, "createdAt"),
            proxy_wallet=_opt_str(data, "proxyWallet"),
            profile_image=_opt_str(data, "profileImage"),
            bio=_opt_str(data, "bio"),
            pseudonym=_opt_str(data, "pseudonym"),
            name=_opt_str(data, "name"),
            x_username=_opt_str(data, "xUsername"),
            verified_badge=bool(data.get("verifiedBadge") or False),
        )


@dataclass(frozen=True)
class LeaderboardEntry:
    """A leaderboard row. ``rank`` is parsed from the API's string form."""

    rank: int
    proxy_wallet: str
    vol: float
    pnl: float
    user_name: str | None = None
    profile_image: str | None = None
    x_username: str | None = None
    verified_badge: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LeaderboardEntry":
        return cls(
            rank=int(str(data["rank"]).strip()),
            proxy_wallet=_str(data, "proxyWallet"),
            vol=_float(data, "vol", 0.0),
            pnl=_float(data, "pnl", 0.0),
            user_name=_opt_str(data, "userName"),
            profile_image=_opt_str(data, "profileImage"),
            x_username=_opt_str(data, "xUsername"),
            verified_badge=bool(data.get("verifiedBadge") or False),
        )


@dataclass(frozen=True)
class MarketToken:
    """An outcome token of a CLOB market."""

    token_id: str
    outcome: str
    price: float | None = None
    winner: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MarketToken":
        price = data.get("price")
        return cls(
            token_id=str(data.get("token_id") or ""),
            outcome=_str(data, "outcome"),
            price=float(price) if price is not None else None,
            winner=data.get("winner") is True,
        )


@dataclass(frozen=True)
class ClobMarket:
    """A market as returned by CLOB ``/markets/{condition_id}``."""

    condition_id: str
    tokens: tuple[MarketToken, ...]
    closed: bool = False
    active: bool = True
    accepting_orders: bool = True
    enable_order_book: bool = True
    neg_risk: bool = False
    end_date_iso: str | None = None
    minimum_tick_size: float = 0.01
    question: str = ""
    market_slug: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClobMarket":
        tokens_data = data.get("tokens") or []
        if not isinstance(tokens_data, list):
            raise TypeError("tokens must be a list")
        return cls(
            condition_id=str(data.get("condition_id") or ""),
            tokens=tuple(MarketToken.from_dict(t) for t in tokens_data),
            closed=bool(data.get("closed", False)),
            active=bool(data.get("active", True)),
            accepting_orders=bool(data.get("accepting_orders", True)),
            enable_order_book=bool(data.get("enable_order_book", True)),
            neg_risk=bool(data.get("neg_risk", False)),
            end_date_iso=_opt_str(data, "end_date_iso"),
            minimum_tick_size=_float(data, "minimum_tick_size", 0.01),
            question=str(data.get("question") or ""),
            market_slug=str(data.get("market_slug") or ""),
        )

    @property
    def winning_token(self) -> MarketToken | None:
        for token in self.tokens:
            if token.winner:
                return token
        return None

    def token_for_outcome(self, outcome: str) -> MarketToken | None:
        wanted = outcome.strip().lower()
        for token in self.tokens:
            if token.outcome.strip().lower() == wanted:
                return token
        return None


@dataclass(frozen=True)
class MarketStatus:
    """Resolution status of a market."""

    resolved: bool
    winning_outcome: str | None
    end_date: datetime | None

    @classmethod
    def from_clob_market(cls, market: ClobMarket) -> "MarketStatus":
        winner = market.winning_token
        return cls(
            resolved=winner is not None,
            winning_outcome=winner.outcome if winner is not None and winner.outcome else None,
            end_date=parse_iso_datetime(market.end_date_iso),
        )


def _json_list(value: Any) -> tuple[str, ...]:
    """Gamma encodes some arrays as JSON strings."""
    if value is None or value == "":
        return ()
    if isinstance(value, str):
        value = json.loads(value)
    if not isinstance(value, list):
        raise TypeError("expected a list")
    return tuple(str(v) for v in value)


@dataclass(frozen=True)
class GammaMarket:
    """A market as returned by gamma ``/markets``."""

    id: str
    slug: str
    condition_id: str
    question: str = ""
    closed: bool = False
    active: bool = True
    enable_order_book: bool = True
    neg_risk: bool = False
    end_date: str | None = None
    outcomes: tuple[str, ...] = ()
    clob_token_ids: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GammaMarket":
        return cls(
            id=str(data.get("id") or ""),
            slug=_str(data, "slug"),
            condition_id=_str(data, "conditionId"),
            question=str(data.get("question") or ""),
            closed=bool(data.get("closed", False)),
            active=bool(data.get("active", True)),
            enable_order_book=bool(data.get("enableOrderBook", True)),
            neg_risk=bool(data.get("negRisk", False)),
            end_date=_opt_str(data, "endDate"),
            outcomes=_json_list(data.get("outcomes")),
            clob_token_ids=_json_list(data.get("clobTokenIds")),
        )
