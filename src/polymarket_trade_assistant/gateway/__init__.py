"""Market data gateway - Typed access to the Polymarket read APIs."""

from polymarket_trade_assistant.gateway.client import (
    GatewayError,
    GatewayHTTPError,
    GatewayNotFoundError,
    GatewayParseError,
    GatewayTransientError,
    PolymarketGateway,
)
from polymarket_trade_assistant.gateway.models import (
    ActivityItem,
    ClobMarket,
    ClosedPosition,
    DataTrade,
    GammaMarket,
    LeaderboardEntry,
    MarketStatus,
    MarketToken,
    Position,
    Profile,
)

__all__ = [
    "ActivityItem",
    "ClobMarket",
    "ClosedPosition",
    "DataTrade",
    "GammaMarket",
    "GatewayError",
    "GatewayHTTPError",
    "GatewayNotFoundError",
    "GatewayParseError",
    "GatewayTransientError",
    "LeaderboardEntry",
    "MarketStatus",
    "MarketToken",
    "PolymarketGateway",
    "Position",
    "Profile",
]
