"""Betting - CLOB order placement and copy trading."""

from polymarket_trade_assistant.betting.clob import (
    ApiCredentials,
    Balances,
    BetResult,
    BettingClient,
    BettingError,
    BettingNotConfiguredError,
    OpenOrder,
    OrderActionResult,
    TokenInfo,
)
from polymarket_trade_assistant.betting.copy import (
    CopyTrader,
    ShareCalculation,
    calculate_shares,
    copy_price,
)

__all__ = [
    "ApiCredentials",
    "Balances",
    "BetResult",
    "BettingClient",
    "BettingError",
    "BettingNotConfiguredError",
    "CopyTrader",
    "OpenOrder",
    "OrderActionResult",
    "ShareCalculation",
    "TokenInfo",
    "calculate_shares",
    "copy_price",
]
