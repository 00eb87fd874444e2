"""Storage layer - Database schemas and repositories."""

from polymarket_trade_assistant.storage.database import DatabaseManager, to_async_url
from polymarket_trade_assistant.storage.models import (
    Base,
    BetLogModel,
    ClaimLogModel,
    TopPVTraderModel,
    TopTraderTradeModel,
    TradeModel,
)
from polymarket_trade_assistant.storage.repos import (
    DEFAULT_RESOLUTION_BATCH_LIMIT,
    BetLogDTO,
    BetLogRepository,
    ClaimLogDTO,
    ClaimLogRepository,
    ResolvableRow,
    ResolvedStats,
    TopPVTraderDTO,
    TopPVTraderRepository,
    TopTraderFill,
    TopTraderStats,
    TopTraderTradeDTO,
    TopTraderTradeRepository,
    TradeDTO,
    TradeRepository,
    TraderScores,
)

__all__ = [
    "DEFAULT_RESOLUTION_BATCH_LIMIT",
    "Base",
    "BetLogDTO",
    "BetLogModel",
    "BetLogRepository",
    "ClaimLogDTO",
    "ClaimLogModel",
    "ClaimLogRepository",
    "DatabaseManager",
    "ResolvableRow",
    "ResolvedStats",
    "TopPVTraderDTO",
    "TopPVTraderModel",
    "TopPVTraderRepository",
    "TopTraderFill",
    "TopTraderStats",
    "TopTraderTradeDTO",
    "TopTraderTradeModel",
    "TopTraderTradeRepository",
    "TradeDTO",
    "TradeModel",
    "TradeRepository",
    "TraderScores",
    "to_async_url",
]
