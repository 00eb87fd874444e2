"""Sync jobs - Periodic ingestion, resolution, claiming and trader upkeep."""

from polymarket_trade_assistant.sync.claiming import (
    ClaimDetail,
    ClaimingSync,
    ClaimingSyncResult,
)
from polymarket_trade_assistant.sync.resolution import (
    ResolutionSync,
    ResolutionSyncResult,
    compute_profit_per_dollar,
)
from polymarket_trade_assistant.sync.top_traders import (
    TopPVSync,
    TopPVSyncResult,
    TopTraderTradesSync,
    TopTraderTradesSyncResult,
    merge_top_pv,
)
from polymarket_trade_assistant.sync.traders import (
    CleanupResult,
    DuplicateTakeCleanup,
    TraderBackfill,
    TraderBackfillResult,
)
from polymarket_trade_assistant.sync.trades import TradesSync, TradesSyncResult

__all__ = [
    "ClaimDetail",
    "ClaimingSync",
    "ClaimingSyncResult",
    "CleanupResult",
    "DuplicateTakeCleanup",
    "ResolutionSync",
    "ResolutionSyncResult",
    "TopPVSync",
    "TopPVSyncResult",
    "TopTraderTradesSync",
    "TopTraderTradesSyncResult",
    "TradesSync",
    "TradesSyncResult",
    "TraderBackfill",
    "TraderBackfillResult",
    "compute_profit_per_dollar",
    "merge_top_pv",
]
