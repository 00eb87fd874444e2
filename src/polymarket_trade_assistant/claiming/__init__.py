"""Claiming - Batched, pre-validated redemption of winning positions."""

from polymarket_trade_assistant.claiming.engine import (
    MAX_BATCH_SIZE,
    BatchClaimResult,
    ClaimAllResult,
    ClaimablePosition,
    ClaimEngine,
    ClaimResult,
    ClaimTarget,
    InvalidPosition,
    PreValidationResult,
    SimulationReport,
    claim_targets,
)
from polymarket_trade_assistant.claiming.errors import (
    ClaimError,
    ClaimErrorKind,
    ClaimingNotConfiguredError,
    RelayerError,
    UpstreamFetchError,
    classify_claim_error,
    parse_rate_limit_reset,
)
from polymarket_trade_assistant.claiming.executor import (
    ConfirmedTransaction,
    RelayerExecutor,
    SimulationResult,
    SubmittedTransaction,
    TransactionExecutor,
)
from polymarket_trade_assistant.claiming.session import (
    ClaimSession,
    RateLimitState,
    RateLimitStatus,
)
from polymarket_trade_assistant.claiming.transactions import RedeemCall, build_redeem_call

__all__ = [
    "MAX_BATCH_SIZE",
    "BatchClaimResult",
    "ClaimAllResult",
    "ClaimEngine",
    "ClaimError",
    "ClaimErrorKind",
    "ClaimResult",
    "ClaimSession",
    "ClaimTarget",
    "ClaimablePosition",
    "ClaimingNotConfiguredError",
    "ConfirmedTransaction",
    "InvalidPosition",
    "PreValidationResult",
    "RateLimitState",
    "RateLimitStatus",
    "RedeemCall",
    "RelayerError",
    "RelayerExecutor",
    "SimulationReport",
    "SimulationResult",
    "SubmittedTransaction",
    "TransactionExecutor",
    "UpstreamFetchError",
    "build_redeem_call",
    "claim_targets",
    "classify_claim_error",
    "parse_rate_limit_reset",
]
