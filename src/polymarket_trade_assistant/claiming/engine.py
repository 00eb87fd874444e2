"""Claim engine: discovers redeemable positions and redeems them in batches.

Every claim is validated with a read-only simulation before it is allowed
to spend relayer quota, and batches are capped so a single transaction
never exceeds :data:`MAX_BATCH_SIZE` redeem calls.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from polymarket_trade_assistant.claiming.errors import (
    ClaimErrorKind,
    ClaimingNotConfiguredError,
    RelayerError,
    UpstreamFetchError,
    classify_claim_error,
)
from polymarket_trade_assistant.claiming.executor import (
    DEFAULT_MAX_POLLS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    FAIL_STATE,
    SUCCESS_STATES,
    RelayerExecutor,
    SimulationResult,
)
from polymarket_trade_assistant.claiming.session import ClaimSession, RateLimitStatus
from polymarket_trade_assistant.claiming.transactions import RedeemCall, build_redeem_call
from polymarket_trade_assistant.gateway import GatewayError, PolymarketGateway
from polymarket_trade_assistant.gateway.models import Position

if TYPE_CHECKING:
    from polymarket_trade_assistant.config import Settings

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 8


@dataclass(frozen=True)
class ClaimablePosition:
    """A funder-wallet position as seen by the claim engine."""

    condition_id: str
    asset: str
    market_slug: str
    title: str
    outcome: str
    size: float
    avg_price: float
    cur_price: float
    current_value: float
    cash_pnl: float
    realized_pnl: float
    neg_risk: bool
    redeemable: bool

    @property
    def is_claimable(self) -> bool:
        """Redeemable and worth something; zero value is a resolved loss."""
        return self.redeemable and self.current_value > 0

    @classmethod
    def from_position(cls, position: Position) -> ClaimablePosition:
        return cls(
            condition_id=position.condition_id,
            asset=position.asset,
            market_slug=position.slug,
            title=position.title,
            outcome=position.outcome,
            size=position.size,
            avg_price=position.avg_price,
            cur_price=position.cur_price,
            current_value=position.current_value,
            cash_pnl=position.cash_pnl,
            realized_pnl=position.realized_pnl,
            neg_risk=position.negative_risk,
            redeemable=position.redeemable,
        )


@dataclass(frozen=True)
class ClaimTarget:
    condition_id: str
    neg_risk: bool = False


@dataclass(frozen=True)
class InvalidPosition:
    condition_id: str
    error: str


@dataclass
class PreValidationResult:
    valid: list[ClaimTarget] = field(default_factory=list)
    invalid: list[InvalidPosition] = field(default_factory=list)


@dataclass
class BatchClaimResult:
    """Outcome of one relayer transaction covering up to a batch of targets."""

    success: bool
    tx_hash: str | None = None
    error: str | None = None
    rate_limited: bool = False
    positions: list[tuple[str, bool]] = field(default_factory=list)
    status_code: int | None = None

    @property
    def error_kind(self) -> ClaimErrorKind | None:
        if self.success:
            return None
        if self.rate_limited:
            return ClaimErrorKind.RATE_LIMITED
        return classify_claim_error(self.error, self.status_code)


@dataclass(frozen=True)
class ClaimResult:
    success: bool
    condition_id: str
    tx_hash: str | None = None
    error: str | None = None


@dataclass
class ClaimAllResult:
    total: int = 0
    claimed: int = 0
    failed: int = 0
    rate_limited: bool = False
    tx_hash: str | None = None
    results: list[ClaimResult] = field(default_factory=list)


@dataclass(frozen=True)
class SimulationReport:
    """Dry-run outcome for a single position."""

    condition_id: str
    neg_risk: bool
    call: RedeemCall
    simulation: SimulationResult


def _rate_limited_message(status: RateLimitStatus) -> str:
    if status.resets_in is None:
        return "Rate limited"
    return f"Rate limited - resets in {int(status.resets_in)} seconds"


def chunked(items: Sequence[ClaimTarget], size: int) -> list[list[ClaimTarget]]:
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def claim_targets(positions: Sequence[ClaimablePosition]) -> list[ClaimTarget]:
    """One redeem target per condition, in first-seen order.

    A redeem with index sets ``[1, 2]`` pays out every outcome of the
    condition, so holding both sides still needs only one call.
    """
    targets: dict[str, ClaimTarget] = {}
    for position in positions:
        seen = targets.get(position.condition_id)
        neg_risk = position.neg_risk or (seen is not None and seen.neg_risk)
        targets[position.condition_id] = ClaimTarget(position.condition_id, neg_risk)
    return list(targets.values())


class ClaimEngine:
    """Redeems winning positions held by the funder wallet.

    Example:
        ```python
        engine = ClaimEngine.from_settings(settings, gateway)
        positions = await engine.get_claimable_positions()
        targets = [ClaimTarget(p.condition_id, p.neg_risk) for p in positions]
        checked = await engine.pre_validate_positions(targets)
        result = await engine.claim_positions_batched(checked.valid[:MAX_BATCH_SIZE])
        ```
    """

    def __init__(
        self,
        gateway: PolymarketGateway,
        session: ClaimSession,
        *,
        funder_address: str | None,
        configured: bool,
        max_batch_size: int = MAX_BATCH_SIZE,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        poll_max_attempts: int = DEFAULT_MAX_POLLS,
    ) -> None:
        self._gateway = gateway
        self.session = session
        self._funder = funder_address
        self._configured = configured and bool(funder_address)
        self.max_batch_size = max_batch_size
        self._poll_interval = poll_interval_seconds
        self._poll_max_attempts = poll_max_attempts

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        gateway: PolymarketGateway,
        session: ClaimSession | None = None,
    ) -> ClaimEngine:
        if session is None:
            session = ClaimSession(
                executor_factory=lambda: RelayerExecutor.from_settings(settings),
                fallback_cooldown_seconds=settings.claiming.rate_limit_fallback_seconds,
            )
        return cls(
            gateway,
            session,
            funder_address=settings.polymarket.funder_address,
            configured=settings.claiming_configured,
            max_batch_size=settings.claiming.max_batch_size,
            poll_interval_seconds=settings.claiming.poll_interval_seconds,
            poll_max_attempts=settings.claiming.poll_max_attempts,
        )

    def is_configured(self) -> bool:
        return self._configured

    def is_rate_limited(self) -> bool:
        return self.session.is_rate_limited()

    def get_rate_limit_status(self) -> RateLimitStatus:
        return self.session.rate_limit_status()

    def _require_funder(self) -> str:
        if not self._configured or not self._funder:
            raise ClaimingNotConfiguredError("Claiming is not configured")
        return self._funder

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def get_positions(self, *, only_redeemable: bool = False) -> list[ClaimablePosition]:
        """Fetch the funder wallet's positions.

        Raises:
            ClaimingNotConfiguredError: If claiming credentials are missing.
            UpstreamFetchError: If the positions feed cannot be fetched.
        """
        funder = self._require_funder()
        try:
            positions = await self._gateway.fetch_positions(funder, only_redeemable=only_redeemable)
        except GatewayError as e:
            raise UpstreamFetchError(f"Failed to fetch positions for {funder}: {e}") from e
        return [ClaimablePosition.from_position(p) for p in positions]

    async def get_all_redeemable_positions(self) -> list[ClaimablePosition]:
        """Redeemable positions including resolved losses (value 0)."""
        positions = await self.get_positions(only_redeemable=True)
        return [p for p in positions if p.redeemable]

    async def get_claimable_positions(self) -> list[ClaimablePosition]:
        positions = await self.get_positions(only_redeemable=True)
        return [p for p in positions if p.is_claimable]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def _simulate(self, target: ClaimTarget) -> tuple[RedeemCall | None, SimulationResult]:
        funder = self._require_funder()
        try:
            call = build_redeem_call(target.condition_id, target.neg_risk)
        except ValueError as e:
            return None, SimulationResult(success=False, error=str(e))
        try:
            result = await self.session.get_executor().simulate_call(call, funder)
        except Exception as e:
            logger.warning("Simulation of %s errored: %s", target.condition_id, e)
            return call, SimulationResult(success=False, error=str(e))
        return call, result

    async def pre_validate_positions(self, targets: Sequence[ClaimTarget]) -> PreValidationResult:
        """Simulate each redeem call; a revert marks only that position invalid."""
        result = PreValidationResult()
        for target in targets:
            _, simulation = await self._simulate(target)
            if simulation.success:
                result.valid.append(target)
            else:
                error = simulation.error or "Simulation failed"
                logger.info("Pre-validation rejected %s: %s", target.condition_id, error)
                result.invalid.append(InvalidPosition(condition_id=target.condition_id, error=error))
        return result

    async def simulate_position(self, condition_id: str, neg_risk: bool = False) -> SimulationReport:
        """Dry-run a single redeem without submitting anything."""
        target = ClaimTarget(condition_id=condition_id, neg_risk=neg_risk)
        call, simulation = await self._simulate(target)
        if call is None:
            raise ValueError(simulation.error or f"Invalid condition id: {condition_id}")
        return SimulationReport(
            condition_id=condition_id,
            neg_risk=neg_risk,
            call=call,
            simulation=simulation,
        )

    # ------------------------------------------------------------------
    # Claiming
    # ------------------------------------------------------------------

    async def claim_positions_batched(self, targets: Sequence[ClaimTarget]) -> BatchClaimResult:
        """Redeem up to ``max_batch_size`` positions in one relayer transaction.

        Args:
            targets: Positions to redeem, already pre-validated.

        Returns:
            BatchClaimResult. ``rate_limited`` is set when the relayer quota
            is exhausted (before or during the attempt).

        Raises:
            ValueError: If more than ``max_batch_size`` targets are given.
            ClaimingNotConfiguredError: If claiming credentials are missing.
        """
        if len(targets) > self.max_batch_size:
            raise ValueError(
                f"Batch of {len(targets)} exceeds maximum of {self.max_batch_size} positions"
            )
        self._require_funder()

        if self.session.is_rate_limited():
            return BatchClaimResult(
                success=False,
                error=_rate_limited_message(self.session.rate_limit_status()),
                rate_limited=True,
                positions=[(t.condition_id, False) for t in targets],
            )
        if not targets:
            return BatchClaimResult(success=False, error="No positions to claim")

        failed = [(t.condition_id, False) for t in targets]
        try:
            calls = [build_redeem_call(t.condition_id, t.neg_risk) for t in targets]
            executor = self.session.get_executor()
            label = f"Redeem {len(calls)} position{'s' if len(calls) != 1 else ''}"
            submitted = await executor.submit_batch(calls, label)
            confirmed = await executor.poll_until_terminal(
                submitted.transaction_id,
                success_states=SUCCESS_STATES,
                fail_state=FAIL_STATE,
                max_polls=self._poll_max_attempts,
                interval_seconds=self._poll_interval,
            )
        except Exception as e:
            message = str(e)
            status_code = e.status_code if isinstance(e, RelayerError) else None
            if classify_claim_error(message, status_code) is ClaimErrorKind.RATE_LIMITED:
                self.session.handle_rate_limit_error(message)
                return BatchClaimResult(
                    success=False, error=message, rate_limited=True, positions=failed
                )
            logger.warning("Batch claim of %d positions failed: %s", len(targets), message)
            return BatchClaimResult(
                success=False, error=message, positions=failed, status_code=status_code
            )

        if confirmed is None:
            return BatchClaimResult(
                success=False,
                error=f"Transaction failed or timed out. ID: {submitted.transaction_id}",
                positions=failed,
            )

        logger.info("Claimed %d positions in tx %s", len(targets), confirmed.transaction_hash)
        return BatchClaimResult(
            success=True,
            tx_hash=confirmed.transaction_hash,
            positions=[(t.condition_id, True) for t in targets],
        )

    async def claim_position(self, condition_id: str, neg_risk: bool = False) -> ClaimResult:
        """Redeem a single position."""
        batch = await self.claim_positions_batched(
            [ClaimTarget(condition_id=condition_id, neg_risk=neg_risk)]
        )
        return ClaimResult(
            success=batch.success,
            condition_id=condition_id,
            tx_hash=batch.tx_hash,
            error=batch.error,
        )

    async def claim_all_winning(self) -> ClaimAllResult:
        """Validate and redeem every claimable position, batch by batch.

        Results are per condition. Stops at the first rate-limited batch; the
        remaining conditions are reported as failed.
        """
        targets = claim_targets(await self.get_claimable_positions())
        result = ClaimAllResult(total=len(targets))
        if not targets:
            return result

        checked = await self.pre_validate_positions(targets)
        for invalid in checked.invalid:
            result.failed += 1
            result.results.append(
                ClaimResult(success=False, condition_id=invalid.condition_id, error=invalid.error)
            )

        batches = chunked(checked.valid, self.max_batch_size)
        for index, batch in enumerate(batches):
            outcome = await self.claim_positions_batched(batch)
            if outcome.success:
                result.claimed += len(batch)
                result.tx_hash = outcome.tx_hash
            else:
                result.failed += len(batch)
            result.results.extend(
                ClaimResult(
                    success=ok,
                    condition_id=cid,
                    tx_hash=outcome.tx_hash if ok else None,
                    error=None if ok else outcome.error,
                )
                for cid, ok in outcome.positions
            )
            if outcome.rate_limited:
                result.rate_limited = True
                for remaining in batches[index + 1 :]:
                    result.failed += len(remaining)
                    result.results.extend(
                        ClaimResult(success=False, condition_id=t.condition_id, error=outcome.error)
                        for t in remaining
                    )
                break

        return result
