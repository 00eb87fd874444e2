"""Claiming cycle: redeem every winning position once, and record each attempt.

Cycle order:
1. Skip when claiming is not configured or the relayer quota is exhausted.
2. Fetch claimable positions (redeemable with value > 0).
3. Drop condition ids that already have a ``claimed`` claim-log row.
4. Group positions by condition; one redeem covers every outcome held.
5. Simulate each redeem; reverts are logged as ``skipped``.
6. Redeem in chunks; a rate-limited chunk aborts the rest of the cycle.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Literal

from polymarket_trade_assistant.claiming import (
    BatchClaimResult,
    ClaimablePosition,
    ClaimEngine,
    ClaimErrorKind,
    ClaimTarget,
    claim_targets,
)
from polymarket_trade_assistant.claiming.engine import chunked
from polymarket_trade_assistant.storage import ClaimLogDTO, ClaimLogRepository, DatabaseManager

logger = logging.getLogger(__name__)

ClaimStatus = Literal["claimed", "failed", "skipped"]

ORACLE_NOT_READY_MESSAGE = "Oracle not ready"


@dataclass(frozen=True)
class ClaimDetail:
    condition_id: str
    title: str
    outcome: str
    value: float
    status: ClaimStatus
    tx_hash: str | None = None
    error: str | None = None


@dataclass
class ClaimingSyncResult:
    checked: int = 0
    claimed: int = 0
    failed: int = 0
    skipped: int = 0
    total_value: float = 0.0
    rate_limited: bool = False
    details: list[ClaimDetail] = field(default_factory=list)


class ClaimingSync:
    """Runs one claim cycle end to end.

    Only one cycle runs at a time per process (``ClaimSession.cycle_lock``);
    the partial unique index on ``claim_log`` backs this up across
    processes.

    Example:
        ```python
        sync = ClaimingSync(engine, db)
        result = await sync.run()
        print(result.claimed, result.total_value)
        ```
    """

    def __init__(self, engine: ClaimEngine, db: DatabaseManager) -> None:
        self._engine = engine
        self._db = db

    async def run(self) -> ClaimingSyncResult:
        lock = self._engine.session.cycle_lock
        if lock.locked():
            logger.info("Claiming cycle already running, skipping")
            return ClaimingSyncResult()
        async with lock:
            return await self._run_cycle()

    async def _log_attempt(
        self,
        group: list[ClaimablePosition],
        status: ClaimStatus,
        *,
        tx_hash: str | None = None,
        error: str | None = None,
    ) -> None:
        first = group[0]
        try:
            async with self._db.get_async_session() as session:
                await ClaimLogRepository(session).insert(
                    ClaimLogDTO(
                        condition_id=first.condition_id,
                        market_slug=first.market_slug,
                        outcome=", ".join(p.outcome for p in group),
                        value=sum((Decimal(str(p.current_value)) for p in group), Decimal(0)),
                        status=status,
                        tx_hash=tx_hash,
                        error_message=error,
                    )
                )
        except Exception as e:
            logger.error("Failed to log claim attempt for %s: %s", first.condition_id, e)

    async def _record(
        self,
        result: ClaimingSyncResult,
        group: list[ClaimablePosition],
        status: ClaimStatus,
        *,
        tx_hash: str | None = None,
        error: str | None = None,
    ) -> None:
        """Count and detail every position, then write one claim-log row for the condition."""
        for position in group:
            if status == "claimed":
                result.claimed += 1
                result.total_value += position.current_value
            elif status == "failed":
                result.failed += 1
            else:
                result.skipped += 1
            result.details.append(
                ClaimDetail(
                    condition_id=position.condition_id,
                    title=position.title,
                    outcome=position.outcome,
                    value=position.current_value,
                    status=status,
                    tx_hash=tx_hash,
                    error=error,
                )
            )
        await self._log_attempt(group, status, tx_hash=tx_hash, error=error)

    async def _run_cycle(self) -> ClaimingSyncResult:
        result = ClaimingSyncResult()

        if not self._engine.is_configured():
            logger.info("Claiming not configured, skipping")
            return result

        if self._engine.is_rate_limited():
            status = self._engine.get_rate_limit_status()
            logger.info(
                "Relayer rate limited (resets in %ds), skipping this run",
                int(status.resets_in or 0),
            )
            result.rate_limited = True
            return result

        positions = await self._engine.get_claimable_positions()
        result.checked = len(positions)
        if not positions:
            logger.info("No winning positions to claim")
            return result

        async with self._db.get_async_session() as session:
            already_claimed = await ClaimLogRepository(session).claimed_condition_ids(
                p.condition_id for p in positions
            )

        groups: dict[str, list[ClaimablePosition]] = defaultdict(list)
        for position in positions:
            if position.condition_id in already_claimed:
                logger.debug("Skipping %s (already claimed)", position.condition_id)
                result.skipped += 1
            else:
                groups[position.condition_id].append(position)
        if not groups:
            logger.info("All positions already claimed")
            return result

        candidates = [p for group in groups.values() for p in group]
        validation = await self._engine.pre_validate_positions(claim_targets(candidates))
        if validation.invalid:
            logger.info("%d conditions failed pre-validation, skipping", len(validation.invalid))
        for invalid in validation.invalid:
            await self._record(result, groups.pop(invalid.condition_id), "skipped", error=invalid.error)

        if not groups:
            logger.info("No positions passed pre-validation")
            self._log_summary(result)
            return result

        chunks = chunked(validation.valid, self._engine.max_batch_size)
        logger.info(
            "Claiming %d validated conditions ($%.2f total) in %d chunks",
            len(groups),
            sum(p.current_value for group in groups.values() for p in group),
            len(chunks),
        )

        for number, chunk in enumerate(chunks, start=1):
            batch = await self._engine.claim_positions_batched(chunk)
            chunk_groups = [groups[t.condition_id] for t in chunk]

            if batch.success:
                logger.info("Chunk %d/%d claimed, tx %s", number, len(chunks), batch.tx_hash)
                for group in chunk_groups:
                    await self._record(result, group, "claimed", tx_hash=batch.tx_hash)
                continue

            logger.warning("Chunk %d/%d failed: %s", number, len(chunks), batch.error)
            if batch.rate_limited:
                await self._abort_remaining(result, chunks[number - 1 :], groups, batch)
                break

            if batch.error_kind is ClaimErrorKind.ORACLE_NOT_READY:
                logger.info("Oracle not ready for chunk %d, will retry next run", number)
                for group in chunk_groups:
                    await self._record(result, group, "skipped", error=ORACLE_NOT_READY_MESSAGE)
            else:
                for group in chunk_groups:
                    await self._record(result, group, "failed", error=batch.error)

        self._log_summary(result)
        return result

    async def _abort_remaining(
        self,
        result: ClaimingSyncResult,
        remaining: list[list[ClaimTarget]],
        groups: dict[str, list[ClaimablePosition]],
        batch: BatchClaimResult,
    ) -> None:
        logger.warning("Rate limited, stopping further chunks")
        result.rate_limited = True
        for chunk in remaining:
            for target in chunk:
                await self._record(result, groups[target.condition_id], "failed", error=batch.error)

    @staticmethod
    def _log_summary(result: ClaimingSyncResult) -> None:
        logger.info(
            "Claiming run complete: checked=%d claimed=%d failed=%d skipped=%d value=$%.2f",
            result.checked,
            result.claimed,
            result.failed,
            result.skipped,
            result.total_value,
        )
