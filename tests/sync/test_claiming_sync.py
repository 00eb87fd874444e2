"""Tests for the claiming cycle."""

from collections.abc import Sequence
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from polymarket_trade_assistant.claiming import (
    ClaimEngine,
    ClaimSession,
    ConfirmedTransaction,
    RedeemCall,
    RelayerError,
    SimulationResult,
    SubmittedTransaction,
)
from polymarket_trade_assistant.gateway import Position
from polymarket_trade_assistant.storage import (
    ClaimLogDTO,
    ClaimLogRepository,
    DatabaseManager,
)
from polymarket_trade_assistant.sync import ClaimingSync

FUNDER = "0xf00df00df00df00df00df00df00df00df00df00d"


def _cid(i: int) -> str:
    return "0x" + f"{i:02x}" * 32


def _position(i: int, value: float = 10.0, outcome: str = "Yes") -> Position:
    return Position(
        proxy_wallet=FUNDER,
        asset=str(i),
        condition_id=_cid(i),
        size=value,
        avg_price=0.5,
        cur_price=1.0,
        current_value=value,
        cash_pnl=value / 2,
        realized_pnl=0.0,
        title=f"Market {i}",
        slug=f"market-{i}",
        outcome=outcome,
        redeemable=True,
    )


class ScriptedExecutor:
    """Fails simulations for ``reverts`` and raises ``submit_errors`` in order."""

    def __init__(
        self, *, reverts: Sequence[str] = (), submit_errors: Sequence[str | Exception] = ()
    ) -> None:
        self.reverts = {cid[2:] for cid in reverts}
        self.submit_errors = list(submit_errors)
        self.batches: list[list[RedeemCall]] = []

    async def simulate_call(self, call: RedeemCall, from_address: str) -> SimulationResult:
        if any(cid in call.data for cid in self.reverts):
            return SimulationResult(success=False, error="execution reverted: bad condition")
        return SimulationResult(success=True)

    async def submit_batch(self, calls: Sequence[RedeemCall], label: str) -> SubmittedTransaction:
        self.batches.append(list(calls))
        if self.submit_errors:
            error = self.submit_errors.pop(0)
            raise error if isinstance(error, Exception) else RuntimeError(error)
        return SubmittedTransaction(transaction_id=f"tx-{len(self.batches)}")

    async def poll_until_terminal(self, transaction_id: str, **kwargs) -> ConfirmedTransaction:
        return ConfirmedTransaction(
            transaction_id=transaction_id, transaction_hash=f"0x{transaction_id}", state="STATE_MINED"
        )

    async def close(self) -> None:
        pass


def _sync(
    db: DatabaseManager, executor: ScriptedExecutor, positions: list[Position]
) -> tuple[ClaimingSync, ClaimEngine]:
    gateway = MagicMock()
    gateway.fetch_positions = AsyncMock(return_value=positions)
    engine = ClaimEngine(
        gateway,
        ClaimSession(executor_factory=lambda: executor),
        funder_address=FUNDER,
        configured=True,
    )
    return ClaimingSync(engine, db), engine


async def _logged(db: DatabaseManager) -> list[ClaimLogDTO]:
    async with db.get_async_session() as session:
        return await ClaimLogRepository(session).list_recent(limit=100)


class TestClaimingSync:
    @pytest.mark.asyncio
    async def test_claims_and_logs(self, db: DatabaseManager) -> None:
        executor = ScriptedExecutor()
        sync, _ = _sync(db, executor, [_position(1, 10.0), _position(2, 2.5)])

        result = await sync.run()

        assert result.checked == 2
        assert result.claimed == 2
        assert result.total_value == pytest.approx(12.5)
        assert len(executor.batches) == 1
        logged = await _logged(db)
        assert {entry.status for entry in logged} == {"claimed"}
        assert all(entry.tx_hash == "0xtx-1" for entry in logged)
        assert all(entry.claimed_at is not None for entry in logged)

    @pytest.mark.asyncio
    async def test_never_claims_twice(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            await ClaimLogRepository(session).insert(
                ClaimLogDTO(
                    condition_id=_cid(1),
                    market_slug="market-1",
                    outcome="Yes",
                    value=Decimal(10),
                    status="claimed",
                    tx_hash="0xold",
                )
            )
        executor = ScriptedExecutor()
        sync, _ = _sync(db, executor, [_position(1), _position(2)])

        first = await sync.run()
        second = await sync.run()

        assert first.claimed == 1
        assert first.skipped == 1
        assert second.claimed == 0
        assert second.skipped == 2
        assert len(executor.batches) == 1
        assert len(executor.batches[0]) == 1

    @pytest.mark.asyncio
    async def test_simulation_revert_is_skipped(self, db: DatabaseManager) -> None:
        executor = ScriptedExecutor(reverts=[_cid(2)])
        sync, _ = _sync(db, executor, [_position(1), _position(2)])

        result = await sync.run()

        assert result.claimed == 1
        assert result.skipped == 1
        skipped = [d for d in result.details if d.status == "skipped"]
        assert skipped[0].condition_id == _cid(2)
        assert "execution reverted" in skipped[0].error
        statuses = {entry.condition_id: entry.status for entry in await _logged(db)}
        assert statuses == {_cid(1): "claimed", _cid(2): "skipped"}

    @pytest.mark.asyncio
    async def test_oracle_not_ready_is_skipped(self, db: DatabaseManager) -> None:
        executor = ScriptedExecutor(
            submit_errors=["execution reverted: result for condition not received yet"]
        )
        sync, _ = _sync(db, executor, [_position(1)])

        result = await sync.run()

        assert result.claimed == 0
        assert result.failed == 0
        assert result.skipped == 1
        assert result.details[0].error == "Oracle not ready"
        assert [entry.status for entry in await _logged(db)] == ["skipped"]

    @pytest.mark.asyncio
    async def test_rate_limit_aborts_remaining_chunks(self, db: DatabaseManager) -> None:
        executor = ScriptedExecutor(submit_errors=["429 quota exceeded, resets in 60 seconds"])
        sync, engine = _sync(db, executor, [_position(i) for i in range(1, 11)])

        result = await sync.run()

        assert result.rate_limited
        assert result.failed == 10
        assert result.claimed == 0
        assert len(executor.batches) == 1
        assert engine.is_rate_limited()

        again = await sync.run()
        assert again.rate_limited
        assert again.checked == 0
        assert len(executor.batches) == 1

    @pytest.mark.asyncio
    async def test_generic_failure_marks_chunk_failed(self, db: DatabaseManager) -> None:
        executor = ScriptedExecutor(submit_errors=["insufficient funds"])
        sync, _ = _sync(db, executor, [_position(1)])

        result = await sync.run()

        assert result.failed == 1
        assert not result.rate_limited
        assert result.details[0].error == "insufficient funds"

    @pytest.mark.asyncio
    async def test_digits_429_in_a_relayer_error_fail_only_that_chunk(
        self, db: DatabaseManager
    ) -> None:
        error = RelayerError(
            "Relayer POST /submit failed (400): invalid signature for nonce 14290",
            status_code=400,
        )
        executor = ScriptedExecutor(submit_errors=[error])
        sync, engine = _sync(db, executor, [_position(i) for i in range(1, 18)])

        result = await sync.run()

        assert not result.rate_limited
        assert not engine.is_rate_limited()
        assert len(executor.batches) == 3
        assert result.failed == 8
        assert result.claimed == 9

    @pytest.mark.asyncio
    async def test_both_outcomes_of_a_condition_share_one_redeem(
        self, db: DatabaseManager
    ) -> None:
        executor = ScriptedExecutor()
        positions = [_position(1, 10.0, "Yes"), _position(1, 4.0, "No"), _position(2, 1.0)]
        sync, _ = _sync(db, executor, positions)

        result = await sync.run()

        assert result.claimed == 3
        assert result.total_value == pytest.approx(15.0)
        assert [(d.outcome, d.value) for d in result.details] == [
            ("Yes", 10.0),
            ("No", 4.0),
            ("Yes", 1.0),
        ]
        assert [len(batch) for batch in executor.batches] == [2]
        logged = {entry.condition_id: entry for entry in await _logged(db)}
        assert len(logged) == 2
        assert logged[_cid(1)].value == Decimal("14")
        assert logged[_cid(1)].outcome == "Yes, No"
        assert logged[_cid(1)].status == "claimed"

    @pytest.mark.asyncio
    async def test_concurrent_cycle_is_skipped(self, db: DatabaseManager) -> None:
        executor = ScriptedExecutor()
        sync, engine = _sync(db, executor, [_position(1)])

        async with engine.session.cycle_lock:
            result = await sync.run()

        assert result.checked == 0
        assert executor.batches == []

    @pytest.mark.asyncio
    async def test_unconfigured_engine_is_noop(self, db: DatabaseManager) -> None:
        gateway = MagicMock()
        gateway.fetch_positions = AsyncMock()
        engine = ClaimEngine(gateway, ClaimSession(), funder_address=None, configured=False)

        result = await ClaimingSync(engine, db).run()

        assert result.checked == 0
        gateway.fetch_positions.assert_not_awaited()
