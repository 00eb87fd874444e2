"""Background job scheduler for the Polymarket Trade Assistant.

This module provides the Scheduler class that wires the sync jobs to their
shared clients and runs each one on its own timer.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from polymarket_trade_assistant.betting import BettingClient, CopyTrader
from polymarket_trade_assistant.claiming import ClaimEngine
from polymarket_trade_assistant.classifier import TraderClassifier
from polymarket_trade_assistant.config import Settings, get_settings
from polymarket_trade_assistant.gateway import PolymarketGateway
from polymarket_trade_assistant.storage import (
    DatabaseManager,
    TopTraderTradeRepository,
    TradeRepository,
)
from polymarket_trade_assistant.sync import (
    ClaimingSync,
    DuplicateTakeCleanup,
    ResolutionSync,
    TopPVSync,
    TopTraderTradesSync,
    TraderBackfill,
    TradesSync,
)

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[Any]]


class SchedulerState(str, Enum):
    """Scheduler lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass(frozen=True)
class ScheduledJob:
    """A periodic job. The first run happens after ``initial_delay_seconds``."""

    name: str
    interval_seconds: float
    func: JobFunc
    initial_delay_seconds: float = 0.0


@dataclass
class JobStats:
    """Statistics for a single job."""

    runs: int = 0
    failures: int = 0
    last_started_at: datetime | None = None
    last_finished_at: datetime | None = None
    last_result: Any = None
    last_error: str | None = None


@dataclass
class Services:
    """Shared clients used by the jobs and the CLI."""

    settings: Settings
    db: DatabaseManager
    gateway: PolymarketGateway
    classifier: TraderClassifier
    claim_engine: ClaimEngine
    betting: BettingClient
    copy_trader: CopyTrader | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> Services:
        db = DatabaseManager.from_settings(settings)
        gateway = PolymarketGateway.from_settings(settings)
        betting = BettingClient.from_settings(settings, gateway)
        copy_trader = None
        if settings.copy_trading.enabled and not settings.dry_run:
            copy_trader = CopyTrader(
                betting,
                db,
                amount_usdc=Decimal(str(settings.copy_trading.amount_usdc)),
                price_buffer=Decimal(str(settings.copy_trading.price_buffer)),
            )
        return cls(
            settings=settings,
            db=db,
            gateway=gateway,
            classifier=TraderClassifier(gateway),
            claim_engine=ClaimEngine.from_settings(settings, gateway),
            betting=betting,
            copy_trader=copy_trader,
        )

    async def close(self) -> None:
        await self.claim_engine.session.reset()
        await self.gateway.close()
        await self.db.close()


def build_jobs(services: Services) -> list[ScheduledJob]:
    """Build the enabled periodic jobs for ``services``."""
    settings = services.settings
    sched = settings.scheduler
    gateway, db = services.gateway, services.db

    jobs = [
        ScheduledJob("trades", sched.trades_interval_seconds, TradesSync(gateway, db).run),
        ScheduledJob(
            "resolution",
            sched.resolution_interval_seconds,
            ResolutionSync(gateway, db, TradeRepository, name="trades").run,
            initial_delay_seconds=sched.resolution_initial_delay_seconds,
        ),
    ]

    if sched.claiming_enabled and settings.claiming_configured and not settings.dry_run:
        jobs.append(
            ScheduledJob(
                "claiming",
                sched.claiming_interval_seconds,
                ClaimingSync(services.claim_engine, db).run,
            )
        )
    elif sched.claiming_enabled:
        logger.info("Claiming job disabled (credentials missing or dry run)")

    if sched.backfill_enabled:
        jobs.append(
            ScheduledJob(
                "backfill",
                sched.backfill_interval_seconds,
                TraderBackfill(services.classifier, db, copy_trader=services.copy_trader).run,
            )
        )

    if sched.top_traders_enabled:
        jobs.extend(
            [
                ScheduledJob("top_pv", sched.top_pv_interval_seconds, TopPVSync(gateway, db).run),
                ScheduledJob(
                    "top_trader_trades",
                    sched.top_trader_trades_interval_seconds,
                    TopTraderTradesSync(gateway, db).run,
                ),
                ScheduledJob(
                    "top_trader_resolution",
                    sched.top_trader_resolution_interval_seconds,
                    ResolutionSync(
                        gateway, db, TopTraderTradeRepository, name="top_trader_trades"
                    ).run,
                ),
            ]
        )
    return jobs


def build_manual_jobs(services: Services) -> dict[str, JobFunc]:
    """Every job runnable by name, including the one-off maintenance jobs."""
    gateway, db = services.gateway, services.db
    return {
        "trades": TradesSync(gateway, db).run,
        "resolution": ResolutionSync(gateway, db, TradeRepository, name="trades").run,
        "claiming": ClaimingSync(services.claim_engine, db).run,
        "backfill": TraderBackfill(services.classifier, db, copy_trader=services.copy_trader).run,
        "cleanup_takes": DuplicateTakeCleanup(db).run,
        "top_pv": TopPVSync(gateway, db).run,
        "top_trader_trades": TopTraderTradesSync(gateway, db).run,
        "top_trader_resolution": ResolutionSync(
            gateway, db, TopTraderTradeRepository, name="top_trader_trades"
        ).run,
    }


class Scheduler:
    """Runs each periodic job on its own task and timer.

    A job never overlaps with itself: the next tick is scheduled only after
    the current run returns. Failures are logged and counted, and the job
    waits for its next tick.

    Example:
        ```python
        from polymarket_trade_assistant.config import get_settings
        from polymarket_trade_assistant.scheduler import Scheduler

        async with Scheduler(get_settings()) as scheduler:
            await asyncio.sleep(3600)
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        jobs: list[ScheduledJob] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            jobs: Explicit job list. When given, no clients are built and
                ``settings`` is not read.
        """
        self._settings = settings
        self._explicit_jobs = jobs
        self._services: Services | None = None
        self._jobs: dict[str, ScheduledJob] = {}
        self._stats: dict[str, JobStats] = {}

        self._state = SchedulerState.STOPPED
        self._started_at: datetime | None = None
        self._stop_event: asyncio.Event | None = None
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def state(self) -> SchedulerState:
        """Current scheduler state."""
        return self._state

    @property
    def stats(self) -> dict[str, JobStats]:
        """Per-job statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._state == SchedulerState.RUNNING

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    def _load_jobs(self) -> None:
        if self._explicit_jobs is not None:
            jobs = self._explicit_jobs
        else:
            settings = self._settings or get_settings()
            settings.validate_requirements(command="run")
            self._services = Services.from_settings(settings)
            jobs = build_jobs(self._services)
        self._jobs = {job.name: job for job in jobs}
        for name in self._jobs:
            self._stats.setdefault(name, JobStats())

    async def start(self) -> None:
        """Start one background task per job.

        Raises:
            RuntimeError: If the scheduler is not stopped.
        """
        if self._state != SchedulerState.STOPPED:
            raise RuntimeError(f"Cannot start scheduler in state {self._state}")

        self._state = SchedulerState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting scheduler...")

        try:
            self._load_jobs()
        except Exception as e:
            self._state = SchedulerState.ERROR
            logger.error("Failed to start scheduler: %s", e)
            await self._cleanup()
            self._state = SchedulerState.STOPPED
            raise

        for job in self._jobs.values():
            self._tasks.append(asyncio.create_task(self._run_loop(job), name=f"job:{job.name}"))
            logger.info(
                "Scheduled %s every %ss (first run in %ss)",
                job.name,
                job.interval_seconds,
                job.initial_delay_seconds,
            )

        self._started_at = datetime.now(UTC)
        self._state = SchedulerState.RUNNING
        logger.info("Scheduler started with %d jobs", len(self._jobs))

    async def stop(self) -> None:
        """Stop all job tasks and release clients."""
        if self._state == SchedulerState.STOPPED:
            await self._cleanup()
            return

        self._state = SchedulerState.STOPPING
        logger.info("Stopping scheduler...")

        if self._stop_event:
            self._stop_event.set()

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []

        await self._cleanup()
        self._state = SchedulerState.STOPPED
        logger.info("Scheduler stopped")

    async def _cleanup(self) -> None:
        if self._services:
            await self._services.close()
            self._services = None

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; True when a stop was requested meanwhile."""
        if self._stop_event is None:
            raise RuntimeError("Scheduler is not running")
        if seconds <= 0:
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except TimeoutError:
            return False

    async def _run_loop(self, job: ScheduledJob) -> None:
        if await self._wait(job.initial_delay_seconds):
            return
        while True:
            await self._execute(job)
            if await self._wait(job.interval_seconds):
                return

    async def _execute(self, job: ScheduledJob) -> Any:
        stats = self._stats.setdefault(job.name, JobStats())
        stats.runs += 1
        stats.last_started_at = datetime.now(UTC)
        logger.info("Running job %s", job.name)
        try:
            result = await job.func()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            stats.failures += 1
            stats.last_error = str(e)
            logger.exception("Job %s failed: %s", job.name, e)
            return None
        finally:
            stats.last_finished_at = datetime.now(UTC)
        stats.last_result = result
        stats.last_error = None
        return result

    async def run_job_once(self, name: str) -> Any:
        """Run one job immediately, outside its timer.

        Raises:
            KeyError: If no job with that name is scheduled.
        """
        if not self._jobs:
            self._load_jobs()
        job = self._jobs.get(name)
        if job is None:
            raise KeyError(f"Unknown job: {name}")
        return await self._execute(job)

    async def run(self) -> None:
        """Start the scheduler and block until it is stopped or cancelled."""
        await self.start()

        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> Scheduler:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()

