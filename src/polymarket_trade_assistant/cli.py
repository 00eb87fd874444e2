"""Command line entry point.

Usage:
    python -m polymarket_trade_assistant run
    python -m polymarket_trade_assistant claim-all
    python -m polymarket_trade_assistant sync trades
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import asdict, is_dataclass
from typing import Any

from polymarket_trade_assistant.claiming import ClaimEngine, PreValidationResult, claim_targets
from polymarket_trade_assistant.config import Settings, get_settings
from polymarket_trade_assistant.scheduler import Scheduler, Services, build_manual_jobs
from polymarket_trade_assistant.storage import (
    ClaimLogRepository,
    TopTraderTradeRepository,
    TradeRepository,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

SYNC_JOBS = (
    "trades",
    "resolution",
    "claiming",
    "backfill",
    "cleanup_takes",
    "top_pv",
    "top_trader_trades",
    "top_trader_resolution",
)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.get_logging_level(), format=LOG_FORMAT)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _emit(value: Any) -> None:
    if is_dataclass(value) and not isinstance(value, type):
        value = asdict(value)
    print(json.dumps(value, indent=2, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="polymarket_trade_assistant",
        description="Polymarket trade tracking, claiming and copy trading",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the background scheduler until interrupted")
    sub.add_parser("init-db", help="Create database tables")
    sub.add_parser("status", help="Show configuration, stats and claim state")

    positions = sub.add_parser("positions", help="List funder wallet positions")
    positions.add_argument("--all", action="store_true", help="Include non-redeemable positions")

    claim = sub.add_parser("claim", help="Claim a single winning position")
    claim.add_argument("condition_id")
    claim.add_argument("--neg-risk", action="store_true")

    sub.add_parser("claim-all", help="Claim every winning position")

    simulate = sub.add_parser("simulate", help="Dry-run a redeem call")
    simulate.add_argument("condition_id")
    simulate.add_argument("--neg-risk", action="store_true")

    classify = sub.add_parser("classify", help="Classify a wallet")
    classify.add_argument("wallet")

    sync = sub.add_parser("sync", help="Run one sync job now")
    sync.add_argument("job", choices=SYNC_JOBS)

    sub.add_parser("derive-api-creds", help="Derive CLOB API credentials for the signer key")

    bet = sub.add_parser("bet", help="Place an order on a market outcome")
    bet.add_argument("slug")
    bet.add_argument("outcome")
    bet.add_argument("side", choices=("BUY", "SELL"))
    bet.add_argument("amount", type=float, help="USDC amount")
    bet.add_argument("price", type=float)
    bet.add_argument("--order-type", choices=("GTC", "GTD", "FOK"), default="GTC")

    sub.add_parser("orders", help="List open CLOB orders")
    sub.add_parser("balances", help="Show USDC balance and allowance")

    cancel = sub.add_parser("cancel", help="Cancel an open order")
    target = cancel.add_mutually_exclusive_group(required=True)
    target.add_argument("order_id", nargs="?")
    target.add_argument("--all", action="store_true", help="Cancel every open order")

    return parser


async def _status(services: Services) -> dict[str, Any]:
    async with services.db.get_async_session() as session:
        trade_repo = TradeRepository(session)
        trades = await trade_repo.count()
        resolved = await trade_repo.resolved_stats()
        top_stats = await TopTraderTradeRepository(session).stats()
        recent_claims = await ClaimLogRepository(session).list_recent(limit=10)
    rate_limit = services.claim_engine.get_rate_limit_status()
    return {
        "settings": services.settings.redacted_summary(),
        "trades": trades,
        "resolved": asdict(resolved),
        "top_trader_trades": asdict(top_stats),
        "claiming": {
            "configured": services.claim_engine.is_configured(),
            "rate_limited": rate_limit.is_limited,
            "resets_in": rate_limit.resets_in,
        },
        "recent_claims": [asdict(c) for c in recent_claims],
    }


async def _validate_claimable(engine: ClaimEngine) -> PreValidationResult:
    positions = await engine.get_claimable_positions()
    return await engine.pre_validate_positions(claim_targets(positions))


async def _run_command(args: argparse.Namespace, settings: Settings) -> int:
    if args.command == "run":
        await Scheduler(settings).run()
        return 0

    if args.command in ("claim", "claim-all"):
        settings.validate_requirements(command="claim")
    elif args.command in ("bet", "derive-api-creds", "orders", "balances", "cancel"):
        settings.validate_requirements(command="bet")
    elif args.command == "sync":
        settings.validate_requirements(command="sync")

    services = Services.from_settings(settings)
    try:
        handlers: dict[str, Callable[[], Awaitable[Any]]] = {
            "init-db": lambda: services.db.create_schema(),
            "status": lambda: _status(services),
            "positions": lambda: services.claim_engine.get_positions(
                only_redeemable=not args.all
            ),
            "claim": lambda: services.claim_engine.claim_position(
                args.condition_id, args.neg_risk
            ),
            "claim-all": services.claim_engine.claim_all_winning,
            "simulate": lambda: services.claim_engine.simulate_position(
                args.condition_id, args.neg_risk
            ),
            "classify": lambda: services.classifier.classify(args.wallet),
            "sync": lambda: build_manual_jobs(services)[args.job](),
            "derive-api-creds": services.betting.derive_api_credentials,
            "bet": lambda: services.betting.place_bet(
                market_slug=args.slug,
                outcome=args.outcome,
                side=args.side,
                amount=args.amount,
                price=args.price,
                order_type=args.order_type,
            ),
            "orders": services.betting.get_open_orders,
            "balances": services.betting.get_balances,
            "cancel": lambda: (
                services.betting.cancel_all()
                if args.all
                else services.betting.cancel_order(args.order_id)
            ),
        }
        if settings.dry_run:
            # Nothing is submitted: claims are simulated and bets only resolve their token.
            handlers["claim"] = handlers["simulate"]
            handlers["claim-all"] = lambda: _validate_claimable(services.claim_engine)
            handlers["bet"] = lambda: services.betting.resolve_token(args.slug, args.outcome)
            if args.command == "cancel":
                raise ValueError("Cancelling orders is disabled while DRY_RUN is set")
            if args.command in ("claim", "claim-all", "bet"):
                logger.info("Dry run: %s will not submit anything", args.command)
            if args.command == "sync" and args.job == "claiming":
                raise ValueError("The claiming sync submits transactions; unset DRY_RUN to run it")
        result = await handlers[args.command]()
    finally:
        await services.close()

    if args.command == "init-db":
        print("Database schema created")
    elif isinstance(result, list):
        _emit([asdict(item) for item in result])
    elif result is not None:
        _emit(result)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings)
    try:
        return asyncio.run(_run_command(args, settings))
    except KeyboardInterrupt:
        return 130
    except ValueError as e:
        logger.error("%s", e)
        return 2
