"""Copy trading of take bets and share sizing helpers."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from polymarket_trade_assistant.betting.clob import BettingClient
from polymarket_trade_assistant.storage import (
    BetLogDTO,
    BetLogRepository,
    DatabaseManager,
    TradeDTO,
)

logger = logging.getLogger(__name__)

DEFAULT_COPY_AMOUNT_USDC = Decimal("2")
DEFAULT_PRICE_BUFFER = Decimal("0.05")
MAX_BUY_PRICE = Decimal("0.95")
MIN_SELL_PRICE = Decimal("0.05")

DEFAULT_SHARES = 5.0
MINIMUM_COST = 3.0

_CENT = Decimal("0.01")
_TENTH = Decimal("0.1")


def _round(value: float | Decimal, quantum: Decimal) -> Decimal:
    return Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)


def copy_price(side: str, original_price: Decimal, buffer: Decimal = DEFAULT_PRICE_BUFFER) -> Decimal:
    """Price for a copy order: crosses the original by ``buffer``, to the cent.

    BUY copies are capped at 0.95 and SELL copies floored at 0.05.
    """
    if side == "BUY":
        price = min(original_price + buffer, MAX_BUY_PRICE)
    else:
        price = max(original_price - buffer, MIN_SELL_PRICE)
    return _round(price, _CENT)


@dataclass(frozen=True)
class ShareCalculation:
    shares: float
    cost: float


def calculate_shares(
    price: float,
    minimum_cost: float = MINIMUM_COST,
    default_shares: float = DEFAULT_SHARES,
) -> ShareCalculation:
    """Shares to buy so an order costs at least ``minimum_cost``.

    Keeps ``default_shares`` when that already reaches the minimum; otherwise
    sizes up to the minimum, with shares rounded to 0.1 and cost to the cent.
    """
    if price <= 0:
        raise ValueError("price must be positive")
    default_cost = default_shares * price
    if default_cost >= minimum_cost:
        return ShareCalculation(shares=default_shares, cost=float(_round(default_cost, _CENT)))

    shares = float(_round(minimum_cost / price, _TENTH))
    return ShareCalculation(shares=shares, cost=float(_round(shares * price, _CENT)))


class CopyTrader:
    """Places a small fixed-size copy of a take bet and records it.

    Example:
        ```python
        copier = CopyTrader(betting, db)
        entry = await copier.auto_copy_trade(trade, follow_score=72)
        print(entry.status, entry.order_id)
        ```
    """

    def __init__(
        self,
        betting: BettingClient,
        db: DatabaseManager,
        *,
        amount_usdc: Decimal = DEFAULT_COPY_AMOUNT_USDC,
        price_buffer: Decimal = DEFAULT_PRICE_BUFFER,
    ) -> None:
        self._betting = betting
        self._db = db
        self._amount = amount_usdc
        self._buffer = price_buffer

    async def auto_copy_trade(self, trade: TradeDTO, *, follow_score: int | None) -> BetLogDTO:
        """Copy ``trade`` and append the outcome to the bet log.

        Placement failures are recorded as ``failed`` bet-log rows.
        """
        price = copy_price(trade.side, trade.price, self._buffer)
        logger.info(
            "Copying trade %s: %s %s %s @ %s (original %s)",
            trade.transaction_hash,
            trade.slug,
            trade.outcome,
            trade.side,
            price,
            trade.price,
        )

        result = await self._betting.place_bet(
            market_slug=trade.slug,
            outcome=trade.outcome,
            side="BUY" if trade.side == "BUY" else "SELL",
            amount=float(self._amount),
            price=float(price),
        )
        if result.success:
            logger.info("Copy order placed: %s", result.order_id)
        else:
            logger.warning("Copy order failed: %s", result.error)

        async with self._db.get_async_session() as session:
            return await BetLogRepository(session).insert(
                BetLogDTO(
                    order_id=result.order_id,
                    market_slug=trade.slug,
                    condition_id=result.condition_id or trade.condition_id,
                    token_id=result.token_id,
                    outcome=trade.outcome,
                    side=trade.side,
                    amount=self._amount,
                    price=price,
                    size=Decimal(str(result.size)) if result.size is not None else None,
                    order_type=result.order_type,
                    status="placed" if result.success else "failed",
                    error_message=result.error,
                    source="auto",
                    trigger_transaction_hash=trade.transaction_hash,
                    trigger_wallet=trade.proxy_wallet,
                    trigger_follow_score=follow_score,
                    placed_at=datetime.now(UTC) if result.success else None,
                )
            )
