"""Tests for the Polymarket read gateway."""

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from polymarket_trade_assistant.gateway import (
    GatewayHTTPError,
    GatewayParseError,
    GatewayTransientError,
    PolymarketGateway,
)


def _trade_row(tx: str = "0xtx1", **overrides: Any) -> dict[str, Any]:
    row = {
        "transactionHash": tx,
        "proxyWallet": "0xWallet",
        "side": "buy",
        "asset": "123",
        "conditionId": "0xcond",
        "size": "5000",
        "price": 0.6,
        "timestamp": 1_700_000_000,
        "title": "Will it rain?",
        "slug": "will-it-rain",
        "eventSlug": "weather",
        "outcome": "Yes",
        "outcomeIndex": 0,
    }
    row.update(overrides)
    return row


def _gateway(handler: Callable[[httpx.Request], httpx.Response]) -> PolymarketGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PolymarketGateway(client=client, max_retries=2, retry_delay_seconds=0)


class TestRequests:
    """Retry and status handling."""

    @pytest.mark.asyncio
    async def test_retries_transient_status(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=[_trade_row()])

        trades = await _gateway(handler).fetch_trades(limit=10)

        assert calls == 3
        assert len(trades) == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_transient(self) -> None:
        gateway = _gateway(lambda r: httpx.Response(429))

        with pytest.raises(GatewayTransientError):
            await gateway.fetch_trades()

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(400)

        with pytest.raises(GatewayHTTPError) as exc_info:
            await _gateway(handler).fetch_trades()

        assert exc_info.value.status_code == 400
        assert calls == 1

    @pytest.mark.asyncio
    async def test_invalid_json_raises_parse_error(self) -> None:
        gateway = _gateway(lambda r: httpx.Response(200, text="<html>"))

        with pytest.raises(GatewayParseError):
            await gateway.fetch_trades()

    @pytest.mark.asyncio
    async def test_non_list_payload_raises_parse_error(self) -> None:
        gateway = _gateway(lambda r: httpx.Response(200, json={"error": "nope"}))

        with pytest.raises(GatewayParseError):
            await gateway.fetch_trades()


class TestDataApi:
    @pytest.mark.asyncio
    async def test_fetch_trades_skips_malformed_rows(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json=[
                    _trade_row("0xa"),
                    _trade_row("0xb", side="HOLD"),
                    {"transactionHash": "0xc"},
                    "garbage",
                    _trade_row("0xd", price=None),
                ],
            )

        trades = await _gateway(handler).fetch_trades(limit=500, offset=500)

        assert [t.transaction_hash for t in trades] == ["0xa"]
        trade = trades[0]
        assert trade.side == "BUY"
        assert trade.size == 5000.0
        assert trade.amount == pytest.approx(3000.0)
        assert seen[0].url.path == "/trades"
        assert seen[0].url.params["offset"] == "500"

    @pytest.mark.asyncio
    async def test_fetch_positions_only_redeemable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["redeemable"] == "true"
            return httpx.Response(
                200,
                json=[
                    {"conditionId": "0x1", "redeemable": True, "currentValue": 10},
                    {"conditionId": "0x2", "redeemable": False, "currentValue": 5},
                ],
            )

        positions = await _gateway(handler).fetch_positions("0xabc", only_redeemable=True)

        assert [p.condition_id for p in positions] == ["0x1"]
        assert positions[0].current_value == 10.0

    @pytest.mark.asyncio
    async def test_leaderboard_rank_parses_string_rank(self) -> None:
        gateway = _gateway(
            lambda r: httpx.Response(
                200, json=[{"rank": "42", "proxyWallet": "0xabc", "vol": 1000, "pnl": 250.5}]
            )
        )

        entry = await gateway.fetch_leaderboard_rank("0xabc")

        assert entry is not None
        assert entry.rank == 42
        assert entry.pnl == 250.5

    @pytest.mark.asyncio
    async def test_unranked_wallet(self) -> None:
        gateway = _gateway(lambda r: httpx.Response(200, json=[]))

        assert await gateway.fetch_leaderboard_rank("0xabc") is None


class TestLookups:
    @pytest.mark.asyncio
    async def test_missing_profile_is_none(self) -> None:
        gateway = _gateway(lambda r: httpx.Response(404))

        assert await gateway.fetch_profile("0xabc") is None

    @pytest.mark.asyncio
    async def test_unknown_market_status_is_none(self) -> None:
        gateway = _gateway(lambda r: httpx.Response(404))

        assert await gateway.fetch_market_status("0xcond") is None

    @pytest.mark.asyncio
    async def test_resolved_market_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/markets/0xcond"
            return httpx.Response(
                200,
                json={
                    "condition_id": "0xcond",
                    "closed": True,
                    "end_date_iso": "2026-10-01T00:00:00Z",
                    "tokens": [
                        {"token_id": "1", "outcome": "Yes", "price": 1, "winner": True},
                        {"token_id": "2", "outcome": "No", "price": 0, "winner": False},
                    ],
                },
            )

        status = await _gateway(handler).fetch_market_status("0xcond")

        assert status is not None
        assert status.resolved
        assert status.winning_outcome == "Yes"
        assert status.end_date is not None
        assert status.end_date.year == 2026

    @pytest.mark.asyncio
    async def test_open_market_status(self) -> None:
        gateway = _gateway(
            lambda r: httpx.Response(
                200,
                json={"tokens": [{"outcome": "Yes", "winner": False}, {"outcome": "No"}]},
            )
        )

        status = await gateway.fetch_market_status("0xcond")

        assert status is not None
        assert not status.resolved
        assert status.winning_outcome is None

    @pytest.mark.asyncio
    async def test_gamma_market_decodes_json_strings(self) -> None:
        gateway = _gateway(
            lambda r: httpx.Response(
                200,
                json=[
                    {
                        "id": "9",
                        "slug": "will-it-rain",
                        "conditionId": "0xcond",
                        "outcomes": '["Yes", "No"]',
                        "clobTokenIds": '["111", "222"]',
                        "negRisk": True,
                    }
                ],
            )
        )

        market = await gateway.fetch_gamma_market_by_slug("will-it-rain")

        assert market is not None
        assert market.outcomes == ("Yes", "No")
        assert market.clob_token_ids == ("111", "222")
        assert market.neg_risk
