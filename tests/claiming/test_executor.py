"""Tests for the relayer executor."""

import json
from collections.abc import Callable

import httpx
import pytest

from polymarket_trade_assistant.claiming.errors import ClaimError, RelayerError
from polymarket_trade_assistant.claiming.executor import RelayerExecutor, _pack_signature
from polymarket_trade_assistant.claiming.transactions import (
    PROXY_FACTORY_ADDRESS,
    build_ctf_redeem,
)
from polymarket_trade_assistant.config import Settings

PRIVATE_KEY = "0x" + "11" * 32
FUNDER = "0x" + "f00d" * 10
# base64 of "secretsecretsecretsecret"
API_SECRET = "c2VjcmV0c2VjcmV0c2VjcmV0c2VjcmV0"


def _executor(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> RelayerExecutor:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RelayerExecutor(
        private_key=PRIVATE_KEY,
        funder_address=FUNDER,
        builder_api_key="key",
        builder_api_secret=API_SECRET,
        builder_passphrase="pass",
        relayer_url="https://relayer.test/",
        rpc_url="http://127.0.0.1:8545",
        client=client,
        **kwargs,
    )


class TestPackSignature:
    def test_low_v_is_normalized(self) -> None:
        raw = "0x" + "aa" * 32 + "bb" * 32 + "00"
        packed = _pack_signature(raw, safe=False)

        assert packed == "0x" + "aa" * 32 + "bb" * 32 + "1b"

    def test_safe_offsets_v_by_four(self) -> None:
        raw = "aa" * 32 + "bb" * 32 + "1c"
        packed = _pack_signature(raw, safe=True)

        assert packed.endswith("20")
        assert len(packed) == 2 + 130


class TestRelayerRequests:
    @pytest.mark.asyncio
    async def test_get_nonce_sends_builder_headers(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"nonce": "7"})

        executor = _executor(handler)
        assert await executor.get_nonce() == 7

        request = seen[0]
        assert request.url.path == "/nonce"
        assert request.url.params["type"] == "SAFE"
        assert request.url.params["address"] == executor.signer_address
        assert request.headers["POLY_BUILDER_API_KEY"] == "key"
        assert request.headers["POLY_BUILDER_PASSPHRASE"] == "pass"
        assert "POLY_BUILDER_SIGNATURE" in request.headers

    @pytest.mark.asyncio
    async def test_error_status_raises_relayer_error(self) -> None:
        executor = _executor(lambda r: httpx.Response(429, text="quota exceeded"))

        with pytest.raises(RelayerError) as exc_info:
            await executor.get_nonce()

        assert exc_info.value.status_code == 429
        assert "quota exceeded" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_proxy_submit(self) -> None:
        payloads: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/nonce":
                assert request.url.params["type"] == "PROXY"
                return httpx.Response(200, json={"nonce": 3})
            payloads.append(json.loads(request.content))
            return httpx.Response(200, json={"transactionID": "tx-1", "state": "STATE_NEW"})

        executor = _executor(handler, signature_type=1)
        submitted = await executor.submit_batch([build_ctf_redeem("0x01")], "Redeem 1 position")

        assert submitted.transaction_id == "tx-1"
        assert submitted.state == "STATE_NEW"
        payload = payloads[0]
        assert payload["type"] == "PROXY"
        assert payload["nonce"] == "3"
        assert payload["metadata"] == "Redeem 1 position"
        assert payload["to"].lower() == PROXY_FACTORY_ADDRESS.lower()
        assert payload["from"] == executor.signer_address

    @pytest.mark.asyncio
    async def test_submit_without_transaction_id_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/nonce":
                return httpx.Response(200, json={"nonce": 0})
            return httpx.Response(200, json={"state": "STATE_NEW"})

        executor = _executor(handler, signature_type=1)

        with pytest.raises(RelayerError):
            await executor.submit_batch([build_ctf_redeem("0x01")], "Redeem 1 position")

    @pytest.mark.asyncio
    async def test_submit_empty_batch_raises(self) -> None:
        executor = _executor(lambda r: httpx.Response(500))

        with pytest.raises(ValueError):
            await executor.submit_batch([], "nothing")


class TestPolling:
    @pytest.mark.asyncio
    async def test_polls_until_mined(self) -> None:
        states = iter(["STATE_NEW", "STATE_EXECUTED", "STATE_MINED"])

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json=[{"state": next(states), "transactionHash": "0xhash"}]
            )

        executor = _executor(handler)
        confirmed = await executor.poll_until_terminal("tx-1", interval_seconds=0)

        assert confirmed is not None
        assert confirmed.state == "STATE_MINED"
        assert confirmed.transaction_hash == "0xhash"

    @pytest.mark.asyncio
    async def test_failed_state_returns_none(self) -> None:
        executor = _executor(lambda r: httpx.Response(200, json={"state": "STATE_FAILED"}))

        assert await executor.poll_until_terminal("tx-1", interval_seconds=0) is None

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json=[])

        executor = _executor(handler)
        result = await executor.poll_until_terminal("tx-1", max_polls=3, interval_seconds=0)

        assert result is None
        assert calls == 3


class TestFromSettings:
    def test_missing_builder_credentials_raise_claim_error(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path
    ) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/assistant")
        monkeypatch.setenv("POLYMARKET_PRIVATE_KEY", PRIVATE_KEY)
        monkeypatch.setenv("POLYMARKET_FUNDER_ADDRESS", FUNDER)
        monkeypatch.setenv("BUILDER_API_KEY", "key")
        monkeypatch.delenv("BUILDER_API_SECRET", raising=False)
        monkeypatch.delenv("BUILDER_PASSPHRASE", raising=False)

        with pytest.raises(ClaimError):
            RelayerExecutor.from_settings(Settings())
