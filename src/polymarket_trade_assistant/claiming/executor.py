"""Transaction executor: RPC simulation and gas-sponsored relayer submission.

This module provides the executor used by the claim engine with:
- Read-only ``eth_call`` simulation with failover to a secondary RPC
- Safe (MultiSend) and proxy-wallet transaction building and signing
- Builder-authenticated relayer submission
- Polling of relayer transaction state until a terminal state
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

import httpx
from eth_account import Account
from eth_account.messages import encode_defunct
from py_clob_client.signing.hmac import build_hmac_signature
from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware
from web3.providers import AsyncHTTPProvider

from polymarket_trade_assistant.claiming.errors import ClaimError, RelayerError
from polymarket_trade_assistant.claiming.transactions import (
    CALL_OPERATION,
    DELEGATE_CALL_OPERATION,
    RedeemCall,
    encode_multisend,
    encode_proxy_calls,
)

if TYPE_CHECKING:
    from polymarket_trade_assistant.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_POLL_INTERVAL_SECONDS = 2.0
DEFAULT_MAX_POLLS = 60

SUCCESS_STATES = ("STATE_MINED", "STATE_CONFIRMED")
FAIL_STATE = "STATE_FAILED"

# signature_type 1 is a Polymarket proxy wallet; everything else is a Safe.
PROXY_SIGNATURE_TYPE = 1

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

SAFE_ABI = [
    {
        "name": "getTransactionHash",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "data", "type": "bytes"},
            {"name": "operation", "type": "uint8"},
            {"name": "safeTxGas", "type": "uint256"},
            {"name": "baseGas", "type": "uint256"},
            {"name": "gasPrice", "type": "uint256"},
            {"name": "gasToken", "type": "address"},
            {"name": "refundReceiver", "type": "address"},
            {"name": "_nonce", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bytes32"}],
    },
]


@dataclass(frozen=True)
class SimulationResult:
    """Outcome of a read-only call; ``error`` is the revert text verbatim."""

    success: bool
    error: str | None = None


@dataclass(frozen=True)
class SubmittedTransaction:
    transaction_id: str
    state: str | None = None
    transaction_hash: str | None = None


@dataclass(frozen=True)
class ConfirmedTransaction:
    transaction_id: str
    transaction_hash: str | None
    state: str


class TransactionExecutor(Protocol):
    """What the claim engine needs from a transaction backend."""

    async def simulate_call(self, call: RedeemCall, from_address: str) -> SimulationResult: ...

    async def submit_batch(self, calls: Sequence[RedeemCall], label: str) -> SubmittedTransaction: ...

    async def poll_until_terminal(
        self,
        transaction_id: str,
        *,
        success_states: Sequence[str] = SUCCESS_STATES,
        fail_state: str = FAIL_STATE,
        max_polls: int = DEFAULT_MAX_POLLS,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> ConfirmedTransaction | None: ...

    async def close(self) -> None: ...


def _pack_signature(signature_hex: str, *, safe: bool) -> str:
    """Repack an ``eth_sign`` signature as r || s || v.

    Safe contracts tell ``eth_sign`` signatures apart from EIP-712 ones by a
    v value offset by 4.
    """
    raw = bytes.fromhex(signature_hex.removeprefix("0x"))
    r, s, v = raw[:32], raw[32:64], raw[64]
    if v < 27:
        v += 27
    if safe:
        v += 4
    return "0x" + (r + s + bytes([v])).hex()


class RelayerExecutor:
    """Executes redeem calls through the Polymarket builder relayer.

    Simulation goes over JSON-RPC (primary, then fallback). Submission signs
    the wallet transaction with the signer key and posts it to the relayer,
    which pays gas on behalf of the funder wallet.

    Example:
        ```python
        executor = RelayerExecutor.from_settings(settings)
        result = await executor.simulate_call(call, funder)
        if result.success:
            submitted = await executor.submit_batch([call], "Redeem 1 position")
            confirmed = await executor.poll_until_terminal(submitted.transaction_id)
        await executor.close()
        ```
    """

    def __init__(
        self,
        *,
        private_key: str,
        funder_address: str,
        builder_api_key: str,
        builder_api_secret: str,
        builder_passphrase: str,
        relayer_url: str,
        rpc_url: str,
        fallback_rpc_url: str | None = None,
        signature_type: int = 0,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        """Initialize the executor.

        Args:
            private_key: Signer (EOA) private key.
            funder_address: Safe or proxy wallet that holds the positions.
            builder_api_key: Builder API key.
            builder_api_secret: Builder API secret used for request HMACs.
            builder_passphrase: Builder API passphrase.
            relayer_url: Relayer base URL.
            rpc_url: Primary Polygon RPC endpoint.
            fallback_rpc_url: Optional fallback RPC endpoint.
            signature_type: 1 for proxy wallets, anything else for Safes.
            client: Optional pre-built HTTP client (tests).
            timeout_seconds: Relayer request timeout.
        """
        self._account = Account.from_key(private_key)
        self._funder = Web3.to_checksum_address(funder_address)
        self._api_key = builder_api_key
        self._api_secret = builder_api_secret
        self._passphrase = builder_passphrase
        self._relayer_url = relayer_url.rstrip("/")
        self._signature_type = signature_type
        self._timeout = timeout_seconds
        self._client = client
        self._owns_client = client is None

        self._w3 = self._new_web3_client(rpc_url)
        self._w3_fallback: AsyncWeb3[AsyncHTTPProvider] | None = None
        if fallback_rpc_url:
            self._w3_fallback = self._new_web3_client(fallback_rpc_url)

    @classmethod
    def from_settings(cls, settings: Settings) -> RelayerExecutor:
        pm = settings.polymarket
        builder = settings.builder
        if not (
            settings.claiming_configured
            and pm.private_key
            and pm.funder_address
            and builder.api_key
            and builder.api_secret
            and builder.passphrase
        ):
            raise ClaimError("Claiming credentials are not configured")
        return cls(
            private_key=pm.private_key.get_secret_value(),
            funder_address=pm.funder_address,
            builder_api_key=builder.api_key.get_secret_value(),
            builder_api_secret=builder.api_secret.get_secret_value(),
            builder_passphrase=builder.passphrase.get_secret_value(),
            relayer_url=builder.relayer_url,
            rpc_url=settings.polygon.rpc_url,
            fallback_rpc_url=settings.polygon.fallback_rpc_url,
            signature_type=pm.signature_type,
        )

    @property
    def signer_address(self) -> str:
        return str(self._account.address)

    @property
    def is_safe(self) -> bool:
        return self._signature_type != PROXY_SIGNATURE_TYPE

    def _new_web3_client(self, rpc_url: str) -> AsyncWeb3[AsyncHTTPProvider]:
        client = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        try:
            client.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        except Exception as e:
            logger.warning("Failed to inject PoA middleware (rpc=%s): %s", rpc_url, e)
        return client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # RPC
    # ------------------------------------------------------------------

    async def _call_rpc(
        self,
        description: str,
        func: Callable[[AsyncWeb3[AsyncHTTPProvider]], Awaitable[T]],
    ) -> T:
        """Run an RPC call on the primary endpoint, then the fallback.

        Reverts are not retried: they would revert on any endpoint.
        """
        last_error: Exception | None = None
        clients = [("primary", self._w3)]
        if self._w3_fallback is not None:
            clients.append(("fallback", self._w3_fallback))

        for name, w3 in clients:
            try:
                return await func(w3)
            except ContractLogicError:
                raise
            except (Web3Exception, OSError, TimeoutError) as e:
                last_error = e
                logger.warning("%s RPC %s failed: %s", name.capitalize(), description, e)

        raise ClaimError(f"RPC {description} failed: {last_error}")

    async def simulate_call(self, call: RedeemCall, from_address: str) -> SimulationResult:
        """Execute ``call`` as a read-only ``eth_call`` from ``from_address``."""
        tx: dict[str, Any] = {
            "from": Web3.to_checksum_address(from_address),
            "to": Web3.to_checksum_address(call.to),
            "data": call.data,
            "value": call.value,
        }
        try:
            await self._call_rpc("eth_call", lambda w3: w3.eth.call(tx))
        except ContractLogicError as e:
            return SimulationResult(success=False, error=str(e))
        return SimulationResult(success=True)

    async def _safe_transaction_hash(self, target: RedeemCall, operation: int, nonce: int) -> bytes:
        async def _get_hash(w3: AsyncWeb3[AsyncHTTPProvider]) -> bytes:
            safe = w3.eth.contract(address=self._funder, abi=SAFE_ABI)
            result = await safe.functions.getTransactionHash(
                Web3.to_checksum_address(target.to),
                target.value,
                target.data_bytes,
                operation,
                0,
                0,
                0,
                ZERO_ADDRESS,
                ZERO_ADDRESS,
                nonce,
            ).call()
            return bytes(result)

        return await self._call_rpc("getTransactionHash", _get_hash)

    # ------------------------------------------------------------------
    # Relayer
    # ------------------------------------------------------------------

    def _builder_headers(self, method: str, path: str, body: str | None) -> dict[str, str]:
        timestamp = str(int(time.time()))
        signature = build_hmac_signature(self._api_secret, timestamp, method, path, body)
        return {
            "POLY_BUILDER_API_KEY": self._api_key,
            "POLY_BUILDER_PASSPHRASE": self._passphrase,
            "POLY_BUILDER_SIGNATURE": signature,
            "POLY_BUILDER_TIMESTAMP": timestamp,
        }

    async def _relayer_request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else None
        headers = self._builder_headers(method, path, body)
        if body is not None:
            headers["Content-Type"] = "application/json"

        try:
            response = await self._get_client().request(
                method,
                f"{self._relayer_url}{path}",
                params=params,
                content=body,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise RelayerError(f"Relayer {method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise RelayerError(
                f"Relayer {method} {path} failed ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise RelayerError(f"Relayer {method} {path} returned invalid JSON") from e

    async def get_nonce(self) -> int:
        data = await self._relayer_request(
            "GET",
            "/nonce",
            params={"address": self.signer_address, "type": "SAFE" if self.is_safe else "PROXY"},
        )
        try:
            return int(data["nonce"])
        except (KeyError, TypeError, ValueError) as e:
            raise RelayerError(f"Unexpected nonce response: {data!r}") from e

    async def _build_safe_payload(self, calls: Sequence[RedeemCall], label: str) -> dict[str, Any]:
        if len(calls) == 1:
            target, operation = calls[0], CALL_OPERATION
        else:
            target, operation = encode_multisend(calls), DELEGATE_CALL_OPERATION

        nonce = await self.get_nonce()
        tx_hash = await self._safe_transaction_hash(target, operation, nonce)
        signed = self._account.sign_message(encode_defunct(primitive=tx_hash))

        return {
            "data": target.data,
            "from": self.signer_address,
            "metadata": label,
            "nonce": str(nonce),
            "proxyWallet": self._funder,
            "signature": _pack_signature(signed.signature.hex(), safe=True),
            "signatureParams": {
                "gasPrice": "0",
                "operation": str(operation),
                "safeTxnGas": "0",
                "baseGas": "0",
                "gasToken": ZERO_ADDRESS,
                "refundReceiver": ZERO_ADDRESS,
            },
            "to": Web3.to_checksum_address(target.to),
            "type": "SAFE",
        }

    async def _build_proxy_payload(self, calls: Sequence[RedeemCall], label: str) -> dict[str, Any]:
        target = encode_proxy_calls(calls)
        nonce = await self.get_nonce()
        digest = Web3.keccak(target.data_bytes)
        signed = self._account.sign_message(encode_defunct(primitive=digest))

        return {
            "data": target.data,
            "from": self.signer_address,
            "metadata": label,
            "nonce": str(nonce),
            "proxyWallet": self._funder,
            "signature": _pack_signature(signed.signature.hex(), safe=False),
            "signatureParams": {"gasPrice": "0"},
            "to": Web3.to_checksum_address(target.to),
            "type": "PROXY",
        }

    async def submit_batch(self, calls: Sequence[RedeemCall], label: str) -> SubmittedTransaction:
        """Sign and submit ``calls`` as one wallet transaction.

        Raises:
            ValueError: If ``calls`` is empty.
            RelayerError: On a non-2xx response or a response without an id.
        """
        if not calls:
            raise ValueError("No calls to submit")

        if self.is_safe:
            payload = await self._build_safe_payload(calls, label)
        else:
            payload = await self._build_proxy_payload(calls, label)

        data = await self._relayer_request("POST", "/submit", payload=payload)
        transaction_id = data.get("transactionID") if isinstance(data, dict) else None
        if not transaction_id:
            raise RelayerError(f"Relayer response missing transactionID: {data!r}")

        logger.info("Submitted relayer transaction %s (%s)", transaction_id, label)
        return SubmittedTransaction(
            transaction_id=str(transaction_id),
            state=data.get("state"),
            transaction_hash=data.get("transactionHash") or data.get("hash"),
        )

    async def get_transaction(self, transaction_id: str) -> dict[str, Any] | None:
        data = await self._relayer_request("GET", "/transaction", params={"id": transaction_id})
        if isinstance(data, list):
            return data[0] if data else None
        if isinstance(data, dict):
            return data
        return None

    async def poll_until_terminal(
        self,
        transaction_id: str,
        *,
        success_states: Sequence[str] = SUCCESS_STATES,
        fail_state: str = FAIL_STATE,
        max_polls: int = DEFAULT_MAX_POLLS,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> ConfirmedTransaction | None:
        """Poll the relayer until the transaction succeeds, fails or times out.

        Returns:
            ConfirmedTransaction on success, None on failure or timeout.
        """
        for attempt in range(max_polls):
            try:
                tx = await self.get_transaction(transaction_id)
            except RelayerError as e:
                logger.warning(
                    "Polling %s failed (attempt %d/%d): %s", transaction_id, attempt + 1, max_polls, e
                )
                tx = None

            if tx is not None:
                state = str(tx.get("state", ""))
                if state in success_states:
                    return ConfirmedTransaction(
                        transaction_id=transaction_id,
                        transaction_hash=tx.get("transactionHash") or tx.get("hash"),
                        state=state,
                    )
                if state == fail_state:
                    logger.warning("Relayer transaction %s failed", transaction_id)
                    return None

            if attempt < max_polls - 1:
                await asyncio.sleep(interval_seconds)

        logger.warning("Relayer transaction %s timed out after %d polls", transaction_id, max_polls)
        return None
