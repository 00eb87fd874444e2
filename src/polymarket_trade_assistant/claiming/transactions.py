"""Redeem calldata for Polymarket positions.

Standard markets redeem through the Conditional Tokens contract against
USDC.e collateral; negative-risk markets redeem through the NegRisk adapter.
Several redeem calls can be bundled into one wallet transaction with
:func:`encode_multisend` (Safe wallets) or :func:`encode_proxy_calls`
(proxy wallets).
"""

from collections.abc import Sequence
from dataclasses import dataclass

from eth_abi import encode
from eth_abi.packed import encode_packed
from web3 import Web3

CTF_ADDRESS = "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"
NEG_RISK_ADAPTER_ADDRESS = "0xC5d563A36AE78145C45a50134d48A1215220f80a"
USDC_ADDRESS = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
SAFE_MULTISEND_ADDRESS = "0xA238CBeb142c10Ef7Ad8442C6D1f9E89e07e7761"
PROXY_FACTORY_ADDRESS = "0xaB45c5A4B0c941a2F231C04C3f49182e1A254052"

ZERO_BYTES32 = b"\x00" * 32
MAX_UINT256 = 2**256 - 1

# Both outcome slots of a binary condition.
BINARY_INDEX_SETS = (1, 2)

CALL_OPERATION = 0
DELEGATE_CALL_OPERATION = 1
# Proxy factory call type: 1 = CALL.
PROXY_CALL_TYPE = 1


def _selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


CTF_REDEEM_SELECTOR = _selector("redeemPositions(address,bytes32,bytes32,uint256[])")
NEG_RISK_REDEEM_SELECTOR = _selector("redeemPositions(bytes32,uint256[])")
MULTISEND_SELECTOR = _selector("multiSend(bytes)")
PROXY_SELECTOR = _selector("proxy((uint8,address,uint256,bytes)[])")


@dataclass(frozen=True)
class RedeemCall:
    """A single contract call: target, hex calldata and native value."""

    to: str
    data: str
    value: int = 0

    @property
    def data_bytes(self) -> bytes:
        return bytes.fromhex(self.data.removeprefix("0x"))


def parse_condition_id(condition_id: str) -> bytes:
    """Convert a condition id to its 32-byte form.

    Accepts ``0x``-prefixed hex (left-padded to 32 bytes), a decimal
    integer, or bare hex.

    Raises:
        ValueError: If the id is empty or longer than 32 bytes.
    """
    value = condition_id.strip()
    if not value:
        raise ValueError("Empty condition id")
    if value.lower().startswith("0x"):
        hex_part = value[2:]
        if len(hex_part) > 64:
            raise ValueError(f"Condition id too long: {condition_id}")
        return bytes.fromhex(hex_part.zfill(64))
    if value.isdigit():
        return int(value).to_bytes(32, "big")
    if len(value) > 64:
        raise ValueError(f"Condition id too long: {condition_id}")
    return bytes.fromhex(value.zfill(64))


def build_ctf_redeem(condition_id: str) -> RedeemCall:
    """``redeemPositions(USDC.e, 0x0, conditionId, [1, 2])`` on the CTF."""
    args = encode(
        ["address", "bytes32", "bytes32", "uint256[]"],
        [USDC_ADDRESS, ZERO_BYTES32, parse_condition_id(condition_id), list(BINARY_INDEX_SETS)],
    )
    return RedeemCall(to=CTF_ADDRESS, data="0x" + (CTF_REDEEM_SELECTOR + args).hex())


def build_neg_risk_redeem(condition_id: str) -> RedeemCall:
    """``redeemPositions(conditionId, [max, max])`` on the NegRisk adapter.

    The adapter burns whatever balance the wallet holds for each outcome when
    the requested amount exceeds it.
    """
    args = encode(
        ["bytes32", "uint256[]"],
        [parse_condition_id(condition_id), [MAX_UINT256, MAX_UINT256]],
    )
    return RedeemCall(
        to=NEG_RISK_ADAPTER_ADDRESS,
        data="0x" + (NEG_RISK_REDEEM_SELECTOR + args).hex(),
    )


def build_redeem_call(condition_id: str, neg_risk: bool) -> RedeemCall:
    if neg_risk:
        return build_neg_risk_redeem(condition_id)
    return build_ctf_redeem(condition_id)


def encode_multisend(calls: Sequence[RedeemCall]) -> RedeemCall:
    """Bundle calls for a Safe ``delegatecall`` into MultiSend.

    Each call is packed as ``operation | to | value | len(data) | data``.
    """
    packed = b"".join(
        encode_packed(
            ["uint8", "address", "uint256", "uint256", "bytes"],
            [
                CALL_OPERATION,
                Web3.to_checksum_address(call.to),
                call.value,
                len(call.data_bytes),
                call.data_bytes,
            ],
        )
        for call in calls
    )
    data = MULTISEND_SELECTOR + encode(["bytes"], [packed])
    return RedeemCall(to=SAFE_MULTISEND_ADDRESS, data="0x" + data.hex())


def encode_proxy_calls(calls: Sequence[RedeemCall]) -> RedeemCall:
    """Bundle calls into a single proxy factory ``proxy(...)`` call."""
    args = encode(
        ["(uint8,address,uint256,bytes)[]"],
        [
            [
                (PROXY_CALL_TYPE, Web3.to_checksum_address(call.to), call.value, call.data_bytes)
                for call in calls
            ]
        ],
    )
    return RedeemCall(to=PROXY_FACTORY_ADDRESS, data="0x" + (PROXY_SELECTOR + args).hex())
