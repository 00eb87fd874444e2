"""Claim error taxonomy and relayer error-text classification.

The relayer and RPC providers return free-form error strings with no
structured codes. Every call site that needs to tell a quota error from an
oracle delay goes through :func:`classify_claim_error`.
"""

import re
from enum import Enum

ORACLE_NOT_READY_MARKERS = ("result for condition not received yet",)
RATE_LIMIT_STATUS = 429

# Whole words only: relayer bodies carry nonces and hex data full of digits.
_RATE_LIMIT_TEXT = re.compile(
    r"\b(?:quota exceeded|rate[ -]?limit\w*|too many requests)\b", re.IGNORECASE
)
_RATE_LIMIT_CODE = re.compile(r"\b429\b")

_RESET_IN_SECONDS = re.compile(r"resets in (\d+) seconds?", re.IGNORECASE)
_UNITS_REMAINING = re.compile(r"(\d+) units? remaining", re.IGNORECASE)


class ClaimErrorKind(str, Enum):
    """How a failed claim attempt should be treated."""

    RATE_LIMITED = "rate_limited"
    ORACLE_NOT_READY = "oracle_not_ready"
    FAILED = "failed"


class ClaimError(Exception):
    """Base exception for claim engine errors."""


class ClaimingNotConfiguredError(ClaimError):
    """Raised when the signer, funder or builder credentials are missing."""


class UpstreamFetchError(ClaimError):
    """Raised when candidate positions cannot be fetched; aborts the cycle."""


class RelayerError(ClaimError):
    """Raised for a non-2xx relayer response or an unusable relayer payload."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def classify_claim_error(
    message: str | None, status_code: int | None = None
) -> ClaimErrorKind:
    """Classify a relayer/transaction error.

    An HTTP 429 is always a rate limit. Otherwise the text is searched for
    whole-word quota phrases, and for a bare ``429`` only when no status code
    is known. Rate limiting wins over oracle-not-ready when both appear,
    since it has the wider blast radius.
    """
    if status_code == RATE_LIMIT_STATUS:
        return ClaimErrorKind.RATE_LIMITED
    if not message:
        return ClaimErrorKind.FAILED
    if _RATE_LIMIT_TEXT.search(message) or (
        status_code is None and _RATE_LIMIT_CODE.search(message)
    ):
        return ClaimErrorKind.RATE_LIMITED
    text = message.lower()
    if any(marker in text for marker in ORACLE_NOT_READY_MARKERS):
        return ClaimErrorKind.ORACLE_NOT_READY
    return ClaimErrorKind.FAILED


def parse_rate_limit_reset(message: str | None) -> int | None:
    """Extract the ``resets in N seconds`` hint, if present."""
    if not message:
        return None
    match = _RESET_IN_SECONDS.search(message)
    return int(match.group(1)) if match else None


def parse_remaining_units(message: str | None) -> int | None:
    if not message:
        return None
    match = _UNITS_REMAINING.search(message)
    return int(match.group(1)) if match else None
