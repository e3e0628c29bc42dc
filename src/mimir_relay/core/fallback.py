# src/mimir_relay/core/fallback.py
from __future__ import annotations

import random
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from mimir_relay.errors import (
    ConfigurationError,
    UpstreamRateLimitError,
    UpstreamServerError,
    UpstreamStatusError,
    UpstreamTimeoutError,
)


# ============================================================
# Failure kinds
# ============================================================

class FailureKind(str, Enum):
    # caller's fault -> real HTTP status
    method_not_allowed = "method_not_allowed"
    malformed_json = "malformed_json"
    empty_message = "empty_message"
    message_too_long = "message_too_long"

    # our/upstream's fault -> masked as an in-character reply
    missing_credentials = "missing_credentials"
    timeout = "timeout"
    rate_limit = "rate_limit"
    upstream_5xx = "upstream_5xx"
    upstream_status = "upstream_status"
    invalid_payload = "invalid_payload"


_FIXED_KINDS = [k for k in FailureKind if k is not FailureKind.invalid_payload]


# ============================================================
# Stable hash for dev-mode mock selection
# ============================================================

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a over the UTF-8 bytes of `text`."""
    h = FNV_OFFSET_BASIS
    for byte in text.encode("utf-8", errors="surrogatepass"):
        h ^= byte
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return h


def mock_reply(message: str, pool: Sequence[str]) -> str:
    if not pool:
        raise ConfigurationError("mock reply pool is empty")
    return pool[fnv1a_32(message) % len(pool)]


# ============================================================
# Policy
# ============================================================

class FallbackPolicy:
    """
    Deterministic failure -> reply mapping.

    Only `invalid_payload` is random (pick from the apology pool); pass a
    seeded `rng` to make it reproducible.
    """

    def __init__(
        self,
        replies: Mapping[str, Any],
        rng: Optional[random.Random] = None,
    ) -> None:
        missing = [k.value for k in _FIXED_KINDS if not replies.get(k.value)]
        if missing:
            raise ConfigurationError(f"replies missing for: {', '.join(missing)}")

        self._fixed: Dict[FailureKind, str] = {
            k: str(replies[k.value]) for k in _FIXED_KINDS
        }
        self._apologies: List[str] = [str(r) for r in replies.get("apologies") or [] if r]
        self._mock: List[str] = [str(r) for r in replies.get("mock") or [] if r]
        if not self._apologies:
            raise ConfigurationError("replies.apologies must not be empty")
        if not self._mock:
            raise ConfigurationError("replies.mock must not be empty")
        self._rng = rng or random.Random()

    @property
    def apologies(self) -> List[str]:
        return list(self._apologies)

    @property
    def mock_pool(self) -> List[str]:
        return list(self._mock)

    def fallback_for(self, kind: FailureKind) -> str:
        if kind is FailureKind.invalid_payload:
            return self._rng.choice(self._apologies)
        return self._fixed[kind]

    def mock_reply(self, message: str) -> str:
        return mock_reply(message, self._mock)


def kind_for_error(exc: BaseException) -> FailureKind:
    """Map an exception from the upstream path to its FailureKind."""
    if isinstance(exc, UpstreamTimeoutError):
        return FailureKind.timeout
    if isinstance(exc, UpstreamRateLimitError):
        return FailureKind.rate_limit
    if isinstance(exc, UpstreamServerError):
        return FailureKind.upstream_5xx
    if isinstance(exc, UpstreamStatusError):
        return FailureKind.upstream_status
    if isinstance(exc, ConfigurationError):
        return FailureKind.missing_credentials
    # protocol violations, transport failures, anything unexpected
    return FailureKind.invalid_payload
