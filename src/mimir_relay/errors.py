# src/mimir_relay/errors.py
from __future__ import annotations

from typing import Any, Optional


class RelayError(Exception):
    """Base class for everything the relay raises on purpose."""


class ClientValidationError(RelayError):
    """
    The caller's request was malformed (wrong method, bad JSON, bad message).

    These are the only failures surfaced with their real HTTP status.
    `kind` is a FailureKind from mimir_relay.core.fallback.
    """

    def __init__(self, kind: Any, status_code: int = 400) -> None:
        super().__init__(str(getattr(kind, "value", kind)))
        self.kind = kind
        self.status_code = status_code


class ConfigurationError(RelayError):
    """Missing credentials or an unusable relay.yml."""


class UpstreamError(RelayError):
    """
    Upstream model call failed.

    `detail` holds the raw upstream body (truncated) for server logs only;
    it must never be copied into a response.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: str = "",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class UpstreamTimeoutError(UpstreamError):
    pass


class UpstreamRateLimitError(UpstreamError):
    pass


class UpstreamServerError(UpstreamError):
    pass


class UpstreamStatusError(UpstreamError):
    """Any other non-2xx answer (4xx except 429)."""


class UpstreamProtocolError(UpstreamError):
    """2xx answer without a usable completion text."""


class UpstreamTransportError(UpstreamError):
    """Connection refused, DNS failure, TLS error and friends."""
