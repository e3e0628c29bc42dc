# src/mimir_relay/handler.py
"""
Per-request relay state machine.

    ReceiveRequest -> ValidateMethod -> ValidateBody -> AssembleContext
        -> CallUpstream -> SanitizeReply -> RespondOK

Validation failures end in RespondClientError (real 4xx). Upstream and
sanitization failures end in a masked 200 with an in-character reply.
OPTIONS short-circuits to an empty 200 (CORS preflight).
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from mimir_relay.adapters import groq
from mimir_relay.core.clean import sanitize, sanitize_reply
from mimir_relay.core.config import Settings
from mimir_relay.core.context import assemble, window_payload
from mimir_relay.core.fallback import FailureKind, FallbackPolicy, kind_for_error
from mimir_relay.core.logging import relay_trace
from mimir_relay.errors import (
    ClientValidationError,
    UpstreamError,
    UpstreamProtocolError,
)
from mimir_relay.models import RelayResponse

logger = logging.getLogger(__name__)

# (cfg, messages, api_key, *, cancel) -> raw completion text
Upstream = Callable[..., Awaitable[str]]

# fallbacks that keep the plain {reply} envelope (no error flag)
_QUIET_KINDS = {
    FailureKind.timeout,
    FailureKind.rate_limit,
    FailureKind.upstream_5xx,
    FailureKind.upstream_status,
}


@dataclass
class RelayResult:
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None  # None -> empty body


class RelayHandler:
    """
    Stateless: one instance can serve any number of concurrent requests.
    Conversation history arrives with every request and is never stored.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        policy: Optional[FallbackPolicy] = None,
        upstream: Optional[Upstream] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.policy = policy or FallbackPolicy(settings.replies)
        self.upstream: Upstream = upstream or groq.chat
        self._clock = clock

    # ---------------------------------------------------------
    # helpers
    # ---------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        headers = self.settings.cors_headers()
        headers["Content-Type"] = "application/json"
        return headers

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _respond(self, status_code: int, envelope: RelayResponse) -> RelayResult:
        return RelayResult(status_code, self._headers(), envelope.to_body())

    def _client_error(self, exc: ClientValidationError) -> RelayResult:
        kind: FailureKind = exc.kind
        return self._respond(
            exc.status_code,
            RelayResponse(
                reply=self.policy.fallback_for(kind),
                error=True,
                detail=self.settings.errors.get(kind.value) or kind.value,
            ),
        )

    def _parse(self, raw_body: Union[bytes, str, None]) -> Tuple[str, Any]:
        if isinstance(raw_body, bytes):
            try:
                raw_body = raw_body.decode("utf-8")
            except UnicodeDecodeError as ex:
                raise ClientValidationError(FailureKind.malformed_json) from ex

        try:
            body = json.loads(raw_body or "{}")
        except ValueError as ex:
            raise ClientValidationError(FailureKind.malformed_json) from ex
        if not isinstance(body, dict):
            raise ClientValidationError(FailureKind.malformed_json)

        message = body.get("message")
        # control-only text sanitizes to "" and must not reach the upstream
        if not isinstance(message, str) or not sanitize(message, self.settings.message_chars):
            raise ClientValidationError(FailureKind.empty_message)
        if len(message) > self.settings.message_chars:
            raise ClientValidationError(FailureKind.message_too_long)

        return message, body.get("history") or []

    # ---------------------------------------------------------
    # entry point
    # ---------------------------------------------------------

    async def handle(
        self,
        method: str,
        raw_body: Union[bytes, str, None],
        cancel: Optional[asyncio.Event] = None,
    ) -> RelayResult:
        """
        Run one request through the state machine.

        `cancel` aborts the upstream call when set; a fresh token is made
        per request when the caller has none.
        """
        method = (method or "").upper()
        relay_trace("relay.receive", method=method)

        if method == "OPTIONS":
            return RelayResult(200, self._headers(), None)

        try:
            if method != "POST":
                raise ClientValidationError(FailureKind.method_not_allowed, status_code=405)
            message, history = self._parse(raw_body)
        except ClientValidationError as ex:
            logger.warning("rejected request: %s (status=%s)", ex.kind.value, ex.status_code)
            return self._client_error(ex)

        api_key = self.settings.api_key
        if not api_key:
            return self._without_credentials(message)

        window = assemble(
            self.settings.system_prompt,
            history,
            message,
            max_history=self.settings.max_history,
            history_limit=self.settings.history_entry_chars,
            message_limit=self.settings.message_chars,
        )
        relay_trace("relay.upstream", model=self.settings.model.model, window=len(window))

        t0 = time.perf_counter()
        try:
            raw = await self.upstream(
                self.settings.model,
                window_payload(window),
                api_key,
                cancel=cancel if cancel is not None else asyncio.Event(),
            )
            reply = sanitize_reply(raw, self.settings.reply_chars)
            if not reply:
                raise UpstreamProtocolError("reply empty after sanitization")
        except UpstreamError as ex:
            return self._upstream_fallback(ex)
        except Exception:
            logger.exception("unexpected relay failure")
            return self._upstream_fallback(None)

        logger.info(
            "mimir replied chars=%d latency_ms=%d",
            len(reply),
            int((time.perf_counter() - t0) * 1000),
        )
        return self._respond(200, RelayResponse(reply=reply, timestamp=self._now_ms()))

    # ---------------------------------------------------------
    # failure paths
    # ---------------------------------------------------------

    def _without_credentials(self, message: str) -> RelayResult:
        env_name = self.settings.model.api_key_env
        if self.settings.dev_mode:
            logger.warning("%s not set; dev mode, answering with mock reply", env_name)
            return self._respond(
                200,
                RelayResponse(
                    reply=self.policy.mock_reply(message),
                    mock=True,
                    timestamp=self._now_ms(),
                ),
            )

        logger.error("%s not set; relay is not configured", env_name)
        kind = FailureKind.missing_credentials
        return self._respond(
            200,
            RelayResponse(
                reply=self.policy.fallback_for(kind),
                error=True,
                detail=self.settings.errors.get(kind.value) or kind.value,
            ),
        )

    def _upstream_fallback(self, exc: Optional[UpstreamError]) -> RelayResult:
        kind = kind_for_error(exc) if exc is not None else FailureKind.invalid_payload
        if exc is not None:
            logger.error(
                "upstream failed kind=%s status=%s err=%s detail=%s",
                kind.value,
                exc.status_code,
                exc,
                exc.detail,
            )

        reply = self.policy.fallback_for(kind)
        if kind in _QUIET_KINDS:
            return self._respond(200, RelayResponse(reply=reply))
        return self._respond(
            200, RelayResponse(reply=reply, error=True, timestamp=self._now_ms())
        )
