# src/mimir_relay/adapters/groq.py
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from mimir_relay.core.config import ModelConfig
from mimir_relay.errors import (
    UpstreamProtocolError,
    UpstreamRateLimitError,
    UpstreamServerError,
    UpstreamStatusError,
    UpstreamTimeoutError,
    UpstreamTransportError,
)

logger = logging.getLogger(__name__)

# upstream error bodies are logged, never returned; keep the log line bounded
_DETAIL_CHARS = 400


def build_payload(cfg: ModelConfig, messages: List[Dict[str, str]]) -> Dict[str, Any]:
    return {
        "model": cfg.model,
        "messages": messages,
        "max_tokens": cfg.max_tokens,
        "temperature": cfg.temperature,
        "top_p": cfg.top_p,
        "frequency_penalty": cfg.frequency_penalty,
        "presence_penalty": cfg.presence_penalty,
        "stream": False,
    }


def extract_content(data: Any) -> str:
    """
    First completion's text from an OpenAI-style body.
    Anything else is a protocol violation by the upstream.
    """
    if not isinstance(data, dict):
        raise UpstreamProtocolError("response body is not an object")

    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        raise UpstreamProtocolError("response has no choices", detail=str(data)[:_DETAIL_CHARS])

    msg = choices[0].get("message") or {}
    content = msg.get("content") if isinstance(msg, dict) else None

    if not isinstance(content, str) or not content.strip():
        raise UpstreamProtocolError(
            "empty or invalid completion", detail=str(choices[0])[:_DETAIL_CHARS]
        )
    return content


def _raise_for_status(resp: httpx.Response) -> None:
    if resp.is_success:
        return

    detail = resp.text[:_DETAIL_CHARS]
    logger.error("groq error %s %s :: %s", resp.status_code, resp.reason_phrase, detail)

    if resp.status_code == 429:
        raise UpstreamRateLimitError("rate limited", status_code=429, detail=detail)
    if resp.status_code >= 500:
        raise UpstreamServerError("upstream server error", status_code=resp.status_code, detail=detail)
    raise UpstreamStatusError("upstream rejected request", status_code=resp.status_code, detail=detail)


async def _post_until(
    client: httpx.AsyncClient,
    url: str,
    payload: Dict[str, Any],
    headers: Dict[str, str],
    timeout_s: float,
    cancel: Optional[asyncio.Event],
) -> httpx.Response:
    """
    POST, aborting when `timeout_s` elapses or `cancel` is set, whichever first.
    """
    request = asyncio.ensure_future(client.post(url, json=payload, headers=headers))
    waiters = {request}
    cancel_wait = None
    if cancel is not None:
        cancel_wait = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_wait)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout_s, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        request.cancel()
        raise
    finally:
        if cancel_wait is not None:
            cancel_wait.cancel()

    if request in done:
        return request.result()

    request.cancel()
    await asyncio.gather(request, return_exceptions=True)
    reason = "cancelled" if cancel is not None and cancel.is_set() else "timeout"
    raise UpstreamTimeoutError(f"upstream call aborted ({reason} after <= {timeout_s}s)")


async def chat(
    cfg: ModelConfig,
    messages: List[Dict[str, str]],
    api_key: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    cancel: Optional[asyncio.Event] = None,
) -> str:
    """
    Groq adapter (OpenAI-compatible /chat/completions), non-streaming.

    Returns the raw completion text; the caller sanitizes it.
    Raises one of the Upstream*Error types on any failure.
    """
    if client is None:
        async with httpx.AsyncClient(timeout=cfg.timeout_s) as owned:
            return await chat(cfg, messages, api_key, client=owned, cancel=cancel)

    url = cfg.base_url.rstrip("/") + "/chat/completions"
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "User-Agent": cfg.user_agent,
    }

    try:
        resp = await _post_until(
            client, url, build_payload(cfg, messages), headers, cfg.timeout_s, cancel
        )
    except httpx.TimeoutException as ex:
        raise UpstreamTimeoutError(f"httpx timeout: {type(ex).__name__}") from ex
    except httpx.HTTPError as ex:
        logger.error("groq transport error: %r", ex)
        raise UpstreamTransportError(f"transport error: {type(ex).__name__}") from ex

    _raise_for_status(resp)

    try:
        data = resp.json()
    except ValueError as ex:
        logger.error("groq returned non-JSON body: %s", resp.text[:_DETAIL_CHARS])
        raise UpstreamProtocolError("invalid JSON from upstream", detail=resp.text[:_DETAIL_CHARS]) from ex

    return extract_content(data)
