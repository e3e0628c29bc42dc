# src/mimir_relay/core/logging.py
from __future__ import annotations
import logging
import os
import time
from typing import Any, Mapping

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR":    logging.ERROR,
    "WARNING":  logging.WARNING,
    "INFO":     logging.INFO,
    "DEBUG":    logging.DEBUG,
    "NOTSET":   logging.NOTSET,
}

def _level_from_env(var: str, default: str = "INFO") -> int:
    val = (os.getenv(var, default) or "").strip().upper()
    return _LEVELS.get(val, _LEVELS[default])

# httpx/httpcore log every upstream request line at INFO, which would
# echo the provider URL next to each chat turn
_NOISY = ("httpx", "httpcore")

def setup_logging() -> None:
    """
    Configure root logging once. Idempotent.
    LOG_LEVEL controls relay verbosity (default INFO);
    HTTP client chatter only shows up at DEBUG.
    """
    level = _level_from_env("LOG_LEVEL", "INFO")
    for name in _NOISY:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)

    root = logging.getLogger()
    if root.handlers:
        # already configured (pytest, uvicorn, etc.)
        root.setLevel(level)
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)-8s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    ))
    root.setLevel(level)
    root.addHandler(handler)


_trace_log = logging.getLogger("mimir_relay.trace")

def _trace_enabled() -> bool:
    return (os.getenv("RELAY_TRACE", "")).strip().lower() in ("1", "true", "yes", "on")

def _fmt_kv(d: Mapping[str, Any]) -> str:
    return " ".join(f"{k}={d[k]}" for k in d)

def relay_trace(event: str, **kv: Any) -> None:
    """
    Emit a single-line structured log ONLY when RELAY_TRACE=true.
    Example:
      [relay] relay.upstream ts=... model=llama3-8b-8192 window=4
    """
    if not _trace_enabled():
        return
    kv2 = {"ts": int(time.time()), **kv}
    _trace_log.info("[relay] %s %s", event, _fmt_kv(kv2))
