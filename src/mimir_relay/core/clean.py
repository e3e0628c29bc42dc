# src/mimir_relay/core/clean.py

from __future__ import annotations

import re
from typing import Any

INBOUND_LIMIT = 2000
HISTORY_LIMIT = 1000
OUTBOUND_LIMIT = 1000

# C0 and C1 control characters, minus tab/LF/CR which are folded as whitespace
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")


def _normalize_whitespace(text: str) -> str:
    """
    Simple whitespace normalization:
      - strip leading/trailing spaces
      - collapse internal runs of whitespace to a single space
    """
    return " ".join(text.split())


def sanitize(text: Any, limit: int = INBOUND_LIMIT) -> str:
    """
    Make arbitrary text safe for a model prompt or the chat UI.

    - non-str input -> ""
    - drop control characters
    - normalize whitespace
    - truncate to `limit` chars (trailing space from the cut is removed too)

    Never raises and sanitize(sanitize(x, n), n) == sanitize(x, n).
    """
    if not isinstance(text, str):
        return ""

    cleaned = _normalize_whitespace(_CONTROL_RE.sub("", text))
    return cleaned[: max(0, limit)].rstrip()


def sanitize_reply(text: Any, limit: int = OUTBOUND_LIMIT) -> str:
    return sanitize(text, limit)
