# src/mimir_relay/core/context.py
from __future__ import annotations

from typing import Any, Dict, Iterable, List

from mimir_relay.core.clean import HISTORY_LIMIT, INBOUND_LIMIT, sanitize
from mimir_relay.models import Message

MAX_HISTORY = 10


def _field(entry: Any, name: str) -> Any:
    if isinstance(entry, dict):
        return entry.get(name)
    return getattr(entry, name, None)


def _recent(history: Any, max_history: int) -> List[Any]:
    # untrusted JSON: anything but a list means "no history"
    if not isinstance(history, (list, tuple)) or max_history <= 0:
        return []
    return list(history[-max_history:])


def assemble(
    system_prompt: str,
    history: Iterable[Any] | None,
    new_message: str,
    *,
    max_history: int = MAX_HISTORY,
    history_limit: int = HISTORY_LIMIT,
    message_limit: int = INBOUND_LIMIT,
) -> List[Message]:
    """
    Build the conversation window sent upstream:

        [system persona, ...last <= max_history history turns, new user message]

    - the window is cut to the trailing `max_history` entries first, then
      malformed entries (no role / no content) are dropped silently
    - any role other than "user" becomes "assistant"; clients cannot
      smuggle in a second system turn
    - history content capped at `history_limit`, new message at `message_limit`
    """
    window: List[Message] = [Message(role="system", content=system_prompt)]

    for entry in _recent(history, max_history):
        role = _field(entry, "role")
        content = _field(entry, "content")
        if not role or not content:
            continue

        content = sanitize(content, history_limit)
        if not content:
            continue

        window.append(
            Message(role="user" if role == "user" else "assistant", content=content)
        )

    window.append(Message(role="user", content=sanitize(new_message, message_limit)))
    return window


def window_payload(window: List[Message]) -> List[Dict[str, str]]:
    """Plain dicts for the OpenAI-style `messages` field."""
    return [m.model_dump() for m in window]
