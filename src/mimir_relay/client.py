# src/mimir_relay/client.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from mimir_relay.core.config import CFG
from mimir_relay.models import RelayRequest

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://127.0.0.1:8000/v1/chat"


class ChatSession:
    """
    Client side of a Mimir conversation.

    The session owns the transcript; the relay only ever sees a copy of
    its tail. Nothing here is shared between sessions.

    - send(text) posts {message, history: transcript[-history_window:]}
    - a reply appends the user + assistant turns
    - once the transcript grows past max_messages * 2 it is cut back to
      the last max_messages entries
    """

    def __init__(
        self,
        url: str = DEFAULT_URL,
        *,
        client: Optional[httpx.AsyncClient] = None,
        history_window: int = 10,
        max_messages: int = 50,
        offline_reply: Optional[str] = None,
    ) -> None:
        self.url = url
        self.history_window = history_window
        self.max_messages = max_messages
        self.offline_reply = offline_reply or (CFG.get("replies") or {}).get(
            "offline", "Desculpe, estou com dificuldades técnicas. Tenta de novo?"
        )
        self.transcript: List[Dict[str, str]] = []
        self.waiting = False
        self._client = client

    def _history(self) -> List[Dict[str, str]]:
        if self.history_window <= 0:
            return []
        return [dict(m) for m in self.transcript[-self.history_window:]]

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self.url, json=payload)
        async with httpx.AsyncClient(timeout=35.0) as client:
            return await client.post(self.url, json=payload)

    def _record(self, message: str, reply: str) -> None:
        self.transcript.append({"role": "user", "content": message})
        self.transcript.append({"role": "assistant", "content": reply})
        if len(self.transcript) > self.max_messages * 2:
            self.transcript = self.transcript[-self.max_messages:]

    async def send(self, text: str) -> Optional[str]:
        """
        Send one message and return the text to show.

        Blank input returns None without a request. Any failure returns
        the local offline reply and leaves the transcript untouched.
        """
        message = (text or "").strip()
        if not message:
            return None

        payload = RelayRequest(message=message, history=self._history()).model_dump()
        self.waiting = True
        try:
            resp = await self._post(payload)
        except httpx.HTTPError as ex:
            logger.warning("relay unreachable: %r", ex)
            return self.offline_reply
        finally:
            self.waiting = False

        try:
            data = resp.json()
        except ValueError:
            data = {}
        reply = data.get("reply") if isinstance(data, dict) else None

        if resp.status_code == 400 and isinstance(reply, str) and reply:
            # validation message from the relay; not a conversation turn
            return reply

        if not resp.is_success or not isinstance(reply, str) or not reply:
            logger.warning("relay answered %s without a usable reply", resp.status_code)
            return self.offline_reply

        self._record(message, reply)
        return reply

    def reset(self) -> None:
        self.transcript.clear()
