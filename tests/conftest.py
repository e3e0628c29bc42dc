# tests/conftest.py
from __future__ import annotations

import asyncio
import random
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient

from mimir_relay.app import create_app
from mimir_relay.core.config import ModelConfig, Settings, build_settings
from mimir_relay.core.fallback import FallbackPolicy
from mimir_relay.handler import RelayHandler

# ---------- Paths & .env ----------
ROOT = Path(__file__).resolve().parents[1]  # repo root
# Optional: .env only matters for the live test; everything else pins its env
env_path = ROOT / ".env"
if env_path.exists():
    load_dotenv(dotenv_path=env_path, override=False)

# ---------- Pytest controls ----------
def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "groq_live: calls the real Groq API (needs GROQ_API_KEY)")

# ---------- Fake upstream ----------
class FakeUpstream:
    """
    Stand-in for adapters.groq.chat.

    Returns `reply` or raises `error`; records every call.
    """

    def __init__(self, reply: Any = "Oi! Quer um biscoito?", error: Optional[BaseException] = None):
        self.reply = reply
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def __call__(
        self,
        cfg: ModelConfig,
        messages: List[Dict[str, str]],
        api_key: str,
        *,
        cancel: Optional[asyncio.Event] = None,
    ) -> str:
        self.calls.append({"cfg": cfg, "messages": messages, "api_key": api_key, "cancel": cancel})
        if self.error is not None:
            raise self.error
        return self.reply

# ---------- Fixtures ----------
@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    def _make(**env: str) -> Settings:
        return build_settings(env=env)
    return _make

@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings(GROQ_API_KEY="test-key")

@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()

@pytest.fixture
def fake_upstream() -> type:
    """The FakeUpstream class, for tests that need a specific reply/error."""
    return FakeUpstream

@pytest.fixture
def make_client() -> Callable[..., TestClient]:
    def _make(settings: Settings, upstream: Optional[FakeUpstream] = None) -> TestClient:
        handler = RelayHandler(
            settings,
            policy=FallbackPolicy(settings.replies, rng=random.Random(0)),
            upstream=upstream or FakeUpstream(),
            clock=lambda: 1_700_000_000.0,
        )
        return TestClient(create_app(handler=handler))
    return _make

@pytest.fixture
def client(make_client, settings, upstream) -> TestClient:
    return make_client(settings, upstream)
