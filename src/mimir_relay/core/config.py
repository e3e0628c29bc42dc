# src/mimir_relay/core/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import load_dotenv

from mimir_relay.errors import ConfigurationError

# .env is optional; real deployments inject env directly
load_dotenv()


# --- Load relay.yml once at startup into global CFG -------------------------

# This file lives at: src/mimir_relay/core/config.py
# relay.yml sits next to the package __init__: src/mimir_relay/relay.yml
ROOT_DIR = Path(__file__).resolve().parents[1]
CFG_PATH = Path(os.getenv("MIMIR_CONFIG") or ROOT_DIR / "relay.yml")

_DEV_ENVS = {"development", "dev", "local"}
_TRUTHY = {"1", "true", "yes", "on"}


def load_config(path: Path) -> Dict[str, Any]:
    with Path(path).open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at top level")
    return data


CFG: Dict[str, Any] = load_config(CFG_PATH)


# --- Typed views over CFG ----------------------------------------------------

@dataclass
class ModelConfig:
    """Upstream model parameters. Streaming is never enabled."""

    base_url: str = "https://api.groq.com/openai/v1"
    model: str = "llama3-8b-8192"
    api_key_env: str = "GROQ_API_KEY"
    max_tokens: int = 300
    temperature: float = 0.8
    top_p: float = 0.9
    frequency_penalty: float = 0.3
    presence_penalty: float = 0.3
    timeout_s: float = 30.0
    user_agent: str = "Mimir-Chat/1.0"

    @classmethod
    def from_cfg(cls, block: Mapping[str, Any] | None) -> "ModelConfig":
        block = dict(block or {})
        known = {k: block[k] for k in cls.__dataclass_fields__ if k in block}
        return cls(**known)


@dataclass
class Settings:
    api_key: Optional[str]
    dev_mode: bool
    system_prompt: str
    model: ModelConfig
    replies: Dict[str, Any]
    errors: Dict[str, str] = field(default_factory=dict)
    max_history: int = 10
    message_chars: int = 2000
    history_entry_chars: int = 1000
    reply_chars: int = 1000
    allow_origin: str = "*"
    allow_headers: List[str] = field(default_factory=lambda: ["Content-Type"])
    allow_methods: List[str] = field(default_factory=lambda: ["POST", "OPTIONS"])

    def cors_headers(self) -> Dict[str, str]:
        return {
            "Access-Control-Allow-Origin": self.allow_origin,
            "Access-Control-Allow-Headers": ", ".join(self.allow_headers),
            "Access-Control-Allow-Methods": ", ".join(self.allow_methods),
        }


# --- Environment helpers ----------------------------------------------------

def _truthy(val: Optional[str]) -> bool:
    return (val or "").strip().lower() in _TRUTHY


def is_dev_mode(env: Mapping[str, str]) -> bool:
    """
    Dev mode selects the deterministic mock reply when no API key is set.

    Any of: MIMIR_DEV truthy, NETLIFY_DEV set, APP_ENV/NODE_ENV in a dev value.
    """
    if _truthy(env.get("MIMIR_DEV")):
        return True
    if (env.get("NETLIFY_DEV") or "").strip():
        return True
    for var in ("APP_ENV", "NODE_ENV"):
        if (env.get(var) or "").strip().lower() in _DEV_ENVS:
            return True
    return False


def build_settings(
    cfg: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """
    Merge relay.yml with the environment.

    Both arguments default to the process state; tests pass explicit values.
    """
    if cfg is None:
        cfg = CFG
    if env is None:
        env = os.environ

    model = ModelConfig.from_cfg(cfg.get("model"))
    persona = cfg.get("persona") or {}
    system_prompt = (persona.get("system_prompt") or "").strip()
    if not system_prompt:
        raise ConfigurationError("persona.system_prompt is empty")

    limits = cfg.get("limits") or {}
    cors = cfg.get("cors") or {}
    api_key = (env.get(model.api_key_env) or "").strip() or None

    return Settings(
        api_key=api_key,
        dev_mode=is_dev_mode(env),
        system_prompt=system_prompt,
        model=model,
        replies=dict(cfg.get("replies") or {}),
        errors=dict(cfg.get("errors") or {}),
        max_history=int((cfg.get("history") or {}).get("max_entries", 10)),
        message_chars=int(limits.get("message_chars", 2000)),
        history_entry_chars=int(limits.get("history_entry_chars", 1000)),
        reply_chars=int(limits.get("reply_chars", 1000)),
        allow_origin=str(cors.get("allow_origin", "*")),
        allow_headers=list(cors.get("allow_headers") or ["Content-Type"]),
        allow_methods=list(cors.get("allow_methods") or ["POST", "OPTIONS"]),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return build_settings()
