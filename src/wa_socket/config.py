"""Client configuration resolved from keyword overrides and the environment."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

API_URL = "wss://www.wolframalpha.com/n/v1/api/fetcher/results"
API_ORIGIN = "https://www.wolframalpha.com"
USER_AGENT_DEFAULT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/78.0.3904.97 Safari/537.36"
)
LANGUAGE_DEFAULT = "en"


def _env_text(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return default


def _env_seconds(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("ignoring %s=%r (not a number)", name, raw)
        return default


def _env_headers(name: str) -> Dict[str, str]:
    raw = os.getenv(name)
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("ignoring %s (not valid JSON)", name)
        return {}
    if not isinstance(decoded, Mapping):
        logger.warning("ignoring %s (expected a JSON object)", name)
        return {}
    return {str(k): str(v) for k, v in decoded.items()}


@dataclass(frozen=True)
class ClientConfig:
    """Connection settings for :class:`~wa_socket.client.QueryChannel`."""

    api_url: str = API_URL
    origin: str = API_ORIGIN
    user_agent: str = USER_AGENT_DEFAULT
    language: str = LANGUAGE_DEFAULT
    headers: Mapping[str, str] = field(default_factory=dict)
    open_timeout_s: float = 10.0
    debug: bool = False

    def request_headers(self) -> Dict[str, str]:
        headers = {"User-Agent": self.user_agent, "Origin": self.origin}
        headers.update(self.headers)
        return headers

    def with_overrides(self, **overrides: Any) -> "ClientConfig":
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values) if values else self


def load_client_config(**overrides: Optional[Any]) -> ClientConfig:
    """Resolve ``WA_SOCKET_*`` environment variables, then apply *overrides*."""

    config = ClientConfig(
        api_url=_env_text("WA_SOCKET_URL", API_URL),
        origin=_env_text("WA_SOCKET_ORIGIN", API_ORIGIN),
        user_agent=_env_text("WA_SOCKET_USER_AGENT", USER_AGENT_DEFAULT),
        language=_env_text("WA_SOCKET_LANGUAGE", LANGUAGE_DEFAULT),
        headers=_env_headers("WA_SOCKET_HEADERS"),
        open_timeout_s=max(0.0, _env_seconds("WA_SOCKET_OPEN_TIMEOUT_S", 10.0)),
        debug=_env_flag("WA_SOCKET_DEBUG", False),
    )
    return config.with_overrides(**overrides)


__all__ = [
    "API_ORIGIN",
    "API_URL",
    "ClientConfig",
    "LANGUAGE_DEFAULT",
    "USER_AGENT_DEFAULT",
    "load_client_config",
]
