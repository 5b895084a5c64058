from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .token_storage import default_token_path


CONFIG_FILENAME = "storefront-client.json"
DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_TIMEOUT = 15.0
DEFAULT_LOG_LEVEL = "WARNING"


def default_config_path() -> str:
    env = os.environ.get("STOREFRONT_CLIENT_CONFIG")
    if env:
        return env
    return os.path.join(os.path.expanduser("~"), ".storefront", CONFIG_FILENAME)


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    p = (path or "").strip() or default_config_path()
    try:
        with open(p, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}
    except FileNotFoundError:
        return {}
    except (OSError, ValueError):
        return {}


def save_config(path: Optional[str], payload: Dict[str, Any]) -> None:
    p = (path or "").strip() or default_config_path()
    os.makedirs(os.path.dirname(p) or ".", exist_ok=True)

    tmp = p + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
    os.replace(tmp, p)


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = DEFAULT_BASE_URL
    token_path: str = ""
    timeout: float = DEFAULT_TIMEOUT
    log_level: str = DEFAULT_LOG_LEVEL


def _float(value: Any, default: float) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return result if result > 0 else default


def get_config(path: Optional[str] = None) -> ClientConfig:
    """Environment first, then the config file, then defaults."""

    cfg = load_config(path)
    base_url = os.environ.get("STOREFRONT_API_URL") or cfg.get("base_url") or DEFAULT_BASE_URL
    token_path = os.environ.get("STOREFRONT_TOKEN_PATH") or cfg.get("token_path") or default_token_path()
    timeout = _float(os.environ.get("STOREFRONT_TIMEOUT") or cfg.get("timeout"), DEFAULT_TIMEOUT)
    log_level = os.environ.get("STOREFRONT_LOG_LEVEL") or cfg.get("log_level") or DEFAULT_LOG_LEVEL
    return ClientConfig(
        base_url=str(base_url).rstrip("/"),
        token_path=str(token_path),
        timeout=timeout,
        log_level=str(log_level).upper(),
    )


__all__ = ["ClientConfig", "default_config_path", "get_config", "load_config", "save_config"]
