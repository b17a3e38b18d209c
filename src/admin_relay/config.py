"""Configuration loading utilities for the relay.

This module handles layered configuration:
1. An optional YAML file (explicit path, then env var ADMIN_RELAY_CONFIG,
   then "config/default.yaml")
2. Plain deployment environment variables (TELEGRAM_BOT_TOKEN, SECRET_PASSWORD,
   SUPABASE_URL, SUPABASE_ANON_KEY, ADMIN_CHAT_ID, RENDER_EXTERNAL_URL, PORT, ...)
3. Overrides from environment variables with prefix ``ADMIN_RELAY__``
   (e.g., ADMIN_RELAY__TELEGRAM__DELIVERY_MODE=polling)

The merged dictionary is validated into an immutable :class:`Settings`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

DELIVERY_MODES = ("polling", "webhook")
AUDIENCE_MODES = ("authorized", "admin")

# env var -> (section, key)
_ENV_KEYS: Dict[str, tuple] = {
    "TELEGRAM_BOT_TOKEN": ("telegram", "bot_token"),
    "SECRET_PASSWORD": ("auth", "secret_password"),
    "ADMIN_CHAT_ID": ("auth", "admin_chat_id"),
    "SUPABASE_URL": ("supabase", "url"),
    "SUPABASE_ANON_KEY": ("supabase", "api_key"),
    "RENDER_EXTERNAL_URL": ("server", "external_url"),
    "PORT": ("server", "port"),
    "DELIVERY_MODE": ("telegram", "delivery_mode"),
    "NOTIFY_AUDIENCE": ("notify", "audience"),
    "LOG_LEVEL": ("logging", "level"),
}


@dataclass(frozen=True)
class Settings:
    bot_token: str
    secret_password: str
    supabase_url: str
    supabase_key: str
    admin_chat_id: int
    external_url: str = ""
    port: int = 3000
    delivery_mode: str = "webhook"
    notify_audience: str = "authorized"
    log_level: str = "INFO"
    http_timeout: float = 15.0
    poll_timeout: int = 30

    @property
    def webhook_path(self) -> str:
        return f"/webhook/{self.bot_token}"

    @property
    def webhook_url(self) -> str:
        return f"{self.external_url.rstrip('/')}{self.webhook_path}"


# secrets, tokens and URLs are compared verbatim, never coerced
_STRING_KEYS = {
    ("telegram", "bot_token"),
    ("auth", "secret_password"),
    ("supabase", "url"),
    ("supabase", "api_key"),
    ("server", "external_url"),
}


def _coerce(value: str) -> Any:
    # Attempt to parse simple types (bool, int, float)
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _set(cfg: Dict[str, Any], section: str, key: str, value: Any) -> None:
    sub = cfg.get(section)
    if not isinstance(sub, dict):
        sub = cfg[section] = {}
    sub[key] = value


def _apply_plain_env(cfg: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    """Apply the deployment environment variables (no type coercion)."""
    for name, (section, key) in _ENV_KEYS.items():
        value = environ.get(name)
        if value is not None and value != "":
            _set(cfg, section, key, value)
    return cfg


def _apply_env_overrides(cfg: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    """Apply environment variable overrides with prefix ADMIN_RELAY__."""
    prefix = "ADMIN_RELAY__"
    for key, value in environ.items():
        if not key.startswith(prefix):
            continue
        # e.g., ADMIN_RELAY__AUTH__ADMIN_CHAT_ID -> cfg["auth"]["admin_chat_id"]
        parts = key[len(prefix):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        if tuple(parts[-2:]) in _STRING_KEYS:
            sub[parts[-1]] = value
        else:
            sub[parts[-1]] = _coerce(value)
    return cfg


def _read_yaml(path: Optional[str], environ: Mapping[str, str]) -> Dict[str, Any]:
    if path is None:
        path = environ.get("ADMIN_RELAY_CONFIG", "config/default.yaml")

    path_obj = Path(path)
    if not path_obj.exists():
        logger.debug("config file not found at %s, using environment only", path_obj)
        return {}

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config file {path_obj}: {e}") from e

    if not isinstance(cfg, dict):
        raise ConfigError(f"Invalid config format in {path_obj}, expected dict.")
    return cfg


def load_config(path: str | None = None, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Load the raw configuration dictionary.

    Parameters
    ----------
    path : str | None
        Optional path to a YAML file. If not provided, the environment
        variable ``ADMIN_RELAY_CONFIG`` is consulted, then
        ``config/default.yaml``. A missing file is not an error.
    environ : Mapping[str, str] | None
        Environment to read from; defaults to ``os.environ``.

    Returns
    -------
    Dict[str, Any]
        Parsed configuration with environment values applied.
    """
    env = os.environ if environ is None else environ
    cfg = _read_yaml(path, env)
    cfg = _apply_plain_env(cfg, env)
    return _apply_env_overrides(cfg, env)


def _required(cfg: Dict[str, Any], section: str, key: str, env_name: str, missing: list) -> str:
    value = (cfg.get(section) or {}).get(key)
    if value is None or str(value).strip() == "":
        missing.append(env_name)
        return ""
    return str(value).strip()


def settings_from_dict(cfg: Dict[str, Any]) -> Settings:
    """Validate a raw configuration dictionary into :class:`Settings`.

    Raises
    ------
    ConfigError
        If any required value is missing or a value has the wrong shape.
    """
    missing: list = []
    token = _required(cfg, "telegram", "bot_token", "TELEGRAM_BOT_TOKEN", missing)
    secret = _required(cfg, "auth", "secret_password", "SECRET_PASSWORD", missing)
    url = _required(cfg, "supabase", "url", "SUPABASE_URL", missing)
    key = _required(cfg, "supabase", "api_key", "SUPABASE_ANON_KEY", missing)
    admin = _required(cfg, "auth", "admin_chat_id", "ADMIN_CHAT_ID", missing)

    telegram = cfg.get("telegram") or {}
    server = cfg.get("server") or {}
    mode = str(telegram.get("delivery_mode") or "webhook").strip().lower()
    external_url = str(server.get("external_url") or "").strip()
    if mode == "webhook" and not external_url:
        missing.append("RENDER_EXTERNAL_URL")

    if missing:
        raise ConfigError("Missing required settings: " + ", ".join(missing))

    if mode not in DELIVERY_MODES:
        raise ConfigError(f"delivery_mode must be one of {DELIVERY_MODES}, got {mode!r}")

    audience = str((cfg.get("notify") or {}).get("audience") or "authorized").strip().lower()
    if audience not in AUDIENCE_MODES:
        raise ConfigError(f"notify audience must be one of {AUDIENCE_MODES}, got {audience!r}")

    try:
        admin_chat_id = int(admin)
    except ValueError as e:
        raise ConfigError(f"ADMIN_CHAT_ID must be an integer, got {admin!r}") from e

    try:
        port = int(server.get("port") or 3000)
        http_timeout = float((cfg.get("supabase") or {}).get("timeout") or 15.0)
        poll_timeout = int(telegram.get("poll_timeout") or 30)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid numeric setting: {e}") from e

    return Settings(
        bot_token=token,
        secret_password=secret,
        supabase_url=url.rstrip("/"),
        supabase_key=key,
        admin_chat_id=admin_chat_id,
        external_url=external_url,
        port=port,
        delivery_mode=mode,
        notify_audience=audience,
        log_level=str((cfg.get("logging") or {}).get("level") or "INFO").upper(),
        http_timeout=http_timeout,
        poll_timeout=poll_timeout,
    )


def load_settings(path: str | None = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Load and validate settings in one step."""
    return settings_from_dict(load_config(path, environ))
