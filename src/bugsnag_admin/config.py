"""Configuration for the Bugsnag admin layer.

Secrets live in keys.yaml, settings in config.yaml.

Priority order (highest wins):
1. Environment variables (BUGSNAG_API_TOKEN, MATTERMOST_URL, etc.)
2. keys.yaml for secrets, config.yaml for settings
3. Dataclass defaults
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from bugsnag_admin.conventions import (
    ADMIN_HOME,
    BUGSNAG_API_URL,
    BUGSNAG_TIMEOUT_SECONDS,
    CONFIG_FILENAME,
    KEYS_FILENAME,
    MEMORY_STORE,
    PLUGIN_API_PREFIX,
    PLUGIN_ID,
    STORE_FILENAME,
)

logger = logging.getLogger(__name__)


def admin_home() -> Path:
    return Path(ADMIN_HOME).expanduser()


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text())
        return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        logger.warning("Failed to read %s", path.name, exc_info=True)
        return {}


def _load_keys() -> dict[str, Any]:
    """Load ~/.bugsnag-admin/keys.yaml if it exists."""
    return _load_yaml(admin_home() / KEYS_FILENAME)


def _load_settings() -> dict[str, Any]:
    """Load ~/.bugsnag-admin/config.yaml if it exists."""
    return _load_yaml(admin_home() / CONFIG_FILENAME)


def _str(
    env_key: str,
    keys: dict[str, Any],
    config: dict[str, Any],
    config_key: str,
    default: str = "",
) -> str:
    """Get string: env > keys.yaml > config.yaml > default."""
    env = os.environ.get(env_key, "")
    if env:
        return env
    k = keys.get(env_key, "")
    if k:
        return str(k)
    c = config.get(config_key, "")
    if c:
        return str(c)
    return default


def _float(
    env_key: str,
    config: dict[str, Any],
    config_key: str,
    default: float,
) -> float:
    """Get float: env > config.yaml > default. Bad values fall back."""
    raw = os.environ.get(env_key, "") or config.get(config_key)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s=%r", env_key, raw)
        return default


def default_plugin_url(mattermost_url: str) -> str:
    """Plugin API base under a Mattermost server, or '' when unknown."""
    if not mattermost_url:
        return ""
    return f"{mattermost_url.rstrip('/')}/plugins/{PLUGIN_ID}{PLUGIN_API_PREFIX}"


@dataclass
class AdminConfig:
    """Bugsnag admin configuration."""

    # --- Bugsnag credentials (from keys.yaml) ---
    bugsnag_api_token: str = ""
    organization_id: str = ""
    bugsnag_api_url: str = BUGSNAG_API_URL

    # --- Mattermost (token from keys.yaml) ---
    mattermost_url: str = ""
    mattermost_token: str = ""

    # --- Plugin API ---
    plugin_url: str = ""  # .../plugins/<id>/api/v1, derived when unset

    # --- Server-side storage ---
    store_path: str = ""  # JSON KV file; "" or ":memory:" = in-memory

    # --- Limits ---
    timeout: float = BUGSNAG_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> AdminConfig:
        """Load config from keys.yaml + config.yaml + env overrides."""
        keys = _load_keys()
        cfg = _load_settings()
        mattermost_url = _str("MATTERMOST_URL", {}, cfg, "mattermost_url")
        config = cls(
            bugsnag_api_token=_str("BUGSNAG_API_TOKEN", keys, cfg, "api_token"),
            organization_id=_str(
                "BUGSNAG_ORGANIZATION_ID", keys, cfg, "organization_id"
            ),
            bugsnag_api_url=_str(
                "BUGSNAG_API_URL", {}, cfg, "bugsnag_api_url", BUGSNAG_API_URL
            ),
            mattermost_url=mattermost_url,
            mattermost_token=_str("MATTERMOST_TOKEN", keys, cfg, "mattermost_token"),
            plugin_url=_str(
                "BUGSNAG_ADMIN_PLUGIN_URL",
                {},
                cfg,
                "plugin_url",
                default_plugin_url(mattermost_url),
            ),
            store_path=_str(
                "BUGSNAG_ADMIN_STORE_PATH",
                {},
                cfg,
                "store_path",
                str(admin_home() / STORE_FILENAME),
            ),
            timeout=_float(
                "BUGSNAG_ADMIN_TIMEOUT", cfg, "timeout", BUGSNAG_TIMEOUT_SECONDS
            ),
        )
        logger.debug(
            "AdminConfig.from_env: plugin_url=%s store_path=%s",
            config.plugin_url,
            config.store_path,
        )
        return config

    @property
    def uses_memory_store(self) -> bool:
        return self.store_path in ("", MEMORY_STORE)

    @property
    def has_bugsnag_token(self) -> bool:
        return bool(self.bugsnag_api_token.strip())

    @property
    def has_platform_access(self) -> bool:
        """Whether Mattermost channel/user catalogs can be fetched."""
        return bool(self.mattermost_url and self.mattermost_token)
