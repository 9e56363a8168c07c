"""Configuration management from environment variables and .env files."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Environment variable -> config key
ENV_KEYS: dict[str, str] = {
    "VISITBOT_STORE_PATH": "store_path",
    "VISITBOT_WEB_HOST": "server_bind",
    "VISITBOT_WEB_PORT": "server_port",
    "VISITBOT_LOG_LEVEL": "log_level",
    "VISITBOT_VISIT_TIMEZONE": "visit_timezone",
    "VISITBOT_FEED_MONTHS_AHEAD": "feed_months_ahead",
    "VISITBOT_REMINDER_MINUTES_AHEAD": "reminder_minutes_ahead",
    "VISITBOT_REMINDER_NOTIFY": "reminders_enabled",
    "VISITBOT_DAILY_NOTIFY": "daily_digest_enabled",
    "VISITBOT_INTERNAL_API_TOKEN": "internal_api_token",
    "VISITBOT_CRON_SECRET": "cron_secret",
    "VISITBOT_TRUST_SCHEDULER_TRIGGER": "trust_scheduler_trigger",
    "VISITBOT_TELEGRAM_BOT_TOKEN": "telegram_bot_token",
    "VISITBOT_TELEGRAM_CHAT_ID": "telegram_chat_id",
    "VISITBOT_SEND_TIMEOUT_SECONDS": "send_timeout_seconds",
    "VISITBOT_REMINDER_INTERVAL_SECONDS": "reminder_interval_seconds",
    "VISITBOT_RESET_MARKER_ON_RESCHEDULE": "reset_marker_on_reschedule",
}


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Skips blank lines, comments and lines without ``=``; strips surrounding
    quotes from values. Returns an empty dict when the file is missing or
    unreadable.
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", path, exc_info=True)
        return {}

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, val = line.split("=", 1)
        key = key.strip()
        if key:
            result[key] = val.strip().strip('"').strip("'")
    return result


class ConfigManager:
    """Manages configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env into os.environ without overriding variables already set.

        Returns:
            Keys that were loaded from the file
        """
        parsed = parse_env_file(self.env_file_path)
        set_keys = []
        for key, val in parsed.items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))
        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Map recognized VISITBOT_* variables onto config keys.

        Values stay strings; ``Config.from_dict`` does the coercion.
        """
        cfg: dict[str, Any] = {}
        for env_key, cfg_key in ENV_KEYS.items():
            value = os.environ.get(env_key)
            if value is not None and value != "":
                cfg[cfg_key] = value
        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env then build the override mapping from the environment."""
        self.load_env_file()
        return self.build_config_from_env()


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get a configuration value from a dict or attribute-style config."""
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)
