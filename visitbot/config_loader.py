"""visitbot.config_loader

Config loader for visitbot.

- Reads a YAML file (PyYAML) and overlays values from the environment.
- Exposes a typed dataclass `Config` and a `load_config()` helper that accepts
  an optional path override.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from visitbot.core.exceptions import ConfigurationError
from visitbot.core.timezone_utils import DEFAULT_VISIT_TIMEZONE

logger = logging.getLogger(__name__)

_TRUTHY = ("1", "true", "yes", "on")


def _coerce_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class Config:
    """Typed configuration for visitbot.

    Fields:
        store_path: path of the JSON visit store
        server_bind: host to bind the HTTP server to
        server_port: port for the HTTP server
        log_level: logging level name
        visit_timezone: IANA zone in which visit wall-clock times are read
        feed_months_ahead: default feed horizon in months (0..36)
        visit_duration_minutes: event length in the calendar feed
        reminder_minutes_ahead: default reminder lookahead window (1..1440)
        reminders_enabled: gate for sending per-occurrence reminders
        daily_digest_enabled: gate for the day-ahead digest
        internal_api_token: shared secret accepted in X-Internal-Token / Bearer
        cron_secret: shared secret accepted as ?cron_secret= / ?token=
        trust_scheduler_trigger: accept the X-Scheduler-Trigger header
        telegram_bot_token / telegram_chat_id: notification target
        send_timeout_seconds: upper bound for a single notification send
        reminder_interval_seconds: in-process dispatch period (0 disables)
        reset_marker_on_reschedule: clear the reminder marker when base_time moves
    """

    store_path: str = "visits.json"
    server_bind: str = "0.0.0.0"  # nosec: B104 - intentional default for container deployments
    server_port: int = 8080
    log_level: str = "INFO"
    visit_timezone: str = DEFAULT_VISIT_TIMEZONE
    feed_months_ahead: int = 6
    visit_duration_minutes: int = 60
    reminder_minutes_ahead: int = 60
    reminders_enabled: bool = False
    daily_digest_enabled: bool = False
    internal_api_token: str | None = None
    cron_secret: str | None = None
    trust_scheduler_trigger: bool = False
    telegram_bot_token: str | None = None
    telegram_chat_id: str | None = None
    send_timeout_seconds: float = 10.0
    reminder_interval_seconds: int = 0
    reset_marker_on_reschedule: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create Config from a plain mapping, applying defaults and bounds.

        Numeric-like values are coerced to numbers; values outside their
        allowed range are clamped with a warning.
        """
        if data is None:
            data = {}

        def _coerce_int(key: str, default: int, low: int, high: int) -> int:
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < low or value > high:
                clamped = max(low, min(high, value))
                logger.warning("Config %s=%d outside %d..%d; coercing to %d", key, value, low, high, clamped)
                return clamped
            return value

        send_timeout_raw = data.get("send_timeout_seconds", 10.0)
        try:
            send_timeout = float(send_timeout_raw)
        except (TypeError, ValueError):
            logger.warning("Config send_timeout_seconds=%r is not a number; using 10", send_timeout_raw)
            send_timeout = 10.0
        if send_timeout <= 0:
            send_timeout = 10.0

        server_bind = _optional_str(data.get("server_bind")) or "0.0.0.0"  # nosec: B104
        log_level = str(data.get("log_level") or "INFO").upper()

        return cls(
            store_path=_optional_str(data.get("store_path")) or "visits.json",
            server_bind=server_bind,
            server_port=_coerce_int("server_port", 8080, 1, 65535),
            log_level=log_level,
            visit_timezone=_optional_str(data.get("visit_timezone")) or DEFAULT_VISIT_TIMEZONE,
            feed_months_ahead=_coerce_int("feed_months_ahead", 6, 0, 36),
            visit_duration_minutes=_coerce_int("visit_duration_minutes", 60, 1, 24 * 60),
            reminder_minutes_ahead=_coerce_int("reminder_minutes_ahead", 60, 1, 24 * 60),
            reminders_enabled=_coerce_bool(data.get("reminders_enabled")),
            daily_digest_enabled=_coerce_bool(data.get("daily_digest_enabled")),
            internal_api_token=_optional_str(data.get("internal_api_token")),
            cron_secret=_optional_str(data.get("cron_secret")),
            trust_scheduler_trigger=_coerce_bool(data.get("trust_scheduler_trigger")),
            telegram_bot_token=_optional_str(data.get("telegram_bot_token")),
            telegram_chat_id=_optional_str(data.get("telegram_chat_id")),
            send_timeout_seconds=send_timeout,
            reminder_interval_seconds=_coerce_int("reminder_interval_seconds", 0, 0, 24 * 3600),
            reset_marker_on_reschedule=_coerce_bool(data.get("reset_marker_on_reschedule")),
        )

    def redacted(self) -> dict[str, Any]:
        """Config values safe for logging."""
        secrets = ("internal_api_token", "cron_secret", "telegram_bot_token")
        return {
            key: ("<redacted>" if key in secrets and value else value)
            for key, value in self.__dict__.items()
        }


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Unable to parse config {path}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError("Config file must contain a mapping at top level")
    return loaded


def load_config(path: str | None = None, env_overrides: dict[str, Any] | None = None) -> Config:
    """Load configuration from a YAML file, overlay ``env_overrides``, return Config.

    Args:
        path: Optional config file path; defaults to ./visitbot.yaml
        env_overrides: Values from the environment (see ConfigManager); these win

    Behavior:
    - Missing file: defaults plus overrides.
    - File whose top level is not a mapping: ConfigurationError.
    """
    p = Path(path) if path else Path.cwd() / "visitbot.yaml"
    raw: dict[str, Any] = {}
    if p.exists():
        raw = _load_yaml(p)
        logger.info("Loaded configuration from %s", p)
    else:
        logger.info("Config file %s not found; using defaults", p)

    if env_overrides:
        raw.update(env_overrides)

    cfg = Config.from_dict(raw)
    logger.debug("Configuration values: %s", cfg.redacted())
    return cfg
