"""visitbot - recurring doctor-visit scheduler.

Publishes scheduled visits as an iCalendar feed and sends Telegram reminders
for upcoming occurrences. Imports are kept light so the package can be
inspected without starting the server.
"""

__version__ = "0.1.0"

from typing import Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Honors VISITBOT_DEBUG (truthy values: "1", "true", "yes", "on"), which
    forces DEBUG verbosity regardless of ``level_name``.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    from visitbot.core.lite_logging import CorrelationIdFilter

    debug_env = os.environ.get("VISITBOT_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none is present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   [request-id] logger.name: message
        fmt = (
            "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s "
            "[%(request_id)s] %(name)s: %(message)s"
        )
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        handler.addFilter(CorrelationIdFilter())
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


def _load_runtime_config(args: Optional[object] = None):  # type: ignore[no-untyped-def]
    """Build Config from YAML, .env and environment, then command line overrides."""
    from visitbot.config_loader import load_config
    from visitbot.core.config_manager import ConfigManager

    env_overrides = ConfigManager().load_full_config()
    if args is not None:
        port = getattr(args, "port", None)
        if port is not None:
            env_overrides["server_port"] = port
    return load_config(getattr(args, "config", None), env_overrides=env_overrides)


def run_server(args: Optional[object] = None) -> None:
    """Start the visitbot server, or run a single dispatch with --dispatch-once.

    Args:
        args: Optional command line arguments namespace with --port, --config,
            --dispatch-once and --minutes-ahead
    """
    import asyncio
    import json
    import logging
    import os

    _init_logging(os.environ.get("VISITBOT_LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    cfg = _load_runtime_config(args)

    from visitbot.core.lite_logging import configure_lite_logging

    configure_lite_logging(debug_mode=cfg.log_level == "DEBUG")
    if not os.environ.get("VISITBOT_LOG_LEVEL"):
        logging.getLogger().setLevel(getattr(logging, cfg.log_level, logging.INFO))

    from visitbot.api import server

    if args is not None and getattr(args, "dispatch_once", False):
        from visitbot.core.exceptions import NotificationError

        try:
            result = asyncio.run(server.dispatch_once(cfg, getattr(args, "minutes_ahead", None)))
        except NotificationError as exc:
            logger.error("Dispatch not started: %s", exc)
            raise SystemExit(2) from exc
        logger.info("Dispatch finished: %s", json.dumps(result))
        return

    server.start_server(cfg)
