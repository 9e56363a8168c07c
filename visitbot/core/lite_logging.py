"""
Central logging configuration for visitbot.

Keeps visitbot's own diagnostics at INFO (or DEBUG on request) while
suppressing chatty third-party loggers.
"""

import logging
import os
from typing import Optional


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to all log records for request tracing."""

    def filter(self, record: logging.LogRecord) -> bool:
        # Imported lazily, the middleware module pulls in aiohttp
        from visitbot.api.middleware.correlation_id import get_request_id

        record.request_id = get_request_id()
        return True


def configure_lite_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure log levels for visitbot and its third-party libraries.

    Args:
        debug_mode: Whether to enable debug logging for visitbot modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        VISITBOT_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        VISITBOT_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("VISITBOT_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("VISITBOT_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    correlation_filter = CorrelationIdFilter()

    # Keep the colorized handler installed by visitbot._init_logging when present
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        formatter = logging.Formatter(
            "[%(asctime)s] [%(request_id)s] %(levelname)s - %(name)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.addFilter(correlation_filter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            if not any(isinstance(f, CorrelationIdFilter) for f in existing_handler.filters):
                existing_handler.addFilter(correlation_filter)

    logger_config: dict[str, int] = {
        "aiohttp.access": logging.WARNING,
        "aiohttp.server": logging.WARNING,
        "aiohttp.web": logging.INFO,
        "httpx": logging.WARNING,
        "httpcore": logging.WARNING,
        "asyncio": logging.WARNING,
        "icalendar": logging.INFO,
    }

    visitbot_level = logging.DEBUG if final_debug else logging.INFO
    for module in (
        "visitbot",
        "visitbot.api",
        "visitbot.domain",
        "visitbot.core",
    ):
        logger_config[module] = visitbot_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    logging.getLogger(__name__).debug(
        "visitbot logging configured: root=%s, debug=%s",
        logging.getLevelName(root_level),
        final_debug,
    )
