"""visitbot HTTP server.

Serves the visit calendar feed and the reminder trigger endpoints, and
optionally runs the reminder dispatcher periodically in-process.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Any, Optional

from visitbot.core.config_manager import get_config_value
from visitbot.core.exceptions import NotificationError
from visitbot.core.health_tracker import HealthTracker, get_system_diagnostics
from visitbot.core.http_client import close_all_clients
from visitbot.core.telegram_sender import NotificationSender, TelegramSender
from visitbot.core.timezone_utils import now_utc, resolve_timezone, serialize_iso
from visitbot.domain.daily_digest import DailyDigestDispatcher
from visitbot.domain.reminder_dispatcher import ReminderDispatcher
from visitbot.domain.visit_store import JsonVisitStore, VisitStore

logger = logging.getLogger(__name__)

MAX_PORT_ATTEMPTS = 10


def build_store(config: Any) -> JsonVisitStore:
    return JsonVisitStore(
        get_config_value(config, "store_path", "visits.json"),
        reset_marker_on_reschedule=get_config_value(config, "reset_marker_on_reschedule", False),
        tz=resolve_timezone(get_config_value(config, "visit_timezone")),
    )


def build_sender(config: Any) -> TelegramSender:
    return TelegramSender(
        get_config_value(config, "telegram_bot_token"),
        get_config_value(config, "telegram_chat_id"),
        timeout_seconds=get_config_value(config, "send_timeout_seconds", 10.0),
    )


def build_reminder_dispatcher(
    config: Any, store: VisitStore, sender: NotificationSender
) -> ReminderDispatcher:
    return ReminderDispatcher(
        store,
        sender,
        tz=resolve_timezone(get_config_value(config, "visit_timezone")),
        sending_enabled=bool(get_config_value(config, "reminders_enabled", False)),
        send_timeout_seconds=get_config_value(config, "send_timeout_seconds", 10.0),
    )


def build_digest_dispatcher(
    config: Any, store: VisitStore, sender: NotificationSender
) -> DailyDigestDispatcher:
    return DailyDigestDispatcher(
        store,
        sender,
        default_timezone=str(resolve_timezone(get_config_value(config, "visit_timezone"))),
        sending_enabled=bool(get_config_value(config, "daily_digest_enabled", False)),
        send_timeout_seconds=get_config_value(config, "send_timeout_seconds", 10.0),
    )


async def _reminder_loop(
    config: Any,
    dispatcher: ReminderDispatcher,
    dispatch_lock: asyncio.Lock,
    health_tracker: HealthTracker,
    stop_event: asyncio.Event,
) -> None:
    """Background dispatcher: one run immediately, then one per interval."""
    interval = int(get_config_value(config, "reminder_interval_seconds", 0))
    minutes_ahead = get_config_value(config, "reminder_minutes_ahead", 60)
    logger.info("Reminder loop starting with interval %d seconds", interval)

    while not stop_event.is_set():
        try:
            async with dispatch_lock:
                health_tracker.record_dispatch_attempt()
                result = await dispatcher.run(now_utc(), minutes_ahead)
                health_tracker.record_dispatch_success(result.checked, result.sent)
        except Exception as exc:
            health_tracker.record_dispatch_failure(str(exc))
            logger.exception("Reminder loop run failed")

        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=interval)


def _make_app(
    config: Any,
    store: VisitStore,
    sender: NotificationSender,
    dispatch_lock: Optional[asyncio.Lock] = None,
    health_tracker: Optional[HealthTracker] = None,
    time_provider: Any = now_utc,
    periodic_dispatch: bool = False,
) -> Any:
    """Create the aiohttp application with routes wired to the store and sender."""
    from aiohttp import web

    from visitbot.api.middleware import correlation_id_middleware
    from visitbot.api.routes import register_health_routes, register_visit_routes

    app = web.Application(middlewares=[correlation_id_middleware])
    tracker = health_tracker or HealthTracker()

    register_visit_routes(
        app=app,
        config=config,
        store=store,
        reminder_dispatcher=build_reminder_dispatcher(config, store, sender),
        digest_dispatcher=build_digest_dispatcher(config, store, sender),
        dispatch_lock=dispatch_lock or asyncio.Lock(),
        health_tracker=tracker,
        time_provider=time_provider,
    )
    register_health_routes(
        app=app,
        health_tracker=tracker,
        time_provider=time_provider,
        serialize_iso=serialize_iso,
        get_system_diagnostics=get_system_diagnostics,
        periodic_dispatch=periodic_dispatch,
    )

    async def _shutdown(_app: Any) -> None:
        logger.info("Application shutdown requested")

    app.on_shutdown.append(_shutdown)
    return app


async def _start_site(runner: Any, host: str, configured_port: int) -> int:
    """Bind the first free port starting at ``configured_port``."""
    from aiohttp import web

    for port_offset in range(MAX_PORT_ATTEMPTS):
        port = configured_port + port_offset
        site = web.TCPSite(runner, host=host, port=port)
        try:
            await site.start()
        except OSError as e:
            if "address already in use" not in str(e).lower():
                logger.exception("Failed to start server on %s:%d", host, port)
                raise
            logger.debug("Port %d in use, trying next port", port)
            continue
        if port != configured_port:
            logger.warning("Configured port %d was in use, using port %d instead", configured_port, port)
        return port

    raise RuntimeError(
        f"No available port found in range {configured_port}-{configured_port + MAX_PORT_ATTEMPTS - 1}"
    )


async def _serve(config: Any, external_stop_event: Optional[asyncio.Event] = None) -> None:
    """Run the server and background dispatcher until signalled to stop.

    Args:
        config: Server configuration object/dict.
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers are not registered (caller owns signal handling).
    """
    from aiohttp import web

    stop_event = external_stop_event or asyncio.Event()
    dispatch_lock = asyncio.Lock()
    health_tracker = HealthTracker()
    store = build_store(config)
    sender = build_sender(config)
    interval = int(get_config_value(config, "reminder_interval_seconds", 0))

    if not sender.configured:
        logger.warning("Telegram bot token or chat id missing; notifications will fail")

    app = _make_app(
        config,
        store,
        sender,
        dispatch_lock=dispatch_lock,
        health_tracker=health_tracker,
        periodic_dispatch=interval > 0,
    )

    runner = web.AppRunner(app)
    await runner.setup()

    host = get_config_value(config, "server_bind", "0.0.0.0")  # nosec: B104
    port = await _start_site(runner, host, int(get_config_value(config, "server_port", 8080)))
    logger.info("Server started successfully on %s:%d", host, port)

    reminder_task: Optional[asyncio.Task[None]] = None
    if interval > 0:
        reminder_task = asyncio.create_task(
            _reminder_loop(
                config,
                build_reminder_dispatcher(config, store, sender),
                dispatch_lock,
                health_tracker,
                stop_event,
            )
        )

    if external_stop_event is None:
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)

    await stop_event.wait()
    logger.info("Stop event received, shutting down")

    if reminder_task is not None:
        reminder_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reminder_task

    await runner.cleanup()

    try:
        await close_all_clients()
    except Exception as e:
        logger.warning("Error cleaning up shared HTTP clients: %s", e)

    logger.info("Server shutdown complete")


async def dispatch_once(config: Any, minutes_ahead: Any = None) -> dict[str, Any]:
    """Run a single reminder dispatch pass without starting the server.

    Raises:
        NotificationError: reminders are enabled but the Telegram target is not configured
    """
    sender = build_sender(config)
    if get_config_value(config, "reminders_enabled", False) and not sender.configured:
        raise NotificationError("reminders are enabled but telegram_bot_token/telegram_chat_id are missing")

    store = build_store(config)
    dispatcher = build_reminder_dispatcher(config, store, sender)
    if minutes_ahead is None:
        minutes_ahead = get_config_value(config, "reminder_minutes_ahead", 60)
    try:
        result = await dispatcher.run(now_utc(), minutes_ahead)
    finally:
        await close_all_clients()
    return result.to_dict()


def start_server(config: Any) -> None:
    """Run the HTTP server until SIGINT/SIGTERM."""
    try:
        logger.debug("Running asyncio event loop for server")
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Server terminated unexpectedly")
        raise
