"""Visit schedule routes: calendar feed, reminder triggers, alerts."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from visitbot.api.auth import require_authorized
from visitbot.core.config_manager import get_config_value
from visitbot.core.exceptions import AuthorizationError, VisitStoreError
from visitbot.core.timezone_utils import resolve_timezone

logger = logging.getLogger(__name__)

MAX_ALERT_DAYS = 30


async def _read_json_body(request: Any) -> dict[str, Any]:
    """Return the JSON object body, or an empty dict when absent or not an object."""
    if not request.can_read_body:
        return {}
    try:
        data = await request.json()
    except ValueError:
        logger.debug("Ignoring non-JSON request body on %s", request.path)
        return {}
    return data if isinstance(data, dict) else {}


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def register_visit_routes(
    app: Any,
    config: Any,
    store: Any,
    reminder_dispatcher: Any,
    digest_dispatcher: Any,
    dispatch_lock: asyncio.Lock,
    health_tracker: Any,
    time_provider: Any,
) -> None:
    """Register visit schedule routes.

    Args:
        app: aiohttp web application
        config: Application configuration
        store: Visit store
        reminder_dispatcher: ReminderDispatcher instance
        digest_dispatcher: DailyDigestDispatcher instance
        dispatch_lock: Lock serializing dispatcher runs within this process
        health_tracker: Health tracking instance
        time_provider: Time provider callable returning aware UTC now
    """
    from aiohttp import web

    from visitbot.domain.daily_digest import clamp_days_ahead
    from visitbot.domain.feed_builder import build_calendar_feed, clamp_months_ahead
    from visitbot.domain.visit_alerts import visit_alerts_for_next_days

    visit_tz_name = get_config_value(config, "visit_timezone")
    default_months = get_config_value(config, "feed_months_ahead", 6)
    duration_minutes = get_config_value(config, "visit_duration_minutes", 60)
    default_minutes_ahead = get_config_value(config, "reminder_minutes_ahead", 60)

    def _unauthorized(exc: AuthorizationError) -> Any:
        return web.json_response(
            {"ok": False, "error": "unauthorized", "hint": str(exc)}, status=401
        )

    def _internal_error() -> Any:
        return web.json_response({"ok": False, "error": "internal error"}, status=500)

    async def calendar_feed(request: Any) -> Any:
        """Serve all scheduled visits and their monthly repeats as iCalendar."""
        months = clamp_months_ahead(request.query.get("months"), default_months)
        try:
            visits = store.list_scheduled()
        except VisitStoreError:
            logger.exception("Failed to list visits for calendar feed")
            return _internal_error()

        body = build_calendar_feed(
            visits,
            months,
            time_provider(),
            resolve_timezone(visit_tz_name),
            duration_minutes,
        )
        return web.Response(
            body=body,
            headers={
                "Content-Type": "text/calendar; charset=utf-8",
                "Content-Disposition": 'attachment; filename="visits.ics"',
                "Cache-Control": "no-store",
            },
        )

    async def send_reminders(request: Any) -> Any:
        """Send reminders for occurrences inside the lookahead window."""
        try:
            require_authorized(request, config)
        except AuthorizationError as exc:
            return _unauthorized(exc)

        body = await _read_json_body(request)
        minutes_ahead = body.get("minutes_ahead", request.query.get("minutes_ahead"))
        if minutes_ahead is None:
            minutes_ahead = default_minutes_ahead

        async with dispatch_lock:
            health_tracker.record_dispatch_attempt()
            try:
                result = await reminder_dispatcher.run(time_provider(), minutes_ahead)
            except VisitStoreError as exc:
                logger.exception("Reminder dispatch aborted: cannot list visits")
                health_tracker.record_dispatch_failure(str(exc))
                return _internal_error()
            health_tracker.record_dispatch_success(result.checked, result.sent)

        return web.json_response(result.to_dict())

    async def send_daily_digest(request: Any) -> Any:
        """Send the day-ahead digest of visits on the target date."""
        try:
            require_authorized(request, config)
        except AuthorizationError as exc:
            return _unauthorized(exc)

        body = await _read_json_body(request)
        target_date = body.get("target_date") or request.query.get("target_date")

        async with dispatch_lock:
            try:
                result = await digest_dispatcher.run(
                    time_provider(),
                    days_ahead=body.get("days_ahead", request.query.get("days_ahead")),
                    timezone=body.get("timezone") or request.query.get("timezone"),
                    target_date=target_date,
                    mode=body.get("mode") or request.query.get("mode"),
                    dry_run=_truthy(body.get("dry_run", request.query.get("dry_run", False))),
                )
            except ValueError:
                return web.json_response(
                    {"ok": False, "error": "invalid target_date, expected YYYY-MM-DD"},
                    status=400,
                )
            except VisitStoreError:
                logger.exception("Daily digest aborted: cannot list visits")
                return _internal_error()

        return web.json_response(result.to_dict())

    async def visit_alerts(request: Any) -> Any:
        """List upcoming visit occurrences within the next N local days."""
        days = clamp_days_ahead(request.query.get("days"), default=1, maximum=MAX_ALERT_DAYS)
        try:
            visits = store.list_scheduled()
        except VisitStoreError:
            logger.exception("Failed to list visits for alerts")
            return _internal_error()

        alerts = visit_alerts_for_next_days(
            visits, days, time_provider(), resolve_timezone(visit_tz_name)
        )
        return web.json_response(
            {
                "ok": True,
                "days": days,
                "alerts": [alert.model_dump(mode="json") for alert in alerts],
            }
        )

    app.router.add_get("/api/visits/calendar.ics", calendar_feed)
    app.router.add_post("/api/visits/reminders", send_reminders)
    app.router.add_post("/api/visits/reminders/daily", send_daily_digest)
    app.router.add_get("/api/visits/alerts", visit_alerts)
