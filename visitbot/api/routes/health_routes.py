"""Health route for visitbot."""

from __future__ import annotations

from typing import Any


def register_health_routes(
    app: Any,
    health_tracker: Any,
    time_provider: Any,
    serialize_iso: Any,
    get_system_diagnostics: Any,
    periodic_dispatch: bool = False,
) -> None:
    """Register the health check route.

    Args:
        app: aiohttp web application
        health_tracker: Health tracking instance
        time_provider: Time provider callable
        serialize_iso: Function to serialize datetime to ISO string
        get_system_diagnostics: Function to get system diagnostics
        periodic_dispatch: Whether an in-process reminder loop is running
    """
    from aiohttp import web

    async def health_check(_request: Any) -> Any:
        """Health check endpoint for monitoring system status."""
        health_status = health_tracker.get_health_status(
            serialize_iso(time_provider()), periodic=periodic_dispatch
        )
        health_data = {
            "status": health_status.status,
            "server_time_iso": health_status.server_time_iso,
            "server_status": {
                "uptime_s": health_status.uptime_seconds,
                "pid": health_status.pid,
            },
            "reminder_dispatch": health_status.last_dispatch,
            "system_diagnostics": get_system_diagnostics(),
        }
        http_status = 200 if health_status.status == "ok" else 503
        return web.json_response(health_data, status=http_status)

    app.router.add_get("/api/health", health_check)
