"""Health tracking for the visitbot server."""

from __future__ import annotations

import os
import platform
import sys
import time
from dataclasses import dataclass
from typing import Any, Optional

# A periodic dispatcher that has not completed for this long is degraded
STALE_DISPATCH_SECONDS = 3 * 3600


@dataclass
class HealthStatus:
    """Health status information for the server."""

    status: str  # "ok" or "degraded"
    server_time_iso: str
    uptime_seconds: int
    pid: int
    last_dispatch: dict[str, Any]


class HealthTracker:
    """In-memory record of dispatcher runs for /api/health."""

    def __init__(self) -> None:
        self._start_time: float = time.time()
        self._last_dispatch_attempt: Optional[float] = None
        self._last_dispatch_success: Optional[float] = None
        self._last_dispatch_error: Optional[str] = None
        self._last_checked: int = 0
        self._last_sent: int = 0

    def record_dispatch_attempt(self) -> None:
        self._last_dispatch_attempt = time.time()

    def record_dispatch_success(self, checked: int, sent: int) -> None:
        self._last_dispatch_success = time.time()
        self._last_dispatch_error = None
        self._last_checked = checked
        self._last_sent = sent

    def record_dispatch_failure(self, error: str) -> None:
        self._last_dispatch_error = error

    def get_uptime_seconds(self) -> int:
        return int(time.time() - self._start_time)

    def _age(self, timestamp: Optional[float]) -> Optional[int]:
        if timestamp is None:
            return None
        return int(time.time() - timestamp)

    def determine_overall_status(self, periodic: bool) -> str:
        """Degraded when the last run failed, or a periodic loop has gone stale."""
        if self._last_dispatch_error is not None:
            return "degraded"
        if periodic:
            age = self._age(self._last_dispatch_success)
            if age is None and self.get_uptime_seconds() > STALE_DISPATCH_SECONDS:
                return "degraded"
            if age is not None and age > STALE_DISPATCH_SECONDS:
                return "degraded"
        return "ok"

    def get_health_status(self, server_time_iso: str, periodic: bool = False) -> HealthStatus:
        return HealthStatus(
            status=self.determine_overall_status(periodic),
            server_time_iso=server_time_iso,
            uptime_seconds=self.get_uptime_seconds(),
            pid=os.getpid(),
            last_dispatch={
                "last_attempt_age_s": self._age(self._last_dispatch_attempt),
                "last_success_age_s": self._age(self._last_dispatch_success),
                "last_error": self._last_dispatch_error,
                "checked": self._last_checked,
                "sent": self._last_sent,
            },
        )


def get_system_diagnostics() -> dict[str, str]:
    return {
        "platform": platform.platform(),
        "python_version": sys.version.split()[0],
    }
