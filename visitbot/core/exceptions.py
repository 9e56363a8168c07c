"""Custom exception hierarchy for visitbot.

Specific exception types let route handlers map failures to proper HTTP
status codes and keep per-visit failures from aborting a whole batch.
"""


class VisitBotError(Exception):
    """Base exception for all visitbot errors."""


class AuthorizationError(VisitBotError):
    """Caller is not allowed to trigger a dispatcher run.

    Should result in HTTP 401 Unauthorized response.
    """


class ConfigurationError(VisitBotError):
    """Configuration file or value is unusable."""


class VisitStoreError(VisitBotError):
    """Visit store could not be read or written.

    Raised when:
    - The backing JSON file is unreadable or not a mapping
    - A write could not be persisted

    Failing to list visits aborts the operation (HTTP 500); failing to
    update a single visit is logged and the batch continues.
    """


class VisitNotFoundError(VisitStoreError):
    """No visit exists with the requested id."""


class NotificationError(VisitBotError):
    """Notification sender is misconfigured or the send failed."""
