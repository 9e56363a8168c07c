"""Authorization gate for dispatcher endpoints."""

from __future__ import annotations

import hmac
import logging
from typing import Any, Optional

from visitbot.core.config_manager import get_config_value
from visitbot.core.exceptions import AuthorizationError

logger = logging.getLogger(__name__)

INTERNAL_TOKEN_HEADER = "X-Internal-Token"
SCHEDULER_TRIGGER_HEADER = "X-Scheduler-Trigger"

UNAUTHORIZED_HINT = (
    "Set internal_api_token and send the X-Internal-Token header (or a Bearer token), "
    "or set cron_secret and pass ?cron_secret=..., or enable trust_scheduler_trigger."
)


def _tokens_match(provided: Optional[str], expected: Optional[str]) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def _bearer_token(request: Any) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:]


def is_authorized(request: Any, config: Any) -> bool:
    """Return True when the request may trigger a dispatcher run.

    Accepted credentials, in order:
    - X-Internal-Token header or Authorization Bearer token equal to internal_api_token
    - ?cron_secret= or ?token= equal to cron_secret
    - X-Scheduler-Trigger header, only when trust_scheduler_trigger is enabled
    """
    internal = get_config_value(config, "internal_api_token")
    if internal and (
        _tokens_match(request.headers.get(INTERNAL_TOKEN_HEADER), internal)
        or _tokens_match(_bearer_token(request), internal)
    ):
        return True

    cron_secret = get_config_value(config, "cron_secret")
    query_secret = request.query.get("cron_secret") or request.query.get("token")
    if cron_secret and _tokens_match(query_secret, cron_secret):
        return True

    if get_config_value(config, "trust_scheduler_trigger", False) and request.headers.get(
        SCHEDULER_TRIGGER_HEADER
    ):
        return True

    logger.warning("Rejected unauthorized dispatcher call from %s", getattr(request, "remote", None))
    return False


def require_authorized(request: Any, config: Any) -> None:
    """Raise AuthorizationError unless ``is_authorized`` accepts the request."""
    if not is_authorized(request, config):
        raise AuthorizationError(UNAUTHORIZED_HINT)
