"""Notification senders used by the reminder dispatchers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from visitbot.core.http_client import (
    correlation_headers,
    get_shared_client,
    record_client_error,
    record_client_success,
)

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
TELEGRAM_CLIENT_ID = "telegram"


@dataclass(frozen=True)
class SendResult:
    """Outcome of a single send; ``error`` is opaque to the dispatchers."""

    ok: bool
    status: Optional[int] = None
    error: Optional[str] = None


class NotificationSender(Protocol):
    """Anything that can deliver a text notification."""

    async def send(self, text: str) -> SendResult: ...


class TelegramSender:
    """Send messages through the Telegram Bot API ``sendMessage`` method."""

    def __init__(
        self,
        bot_token: Optional[str],
        chat_id: Optional[str],
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        api_base: str = TELEGRAM_API_BASE,
    ) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._timeout = httpx.Timeout(timeout_seconds)
        self._client = client
        self._api_base = api_base.rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await get_shared_client(TELEGRAM_CLIENT_ID)

    async def send(self, text: str) -> SendResult:
        if not self._bot_token:
            return SendResult(ok=False, error="telegram bot token is not set")
        if not self._chat_id:
            return SendResult(ok=False, error="telegram chat id is not set")

        url = f"{self._api_base}/bot{self._bot_token}/sendMessage"
        client = await self._get_client()
        try:
            response = await client.post(
                url,
                json={"chat_id": self._chat_id, "text": text},
                headers=correlation_headers(),
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            await record_client_error(TELEGRAM_CLIENT_ID)
            # The URL carries the bot token, so log the exception type only
            logger.warning("Telegram sendMessage failed: %s", type(e).__name__)
            return SendResult(ok=False, error=f"{type(e).__name__}: request failed")

        if response.is_error:
            await record_client_error(TELEGRAM_CLIENT_ID)
            body = response.text
            logger.warning("Telegram sendMessage returned HTTP %d", response.status_code)
            return SendResult(
                ok=False,
                status=response.status_code,
                error=body or f"telegram sendMessage failed (HTTP {response.status_code})",
            )

        await record_client_success(TELEGRAM_CLIENT_ID)
        return SendResult(ok=True, status=response.status_code)
