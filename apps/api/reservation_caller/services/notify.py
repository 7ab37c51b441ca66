"""Best-effort notifications to the operator approval channel."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from ..core.config import Settings
from ..core.events import log_event

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(self, event: str, payload: dict[str, Any]) -> None:
        """Deliver one notification."""


class WebhookNotifier:
    """POST notifications as JSON to the configured callback URL."""

    def __init__(self, config: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._url = config.notify_callback_url
        self._token = config.notify_callback_token
        self._timeout = config.notify_timeout_seconds
        self._client = client

    async def notify(self, event: str, payload: dict[str, Any]) -> None:
        if not self._url:
            logger.debug("No notify callback configured; dropping %s", event)
            return

        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        body = {"event": event, "payload": payload, "ts": datetime.now(timezone.utc).isoformat()}

        if self._client is not None:
            response = await self._client.post(self._url, json=body, headers=headers, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, json=body, headers=headers)
        response.raise_for_status()


class NotificationDispatcher:
    """Fire-and-forget fan-out that never blocks or fails the caller."""

    def __init__(self, notifier: Notifier) -> None:
        self._notifier = notifier
        self._pending: set[asyncio.Task[None]] = set()

    def dispatch(self, event: str, payload: dict[str, Any]) -> None:
        task = asyncio.create_task(self._deliver(event, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (used on shutdown and in tests)."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, event: str, payload: dict[str, Any]) -> None:
        try:
            await self._notifier.notify(event, payload)
        except Exception as exc:  # noqa: BLE001 - delivery is best-effort
            log_event("notify.failed", logging.WARNING, notify_event=event, error=str(exc))
