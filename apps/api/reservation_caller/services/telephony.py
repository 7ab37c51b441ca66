"""Outbound call placement through Twilio plus provider status mapping."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol
from urllib.parse import quote

from twilio.rest import Client

from ..core.config import Settings
from ..core.errors import TelephonyError
from ..core.events import log_event
from ..schemas.calls import CallStatus

logger = logging.getLogger(__name__)

STATUS_CALLBACK_EVENTS = ["initiated", "ringing", "answered", "completed"]
FAILURE_STATUSES = frozenset({"busy", "no-answer", "failed", "canceled"})
MACHINE_DETECTION_MODES = {"enable": "Enable", "detect-message-end": "DetectMessageEnd"}

Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class PlacedCall:
    session_ref: str


class OutboundCaller(Protocol):
    async def place(self, to: str, call_id: str) -> PlacedCall:
        """Dial ``to`` for the given call; raise once placement is abandoned."""


class TwilioOutboundCaller:
    """Create outbound calls with bounded retries and a per-attempt timeout."""

    def __init__(
        self,
        config: Settings,
        client: Any | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._client = client
        self._sleep = sleep

    @property
    def client(self) -> Any:
        if self._client is None:
            if not self._config.has_twilio_config:
                raise TelephonyError("Twilio credentials are not configured", attempts=0)
            self._client = Client(self._config.twilio_account_sid, self._config.twilio_auth_token)
        return self._client

    def backoff_seconds(self, attempt: int) -> float:
        delay_ms = min(self._config.twilio_backoff_base_ms * 2 ** (attempt - 1), self._config.twilio_backoff_max_ms)
        return delay_ms / 1000

    def call_params(self, to: str, call_id: str) -> dict[str, Any]:
        base = self._config.app_base_url.rstrip("/")
        encoded = quote(call_id, safe="")
        params: dict[str, Any] = {
            "to": to,
            "from_": self._config.twilio_phone_number,
            "url": f"{base}/api/telephony/voice?callId={encoded}",
            "status_callback": f"{base}/api/telephony/status?callId={encoded}",
            "status_callback_method": "POST",
            "status_callback_event": STATUS_CALLBACK_EVENTS,
        }
        detection = MACHINE_DETECTION_MODES.get(self._config.twilio_machine_detection)
        if detection:
            params["machine_detection"] = detection
        return params

    async def place(self, to: str, call_id: str) -> PlacedCall:
        params = self.call_params(to, call_id)
        attempts = self._config.twilio_create_max_attempts
        timeout = self._config.twilio_create_timeout_ms / 1000
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                loop = asyncio.get_running_loop()
                call = await asyncio.wait_for(
                    loop.run_in_executor(None, lambda: self.client.calls.create(**params)),
                    timeout=timeout,
                )
                return PlacedCall(session_ref=call.sid)
            except asyncio.TimeoutError:
                last_error = TimeoutError(f"Twilio call creation timed out after {timeout:.1f}s")
            except TelephonyError:
                raise
            except Exception as exc:  # noqa: BLE001 - any provider error is retried
                last_error = exc

            log_event(
                "telephony.place.retry",
                logging.WARNING,
                call_id=call_id,
                attempt=attempt,
                max_attempts=attempts,
                error=str(last_error),
            )
            if attempt < attempts:
                await self._sleep(self.backoff_seconds(attempt))

        raise TelephonyError(str(last_error) or "Failed to create outbound call", attempts=attempts)


def build_outbound_caller(config: Settings) -> OutboundCaller | None:
    """Return a Twilio caller, or None to run in simulation mode."""

    if not config.has_twilio_config:
        logger.info("Twilio is not configured; outbound calls will be simulated")
        return None
    return TwilioOutboundCaller(config)


def map_provider_status(status: str | None) -> CallStatus:
    value = (status or "").strip().lower()
    if value in {"initiated", "ringing"}:
        return CallStatus.DIALING
    if value in {"answered", "in-progress"}:
        return CallStatus.CONNECTED
    if value == "completed":
        return CallStatus.ENDED
    if value in FAILURE_STATUSES:
        return CallStatus.FAILED
    return CallStatus.NEGOTIATION


def is_provider_failure_status(status: str | None) -> bool:
    return (status or "").strip().lower() in FAILURE_STATUSES


def is_voicemail(answered_by: str | None) -> bool:
    """Return True when answering-machine detection says nobody picked up."""

    value = (answered_by or "").strip().lower()
    return value.startswith("machine") or "voicemail" in value or value in {"fax", "unknown"}
