"""SMS through Twilio: outbound sends, inbound relay to the operator and delivery status."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from twilio.rest import Client

from ..core.config import Settings
from ..core.errors import OutboundSmsError, SmsUnavailableError
from ..core.events import log_event
from ..schemas.calls import Speaker
from .calls import CallService
from .helpers import normalize_phone
from .notify import NotificationDispatcher

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SentMessage:
    sid: str
    status: str | None = None


class SmsSender(Protocol):
    async def send(self, to: str, body: str, from_: str | None = None) -> SentMessage:
        """Send one text message."""


class TwilioSmsSender:
    """Create messages with the Twilio REST client, bounded by the create timeout."""

    def __init__(self, config: Settings, client: Any | None = None) -> None:
        self._config = config
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = Client(self._config.twilio_account_sid, self._config.twilio_auth_token)
        return self._client

    async def send(self, to: str, body: str, from_: str | None = None) -> SentMessage:
        params = {
            "to": to,
            "from_": from_ or self._config.twilio_phone_number,
            "body": body,
            "status_callback": f"{self._config.app_base_url.rstrip('/')}/api/telephony/sms-status",
        }
        loop = asyncio.get_running_loop()
        message = await asyncio.wait_for(
            loop.run_in_executor(None, lambda: self.client.messages.create(**params)),
            timeout=self._config.twilio_create_timeout_ms / 1000,
        )
        return SentMessage(sid=message.sid, status=getattr(message, "status", None))


def build_sms_sender(config: Settings) -> SmsSender | None:
    if not config.has_twilio_config:
        return None
    return TwilioSmsSender(config)


class SmsRelay:
    """Sends texts and forwards inbound ones to the operator channel.

    An inbound text from a number we have called is also appended to that
    call's transcript. Texts never change a call's status.
    """

    def __init__(self, sender: SmsSender | None, calls: CallService, dispatcher: NotificationDispatcher) -> None:
        self._sender = sender
        self._calls = calls
        self._dispatcher = dispatcher

    async def send(self, to: str, body: str, from_: str | None = None) -> SentMessage:
        if self._sender is None:
            raise SmsUnavailableError("Twilio is not configured")
        try:
            sent = await self._sender.send(to, body, from_)
        except asyncio.TimeoutError as exc:
            log_event("telephony.sms.send_failed", logging.ERROR, to=to, error="timed out")
            raise OutboundSmsError("Failed to send SMS") from exc
        except Exception as exc:  # noqa: BLE001
            log_event("telephony.sms.send_failed", logging.ERROR, to=to, error=str(exc))
            raise OutboundSmsError("Failed to send SMS") from exc

        log_event("telephony.sms.sent", to=to, sid=sent.sid, status=sent.status)
        return sent

    async def handle_inbound(
        self,
        from_phone: str | None,
        to_phone: str | None,
        body: str | None,
        sid: str | None = None,
    ) -> str | None:
        """Relay an inbound text; return the id of the call it was attached to."""

        sender = normalize_phone(from_phone) or "unknown"
        recipient = normalize_phone(to_phone) or "unknown"
        text = (body or "").strip()
        related = await self._calls.find_recent_by_phone(sender) if from_phone else None
        related_id = related.id if related else None
        if related is not None:
            await self._calls.repository.append_transcript(
                related.id, Speaker.BUSINESS, f"SMS: {text or '(empty)'}"
            )

        log_event(
            "telephony.sms.received",
            from_phone=sender,
            to_phone=recipient,
            sid=sid,
            length=len(text),
            related_call_id=related_id,
        )
        self._dispatcher.dispatch(
            "sms_received",
            {"from": sender, "to": recipient, "sid": sid, "body": text, "related_call_id": related_id},
        )
        return related_id

    def handle_status(
        self,
        sid: str | None,
        status: str | None,
        from_phone: str | None = None,
        to_phone: str | None = None,
    ) -> None:
        log_event("telephony.sms.status", sid=sid, status=status, from_phone=from_phone, to_phone=to_phone)
