"""Process-wide service wiring used as FastAPI dependencies."""
from __future__ import annotations

from functools import lru_cache

from .core.config import get_settings
from .repositories.calls import CallRepository, build_repository
from .services.calls import CallService
from .services.notify import NotificationDispatcher, WebhookNotifier
from .services.sms import SmsRelay, build_sms_sender
from .services.telephony import build_outbound_caller


@lru_cache
def get_repository() -> CallRepository:
    return build_repository(get_settings())


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(WebhookNotifier(get_settings()))


@lru_cache
def get_call_service() -> CallService:
    """Return the shared call service; tests override this dependency."""

    config = get_settings()
    return CallService(get_repository(), build_outbound_caller(config), get_dispatcher(), config)


@lru_cache
def get_sms_relay() -> SmsRelay:
    return SmsRelay(build_sms_sender(get_settings()), get_call_service(), get_dispatcher())
