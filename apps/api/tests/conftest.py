"""Shared fixtures: a controllable clock, an isolated repository and fake collaborators."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from reservation_caller.core.config import Settings
from reservation_caller.core.errors import TelephonyError
from reservation_caller.repositories.calls import InMemoryCallRepository
from reservation_caller.schemas.calls import ReservationRequest
from reservation_caller.services.calls import CallService
from reservation_caller.services.notify import NotificationDispatcher
from reservation_caller.services.telephony import PlacedCall


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 2, 20, 18, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class FakeCaller:
    """Outbound caller that records dials and can be told to fail."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.placed: list[tuple[str, str]] = []

    async def place(self, to: str, call_id: str) -> PlacedCall:
        self.placed.append((to, call_id))
        if self.fail:
            raise TelephonyError("provider unavailable", attempts=3)
        return PlacedCall(session_ref=f"CA{len(self.placed):04d}")


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def notify(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [event for event, _ in self.events]


@pytest.fixture
def config() -> Settings:
    return Settings(
        _env_file=None,
        data_file="",
        database_url="",
        twilio_account_sid="",
        twilio_auth_token="",
        twilio_phone_number="",
        notify_callback_url="",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository(clock: FakeClock) -> InMemoryCallRepository:
    return InMemoryCallRepository(clock=clock)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier: RecordingNotifier) -> NotificationDispatcher:
    return NotificationDispatcher(notifier)


@pytest.fixture
def simulated_service(repository, dispatcher, config) -> CallService:
    return CallService(repository, None, dispatcher, config)


@pytest.fixture
def reservation() -> ReservationRequest:
    return ReservationRequest(
        request_id="req-dinner-1",
        business_name="Trattoria Roma",
        business_phone="(415) 555-0134",
        date="2026-02-22",
        time_preferred="20:00",
        party_size=2,
        name_for_booking="Felix",
    )
