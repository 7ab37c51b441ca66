"""Tests for outbound call placement and provider status mapping."""
from __future__ import annotations

import time
from types import SimpleNamespace

import pytest

from reservation_caller.core.config import Settings
from reservation_caller.core.errors import TelephonyError
from reservation_caller.schemas.calls import CallStatus
from reservation_caller.services.telephony import (
    TwilioOutboundCaller,
    build_outbound_caller,
    is_provider_failure_status,
    is_voicemail,
    map_provider_status,
)


class FlakyCalls:
    def __init__(self, failures: int, delay: float = 0.0) -> None:
        self.failures = failures
        self.delay = delay
        self.requests: list[dict] = []

    def create(self, **params):
        self.requests.append(params)
        if self.delay:
            time.sleep(self.delay)
        if len(self.requests) <= self.failures:
            raise RuntimeError(f"provider error {len(self.requests)}")
        return SimpleNamespace(sid="CA1234")


def _settings(**overrides) -> Settings:
    fields = dict(
        _env_file=None,
        app_base_url="https://calls.example.com/",
        twilio_account_sid="AC123",
        twilio_auth_token="secret",
        twilio_phone_number="+15550001111",
    )
    fields.update(overrides)
    return Settings(**fields)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.mark.asyncio
async def test_place_retries_with_exponential_backoff() -> None:
    calls = FlakyCalls(failures=2)
    sleep = RecordingSleep()
    caller = TwilioOutboundCaller(_settings(), client=SimpleNamespace(calls=calls), sleep=sleep)

    placed = await caller.place("+14155550134", "call 1")

    assert placed.session_ref == "CA1234"
    assert len(calls.requests) == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_place_gives_up_after_max_attempts() -> None:
    calls = FlakyCalls(failures=10)
    sleep = RecordingSleep()
    caller = TwilioOutboundCaller(_settings(), client=SimpleNamespace(calls=calls), sleep=sleep)

    with pytest.raises(TelephonyError) as excinfo:
        await caller.place("+14155550134", "call-1")

    assert excinfo.value.attempts == 3
    assert "provider error 3" in str(excinfo.value)
    assert len(calls.requests) == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_place_times_out_each_attempt() -> None:
    calls = FlakyCalls(failures=0, delay=0.3)
    caller = TwilioOutboundCaller(
        _settings(twilio_create_timeout_ms=20, twilio_create_max_attempts=1),
        client=SimpleNamespace(calls=calls),
        sleep=RecordingSleep(),
    )

    with pytest.raises(TelephonyError, match="timed out"):
        await caller.place("+14155550134", "call-1")


def test_backoff_is_capped() -> None:
    caller = TwilioOutboundCaller(_settings(), client=object())

    assert [caller.backoff_seconds(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_call_params_point_back_at_webhooks() -> None:
    caller = TwilioOutboundCaller(_settings(), client=object())

    params = caller.call_params("+14155550134", "call 1")

    assert params["from_"] == "+15550001111"
    assert params["url"] == "https://calls.example.com/api/telephony/voice?callId=call%201"
    assert params["status_callback"] == "https://calls.example.com/api/telephony/status?callId=call%201"
    assert params["machine_detection"] == "DetectMessageEnd"
    assert "machine_detection" not in TwilioOutboundCaller(
        _settings(twilio_machine_detection="disable"), client=object()
    ).call_params("+1", "x")


def test_build_outbound_caller_requires_credentials() -> None:
    assert build_outbound_caller(_settings(twilio_auth_token="")) is None
    assert isinstance(build_outbound_caller(_settings()), TwilioOutboundCaller)


@pytest.mark.parametrize(
    ("provider_status", "expected"),
    [
        ("initiated", CallStatus.DIALING),
        ("ringing", CallStatus.DIALING),
        ("answered", CallStatus.CONNECTED),
        ("in-progress", CallStatus.CONNECTED),
        ("completed", CallStatus.ENDED),
        ("busy", CallStatus.FAILED),
        ("no-answer", CallStatus.FAILED),
        ("failed", CallStatus.FAILED),
        ("canceled", CallStatus.FAILED),
        ("queued", CallStatus.NEGOTIATION),
        (None, CallStatus.NEGOTIATION),
    ],
)
def test_map_provider_status(provider_status, expected) -> None:
    assert map_provider_status(provider_status) is expected


def test_failure_and_voicemail_detection() -> None:
    assert is_provider_failure_status("No-Answer")
    assert not is_provider_failure_status("completed")
    assert is_voicemail("machine_end_beep")
    assert is_voicemail("fax")
    assert not is_voicemail("human")
    assert not is_voicemail(None)
