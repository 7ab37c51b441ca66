"""Domain errors raised by the call engine."""
from __future__ import annotations


class CallEngineError(RuntimeError):
    """Base class for errors surfaced to the HTTP layer."""


class CallNotFoundError(CallEngineError):
    """Raised when an operation references an unknown call id."""

    def __init__(self, call_id: str) -> None:
        super().__init__(f"Call not found: {call_id}")
        self.call_id = call_id


class OutboundCallError(CallEngineError):
    """Raised after outbound placement gave up and the call was marked FAILED."""

    def __init__(self, call_id: str, message: str) -> None:
        super().__init__(message)
        self.call_id = call_id


class InvalidDecisionError(CallEngineError, ValueError):
    """Raised when a human decision is malformed."""


class TelephonyError(RuntimeError):
    """Raised by the outbound caller once every attempt has failed."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class SmsUnavailableError(CallEngineError):
    """Raised when an SMS is requested but Twilio is not configured."""


class OutboundSmsError(CallEngineError):
    """Raised when Twilio rejected or timed out an outbound SMS."""
