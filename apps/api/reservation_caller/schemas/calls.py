"""Schemas for call records, reservations, and engine results."""
from __future__ import annotations

from datetime import datetime
import enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class CallStatus(str, enum.Enum):
    INIT = "INIT"
    DIALING = "DIALING"
    CONNECTED = "CONNECTED"
    DISCOVERY = "DISCOVERY"
    NEGOTIATION = "NEGOTIATION"
    PROPOSED_OUTCOME = "PROPOSED_OUTCOME"
    WAITING_USER_APPROVAL = "WAITING_USER_APPROVAL"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    ENDED = "ENDED"


class Speaker(str, enum.Enum):
    ASSISTANT = "assistant"
    BUSINESS = "business"
    SYSTEM = "system"


class OutcomeStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    VOICEMAIL = "voicemail"


class DecisionKind(str, enum.Enum):
    APPROVE = "approve"
    REVISE = "revise"
    CANCEL = "cancel"


class ScriptOverrides(BaseModel):
    intro: str | None = None
    question: str | None = None
    voicemail: str | None = None
    mode: Literal["reservation", "personal"] = "reservation"


class ReservationPolicy(BaseModel):
    allow_auto_confirm: bool = False


class ReservationRequest(BaseModel):
    request_id: str = Field(default="", description="Caller supplied idempotency key")
    business_name: str = Field(min_length=1)
    business_phone: str = Field(min_length=1)
    date: str = Field(min_length=1)
    time_preferred: str = Field(min_length=1)
    party_size: int = Field(gt=0)
    name_for_booking: str = Field(min_length=1)
    constraints: Any | None = None
    policy: ReservationPolicy = Field(default_factory=ReservationPolicy)
    script: ScriptOverrides | None = None

    @property
    def is_personal(self) -> bool:
        return self.script is not None and self.script.mode == "personal"


class ReservationPatch(BaseModel):
    date: str | None = None
    time_preferred: str | None = None
    party_size: int | None = Field(default=None, gt=0)

    def is_empty(self) -> bool:
        return self.date is None and self.time_preferred is None and self.party_size is None


class TranscriptEntry(BaseModel):
    at: datetime
    speaker: Speaker
    text: str


class ConfirmedDetails(BaseModel):
    date: str
    time: str
    party_size: int
    name: str
    notes: str | None = None


class CallOutcome(BaseModel):
    status: OutcomeStatus
    needs_user_approval: bool = False
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str
    confirmed_details: ConfirmedDetails | None = None


class CallRecord(BaseModel):
    id: str
    reservation: ReservationRequest
    status: CallStatus = CallStatus.INIT
    created_at: datetime
    updated_at: datetime
    transcript: list[TranscriptEntry] = Field(default_factory=list)
    outcome: CallOutcome | None = None
    telephony_ref: str | None = None


class PersonalCallRequest(BaseModel):
    request_id: str = ""
    target_name: str = "Personal Contact"
    target_phone: str = Field(min_length=1)
    caller_name: str | None = None
    intro: str = Field(min_length=1)
    question: str = Field(min_length=1)


class DecisionRequest(BaseModel):
    decision: DecisionKind
    notes: str | None = None


class OperatorDecisionRequest(DecisionRequest):
    call_id: str = Field(min_length=1)


class RecallRequest(ReservationPatch):
    notes: str | None = None


class ProposedOutcomeRequest(BaseModel):
    note: str = "No risk noted"


class SweepResult(BaseModel):
    updated: int = 0
    stale_call_ids: list[str] = Field(default_factory=list)


class StartCallResponse(BaseModel):
    message: str
    call_id: str
    status: CallStatus
    simulated: bool = False
    idempotent: bool = False
    telephony_ref: str | None = None


class RecallResponse(BaseModel):
    ok: bool = True
    simulated: bool
    call: CallRecord
    telephony_ref: str | None = None


class CallResponse(BaseModel):
    ok: bool = True
    call: CallRecord


class CallListResponse(BaseModel):
    calls: list[CallRecord]
    stale_sweep: SweepResult


class HealthResponse(BaseModel):
    status: str
    telephony_configured: bool
    stale_sweep: SweepResult


class SendSmsRequest(BaseModel):
    to: str = Field(min_length=3)
    message: str = Field(min_length=1)
    from_: str | None = Field(default=None, alias="from")


class SendSmsResponse(BaseModel):
    ok: bool = True
    sid: str
    status: str | None = None
