"""Call lifecycle orchestration: dialing, webhook turns, human decisions and recalls."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4

from ..core.config import Settings
from ..core.errors import CallNotFoundError, InvalidDecisionError, OutboundCallError
from ..core.events import log_event
from ..repositories.calls import CallRepository
from ..schemas.calls import (
    CallOutcome,
    CallRecord,
    CallStatus,
    ConfirmedDetails,
    DecisionKind,
    OutcomeStatus,
    PersonalCallRequest,
    ReservationPatch,
    ReservationPolicy,
    ReservationRequest,
    ScriptOverrides,
    Speaker,
    SweepResult,
)
from .extraction import normalize_time, parse_business_reply
from .helpers import normalize_phone, parse_revision_text
from .negotiation import NegotiationAction, decide_from_reply
from .notify import NotificationDispatcher
from .policy import (
    build_assistant_intro,
    build_assistant_question,
    build_voicemail_message,
    needs_human_confirmation,
)
from .state_machine import can_transition, is_terminal
from .sweeper import sweep_stale_calls
from .telephony import OutboundCaller, is_provider_failure_status, is_voicemail, map_provider_status
from .transcript import count_business_turns

logger = logging.getLogger(__name__)

NO_SPEECH = "(no speech captured)"
PROVIDER_FAILURE_CONFIDENCE = 0.9
NO_SPEECH_CONFIDENCE = 0.4
INBOUND_NO_SPEECH_CONFIDENCE = 0.3
APPROVAL_CONFIDENCE = 0.95
CANCEL_CONFIDENCE = 1.0
PROPOSED_OUTCOME_CONFIDENCE = 0.78
VOICEMAIL_CONFIDENCE = 0.95
CAPTURED_MESSAGE_CONFIDENCE = 0.9
INBOUND_GATHER_ATTEMPTS = 2

PERSONAL_DEFAULT_TIME = "19:00"
PERSONAL_DEFAULT_PARTY_SIZE = 2
INBOUND_QUESTION = "Please say your message after the tone and I will pass it along right away."
INBOUND_PROMPT = "Please leave your message after the tone. I am listening."
CLARIFY_LINE = "Thanks. Could you repeat the available time and any reservation conditions?"


@dataclass(slots=True)
class StartCallResult:
    call: CallRecord
    simulated: bool = False
    idempotent: bool = False
    session_ref: str | None = None


@dataclass(slots=True)
class RecallResult:
    call: CallRecord
    simulated: bool
    session_ref: str | None = None


@dataclass(slots=True)
class AnswerResult:
    call: CallRecord
    voicemail: bool
    lines: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ReplyResult:
    """What the assistant says back after one captured utterance."""

    call: CallRecord
    action: NegotiationAction | None
    say: str
    continue_listening: bool = False


@dataclass(slots=True)
class InboundResult:
    call: CallRecord
    greeting: str
    prompt: str
    related_call_id: str | None = None


class CallService:
    """Coordinates the repository, the outbound caller and operator notifications.

    ``caller`` is ``None`` in simulation mode: calls move through the same
    statuses but nothing is dialed. Notifications are dispatched only after
    the state they describe has been persisted.
    """

    def __init__(
        self,
        repository: CallRepository,
        caller: OutboundCaller | None,
        dispatcher: NotificationDispatcher,
        config: Settings,
    ) -> None:
        self._repository = repository
        self._caller = caller
        self._dispatcher = dispatcher
        self._config = config

    @property
    def repository(self) -> CallRepository:
        return self._repository

    @property
    def telephony_configured(self) -> bool:
        return self._caller is not None

    async def sweep(self) -> SweepResult:
        return await sweep_stale_calls(self._repository, self._config)

    async def get_call(self, call_id: str) -> CallRecord:
        call = await self._repository.get(call_id)
        if call is None:
            raise CallNotFoundError(call_id)
        return call

    async def list_calls(self) -> list[CallRecord]:
        return await self._repository.list()

    async def start_call(self, request: ReservationRequest) -> StartCallResult:
        """Create the call and dial it, or return the existing call for a repeated request id."""

        record, created = await self._repository.create_if_absent(request)
        if not created:
            logger.info("Call %s already exists; skipping dial", record.id)
            return StartCallResult(call=record, idempotent=True, session_ref=record.telephony_ref)

        call_id = record.id
        await self._repository.update_status(call_id, CallStatus.DIALING)
        await self._repository.append_transcript(call_id, Speaker.ASSISTANT, build_assistant_intro(record.reservation))

        if self._caller is None:
            session_ref = f"SIM-{call_id[:8]}"
            await self._repository.attach_telephony_ref(call_id, session_ref)
            log_event("call.started", call_id=call_id, simulated=True)
            return StartCallResult(call=await self.get_call(call_id), simulated=True, session_ref=session_ref)

        session_ref = await self._dial(self._caller, call_id, record.reservation.business_phone, "call")
        log_event("call.started", call_id=call_id, simulated=False, session_ref=session_ref)
        return StartCallResult(call=await self.get_call(call_id), session_ref=session_ref)

    async def start_personal_call(self, request: PersonalCallRequest) -> StartCallResult:
        """Place a scripted personal call: the callee's answer is relayed, never negotiated."""

        reservation = ReservationRequest(
            request_id=request.request_id,
            business_name=request.target_name,
            business_phone=request.target_phone,
            date=datetime.now(timezone.utc).date().isoformat(),
            time_preferred=PERSONAL_DEFAULT_TIME,
            party_size=PERSONAL_DEFAULT_PARTY_SIZE,
            name_for_booking=request.caller_name or self._config.default_caller_name,
            policy=ReservationPolicy(allow_auto_confirm=False),
            script=ScriptOverrides(mode="personal", intro=request.intro, question=request.question),
        )
        return await self.start_call(reservation)

    async def handle_status_callback(
        self,
        call_id: str,
        provider_status: str,
        session_ref: str | None = None,
    ) -> CallStatus:
        """Apply an asynchronous provider status update and return the mapped status."""

        await self.get_call(call_id)
        mapped = map_provider_status(provider_status)
        applied = await self._repository.update_status(call_id, mapped)
        await self._repository.append_transcript(call_id, Speaker.SYSTEM, f"Call status: {provider_status}")
        log_event(
            "telephony.status",
            call_id=call_id,
            provider_status=provider_status,
            mapped_status=mapped.value,
            applied=applied,
            session_ref=session_ref,
        )

        if applied and is_provider_failure_status(provider_status):
            await self._repository.set_outcome(
                call_id,
                CallOutcome(
                    status=OutcomeStatus.FAILED,
                    confidence=PROVIDER_FAILURE_CONFIDENCE,
                    reason=f"Call ended with provider status: {provider_status}",
                ),
            )
        return mapped

    async def handle_answered(self, call_id: str, answered_by: str | None = None) -> AnswerResult:
        """Leave a voicemail when a machine answered, otherwise open the conversation."""

        call = await self.get_call(call_id)
        reservation = call.reservation
        detected_by = (answered_by or "").strip().lower()
        voicemail = is_voicemail(detected_by)
        log_event("telephony.voice", call_id=call_id, answered_by=detected_by or None, voicemail=voicemail)

        if voicemail:
            message = build_voicemail_message(reservation)
            await self._repository.append_transcript(
                call_id, Speaker.SYSTEM, f"Voicemail detected (AnsweredBy={detected_by or 'n/a'})"
            )
            await self._repository.append_transcript(call_id, Speaker.ASSISTANT, f"Voicemail message left: {message}")
            await self._repository.set_outcome(
                call_id,
                CallOutcome(
                    status=OutcomeStatus.VOICEMAIL,
                    confidence=VOICEMAIL_CONFIDENCE,
                    reason=f"Voicemail detected ({detected_by or 'unknown'})",
                    confirmed_details=_details(reservation, notes=message),
                ),
            )
            await self._repository.update_status(call_id, CallStatus.ENDED)
            self._dispatcher.dispatch(
                "call_voicemail",
                {"call_id": call_id, "business_name": reservation.business_name, "answered_by": detected_by or "unknown"},
            )
            return AnswerResult(call=await self.get_call(call_id), voicemail=True, lines=[message])

        await self._repository.update_status(call_id, CallStatus.DISCOVERY)
        lines = [build_assistant_intro(reservation), build_assistant_question(reservation)]
        return AnswerResult(call=await self.get_call(call_id), voicemail=False, lines=lines)

    async def handle_business_reply(self, call_id: str, speech: str | None) -> ReplyResult:
        """Record one business utterance and act on the negotiation decision."""

        call = await self.get_call(call_id)
        reservation = call.reservation
        text = (speech or "").strip()
        await self._repository.append_transcript(call_id, Speaker.BUSINESS, text or NO_SPEECH)
        log_event("telephony.gather", call_id=call_id, has_speech=bool(text))

        if is_terminal(call.status):
            log_event("call.reply.ignored", logging.WARNING, call_id=call_id, status=call.status.value)
            return ReplyResult(call=await self.get_call(call_id), action=None, say="Thank you. Goodbye.")

        if not text:
            await self._repository.update_status(call_id, CallStatus.FAILED)
            await self._repository.set_outcome(
                call_id,
                CallOutcome(status=OutcomeStatus.FAILED, confidence=NO_SPEECH_CONFIDENCE, reason="No speech captured"),
            )
            return ReplyResult(
                call=await self.get_call(call_id),
                action=None,
                say="I did not hear a response. I will follow up later. Thank you.",
            )

        if reservation.is_personal:
            await self._await_approval(
                call_id,
                reservation,
                confidence=CAPTURED_MESSAGE_CONFIDENCE,
                reason="Personal call response captured",
                notes=text,
            )
            return ReplyResult(
                call=await self.get_call(call_id),
                action=NegotiationAction.NEEDS_APPROVAL,
                say="Thank you, I will pass this message along.",
            )

        refreshed = await self.get_call(call_id)
        extraction = parse_business_reply(text)
        decision = decide_from_reply(
            extraction,
            reservation,
            count_business_turns(refreshed.transcript),
            self._config.max_clarification_turns,
        )
        log_event("call.reply.decided", call_id=call_id, action=decision.action.value, reason=decision.reason)

        if decision.action is NegotiationAction.REJECT:
            await self._repository.set_outcome(
                call_id,
                CallOutcome(status=OutcomeStatus.FAILED, confidence=extraction.confidence, reason=decision.reason),
            )
            await self._repository.update_status(call_id, CallStatus.FAILED)
            self._dispatcher.dispatch(
                "call_failed",
                {"call_id": call_id, "business_name": reservation.business_name, "reason": decision.reason},
            )
            say = "Understood, thank you for checking. Have a great day."
            return ReplyResult(call=await self.get_call(call_id), action=decision.action, say=say)

        if decision.action is NegotiationAction.CONFIRM:
            details = _details(reservation, time=decision.proposed_time, notes=decision.notes)
            await self._repository.set_outcome(
                call_id,
                CallOutcome(
                    status=OutcomeStatus.CONFIRMED,
                    confidence=extraction.confidence,
                    reason=decision.reason,
                    confirmed_details=details,
                ),
            )
            await self._repository.update_status(call_id, CallStatus.CONFIRMED)
            self._dispatcher.dispatch(
                "call_confirmed",
                {
                    "call_id": call_id,
                    "business_name": reservation.business_name,
                    "confirmed": details.model_dump(exclude_none=True),
                },
            )
            say = f"Perfect. Please confirm the reservation under {reservation.name_for_booking}. Thank you."
            return ReplyResult(call=await self.get_call(call_id), action=decision.action, say=say)

        if decision.action is NegotiationAction.NEEDS_APPROVAL:
            await self._await_approval(
                call_id,
                reservation,
                confidence=extraction.confidence,
                reason=decision.reason,
                notes=decision.notes,
                time=decision.proposed_time,
            )
            say = (
                f"Thank you. I need to confirm final details with {reservation.name_for_booking} "
                "and will call back if needed."
            )
            return ReplyResult(call=await self.get_call(call_id), action=decision.action, say=say)

        await self._repository.update_status(call_id, CallStatus.NEGOTIATION)
        return ReplyResult(
            call=await self.get_call(call_id),
            action=decision.action,
            say=CLARIFY_LINE,
            continue_listening=True,
        )

    async def propose_outcome(self, call_id: str, note: str) -> CallRecord:
        """Record a pending outcome from a free-text note, escalating risky notes."""

        call = await self.get_call(call_id)
        reservation = call.reservation
        require_approval = needs_human_confirmation(note, reservation.policy.allow_auto_confirm)
        target = CallStatus.WAITING_USER_APPROVAL if require_approval else CallStatus.PROPOSED_OUTCOME
        if self._blocked(call, target, "proposed_outcome"):
            return call

        await self._repository.set_outcome(
            call_id,
            CallOutcome(
                status=OutcomeStatus.PENDING,
                needs_user_approval=require_approval,
                confidence=PROPOSED_OUTCOME_CONFIDENCE,
                reason=note,
                confirmed_details=_details(reservation, notes=note),
            ),
        )
        await self._repository.update_status(call_id, target)
        return await self.get_call(call_id)

    async def apply_decision(
        self,
        call_id: str,
        decision: DecisionKind | str,
        notes: str | None = None,
    ) -> CallRecord:
        """Apply an operator's approve, revise or cancel decision.

        Approving an outcome whose time differs from the requested one is a
        conditional confirmation: the approval is recorded, the reservation
        moves to the approved time and the business is called back.
        """

        kind = _parse_decision(decision)
        call = await self.get_call(call_id)
        reservation = call.reservation

        details = call.outcome.confirmed_details if call.outcome else None
        proposed_time = details.time if details else None
        approved_time = proposed_time or reservation.time_preferred
        needs_recall = bool(proposed_time) and not _same_time(proposed_time, reservation.time_preferred)

        if kind is DecisionKind.APPROVE:
            target = CallStatus.DIALING if needs_recall else CallStatus.CONFIRMED
        elif kind is DecisionKind.CANCEL:
            target = CallStatus.FAILED
        else:
            target = CallStatus.NEGOTIATION
        if self._blocked(call, target, f"decision.{kind.value}"):
            return call

        if kind is DecisionKind.APPROVE:
            reason = "Approved by user (with callback to confirm alternate time)" if needs_recall else "Approved by user"

            await self._repository.set_outcome(
                call_id,
                CallOutcome(
                    status=OutcomeStatus.CONFIRMED,
                    confidence=APPROVAL_CONFIDENCE,
                    reason=reason,
                    confirmed_details=_details(reservation, time=approved_time, notes=notes),
                ),
            )

            if needs_recall:
                await self._repository.update_reservation(call_id, ReservationPatch(time_preferred=approved_time))
                await self._repository.append_transcript(
                    call_id,
                    Speaker.SYSTEM,
                    f"User approved alternate time {approved_time}; scheduling callback confirmation.",
                )
                await self._repository.update_status(call_id, CallStatus.DIALING)
                if self._caller is None:
                    await self._repository.append_transcript(
                        call_id,
                        Speaker.SYSTEM,
                        "Telephony not configured: callback after approval skipped (simulation mode).",
                    )
                else:
                    await self._dial(self._caller, call_id, reservation.business_phone, "callback call after approval")
                    self._dispatcher.dispatch(
                        "call_recalled",
                        {"call_id": call_id, "business_name": reservation.business_name, "approved_time": approved_time},
                    )
            else:
                await self._repository.update_status(call_id, CallStatus.CONFIRMED)
                self._dispatcher.dispatch(
                    "call_confirmed",
                    {
                        "call_id": call_id,
                        "business_name": reservation.business_name,
                        "confirmed": _details(reservation, time=approved_time).model_dump(exclude_none=True),
                    },
                )

        elif kind is DecisionKind.CANCEL:
            await self._repository.set_outcome(
                call_id,
                CallOutcome(status=OutcomeStatus.FAILED, confidence=CANCEL_CONFIDENCE, reason="Cancelled by user"),
            )
            await self._repository.update_status(call_id, CallStatus.FAILED)
            self._dispatcher.dispatch("call_cancelled", {"call_id": call_id, "business_name": reservation.business_name})

        else:
            await self._repository.update_status(call_id, CallStatus.NEGOTIATION)
            await self._repository.append_transcript(
                call_id, Speaker.SYSTEM, f"User revision requested: {notes or '(no notes)'}"
            )

        log_event("call.decision.applied", call_id=call_id, decision=kind.value)
        return await self.get_call(call_id)

    async def run_recall(
        self,
        call_id: str,
        patch: ReservationPatch,
        notes: str | None = None,
    ) -> RecallResult:
        """Merge revised terms into the reservation and dial the business again."""

        await self.get_call(call_id)
        if patch.is_empty() and notes:
            patch = parse_revision_text(notes)

        await self._repository.update_reservation(call_id, patch)
        audit = patch.model_dump(exclude_none=True)
        if notes:
            audit["notes"] = notes
        await self._repository.append_transcript(
            call_id, Speaker.SYSTEM, f"Recall requested with updates: {json.dumps(audit, sort_keys=True)}"
        )
        await self._repository.update_status(call_id, CallStatus.DIALING)

        if self._caller is None:
            log_event("call.recall", call_id=call_id, simulated=True)
            return RecallResult(call=await self.get_call(call_id), simulated=True)

        updated = await self.get_call(call_id)
        session_ref = await self._dial(self._caller, call_id, updated.reservation.business_phone, "recall")
        self._dispatcher.dispatch(
            "call_recalled",
            {"call_id": call_id, "business_name": updated.reservation.business_name, "updates": audit},
        )
        log_event("call.recall", call_id=call_id, simulated=False, session_ref=session_ref)
        return RecallResult(call=await self.get_call(call_id), simulated=False, session_ref=session_ref)

    async def handle_inbound_callback(
        self,
        from_phone: str | None,
        to_phone: str | None,
        session_ref: str | None = None,
    ) -> InboundResult:
        """Open a call record for someone phoning us back."""

        caller_phone = normalize_phone(from_phone)
        our_phone = normalize_phone(to_phone)
        related = await self.find_recent_by_phone(caller_phone) if caller_phone else None
        owner = related.reservation.name_for_booking if related else self._config.default_caller_name
        greeting = f"Hi, this is {owner}'s assistant. Thanks for calling back."

        request = ReservationRequest(
            request_id=f"inbound-{session_ref}" if session_ref else f"inbound-{uuid4().hex}",
            business_name=related.reservation.business_name if related else f"Callback {caller_phone or 'unknown'}",
            business_phone=caller_phone or "unknown",
            date=related.reservation.date if related else datetime.now(timezone.utc).date().isoformat(),
            time_preferred=related.reservation.time_preferred if related else PERSONAL_DEFAULT_TIME,
            party_size=related.reservation.party_size if related else PERSONAL_DEFAULT_PARTY_SIZE,
            name_for_booking=owner,
            policy=ReservationPolicy(allow_auto_confirm=False),
            script=ScriptOverrides(mode="personal", intro=greeting, question=INBOUND_QUESTION),
        )
        record, created = await self._repository.create_if_absent(request)
        related_id = related.id if related else None
        if not created:
            return InboundResult(call=record, greeting=greeting, prompt=INBOUND_PROMPT, related_call_id=related_id)

        call_id = record.id
        if session_ref:
            await self._repository.attach_telephony_ref(call_id, session_ref)
        await self._repository.update_status(call_id, CallStatus.DIALING)
        await self._repository.update_status(call_id, CallStatus.CONNECTED)
        suffix = f" (related to {related_id})" if related_id else ""
        await self._repository.append_transcript(
            call_id,
            Speaker.SYSTEM,
            f"Inbound callback received from {caller_phone or 'unknown'} to {our_phone or 'unknown'}{suffix}",
        )
        log_event(
            "telephony.inbound.received",
            call_id=call_id,
            from_phone=caller_phone,
            to_phone=our_phone,
            related_call_id=related_id,
            session_ref=session_ref,
        )
        self._dispatcher.dispatch(
            "callback_received",
            {
                "call_id": call_id,
                "from": caller_phone,
                "to": our_phone,
                "related_call_id": related_id,
                "business_name": record.reservation.business_name,
            },
        )
        return InboundResult(
            call=await self.get_call(call_id),
            greeting=greeting,
            prompt=INBOUND_PROMPT,
            related_call_id=related_id,
        )

    async def handle_inbound_message(self, call_id: str, speech: str | None, attempt: int = 1) -> ReplyResult:
        """Record a callback message; an empty capture is retried once before failing."""

        call = await self.get_call(call_id)
        reservation = call.reservation
        text = (speech or "").strip()
        await self._repository.append_transcript(call_id, Speaker.BUSINESS, text or NO_SPEECH)
        log_event("telephony.inbound.gather", call_id=call_id, has_speech=bool(text), attempt=attempt)

        if not text:
            if attempt < INBOUND_GATHER_ATTEMPTS:
                await self._repository.append_transcript(
                    call_id, Speaker.SYSTEM, "No speech captured on callback; retrying gather once."
                )
                return ReplyResult(
                    call=await self.get_call(call_id),
                    action=None,
                    say="Sorry, I did not catch that. Please say your message again after the tone.",
                    continue_listening=True,
                )
            await self._repository.set_outcome(
                call_id,
                CallOutcome(
                    status=OutcomeStatus.FAILED,
                    confidence=INBOUND_NO_SPEECH_CONFIDENCE,
                    reason="No speech captured on callback",
                ),
            )
            await self._repository.update_status(call_id, CallStatus.FAILED)
            return ReplyResult(
                call=await self.get_call(call_id),
                action=None,
                say="Thanks for calling back. We did not catch your message. Please try again.",
            )

        await self._repository.set_outcome(
            call_id,
            CallOutcome(
                status=OutcomeStatus.PENDING,
                needs_user_approval=True,
                confidence=CAPTURED_MESSAGE_CONFIDENCE,
                reason="Inbound callback message received",
                confirmed_details=_details(reservation, notes=text),
            ),
        )
        await self._repository.update_status(call_id, CallStatus.WAITING_USER_APPROVAL)
        self._dispatcher.dispatch(
            "callback_message",
            {
                "call_id": call_id,
                "from": reservation.business_phone,
                "business_name": reservation.business_name,
                "message": text,
            },
        )
        return ReplyResult(
            call=await self.get_call(call_id),
            action=NegotiationAction.NEEDS_APPROVAL,
            say=f"Thank you. I have passed your message to {reservation.name_for_booking}. Goodbye.",
        )

    async def _await_approval(
        self,
        call_id: str,
        reservation: ReservationRequest,
        *,
        confidence: float,
        reason: str,
        notes: str,
        time: str | None = None,
    ) -> None:
        details = _details(reservation, time=time, notes=notes)
        await self._repository.set_outcome(
            call_id,
            CallOutcome(
                status=OutcomeStatus.PENDING,
                needs_user_approval=True,
                confidence=confidence,
                reason=reason,
                confirmed_details=details,
            ),
        )
        await self._repository.update_status(call_id, CallStatus.WAITING_USER_APPROVAL)
        self._dispatcher.dispatch(
            "approval_required",
            {
                "call_id": call_id,
                "business_name": reservation.business_name,
                "phone": reservation.business_phone,
                "date": details.date,
                "time": details.time,
                "party_size": details.party_size,
                "notes": notes,
            },
        )

    def _blocked(self, call: CallRecord, target: CallStatus, operation: str) -> bool:
        """Log and report an operation whose status move the lifecycle does not allow."""

        if can_transition(call.status, target):
            return False
        log_event(
            "call.operation.blocked",
            logging.WARNING,
            call_id=call.id,
            operation=operation,
            from_status=call.status.value,
            to_status=target.value,
        )
        return True

    async def _dial(self, caller: OutboundCaller, call_id: str, to: str, label: str) -> str:
        """Place an outbound call; on failure fail the call and raise ``OutboundCallError``."""

        try:
            placed = await caller.place(to, call_id)
        except Exception as exc:  # noqa: BLE001
            await self._repository.update_status(call_id, CallStatus.FAILED)
            await self._repository.append_transcript(
                call_id, Speaker.SYSTEM, f"Outbound {label} error: {str(exc) or type(exc).__name__}"
            )
            log_event("call.dial.failed", logging.ERROR, call_id=call_id, label=label, error=str(exc))
            raise OutboundCallError(call_id, f"Failed to create {label}") from exc

        await self._repository.attach_telephony_ref(call_id, placed.session_ref)
        await self._repository.append_transcript(
            call_id, Speaker.SYSTEM, f"Outbound {label} created: {placed.session_ref}"
        )
        return placed.session_ref

    async def find_recent_by_phone(self, phone: str) -> CallRecord | None:
        """Return the most recently updated call placed to ``phone``, if any."""

        target = normalize_phone(phone)
        matches = [
            call for call in await self._repository.list() if normalize_phone(call.reservation.business_phone) == target
        ]
        if not matches:
            return None
        return max(matches, key=lambda call: call.updated_at)


def _details(
    reservation: ReservationRequest,
    *,
    time: str | None = None,
    notes: str | None = None,
) -> ConfirmedDetails:
    return ConfirmedDetails(
        date=reservation.date,
        time=time or reservation.time_preferred,
        party_size=reservation.party_size,
        name=reservation.name_for_booking,
        notes=notes,
    )


def _same_time(left: str, right: str) -> bool:
    return (normalize_time(left) or left.strip()) == (normalize_time(right) or right.strip())


def _parse_decision(value: DecisionKind | str) -> DecisionKind:
    if isinstance(value, DecisionKind):
        return value
    try:
        return DecisionKind(str(value).strip().lower())
    except ValueError as exc:
        raise InvalidDecisionError(f"Invalid decision: {value!r}") from exc
