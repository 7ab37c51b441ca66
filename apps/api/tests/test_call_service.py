"""End-to-end tests for call orchestration against the in-memory repository."""
from __future__ import annotations

import logging

import pytest

from reservation_caller.core.errors import CallNotFoundError, InvalidDecisionError, OutboundCallError
from reservation_caller.schemas.calls import (
    CallStatus,
    DecisionKind,
    OutcomeStatus,
    PersonalCallRequest,
    ReservationPatch,
    Speaker,
)
from reservation_caller.services.calls import CallService
from reservation_caller.services.negotiation import NegotiationAction

from conftest import FakeCaller


def _texts(call, speaker=None) -> list[str]:
    return [entry.text for entry in call.transcript if speaker is None or entry.speaker == speaker]


@pytest.fixture
def caller() -> FakeCaller:
    return FakeCaller()


@pytest.fixture
def live_service(repository, caller, dispatcher, config) -> CallService:
    return CallService(repository, caller, dispatcher, config)


@pytest.mark.asyncio
async def test_start_call_in_simulation_mode(simulated_service, reservation) -> None:
    result = await simulated_service.start_call(reservation)

    assert result.simulated is True
    assert result.idempotent is False
    assert result.call.status is CallStatus.DIALING
    assert result.call.telephony_ref == "SIM-req-dinn"
    assert result.session_ref == "SIM-req-dinn"
    assert _texts(result.call, Speaker.ASSISTANT)[0].startswith("Hi, I'm an assistant calling on behalf of Felix")


@pytest.mark.asyncio
async def test_start_call_is_idempotent(live_service, caller, reservation) -> None:
    first = await live_service.start_call(reservation)
    second = await live_service.start_call(reservation)

    assert second.idempotent is True
    assert second.call.id == first.call.id
    assert len(caller.placed) == 1


@pytest.mark.asyncio
async def test_start_call_dials_business(live_service, caller, reservation) -> None:
    result = await live_service.start_call(reservation)

    assert caller.placed == [("(415) 555-0134", "req-dinner-1")]
    assert result.session_ref == "CA0001"
    assert result.call.telephony_ref == "CA0001"
    assert "Outbound call created: CA0001" in _texts(result.call, Speaker.SYSTEM)


@pytest.mark.asyncio
async def test_start_call_placement_failure_fails_call(live_service, caller, reservation) -> None:
    caller.fail = True

    with pytest.raises(OutboundCallError) as excinfo:
        await live_service.start_call(reservation)

    call = await live_service.get_call(excinfo.value.call_id)
    assert call.status is CallStatus.FAILED
    assert call.telephony_ref is None
    assert "Outbound call error: provider unavailable" in _texts(call, Speaker.SYSTEM)


@pytest.mark.asyncio
async def test_personal_call_relays_answer_for_approval(simulated_service, notifier, dispatcher) -> None:
    started = await simulated_service.start_personal_call(
        PersonalCallRequest(target_phone="+14155550100", intro="Hi Sam, it's Felix's assistant.", question="Dinner Friday?")
    )
    call_id = started.call.id
    assert started.call.reservation.is_personal
    assert started.call.reservation.policy.allow_auto_confirm is False

    await simulated_service.handle_answered(call_id, "human")
    reply = await simulated_service.handle_business_reply(call_id, "Sure, Friday at 7 works, deposit is on me")
    await dispatcher.drain()

    assert reply.action is NegotiationAction.NEEDS_APPROVAL
    assert reply.call.status is CallStatus.WAITING_USER_APPROVAL
    assert reply.call.outcome.needs_user_approval is True
    assert reply.call.outcome.confirmed_details.notes == "Sure, Friday at 7 works, deposit is on me"
    assert notifier.names() == ["approval_required"]


@pytest.mark.asyncio
async def test_scenario_confirm_without_risk(simulated_service, reservation, notifier, dispatcher) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id
    await simulated_service.handle_answered(call_id, "human")

    reply = await simulated_service.handle_business_reply(call_id, "yes that works, no deposit needed")
    await dispatcher.drain()

    assert reply.action is NegotiationAction.CONFIRM
    assert reply.continue_listening is False
    assert reply.call.status is CallStatus.CONFIRMED
    assert reply.call.outcome.status is OutcomeStatus.CONFIRMED
    assert reply.call.outcome.confirmed_details.time == "20:00"
    assert notifier.names() == ["call_confirmed"]


@pytest.mark.asyncio
async def test_scenario_deposit_then_approve(simulated_service, reservation, notifier, dispatcher) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id
    await simulated_service.handle_answered(call_id, "human")

    reply = await simulated_service.handle_business_reply(call_id, "yes but we need a $20 deposit")
    assert reply.action is NegotiationAction.NEEDS_APPROVAL
    assert reply.call.status is CallStatus.WAITING_USER_APPROVAL
    assert reply.call.outcome.status is OutcomeStatus.PENDING
    assert reply.call.outcome.needs_user_approval is True

    call = await simulated_service.apply_decision(call_id, DecisionKind.APPROVE, "deposit ok")
    await dispatcher.drain()

    assert call.status is CallStatus.CONFIRMED
    assert call.outcome.status is OutcomeStatus.CONFIRMED
    assert call.outcome.reason == "Approved by user"
    assert call.outcome.confirmed_details.notes == "deposit ok"
    assert notifier.names() == ["approval_required", "call_confirmed"]


@pytest.mark.asyncio
async def test_approving_a_different_time_schedules_callback(live_service, caller, reservation, notifier, dispatcher) -> None:
    call_id = (await live_service.start_call(reservation)).call.id
    await live_service.handle_answered(call_id, "human")
    reply = await live_service.handle_business_reply(call_id, "We can do 9pm instead")
    assert reply.call.outcome.confirmed_details.time == "21:00"

    call = await live_service.apply_decision(call_id, "approve")
    await dispatcher.drain()

    assert call.status is CallStatus.DIALING
    assert call.reservation.time_preferred == "21:00"
    assert call.outcome.status is OutcomeStatus.CONFIRMED
    assert call.outcome.reason == "Approved by user (with callback to confirm alternate time)"
    assert len(caller.placed) == 2
    assert call.telephony_ref == "CA0002"
    assert "User approved alternate time 21:00; scheduling callback confirmation." in _texts(call)
    assert notifier.names() == ["approval_required", "call_recalled"]


@pytest.mark.asyncio
async def test_approval_callback_failure_keeps_approval(live_service, caller, reservation) -> None:
    call_id = (await live_service.start_call(reservation)).call.id
    await live_service.handle_answered(call_id, "human")
    await live_service.handle_business_reply(call_id, "We can do 9pm instead")
    caller.fail = True

    with pytest.raises(OutboundCallError):
        await live_service.apply_decision(call_id, "approve")

    call = await live_service.get_call(call_id)
    assert call.status is CallStatus.FAILED
    assert call.outcome.status is OutcomeStatus.CONFIRMED
    assert call.outcome.confirmed_details.time == "21:00"


@pytest.mark.asyncio
async def test_approving_a_different_time_without_telephony(simulated_service, reservation) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id
    await simulated_service.handle_business_reply(call_id, "We can do 9pm instead")

    call = await simulated_service.apply_decision(call_id, "approve")

    assert call.status is CallStatus.DIALING
    assert call.reservation.time_preferred == "21:00"
    assert _texts(call, Speaker.SYSTEM)[-1] == (
        "Telephony not configured: callback after approval skipped (simulation mode)."
    )


@pytest.mark.asyncio
async def test_cancel_and_revise(simulated_service, reservation, notifier, dispatcher) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id
    await simulated_service.handle_business_reply(call_id, "yes but we need a $20 deposit")

    revised = await simulated_service.apply_decision(call_id, DecisionKind.REVISE, "ask for 21:00")
    assert revised.status is CallStatus.NEGOTIATION
    assert "User revision requested: ask for 21:00" in _texts(revised, Speaker.SYSTEM)

    cancelled = await simulated_service.apply_decision(call_id, DecisionKind.CANCEL)
    await dispatcher.drain()
    assert cancelled.status is CallStatus.FAILED
    assert cancelled.outcome.reason == "Cancelled by user"
    assert cancelled.outcome.confidence == 1.0
    assert notifier.names()[-1] == "call_cancelled"


@pytest.mark.asyncio
async def test_invalid_decision_touches_nothing(simulated_service, reservation) -> None:
    call = (await simulated_service.start_call(reservation)).call

    with pytest.raises(InvalidDecisionError):
        await simulated_service.apply_decision(call.id, "maybe")

    assert await simulated_service.get_call(call.id) == call


@pytest.mark.asyncio
async def test_unknown_call_raises_not_found(simulated_service) -> None:
    with pytest.raises(CallNotFoundError):
        await simulated_service.apply_decision("missing", DecisionKind.APPROVE)
    with pytest.raises(CallNotFoundError):
        await simulated_service.run_recall("missing", ReservationPatch(party_size=3))
    assert await simulated_service.list_calls() == []


@pytest.mark.asyncio
async def test_reject_fails_call(simulated_service, reservation, notifier, dispatcher) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id

    reply = await simulated_service.handle_business_reply(call_id, "Sorry, we're fully booked tonight")
    await dispatcher.drain()

    assert reply.action is NegotiationAction.REJECT
    assert reply.call.status is CallStatus.FAILED
    assert reply.call.outcome.status is OutcomeStatus.FAILED
    assert notifier.names() == ["call_failed"]


@pytest.mark.asyncio
async def test_clarification_escalates_after_three_turns(simulated_service, reservation) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id
    await simulated_service.handle_answered(call_id, "human")

    first = await simulated_service.handle_business_reply(call_id, "hmm let me look at the book")
    second = await simulated_service.handle_business_reply(call_id, "one moment please")
    third = await simulated_service.handle_business_reply(call_id, "still looking")

    assert first.action is NegotiationAction.CLARIFY
    assert first.continue_listening is True
    assert first.call.status is CallStatus.NEGOTIATION
    assert second.action is NegotiationAction.CLARIFY
    assert third.action is NegotiationAction.NEEDS_APPROVAL
    assert third.call.status is CallStatus.WAITING_USER_APPROVAL
    assert third.call.outcome.reason == "Ambiguous after multiple clarification attempts"


@pytest.mark.asyncio
async def test_empty_speech_fails_call(simulated_service, reservation) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id

    reply = await simulated_service.handle_business_reply(call_id, "   ")

    assert reply.call.status is CallStatus.FAILED
    assert reply.call.outcome.confidence == 0.4
    assert _texts(reply.call, Speaker.BUSINESS) == ["(no speech captured)"]


@pytest.mark.asyncio
async def test_late_reply_on_terminal_call_is_only_recorded(simulated_service, reservation) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id
    await simulated_service.handle_business_reply(call_id, "yes that works")

    late = await simulated_service.handle_business_reply(call_id, "actually we are full")

    assert late.action is None
    assert late.call.status is CallStatus.CONFIRMED
    assert late.call.outcome.status is OutcomeStatus.CONFIRMED
    assert _texts(late.call, Speaker.BUSINESS)[-1] == "actually we are full"


@pytest.mark.asyncio
async def test_voicemail_ends_call(simulated_service, reservation, notifier, dispatcher) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id

    answer = await simulated_service.handle_answered(call_id, "machine_end_beep")
    await dispatcher.drain()

    assert answer.voicemail is True
    assert answer.call.status is CallStatus.ENDED
    assert answer.call.outcome.status is OutcomeStatus.VOICEMAIL
    assert "table for 2" in answer.lines[0]
    assert notifier.names() == ["call_voicemail"]


@pytest.mark.asyncio
async def test_status_callbacks(simulated_service, reservation) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id

    assert await simulated_service.handle_status_callback(call_id, "ringing") is CallStatus.DIALING
    assert await simulated_service.handle_status_callback(call_id, "busy") is CallStatus.FAILED
    call = await simulated_service.get_call(call_id)
    assert call.status is CallStatus.FAILED
    assert call.outcome.reason == "Call ended with provider status: busy"
    assert call.outcome.confidence == 0.9
    assert "Call status: busy" in _texts(call, Speaker.SYSTEM)


@pytest.mark.asyncio
async def test_late_failure_status_does_not_override_confirmation(simulated_service, reservation) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id
    await simulated_service.handle_business_reply(call_id, "yes that works")

    await simulated_service.handle_status_callback(call_id, "no-answer")

    call = await simulated_service.get_call(call_id)
    assert call.status is CallStatus.CONFIRMED
    assert call.outcome.status is OutcomeStatus.CONFIRMED


@pytest.mark.asyncio
async def test_propose_outcome(simulated_service, reservation) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id

    risky = await simulated_service.propose_outcome(call_id, "They need a cancellation fee")
    assert risky.status is CallStatus.WAITING_USER_APPROVAL
    assert risky.outcome.needs_user_approval is True
    assert risky.outcome.confidence == 0.78


@pytest.mark.asyncio
async def test_propose_outcome_without_a_legal_move_changes_nothing(simulated_service, reservation, caplog) -> None:
    caplog.set_level(logging.INFO, logger="reservation_caller.events")
    before = (await simulated_service.start_call(reservation)).call

    proposed = await simulated_service.propose_outcome(before.id, "No risk noted")

    # DIALING has no edge to PROPOSED_OUTCOME.
    assert proposed == before
    assert await simulated_service.get_call(before.id) == before
    blocked = [record for record in caplog.records if getattr(record, "event", None) == "call.operation.blocked"]
    assert len(blocked) == 1
    assert '"operation": "proposed_outcome"' in blocked[0].getMessage()


@pytest.mark.asyncio
async def test_propose_outcome_on_confirmed_call_keeps_confirmation(simulated_service, reservation) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id
    confirmed = (await simulated_service.handle_business_reply(call_id, "yes that works")).call

    after = await simulated_service.propose_outcome(call_id, "They need a deposit")

    assert after.status is CallStatus.CONFIRMED
    assert after.outcome == confirmed.outcome
    assert after.outcome.needs_user_approval is False


@pytest.mark.asyncio
async def test_approve_after_cancel_keeps_cancellation(simulated_service, reservation, notifier, dispatcher) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id
    await simulated_service.handle_business_reply(call_id, "yes but we need a $20 deposit")
    cancelled = await simulated_service.apply_decision(call_id, DecisionKind.CANCEL)

    approved = await simulated_service.apply_decision(call_id, DecisionKind.APPROVE)
    await dispatcher.drain()

    assert approved == cancelled
    assert approved.status is CallStatus.FAILED
    assert approved.outcome.status is OutcomeStatus.FAILED
    assert approved.outcome.reason == "Cancelled by user"
    assert "call_confirmed" not in notifier.names()


@pytest.mark.asyncio
async def test_refusal_naming_the_requested_time_fails_the_call(simulated_service, reservation) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id

    reply = await simulated_service.handle_business_reply(call_id, "Sorry, we can't do 20:00.")

    assert reply.action is NegotiationAction.REJECT
    assert reply.call.status is CallStatus.FAILED
    assert reply.call.outcome.status is OutcomeStatus.FAILED


@pytest.mark.asyncio
async def test_recall_simulated(simulated_service, reservation) -> None:
    call_id = (await simulated_service.start_call(reservation)).call.id
    await simulated_service.handle_business_reply(call_id, "Sorry, we're fully booked tonight")

    result = await simulated_service.run_recall(call_id, ReservationPatch(date="2026-02-23", party_size=3), "next day")

    assert result.simulated is True
    assert result.session_ref is None
    assert result.call.status is CallStatus.DIALING
    assert result.call.reservation.date == "2026-02-23"
    assert result.call.reservation.party_size == 3
    assert result.call.reservation.time_preferred == "20:00"
    assert (
        'Recall requested with updates: {"date": "2026-02-23", "notes": "next day", "party_size": 3}'
        in _texts(result.call, Speaker.SYSTEM)
    )


@pytest.mark.asyncio
async def test_recall_parses_notes_when_patch_empty(live_service, caller, reservation, notifier, dispatcher) -> None:
    call_id = (await live_service.start_call(reservation)).call.id
    await live_service.handle_business_reply(call_id, "Sorry, we're fully booked tonight")

    result = await live_service.run_recall(call_id, ReservationPatch(), "2026-02-24 19:30 for 4")
    await dispatcher.drain()

    assert result.simulated is False
    assert result.session_ref == "CA0002"
    assert result.call.reservation.date == "2026-02-24"
    assert result.call.reservation.time_preferred == "19:30"
    assert result.call.reservation.party_size == 4
    assert result.call.telephony_ref == "CA0002"
    assert "call_recalled" in notifier.names()


@pytest.mark.asyncio
async def test_recall_failure_fails_call(live_service, caller, reservation) -> None:
    call_id = (await live_service.start_call(reservation)).call.id
    caller.fail = True

    with pytest.raises(OutboundCallError):
        await live_service.run_recall(call_id, ReservationPatch(time_preferred="21:00"))

    call = await live_service.get_call(call_id)
    assert call.status is CallStatus.FAILED
    assert "Outbound recall error: provider unavailable" in _texts(call, Speaker.SYSTEM)


@pytest.mark.asyncio
async def test_inbound_callback_links_recent_call(simulated_service, reservation, clock, notifier, dispatcher) -> None:
    original = (await simulated_service.start_call(reservation)).call
    clock.advance(60)

    inbound = await simulated_service.handle_inbound_callback("+1 415 555 0134", "+15550001111", "CAinbound")
    await dispatcher.drain()

    assert inbound.related_call_id == original.id
    assert inbound.call.id == "inbound-CAinbound"
    assert inbound.call.status is CallStatus.CONNECTED
    assert inbound.call.reservation.business_name == "Trattoria Roma"
    assert inbound.call.telephony_ref == "CAinbound"
    assert inbound.greeting == "Hi, this is Felix's assistant. Thanks for calling back."
    assert notifier.names() == ["callback_received"]

    duplicate = await simulated_service.handle_inbound_callback("+14155550134", "+15550001111", "CAinbound")
    assert duplicate.call.id == inbound.call.id
    assert len(await simulated_service.list_calls()) == 2


@pytest.mark.asyncio
async def test_inbound_message_retry_then_fail(simulated_service) -> None:
    inbound = await simulated_service.handle_inbound_callback("+14155550199", "+15550001111", "CA1")
    assert inbound.related_call_id is None
    assert inbound.call.reservation.business_name == "Callback +14155550199"

    retry = await simulated_service.handle_inbound_message(inbound.call.id, "", attempt=1)
    assert retry.continue_listening is True
    assert retry.call.status is CallStatus.CONNECTED

    final = await simulated_service.handle_inbound_message(inbound.call.id, "", attempt=2)
    assert final.continue_listening is False
    assert final.call.status is CallStatus.FAILED
    assert final.call.outcome.confidence == 0.3


@pytest.mark.asyncio
async def test_inbound_message_awaits_approval(simulated_service, notifier, dispatcher) -> None:
    inbound = await simulated_service.handle_inbound_callback("+14155550199", "+15550001111", "CA2")

    result = await simulated_service.handle_inbound_message(inbound.call.id, "Table for two is fine at eight")
    await dispatcher.drain()

    assert result.call.status is CallStatus.WAITING_USER_APPROVAL
    assert result.call.outcome.needs_user_approval is True
    assert result.call.outcome.confirmed_details.notes == "Table for two is fine at eight"
    assert notifier.names() == ["callback_received", "callback_message"]
