"""Turn an extracted business reply into the next negotiation step."""
from __future__ import annotations

import enum
from dataclasses import dataclass

from ..schemas.calls import ReservationRequest
from .extraction import ReplyExtraction, normalize_time
from .policy import needs_human_confirmation

DEFAULT_MAX_CLARIFICATION_TURNS = 3


class NegotiationAction(str, enum.Enum):
    CONFIRM = "confirm"
    REJECT = "reject"
    NEEDS_APPROVAL = "needs_approval"
    CLARIFY = "clarify"


@dataclass(slots=True)
class NegotiationDecision:
    action: NegotiationAction
    reason: str
    notes: str
    proposed_time: str | None = None


def decide_from_reply(
    extraction: ReplyExtraction,
    reservation: ReservationRequest,
    business_turns: int,
    max_clarification_turns: int = DEFAULT_MAX_CLARIFICATION_TURNS,
) -> NegotiationDecision:
    """Decide how to respond to one business reply.

    ``business_turns`` counts business utterances so far, including this one.
    Once it reaches ``max_clarification_turns`` an unresolved reply escalates
    to a human instead of asking again.
    """

    notes = extraction.raw_text
    allow_auto = reservation.policy.allow_auto_confirm

    if extraction.negative and not extraction.affirmative:
        return NegotiationDecision(
            action=NegotiationAction.REJECT,
            reason="Business declined the reservation request",
            notes=notes,
        )

    if extraction.affirmative and extraction.negative and extraction.proposed_time:
        return NegotiationDecision(
            action=NegotiationAction.NEEDS_APPROVAL,
            reason=f"Business gave a mixed answer around {extraction.proposed_time}",
            notes=notes,
            proposed_time=extraction.proposed_time,
        )

    if extraction.affirmative and not extraction.negative:
        proposed = extraction.proposed_time
        time_changed = proposed is not None and proposed != normalize_time(reservation.time_preferred)
        risky = needs_human_confirmation(" ".join(extraction.risk_flags), allow_auto)

        if risky or (time_changed and not allow_auto):
            reasons = []
            if risky:
                reasons.append(f"Business mentioned {', '.join(extraction.risk_flags)}")
            if time_changed:
                reasons.append(f"Business proposed a different time ({proposed})")
            return NegotiationDecision(
                action=NegotiationAction.NEEDS_APPROVAL,
                reason="; ".join(reasons),
                notes=notes,
                proposed_time=proposed,
            )

        return NegotiationDecision(
            action=NegotiationAction.CONFIRM,
            reason="Business confirmed availability",
            notes=notes,
            proposed_time=proposed,
        )

    if business_turns >= max_clarification_turns:
        return NegotiationDecision(
            action=NegotiationAction.NEEDS_APPROVAL,
            reason="Ambiguous after multiple clarification attempts",
            notes=notes,
            proposed_time=extraction.proposed_time,
        )

    return NegotiationDecision(
        action=NegotiationAction.CLARIFY,
        reason="Reply was ambiguous; asking for clarification",
        notes=notes,
        proposed_time=extraction.proposed_time,
    )
