"""Call scripts and the human-escalation rule."""
from __future__ import annotations

from ..schemas.calls import ReservationRequest

RISK_KEYWORDS: tuple[str, ...] = ("deposit", "card", "fee", "cancellation", "prepay")


def needs_human_confirmation(text: str, allow_auto_confirm: bool = False) -> bool:
    """Return True when ``text`` mentions a risky term and auto-confirm is off."""

    if allow_auto_confirm:
        return False
    lower = (text or "").lower()
    return any(keyword in lower for keyword in RISK_KEYWORDS)


def build_assistant_intro(reservation: ReservationRequest) -> str:
    if reservation.script and reservation.script.intro:
        return reservation.script.intro
    return (
        f"Hi, I'm an assistant calling on behalf of {reservation.name_for_booking}. "
        f"We'd like a reservation for {reservation.party_size} on {reservation.date} "
        f"around {reservation.time_preferred}."
    )


def build_assistant_question(reservation: ReservationRequest) -> str:
    if reservation.script and reservation.script.question:
        return reservation.script.question
    return "Could you confirm availability and any important conditions like deposit or cancellation policy?"


def build_voicemail_message(reservation: ReservationRequest) -> str:
    """Message left on an answering machine."""

    if reservation.script and reservation.script.voicemail:
        return reservation.script.voicemail

    name = reservation.name_for_booking
    if reservation.is_personal:
        return (
            f"Hi, this is an automated assistant calling on behalf of {name}. Sorry we missed you. "
            f"Please call or text {name} back when you can and mention you received this voicemail "
            "so we can continue from the same context. Thank you, and have a great day."
        )

    return (
        f"Hi, this is an assistant calling on behalf of {name} regarding a reservation request. "
        f"We are looking for a table for {reservation.party_size} on {reservation.date} around "
        f"{reservation.time_preferred}. If that time is not available, nearby alternatives are welcome. "
        "Please call us back with availability, any important conditions, and whether a deposit or "
        "cancellation policy applies. Thank you very much."
    )
