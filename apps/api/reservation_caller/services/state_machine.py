"""Call lifecycle transition rules."""
from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from ..schemas.calls import CallStatus

S = CallStatus

ALLOWED_TRANSITIONS: Mapping[CallStatus, frozenset[CallStatus]] = MappingProxyType(
    {
        S.INIT: frozenset({S.DIALING, S.FAILED}),
        S.DIALING: frozenset(
            {S.CONNECTED, S.DISCOVERY, S.NEGOTIATION, S.WAITING_USER_APPROVAL, S.FAILED, S.ENDED, S.CONFIRMED}
        ),
        S.CONNECTED: frozenset(
            {S.DISCOVERY, S.NEGOTIATION, S.WAITING_USER_APPROVAL, S.FAILED, S.ENDED, S.CONFIRMED}
        ),
        S.DISCOVERY: frozenset({S.NEGOTIATION, S.WAITING_USER_APPROVAL, S.FAILED, S.ENDED, S.CONFIRMED}),
        S.NEGOTIATION: frozenset({S.WAITING_USER_APPROVAL, S.FAILED, S.ENDED, S.CONFIRMED, S.DIALING}),
        S.PROPOSED_OUTCOME: frozenset({S.WAITING_USER_APPROVAL, S.CONFIRMED, S.FAILED, S.DIALING}),
        S.WAITING_USER_APPROVAL: frozenset({S.CONFIRMED, S.FAILED, S.DIALING, S.NEGOTIATION, S.ENDED}),
        S.CONFIRMED: frozenset({S.DIALING, S.ENDED}),
        S.FAILED: frozenset({S.DIALING}),
        S.ENDED: frozenset({S.DIALING, S.FAILED, S.CONFIRMED}),
    }
)

TERMINAL_STATUSES: frozenset[CallStatus] = frozenset({S.CONFIRMED, S.FAILED, S.ENDED})
ACTIVE_STATUSES: frozenset[CallStatus] = frozenset(CallStatus) - TERMINAL_STATUSES
DIAL_PHASE_STATUSES: frozenset[CallStatus] = frozenset({S.DIALING, S.CONNECTED})


def can_transition(current: CallStatus, target: CallStatus) -> bool:
    """Return True when moving from ``current`` to ``target`` is allowed.

    Re-asserting the same status is always allowed so duplicate webhook
    deliveries stay harmless.
    """

    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def is_terminal(status: CallStatus) -> bool:
    return status in TERMINAL_STATUSES
