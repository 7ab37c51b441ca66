"""Force-fail calls that stopped progressing."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..core.config import Settings
from ..core.events import log_event
from ..repositories.calls import CallRepository, utc_now
from ..schemas.calls import CallOutcome, CallStatus, OutcomeStatus, Speaker, SweepResult
from .state_machine import DIAL_PHASE_STATUSES, is_terminal

logger = logging.getLogger(__name__)

TIMEOUT_CONFIDENCE = 0.2


def timeout_for(status: CallStatus, config: Settings) -> timedelta:
    """Dialing phases get the short timeout; every other active phase the long one."""

    if status in DIAL_PHASE_STATUSES:
        return timedelta(milliseconds=config.call_dial_timeout_ms)
    return timedelta(milliseconds=config.call_conversation_timeout_ms)


async def sweep_stale_calls(
    repository: CallRepository,
    config: Settings,
    now: datetime | None = None,
) -> SweepResult:
    """Fail every non-terminal call whose last update is older than its phase timeout."""

    now = now or utc_now()
    result = SweepResult()

    for call in await repository.list():
        if is_terminal(call.status):
            continue

        age = now - call.updated_at
        if age <= timeout_for(call.status, config):
            continue

        # Skip calls that progressed (or were swept) since the snapshot was taken.
        if not await repository.force_status(call.id, CallStatus.FAILED, expected_updated_at=call.updated_at):
            continue

        seconds = round(age.total_seconds())
        timed_out_status = call.status.value
        await repository.set_outcome(
            call.id,
            CallOutcome(
                status=OutcomeStatus.FAILED,
                needs_user_approval=False,
                confidence=TIMEOUT_CONFIDENCE,
                reason=f"Timed out in {timed_out_status} after {seconds}s",
            ),
        )
        await repository.append_transcript(
            call.id,
            Speaker.SYSTEM,
            f"Auto-timeout: call marked FAILED after {seconds}s without progress",
        )
        log_event("call.timeout.failed", call_id=call.id, status=timed_out_status, age_seconds=seconds)
        result.stale_call_ids.append(call.id)

    result.updated = len(result.stale_call_ids)
    if result.updated:
        logger.info("Stale sweep failed %d call(s)", result.updated)
    return result
