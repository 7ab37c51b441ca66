"""Append-only transcript helpers shared by the repository backends."""
from __future__ import annotations

from datetime import datetime, timedelta

from ..schemas.calls import Speaker, TranscriptEntry


def is_duplicate(
    last: TranscriptEntry | None,
    speaker: Speaker,
    text: str,
    now: datetime,
    window: timedelta,
) -> bool:
    """Return True when ``text`` repeats the last entry inside the dedupe window."""

    if last is None:
        return False
    if last.speaker != speaker or last.text != text:
        return False
    delta = now - last.at
    return timedelta(0) <= delta <= window


def append_entry(
    transcript: list[TranscriptEntry],
    speaker: Speaker,
    text: str,
    now: datetime,
    window: timedelta,
) -> bool:
    """Append a new entry unless it duplicates the previous one.

    Returns whether the transcript grew.
    """

    last = transcript[-1] if transcript else None
    if is_duplicate(last, speaker, text, now, window):
        return False
    transcript.append(TranscriptEntry(at=now, speaker=speaker, text=text))
    return True


def count_business_turns(transcript: list[TranscriptEntry]) -> int:
    return sum(1 for entry in transcript if entry.speaker == Speaker.BUSINESS)
