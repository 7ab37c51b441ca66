"""Phone number and free-text revision parsing helpers."""
from __future__ import annotations

import re

from ..schemas.calls import ReservationPatch

DATE_PATTERN = re.compile(r"\b(20\d{2}-\d{2}-\d{2})\b")
TIME_PATTERN = re.compile(r"\b([01]?\d|2[0-3])[:h]([0-5]\d)\b")
PARTY_PATTERNS = (
    re.compile(r"(?:party|for|size)\s*(?:of\s*)?(\d{1,2})\b", re.I),
    re.compile(r"\b(\d{1,2})\s*(?:people|persons|guests)\b", re.I),
)


def normalize_phone(value: str | None) -> str:
    """Collapse a phone number to ``+<digits>`` when the country is inferable."""

    trimmed = (value or "").strip()
    digits = re.sub(r"[^\d+]", "", trimmed)
    if digits.startswith("+"):
        return digits
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return digits


def parse_revision_text(text: str) -> ReservationPatch:
    """Pull a date, time and party size out of a message like ``2026-02-22 20:00 for 2``."""

    date_match = DATE_PATTERN.search(text)
    time_match = TIME_PATTERN.search(text)

    party_size = None
    for pattern in PARTY_PATTERNS:
        party_match = pattern.search(text)
        if party_match and int(party_match.group(1)) > 0:
            party_size = int(party_match.group(1))
            break

    return ReservationPatch(
        date=date_match.group(1) if date_match else None,
        time_preferred=f"{int(time_match.group(1)):02d}:{time_match.group(2)}" if time_match else None,
        party_size=party_size,
    )
