"""Tests for phone normalisation and free-text revision parsing."""
from __future__ import annotations

import pytest

from reservation_caller.services.helpers import normalize_phone, parse_revision_text


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("(415) 555-0134", "+14155550134"),
        ("1 415 555 0134", "+14155550134"),
        ("+44 20 7946 0958", "+442079460958"),
        ("  ", ""),
        (None, ""),
        ("5550134", "5550134"),
    ],
)
def test_normalize_phone(raw, expected) -> None:
    assert normalize_phone(raw) == expected


def test_parse_revision_text_extracts_all_fields() -> None:
    patch = parse_revision_text("Try 2026-02-23 at 8h30 for 4 please")

    assert patch.date == "2026-02-23"
    assert patch.time_preferred == "08:30"
    assert patch.party_size == 4


def test_parse_revision_text_people_phrase() -> None:
    patch = parse_revision_text("make it 6 people at 19:15")

    assert patch.date is None
    assert patch.time_preferred == "19:15"
    assert patch.party_size == 6


def test_parse_revision_text_without_matches_is_empty() -> None:
    assert parse_revision_text("whenever works").is_empty()
