"""Rule-based extraction of structured signals from a business's spoken reply."""
from __future__ import annotations

import re
from dataclasses import dataclass, field

RISK_TERMS: tuple[str, ...] = ("deposit", "card", "fee", "cancellation", "prepay")
DIRECT_NEGATIONS = frozenset({"no", "without", "zero", "not"})
NEED_VERBS = frozenset({"need", "needed", "require", "required", "take", "charge"})
NEGATED_AUXILIARIES = frozenset({"don't", "dont", "doesn't", "not", "never", "won't"})
FILLER_WORDS = frozenset({"a", "an", "any", "the"})

AFFIRMATIVE_PATTERN = re.compile(
    r"\b(yes|yeah|yep|sure|absolutely|of course|that works|works|we can(?!'t)|we have|"
    r"ok|okay|sounds good|no problem|confirmed|see you)\b|(?<!not )\bavailable\b",
    re.I,
)
NEGATIVE_PATTERN = re.compile(
    r"\b(not available|unavailable|fully booked|booked up|we'?re full|we are full|no tables?|"
    r"no availability|no room|can'?t|cannot|closed|sorry)\b|^\s*no\b(?!\s+(problem|worries))",
    re.I,
)
CLOCK_TIME_PATTERN = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)(?:\s*(am|pm|a\.m\.|p\.m\.)(?![a-z]))?", re.I)
MERIDIEM_TIME_PATTERN = re.compile(r"\b(1[0-2]|0?[1-9])\s*(am|pm|a\.m\.|p\.m\.)(?![a-z])", re.I)
WORD_PATTERN = re.compile(r"[a-z']+|\$?\d+")


@dataclass(slots=True)
class ReplyExtraction:
    """Signals pulled from one business utterance."""

    raw_text: str
    confidence: float
    affirmative: bool = False
    negative: bool = False
    proposed_time: str | None = None
    risk_flags: list[str] = field(default_factory=list)

    @property
    def has_risk(self) -> bool:
        return bool(self.risk_flags)


def normalize_time(value: str | None) -> str | None:
    """Return ``HH:MM`` for inputs such as ``20:00``, ``8pm`` or ``8:30 p.m.``."""

    if not value:
        return None
    text = value.strip().lower()
    match = CLOCK_TIME_PATTERN.search(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        return _to_24h(hour, minute, match.group(3))
    match = MERIDIEM_TIME_PATTERN.search(text)
    if match:
        return _to_24h(int(match.group(1)), 0, match.group(2))
    return None


def parse_business_reply(text: str) -> ReplyExtraction:
    """Extract availability, alternate time and risk markers from ``text``."""

    cleaned = (text or "").strip()
    lower = cleaned.lower()

    affirmative = bool(AFFIRMATIVE_PATTERN.search(lower))
    negative = bool(NEGATIVE_PATTERN.search(lower))
    proposed_time = normalize_time(lower)
    risk_flags = _risk_flags(lower)

    if affirmative and not negative:
        confidence = 0.85
    elif negative and not affirmative:
        confidence = 0.85
    elif affirmative and negative:
        confidence = 0.55
    else:
        confidence = 0.3
    if proposed_time:
        confidence = min(0.95, confidence + 0.05)

    return ReplyExtraction(
        raw_text=cleaned,
        confidence=round(confidence, 2),
        affirmative=affirmative,
        negative=negative,
        proposed_time=proposed_time,
        risk_flags=risk_flags,
    )


def _to_24h(hour: int, minute: int, meridiem: str | None) -> str:
    if meridiem:
        is_pm = meridiem.startswith("p")
        if hour == 12:
            hour = 12 if is_pm else 0
        elif is_pm:
            hour += 12
    return f"{hour:02d}:{minute:02d}"


def _risk_term(word: str) -> str | None:
    for term in RISK_TERMS:
        if word in (term, f"{term}s") or (term == "prepay" and word.startswith(term)):
            return term
    return None


def _previous_word(words: list[str], index: int) -> tuple[int, str | None]:
    """Step back over articles and other risk terms ("no cancellation fee")."""

    index -= 1
    while index >= 0 and (words[index] in FILLER_WORDS or _risk_term(words[index])):
        index -= 1
    return index, (words[index] if index >= 0 else None)


def _is_negated(words: list[str], index: int) -> bool:
    """True for "no deposit", "without a card", "don't need a deposit", "deposit not required"."""

    position, previous = _previous_word(words, index)
    if previous in DIRECT_NEGATIONS:
        return True
    if previous in NEED_VERBS:
        _, before = _previous_word(words, position)
        if before in NEGATED_AUXILIARIES:
            return True
    following = words[index + 1:index + 3]
    if following[:1] in (["not"], ["isn't"], ["aren't"]):
        return True
    return following in (["is", "not"], ["are", "not"])


def _risk_flags(lower: str) -> list[str]:
    """Return risk terms that are mentioned without being directly negated."""

    words = WORD_PATTERN.findall(lower)
    flags: list[str] = []
    for index, word in enumerate(words):
        term = _risk_term(word)
        if term is None or term in flags or _is_negated(words, index):
            continue
        flags.append(term)
    return flags
