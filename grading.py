"""Answer normalisation, auto-grading and the fixed points table."""

import re

from errors import InvalidInput
from models import STATUS_CORRECT, STATUS_TYPO, STATUS_UNKNOWN, STATUS_WRONG

_WHITESPACE = re.compile(r"\s+")

POINTS = {
    STATUS_CORRECT: 10,
    STATUS_TYPO: 5,
    STATUS_WRONG: 0,
    STATUS_UNKNOWN: 0,
}

_ALIASES = {
    "correct": STATUS_CORRECT,
    "typo": STATUS_TYPO,
    "wrong": STATUS_WRONG,
    "unknown": STATUS_UNKNOWN,
}


def normalize(text):
    """Collapse whitespace runs, trim and lowercase. ``None`` becomes ``""``."""
    if text is None:
        return ""
    return _WHITESPACE.sub(" ", str(text)).strip().lower()


def auto_grade(given, correct):
    """Return ``(status, points)`` for a submitted answer.

    A match is marked correct. Anything else stays unknown so the teacher can
    review it; auto-grading never produces a wrong or typo status.
    """
    if correct is not None and normalize(given) == normalize(correct):
        return STATUS_CORRECT, POINTS[STATUS_CORRECT]
    return STATUS_UNKNOWN, POINTS[STATUS_UNKNOWN]


def points_for(status):
    return POINTS.get(status, 0)


def parse_status(value):
    """Map a wire or English status name onto a stored status."""
    key = str(value or "").strip().lower()
    if key in POINTS:
        return key
    if key in _ALIASES:
        return _ALIASES[key]
    raise InvalidInput(f"invalid status: {value!r}")
