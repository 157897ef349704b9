"""
Date Resolver Service

- Extracts relative date hints ("yesterday", "3 days ago") from expense text
- Converts hints and week expressions into concrete calendar dates
"""

import re
from datetime import date, timedelta
from typing import Optional, Tuple

from dateutil.relativedelta import relativedelta


DEFAULT_DATE_HINT = "today"

_AGO_RE = re.compile(r"\b(\d+)\s+(day|week|month)s?\s+ago\b", re.IGNORECASE)
_DATE_PHRASE_RE = re.compile(
    r"\b(?:today|yesterday|last\s+week|\d+\s+(?:day|week|month)s?\s+ago)\b",
    re.IGNORECASE,
)


def get_today() -> date:
    """Return today's date (system clock)."""
    return date.today()


def extract_date_hint(text: str) -> str:
    """
    Pull the relative date phrase out of an utterance.
    Absence of any phrase means "today".
    """
    lower = text.lower()
    if re.search(r"\byesterday\b", lower):
        return "yesterday"

    m = _AGO_RE.search(lower)
    if m:
        n, unit = int(m.group(1)), m.group(2)
        return f"{n} {unit}{'' if n == 1 else 's'} ago"

    if re.search(r"\blast\s+week\b", lower):
        return "1 week ago"

    return DEFAULT_DATE_HINT


def strip_date_phrases(text: str) -> str:
    return _DATE_PHRASE_RE.sub("", text)


def mask_date_phrases(text: str) -> str:
    """Blank out date phrases, keeping every other character at its offset."""
    return _DATE_PHRASE_RE.sub(lambda m: " " * len(m.group(0)), text)


def resolve_date_hint(hint: Optional[str], today: Optional[date] = None) -> date:
    """
    Turn a date hint into a concrete date. Unknown hints resolve to today.
    """
    today = today or get_today()
    if not hint:
        return today

    lower = hint.lower().strip()
    if lower == "yesterday":
        return today - timedelta(days=1)

    m = _AGO_RE.search(lower)
    if m:
        n, unit = int(m.group(1)), m.group(2).lower()
        if unit == "day":
            return today - timedelta(days=n)
        if unit == "week":
            return today - timedelta(weeks=n)
        return today - relativedelta(months=n)

    if lower == "last week":
        return today - timedelta(weeks=1)

    return today


def resolve_date_range(text: str, today: Optional[date] = None) -> Optional[Tuple[date, date]]:
    """
    Resolve week expressions into (start_date, end_date).
    Returns None if no recognized pattern is found.
    """
    text = text.lower().strip()
    today = today or get_today()

    if text in ("today", "current day"):
        return today, today

    if text in ("this week", "current week"):
        start = today - timedelta(days=today.weekday())  # Monday
        end = start + timedelta(days=6)  # Sunday
        return start, min(end, today)

    if text in ("last week", "previous week"):
        end = today - timedelta(days=today.weekday() + 1)
        start = end - timedelta(days=6)
        return start, end

    return None
