# tests/parsing/test_date_resolver.py
from datetime import date

import pytest

from services.date_resolver import (
    extract_date_hint,
    resolve_date_hint,
    resolve_date_range,
    strip_date_phrases,
)

TODAY = date(2026, 3, 18)  # a Wednesday


@pytest.mark.parametrize(
    "text, hint",
    [
        ("spent $5 at Target", "today"),
        ("spent $5 at Target yesterday", "yesterday"),
        ("spent $5 at Target 1 day ago", "1 day ago"),
        ("spent $5 at Target 4 days ago", "4 days ago"),
        ("paid rent 2 months ago, 1500", "2 months ago"),
        ("spent $5 at Target last week", "1 week ago"),
    ],
)
def test_extract_date_hint(text, hint):
    assert extract_date_hint(text) == hint


def test_resolve_date_hint():
    assert resolve_date_hint("today", TODAY) == TODAY
    assert resolve_date_hint("yesterday", TODAY) == date(2026, 3, 17)
    assert resolve_date_hint("3 days ago", TODAY) == date(2026, 3, 15)
    assert resolve_date_hint("1 week ago", TODAY) == date(2026, 3, 11)
    assert resolve_date_hint("1 month ago", TODAY) == date(2026, 2, 18)


def test_month_arithmetic_clamps_to_month_end():
    assert resolve_date_hint("1 month ago", date(2026, 3, 31)) == date(2026, 2, 28)


def test_unknown_hint_resolves_to_today():
    assert resolve_date_hint("someday", TODAY) == TODAY
    assert resolve_date_hint(None, TODAY) == TODAY


def test_week_ranges_are_monday_based():
    assert resolve_date_range("this week", TODAY) == (date(2026, 3, 16), date(2026, 3, 18))
    assert resolve_date_range("last week", TODAY) == (date(2026, 3, 9), date(2026, 3, 15))
    assert resolve_date_range("next year", TODAY) is None


def test_strip_date_phrases():
    assert strip_date_phrases("gas yesterday").strip() == "gas"
    assert strip_date_phrases("gas 3 days ago").strip() == "gas"
