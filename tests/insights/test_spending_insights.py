# tests/insights/test_spending_insights.py
import asyncio
from datetime import date, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from services.spending_insights import PrismaSpendingInsights, spike_note

TODAY = date(2026, 3, 18)  # a Wednesday


def _rows(*amounts):
    return [SimpleNamespace(amount=a) for a in amounts]


def test_doubling_is_reported_as_a_multiple():
    note = spike_note("Gas & Fuel", 120.0, 40.0)

    assert note == "Gas & Fuel: $120 this week vs $40 last week (3.0x increase)"


def test_moderate_rise_is_reported_as_percent():
    note = spike_note("Dining Out", 60.0, 40.0)

    assert note == "Dining Out: spending up 50%+ this week ($60 vs $40 last week)"


def test_small_change_or_empty_last_week_is_silent():
    assert spike_note("Dining Out", 50.0, 40.0) is None
    assert spike_note("Dining Out", 500.0, 0.0) is None


def test_prisma_insights_compare_calendar_weeks():
    db = MagicMock()
    db.expense.find_many = AsyncMock(side_effect=[_rows(50, 40), _rows(30)])
    insights = PrismaSpendingInsights(db)

    note = asyncio.run(insights.weekly_spike_note("u1", "cat_4", "Gas & Fuel", today=TODAY))

    assert note == "Gas & Fuel: $90 this week vs $30 last week (3.0x increase)"

    this_week, last_week = [c.kwargs["where"] for c in db.expense.find_many.await_args_list]
    assert this_week["category_id"] == "cat_4"
    assert this_week["spent_at"]["gte"] == datetime(2026, 3, 16)
    assert this_week["spent_at"]["lte"].date() == TODAY
    assert last_week["spent_at"]["gte"] == datetime(2026, 3, 9)
    assert last_week["spent_at"]["lte"].date() == date(2026, 3, 15)


def test_prisma_insights_swallow_lookup_errors():
    db = MagicMock()
    db.expense.find_many = AsyncMock(side_effect=ConnectionError("db down"))

    note = asyncio.run(PrismaSpendingInsights(db).weekly_spike_note("u1", "cat_4", "Gas & Fuel", today=TODAY))

    assert note is None
