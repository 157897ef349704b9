# FILE: services/spending_insights.py
"""
Weekly spend spike notes shown after an insert.

This week (Monday to today) is compared with last week (Monday to Sunday)
for the category of the expense that was just added.
"""

import logging
from datetime import date, datetime, time
from typing import TYPE_CHECKING, Optional

from services.date_resolver import get_today, resolve_date_range

if TYPE_CHECKING:
    from prisma import Prisma

logger = logging.getLogger("spending_insights")

SPIKE_RATIO = 2.0
RISE_RATIO = 1.5


def spike_note(category_name: str, this_week: float, last_week: float) -> Optional[str]:
    """
    None unless this week is at least 1.5x last week. Last week must have
    some spend, a first purchase is not a spike.
    """
    if last_week <= 0:
        return None

    ratio = this_week / last_week
    if ratio >= SPIKE_RATIO:
        return (
            f"{category_name}: ${this_week:.0f} this week vs ${last_week:.0f} last week "
            f"({ratio:.1f}x increase)"
        )
    if ratio >= RISE_RATIO:
        return (
            f"{category_name}: spending up 50%+ this week "
            f"(${this_week:.0f} vs ${last_week:.0f} last week)"
        )
    return None


class PrismaSpendingInsights:
    def __init__(self, db: "Prisma"):
        self.db = db

    async def _total(self, user_id: str, category_id: str, start: date, end: date) -> float:
        rows = await self.db.expense.find_many(
            where={
                "user_id": user_id,
                "category_id": category_id,
                "spent_at": {
                    "gte": datetime.combine(start, time.min),
                    "lte": datetime.combine(end, time.max),
                },
            }
        )
        return sum(float(r.amount) for r in rows)

    async def weekly_spike_note(
        self,
        user_id: str,
        category_id: str,
        category_name: str,
        today: Optional[date] = None,
    ) -> Optional[str]:
        today = today or get_today()
        this_start, this_end = resolve_date_range("this week", today)
        last_start, last_end = resolve_date_range("last week", today)

        try:
            this_week = await self._total(user_id, category_id, this_start, this_end)
            last_week = await self._total(user_id, category_id, last_start, last_end)
        except Exception as e:
            logger.warning("Weekly spike lookup failed for %s: %s", category_name, e)
            return None

        return spike_note(category_name, this_week, last_week)
