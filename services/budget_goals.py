# services/budget_goals.py
import re
from dataclasses import dataclass
from typing import Literal, Optional, Sequence

from models.category import Category

_AMT = r"\$?\s*(?P<amt>\d[\d,]*(?:\.\d{1,2})?)"
_END = r"\s*[.!?]?\s*$"

# Order matters: the "budget for X" shapes must be tried before "X budget",
# otherwise "set my budget for dining" would read "my" as the category.
SET_PATTERNS = [
    re.compile(r"\bset\s+(?:my\s+|a\s+|the\s+)?budget\s+(?:for|on)\s+(?P<cat>.+?)\s+(?:to|at|of)\s+" + _AMT, re.I),
    re.compile(r"\bset\s+(?:my\s+|a\s+|the\s+)?(?P<cat>.+?)\s+budget\s+(?:to|at|of)\s+" + _AMT, re.I),
    re.compile(_AMT + r"\s+(?:monthly\s+|weekly\s+)?budget\s+(?:for|on)\s+(?P<cat>.+?)" + _END, re.I),
    re.compile(r"\bbudget\s+(?:of\s+)?" + _AMT + r"\s+(?:for|on)\s+(?P<cat>.+?)" + _END, re.I),
    re.compile(r"\b(?:make\s+)?(?:my\s+|the\s+)?(?P<cat>.+?)\s+budget\s+(?:is|should\s+be|=|to)\s+" + _AMT, re.I),
    re.compile(r"\blimit\s+(?:my\s+)?(?P<cat>.+?)\s+(?:spending\s+)?to\s+" + _AMT, re.I),
]

REMOVE_PATTERNS = [
    re.compile(r"\b(?:remove|delete|clear|cancel|drop)\s+(?:my\s+|the\s+)?budget\s+(?:goal\s+)?(?:for|on)\s+(?P<cat>.+?)" + _END, re.I),
    re.compile(r"\b(?:remove|delete|clear|cancel|drop)\s+(?:my\s+|the\s+)?(?P<cat>.+?)\s+budget\b", re.I),
]

_FILLER_RE = re.compile(r"\b(?:my|the|a|category|spending|monthly|weekly)\b", re.I)


@dataclass(frozen=True)
class BudgetGoalCommand:
    action: Literal["set", "remove"]
    category_text: str
    limit: Optional[float] = None


def mentions_budget(text: str) -> bool:
    return bool(re.search(r"\bbudget\b", text, re.I) or re.search(r"\blimit\b.+\bto\b", text, re.I))


def _clean_category_text(raw: str) -> str:
    return re.sub(r"\s+", " ", _FILLER_RE.sub(" ", raw)).strip(" ,.!?")


def parse_budget_goal(text: str) -> Optional[BudgetGoalCommand]:
    for pattern in REMOVE_PATTERNS:
        m = pattern.search(text)
        if m:
            cat = _clean_category_text(m.group("cat"))
            if cat:
                return BudgetGoalCommand(action="remove", category_text=cat)

    for pattern in SET_PATTERNS:
        m = pattern.search(text)
        if not m:
            continue
        cat = _clean_category_text(m.group("cat"))
        limit = float(m.group("amt").replace(",", ""))
        if cat and limit > 0:
            return BudgetGoalCommand(action="set", category_text=cat, limit=limit)

    return None


def fuzzy_match_category(text: str, categories: Sequence[Category]) -> Optional[Category]:
    """
    Exact (case-insensitive) first, then substring in either direction.
    No match means None; the caller reports it instead of guessing.
    """
    needle = _clean_category_text(text).lower()
    if not needle:
        return None

    for c in categories:
        if c.name.lower() == needle:
            return c
    for c in categories:
        name = c.name.lower()
        if needle in name or name in needle:
            return c
    return None
