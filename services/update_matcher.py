# FILE: services/update_matcher.py
"""
Locating the expense an "update ..." message refers to.

Cascade, first non-empty tier wins, tiers are never merged:
    1. merchant equals the query (case-insensitive)
    2. merchant contains the query
    3. amount within $0.01 of the query      (must be unique)
    4. "M/D" date token matches spent_at     (must be unique)
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from core.errors import AmbiguousExpenseError, ExpenseNotFoundError
from models.category import Category
from models.expense import Expense, ExpenseUpdates
from services.budget_goals import fuzzy_match_category

MOST_RECENT = "most_recent"
AMOUNT_TOLERANCE = 0.01

_UPDATE_RE = re.compile(
    r"^\s*(?:please\s+|can\s+you\s+|could\s+you\s+)?(?:update|change|edit|correct|fix|modify)\b",
    re.IGNORECASE,
)
_MOST_RECENT_RE = re.compile(r"\b(?:most\s+recent|latest|last\s+(?:one|expense|purchase|entry))\b", re.IGNORECASE)
_DATE_TOKEN_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})\b")
_AMOUNT_QUERY_RE = re.compile(r"^\$?\s*(\d[\d,]*(?:\.\d{1,2})?)$")
_NUMBER_RE = re.compile(r"(?<![\w/])\$?(\d[\d,]*(?:\.\d{1,2})?)(?![\w/])")
_QUERY_FILLER_RE = re.compile(
    r"\b(?:update|change|edit|correct|fix|modify|my|the|a|an|expense|purchase|entry|one|amount|price|"
    r"cost|it|that|this|to|from|for|at|of|please|dollars?|should|be|is|was)\b",
    re.IGNORECASE,
)

# Tried in order; "to $50" is the most specific way of naming the new amount.
_NEW_AMOUNT_PATTERNS = [
    re.compile(r"\bto\s+\$?(\d[\d,]*(?:\.\d{1,2})?)\b", re.IGNORECASE),
    re.compile(r"\$(\d[\d,]*(?:\.\d{1,2})?)"),
    re.compile(r"\b(\d[\d,]*(?:\.\d{1,2})?)\s*dollars?\b", re.IGNORECASE),
]
_NEW_CATEGORY_RE = re.compile(
    r"\b(?:category\s+)?(?:to|as|into|under)\s+(?:the\s+)?(?P<cat>[a-z][a-z&\s-]*?)(?:\s+category)?\s*[.!?]?\s*$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class UpdateRequest:
    query: str
    updates: ExpenseUpdates


def is_update_message(text: str) -> bool:
    return bool(_UPDATE_RE.search(text or ""))


def _to_float(raw: str) -> float:
    return float(raw.replace(",", ""))


def _newest_first(expenses: Sequence[Expense]) -> List[Expense]:
    return sorted(expenses, key=lambda e: e.spent_at, reverse=True)


def _unique(candidates: List[Expense], query: str) -> Optional[Expense]:
    if not candidates:
        return None
    if len(candidates) > 1:
        raise AmbiguousExpenseError(query, len(candidates))
    return candidates[0]


# -----------------------------
# Target cascade
# -----------------------------
def find_target_expense(expenses: Sequence[Expense], query: str) -> Expense:
    """
    Returns the matched expense. Raises ExpenseNotFoundError when no tier
    matches and AmbiguousExpenseError when the amount or date tier matches
    more than one expense.
    """
    ordered = _newest_first(expenses)
    q = (query or "").strip().lower()
    if not q:
        raise ExpenseNotFoundError(query)

    if q == MOST_RECENT:
        if not ordered:
            raise ExpenseNotFoundError("your most recent expense")
        return ordered[0]

    exact = [e for e in ordered if e.merchant.lower() == q]
    if exact:
        return exact[0]

    partial = [e for e in ordered if q in e.merchant.lower()]
    if partial:
        return partial[0]

    amount_match = _AMOUNT_QUERY_RE.match(q)
    if amount_match:
        amount = _to_float(amount_match.group(1))
        found = _unique([e for e in ordered if abs(e.amount - amount) <= AMOUNT_TOLERANCE + 1e-9], query)
        if found:
            return found

    date_match = _DATE_TOKEN_RE.search(q)
    if date_match:
        month, day = int(date_match.group(1)), int(date_match.group(2))
        found = _unique([e for e in ordered if e.spent_at.month == month and e.spent_at.day == day], query)
        if found:
            return found

    raise ExpenseNotFoundError(query)


# -----------------------------
# Message -> (query, updates)
# -----------------------------
def _extract_new_amount(text: str) -> Optional[re.Match]:
    for pattern in _NEW_AMOUNT_PATTERNS:
        m = pattern.search(text)
        if m and _to_float(m.group(1)) > 0:
            return m
    return None


def _merchant_mentioned(text: str, expenses: Sequence[Expense]) -> Optional[str]:
    lower = text.lower()
    # longest merchant first so "Whole Foods Market" beats "Whole Foods"
    for e in sorted(expenses, key=lambda e: len(e.merchant), reverse=True):
        if e.merchant and e.merchant.lower() in lower:
            return e.merchant
    return None


def _extract_query(
    text: str,
    expenses: Sequence[Expense],
    skip_span: Optional[tuple],
    recent_turns: Sequence[str] = (),
) -> Optional[str]:
    if _MOST_RECENT_RE.search(text):
        return MOST_RECENT

    merchant = _merchant_mentioned(text, expenses)
    if merchant:
        return merchant

    date_match = _DATE_TOKEN_RE.search(text)
    if date_match:
        return date_match.group(0)

    if skip_span:
        text = text[:skip_span[0]] + " " + text[skip_span[1]:]

    number = _NUMBER_RE.search(text)
    if number:
        return number.group(1)

    residual = re.sub(r"\s+", " ", _QUERY_FILLER_RE.sub(" ", text)).strip(" ,.!?$")
    if residual:
        return residual

    # "change it to $125" refers back to a merchant named earlier in the conversation
    for turn in reversed(recent_turns):
        merchant = _merchant_mentioned(turn, expenses)
        if merchant:
            return merchant
    return None


def parse_update_request(
    text: str,
    expenses: Sequence[Expense],
    categories: Sequence[Category],
    recent_turns: Sequence[str] = (),
) -> Optional[UpdateRequest]:
    """
    Pulls the target query plus a new amount and/or new category out of an
    update message. None when either half is missing. `recent_turns` are
    earlier user messages, newest last, used when this one names no target.
    """
    if not is_update_message(text):
        return None

    updates = ExpenseUpdates()
    amount_match = _extract_new_amount(text)
    skip_span = None
    if amount_match:
        updates = ExpenseUpdates(amount=_to_float(amount_match.group(1)))
        skip_span = amount_match.span()
    else:
        cat_match = _NEW_CATEGORY_RE.search(text)
        category = fuzzy_match_category(cat_match.group("cat"), categories) if cat_match else None
        if category:
            updates = ExpenseUpdates(category_id=category.id, category_name=category.name)
            skip_span = cat_match.span()

    if updates.is_empty():
        return None

    query = _extract_query(text, expenses, skip_span, recent_turns)
    if not query:
        return None
    return UpdateRequest(query=query, updates=updates)
