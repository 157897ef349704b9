# FILE: services/expense_parser.py
"""
Expense intent parser.

- parse_command: deterministic extraction (gate -> amount -> merchant -> intent)
- parse_expense: remote oracle first, parse_command when the oracle fails,
  times out, is disabled or answers with something unusable
"""

import logging
import re
from typing import Awaitable, Callable, Optional, Tuple

from agents.expense_agent import extract_expense_intent
from core.intent import ExpenseIntent
from models.expense import ExpenseIntentExtraction, ParsedCommand
from services.date_resolver import extract_date_hint, mask_date_phrases, strip_date_phrases
from services.keyword_classifier import find_known_merchant
from services.merchant import title_case_merchant

logger = logging.getLogger("expense_parser")

Extractor = Callable[[str], Awaitable[Optional[ExpenseIntentExtraction]]]

# -----------------------------
# Patterns
# -----------------------------
_ACTION_RE = re.compile(
    r"\b(?:add|added|log|logged|spent|spend|paid|bought|got|picked\s+up|purchased)\b",
    re.IGNORECASE,
)
_QUESTION_RE = re.compile(
    r"^\s*(?:how|what|what's|whats|when|where|why|which|who|did|do|does|is|are|can|could|should)\b",
    re.IGNORECASE,
)
_DOLLAR_AMOUNT_RE = re.compile(r"\$\s*(\d{1,3}(?:,\d{3})+|\d+)(\.\d{1,2})?")
_BARE_AMOUNT_RE = re.compile(r"(?<![\w/.])(\d{1,3}(?:,\d{3})+|\d+)(\.\d{1,2})?(?![\w/])")

_COMMAND_WORDS_RE = re.compile(
    r"\b(?:i've|ive|i|add|added|log|logged|spent|spend|bought|got|paid|purchased|picked\s+up|just|had\s+to)\b",
    re.IGNORECASE,
)
_STOPWORDS_RE = re.compile(
    r"\b(?:a|an|the|some|from|at|to|for|in|on|my|our|me|we|it|and|or|of|with|this|that|dollars?|bucks)\b",
    re.IGNORECASE,
)
_AT_FROM_RE = re.compile(
    r"\b(?:at|from)\s+([a-z0-9][a-z0-9\s&'.-]*?)"
    r"(?=\s+(?:today|yesterday|on|for|with|last|\d+\s+(?:day|week|month)s?\s+ago)\b|\s*\$|\s*[,.!?]?\s*$)",
    re.IGNORECASE,
)
_SERVICE_RE = re.compile(
    r"\b(repair|repairing|repaired|fixing|fixed|replacing|replacement|installing|installation|painting|cleaning)\b",
    re.IGNORECASE,
)

_SERVICE_LABELS = {
    "repair": "Repair",
    "repairing": "Repair",
    "repaired": "Repair",
    "fixing": "Repair",
    "fixed": "Repair",
    "replacing": "Replacement",
    "replacement": "Replacement",
    "installing": "Installation",
    "installation": "Installation",
    "painting": "Painting",
    "cleaning": "Cleaning",
}


# -----------------------------
# Helpers
# -----------------------------
def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip(" \t,.;:!?-")


def clean_merchant(text: str) -> str:
    """Drop articles, pronouns and prepositions."""
    return _collapse(_STOPWORDS_RE.sub("", text))


def _as_description(text: str) -> Optional[str]:
    return text if len(text) > 1 else None


def passes_expense_gate(text: str) -> bool:
    """
    A digit plus an action token, and not phrased as a question.
    Everything else is skipped without further work.
    """
    if not text or not re.search(r"\d", text):
        return False
    if not _ACTION_RE.search(text):
        return False
    if _QUESTION_RE.match(text):
        return False
    return True


def _amount_match(text: str) -> Optional[re.Match]:
    # numbers inside "3 days ago" are never the amount
    masked = mask_date_phrases(text)
    return _DOLLAR_AMOUNT_RE.search(masked) or _BARE_AMOUNT_RE.search(masked)


def extract_amount(text: str) -> Optional[float]:
    """
    First currency-shaped number; a "$" amount beats a bare number.
    Later numbers in the sentence are ignored.
    """
    m = _amount_match(text)
    if not m:
        return None
    whole, frac = m.group(1), m.group(2) or ""
    return float(whole.replace(",", "") + frac)


def _residual_content(text: str, amount_span: Tuple[int, int]) -> str:
    start, end = amount_span
    content = text[:start] + " " + text[end:]
    content = strip_date_phrases(content)
    content = _COMMAND_WORDS_RE.sub("", content)
    return _collapse(content)


def _service_merchant(cleaned: str) -> Optional[str]:
    m = _SERVICE_RE.search(cleaned)
    if not m:
        return None
    label = _SERVICE_LABELS[m.group(1).lower()]
    obj = clean_merchant(cleaned[:m.start()] + " " + cleaned[m.end():])
    if len(obj) > 1:
        return f"{title_case_merchant(obj)} {label}"
    return f"{label} Service"


# -----------------------------
# Deterministic parser
# -----------------------------
def parse_command(user_message: str) -> Optional[ParsedCommand]:
    """
    Heuristic extraction. Returns None when no expense is detected.
    """
    if not passes_expense_gate(user_message):
        return None

    amount_match = _amount_match(user_message)
    amount = extract_amount(user_message)
    if not amount or amount <= 0:
        return None

    content = _residual_content(user_message, amount_match.span())
    merchant: Optional[str] = None
    description: Optional[str] = None

    at_match = _AT_FROM_RE.search(user_message)
    known = find_known_merchant(user_message) if not at_match else None

    if at_match:
        # explicit "at/from <name>" wins and is trusted verbatim
        merchant = at_match.group(1).strip()
        rest = re.sub(r"\b(?:at|from)\s+" + re.escape(merchant), " ", content, flags=re.IGNORECASE)
        description = _as_description(clean_merchant(rest))
        intent = ExpenseIntent.ADD
    elif known:
        merchant = known.name
        rest = re.sub(r"(?<!\w)" + re.escape(known.keyword) + r"(?!\w)", " ", content, flags=re.IGNORECASE)
        description = _as_description(clean_merchant(rest))
        intent = ExpenseIntent.ADD
    else:
        cleaned = clean_merchant(content)
        if not cleaned:
            return None
        merchant = _service_merchant(cleaned)
        if merchant:
            description = cleaned
        else:
            merchant = cleaned
        intent = ExpenseIntent.SUGGEST

    if not merchant:
        return None

    return ParsedCommand(
        intent=intent,
        amount=amount,
        merchant=title_case_merchant(merchant),
        description=description,
        date_hint=extract_date_hint(user_message),
    )


def _from_extraction(extraction: ExpenseIntentExtraction, user_message: str) -> tuple[bool, Optional[ParsedCommand]]:
    """
    (usable, parsed). usable=False means the heuristic should take over.
    """
    if not extraction.intent.is_actionable():
        return True, None

    merchant = (extraction.merchant or "").strip()
    if not extraction.amount or extraction.amount <= 0 or not merchant:
        return False, None

    description = (extraction.description or "").strip() or None
    hint = extract_date_hint(extraction.dateHint or user_message)
    return True, ParsedCommand(
        intent=extraction.intent,
        amount=extraction.amount,
        merchant=title_case_merchant(merchant),
        description=description,
        date_hint=hint,
    )


# -----------------------------
# Oracle-first parser
# -----------------------------
async def parse_expense(
    user_message: str,
    extractor: Optional[Extractor] = extract_expense_intent,
) -> Optional[ParsedCommand]:
    """
    Returns a ParsedCommand or None. The remote extraction decides the intent
    when it answers with something well-formed; otherwise parse_command does.
    """
    if not passes_expense_gate(user_message):
        return None

    if extractor is not None:
        try:
            extraction = await extractor(user_message)
        except Exception as e:
            logger.warning("Remote extraction raised, using heuristic: %s", e)
            extraction = None

        if extraction is not None:
            usable, parsed = _from_extraction(extraction, user_message)
            if usable:
                return parsed
            logger.info("Remote extraction malformed, using heuristic: %s", extraction)

    return parse_command(user_message)
