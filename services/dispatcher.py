# FILE: services/dispatcher.py
"""
Conversational dispatcher.

One instance per conversation. Owns the single pending-confirmation slot and
routes each utterance to at most one action:

    pending slot (yes / no / anything else)
    -> budget goal -> update -> export -> search    (capability gated)
    -> expense parse (add inserts, suggest asks first)
"""

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, List, Optional

from agents.expense_agent import extract_expense_intent
from config import ASSISTANT_ACTIONS_ENABLED, CONFIRMATION_TTL_SECONDS
from core.conversation_state import ConfirmationState, PendingSuggestion
from core.errors import AmbiguousExpenseError, ExpenseNotFoundError, ExpensePersistenceError
from core.intent import ChatAction, ExpenseIntent
from executors.base import ExpenseActions
from models.category import Category, CategoryResolution, ResolutionRequest
from models.expense import Expense, NewExpense, ParsedCommand
from services.budget_goals import fuzzy_match_category, mentions_budget, parse_budget_goal
from services.category_resolver import CategoryResolver
from services.date_resolver import resolve_date_hint
from services.expense_parser import Extractor, parse_expense
from services.update_matcher import find_target_expense, is_update_message, parse_update_request

RECENT_TURN_LIMIT = 5

# -----------------------------
# Logging Setup
# -----------------------------
logger = logging.getLogger("dispatcher")
logger.setLevel(logging.INFO)
if not logger.handlers:
    fh = logging.FileHandler("dispatcher.log")
    fh.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    logger.addHandler(fh)

# -----------------------------
# Reply lexicons
# -----------------------------
_AFFIRMATION_RE = re.compile(
    r"^\s*(?:yes|yeah|yea|yep|yup|y|sure|ok|okay|k|confirm|confirmed|correct|right|"
    r"do\s+it|go\s+ahead|please\s+do|sounds\s+good|absolutely|definitely|add\s+it)\b",
    re.IGNORECASE,
)
_NEGATION_RE = re.compile(
    r"^\s*(?:no|nope|nah|n|cancel|never\s*mind|don'?t|do\s+not|skip|forget\s+it|not\s+now|wrong)\b",
    re.IGNORECASE,
)

_POLITE_PREFIX = r"^\s*(?:please\s+|can\s+you\s+|could\s+you\s+)?"
_EXPORT_RE = re.compile(_POLITE_PREFIX + r"(?:export|download\s+(?:a\s+|my\s+)?csv)\b", re.IGNORECASE)
_SEARCH_RE = re.compile(_POLITE_PREFIX + r"(?:show\s+me|filter|find\s+all|search(?:\s+for)?)\b", re.IGNORECASE)
_SEARCH_FILLER_RE = re.compile(
    r"\b(?:can\s+you|could\s+you|show\s+me|filter|find\s+all|search(?:\s+for)?|all|the|my|expenses?|purchases?|please|by|for)\b",
    re.IGNORECASE,
)


def is_affirmation(text: str) -> bool:
    return bool(_AFFIRMATION_RE.match(text or ""))


def is_negation(text: str) -> bool:
    return bool(_NEGATION_RE.match(text or ""))


def search_query(text: str) -> str:
    return re.sub(r"\s+", " ", _SEARCH_FILLER_RE.sub(" ", text)).strip(" ,.!?")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -----------------------------
# Turn in / turn out
# -----------------------------
@dataclass
class ConversationContext:
    user_id: str
    categories: List[Category]
    expenses: List[Expense] = field(default_factory=list)


@dataclass
class DispatchResult:
    handled: bool
    action: ChatAction = ChatAction.NONE
    message: Optional[str] = None
    expense: Optional[Expense] = None
    reload: bool = False
    data: Any = None


class ConversationDispatcher:
    def __init__(
        self,
        resolver: CategoryResolver,
        actions: ExpenseActions,
        insights=None,
        extractor: Optional[Extractor] = extract_expense_intent,
        enabled: bool = ASSISTANT_ACTIONS_ENABLED,
        confirmation_ttl: Optional[float] = CONFIRMATION_TTL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.resolver = resolver
        self.actions = actions
        self.insights = insights
        self.extractor = extractor
        self.enabled = enabled
        self.confirmation_ttl = confirmation_ttl
        self.clock = clock
        self.state = ConfirmationState()
        self.recent_turns: Deque[str] = deque(maxlen=RECENT_TURN_LIMIT)

    @property
    def awaiting_confirmation(self) -> bool:
        return self.state.awaiting

    async def handle(self, text: str, context: ConversationContext) -> DispatchResult:
        text = (text or "").strip()
        try:
            return await self._route(text, context)
        finally:
            self.recent_turns.append(text)

    async def _route(self, text: str, context: ConversationContext) -> DispatchResult:
        # -------- Pending slot: exactly one chance --------
        if self.state.awaiting:
            pending = self.state.take()
            if self._is_stale(pending):
                logger.info("⌛ Pending suggestion for %s expired, processing reply fresh", pending.merchant)
            elif is_affirmation(text):
                return await self._insert(
                    context,
                    amount=pending.amount,
                    merchant=pending.merchant,
                    description=pending.description,
                    date_hint=pending.date_hint,
                    resolution=pending.resolution,
                    action=ChatAction.CONFIRM,
                )
            elif is_negation(text):
                logger.info("Pending suggestion for %s declined", pending.merchant)
                return DispatchResult(
                    handled=True,
                    action=ChatAction.DECLINE,
                    message="No problem, I won't add it.",
                )
            else:
                logger.info("Pending suggestion for %s discarded by unrelated reply", pending.merchant)

        # -------- Gated actions --------
        if self.enabled:
            for detector in (self._try_budget_goal, self._try_update, self._try_export, self._try_search):
                result = await detector(text, context)
                if result is not None:
                    return result

        # -------- Expense capture --------
        parsed = await parse_expense(text, extractor=self.extractor)
        if parsed is None:
            return DispatchResult(handled=False)

        resolution = await self.resolver.resolve(
            ResolutionRequest(
                merchant=parsed.merchant,
                description=parsed.description,
                full_message=text,
                categories=context.categories,
                user_id=context.user_id,
            )
        )

        if parsed.intent is ExpenseIntent.ADD:
            return await self._insert(
                context,
                amount=parsed.amount,
                merchant=parsed.merchant,
                description=parsed.description,
                date_hint=parsed.date_hint,
                resolution=resolution,
                action=ChatAction.INSERT,
            )
        return self._defer(parsed, resolution)

    # -----------------------------
    # Confirmation slot
    # -----------------------------
    def _is_stale(self, pending: PendingSuggestion) -> bool:
        if self.confirmation_ttl is None:
            return False
        return (self.clock() - pending.created_at).total_seconds() > self.confirmation_ttl

    def _defer(self, parsed: ParsedCommand, resolution: CategoryResolution) -> DispatchResult:
        self.state.hold(
            PendingSuggestion(
                amount=parsed.amount,
                merchant=parsed.merchant,
                description=parsed.description,
                date_hint=parsed.date_hint,
                resolution=resolution,
                created_at=self.clock(),
            )
        )
        logger.info("💬 Suggesting %s $%.2f -> %s", parsed.merchant, parsed.amount, resolution.category_name)
        return DispatchResult(
            handled=True,
            action=ChatAction.DEFER,
            message=(
                f"Sounds like you spent ${parsed.amount:.2f} on {parsed.merchant}. "
                f"Want me to add it under {resolution.category_name}? (yes/no)"
            ),
        )

    # -----------------------------
    # Insert
    # -----------------------------
    async def _insert(
        self,
        context: ConversationContext,
        amount: float,
        merchant: str,
        description: Optional[str],
        date_hint: str,
        resolution: CategoryResolution,
        action: ChatAction,
    ) -> DispatchResult:
        now = self.clock()
        spent_at = datetime.combine(resolve_date_hint(date_hint, now.date()), now.timetz())

        try:
            expense = await self.actions.add_expense(
                NewExpense(
                    user_id=context.user_id,
                    amount=amount,
                    merchant=merchant,
                    category_id=resolution.category_id,
                    spent_at=spent_at,
                    description=description,
                )
            )
        except ExpensePersistenceError as e:
            logger.error("❌ Insert failed for %s: %s", merchant, e.reason)
            return DispatchResult(
                handled=True,
                action=ChatAction.FAILED,
                message=f"I couldn't add {merchant}: {e.reason}",
            )

        logger.info(
            "✅ Added %s $%.2f -> %s (%s, %.2f)",
            merchant, amount, resolution.category_name, resolution.resolved_by.value, resolution.confidence,
        )
        self.resolver.log_resolution(context.user_id, expense.id, merchant, resolution)

        message = f"Added ${amount:.2f} at {merchant} under {resolution.category_name}."
        note = await self._spike_note(context.user_id, resolution)
        if note:
            message += f"\n\nHeads up: {note}"

        await self._reload(context)
        return DispatchResult(handled=True, action=action, message=message, expense=expense, reload=True)

    async def _spike_note(self, user_id: str, resolution: CategoryResolution) -> Optional[str]:
        if self.insights is None:
            return None
        try:
            return await self.insights.weekly_spike_note(user_id, resolution.category_id, resolution.category_name)
        except Exception as e:
            logger.warning("Spike note skipped: %s", e)
            return None

    async def _reload(self, context: ConversationContext) -> None:
        try:
            context.expenses = await self.actions.reload_expenses(context.user_id)
        except Exception as e:
            logger.warning("Expense reload failed for %s: %s", context.user_id, e)

    # -----------------------------
    # Gated detectors
    # -----------------------------
    async def _try_budget_goal(self, text: str, context: ConversationContext) -> Optional[DispatchResult]:
        if not mentions_budget(text):
            return None
        command = parse_budget_goal(text)
        if command is None:
            return None

        category = fuzzy_match_category(command.category_text, context.categories)
        if category is None:
            return DispatchResult(
                handled=True,
                action=ChatAction.FAILED,
                message=f"I couldn't find a category matching \"{command.category_text}\".",
            )

        try:
            if command.action == "remove":
                removed = await self.actions.remove_budget_goal(context.user_id, category)
                message = (
                    f"Removed your {category.name} budget."
                    if removed
                    else f"You don't have a {category.name} budget set."
                )
                return DispatchResult(handled=True, action=ChatAction.BUDGET_REMOVE, message=message)

            await self.actions.set_budget_goal(context.user_id, category, command.limit)
        except ExpensePersistenceError as e:
            return DispatchResult(
                handled=True,
                action=ChatAction.FAILED,
                message=f"I couldn't save the {category.name} budget: {e.reason}",
            )

        logger.info("🎯 Budget %s -> %.2f for %s", category.name, command.limit, context.user_id)
        return DispatchResult(
            handled=True,
            action=ChatAction.BUDGET_SET,
            message=f"Set your {category.name} budget to ${command.limit:,.2f}.",
        )

    async def _try_update(self, text: str, context: ConversationContext) -> Optional[DispatchResult]:
        if not is_update_message(text):
            return None
        request = parse_update_request(text, context.expenses, context.categories, self.recent_turns)
        if request is None:
            logger.info("Incomplete update command: %s", text)
            return None

        try:
            target = find_target_expense(context.expenses, request.query)
        except AmbiguousExpenseError as e:
            return DispatchResult(
                handled=True,
                action=ChatAction.FAILED,
                message=f"{e.count} expenses match {e.query}. Can you be more specific?",
            )
        except ExpenseNotFoundError as e:
            return DispatchResult(
                handled=True,
                action=ChatAction.FAILED,
                message=f"I couldn't find a match for {e.query}",
            )

        try:
            updated = await self.actions.update_expense(target, request.updates)
        except ExpensePersistenceError as e:
            return DispatchResult(
                handled=True,
                action=ChatAction.FAILED,
                message=f"I couldn't update {target.merchant}: {e.reason}",
            )

        changes = []
        if request.updates.amount is not None:
            changes.append(f"${request.updates.amount:.2f}")
        if request.updates.category_id is not None:
            changes.append(request.updates.category_name)
            if request.updates.category_id != target.category_id:
                await self.resolver.record_correction(
                    context.user_id, target.merchant, request.updates.category_name, target.id
                )

        await self._reload(context)
        return DispatchResult(
            handled=True,
            action=ChatAction.UPDATE,
            message=f"Done! Updated {target.merchant} to {' / '.join(changes)}.",
            expense=updated,
            reload=True,
        )

    async def _try_export(self, text: str, context: ConversationContext) -> Optional[DispatchResult]:
        if not _EXPORT_RE.search(text):
            return None
        csv_text = await self.actions.export(context.user_id)
        rows = max(len(csv_text.strip().splitlines()) - 1, 0) if csv_text else 0
        return DispatchResult(
            handled=True,
            action=ChatAction.EXPORT,
            message=f"Here's your export ({rows} expenses).",
            data=csv_text,
        )

    async def _try_search(self, text: str, context: ConversationContext) -> Optional[DispatchResult]:
        if not _SEARCH_RE.search(text):
            return None
        query = search_query(text)
        if not query:
            return None

        results = await self.actions.search(context.user_id, query)
        if not results:
            message = f"No expenses matching \"{query}\"."
        else:
            total = sum(e.amount for e in results)
            message = f"Found {len(results)} expenses matching \"{query}\" (${total:.2f} total)."
        return DispatchResult(handled=True, action=ChatAction.SEARCH, message=message, data=results)
