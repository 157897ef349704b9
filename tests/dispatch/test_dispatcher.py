# tests/dispatch/test_dispatcher.py
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from conftest import USER_ID, make_expense
from core.errors import ExpensePersistenceError
from core.intent import ChatAction
from models.category import ResolvedBy
from services.dispatcher import ConversationDispatcher, is_affirmation, is_negation, search_query


def _turns(dispatcher, context, *texts):
    async def run():
        results = [await dispatcher.handle(t, context) for t in texts]
        await dispatcher.resolver.writer.drain()
        return results

    return asyncio.run(run())


# ------------------------------------------------------------
# Lexicons
# ------------------------------------------------------------
def test_affirmation_and_negation_lexicons():
    for reply in ["yes", "Yeah!", "yep", "sure thing", "ok", "go ahead", "Confirm"]:
        assert is_affirmation(reply), reply
    for reply in ["no", "Nope", "nah", "cancel that", "never mind", "don't"]:
        assert is_negation(reply), reply
    assert not is_affirmation("yesterday I bought gas")
    assert not is_negation("nordstrom was $40")


# ------------------------------------------------------------
# Idle + add
# ------------------------------------------------------------
def test_add_inserts_immediately(dispatcher, context, actions, store):
    [result] = _turns(dispatcher, context, "add $6 coffee starbucks")

    assert result.handled
    assert result.action is ChatAction.INSERT
    assert result.reload is True
    assert result.expense.merchant == "Starbucks"
    assert result.expense.category_name == "Coffee & Tea"
    assert "Coffee & Tea" in result.message
    assert not dispatcher.awaiting_confirmation

    assert len(actions.expenses) == 1
    assert [e.merchant for e in context.expenses] == ["Starbucks"]
    assert store.log[0].resolved_by is ResolvedBy.KEYWORD_MAP
    assert store.log[0].expense_id == result.expense.id


def test_add_uses_the_date_hint(dispatcher, context, clock):
    [result] = _turns(dispatcher, context, "spent $40 at Shell yesterday")

    assert result.expense.spent_at.date() == (clock.now - timedelta(days=1)).date()


def test_spike_note_is_appended(resolver, actions, context, clock):
    insights = MagicMock()
    insights.weekly_spike_note = AsyncMock(return_value="Gas & Fuel: $120 this week vs $40 last week (3.0x increase)")
    dispatcher = ConversationDispatcher(resolver, actions, insights=insights, extractor=None, clock=clock)

    [result] = _turns(dispatcher, context, "spent $40 at Shell")

    assert "3.0x increase" in result.message
    insights.weekly_spike_note.assert_awaited_once_with(USER_ID, result.expense.category_id, "Gas & Fuel")


def test_failing_insights_do_not_break_the_insert(resolver, actions, context, clock):
    insights = MagicMock()
    insights.weekly_spike_note = AsyncMock(side_effect=RuntimeError("no data"))
    dispatcher = ConversationDispatcher(resolver, actions, insights=insights, extractor=None, clock=clock)

    [result] = _turns(dispatcher, context, "spent $40 at Shell")

    assert result.action is ChatAction.INSERT


def test_persistence_failure_is_reported(resolver, context, clock):
    actions = MagicMock()
    actions.add_expense = AsyncMock(side_effect=ExpensePersistenceError("connection reset"))
    dispatcher = ConversationDispatcher(resolver, actions, extractor=None, clock=clock)

    [result] = _turns(dispatcher, context, "add $6 coffee starbucks")

    assert result.action is ChatAction.FAILED
    assert result.message == "I couldn't add Starbucks: connection reset"
    assert result.reload is False


# ------------------------------------------------------------
# Suggest / confirm
# ------------------------------------------------------------
def test_suggest_waits_for_confirmation(dispatcher, context, actions):
    [result] = _turns(dispatcher, context, "i just spent $2100 repairing my roof")

    assert result.action is ChatAction.DEFER
    assert "$2100.00" in result.message
    assert "Roof Repair" in result.message
    assert dispatcher.awaiting_confirmation
    assert actions.expenses == []


def test_confirmation_inserts_with_the_proposed_category(dispatcher, context, actions):
    suggestion, confirmation = _turns(dispatcher, context, "i just spent $2100 repairing my roof", "yes please")

    assert confirmation.action is ChatAction.CONFIRM
    assert confirmation.expense.merchant == "Roof Repair"
    assert confirmation.expense.amount == 2100.0
    assert f"under {confirmation.expense.category_name}" in suggestion.message
    assert len(actions.expenses) == 1


def test_second_yes_inserts_nothing(dispatcher, context, actions):
    _, _, second = _turns(dispatcher, context, "i just spent $2100 repairing my roof", "yes", "yes")

    assert second.handled is False
    assert len(actions.expenses) == 1


def test_negation_discards_the_suggestion(dispatcher, context, actions):
    _, declined = _turns(dispatcher, context, "i just spent $2100 repairing my roof", "no thanks")

    assert declined.action is ChatAction.DECLINE
    assert actions.expenses == []
    assert not dispatcher.awaiting_confirmation


def test_unrelated_reply_clears_slot_and_is_processed_fresh(dispatcher, context, actions):
    _, fresh, late_yes = _turns(
        dispatcher, context, "i just spent $2100 repairing my roof", "spent $12 at Chipotle", "yes"
    )

    assert fresh.action is ChatAction.INSERT
    assert fresh.expense.merchant == "Chipotle"
    assert late_yes.handled is False
    assert [e.merchant for e in actions.expenses] == ["Chipotle"]


def test_stale_suggestion_expires(resolver, actions, context, clock):
    dispatcher = ConversationDispatcher(resolver, actions, extractor=None, confirmation_ttl=60, clock=clock)

    async def run():
        await dispatcher.handle("i just spent $2100 repairing my roof", context)
        clock.now = clock.now + timedelta(minutes=5)
        return await dispatcher.handle("yes", context)

    result = asyncio.run(run())

    assert result.handled is False
    assert actions.expenses == []
    assert not dispatcher.awaiting_confirmation


# ------------------------------------------------------------
# Gated actions
# ------------------------------------------------------------
def test_budget_goal_set_and_remove(dispatcher, context, actions, categories):
    set_result, remove_result = _turns(
        dispatcher, context, "set dining out budget to $300", "remove my dining budget"
    )
    dining = next(c for c in categories if c.name == "Dining Out")

    assert set_result.action is ChatAction.BUDGET_SET
    assert set_result.message == "Set your Dining Out budget to $300.00."
    assert remove_result.action is ChatAction.BUDGET_REMOVE
    assert (USER_ID, dining.id) not in actions.budgets


def test_budget_goal_for_unknown_category_names_the_text(dispatcher, context, actions):
    [result] = _turns(dispatcher, context, "set crypto budget to $50")

    assert result.action is ChatAction.FAILED
    assert '"crypto"' in result.message
    assert actions.budgets == {}


def test_update_amount_by_merchant(dispatcher, context, actions):
    _, result = _turns(dispatcher, context, "add $6 coffee starbucks", "change starbucks to $7")

    assert result.action is ChatAction.UPDATE
    assert result.expense.amount == 7.0
    assert actions.expenses[0].amount == 7.0
    assert result.message == "Done! Updated Starbucks to $7.00."


def test_update_category_runs_the_learning_loop(dispatcher, context, store):
    _, result = _turns(dispatcher, context, "add $6 coffee starbucks", "change starbucks to groceries")

    assert result.action is ChatAction.UPDATE
    assert result.expense.category_name == "Groceries"
    assert store.overrides[(USER_ID, "starbucks")].category_name == "Groceries"
    assert store.log[-1].resolved_by is ResolvedBy.USER_CORRECTION


def test_update_with_unknown_target(dispatcher, context):
    [result] = _turns(dispatcher, context, "change walmart to $7")

    assert result.action is ChatAction.FAILED
    assert result.message == "I couldn't find a match for walmart"


def test_update_with_ambiguous_amount(dispatcher, context):
    day = datetime(2026, 3, 1, tzinfo=timezone.utc)
    context.expenses = [
        make_expense("1", "Target", 10.0, day),
        make_expense("2", "Walgreens", 10.0, day + timedelta(days=1)),
    ]

    [result] = _turns(dispatcher, context, "change the 10 one to 12")

    assert result.action is ChatAction.FAILED
    assert "more specific" in result.message


def test_search_and_export(dispatcher, context):
    _, search, export = _turns(dispatcher, context, "add $6 coffee starbucks", "show me coffee", "export my expenses")

    assert search.action is ChatAction.SEARCH
    assert [e.merchant for e in search.data] == ["Starbucks"]
    assert export.action is ChatAction.EXPORT
    assert export.data.splitlines()[0].startswith("id,spent_at,merchant,amount")
    assert "(1 expenses)" in export.message


def test_search_query_strips_filler():
    assert search_query("show me all my Amazon purchases") == "Amazon"
    assert search_query("can you search for Target") == "Target"


def test_search_and_export_words_inside_an_expense_are_inserted(dispatcher, context, actions):
    water_filter, shipping, polite = _turns(
        dispatcher,
        context,
        "bought a water filter for $30 at Home Depot",
        "spent $120 on export shipping at FedEx",
        "can you export my expenses",
    )

    assert water_filter.action is ChatAction.INSERT
    assert water_filter.expense.merchant == "Home Depot"
    assert shipping.action is ChatAction.INSERT
    assert shipping.expense.merchant == "FedEx"
    assert polite.action is ChatAction.EXPORT
    assert [e.merchant for e in actions.expenses] == ["Home Depot", "FedEx"]


def test_update_refers_back_to_an_earlier_merchant(dispatcher, context, actions):
    _, _, mention, result = _turns(
        dispatcher,
        context,
        "spent $80 at Nordstrom",
        "add $6 coffee starbucks",
        "the Nordstrom one from Jan 20",
        "change it to $125",
    )

    assert mention.handled is False
    assert result.action is ChatAction.UPDATE
    assert result.expense.merchant == "Nordstrom"
    assert result.expense.amount == 125.0
    assert {e.merchant: e.amount for e in actions.expenses} == {"Nordstrom": 125.0, "Starbucks": 6.0}


def test_disabled_dispatcher_detects_nothing(resolver, actions, context, clock):
    dispatcher = ConversationDispatcher(resolver, actions, extractor=None, enabled=False, clock=clock)

    budget, export = _turns(dispatcher, context, "set dining out budget to $300", "export my expenses")

    assert budget.handled is False
    assert export.handled is False
    assert actions.budgets == {}


def test_informational_message_is_not_handled(dispatcher, context):
    [result] = _turns(dispatcher, context, "how am i doing this month?")

    assert result.handled is False
    assert result.action is ChatAction.NONE
