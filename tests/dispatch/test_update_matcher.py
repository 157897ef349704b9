# tests/dispatch/test_update_matcher.py
from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_categories, make_expense
from core.errors import AmbiguousExpenseError, ExpenseNotFoundError
from services.update_matcher import (
    MOST_RECENT,
    find_target_expense,
    is_update_message,
    parse_update_request,
)

BASE = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def expenses():
    return [
        make_expense("1", "Target", 25.00, BASE),
        make_expense("2", "Target Optical", 120.00, BASE + timedelta(days=1)),
        make_expense("3", "Shell", 45.20, BASE + timedelta(days=2)),
        make_expense("4", "Store 12", 9.99, BASE + timedelta(days=3)),
        make_expense("5", "Nordstrom", 12.00, BASE + timedelta(days=4)),
    ]


# ------------------------------------------------------------
# Cascade
# ------------------------------------------------------------
def test_exact_merchant_beats_substring(expenses):
    assert find_target_expense(expenses, "TARGET").id == "1"


def test_substring_match_prefers_newest(expenses):
    assert find_target_expense(expenses, "targ").id == "2"


def test_amount_within_a_cent(expenses):
    assert find_target_expense(expenses, "45.21").id == "3"
    assert find_target_expense(expenses, "$120").id == "2"


def test_tiers_are_not_merged(expenses):
    # "12" is a substring of "Store 12" and also Nordstrom's amount;
    # the merchant tier answers first
    assert find_target_expense(expenses, "12").id == "4"


def test_date_token(expenses):
    assert find_target_expense(expenses, "3/12").id == "3"


def test_most_recent(expenses):
    assert find_target_expense(expenses, MOST_RECENT).id == "5"


def test_ambiguous_amount_raises(expenses):
    expenses.append(make_expense("6", "Walgreens", 25.00, BASE + timedelta(days=5)))

    with pytest.raises(AmbiguousExpenseError) as err:
        find_target_expense(expenses, "25")

    assert err.value.count == 2


def test_ambiguous_date_raises(expenses):
    expenses.append(make_expense("6", "Walgreens", 3.00, BASE + timedelta(days=2, hours=3)))

    with pytest.raises(AmbiguousExpenseError):
        find_target_expense(expenses, "3/12")


def test_no_match_raises_not_found(expenses):
    with pytest.raises(ExpenseNotFoundError) as err:
        find_target_expense(expenses, "walmart")

    assert err.value.query == "walmart"


def test_most_recent_with_no_expenses():
    with pytest.raises(ExpenseNotFoundError):
        find_target_expense([], MOST_RECENT)


# ------------------------------------------------------------
# Message parsing
# ------------------------------------------------------------
def test_update_verbs_must_lead_the_message():
    assert is_update_message("change Shell to $40")
    assert is_update_message("Can you update the latest one to 5")
    assert not is_update_message("paid $50 to change the oil")


def test_new_amount_with_merchant_target(expenses):
    request = parse_update_request("change shell to $40", expenses, make_categories())

    assert request.query == "Shell"
    assert request.updates.amount == 40.0


def test_new_amount_with_amount_target(expenses):
    request = parse_update_request("change the 45.20 one to 50", expenses, make_categories())

    assert request.query == "45.20"
    assert request.updates.amount == 50.0


def test_most_recent_target(expenses):
    request = parse_update_request("update my latest expense to 5 dollars", expenses, make_categories())

    assert request.query == MOST_RECENT
    assert request.updates.amount == 5.0


def test_new_category(expenses):
    request = parse_update_request("change nordstrom to general retail", expenses, make_categories())

    assert request.query == "Nordstrom"
    assert request.updates.category_name == "General Retail"
    assert request.updates.amount is None


def test_incomplete_update_is_none(expenses):
    assert parse_update_request("change nordstrom", expenses, make_categories()) is None
    assert parse_update_request("spent $5 at Target", expenses, make_categories()) is None


def test_pronoun_target_falls_back_to_recent_turns(expenses):
    recent = ["what did I get at Shell", "the Nordstrom one from 3/14"]

    request = parse_update_request("change it to $125", expenses, make_categories(), recent_turns=recent)

    assert request.query == "Nordstrom"
    assert request.updates.amount == 125.0
    assert parse_update_request("change it to $125", expenses, make_categories()) is None


def test_named_target_ignores_recent_turns(expenses):
    request = parse_update_request(
        "change walmart to $7", expenses, make_categories(), recent_turns=["the Nordstrom one"]
    )

    assert request.query == "walmart"
