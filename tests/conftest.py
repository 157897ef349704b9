# tests/conftest.py
import sys
from pathlib import Path

# ---------------------------------------------------------
# Ensure project root is on PYTHONPATH BEFORE app imports
# ---------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# ---------------------------------------------------------
# Now safe to import project modules
# ---------------------------------------------------------
from datetime import datetime, timezone

import pytest

from executors.expense import InMemoryExpenseActions
from models.category import Category
from models.expense import Expense
from services.category_resolver import CategoryResolver
from services.dispatcher import ConversationContext, ConversationDispatcher
from services.resolution_store import InMemoryResolutionStore

USER_ID = "test-user"

CATEGORY_NAMES = [
    "Coffee & Tea",
    "Groceries",
    "Dining Out",
    "Gas & Fuel",
    "Home Goods",
    "General Retail",
    "Miscellaneous",
]


def make_categories(names=CATEGORY_NAMES):
    return [Category(id=f"cat_{i}", name=name) for i, name in enumerate(names, start=1)]


def make_expense(id, merchant, amount, spent_at, category_id="cat_1", description=None):
    return Expense(
        id=id,
        user_id=USER_ID,
        amount=amount,
        merchant=merchant,
        category_id=category_id,
        spent_at=spent_at,
        description=description,
    )


class FakeClock:
    """Controllable clock for confirmation expiry."""

    def __init__(self, now=None):
        self.now = now or datetime(2026, 3, 18, 15, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


@pytest.fixture
def categories():
    return make_categories()


@pytest.fixture
def store():
    return InMemoryResolutionStore()


@pytest.fixture
def resolver(store):
    # No remote oracle unless a test plugs one in
    return CategoryResolver(store, classifier=None)


@pytest.fixture
def actions(categories):
    fake = InMemoryExpenseActions()
    fake.register_categories(categories)
    return fake


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dispatcher(resolver, actions, clock):
    return ConversationDispatcher(
        resolver,
        actions,
        extractor=None,
        enabled=True,
        confirmation_ttl=None,
        clock=clock,
    )


@pytest.fixture
def context(categories):
    return ConversationContext(user_id=USER_ID, categories=categories)
