import csv
import io
import logging
from asyncio import wait_for, TimeoutError
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, List, Tuple

from fastapi import HTTPException

from core.errors import ExpensePersistenceError
from core.intent import ChatTurn
from executors.base import BaseExecutor, ExpenseActions
from models.category import Category
from models.expense import Expense, ExpenseUpdates, NewExpense
from services.dispatcher import ConversationContext, ConversationDispatcher
from services.utils import json_payload

if TYPE_CHECKING:
    from prisma import Prisma

logger = logging.getLogger("expense_actions")

EXPORT_FIELDS = ["id", "spent_at", "merchant", "amount", "category_name", "description", "payment_method"]
SEARCH_LIMIT = 50


def _money(value: float) -> Decimal:
    return Decimal(str(round(value, 2)))


def expense_from_row(row) -> Expense:
    category = getattr(row, "category", None)
    return Expense(
        id=row.id,
        user_id=row.user_id,
        amount=row.amount,
        merchant=row.merchant,
        category_id=row.category_id,
        category_name=category.name if category else None,
        spent_at=row.spent_at,
        description=row.description,
        payment_method=row.payment_method,
    )


def expenses_to_csv(expenses: List[Expense]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_FIELDS, extrasaction="ignore")
    writer.writeheader()
    for e in expenses:
        row = e.model_dump()
        row["spent_at"] = e.spent_at.isoformat()
        writer.writerow(row)
    return buffer.getvalue()


class PrismaExpenseActions(ExpenseActions):
    """
    Expense persistence, search, export and budget goals on Prisma.
    """

    def __init__(self, db: "Prisma"):
        self.db = db

    async def add_expense(self, expense: NewExpense) -> Expense:
        try:
            data = expense.model_dump()
            data["amount"] = _money(expense.amount)
            row = await self.db.expense.create(data=data, include={"category": True})
        except Exception as e:
            raise ExpensePersistenceError(str(e)) from e
        return expense_from_row(row)

    async def reload_expenses(self, user_id: str) -> List[Expense]:
        rows = await self.db.expense.find_many(
            where={"user_id": user_id},
            include={"category": True},
            order={"spent_at": "desc"},
        )
        return [expense_from_row(r) for r in rows]

    async def update_expense(self, expense: Expense, updates: ExpenseUpdates) -> Expense:
        data = updates.model_dump(exclude_none=True, exclude={"category_name"})
        if "amount" in data:
            data["amount"] = _money(data["amount"])
        try:
            row = await self.db.expense.update(
                where={"id": expense.id},
                data=data,
                include={"category": True},
            )
        except Exception as e:
            raise ExpensePersistenceError(str(e)) from e
        if row is None:
            raise ExpensePersistenceError("expense no longer exists")
        return expense_from_row(row)

    async def search(self, user_id: str, query: str) -> List[Expense]:
        rows = await self.db.expense.find_many(
            where={
                "user_id": user_id,
                "OR": [
                    {"merchant": {"contains": query, "mode": "insensitive"}},
                    {"description": {"contains": query, "mode": "insensitive"}},
                    {"category": {"is": {"name": {"contains": query, "mode": "insensitive"}}}},
                ],
            },
            include={"category": True},
            order={"spent_at": "desc"},
            take=SEARCH_LIMIT,
        )
        return [expense_from_row(r) for r in rows]

    async def export(self, user_id: str) -> str:
        return expenses_to_csv(await self.reload_expenses(user_id))

    async def set_budget_goal(self, user_id: str, category: Category, limit: float) -> None:
        try:
            await self.db.budgetgoal.upsert(
                where={"user_id_category_id": {"user_id": user_id, "category_id": category.id}},
                data={
                    "create": {"user_id": user_id, "category_id": category.id, "monthly_limit": _money(limit)},
                    "update": {"monthly_limit": _money(limit)},
                },
            )
        except Exception as e:
            raise ExpensePersistenceError(str(e)) from e

    async def remove_budget_goal(self, user_id: str, category: Category) -> bool:
        try:
            removed = await self.db.budgetgoal.delete_many(
                where={"user_id": user_id, "category_id": category.id}
            )
        except Exception as e:
            raise ExpensePersistenceError(str(e)) from e
        return removed > 0


# -----------------------------
# In-process actions (offline demo, tests)
# -----------------------------
class InMemoryExpenseActions(ExpenseActions):
    def __init__(self):
        self.expenses: List[Expense] = []
        self.budgets: Dict[Tuple[str, str], float] = {}
        self.categories: Dict[str, str] = {}
        self._next_id = 1

    def register_categories(self, categories: List[Category]) -> None:
        self.categories.update({c.id: c.name for c in categories})

    async def add_expense(self, expense: NewExpense) -> Expense:
        saved = Expense(
            id=str(self._next_id),
            category_name=self.categories.get(expense.category_id),
            **expense.model_dump(),
        )
        self._next_id += 1
        self.expenses.append(saved)
        return saved.model_copy()

    async def reload_expenses(self, user_id: str) -> List[Expense]:
        mine = [e.model_copy() for e in self.expenses if e.user_id == user_id]
        return sorted(mine, key=lambda e: e.spent_at, reverse=True)

    async def update_expense(self, expense: Expense, updates: ExpenseUpdates) -> Expense:
        for i, stored in enumerate(self.expenses):
            if stored.id == expense.id:
                changes = updates.model_dump(exclude_none=True)
                self.expenses[i] = stored.model_copy(update=changes)
                return self.expenses[i].model_copy()
        raise ExpensePersistenceError("expense no longer exists")

    async def search(self, user_id: str, query: str) -> List[Expense]:
        q = query.lower()
        return [
            e
            for e in await self.reload_expenses(user_id)
            if q in e.merchant.lower()
            or q in (e.description or "").lower()
            or q in (e.category_name or "").lower()
        ]

    async def export(self, user_id: str) -> str:
        return expenses_to_csv(await self.reload_expenses(user_id))

    async def set_budget_goal(self, user_id: str, category: Category, limit: float) -> None:
        self.budgets[(user_id, category.id)] = limit

    async def remove_budget_goal(self, user_id: str, category: Category) -> bool:
        return self.budgets.pop((user_id, category.id), None) is not None


class ExpenseExecutor(BaseExecutor):
    """
    Runs one chat turn through the conversation's dispatcher.
    A turn the dispatcher does not handle comes back with handled=False.
    """

    def __init__(self, dispatcher: ConversationDispatcher, context: ConversationContext, timeout: float = 30):
        self.dispatcher = dispatcher
        self.context = context
        self.timeout = timeout

    async def execute(self, turn: ChatTurn) -> dict:
        try:
            try:
                result = await wait_for(self.dispatcher.handle(turn.raw_input, self.context), timeout=self.timeout)
            except TimeoutError:
                raise HTTPException(status_code=504, detail="Expense processing timed out")

            return {
                "type": "expense",
                "handled": result.handled,
                "action": result.action.value,
                "data": json_payload(
                    {
                        "expense": result.expense,
                        "reload": result.reload,
                        "awaiting_confirmation": self.dispatcher.awaiting_confirmation,
                        "result": result.data,
                    }
                ),
                "message": result.message,
            }

        except HTTPException:
            raise
        except Exception as e:
            logger.exception("Expense turn failed: %s", e)
            raise HTTPException(
                status_code=500,
                detail=str(e),
            )
