from abc import ABC, abstractmethod
from typing import List

from core.intent import ChatTurn
from models.category import Category
from models.expense import Expense, ExpenseUpdates, NewExpense


class BaseExecutor(ABC):
    """
    Base contract for executors that answer a chat turn.
    Executors take a ChatTurn and return a response dict.
    No routing, no parsing here.
    """

    @abstractmethod
    async def execute(self, turn: ChatTurn) -> dict:
        pass


class ExpenseActions(ABC):
    """
    Side effects the conversational dispatcher may trigger.
    Persistence failures surface as ExpensePersistenceError.
    """

    @abstractmethod
    async def add_expense(self, expense: NewExpense) -> Expense:
        pass

    @abstractmethod
    async def reload_expenses(self, user_id: str) -> List[Expense]:
        pass

    @abstractmethod
    async def update_expense(self, expense: Expense, updates: ExpenseUpdates) -> Expense:
        pass

    @abstractmethod
    async def search(self, user_id: str, query: str) -> List[Expense]:
        pass

    @abstractmethod
    async def export(self, user_id: str) -> str:
        pass

    @abstractmethod
    async def set_budget_goal(self, user_id: str, category: Category, limit: float) -> None:
        pass

    @abstractmethod
    async def remove_budget_goal(self, user_id: str, category: Category) -> bool:
        pass
