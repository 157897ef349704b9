# core/intent.py
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ExpenseIntent(str, Enum):
    """
    What an utterance asks for, as far as expenses go.
    """

    ADD = "add"          # named merchant, auto-actionable
    SUGGEST = "suggest"  # spending described, needs confirmation
    NONE = "none"

    def is_actionable(self) -> bool:
        return self is not ExpenseIntent.NONE


class ChatAction(str, Enum):
    """
    The action a dispatcher turn ended up taking.
    """

    INSERT = "insert"
    DEFER = "defer"
    CONFIRM = "confirm"
    DECLINE = "decline"
    UPDATE = "update"
    SEARCH = "search"
    EXPORT = "export"
    BUDGET_SET = "budget_set"
    BUDGET_REMOVE = "budget_remove"
    FAILED = "failed"
    NONE = "none"


class ChatTurn(BaseModel):
    """
    A passive container for one utterance.
    This does NOT execute logic.
    """

    user_id: str
    raw_input: str
    session_id: Optional[str] = None
