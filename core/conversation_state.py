# core/conversation_state.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from models.category import CategoryResolution


class PendingSuggestion(BaseModel):
    """
    A described-but-unconfirmed expense waiting for a yes/no.
    The category is resolved once, when the suggestion is made.
    """

    amount: float = Field(..., gt=0)
    merchant: str
    description: Optional[str] = None
    date_hint: str = "today"
    resolution: CategoryResolution
    created_at: datetime


class ConfirmationState:
    """
    Single slot. Idle when empty, AwaitingConfirmation when holding one
    suggestion. take() empties the slot, so a suggestion is consumed at most
    once.
    """

    def __init__(self):
        self._pending: Optional[PendingSuggestion] = None

    @property
    def awaiting(self) -> bool:
        return self._pending is not None

    def hold(self, suggestion: PendingSuggestion) -> None:
        self._pending = suggestion

    def take(self) -> Optional[PendingSuggestion]:
        pending, self._pending = self._pending, None
        return pending
