# models/expense.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Optional

from core.intent import ExpenseIntent


class ParsedCommand(BaseModel):
    """
    Structured extraction of one utterance. Never persisted.
    """

    model_config = ConfigDict(populate_by_name=True)

    intent: ExpenseIntent = Field(..., description="add, suggest or none")
    amount: float = Field(..., gt=0, description="The amount of the expense")
    merchant: str = Field(..., min_length=1, description="Title-cased merchant name")
    description: Optional[str] = Field(None, description="What was bought")
    date_hint: str = Field("today", alias="dateHint", description="today | yesterday | N days ago")


class ExpenseIntentExtraction(BaseModel):
    """
    Output schema of the remote expense parser. Every field is optional because
    the oracle is allowed to return partial or garbage answers.
    """

    intent: ExpenseIntent = Field(ExpenseIntent.NONE)
    amount: Optional[float] = Field(None)
    merchant: Optional[str] = Field(None)
    description: Optional[str] = Field(None)
    dateHint: Optional[str] = Field(None)


class NewExpense(BaseModel):
    user_id: str
    amount: float = Field(..., gt=0)
    merchant: str
    category_id: str
    spent_at: datetime
    description: Optional[str] = None
    payment_method: str = "card"


class Expense(NewExpense):
    id: str
    category_name: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v):
        # Prisma hands back Decimal for money columns
        return float(v)


class ExpenseUpdates(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    category_id: Optional[str] = None
    category_name: Optional[str] = None

    def is_empty(self) -> bool:
        return self.amount is None and self.category_id is None
