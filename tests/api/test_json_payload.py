# tests/api/test_json_payload.py
from datetime import datetime, timezone
from decimal import Decimal

from models.expense import Expense
from services.utils import json_payload


def test_expense_models_become_plain_json():
    expense = Expense(
        id="1",
        user_id="u1",
        amount=Decimal("6.50"),
        merchant="Starbucks",
        category_id="cat_1",
        category_name="Coffee & Tea",
        spent_at=datetime(2026, 3, 18, 9, 30, tzinfo=timezone.utc),
    )

    payload = json_payload({"expense": expense, "results": [expense], "reload": True})

    assert payload["expense"]["amount"] == 6.5
    assert payload["expense"]["spent_at"].startswith("2026-03-18T09:30:00")
    assert payload["results"][0]["merchant"] == "Starbucks"
    assert payload["reload"] is True


def test_scalars_pass_through():
    assert json_payload(Decimal("1.25")) == 1.25
    assert json_payload("id,merchant\n") == "id,merchant\n"
    assert json_payload(None) is None
