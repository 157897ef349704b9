# services/utils.py
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel


def json_payload(obj: Any) -> Any:
    """
    JSON-safe copy of a response payload: pydantic models, dicts and lists of
    them, Decimal money and datetimes.
    """
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, dict):
        return {k: json_payload(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [json_payload(v) for v in obj]
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return obj
