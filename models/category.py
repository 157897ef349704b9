# FILE: models/category.py
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -----------------------------
# Provenance of a resolved category
# -----------------------------
class ResolvedBy(str, Enum):
    USER_OVERRIDE = "user_override"
    GLOBAL_CACHE = "global_cache"
    KEYWORD_MAP = "keyword_map"
    AI = "ai"
    FALLBACK = "fallback"
    USER_CORRECTION = "user_correction"


# -----------------------------
# Category (caller supplied)
# -----------------------------
class Category(BaseModel):
    id: str
    name: str


# -----------------------------
# Waterfall input / output
# -----------------------------
class ResolutionRequest(BaseModel):
    merchant: str = ""
    description: Optional[str] = None
    full_message: Optional[str] = None
    categories: List[Category] = Field(default_factory=list)
    user_id: Optional[str] = None


class CategoryResolution(BaseModel):
    category_id: str
    category_name: str
    resolved_by: ResolvedBy
    confidence: float = Field(..., ge=0.0, le=1.0)


# -----------------------------
# Persisted learning records
# -----------------------------
class UserOverride(BaseModel):
    user_id: str
    merchant_key: str
    category_name: str
    updated_at: datetime = Field(default_factory=_utcnow)


class MerchantResolution(BaseModel):
    """
    Global cache entry, shared by every user.
    """

    merchant_key: str
    category_name: str
    confidence: float = Field(..., ge=0.0, le=0.99)
    resolution_count: int = Field(1, ge=1)
    last_resolved_at: datetime = Field(default_factory=_utcnow)


class ResolutionLogEntry(BaseModel):
    user_id: Optional[str] = None
    expense_id: Optional[str] = None
    merchant_key: str
    category_name: str
    resolved_by: ResolvedBy
    confidence: float
    timestamp: datetime = Field(default_factory=_utcnow)
