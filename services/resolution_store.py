# FILE: services/resolution_store.py
"""
Persistence for the learning records of the category waterfall:

- user_category_overrides  (user_id, merchant_key) -> category_name
- merchant_resolutions     merchant_key -> category_name, confidence, count
- categorization_log       append-only audit trail

Only point lookups by exact key, upserts and inserts. No cross-table
transactions.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from models.category import MerchantResolution, ResolutionLogEntry, UserOverride

if TYPE_CHECKING:
    from prisma import Prisma


class ResolutionStore(ABC):
    """
    Storage contract used by the category resolver.
    """

    @abstractmethod
    async def get_user_override(self, user_id: str, merchant_key: str) -> Optional[UserOverride]:
        pass

    @abstractmethod
    async def upsert_user_override(self, override: UserOverride) -> None:
        pass

    @abstractmethod
    async def get_merchant_resolution(self, merchant_key: str) -> Optional[MerchantResolution]:
        pass

    @abstractmethod
    async def save_merchant_resolution(self, entry: MerchantResolution) -> None:
        pass

    @abstractmethod
    async def append_log(self, entry: ResolutionLogEntry) -> None:
        pass


# -----------------------------
# Prisma-backed store
# -----------------------------
class PrismaResolutionStore(ResolutionStore):
    def __init__(self, db: "Prisma"):
        self.db = db

    async def get_user_override(self, user_id: str, merchant_key: str) -> Optional[UserOverride]:
        row = await self.db.usercategoryoverride.find_unique(
            where={"user_id_merchant_key": {"user_id": user_id, "merchant_key": merchant_key}}
        )
        if row is None:
            return None
        return UserOverride.model_validate(row, from_attributes=True)

    async def upsert_user_override(self, override: UserOverride) -> None:
        await self.db.usercategoryoverride.upsert(
            where={
                "user_id_merchant_key": {
                    "user_id": override.user_id,
                    "merchant_key": override.merchant_key,
                }
            },
            data={
                "create": override.model_dump(),
                "update": {
                    "category_name": override.category_name,
                    "updated_at": override.updated_at,
                },
            },
        )

    async def get_merchant_resolution(self, merchant_key: str) -> Optional[MerchantResolution]:
        row = await self.db.merchantresolution.find_unique(where={"merchant_key": merchant_key})
        if row is None:
            return None
        return MerchantResolution.model_validate(row, from_attributes=True)

    async def save_merchant_resolution(self, entry: MerchantResolution) -> None:
        data = entry.model_dump()
        await self.db.merchantresolution.upsert(
            where={"merchant_key": entry.merchant_key},
            data={
                "create": data,
                "update": {k: v for k, v in data.items() if k != "merchant_key"},
            },
        )

    async def append_log(self, entry: ResolutionLogEntry) -> None:
        data = entry.model_dump()
        data["resolved_by"] = entry.resolved_by.value
        await self.db.categorizationlog.create(data=data)


# -----------------------------
# In-process store (offline demo, tests)
# -----------------------------
class InMemoryResolutionStore(ResolutionStore):
    def __init__(self):
        self.overrides: Dict[Tuple[str, str], UserOverride] = {}
        self.resolutions: Dict[str, MerchantResolution] = {}
        self.log: List[ResolutionLogEntry] = []

    async def get_user_override(self, user_id: str, merchant_key: str) -> Optional[UserOverride]:
        found = self.overrides.get((user_id, merchant_key))
        return found.model_copy() if found else None

    async def upsert_user_override(self, override: UserOverride) -> None:
        self.overrides[(override.user_id, override.merchant_key)] = override.model_copy()

    async def get_merchant_resolution(self, merchant_key: str) -> Optional[MerchantResolution]:
        found = self.resolutions.get(merchant_key)
        return found.model_copy() if found else None

    async def save_merchant_resolution(self, entry: MerchantResolution) -> None:
        self.resolutions[entry.merchant_key] = entry.model_copy()

    async def append_log(self, entry: ResolutionLogEntry) -> None:
        self.log.append(entry)
