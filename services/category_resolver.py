# FILE: services/category_resolver.py
"""
Category Resolution Waterfall

    1. user override   (confidence 1.0)
    2. global cache    (stored confidence, accepted at >= 0.6)
    3. keyword table   (0.7, warms the cache)
    4. remote oracle   (0.8, warms the cache, answer must be an allowed category)
    5. fallback        ("Miscellaneous" or the first category, 0.1)

Tiers run one after another and the first accepted answer wins. A tier that
raises is logged and counts as a miss, so resolve() always returns a category
as long as the caller passes at least one.
"""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Sequence, Tuple

from agents.category_agent import classify_category
from models.category import (
    Category,
    CategoryResolution,
    MerchantResolution,
    ResolutionLogEntry,
    ResolutionRequest,
    ResolvedBy,
    UserOverride,
)
from services.background import BackgroundWriter
from services.keyword_classifier import FALLBACK_CATEGORY, match_category_by_keyword
from services.merchant import merchant_key
from services.resolution_store import ResolutionStore

# -----------------------------
# Logging Setup
# -----------------------------
logger = logging.getLogger("category_resolver")
logger.setLevel(logging.INFO)
if not logger.handlers:
    fh = logging.FileHandler("category_resolver.log")
    fh.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    logger.addHandler(fh)

# -----------------------------
# Confidence constants
# -----------------------------
OVERRIDE_CONFIDENCE = 1.0
CACHE_ACCEPT_THRESHOLD = 0.6
CACHE_CONFIDENCE_CEILING = 0.99
KEYWORD_CONFIDENCE = 0.7
AI_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.1
CORRECTION_CACHE_CONFIDENCE = 0.9

Classifier = Callable[[str, Optional[str], Optional[str], Sequence[str]], Awaitable[Optional[str]]]
Tier = Callable[[], Awaitable[Optional[CategoryResolution]]]


# -----------------------------
# Pure helpers
# -----------------------------
def find_category(name: Optional[str], categories: Sequence[Category]) -> Optional[Category]:
    """Case-insensitive exact match."""
    if not name:
        return None
    lower = name.lower().strip()
    return next((c for c in categories if c.name.lower() == lower), None)


def find_category_loose(name: Optional[str], categories: Sequence[Category]) -> Optional[Category]:
    """Exact match first, then a category whose name contains `name`."""
    found = find_category(name, categories)
    if found or not name:
        return found
    lower = name.lower().strip()
    return next((c for c in categories if lower in c.name.lower()), None)


def weighted_confidence(old_confidence: float, old_count: int, incoming: float) -> float:
    """
    Incremental weighted mean, capped below certainty. 1.0 is reserved for
    explicit user overrides.
    """
    return min(CACHE_CONFIDENCE_CEILING, (old_confidence * old_count + incoming) / (old_count + 1))


def fallback_category(categories: Sequence[Category]) -> CategoryResolution:
    cat = next((c for c in categories if c.name == FALLBACK_CATEGORY), None) or categories[0]
    return CategoryResolution(
        category_id=cat.id,
        category_name=cat.name,
        resolved_by=ResolvedBy.FALLBACK,
        confidence=FALLBACK_CONFIDENCE,
    )


async def first_accepted(tiers: Sequence[Tuple[str, Tier]]) -> Optional[CategoryResolution]:
    """
    Run tiers in order and return the first non-empty result. Exceptions are
    misses.
    """
    for label, tier in tiers:
        try:
            result = await tier()
        except Exception as e:
            logger.warning("Tier %s failed, treating as miss: %s", label, e)
            continue
        if result is not None:
            return result
    return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -----------------------------
# Resolver
# -----------------------------
class CategoryResolver:
    def __init__(
        self,
        store: ResolutionStore,
        classifier: Optional[Classifier] = classify_category,
        writer: Optional[BackgroundWriter] = None,
    ):
        self.store = store
        self.classifier = classifier
        self.writer = writer or BackgroundWriter()

    async def resolve(self, request: ResolutionRequest) -> CategoryResolution:
        categories = list(request.categories)
        if not categories:
            raise ValueError("resolve() needs at least one allowed category")

        key = merchant_key(request.merchant)
        tiers: Sequence[Tuple[str, Tier]] = (
            ("user_override", lambda: self._check_user_override(request.user_id, key, categories)),
            ("global_cache", lambda: self._check_global_cache(key, categories)),
            ("keyword_map", lambda: self._check_keywords(request, key, categories)),
            ("ai", lambda: self._ask_oracle(request, key, categories)),
        )

        result = await first_accepted(tiers)
        if result is None:
            result = fallback_category(categories)
            logger.info("🏷️ [5/5] Fallback: %s -> %s", key, result.category_name)
        return result

    # -------- Tier 1 --------
    async def _check_user_override(
        self, user_id: Optional[str], key: str, categories: Sequence[Category]
    ) -> Optional[CategoryResolution]:
        if not user_id or not key:
            return None
        override = await self.store.get_user_override(user_id, key)
        if override is None:
            return None

        cat = find_category(override.category_name, categories)
        if cat is None:
            logger.info("Override for %s names %r, not an allowed category", key, override.category_name)
            return None

        logger.info("🏷️ [1/5] User override: %s -> %s", key, cat.name)
        return CategoryResolution(
            category_id=cat.id,
            category_name=cat.name,
            resolved_by=ResolvedBy.USER_OVERRIDE,
            confidence=OVERRIDE_CONFIDENCE,
        )

    # -------- Tier 2 --------
    async def _check_global_cache(self, key: str, categories: Sequence[Category]) -> Optional[CategoryResolution]:
        if not key:
            return None
        cached = await self.store.get_merchant_resolution(key)
        if cached is None or cached.confidence < CACHE_ACCEPT_THRESHOLD:
            return None

        cat = find_category(cached.category_name, categories)
        if cat is None:
            return None

        confidence = min(cached.confidence, CACHE_CONFIDENCE_CEILING)
        logger.info("🏷️ [2/5] Global cache: %s -> %s (%.2f)", key, cat.name, confidence)
        return CategoryResolution(
            category_id=cat.id,
            category_name=cat.name,
            resolved_by=ResolvedBy.GLOBAL_CACHE,
            confidence=confidence,
        )

    # -------- Tier 3 --------
    async def _check_keywords(
        self, request: ResolutionRequest, key: str, categories: Sequence[Category]
    ) -> Optional[CategoryResolution]:
        text = " ".join(part for part in (request.merchant, request.description, request.full_message) if part)
        hint = match_category_by_keyword(text)
        cat = find_category_loose(hint, categories)
        if cat is None:
            return None

        logger.info("🏷️ [3/5] Keyword map: %s -> %s", key, cat.name)
        self._warm_cache(key, cat.name, KEYWORD_CONFIDENCE)
        return CategoryResolution(
            category_id=cat.id,
            category_name=cat.name,
            resolved_by=ResolvedBy.KEYWORD_MAP,
            confidence=KEYWORD_CONFIDENCE,
        )

    # -------- Tier 4 --------
    async def _ask_oracle(
        self, request: ResolutionRequest, key: str, categories: Sequence[Category]
    ) -> Optional[CategoryResolution]:
        if self.classifier is None:
            return None

        answer = await self.classifier(
            request.merchant,
            request.description,
            request.full_message,
            [c.name for c in categories],
        )
        if not answer:
            return None

        cat = find_category(answer, categories)
        if cat is None:
            logger.warning("Oracle answered %r for %s, outside the allowed categories", answer, key)
            return None

        logger.info("🏷️ [4/5] AI resolved: %s -> %s", key, cat.name)
        self._warm_cache(key, cat.name, AI_CONFIDENCE)
        return CategoryResolution(
            category_id=cat.id,
            category_name=cat.name,
            resolved_by=ResolvedBy.AI,
            confidence=AI_CONFIDENCE,
        )

    # -----------------------------
    # Global cache writes
    # -----------------------------
    def _warm_cache(self, key: str, category_name: str, confidence: float) -> None:
        if not key:
            return
        self.writer.submit(
            self.update_global_cache(key, category_name, confidence),
            label=f"cache update {key}",
        )

    async def update_global_cache(
        self,
        key: str,
        category_name: str,
        confidence: float,
        replace_category: bool = False,
    ) -> Optional[MerchantResolution]:
        """
        Weighted-average update of one cache row. Without `replace_category`
        a write that disagrees with the cached category is dropped; only user
        corrections may move a key to another category.
        """
        existing = await self.store.get_merchant_resolution(key)

        if existing is None:
            entry = MerchantResolution(
                merchant_key=key,
                category_name=category_name,
                confidence=min(confidence, CACHE_CONFIDENCE_CEILING),
                resolution_count=1,
                last_resolved_at=_utcnow(),
            )
        elif existing.category_name.lower() != category_name.lower() and not replace_category:
            logger.info(
                "Cache keeps %s -> %s, ignoring %s", key, existing.category_name, category_name
            )
            return existing
        else:
            entry = MerchantResolution(
                merchant_key=key,
                category_name=category_name,
                confidence=weighted_confidence(existing.confidence, existing.resolution_count, confidence),
                resolution_count=existing.resolution_count + 1,
                last_resolved_at=_utcnow(),
            )

        await self.store.save_merchant_resolution(entry)
        return entry

    # -----------------------------
    # Learning loop
    # -----------------------------
    async def record_correction(
        self,
        user_id: str,
        merchant: str,
        category_name: str,
        expense_id: Optional[str] = None,
    ) -> bool:
        """
        A user moved an expense to another category. Pins the merchant for
        that user, pushes a 0.9 signal into the shared cache and logs the
        correction. Returns whether the override was saved; the cache and log
        writes run in the background and their failures are only logged.
        """
        key = merchant_key(merchant)
        if not key:
            logger.warning("Correction without merchant ignored (user=%s)", user_id)
            return False

        saved = True
        try:
            await self.store.upsert_user_override(
                UserOverride(user_id=user_id, merchant_key=key, category_name=category_name)
            )
            logger.info("✅ User override saved: %s -> %s", key, category_name)
        except Exception as e:
            saved = False
            logger.error("❌ Override save failed for %s: %s", key, e)

        self.writer.submit(
            self.update_global_cache(key, category_name, CORRECTION_CACHE_CONFIDENCE, replace_category=True),
            label=f"correction cache update {key}",
        )
        self.writer.submit(
            self.store.append_log(
                ResolutionLogEntry(
                    user_id=user_id,
                    expense_id=expense_id,
                    merchant_key=key,
                    category_name=category_name,
                    resolved_by=ResolvedBy.USER_CORRECTION,
                    confidence=OVERRIDE_CONFIDENCE,
                )
            ),
            label=f"correction log {key}",
        )
        return saved

    # -----------------------------
    # Audit trail
    # -----------------------------
    def log_resolution(
        self,
        user_id: Optional[str],
        expense_id: Optional[str],
        merchant: str,
        resolution: CategoryResolution,
    ) -> None:
        self.writer.submit(
            self.store.append_log(
                ResolutionLogEntry(
                    user_id=user_id,
                    expense_id=expense_id,
                    merchant_key=merchant_key(merchant),
                    category_name=resolution.category_name,
                    resolved_by=resolution.resolved_by,
                    confidence=resolution.confidence,
                )
            ),
            label=f"resolution log {expense_id}",
        )
