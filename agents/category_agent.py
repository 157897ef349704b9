import asyncio
import logging
from functools import lru_cache
from typing import Optional, Sequence

from pydantic import BaseModel
from pydantic_ai import Agent
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.providers.google import GoogleProvider

from config import GOOGLE_API_KEY, GEMINI_MODEL_NAME, ORACLE_TIMEOUT_SECONDS

logger = logging.getLogger("category_agent")


class CategoryChoice(BaseModel):
    category: str


SYSTEM_PROMPT = (
    "You are an expense categorizer. Given a merchant name, an optional description and a list "
    "of available categories, return the ONE category name that best fits, copied exactly "
    "from the list.\n\n"
    "Rules:\n"
    "- Pick the MOST specific matching category\n"
    "- If the merchant is a known store (e.g. Costco, Target, Walmart), use the description to "
    "decide: 'groceries at Costco' = Groceries, 'tires at Costco' = Repairs & Maintenance\n"
    "- If the description mentions food or drink items, prefer food categories\n"
    "- If nothing fits well, return 'Miscellaneous'\n"
    "- ONLY return a category name from the list"
)


@lru_cache(maxsize=1)
def get_category_agent() -> Optional[Agent]:
    if not GOOGLE_API_KEY:
        logger.info("GOOGLE_API_KEY not set; remote categorization disabled")
        return None
    provider = GoogleProvider(api_key=GOOGLE_API_KEY)
    model = GoogleModel(GEMINI_MODEL_NAME, provider=provider)
    return Agent(model, system_prompt=SYSTEM_PROMPT, output_type=CategoryChoice)


def build_prompt(
    merchant: str,
    description: Optional[str],
    message: Optional[str],
    categories: Sequence[str],
) -> str:
    lines = [f"Merchant: {merchant}"]
    if description:
        lines.append(f"Description: {description}")
    if message:
        lines.append(f"Original message: {message}")
    lines.append("")
    lines.append("Available categories:")
    lines.extend(categories)
    return "\n".join(lines)


async def classify_category(
    merchant: str,
    description: Optional[str],
    message: Optional[str],
    categories: Sequence[str],
) -> Optional[str]:
    """
    Returns the raw category name proposed by the model, or None.
    The caller decides whether the answer is inside its allowed list.
    """
    agent = get_category_agent()
    if agent is None:
        return None

    prompt = build_prompt(merchant, description, message, categories)
    try:
        result = await asyncio.wait_for(agent.run(prompt), timeout=ORACLE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("Categorization timed out for merchant=%r", merchant)
        return None
    except Exception as e:
        logger.warning("Categorization failed for merchant=%r: %s", merchant, e)
        return None

    return (result.output.category or "").strip() or None
