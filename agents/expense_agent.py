import asyncio
import logging
from functools import lru_cache
from typing import Optional

from pydantic_ai import Agent
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.providers.google import GoogleProvider

from config import GOOGLE_API_KEY, GEMINI_MODEL_NAME, ORACLE_TIMEOUT_SECONDS
from models.expense import ExpenseIntentExtraction

logger = logging.getLogger("expense_agent")

SYSTEM_PROMPT = (
    "You are an expense parser. Extract expense data from the user's message.\n\n"
    "FIELDS:\n"
    "1. INTENT: 'add' when the user clearly logs a purchase from a named store, business or "
    "service provider; 'suggest' when spending is described but no specific merchant is named; "
    "'none' when the message carries no expense (questions, greetings, analytics).\n"
    "2. AMOUNT: the dollar amount mentioned.\n"
    "3. MERCHANT: the store, business or service provider. If none is named, create a short "
    "descriptive merchant like 'Roof Repair' or 'Car Service'. Never use generic words like "
    "'Car' or 'House' alone. 'at [place]' or 'from [place]' is the merchant.\n"
    "4. DESCRIPTION: what was bought, null if unclear. If both a store and an item are "
    "mentioned, store = merchant and item = description.\n"
    "5. DATEHINT: 'today' unless the user says 'yesterday' or 'N days/weeks/months ago'.\n"
    "Strip filler words like 'I', 'had to', 'just', 'my'.\n\n"
    "EXAMPLES:\n"
    "'i spent $32 at circle k on lotto tickets' -> "
    "{'intent': 'add', 'amount': 32, 'merchant': 'Circle K', 'description': 'lotto tickets', 'dateHint': 'today'}\n"
    "'add $6 coffee starbucks' -> "
    "{'intent': 'add', 'amount': 6, 'merchant': 'Starbucks', 'description': 'coffee', 'dateHint': 'today'}\n"
    "'i just spent $2100 repairing my roof' -> "
    "{'intent': 'suggest', 'amount': 2100, 'merchant': 'Roof Repair', 'description': 'roof repair', 'dateHint': 'today'}\n"
    "'paid $150 for groceries at costco yesterday' -> "
    "{'intent': 'add', 'amount': 150, 'merchant': 'Costco', 'description': 'groceries', 'dateHint': 'yesterday'}\n"
    "'how much did I spend on food?' -> {'intent': 'none'}"
)


# -----------------------------
# Expense Extraction Agent (built on first use)
# -----------------------------
@lru_cache(maxsize=1)
def get_expense_agent() -> Optional[Agent]:
    if not GOOGLE_API_KEY:
        logger.info("GOOGLE_API_KEY not set; remote expense parsing disabled")
        return None
    provider = GoogleProvider(api_key=GOOGLE_API_KEY)
    model = GoogleModel(GEMINI_MODEL_NAME, provider=provider)
    return Agent(model, system_prompt=SYSTEM_PROMPT, output_type=ExpenseIntentExtraction)


async def extract_expense_intent(user_input: str) -> Optional[ExpenseIntentExtraction]:
    """
    Ask the remote model for {intent, amount, merchant, description, dateHint}.
    Returns None on timeout, transport error or when the oracle is disabled.
    """
    agent = get_expense_agent()
    if agent is None:
        return None

    try:
        result = await asyncio.wait_for(agent.run(user_input), timeout=ORACLE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("Expense parsing timed out after %ss", ORACLE_TIMEOUT_SECONDS)
        return None
    except Exception as e:
        logger.warning("Expense parsing failed: %s", e)
        return None

    return result.output
