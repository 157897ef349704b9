from functools import lru_cache
from typing import Optional

from pydantic_ai import Agent
from pydantic import BaseModel
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.providers.google import GoogleProvider

from config import GOOGLE_API_KEY, GEMINI_MODEL_NAME


class ConversationResponse(BaseModel):
    response: str
    conversation_type: str  # "general", "expense_help", "greeting"


SYSTEM_PROMPT = (
    "You are a friendly AI assistant for an expense tracking chat. "
    "Help users with general questions, explain how to log expenses, "
    "and have casual conversations.\n\n"

    "Be helpful, friendly, and brief. Users log spending by saying things like "
    "'spent $12 at Chipotle' or 'paid $80 for a plumber yesterday', fix entries with "
    "'change Costco to $50', and manage budgets with 'set dining budget to $300'.\n\n"

    "Classify conversation as:\n"
    "- 'greeting': Hello, hi, how are you\n"
    "- 'expense_help': Questions about expense features\n"
    "- 'general': Other conversation\n"
)

OFFLINE_REPLY = ConversationResponse(
    response=(
        "I can log expenses for you. Try something like \"spent $12 at Chipotle\" "
        "or \"paid $80 for a plumber yesterday\"."
    ),
    conversation_type="expense_help",
)


@lru_cache(maxsize=1)
def get_conversation_agent() -> Optional[Agent]:
    if not GOOGLE_API_KEY:
        return None
    provider = GoogleProvider(api_key=GOOGLE_API_KEY)
    model = GoogleModel(GEMINI_MODEL_NAME, provider=provider)
    return Agent(model, system_prompt=SYSTEM_PROMPT, output_type=ConversationResponse)


async def handle_conversation(user_input: str, user_id: str) -> ConversationResponse:
    """Informational reply for turns that are not expense actions."""
    agent = get_conversation_agent()
    if agent is None:
        return OFFLINE_REPLY
    result = await agent.run(user_input)
    return result.output
