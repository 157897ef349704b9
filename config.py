import os
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()


def _optional_float(name: str) -> float | None:
    value = os.getenv(name)
    if not value:
        return None
    return float(value)


# Remote oracle (both agents are disabled when the key is missing)
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
GEMINI_MODEL_NAME = os.getenv("GEMINI_MODEL_NAME", "gemini-1.5-flash")
ORACLE_TIMEOUT_SECONDS = float(os.getenv("ORACLE_TIMEOUT_SECONDS", "10"))

# Optional vars (with defaults)
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
PORT = int(os.getenv("PORT", "8000"))

DATABASE_URL = os.getenv("DATABASE_URL")

# Dispatcher
ASSISTANT_ACTIONS_ENABLED = os.getenv("ASSISTANT_ACTIONS_ENABLED", "true").lower() == "true"
CONFIRMATION_TTL_SECONDS = _optional_float("CONFIRMATION_TTL_SECONDS")
