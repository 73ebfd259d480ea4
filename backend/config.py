import os
from dotenv import load_dotenv

load_dotenv()


def _float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


# Primary provider (hosted)
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5")
ANTHROPIC_MAX_TOKENS = _int("ANTHROPIC_MAX_TOKENS", 2048)
PRIMARY_TIMEOUT_SECONDS = _float("PRIMARY_TIMEOUT_SECONDS", 30.0)

# Secondary provider (local Ollama)
OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.1:8b")
OLLAMA_HEALTH_TIMEOUT_SECONDS = _float("OLLAMA_HEALTH_TIMEOUT_SECONDS", 3.0)
OLLAMA_GENERATE_TIMEOUT_SECONDS = _float("OLLAMA_GENERATE_TIMEOUT_SECONDS", 60.0)

# "auto" | "primary" | "secondary"
AI_MODEL_PREFERENCE = os.getenv("AI_MODEL_PREFERENCE", "auto").lower()

# Retry policy for the primary provider: delay = base * 2^(attempt-1), capped
PRIMARY_RETRY_ATTEMPTS = _int("PRIMARY_RETRY_ATTEMPTS", 3)
PRIMARY_RETRY_BASE_DELAY = _float("PRIMARY_RETRY_BASE_DELAY", 1.0)
PRIMARY_RETRY_MAX_DELAY = _float("PRIMARY_RETRY_MAX_DELAY", 8.0)

# Command center policy
CONFIRMATION_THRESHOLD = _int("CONFIRMATION_THRESHOLD", 2)
HISTORY_MAX_SIZE = _int("HISTORY_MAX_SIZE", 5)
HISTORY_CONTEXT_SIZE = _int("HISTORY_CONTEXT_SIZE", 3)
UNDO_WINDOW_SECONDS = _float("UNDO_WINDOW_SECONDS", 8.0)

# Command sessions kept in memory (least recently used evicted first)
MAX_SESSIONS = _int("MAX_SESSIONS", 1000)

DATABASE_PATH = os.getenv("DATABASE_PATH", "tskr.db")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]


def primary_configured() -> bool:
    """True when a usable API key is present for the hosted provider."""
    return bool(ANTHROPIC_API_KEY) and ANTHROPIC_API_KEY != "your-api-key-here"
