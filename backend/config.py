import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_PATH = os.getenv("ORGANIZER_DB_PATH", "organizer.db")

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-3-haiku-20240307")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
MAX_TOKENS = int(os.getenv("AGENT_MAX_TOKENS", "1024"))

# Placeholder value shipped in .env.example; treated as "not configured"
PLACEHOLDER_KEY = "your-api-key-here"

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def key_configured(key: str | None) -> bool:
    return bool(key) and key != PLACEHOLDER_KEY
