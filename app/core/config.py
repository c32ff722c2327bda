# app/core/config.py
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """Loads environment variables from .env file."""
    # Both credentials are optional: without them the service degrades
    # instead of refusing to start.
    PAGESPEED_API_KEY: Optional[str] = None
    GROQ_API_KEY: Optional[str] = None

    LLM_MODEL_NAME: str = "llama-3.3-70b-versatile"
    LLM_MAX_TOKENS: int = 2000
    PAGESPEED_STRATEGY: Literal["mobile", "desktop"] = "desktop"

    MAX_HTML_CHARS: int = 200_000
    USER_AGENT: str = "AI-Website-Inspector/1.0"

    HISTORY_LIMIT: int = 50
    HISTORY_DB_PATH: str = "inspector.db"

    SESSION_COOKIE_NAME: str = "user_id"
    SESSION_COOKIE_MAX_AGE: int = 31_536_000

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

# Create a single instance of the settings to be used across the application
settings = Settings()

def get_settings() -> Settings:
    return settings
