from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenRouter (OpenAI-compatible chat completions)
    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"

    # ------------------------------------------------------------------
    # Models per capability
    # ------------------------------------------------------------------
    plan_model: str = "google/gemini-2.5-pro"           # elicitation, structured JSON
    script_model: str = "google/gemini-2.5-pro"         # Apps Script synthesis
    assistant_model: str = "google/gemini-2.5-flash"    # free-form help chat
    transcription_model: str = "google/gemini-2.5-flash"

    request_timeout: float = 120.0  # seconds, per completion call

    # ------------------------------------------------------------------
    # Storage and logging
    # ------------------------------------------------------------------
    workflows_dir: Optional[Path] = None  # defaults to ./workflows
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
