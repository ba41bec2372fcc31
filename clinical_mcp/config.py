import sys
from typing import List, Optional

from loguru import logger
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


class Settings(BaseSettings):
    openai_api_key: Optional[str] = Field(default=None, validation_alias="OPENAI_API_KEY")
    anthropic_api_key: Optional[str] = Field(default=None, validation_alias="ANTHROPIC_API_KEY")
    gemini_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY")
    )

    openai_model: str = Field(default="gpt-4o", validation_alias="MODEL_NAME")
    anthropic_model: str = Field(default="claude-3-5-sonnet-latest", validation_alias="ANTHROPIC_MODEL")
    gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
    gemini_base_url: str = Field(default=GEMINI_OPENAI_BASE_URL, validation_alias="GEMINI_BASE_URL")

    temperature: float = Field(default=0.2, validation_alias="AI_TEMPERATURE")  # low for medical consistency
    max_tokens: int = Field(default=2500, validation_alias="AI_MAX_TOKENS")
    completion_timeout: float = Field(default=30.0, validation_alias="AI_COMPLETION_TIMEOUT")  # seconds

    max_sessions: int = Field(default=1000, validation_alias="MAX_SESSIONS")
    session_idle_timeout: float = Field(default=4 * 60 * 60, validation_alias="SESSION_IDLE_TIMEOUT")
    require_diagnosis_for_prescription: bool = Field(
        default=True, validation_alias="REQUIRE_DIAGNOSIS_FOR_PRESCRIPTION"
    )

    # Comma-separated, e.g. "https://a.example,https://b.example"
    allowed_origins_env: str = Field(default="", validation_alias="ALLOWED_ORIGINS")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def allowed_origins(self) -> List[str]:
        return [o.strip() for o in self.allowed_origins_env.split(",") if o.strip()]


def configure_logging(level: str = "INFO") -> None:
    """Route loguru's default stderr sink through the configured level."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())
