"""Configuration management for the interpretation service."""
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173"]

    # Ollama
    ollama_base_url: str = "http://localhost:11434"
    extraction_model: str = "gemma3:4b"
    explanation_model: str = "gemma3:1b"
    ollama_timeout_seconds: float = 90.0

    # Pipeline timeouts: extraction timing out fails the request,
    # explanation timing out only drops the explanation.
    extraction_timeout_seconds: float = 60.0
    explanation_timeout_seconds: float = 30.0
    explanation_enabled: bool = True

    # Interpretation
    low_confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    calc_precision: int = Field(default=4, ge=1, le=6)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


def get_settings() -> Settings:
    return Settings()
