"""
Configuration Settings.
"""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # App info
    app_name: str = "Articulator"
    app_version: str = "1.0.0"
    debug: bool = True

    # Storage
    upload_dir: str = "./uploads"
    database_url: str = "sqlite:///./data/articulator.db"

    # LLM Provider settings
    llm_provider: str = "gemini"
    llm_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("llm_api_key", "google_generative_ai_api_key"),
    )
    llm_model: Optional[str] = None  # uses provider default if not set
    llm_base_url: Optional[str] = None  # uses provider default if not set
    llm_timeout: float = 120.0

    # Sampling parameters are fixed for every request
    llm_temperature: float = 0.7
    llm_max_tokens: int = 4096

    # Provider file ingestion polling
    file_poll_interval_seconds: float = 1.0
    file_poll_max_attempts: int = 120
    file_poll_deadline_seconds: float = 300.0

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file_path: str = "./logs/articulator.log"
    log_file_enabled: bool = True
    log_console_enabled: bool = True
    log_json_format: bool = True  # JSON format for files, human-readable for console
    log_api_requests: bool = True


settings = Settings()
