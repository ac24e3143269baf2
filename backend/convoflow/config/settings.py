# backend/convoflow/config/settings.py

import sys
from typing import List
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App Metadata
    environment: str = Field(default="production")
    api_version: str = "v1"
    service_name: str = "convoflow"

    # Languages
    default_language: str = "fr"
    supported_languages: List[str] = Field(default=["fr", "en"])

    # Session storage
    session_backend: str = "memory"  # "memory" or "mongo"
    mongo_uri: str | None = None
    mongo_database: str = "convoflow"
    max_pool_size: int = 10
    min_pool_size: int = 1

    # Session lifecycle
    session_timeout_minutes: int = 60
    session_expiry_hours: int = 24
    cleanup_interval_minutes: int = 15

    # Workflow engine
    navigation_max_depth: int = 50
    auto_advance_delay_ms: int = 0
    restart_mode: str = "full"  # "full" or "inputs_only"
    service_retry_attempts: int = 3
    service_retry_max_wait: int = 10

    # AI APIs
    ai_confidence_threshold: float = 0.8
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-1.5-flash"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"

    # ---------------- Validators ---------------- #

    @field_validator("supported_languages", mode="before")
    @classmethod
    def parse_supported_languages(cls, v):
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [lang.strip().lower() for lang in v.split(",") if lang.strip()]
        return v

    @field_validator("ai_confidence_threshold")
    @classmethod
    def threshold_in_unit_range(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("AI_CONFIDENCE_THRESHOLD must be between 0 and 1")
        return v

    @field_validator("restart_mode")
    @classmethod
    def known_restart_mode(cls, v):
        if v not in ("full", "inputs_only"):
            raise ValueError("RESTART_MODE must be 'full' or 'inputs_only'")
        return v

    @field_validator("session_backend")
    @classmethod
    def known_session_backend(cls, v):
        if v not in ("memory", "mongo"):
            raise ValueError("SESSION_BACKEND must be 'memory' or 'mongo'")
        return v

    @model_validator(mode="after")
    def default_language_is_supported(self):
        if self.default_language not in self.supported_languages:
            raise ValueError(
                f"DEFAULT_LANGUAGE '{self.default_language}' is not in SUPPORTED_LANGUAGES"
            )
        return self


def validate_environment(settings_obj: Settings):
    try:
        if settings_obj.session_backend == "mongo" and not settings_obj.mongo_uri:
            raise ValueError("MONGO_URI is required when SESSION_BACKEND is 'mongo'")

        if settings_obj.environment == "production" and settings_obj.session_backend == "memory":
            print("--- [WARNING] In-memory sessions are not durable across restarts.")

        return settings_obj

    except Exception as e:
        print(f"--- [ERROR] Environment validation failed: {e}")
        sys.exit(1)


settings = Settings()
validate_environment(settings)
