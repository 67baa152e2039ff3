"""Configuration management using environment variables."""

import os
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Settings:
    """Application settings loaded from environment variables."""

    # Application configuration
    DEBUG: bool = _env_bool("DEBUG", "False")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    INTENT_PRESET: str = os.getenv("INTENT_PRESET", "balanced")

    # Model provider configuration
    ANTHROPIC_API_KEY: Optional[str] = os.getenv("ANTHROPIC_API_KEY")
    PRIMARY_MODEL: str = os.getenv("PRIMARY_MODEL", "claude-sonnet-4-5")
    SECONDARY_MODELS: List[str] = _env_list("SECONDARY_MODELS", "claude-haiku-4-5")
    MODEL_TEMPERATURE: float = float(os.getenv("MODEL_TEMPERATURE", "0.2"))
    MODEL_MAX_TOKENS: int = int(os.getenv("MODEL_MAX_TOKENS", "300"))
    MODEL_TIMEOUT_MS: int = int(os.getenv("MODEL_TIMEOUT_MS", "8000"))

    # Pipeline toggles
    VALIDATION_ENABLED: bool = _env_bool("VALIDATION_ENABLED", "true")
    VALIDATION_THRESHOLD: float = float(os.getenv("VALIDATION_THRESHOLD", "0.7"))
    CACHE_ENABLED: bool = _env_bool("CACHE_ENABLED", "true")
    LEARNING_ENABLED: bool = _env_bool("LEARNING_ENABLED", "true")
    PATTERN_DETECTION_ENABLED: bool = _env_bool("PATTERN_DETECTION_ENABLED", "true")
    PREDICTIVE_ENABLED: bool = _env_bool("PREDICTIVE_ENABLED", "true")
    AUTO_OPTIMIZE: bool = _env_bool("AUTO_OPTIMIZE", "false")

    # Cache configuration
    CACHE_TTL_MS: int = int(os.getenv("CACHE_TTL_MS", "300000"))
    CACHE_MAX_ENTRIES: int = int(os.getenv("CACHE_MAX_ENTRIES", "10000"))
    CACHE_MEMORY_LIMIT_MB: float = float(os.getenv("CACHE_MEMORY_LIMIT_MB", "100"))
    CACHE_KEY_STRATEGY: str = os.getenv("CACHE_KEY_STRATEGY", "text_context")

    # Ensemble and performance
    ENSEMBLE_STRATEGY: str = os.getenv("ENSEMBLE_STRATEGY", "contextual_boost")
    TARGET_PROCESSING_TIME_MS: int = int(os.getenv("TARGET_PROCESSING_TIME_MS", "300"))
    REQUEST_TIMEOUT_MS: int = int(os.getenv("REQUEST_TIMEOUT_MS", "1000"))
    MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "2"))
    DEDUP_SCOPE: str = os.getenv("DEDUP_SCOPE", "session")

    # Opik configuration
    OPIK_ENABLED: bool = _env_bool("OPIK_ENABLED", "false")
    OPIK_BASE_URL: Optional[str] = os.getenv("OPIK_BASE_URL")
    OPIK_URL_OVERRIDE: Optional[str] = os.getenv("OPIK_URL_OVERRIDE") or OPIK_BASE_URL
    OPIK_PROJECT_NAME: Optional[str] = os.getenv("OPIK_PROJECT_NAME")
    OPIK_WORKSPACE: Optional[str] = os.getenv("OPIK_WORKSPACE")
    OPIK_API_KEY: Optional[str] = os.getenv("OPIK_API_KEY")


# Global settings instance
settings = Settings()
