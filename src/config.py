"""
Centralized Configuration System
Environment-aware settings for the scoring, qualification, scheduling
and auto-progression services.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List, Literal, Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow"
    )
    """
    Production-grade configuration management.
    Loads from environment variables with sensible defaults.
    """

    # ============================================
    # OPENAI CONFIGURATION
    # ============================================
    openai_api_key: Optional[str] = None

    # ============================================
    # MODEL SELECTION
    # ============================================
    behavior_model: str = "openai:gpt-4o-mini"

    # ============================================
    # MONGODB
    # ============================================
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "crm_autopilot"
    mongodb_max_pool_size: int = 50
    mongodb_min_pool_size: int = 5
    mongodb_server_selection_timeout_ms: int = 5000

    # ============================================
    # RETRIES, TIMEOUTS & CIRCUIT BREAKER
    # ============================================
    max_retries: int = 3
    retry_min_wait_seconds: int = 2
    retry_max_wait_seconds: int = 10
    ai_request_timeout_seconds: float = 20.0
    action_timeout_seconds: float = 30.0
    circuit_breaker_failure_threshold: int = 5
    circuit_breaker_recovery_timeout: float = 60.0
    circuit_breaker_half_open_max_calls: int = 1

    # ============================================
    # AUTO-PROGRESSION ENGINE
    # ============================================
    progression_interval_minutes: int = 15
    progression_max_concurrency: int = 5
    progression_autostart: bool = False

    # ============================================
    # SCHEDULING
    # ============================================
    business_hours_start: str = "09:00"
    business_hours_end: str = "17:00"
    business_timezone: str = "America/Panama"
    working_days: List[int] = [1, 2, 3, 4, 5]  # ISO weekdays, Mon=1
    slot_granularity_minutes: int = 15
    max_slot_candidates: int = 10
    scheduling_days_ahead: int = 3
    batch_scheduling_delay_seconds: float = 0.1
    default_assignee: Optional[str] = None

    # ============================================
    # API SERVER
    # ============================================
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # ============================================
    # LOGGING
    # ============================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    enable_structured_logging: bool = False  # Set to True for production JSON logs

    # ============================================
    # ENVIRONMENT
    # ============================================
    environment: Literal["development", "staging", "production"] = "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Singleton pattern for settings.
    Uses LRU cache to ensure only one Settings instance exists.
    """
    return Settings()


# Convenience accessor for common use
settings = get_settings()
