"""
config.py

Centralized configuration management using pydantic-settings.
All modules must import settings from this file.
Direct os.getenv() calls are prohibited elsewhere.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings loaded from .env file."""

    # Database
    mysql_host: str = "127.0.0.1"
    mysql_port: int = 3306
    mysql_user: str = "coordinator"
    mysql_password: str = ""
    mysql_db: str = "pump_data"

    # Redis (Celery broker for deferred companion transfers)
    redis_url: str = "redis://127.0.0.1:6379/0"

    # Logging
    log_level: str = "INFO"

    # Peripherals (initial identifiers, normalized on startup)
    pump_id: str | None = None
    transmitter_id: str | None = None

    # Forecast inputs
    input_data_recency_minutes: int = 15

    # Completion freshness boundaries (minutes)
    freshness_fresh_minutes: int = 6
    freshness_aging_minutes: int = 16
    freshness_stale_minutes: int = 60

    # Remote effect services; empty URL means the subsystem is not configured
    carb_effect_url: str = ""
    insulin_effect_url: str = "http://127.0.0.1:8011"
    effect_request_timeout_s: float = 5.0

    # Companion display
    companion_url: str = "http://127.0.0.1:8020"
    complication_enabled: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


settings = Settings()
