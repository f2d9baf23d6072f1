"""Runtime settings for the rollout intelligence service."""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 1
    LOG_LEVEL: str = "INFO"

    # Web settings
    CORS_ORIGINS: list[str] = ["*"]
    ALLOWED_HOSTS: list[str] = ["*"]

    # Anomaly detection
    ANOMALY_LOOKBACK_DAYS: int = 7
    ANOMALY_MIN_POINTS: int = 5
    ANOMALY_THRESHOLD: float = 3.0  # robust z cutoff
    ANOMALY_SENSITIVITY: float = 90.0  # (0, 100], higher = more sensitive
    ANOMALY_WINDOW: int = 3  # half-width of the trend neighbourhood

    # Success prediction
    PREDICTOR_MIN_TRAINING_DAYS: int = 5
    PREDICTOR_SUCCESS_BAR: float = 0.7

    # Per-call budget applied by the API layer
    ENGINE_TIMEOUT_SECONDS: float = 10.0

    METRICS_ENABLED: bool = True

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
    }


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings()
    return _settings_cache


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings_cache
    _settings_cache = None
