import os

import pytest


# List of environment variables that may be modified by tests
_ENV_VARS_TO_ISOLATE = [
    "X_API_KEY",
    "LOG_LEVEL",
    "METRICS_ENABLED",
    "ENGINE_TIMEOUT_SECONDS",
    "ANOMALY_LOOKBACK_DAYS",
    "ANOMALY_MIN_POINTS",
    "ANOMALY_THRESHOLD",
    "ANOMALY_SENSITIVITY",
    "ANOMALY_WINDOW",
    "PREDICTOR_MIN_TRAINING_DAYS",
    "PREDICTOR_SUCCESS_BAR",
]


@pytest.fixture(autouse=True)
def env_isolation():
    """Isolate environment variables between tests."""
    backup = {k: os.environ.get(k) for k in _ENV_VARS_TO_ISOLATE}
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


@pytest.fixture(autouse=True)
def rollout_service_isolation():
    """Rebuild cached settings and the global service for every test."""
    from rollout_ai.core.config import reset_settings
    from rollout_ai.core.rollout.service import reset_rollout_service

    reset_settings()
    reset_rollout_service()
    try:
        yield
    finally:
        reset_settings()
        reset_rollout_service()
