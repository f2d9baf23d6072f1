"""Shared error codes for API responses and engine degradation reasons."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict


class ErrorCode(str, Enum):
    INPUT_ERROR = "INPUT_ERROR"  # Missing required request fields
    VALIDATION_FAILED = "VALIDATION_FAILED"  # Rollout configuration breaks an invariant
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"  # Too little history to fit a model
    MODEL_FIT_FAILED = "MODEL_FIT_FAILED"  # Fitting or transform step raised
    INTERNAL_ERROR = "INTERNAL_ERROR"
    TIMEOUT = "TIMEOUT"


class InvalidRolloutConfiguration(ValueError):
    """Raised when a rollout configuration violates the caller contract."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


def build_error(
    error_code: ErrorCode,
    stage: str,
    message: str,
    **context: Any,
) -> Dict[str, Any]:
    """Unified error dict builder for API responses.

    Returns a dict suitable for direct inclusion under `detail` fields.
    """
    return {
        "code": error_code.value,
        "stage": stage,
        "message": message,
        "context": context or None,
    }


__all__ = ["ErrorCode", "InvalidRolloutConfiguration", "build_error"]
