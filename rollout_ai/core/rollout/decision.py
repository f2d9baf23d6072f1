"""Per-step rollout decision rules.

The engine is a pure function of one step's metric snapshot and the safety
limits. Rules are evaluated in priority order and the first match wins:

1. error rate or response time above 1.5x its limit  -> rollback (0.9)
2. error rate or response time above its limit       -> pause (0.8)
3. error rate below 0.5x and response time below 0.7x -> accelerate (0.7)
4. otherwise                                          -> proceed (0.8)
"""

from __future__ import annotations

from datetime import timedelta
from typing import Mapping

from rollout_ai.core.rollout.models import (
    ERROR_RATE,
    RESPONSE_TIME,
    AIDecision,
    StepAction,
)

DEFAULT_ERROR_RATE_LIMIT = 2.0
DEFAULT_RESPONSE_TIME_LIMIT = 500.0

DEFAULT_ERROR_RATE = 0.0
DEFAULT_RESPONSE_TIME = 100.0

ROLLBACK_FACTOR = 1.5
ACCELERATE_ERROR_FACTOR = 0.5
ACCELERATE_RESPONSE_FACTOR = 0.7

DURATION_FACTORS = {
    StepAction.PROCEED: 1.0,
    StepAction.ACCELERATE: 0.7,
    StepAction.PAUSE: 1.5,
    StepAction.ROLLBACK: 0.0,
}


def safety_limit(limits: Mapping[str, float], name: str) -> float:
    defaults = {
        ERROR_RATE: DEFAULT_ERROR_RATE_LIMIT,
        RESPONSE_TIME: DEFAULT_RESPONSE_TIME_LIMIT,
    }
    return float(limits.get(name, defaults[name]))


def decide_step(metrics: Mapping[str, float], safety_limits: Mapping[str, float]) -> AIDecision:
    """Return the decision for one step's metric snapshot."""
    error_rate = float(metrics.get(ERROR_RATE, DEFAULT_ERROR_RATE))
    response_time = float(metrics.get(RESPONSE_TIME, DEFAULT_RESPONSE_TIME))
    max_error_rate = safety_limit(safety_limits, ERROR_RATE)
    max_response_time = safety_limit(safety_limits, RESPONSE_TIME)

    if (
        error_rate > max_error_rate * ROLLBACK_FACTOR
        or response_time > max_response_time * ROLLBACK_FACTOR
    ):
        return AIDecision(
            recommended_action=StepAction.ROLLBACK,
            confidence=0.9,
            reasoning="Critical metrics exceeded safety limits",
            considerations=(
                f"error_rate={error_rate:.3f} (limit {max_error_rate:.3f})",
                f"response_time={response_time:.1f} (limit {max_response_time:.1f})",
                "Error rate or response time far above the limit",
            ),
        )
    if error_rate > max_error_rate or response_time > max_response_time:
        return AIDecision(
            recommended_action=StepAction.PAUSE,
            confidence=0.8,
            reasoning="Metrics are beyond safety limits",
            considerations=("Monitor closely before proceeding",),
        )
    if (
        error_rate < max_error_rate * ACCELERATE_ERROR_FACTOR
        and response_time < max_response_time * ACCELERATE_RESPONSE_FACTOR
    ):
        return AIDecision(
            recommended_action=StepAction.ACCELERATE,
            confidence=0.7,
            reasoning="Excellent metrics allow acceleration",
            considerations=("Performance better than expected",),
        )
    return AIDecision(
        recommended_action=StepAction.PROCEED,
        confidence=0.8,
        reasoning="Metrics within expected parameters",
        considerations=("Rollout can proceed as planned",),
    )


def adjust_duration(duration: timedelta, action: StepAction) -> timedelta:
    """Scale a planned step duration by the decision; rollback collapses it."""
    return duration * DURATION_FACTORS[action]
