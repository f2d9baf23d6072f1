"""Configuration tuning toward an optimization goal."""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Mapping, Tuple

from rollout_ai.core.rollout.models import (
    ERROR_RATE,
    RESPONSE_TIME,
    MetricDataPoint,
    OptimizationGoal,
    RiskMitigation,
    RolloutConfiguration,
    RolloutRecommendations,
    clamp,
    mean_values,
)

# (percentage factor, duration factor) per goal
GOAL_SCALING: Dict[OptimizationGoal, Tuple[float, float]] = {
    OptimizationGoal.CONSERVATIVE: (0.7, 1.5),
    OptimizationGoal.BALANCED: (1.0, 1.0),
    OptimizationGoal.AGGRESSIVE: (1.3, 0.7),
}


def optimize_configuration(
    current: RolloutConfiguration,
    goal: OptimizationGoal,
) -> RolloutConfiguration:
    percentage_factor, duration_factor = GOAL_SCALING[goal]
    return replace(
        current,
        steps=tuple(s.scaled(percentage_factor, duration_factor) for s in current.steps),
        target_metrics=dict(current.target_metrics),
        safety_limits=dict(current.safety_limits),
        strategy=goal.value,
    )


def configuration_justifications(
    current: RolloutConfiguration,
    recommended: RolloutConfiguration,
    performance: Mapping[str, float],
) -> List[str]:
    justifications: List[str] = []
    if recommended.strategy != current.strategy:
        justifications.append(
            f"Strategy changed from '{current.strategy}' to '{recommended.strategy}' "
            "based on current performance"
        )

    if performance.get(ERROR_RATE, 0.0) > 1.0:
        justifications.append("A more conservative rollout is advised due to the elevated error rate")
    if performance.get(RESPONSE_TIME, 100.0) < 100.0:
        justifications.append("Excellent performance allows a more aggressive rollout")

    for before, after in zip(current.steps, recommended.steps):
        if (before.percentage_target, before.duration) == (after.percentage_target, after.duration):
            continue
        justifications.append(
            f"Step {before.step_number}: target {before.percentage_target:g}% -> "
            f"{after.percentage_target:g}%, duration {before.duration} -> {after.duration} "
            f"({recommended.strategy} goal)"
        )
    return justifications


def recommendation_confidence(performance: Mapping[str, float], data_point_count: int) -> float:
    confidence = 0.7

    if data_point_count > 100:
        confidence += 0.2
    elif data_point_count > 50:
        confidence += 0.1
    elif data_point_count < 10:
        confidence -= 0.3

    error_rate = performance.get(ERROR_RATE, 0.0)
    if error_rate < 0.5:
        confidence += 0.1
    elif error_rate > 2.0:
        confidence -= 0.2

    return clamp(confidence)


def risk_mitigations(
    configuration: RolloutConfiguration,
    performance: Mapping[str, float],
) -> List[RiskMitigation]:
    mitigations: List[RiskMitigation] = []
    if performance.get(ERROR_RATE, 0.0) > 1.0:
        mitigations.append(
            RiskMitigation(
                risk_type="High Error Rate",
                mitigation_strategy="Add a circuit breaker and automatic rollback",
                effectiveness_score=0.8,
            )
        )
    if any(s.percentage_target > 50 for s in configuration.steps):
        mitigations.append(
            RiskMitigation(
                risk_type="Large Rollout Steps",
                mitigation_strategy="Split large steps into smaller increments",
                effectiveness_score=0.7,
            )
        )
    return mitigations


def recommend_configuration(
    current_metrics: List[MetricDataPoint],
    current_configuration: RolloutConfiguration,
    goal: OptimizationGoal,
) -> RolloutRecommendations:
    performance = mean_values(current_metrics)
    recommended = optimize_configuration(current_configuration, goal)
    return RolloutRecommendations(
        recommended_configuration=recommended,
        justifications=tuple(
            configuration_justifications(current_configuration, recommended, performance)
        ),
        confidence_score=recommendation_confidence(performance, len(current_metrics)),
        risk_mitigations=tuple(risk_mitigations(recommended, performance)),
    )
