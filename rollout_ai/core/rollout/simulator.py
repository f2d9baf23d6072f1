"""Step-wise rollout simulation.

Metrics are chained: every step drifts the previous step's snapshot, never the
baseline directly, so steps must be folded in ascending step-number order.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from rollout_ai.core.rollout.decision import adjust_duration, decide_step
from rollout_ai.core.rollout.models import (
    CONVERSION_RATE,
    ERROR_RATE,
    RESPONSE_TIME,
    TRACKED_METRICS,
    MetricDataPoint,
    RiskFactor,
    RiskLevel,
    RolloutConfiguration,
    RolloutPrediction,
    RolloutSimulationResponse,
    RolloutStep,
    SimulationStep,
    StepAction,
    clamp,
    latest_values,
    utcnow,
)

logger = logging.getLogger(__name__)

# Relative increase per unit of rollout fraction
DRIFT_MODEL: Dict[str, float] = {
    ERROR_RATE: 0.10,
    RESPONSE_TIME: 0.05,
    CONVERSION_RATE: 0.15,
}

BASE_SUCCESS_PROBABILITY = 0.8
ROLLBACK_PENALTY = 0.3
PAUSE_PENALTY = 0.1


def drift_metrics(step: RolloutStep, metrics: Mapping[str, float]) -> Dict[str, float]:
    """Project the metrics after rolling out `step` on top of `metrics`."""
    impact = step.percentage_target / 100.0
    drifted = dict(metrics)
    for name, rate in DRIFT_MODEL.items():
        if name in drifted:
            drifted[name] = drifted[name] * (1 + impact * rate)
    return drifted


def simulate_steps(
    steps: Sequence[RolloutStep],
    baseline: Mapping[str, float],
    safety_limits: Mapping[str, float],
) -> List[SimulationStep]:
    results: List[SimulationStep] = []
    metrics: Mapping[str, float] = dict(baseline)
    for step in sorted(steps, key=lambda s: s.step_number):
        predicted = drift_metrics(step, metrics)
        decision = decide_step(predicted, safety_limits)
        results.append(
            SimulationStep(
                step=step,
                ai_decision=decision,
                predicted_metrics=predicted,
                estimated_duration=adjust_duration(step.duration, decision.recommended_action),
            )
        )
        metrics = predicted
    return results


def _count(steps: Sequence[SimulationStep], action: StepAction) -> int:
    return sum(1 for s in steps if s.ai_decision.recommended_action == action)


def overall_success_probability(steps: Sequence[SimulationStep]) -> float:
    if not steps:
        return 0.5
    probability = (
        BASE_SUCCESS_PROBABILITY
        - _count(steps, StepAction.ROLLBACK) * ROLLBACK_PENALTY
        - _count(steps, StepAction.PAUSE) * PAUSE_PENALTY
    )
    return clamp(probability)


def overall_risk_factors(steps: Sequence[SimulationStep]) -> List[RiskFactor]:
    factors: List[RiskFactor] = []
    rollbacks = _count(steps, StepAction.ROLLBACK)
    if rollbacks > 0:
        factors.append(
            RiskFactor(
                name="Rollback required",
                level=RiskLevel.HIGH,
                impact=0.4,
                description=f"{rollbacks} step(s) require rollback",
            )
        )
    pauses = _count(steps, StepAction.PAUSE)
    if pauses > len(steps) / 2:
        factors.append(
            RiskFactor(
                name="Multiple pauses required",
                level=RiskLevel.MEDIUM,
                impact=0.2,
                description=f"{pauses} step(s) require a pause",
            )
        )
    return factors


def rollout_adjustments(steps: Sequence[SimulationStep], prediction: RolloutPrediction) -> List[str]:
    adjustments: List[str] = []
    if prediction.success_probability < 0.6:
        adjustments.append("Reduce rollout speed by 50%")
        adjustments.append("Add stricter monitoring")

    rollback_steps = [
        str(s.step.step_number)
        for s in steps
        if s.ai_decision.recommended_action == StepAction.ROLLBACK
    ]
    if rollback_steps:
        adjustments.append(f"Review configuration of steps {', '.join(rollback_steps)}")

    if steps and all(
        s.ai_decision.recommended_action in (StepAction.PROCEED, StepAction.ACCELERATE)
        for s in steps
    ):
        adjustments.append("Configuration validated by the decision engine")
        adjustments.append("Rollout can be safely accelerated")
    return adjustments


def project_time_series(
    steps: Sequence[SimulationStep],
    days: int,
    start: Optional[datetime] = None,
) -> Dict[str, Tuple[MetricDataPoint, ...]]:
    """Repeat each step's predicted metrics across its share of the simulated days."""
    if not steps or days <= 0:
        return {name: () for name in TRACKED_METRICS}

    start = start or utcnow()
    days_per_step = max(1, days // len(steps))
    series: Dict[str, Tuple[MetricDataPoint, ...]] = {}
    for name in TRACKED_METRICS:
        points = []
        for day in range(days):
            index = min(day // days_per_step, len(steps) - 1)
            points.append(
                MetricDataPoint(
                    timestamp=start + timedelta(days=day),
                    metric_name=name,
                    value=float(steps[index].predicted_metrics.get(name, 0.0)),
                    tags={"step": str(index)},
                )
            )
        series[name] = tuple(points)
    return series


def simulate_rollout(
    configuration: RolloutConfiguration,
    baseline_metrics: Sequence[MetricDataPoint],
    simulation_days: int,
    start: Optional[datetime] = None,
) -> RolloutSimulationResponse:
    """Run the decision engine over the whole plan and aggregate the outcome.

    Callers are expected to have checked `configuration.validate_for_simulation()`.
    """
    baseline = latest_values(baseline_metrics)
    steps = simulate_steps(configuration.steps, baseline, configuration.safety_limits)
    final_metrics = dict(steps[-1].predicted_metrics) if steps else baseline

    prediction = RolloutPrediction(
        success_probability=overall_success_probability(steps),
        risk_factors=tuple(overall_risk_factors(steps)),
        expected_metrics=final_metrics,
    )
    logger.debug(
        "Simulated %d steps, success probability %.2f",
        len(steps),
        prediction.success_probability,
    )
    return RolloutSimulationResponse(
        simulation_steps=tuple(steps),
        overall_prediction=prediction,
        recommended_adjustments=tuple(rollout_adjustments(steps, prediction)),
        predicted_metrics=project_time_series(steps, simulation_days, start),
    )
