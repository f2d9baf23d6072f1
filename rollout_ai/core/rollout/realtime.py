"""Live-traffic decision engine."""

from __future__ import annotations

from typing import Dict, List, Mapping, Sequence

from rollout_ai.core.rollout.decision import (
    DEFAULT_ERROR_RATE_LIMIT,
    DEFAULT_RESPONSE_TIME_LIMIT,
    ROLLBACK_FACTOR,
)
from rollout_ai.core.rollout.models import (
    ERROR_RATE,
    RESPONSE_TIME,
    AlertType,
    MetricAlert,
    MetricDataPoint,
    RealtimeAction,
    RealtimeAnalysisResponse,
    RolloutConfiguration,
    clamp,
    latest_values,
)

ACCELERATE_MAX_ERROR_RATE = 0.1
ACCELERATE_MAX_RESPONSE_TIME = 100.0

_UNITS = {ERROR_RATE: "%", RESPONSE_TIME: "ms"}


def effective_limits(configuration: RolloutConfiguration) -> Dict[str, float]:
    limits = {
        ERROR_RATE: DEFAULT_ERROR_RATE_LIMIT,
        RESPONSE_TIME: DEFAULT_RESPONSE_TIME_LIMIT,
    }
    limits.update({k: float(v) for k, v in configuration.safety_limits.items()})
    return limits


def realtime_alerts(
    metrics: Mapping[str, float],
    configuration: RolloutConfiguration,
) -> List[MetricAlert]:
    """One alert per observed metric whose value exceeds its safety limit."""
    alerts: List[MetricAlert] = []
    for name, threshold in effective_limits(configuration).items():
        if name not in metrics:
            continue
        value = metrics[name]
        if value <= threshold:
            continue
        alert_type = AlertType.CRITICAL if value > threshold * ROLLBACK_FACTOR else AlertType.WARNING
        unit = _UNITS.get(name, "")
        alerts.append(
            MetricAlert(
                metric_name=name,
                current_value=value,
                threshold_value=threshold,
                alert_type=alert_type,
                message=f"{name} ({value:.2f}{unit}) exceeded limit ({threshold:.2f}{unit})",
            )
        )
    return alerts


def recommended_action(
    alerts: Sequence[MetricAlert],
    metrics: Mapping[str, float],
) -> RealtimeAction:
    if any(a.alert_type == AlertType.CRITICAL for a in alerts):
        return RealtimeAction.ROLLBACK

    warnings = [a for a in alerts if a.alert_type == AlertType.WARNING]
    if len(warnings) > 1:
        return RealtimeAction.PAUSE
    if warnings:
        return RealtimeAction.CONTINUE

    # Acceleration needs both signals observed
    if ERROR_RATE in metrics and RESPONSE_TIME in metrics:
        if (
            metrics[ERROR_RATE] < ACCELERATE_MAX_ERROR_RATE
            and metrics[RESPONSE_TIME] < ACCELERATE_MAX_RESPONSE_TIME
        ):
            return RealtimeAction.ACCELERATE
    return RealtimeAction.CONTINUE


def action_reasoning(action: RealtimeAction, alerts: Sequence[MetricAlert]) -> str:
    if action == RealtimeAction.ROLLBACK:
        critical = sum(1 for a in alerts if a.alert_type == AlertType.CRITICAL)
        return f"Rollback required due to {critical} critical alert(s)"
    if action == RealtimeAction.PAUSE:
        return f"Pause recommended due to {len(alerts)} warning alert(s)"
    if action == RealtimeAction.ACCELERATE:
        return "Excellent metrics allow the rollout to accelerate"
    return "Metrics within normal parameters, continue as planned"


def action_confidence(alerts: Sequence[MetricAlert]) -> float:
    confidence = 0.8
    if any(a.alert_type == AlertType.CRITICAL for a in alerts):
        confidence = 0.95
    elif len(alerts) > 2:
        confidence -= 0.2
    elif not alerts:
        confidence += 0.1
    return clamp(confidence)


def analyze_realtime(
    realtime_metrics: Sequence[MetricDataPoint],
    configuration: RolloutConfiguration,
) -> RealtimeAnalysisResponse:
    """Recommend an immediate action from the latest value of each metric."""
    current = latest_values(realtime_metrics)
    alerts = realtime_alerts(current, configuration)
    action = recommended_action(alerts, current)
    return RealtimeAnalysisResponse(
        recommended_action=action,
        reasoning=action_reasoning(action, alerts),
        confidence_level=action_confidence(alerts),
        alerts=tuple(alerts),
        current_metrics=current,
    )
