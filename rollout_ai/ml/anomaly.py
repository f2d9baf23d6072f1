"""
Anomaly detection over rollout metric history.

Each metric name is treated as its own time-ordered single-channel signal and
decomposed into a local trend plus a residual. The trend at a point is the
median of its neighbours (the point itself excluded), so a single spike never
drags its own expectation along. Residuals are scaled robustly (MAD, with a
sensitivity-controlled noise floor) and points whose robust z-score exceeds the
threshold are flagged. The scale used for a point is measured on the series
with that point replaced by its expected value, so neither the expectation nor
the scale of a point depends on its own value. The margin score
``1 - threshold / z`` therefore grows monotonically with the deviation and maps
onto the severity buckets.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import numpy as np

from rollout_ai.core.rollout.models import (
    AnomalyAlert,
    AnomalyDetectionResponse,
    MetricDataPoint,
    Severity,
    as_utc,
    group_by_metric,
    utcnow,
)

logger = logging.getLogger(__name__)

MAD_TO_STD = 1.4826
EPSILON = 1e-9


class InsufficientDataError(ValueError):
    """Raised when no channel has enough points to be analysed."""


@dataclass(frozen=True)
class DetectorParams:
    threshold: float = 3.0
    sensitivity: float = 90.0  # (0, 100]
    window: int = 3
    min_points: int = 5

    @property
    def noise_floor_fraction(self) -> float:
        """Smallest residual scale, relative to the series level."""
        sensitivity = min(100.0, max(EPSILON, self.sensitivity))
        return max(0.001, (100.0 - sensitivity) / 100.0 * 0.5)


@dataclass(frozen=True)
class PointScores:
    """Per-point detector output, aligned with the input series."""

    is_anomaly: np.ndarray
    expected: np.ndarray
    margin: np.ndarray


class TrendResidualDetector:
    """Unsupervised per-point detector producing flag, expected value and margin."""

    def __init__(self, params: Optional[DetectorParams] = None):
        self.params = params or DetectorParams()

    def _expected_at(self, values: np.ndarray, i: int) -> float:
        w = max(1, self.params.window)
        neighbours = np.concatenate([values[max(0, i - w): i], values[i + 1: i + w + 1]])
        return float(np.median(neighbours)) if len(neighbours) else float(values[i])

    def expected_values(self, values: np.ndarray) -> np.ndarray:
        return np.array([self._expected_at(values, i) for i in range(len(values))], dtype=float)

    def _scale_without(
        self, data: np.ndarray, expected: np.ndarray, residual: np.ndarray, i: int
    ) -> float:
        """Residual scale of the series with point ``i`` set to its expected value."""
        w = max(1, self.params.window)
        patched = data.copy()
        patched[i] = expected[i]
        local = residual.copy()
        # only neighbourhoods containing i change
        for j in range(max(0, i - w), min(len(data), i + w + 1)):
            local[j] = patched[j] - self._expected_at(patched, j)
        mad = float(np.median(np.abs(local - np.median(local)))) * MAD_TO_STD
        level = float(np.median(np.abs(patched)))
        return max(mad, self.params.noise_floor_fraction * level, EPSILON)

    def score(self, values: Sequence[float]) -> PointScores:
        data = np.asarray(values, dtype=float)
        if data.ndim != 1 or len(data) < self.params.min_points:
            raise InsufficientDataError(
                f"need at least {self.params.min_points} points, got {len(data)}"
            )
        if not np.all(np.isfinite(data)):
            raise ValueError("series contains non-finite values")

        expected = self.expected_values(data)
        residual = data - expected
        scale = np.array(
            [self._scale_without(data, expected, residual, i) for i in range(len(data))]
        )

        z = np.abs(residual) / scale
        flagged = z > self.params.threshold
        margin = np.zeros_like(z)
        margin[flagged] = 1.0 - self.params.threshold / z[flagged]
        return PointScores(is_anomaly=flagged, expected=expected, margin=np.clip(margin, 0.0, 1.0))


def severity_for_margin(margin: float) -> Severity:
    if margin >= 0.8:
        return Severity.CRITICAL
    if margin >= 0.6:
        return Severity.HIGH
    if margin >= 0.4:
        return Severity.MEDIUM
    return Severity.LOW


def overall_risk_score(alerts: Sequence[AnomalyAlert]) -> float:
    if not alerts:
        return 0.0
    return sum(a.severity.weight for a in alerts) / len(alerts)


def anomaly_recommendations(alerts: Sequence[AnomalyAlert], risk_score: float) -> List[str]:
    if not alerts:
        return ["No anomalies detected. Rollout can proceed normally."]

    recommendations: List[str] = []
    if risk_score > 0.8:
        recommendations.append("High risk detected. Consider pausing the rollout and investigating.")
    elif risk_score > 0.6:
        recommendations.append("Moderate risk. Proceed with caution and intensive monitoring.")
    else:
        recommendations.append("Minor anomalies detected. Monitor closely.")

    critical = sum(1 for a in alerts if a.severity == Severity.CRITICAL)
    if critical:
        recommendations.append(f"{critical} critical anomaly(ies) detected")
    return recommendations


class AnomalyDetector:
    """Scan a metric history for points that deviate from the local trend."""

    def __init__(self, params: Optional[DetectorParams] = None):
        self.params = params or DetectorParams()
        self._detector = TrendResidualDetector(self.params)

    def detect(
        self,
        history: Sequence[MetricDataPoint],
        lookback_days: int = 7,
        now: Optional[datetime] = None,
    ) -> AnomalyDetectionResponse:
        """Detect anomalies within the lookback window.

        Raises:
            InsufficientDataError: when no metric channel has enough points.
        """
        cutoff = as_utc(now or utcnow()) - timedelta(days=lookback_days)
        window = [p for p in history if as_utc(p.timestamp) >= cutoff]

        alerts: List[AnomalyAlert] = []
        analysed = 0
        for metric_name, series in group_by_metric(window).items():
            if len(series) < self.params.min_points:
                logger.debug("Skipping %s: %d points", metric_name, len(series))
                continue
            analysed += 1
            alerts.extend(self._channel_alerts(metric_name, series))

        if analysed == 0:
            raise InsufficientDataError(
                f"no metric has {self.params.min_points}+ points in the last {lookback_days} days"
            )

        alerts.sort(key=lambda a: a.detected_at)
        risk = overall_risk_score(alerts)
        return AnomalyDetectionResponse(
            has_anomalies=bool(alerts),
            anomalies=tuple(alerts),
            overall_risk_score=risk,
            recommendations=tuple(anomaly_recommendations(alerts, risk)),
        )

    def _channel_alerts(self, metric_name: str, series: Sequence[MetricDataPoint]) -> List[AnomalyAlert]:
        scores = self._detector.score([p.value for p in series])
        alerts: List[AnomalyAlert] = []
        for idx in np.flatnonzero(scores.is_anomaly):
            point = series[int(idx)]
            expected = float(scores.expected[idx])
            margin = float(scores.margin[idx])
            deviation = abs(point.value - expected)
            alerts.append(
                AnomalyAlert(
                    metric_name=metric_name,
                    current_value=float(point.value),
                    expected_value=expected,
                    deviation=deviation,
                    severity=severity_for_margin(margin),
                    detected_at=as_utc(point.timestamp),
                    description=(
                        f"Anomaly detected: value {point.value:.2f} deviates "
                        f"{deviation:.2f} from the expected {expected:.2f}"
                    ),
                    margin_score=margin,
                )
            )
        return alerts
