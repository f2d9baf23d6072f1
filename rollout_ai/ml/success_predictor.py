"""
Rollout success prediction.

Historical samples are aggregated per calendar day into feature vectors
(error rate, response time, conversion rate, user count). A day is labelled
successful when the mean of all its samples exceeds the quality bar. With
enough labelled days a logistic regression is fitted on every call and scored
against the configuration's own limits and targets; otherwise a fixed
heuristic answers. The model is never cached between calls.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.linear_model import LogisticRegression
from sklearn.pipeline import Pipeline, make_pipeline
from sklearn.preprocessing import StandardScaler

from rollout_ai.core.rollout.models import (
    CONVERSION_RATE,
    ERROR_RATE,
    RESPONSE_TIME,
    USER_COUNT,
    MetricDataPoint,
    OptimizationGoal,
    PredictionSource,
    RolloutConfiguration,
    RolloutPredictionResponse,
    as_utc,
    clamp,
)
from rollout_ai.core.rollout.risk import assess_risk_factors, high_risk_factors

logger = logging.getLogger(__name__)

FEATURES = (ERROR_RATE, RESPONSE_TIME, CONVERSION_RATE, USER_COUNT)

# Feature values assumed for a day that has no sample of that metric
DAY_FEATURE_DEFAULTS = {
    ERROR_RATE: 0.0,
    RESPONSE_TIME: 100.0,
    CONVERSION_RATE: 5.0,
    USER_COUNT: 100.0,
}

HEURISTIC_BASE_SUCCESS = 0.75
HEURISTIC_STRATEGY_ADJUSTMENT = {
    OptimizationGoal.CONSERVATIVE.value: 0.10,
    OptimizationGoal.AGGRESSIVE.value: -0.15,
}
HEURISTIC_ERROR_LIMIT = 2.0
HEURISTIC_ERROR_PENALTY = 0.10

HEURISTIC_CAUTION = {
    "insufficient_data": "Insufficient historical data for an accurate prediction",
    "single_class": "Historical outcomes are all alike; the model cannot separate success from failure",
    "computation_failed": "Prediction model failed; estimate based on configuration only",
    "timeout": "Prediction timed out; estimate based on configuration only",
}


class InsufficientTrainingData(ValueError):
    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


@dataclass(frozen=True)
class PredictorParams:
    min_training_days: int = 5
    success_bar: float = 0.7


@dataclass(frozen=True)
class TrainingSet:
    days: Tuple[date, ...]
    features: np.ndarray  # shape (n_days, 4)
    labels: np.ndarray  # shape (n_days,)


@dataclass(frozen=True)
class FitResult:
    model: Pipeline
    training: TrainingSet
    training_accuracy: float


def build_training_set(points: Sequence[MetricDataPoint], success_bar: float) -> TrainingSet:
    """Aggregate samples per UTC calendar day."""
    by_day: Dict[date, List[MetricDataPoint]] = defaultdict(list)
    for point in points:
        by_day[as_utc(point.timestamp).date()].append(point)

    days: List[date] = []
    rows: List[List[float]] = []
    labels: List[int] = []
    for day in sorted(by_day):
        samples = by_day[day]
        row = []
        for name in FEATURES:
            values = [p.value for p in samples if p.metric_name == name]
            row.append(float(np.mean(values)) if values else DAY_FEATURE_DEFAULTS[name])
        # Days where every quality signal is exactly zero carry no information
        if not any(row[:3]):
            continue
        days.append(day)
        rows.append(row)
        labels.append(int(np.mean([p.value for p in samples]) > success_bar))

    return TrainingSet(
        days=tuple(days),
        features=np.asarray(rows, dtype=float).reshape(-1, len(FEATURES)),
        labels=np.asarray(labels, dtype=int),
    )


def configuration_features(configuration: RolloutConfiguration) -> Dict[str, float]:
    """Synthetic feature vector describing the rollout being planned."""
    steps = configuration.ordered_steps
    return {
        ERROR_RATE: float(configuration.safety_limits.get(ERROR_RATE, 1.0)),
        RESPONSE_TIME: float(configuration.safety_limits.get(RESPONSE_TIME, 200.0)),
        CONVERSION_RATE: float(configuration.target_metrics.get(CONVERSION_RATE, 10.0)),
        USER_COUNT: float(steps[-1].percentage_target * 1000) if steps else 1000.0,
    }


def prediction_recommendations(probability: float, factors) -> List[str]:
    if probability > 0.8:
        recommendations = ["High probability of success. Rollout can proceed as planned."]
    elif probability > 0.6:
        recommendations = ["Moderate probability of success. Consider a more conservative rollout."]
    else:
        recommendations = ["Low probability of success. Revise the configuration before proceeding."]
    recommendations.extend(f"Mitigate: {f.description}" for f in high_risk_factors(factors))
    return recommendations


class SuccessPredictor:
    """Estimate the probability that a full rollout succeeds."""

    def __init__(self, params: Optional[PredictorParams] = None):
        self.params = params or PredictorParams()

    def fit(self, historical_data: Sequence[MetricDataPoint]) -> FitResult:
        """Fit a fresh classifier on the supplied history.

        Raises:
            InsufficientTrainingData: fewer labelled days than required, or one class only.
        """
        training = build_training_set(historical_data, self.params.success_bar)
        if len(training.days) < self.params.min_training_days:
            raise InsufficientTrainingData(
                "insufficient_data",
                f"{len(training.days)} labelled days, need {self.params.min_training_days}",
            )
        if len(np.unique(training.labels)) < 2:
            raise InsufficientTrainingData("single_class", "training labels contain a single class")

        model = make_pipeline(StandardScaler(), LogisticRegression(max_iter=1000))
        model.fit(training.features, training.labels)
        accuracy = float(model.score(training.features, training.labels))
        logger.debug(
            "Success classifier fitted on %d days (accuracy %.2f)", len(training.days), accuracy
        )
        return FitResult(model=model, training=training, training_accuracy=accuracy)

    def predict(
        self,
        configuration: RolloutConfiguration,
        historical_data: Sequence[MetricDataPoint],
    ) -> RolloutPredictionResponse:
        """Model-based prediction; falls back to the heuristic on any fit problem."""
        try:
            fit = self.fit(historical_data)
        except InsufficientTrainingData as exc:
            logger.info("Using heuristic prediction: %s", exc, extra={"fallback_reason": exc.reason})
            return self.predict_with_heuristics(configuration, fallback_reason=exc.reason)
        except Exception:
            logger.error("Success classifier fit failed", exc_info=True)
            return self.predict_with_heuristics(configuration, fallback_reason="computation_failed")

        current = configuration_features(configuration)
        vector = np.asarray([[current[name] for name in FEATURES]], dtype=float)
        probability = clamp(float(fit.model.predict_proba(vector)[0, 1]))
        factors = assess_risk_factors(current)
        return RolloutPredictionResponse(
            success_probability=probability,
            risk_factors=tuple(factors),
            recommendations=tuple(prediction_recommendations(probability, factors)),
            metric_predictions={
                ERROR_RATE: current[ERROR_RATE],
                RESPONSE_TIME: current[RESPONSE_TIME],
                CONVERSION_RATE: current[CONVERSION_RATE],
                "user_impact": current[USER_COUNT],
            },
            estimated_duration=configuration.total_duration,
            prediction_source=PredictionSource.MODEL,
        )

    def predict_with_heuristics(
        self,
        configuration: RolloutConfiguration,
        fallback_reason: Optional[str] = None,
    ) -> RolloutPredictionResponse:
        success = HEURISTIC_BASE_SUCCESS + HEURISTIC_STRATEGY_ADJUSTMENT.get(configuration.strategy, 0.0)
        if float(configuration.safety_limits.get(ERROR_RATE, 1.0)) > HEURISTIC_ERROR_LIMIT:
            success -= HEURISTIC_ERROR_PENALTY

        factors = assess_risk_factors(configuration_features(configuration))
        caution = HEURISTIC_CAUTION.get(fallback_reason or "", HEURISTIC_CAUTION["insufficient_data"])
        return RolloutPredictionResponse(
            success_probability=clamp(success),
            risk_factors=tuple(factors),
            recommendations=(
                caution,
                "A conservative rollout with intensive monitoring is recommended",
                "Collect more data to improve future predictions",
            ),
            estimated_duration=configuration.total_duration,
            prediction_source=PredictionSource.HEURISTIC,
            fallback_reason=fallback_reason,
        )
