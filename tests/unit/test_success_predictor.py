"""Tests for rollout success prediction."""

from datetime import datetime, timedelta, timezone

import pytest

from rollout_ai.core.rollout.models import (
    MetricDataPoint,
    PredictionSource,
    RolloutConfiguration,
    RolloutStep,
)
from rollout_ai.ml.success_predictor import (
    InsufficientTrainingData,
    PredictorParams,
    SuccessPredictor,
    build_training_set,
    configuration_features,
)

DAY0 = datetime(2024, 2, 1, tzinfo=timezone.utc)


def _days(values):
    """One error_rate sample per day; day means of 1.0 label as success, 0.5 as failure."""
    return [
        MetricDataPoint(timestamp=DAY0 + timedelta(days=i, hours=9), metric_name="error_rate", value=v)
        for i, v in enumerate(values)
    ]


def _config(strategy="balanced", error_limit=None, steps=None):
    limits = {} if error_limit is None else {"error_rate": error_limit}
    return RolloutConfiguration(
        steps=tuple(steps or (RolloutStep(1, 10.0, timedelta(hours=1)), RolloutStep(2, 50.0, timedelta(hours=2)))),
        safety_limits=limits,
        strategy=strategy,
    )


class TestTrainingSet:
    """Tests for per-day aggregation."""

    def test_groups_by_utc_day(self):
        points = _days([1.0, 0.5, 1.0])
        points.append(
            MetricDataPoint(timestamp=DAY0 + timedelta(hours=20), metric_name="response_time", value=300.0)
        )
        training = build_training_set(points, success_bar=0.7)
        assert len(training.days) == 3
        assert training.features.shape == (3, 4)
        assert training.features[0][1] == pytest.approx(300.0)
        assert training.features[1][1] == pytest.approx(100.0)

    def test_label_uses_mean_of_all_samples(self):
        training = build_training_set(_days([1.0, 0.5]), success_bar=0.7)
        assert training.labels.tolist() == [1, 0]

    def test_all_zero_quality_days_skipped(self):
        points = [
            MetricDataPoint(timestamp=DAY0, metric_name="error_rate", value=0.0),
            MetricDataPoint(timestamp=DAY0, metric_name="response_time", value=0.0),
            MetricDataPoint(timestamp=DAY0, metric_name="conversion_rate", value=0.0),
        ]
        training = build_training_set(points, success_bar=0.7)
        assert training.days == ()
        assert training.features.shape == (0, 4)


class TestHeuristicPath:
    """Fallback used when the history cannot support a model."""

    def test_fewer_than_five_days_uses_heuristic(self):
        response = SuccessPredictor().predict(_config(), _days([1.0, 0.5, 1.0, 0.5]))
        assert response.prediction_source == PredictionSource.HEURISTIC
        assert response.fallback_reason == "insufficient_data"
        assert 0.55 <= response.success_probability <= 0.85
        assert response.success_probability == pytest.approx(0.75)

    def test_heuristic_risk_factors_are_the_documented_checks(self):
        response = SuccessPredictor().predict(_config(error_limit=3.0), [])
        names = {f.name for f in response.risk_factors}
        assert names <= {"Elevated error rate", "High response time", "Low conversion"}
        assert "Elevated error rate" in names

    @pytest.mark.parametrize(
        "strategy,error_limit,expected",
        [
            ("conservative", None, 0.85),
            ("balanced", None, 0.75),
            ("aggressive", None, 0.60),
            ("balanced", 5.0, 0.65),
            ("aggressive", 5.0, 0.50),
        ],
    )
    def test_strategy_adjustments(self, strategy, error_limit, expected):
        response = SuccessPredictor().predict_with_heuristics(_config(strategy, error_limit))
        assert response.success_probability == pytest.approx(expected)

    def test_single_class_history_uses_heuristic(self):
        response = SuccessPredictor().predict(_config(), _days([1.0] * 8))
        assert response.prediction_source == PredictionSource.HEURISTIC
        assert response.fallback_reason == "single_class"

    @pytest.mark.parametrize(
        "reason,caution",
        [
            (None, "Insufficient historical data for an accurate prediction"),
            ("insufficient_data", "Insufficient historical data for an accurate prediction"),
            ("single_class", "Historical outcomes are all alike; the model cannot separate success from failure"),
            ("computation_failed", "Prediction model failed; estimate based on configuration only"),
            ("timeout", "Prediction timed out; estimate based on configuration only"),
        ],
    )
    def test_caution_matches_fallback_reason(self, reason, caution):
        response = SuccessPredictor().predict_with_heuristics(_config(), fallback_reason=reason)
        assert response.recommendations[0] == caution
        assert len(response.recommendations) == 3

    def test_single_class_history_explains_itself(self):
        response = SuccessPredictor().predict(_config(), _days([1.0] * 8))
        assert response.recommendations[0].startswith("Historical outcomes are all alike")

    def test_estimated_duration_is_total_of_steps(self):
        response = SuccessPredictor().predict_with_heuristics(_config())
        assert response.estimated_duration == timedelta(hours=3)


class TestModelPath:
    """Logistic regression fitted on labelled days."""

    def test_fit_requires_minimum_days(self):
        with pytest.raises(InsufficientTrainingData) as exc:
            SuccessPredictor(PredictorParams(min_training_days=10)).fit(_days([1.0, 0.5] * 3))
        assert exc.value.reason == "insufficient_data"

    def test_mixed_labels_fit_model(self):
        fit = SuccessPredictor().fit(_days([1.0, 0.5] * 4))
        assert len(fit.training.days) == 8
        assert 0.0 <= fit.training_accuracy <= 1.0

    def test_predict_uses_model(self):
        response = SuccessPredictor().predict(_config(), _days([1.0, 0.5] * 4))
        assert response.prediction_source == PredictionSource.MODEL
        assert response.fallback_reason is None
        assert 0.1 <= response.success_probability <= 0.99
        assert set(response.metric_predictions) == {
            "error_rate",
            "response_time",
            "conversion_rate",
            "user_impact",
        }
        assert response.recommendations

    @pytest.mark.parametrize("error_limit", [0.0, 0.01, 1.0, 50.0, 1e6])
    def test_probability_is_clamped(self, error_limit):
        response = SuccessPredictor().predict(_config(error_limit=error_limit), _days([1.0, 0.5] * 5))
        assert 0.1 <= response.success_probability <= 0.99


class TestConfigurationFeatures:
    def test_defaults(self):
        features = configuration_features(RolloutConfiguration())
        assert features == {
            "error_rate": 1.0,
            "response_time": 200.0,
            "conversion_rate": 10.0,
            "user_count": 1000.0,
        }

    def test_last_step_drives_user_count(self):
        features = configuration_features(_config())
        assert features["user_count"] == pytest.approx(50000.0)
