"""Tests for step-wise rollout simulation."""

from datetime import datetime, timedelta, timezone

import pytest

from rollout_ai.core.rollout.models import (
    MetricDataPoint,
    RiskLevel,
    RolloutConfiguration,
    RolloutStep,
    StepAction,
)
from rollout_ai.core.rollout.simulator import drift_metrics, simulate_rollout

START = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _baseline(**metrics):
    return [
        MetricDataPoint(timestamp=START, metric_name=name, value=value)
        for name, value in metrics.items()
    ]


def _steps(*percentages):
    return tuple(
        RolloutStep(step_number=i + 1, percentage_target=p, duration=timedelta(hours=1))
        for i, p in enumerate(percentages)
    )


class TestDrift:
    def test_drift_scales_with_percentage(self):
        step = RolloutStep(1, 100.0)
        drifted = drift_metrics(step, {"error_rate": 1.0, "response_time": 200.0, "conversion_rate": 4.0})
        assert drifted["error_rate"] == pytest.approx(1.1)
        assert drifted["response_time"] == pytest.approx(210.0)
        assert drifted["conversion_rate"] == pytest.approx(4.6)

    def test_unknown_metrics_pass_through(self):
        drifted = drift_metrics(RolloutStep(1, 50.0), {"user_count": 300.0})
        assert drifted == {"user_count": 300.0}


class TestSimulateRollout:
    """Whole-plan simulation."""

    def test_error_rate_never_decreases_across_steps(self):
        config = RolloutConfiguration(steps=_steps(10, 50, 100))
        response = simulate_rollout(
            config, _baseline(error_rate=1.0, response_time=100.0, conversion_rate=5.0), 30, start=START
        )
        rates = [s.predicted_metrics["error_rate"] for s in response.simulation_steps]
        assert len(rates) == 3
        assert rates[0] >= 1.0
        assert all(b >= a for a, b in zip(rates, rates[1:]))
        # Chained: step 2 drifts step 1, not the baseline
        assert rates[1] == pytest.approx(1.0 * 1.01 * 1.05)

    def test_healthy_plan_is_validated(self):
        config = RolloutConfiguration(steps=_steps(10, 50, 100))
        response = simulate_rollout(config, _baseline(error_rate=1.0, response_time=100.0), 30, start=START)
        actions = {s.ai_decision.recommended_action for s in response.simulation_steps}
        assert actions == {StepAction.PROCEED}
        assert response.overall_prediction.success_probability == pytest.approx(0.8)
        assert response.overall_prediction.risk_factors == ()
        assert "Configuration validated by the decision engine" in response.recommended_adjustments
        assert "Rollout can be safely accelerated" in response.recommended_adjustments

    def test_failing_plan_requires_rollback(self):
        config = RolloutConfiguration(steps=_steps(10, 50, 100), safety_limits={"error_rate": 2.0})
        response = simulate_rollout(config, _baseline(error_rate=5.0, response_time=100.0), 30, start=START)
        assert all(
            s.ai_decision.recommended_action == StepAction.ROLLBACK for s in response.simulation_steps
        )
        assert all(s.estimated_duration == timedelta(0) for s in response.simulation_steps)
        assert response.overall_prediction.success_probability == pytest.approx(0.1)
        factor = response.overall_prediction.risk_factors[0]
        assert factor.name == "Rollback required"
        assert factor.level == RiskLevel.HIGH
        assert response.recommended_adjustments == (
            "Reduce rollout speed by 50%",
            "Add stricter monitoring",
            "Review configuration of steps 1, 2, 3",
        )

    def test_plan_above_limit_pauses_every_step(self):
        """2.5 against 2.0 stays under the 3.0 rollback line through all three drifts."""
        config = RolloutConfiguration(steps=_steps(10, 50, 100), safety_limits={"error_rate": 2.0})
        response = simulate_rollout(config, _baseline(error_rate=2.5, response_time=100.0), 30, start=START)
        assert [s.ai_decision.recommended_action for s in response.simulation_steps] == [StepAction.PAUSE] * 3
        assert all(s.estimated_duration == timedelta(hours=1.5) for s in response.simulation_steps)
        assert response.overall_prediction.success_probability == pytest.approx(0.5)
        assert len(response.overall_prediction.risk_factors) == 1
        factor = response.overall_prediction.risk_factors[0]
        assert factor.name == "Multiple pauses required"
        assert factor.level == RiskLevel.MEDIUM
        assert factor.impact == pytest.approx(0.2)
        assert response.recommended_adjustments == (
            "Reduce rollout speed by 50%",
            "Add stricter monitoring",
        )

    def test_single_pause_in_three_steps_is_not_a_risk_factor(self):
        config = RolloutConfiguration(steps=_steps(10, 50, 100), safety_limits={"error_rate": 2.8})
        response = simulate_rollout(config, _baseline(error_rate=2.5, response_time=100.0), 30, start=START)
        actions = [s.ai_decision.recommended_action for s in response.simulation_steps]
        assert actions.count(StepAction.PAUSE) == 1
        assert response.overall_prediction.success_probability == pytest.approx(0.7)
        assert response.overall_prediction.risk_factors == ()

    def test_steps_are_simulated_in_step_order(self):
        config = RolloutConfiguration(
            steps=(RolloutStep(2, 50.0), RolloutStep(1, 10.0), RolloutStep(3, 100.0))
        )
        response = simulate_rollout(config, _baseline(error_rate=1.0), 10, start=START)
        assert [s.step.step_number for s in response.simulation_steps] == [1, 2, 3]

    def test_baseline_uses_latest_value(self):
        baseline = [
            MetricDataPoint(timestamp=START, metric_name="error_rate", value=9.0),
            MetricDataPoint(timestamp=START + timedelta(hours=1), metric_name="error_rate", value=1.0),
        ]
        config = RolloutConfiguration(steps=_steps(100))
        response = simulate_rollout(config, baseline, 10, start=START)
        assert response.simulation_steps[0].predicted_metrics["error_rate"] == pytest.approx(1.1)

    def test_time_series_projection(self):
        config = RolloutConfiguration(steps=_steps(10, 50, 100))
        response = simulate_rollout(config, _baseline(error_rate=1.0, response_time=100.0), 30, start=START)
        series = response.predicted_metrics["error_rate"]
        assert len(series) == 30
        assert series[0].timestamp == START
        assert series[0].value == pytest.approx(response.simulation_steps[0].predicted_metrics["error_rate"])
        assert series[-1].value == pytest.approx(response.simulation_steps[-1].predicted_metrics["error_rate"])
        assert series[10].tags == {"step": "1"}
        assert set(response.predicted_metrics) == {
            "error_rate",
            "response_time",
            "conversion_rate",
            "user_count",
        }

    def test_empty_plan_is_neutral(self):
        response = simulate_rollout(RolloutConfiguration(), [], 30, start=START)
        assert response.simulation_steps == ()
        assert response.overall_prediction.success_probability == 0.5
