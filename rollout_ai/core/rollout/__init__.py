"""Rollout Intelligence Engine.

Provides:
- Per-step and realtime rollout decisions
- Multi-step rollout simulation
- Configuration recommendations per optimization goal
"""

from rollout_ai.core.rollout.decision import adjust_duration, decide_step
from rollout_ai.core.rollout.metrics_source import InMemoryMetricsSource, MetricsSource
from rollout_ai.core.rollout.models import (
    AIDecision,
    MetricDataPoint,
    OptimizationGoal,
    RealtimeAction,
    RolloutConfiguration,
    RolloutStep,
    StepAction,
)
from rollout_ai.core.rollout.realtime import analyze_realtime
from rollout_ai.core.rollout.recommendations import recommend_configuration
from rollout_ai.core.rollout.simulator import simulate_rollout

__all__ = [
    # Decisions
    "AIDecision",
    "RealtimeAction",
    "StepAction",
    "adjust_duration",
    "analyze_realtime",
    "decide_step",
    # Planning
    "OptimizationGoal",
    "RolloutConfiguration",
    "RolloutStep",
    "recommend_configuration",
    "simulate_rollout",
    # Telemetry
    "InMemoryMetricsSource",
    "MetricDataPoint",
    "MetricsSource",
]
