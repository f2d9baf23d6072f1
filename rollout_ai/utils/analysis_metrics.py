"""Prometheus metrics for the rollout intelligence engine."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


rollout_ai_requests_total = Counter(
    "rollout_ai_requests_total",
    "Rollout intelligence requests",
    ["operation", "status"],
)
rollout_ai_fallback_total = Counter(
    "rollout_ai_fallback_total",
    "Analyzer calls answered by a fallback or safe default",
    ["operation", "reason"],
)
rollout_ai_decisions_total = Counter(
    "rollout_ai_decisions_total",
    "Actions recommended by the decision engines",
    ["engine", "action"],
)
rollout_ai_anomalies_total = Counter(
    "rollout_ai_anomalies_total",
    "Anomaly alerts emitted by severity",
    ["severity"],
)
rollout_ai_operation_seconds = Histogram(
    "rollout_ai_operation_seconds",
    "Latency of rollout intelligence operations",
    ["operation"],
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)
