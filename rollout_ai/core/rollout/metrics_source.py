"""Pluggable sources of live rollout telemetry.

The realtime engine never fabricates metrics; a deployment wires a source that
reads real telemetry and the service facade pulls snapshots from it.
"""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Protocol, Tuple

from rollout_ai.core.rollout.models import MetricDataPoint

_Key = Tuple[str, str, str]


class MetricsSource(Protocol):
    def latest(self, project_key: str, environment: str, flag_key: str) -> List[MetricDataPoint]:
        ...


class InMemoryMetricsSource:
    """Thread-safe in-process store, for tests and single-node deployments."""

    def __init__(self, max_points: int = 1000):
        self._max_points = max_points
        self._points: Dict[_Key, List[MetricDataPoint]] = {}
        self._lock = threading.Lock()

    def record(
        self,
        project_key: str,
        environment: str,
        flag_key: str,
        points: Iterable[MetricDataPoint],
    ) -> None:
        key = (project_key, environment, flag_key)
        with self._lock:
            bucket = self._points.setdefault(key, [])
            bucket.extend(points)
            del bucket[: max(0, len(bucket) - self._max_points)]

    def latest(self, project_key: str, environment: str, flag_key: str) -> List[MetricDataPoint]:
        with self._lock:
            return list(self._points.get((project_key, environment, flag_key), []))

    def clear(self) -> None:
        with self._lock:
            self._points.clear()
