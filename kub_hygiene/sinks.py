# SPDX-License-Identifier: MIT

"""Metrics and log sinks.

Sinks are injected into the scanner; nothing here is a process global.
``InMemoryMetrics`` keeps labelled counters and gauges behind a lock and
hands out copies through ``collect()`` for whatever scrape path the host
process exposes.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from kub_hygiene.models import ClassifiedFinding, FindingKey, Severity, Transition, TransitionKind

logger = logging.getLogger(__name__)


# =====================================================================
# Metrics
# =====================================================================

@dataclass
class Counter:
    """Monotonically increasing counter."""

    name: str
    value: int = 0
    labels: dict[str, str] = field(default_factory=dict)

    def inc(self, n: int = 1) -> None:
        self.value += n

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": "counter", "value": self.value, "labels": dict(self.labels)}


@dataclass
class Gauge:
    """Value that can go up and down."""

    name: str
    value: float = 0.0
    labels: dict[str, str] = field(default_factory=dict)

    def set(self, v: float) -> None:
        self.value = v

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": "gauge", "value": self.value, "labels": dict(self.labels)}


INFRASTRUCTURE_NAMESPACES = frozenset({
    "kube-system", "kube-public", "kube-node-lease", "cert-manager", "monitoring",
    "ingress-nginx", "istio-system", "linkerd", "calico-system", "prometheus",
    "grafana", "alertmanager", "kub-hygiene",
})
_INFRASTRUCTURE_MARKERS = ("system", "monitoring", "logging", "security")


def classify_workload(namespace: str) -> str:
    """Category label used to route alerts: platform namespaces are infrastructure."""
    if namespace in INFRASTRUCTURE_NAMESPACES:
        return "infrastructure"
    if any(marker in namespace for marker in _INFRASTRUCTURE_MARKERS):
        return "infrastructure"
    return "application"


def finding_labels(record: ClassifiedFinding) -> dict[str, str]:
    f = record.finding
    return {
        "resource_type": f.resource_type,
        "resource_name": f.resource_name,
        "namespace": f.namespace,
        "validation_type": f.validation_type,
        "error_code": f.error_code,
        "severity": f.severity.value,
        "state": record.state.value,
        "workload_category": classify_workload(f.namespace),
    }


class MetricsSink(ABC):
    @abstractmethod
    def record_run_started(self) -> None: ...

    @abstractmethod
    def record_run_completed(self, duration: float) -> None: ...

    @abstractmethod
    def record_run_aborted(self, evaluator: str) -> None: ...

    @abstractmethod
    def record_transition(self, transition: Transition) -> None: ...

    @abstractmethod
    def record_finding(self, record: ClassifiedFinding) -> None: ...


class NullMetrics(MetricsSink):
    def record_run_started(self) -> None:
        pass

    def record_run_completed(self, duration: float) -> None:
        pass

    def record_run_aborted(self, evaluator: str) -> None:
        pass

    def record_transition(self, transition: Transition) -> None:
        pass

    def record_finding(self, record: ClassifiedFinding) -> None:
        pass


class InMemoryMetrics(MetricsSink):
    """Thread-safe in-process metrics store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, Counter] = {}
        self._gauges: dict[str, Gauge] = {}
        # One age gauge per active finding; replaced when its state label changes.
        self._finding_gauges: dict[FindingKey, Gauge] = {}

    def _counter(self, name: str, **labels: str) -> Counter:
        key = f"{name}:{sorted(labels.items())}" if labels else name
        if key not in self._counters:
            self._counters[key] = Counter(name=name, labels=labels)
        return self._counters[key]

    def _gauge(self, name: str, **labels: str) -> Gauge:
        key = f"{name}:{sorted(labels.items())}" if labels else name
        if key not in self._gauges:
            self._gauges[key] = Gauge(name=name, labels=labels)
        return self._gauges[key]

    def record_run_started(self) -> None:
        with self._lock:
            self._counter("hygiene_runs_started_total").inc()

    def record_run_completed(self, duration: float) -> None:
        with self._lock:
            self._counter("hygiene_runs_completed_total").inc()
            self._gauge("hygiene_last_run_duration_seconds").set(duration)

    def record_run_aborted(self, evaluator: str) -> None:
        with self._lock:
            self._counter("hygiene_runs_aborted_total", evaluator=evaluator).inc()

    def record_transition(self, transition: Transition) -> None:
        labels = {
            "kind": transition.kind.value,
            "from_state": transition.from_state.value if transition.from_state else "",
            "to_state": transition.to_state.value,
            "validation_type": transition.key.validation_type,
            "resource_type": transition.key.resource_type,
            "workload_category": classify_workload(transition.key.namespace),
        }
        with self._lock:
            self._counter("hygiene_state_transitions_total", **labels).inc()
            if transition.kind == TransitionKind.RESOLVED:
                self._finding_gauges.pop(transition.key, None)

    def record_finding(self, record: ClassifiedFinding) -> None:
        labels = finding_labels(record)
        with self._lock:
            self._counter(
                "hygiene_findings_observed_total",
                validation_type=labels["validation_type"],
                severity=labels["severity"],
                workload_category=labels["workload_category"],
            ).inc()
            self._finding_gauges[record.finding.key] = Gauge(
                name="hygiene_finding_age_seconds",
                value=record.age.total_seconds(),
                labels=labels,
            )

    def collect(self) -> dict[str, list[dict[str, Any]]]:
        with self._lock:
            gauges = [g.to_dict() for g in self._gauges.values()]
            gauges.extend(g.to_dict() for g in self._finding_gauges.values())
            return {
                "counters": [c.to_dict() for c in self._counters.values()],
                "gauges": gauges,
            }

    def counter_value(self, name: str, **labels: str) -> int:
        """Sum of every counter named ``name`` whose labels include ``labels``."""
        with self._lock:
            return sum(
                c.value for c in self._counters.values()
                if c.name == name and all(c.labels.get(k) == v for k, v in labels.items())
            )


# =====================================================================
# Logs
# =====================================================================

_LEVELS = {
    Severity.ERROR: logging.ERROR,
    Severity.WARNING: logging.WARNING,
    Severity.INFO: logging.INFO,
}


class LogSink(ABC):
    """Receives one structured record per classified finding per run."""

    @abstractmethod
    def emit(self, record: ClassifiedFinding) -> None: ...

    def flush(self) -> None:
        pass


class DirectLogSink(LogSink):
    """Writes each record to a ``logging`` logger as it arrives."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logging.getLogger("kub_hygiene.findings")

    def emit(self, record: ClassifiedFinding) -> None:
        f = record.finding
        self.log.log(
            _LEVELS[f.severity],
            "%s %s/%s/%s: %s [%s]",
            f.error_code, f.resource_type, f.namespace, f.resource_name, f.message, record.state.value,
            extra={"finding": record.to_dict()},
        )


class BufferedLogSink(LogSink):
    """Holds records until ``flush()`` (or ``max_size``), then forwards them."""

    def __init__(self, target: LogSink, max_size: int = 1000) -> None:
        self.target = target
        self.max_size = max_size
        self._buffer: list[ClassifiedFinding] = []
        self._lock = threading.Lock()

    def emit(self, record: ClassifiedFinding) -> None:
        with self._lock:
            self._buffer.append(record)
            full = len(self._buffer) >= self.max_size
        if full:
            self.flush()

    def flush(self) -> None:
        with self._lock:
            pending, self._buffer = self._buffer, []
        for record in pending:
            self.target.emit(record)
        self.target.flush()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


class CapturingLogSink(LogSink):
    """Keeps every record in memory."""

    def __init__(self) -> None:
        self.records: list[ClassifiedFinding] = []
        self.flushes = 0

    def emit(self, record: ClassifiedFinding) -> None:
        self.records.append(record)

    def flush(self) -> None:
        self.flushes += 1
