# SPDX-License-Identifier: MIT

"""Periodic scanning agent.

One scan is: snapshot -> orchestrator (fail-fast) -> temporal tracker ->
sinks. ``PeriodicRunner`` drives scans on a fixed interval and never runs
two at once; a tick that fires while a scan is in progress is skipped.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from kub_hygiene.checks import Evaluator, build_evaluators
from kub_hygiene.config import Settings
from kub_hygiene.errors import RunAborted, RunCancelled
from kub_hygiene.models import CheckResult, ClassifiedFinding, TemporalState, Transition
from kub_hygiene.orchestrator import FailFast, Orchestrator
from kub_hygiene.provider import ClusterSnapshot, KubernetesProvider, ResourceProvider
from kub_hygiene.sinks import DirectLogSink, InMemoryMetrics, LogSink, MetricsSink, NullMetrics
from kub_hygiene.tracker import TemporalStateTracker, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ScanReport:
    started_at: datetime
    duration: float
    records: list[ClassifiedFinding] = field(default_factory=list)
    transitions: list[Transition] = field(default_factory=list)
    results: list[CheckResult] = field(default_factory=list)

    def count_by_state(self) -> dict[str, int]:
        counts = {state.value: 0 for state in TemporalState if state.active}
        for record in self.records:
            counts[record.state.value] += 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration, 3),
            "active_findings": len(self.records),
            "by_state": self.count_by_state(),
            "transitions": [t.to_dict() for t in self.transitions],
            "check_results": [r.to_dict() for r in self.results],
        }


class Scanner:
    def __init__(
        self,
        provider: ResourceProvider,
        evaluators: list[Evaluator],
        tracker: TemporalStateTracker | None = None,
        metrics: MetricsSink | None = None,
        log_sink: LogSink | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.provider = provider
        self.metrics = metrics if metrics is not None else NullMetrics()
        self.log_sink = log_sink if log_sink is not None else DirectLogSink()
        self.clock = clock
        self.tracker = tracker if tracker is not None else TemporalStateTracker(clock=clock)
        self.orchestrator = Orchestrator(evaluators, policy=FailFast(), metrics=self.metrics)

    @classmethod
    def from_settings(cls, settings: Settings, api_client: Any,
                      metrics: MetricsSink | None = None) -> Scanner:
        provider = KubernetesProvider(api_client, namespace=settings.namespace,
                                      request_timeout=settings.request_timeout)
        return cls(
            provider,
            build_evaluators(settings.checks_config, settings.checks),
            tracker=TemporalStateTracker(retention=settings.resolved_retention),
            metrics=metrics if metrics is not None else InMemoryMetrics(),
        )

    def run_once(self, cancel: threading.Event | None = None) -> ScanReport | None:
        """Run one scan. Returns ``None`` when the run is aborted or cancelled."""
        started_at = self.clock()
        start = time.monotonic()
        snap = ClusterSnapshot(self.provider, cancel=cancel)
        try:
            outcome = self.orchestrator.run(snap)
            if cancel is not None and cancel.is_set():
                raise RunCancelled("cancelled before tracker update")
        except RunAborted as exc:
            logger.error("scan discarded: %s", exc)
            return None
        except RunCancelled as exc:
            logger.info("scan cancelled: %s", exc)
            return None

        update = self.tracker.update(outcome.findings, now=self.clock())
        for transition in update.transitions:
            self.metrics.record_transition(transition)
        for record in update.records:
            self.metrics.record_finding(record)
            self.log_sink.emit(record)
        self.log_sink.flush()

        duration = time.monotonic() - start
        self.metrics.record_run_completed(duration)
        report = ScanReport(started_at, duration, update.records, update.transitions, outcome.results)
        logger.info(
            "scan complete in %.2fs: %d active findings, %d transitions",
            duration, len(update.records), len(update.transitions),
            extra={"by_state": report.count_by_state()},
        )
        return report


class PeriodicRunner:
    def __init__(self, scanner: Scanner, interval: timedelta | float,
                 stop_event: threading.Event | None = None) -> None:
        self.scanner = scanner
        self.interval = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        self._stop = stop_event or threading.Event()
        self._running = threading.Lock()
        self.skipped_ticks = 0
        self.last_report: ScanReport | None = None

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def tick(self) -> ScanReport | None:
        """Run a scan unless one is already in progress."""
        if not self._running.acquire(blocking=False):
            self.skipped_ticks += 1
            logger.warning("previous scan still running, skipping tick")
            return None
        try:
            report = self.scanner.run_once(cancel=self._stop)
            if report is not None:
                self.last_report = report
            return report
        finally:
            self._running.release()

    def run_forever(self) -> None:
        logger.info("starting periodic scans every %.0fs", self.interval)
        next_at = time.monotonic()
        while not self._stop.is_set():
            self.tick()
            next_at += self.interval
            now = time.monotonic()
            if now > next_at:
                missed = int((now - next_at) // self.interval) + 1
                self.skipped_ticks += missed
                logger.warning("scan overran the interval, skipping %d tick(s)", missed)
                next_at += missed * self.interval
            if self._stop.wait(max(0.0, next_at - time.monotonic())):
                break
        logger.info("periodic scans stopped")

    def stop(self) -> None:
        self._stop.set()
