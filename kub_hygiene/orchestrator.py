# SPDX-License-Identifier: MIT

"""Validation orchestrator.

Runs the registered evaluators in order against one snapshot, applies the
failure policy, aggregates findings and narrows them to the run's scope.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable

from kub_hygiene.checks import Evaluator
from kub_hygiene.errors import EvaluatorError, HygieneError, RunAborted, RunCancelled
from kub_hygiene.models import CheckResult, Finding, ResourceKey, Severity
from kub_hygiene.provider import ClusterSnapshot
from kub_hygiene.sinks import MetricsSink, NullMetrics

logger = logging.getLogger(__name__)


class FailurePolicy(ABC):
    """Decides what a failed evaluator means for the rest of the run."""

    @abstractmethod
    def on_failure(self, result: CheckResult) -> None:
        ...


class FailFast(FailurePolicy):
    """Periodic mode: the first failure aborts the run."""

    def on_failure(self, result: CheckResult) -> None:
        raise RunAborted(result.name, result.error)


class BestEffort(FailurePolicy):
    """One-shot mode: keep going and report failures next to the findings."""

    def on_failure(self, result: CheckResult) -> None:
        logger.warning("evaluator %s failed, continuing: %s", result.name, result.error)


@dataclass
class RunOutcome:
    results: list[CheckResult] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    out_of_scope: int = 0

    @property
    def failures(self) -> list[CheckResult]:
        return [r for r in self.results if not r.ok]

    @property
    def error_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.ERROR)


def filter_scope(findings: Iterable[Finding], scope: set[ResourceKey] | None) -> tuple[list[Finding], int]:
    """Keep findings whose subject is in ``scope``; ``None`` keeps everything."""
    findings = list(findings)
    if scope is None:
        return findings, 0
    kept = [f for f in findings if f.subject in scope]
    return kept, len(findings) - len(kept)


class Orchestrator:
    def __init__(self, evaluators: list[Evaluator], policy: FailurePolicy | None = None,
                 metrics: MetricsSink | None = None) -> None:
        self.evaluators = list(evaluators)
        self.policy = policy if policy is not None else FailFast()
        self.metrics = metrics if metrics is not None else NullMetrics()

    def _evaluate(self, evaluator: Evaluator, snap: ClusterSnapshot) -> CheckResult:
        start = time.monotonic()
        result = CheckResult(name=evaluator.name)
        try:
            result.findings = list(evaluator.evaluate(snap))
        except RunCancelled:
            raise
        except HygieneError as exc:
            result.error = exc
        except Exception as exc:
            logger.exception("evaluator %s raised an unexpected error", evaluator.name)
            result.error = EvaluatorError(evaluator.name, f"{type(exc).__name__}: {exc}")
        result.duration_ms = (time.monotonic() - start) * 1000
        return result

    def run(self, snap: ClusterSnapshot, scope: set[ResourceKey] | None = None) -> RunOutcome:
        """Run every evaluator once.

        Raises ``RunAborted`` under ``FailFast`` and ``RunCancelled`` when the
        snapshot's cancel event is set before a provider call.
        """
        self.metrics.record_run_started()
        outcome = RunOutcome()
        aggregated: list[Finding] = []

        for evaluator in self.evaluators:
            result = self._evaluate(evaluator, snap)
            outcome.results.append(result)
            if result.ok:
                logger.debug("evaluator %s: %d findings in %.1fms",
                             evaluator.name, len(result.findings), result.duration_ms)
                aggregated.extend(result.findings)
                continue
            try:
                self.policy.on_failure(result)
            except RunAborted:
                logger.error("run aborted: evaluator %s failed: %s", evaluator.name, result.error)
                self.metrics.record_run_aborted(evaluator.name)
                raise

        outcome.findings, outcome.out_of_scope = filter_scope(aggregated, scope)
        if outcome.out_of_scope:
            logger.debug("dropped %d out-of-scope findings", outcome.out_of_scope)
        return outcome
