"""
Tests for the validation orchestrator and its failure policies.
"""

import threading

import pytest

from conftest import finding, snapshot
from kub_hygiene.checks import Evaluator, build_evaluators
from kub_hygiene.config import SharedConfig
from kub_hygiene.errors import EvaluatorError, ProviderError, RunAborted, RunCancelled
from kub_hygiene.models import ResourceKey
from kub_hygiene.orchestrator import BestEffort, FailFast, Orchestrator
from kub_hygiene.provider import ClusterSnapshot, StaticProvider
from kub_hygiene.sinks import InMemoryMetrics


def evaluator(name, findings=(), error=None, calls=None):
    def func(snap, config):
        if calls is not None:
            calls.append(name)
        if error is not None:
            raise error
        return list(findings)
    return Evaluator(name, func, SharedConfig())


class TestAggregation:
    def test_runs_in_registration_order_and_concatenates(self):
        calls = []
        a, b = finding(name="a"), finding(name="b")
        orch = Orchestrator([evaluator("one", [a], calls=calls), evaluator("two", [b], calls=calls)])

        outcome = orch.run(snapshot())

        assert calls == ["one", "two"]
        assert outcome.findings == [a, b]
        assert [r.name for r in outcome.results] == ["one", "two"]
        assert outcome.failures == []

    def test_default_policy_is_fail_fast(self):
        assert isinstance(Orchestrator([]).policy, FailFast)

    def test_build_evaluators_fixed_order(self):
        names = [e.name for e in build_evaluators(checks=["networking", "references"])]
        assert names == ["references", "networking"]
        assert [e.name for e in build_evaluators()] == ["references", "resources", "security", "networking"]

    def test_build_evaluators_rejects_unknown(self):
        with pytest.raises(ValueError, match="bogus"):
            build_evaluators(checks=["bogus"])


class TestFailFast:
    def test_first_failure_aborts(self):
        calls = []
        metrics = InMemoryMetrics()
        orch = Orchestrator(
            [
                evaluator("one", [finding()], calls=calls),
                evaluator("two", error=ProviderError("Pod", "connection refused"), calls=calls),
                evaluator("three", calls=calls),
            ],
            policy=FailFast(),
            metrics=metrics,
        )

        with pytest.raises(RunAborted) as excinfo:
            orch.run(snapshot())

        assert excinfo.value.evaluator == "two"
        assert isinstance(excinfo.value.cause, ProviderError)
        assert calls == ["one", "two"]
        assert metrics.counter_value("hygiene_runs_started_total") == 1
        assert metrics.counter_value("hygiene_runs_aborted_total", evaluator="two") == 1

    def test_unexpected_exception_is_wrapped(self):
        orch = Orchestrator([evaluator("boom", error=KeyError("spec"))])
        with pytest.raises(RunAborted) as excinfo:
            orch.run(snapshot())
        assert isinstance(excinfo.value.cause, EvaluatorError)
        assert excinfo.value.cause.evaluator == "boom"


class TestBestEffort:
    def test_all_evaluators_run(self):
        calls = []
        f = finding()
        orch = Orchestrator(
            [
                evaluator("one", error=ProviderError("Service", "forbidden"), calls=calls),
                evaluator("two", [f], calls=calls),
                evaluator("three", error=ValueError("bad"), calls=calls),
            ],
            policy=BestEffort(),
        )

        outcome = orch.run(snapshot())

        assert calls == ["one", "two", "three"]
        assert outcome.findings == [f]
        assert [r.name for r in outcome.failures] == ["one", "three"]
        assert isinstance(outcome.failures[1].error, EvaluatorError)


class TestScope:
    def test_findings_outside_scope_are_dropped(self):
        inside = finding(name="web")
        outside = finding(name="db")
        orch = Orchestrator([evaluator("one", [inside, outside])])

        outcome = orch.run(snapshot(), scope={ResourceKey("Service", "web", "app")})

        assert outcome.findings == [inside]
        assert outcome.out_of_scope == 1

    def test_scope_matches_namespace_and_type(self):
        f = finding(name="web", namespace="app", resource_type="Service")
        orch = Orchestrator([evaluator("one", [f])])
        scope = {ResourceKey("Service", "web", "other"), ResourceKey("Deployment", "web", "app")}
        assert orch.run(snapshot(), scope=scope).findings == []


def test_cancel_before_provider_call():
    cancel = threading.Event()
    cancel.set()

    def lists_pods(snap, config):
        return [finding() for _ in snap.list("Pod")]

    orch = Orchestrator([Evaluator("pods", lists_pods, SharedConfig())], policy=BestEffort())
    with pytest.raises(RunCancelled):
        orch.run(ClusterSnapshot(StaticProvider(), cancel=cancel))
