"""
Tests for metrics and log sinks.
"""

import json
import logging
from datetime import timedelta

import pytest

from conftest import T0, finding
from kub_hygiene.logging_config import JsonFormatter
from kub_hygiene.models import ClassifiedFinding, Severity, TemporalState, Transition, TransitionKind
from kub_hygiene.sinks import (
    BufferedLogSink,
    CapturingLogSink,
    DirectLogSink,
    InMemoryMetrics,
    NullMetrics,
    classify_workload,
)


def record(state=TemporalState.NEW, **kwargs):
    return ClassifiedFinding(
        finding=finding(**kwargs), state=state, first_seen=T0, last_seen=T0,
        occurrence_count=1, age=timedelta(minutes=30),
    )


class TestInMemoryMetrics:
    def test_run_counters(self):
        m = InMemoryMetrics()
        m.record_run_started()
        m.record_run_started()
        m.record_run_completed(1.5)
        m.record_run_aborted("networking")

        assert m.counter_value("hygiene_runs_started_total") == 2
        assert m.counter_value("hygiene_runs_completed_total") == 1
        assert m.counter_value("hygiene_runs_aborted_total") == 1
        duration = [g for g in m.collect()["gauges"] if g["name"] == "hygiene_last_run_duration_seconds"]
        assert duration[0]["value"] == 1.5

    def test_finding_gauge_follows_state(self):
        m = InMemoryMetrics()
        m.record_finding(record(state=TemporalState.NEW))
        m.record_finding(record(state=TemporalState.RECENT))

        gauges = [g for g in m.collect()["gauges"] if g["name"] == "hygiene_finding_age_seconds"]
        assert len(gauges) == 1
        assert gauges[0]["labels"]["state"] == "recent"
        assert gauges[0]["value"] == 1800

    def test_resolved_transition_removes_gauge(self):
        m = InMemoryMetrics()
        r = record()
        m.record_finding(r)
        m.record_transition(Transition(r.finding.key, TransitionKind.RESOLVED, TemporalState.NEW,
                                       TemporalState.RESOLVED, T0))

        assert not [g for g in m.collect()["gauges"] if g["name"] == "hygiene_finding_age_seconds"]
        assert m.counter_value("hygiene_state_transitions_total", kind="resolved", from_state="new") == 1

    def test_collect_returns_copies(self):
        m = InMemoryMetrics()
        m.record_run_started()
        snapshot = m.collect()
        snapshot["counters"][0]["labels"]["tampered"] = "yes"
        m.record_run_started()
        assert m.collect()["counters"][0] == {
            "name": "hygiene_runs_started_total", "type": "counter", "value": 2, "labels": {},
        }

    def test_findings_carry_workload_category(self):
        m = InMemoryMetrics()
        m.record_finding(record(namespace="shop"))
        m.record_finding(record(namespace="kube-system"))
        m.record_finding(record(namespace="team-logging"))

        gauges = [g for g in m.collect()["gauges"] if g["name"] == "hygiene_finding_age_seconds"]
        assert {g["labels"]["namespace"]: g["labels"]["workload_category"] for g in gauges} == {
            "shop": "application",
            "kube-system": "infrastructure",
            "team-logging": "infrastructure",
        }
        assert m.counter_value("hygiene_findings_observed_total", workload_category="infrastructure") == 2

    def test_null_metrics_accepts_everything(self):
        m = NullMetrics()
        m.record_run_started()
        m.record_run_completed(0.1)
        m.record_run_aborted("x")
        m.record_finding(record())


class TestLogSinks:
    def test_direct_sink_logs_structured_record(self, caplog):
        sink = DirectLogSink(logging.getLogger("test.findings"))
        with caplog.at_level(logging.INFO, logger="test.findings"):
            sink.emit(record(severity=Severity.WARNING))

        (entry,) = caplog.records
        assert entry.levelno == logging.WARNING
        assert "HYG-NET-002" in entry.getMessage()
        assert entry.finding["state"] == "new"
        assert entry.finding["resource_name"] == "web"

    def test_buffered_sink_holds_until_flush(self):
        target = CapturingLogSink()
        sink = BufferedLogSink(target)
        sink.emit(record(name="a"))
        sink.emit(record(name="b"))

        assert target.records == []
        assert len(sink) == 2

        sink.flush()
        assert [r.finding.resource_name for r in target.records] == ["a", "b"]
        assert target.flushes == 1
        assert len(sink) == 0

    def test_buffered_sink_flushes_when_full(self):
        target = CapturingLogSink()
        sink = BufferedLogSink(target, max_size=2)
        sink.emit(record(name="a"))
        sink.emit(record(name="b"))
        assert len(target.records) == 2


def test_json_formatter_includes_extra():
    rec = logging.makeLogRecord({
        "name": "kub_hygiene.findings", "levelno": logging.ERROR, "levelname": "ERROR",
        "msg": "finding %s", "args": ("x",), "finding": {"error_code": "HYG-NET-002"},
    })
    payload = json.loads(JsonFormatter().format(rec))
    assert payload["message"] == "finding x"
    assert payload["level"] == "ERROR"
    assert payload["finding"] == {"error_code": "HYG-NET-002"}


@pytest.mark.parametrize("namespace, category", [
    ("shop", "application"),
    ("default", "application"),
    ("cert-manager", "infrastructure"),
    ("calico-system", "infrastructure"),
    ("app-security", "infrastructure"),
])
def test_classify_workload(namespace, category):
    assert classify_workload(namespace) == category
