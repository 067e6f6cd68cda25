"""
Tests for one-shot manifest validation and its report.
"""

import textwrap

import pytest

from conftest import endpoints, pod, service
from kub_hygiene.errors import ProviderError
from kub_hygiene.manifest import load_manifest
from kub_hygiene.models import CheckResult, Severity
from kub_hygiene.oneshot import OneShotResult, generate_report_text, validate_manifest
from kub_hygiene.provider import ResourceProvider, StaticProvider

WEB = textwrap.dedent("""\
    apiVersion: v1
    kind: Service
    metadata:
      name: web
      namespace: app
    spec:
      selector:
        app: web
      ports:
        - name: http
          port: 80
          targetPort: 9999
    ---
    apiVersion: v1
    kind: Pod
    metadata:
      name: web-1
      namespace: app
      labels:
        app: web
    spec:
      containers:
        - name: app
          image: registry.example.com/web:1.0
          ports:
            - containerPort: 8080
              name: http
""")


class BrokenProvider(ResourceProvider):
    def list(self, kind, namespace=None):
        raise ProviderError(kind, "connection refused")


def _types(result):
    return sorted(f.validation_type for f in result.findings)


class TestValidateManifest:
    def test_file_only_without_cluster(self):
        result = validate_manifest(WEB, checks=["networking"])

        assert _types(result) == ["service_no_endpoints", "service_port_mismatch"]
        assert result.failures == []
        assert result.exit_code == 2
        assert result.summary["by_validation_type"] == {"service_no_endpoints": 1, "service_port_mismatch": 1}

    def test_live_state_resolves_references(self):
        live = StaticProvider([endpoints("web")])
        result = validate_manifest(load_manifest(WEB), live=live, checks=["networking"])
        assert _types(result) == ["service_port_mismatch"]
        assert result.findings[0].details["target_port"] == "9999"

    def test_manifest_objects_shadow_live_objects(self):
        live = StaticProvider([
            service("web", selector={"app": "web"}, ports=[(80, 8080, "http")]),
            endpoints("web"),
        ])
        result = validate_manifest(WEB, live=live, checks=["networking"])
        assert _types(result) == ["service_port_mismatch"]

    def test_scope_filters_live_findings(self):
        live = StaticProvider([endpoints("web"), service("legacy", selector={"app": "gone"})])

        file_only = validate_manifest(WEB, live=live, checks=["networking"])
        everything = validate_manifest(WEB, live=live, scope="all", checks=["networking"])

        assert "legacy" not in {f.resource_name for f in file_only.findings}
        assert {"legacy", "web"} <= {f.resource_name for f in everything.findings}

    def test_provider_failures_are_reported(self):
        result = validate_manifest(WEB, live=BrokenProvider(), checks=["references", "networking"])

        assert [r.name for r in result.failures] == ["references", "networking"]
        assert result.findings == []
        assert result.exit_code == 2
        assert result.summary["failed_checks"] == ["references", "networking"]

    def test_warnings_alone_exit_zero(self):
        live = StaticProvider([pod("api-1", labels={"app": "api"})])
        text = WEB.split("---")[0].replace("app: web", "app: nothing")
        result = validate_manifest(text, live=live, checks=["networking"])
        assert [f.severity for f in result.findings if f.validation_type == "service_selector_mismatch"] == [
            Severity.WARNING,
        ]
        assert result.error_count == 1  # no endpoints

        live = StaticProvider([pod("api-1", labels={"app": "api"}), endpoints("web")])
        result = validate_manifest(text, live=live, checks=["networking"])
        assert _types(result) == ["service_selector_mismatch"]
        assert result.exit_code == 0

    def test_invalid_scope(self):
        with pytest.raises(ValueError, match="scope"):
            validate_manifest(WEB, scope="cluster")


def test_exit_code_is_capped():
    result = OneShotResult(scope="all", subjects=1, results=[
        CheckResult(name="x", error=ProviderError("Pod", "down")) for _ in range(200)
    ])
    assert result.exit_code == 125


def test_report_text():
    result = validate_manifest(WEB, checks=["networking"])
    report = generate_report_text(result)

    assert report.startswith("# Kubernetes Manifest Hygiene Report")
    assert "## Summary: 2 findings (2 error, 0 warning, 0 info)" in report
    assert "### networking" in report
    assert "- [ERROR] HYG-NET-003 Service/app/web:" in report
    assert "Remediation:" in report
    assert report.endswith("Exit code: 2")


def test_report_lists_failed_checks():
    report = generate_report_text(validate_manifest(WEB, live=BrokenProvider(), checks=["networking"]))
    assert "## Failed Checks" in report
    assert "- networking: cannot read" in report
