# SPDX-License-Identifier: MIT

"""One-shot validation of a proposed manifest.

The manifest is overlaid on live cluster state (or validated alone when no
live provider is given), every evaluator runs best-effort, and findings are
narrowed to the manifest's own objects unless ``scope="all"``.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from kub_hygiene.checks import build_evaluators
from kub_hygiene.config import SharedConfig
from kub_hygiene.manifest import Manifest, load_manifest
from kub_hygiene.models import CheckResult, Finding, Severity
from kub_hygiene.orchestrator import BestEffort, Orchestrator, filter_scope
from kub_hygiene.provider import ClusterSnapshot, MergedProvider, ResourceProvider

logger = logging.getLogger(__name__)

SCOPES = ("file-only", "all")
MAX_EXIT_CODE = 125


@dataclass
class OneShotResult:
    scope: str
    subjects: int
    results: list[CheckResult] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    findings_by_check: dict[str, list[Finding]] = field(default_factory=dict)

    @property
    def failures(self) -> list[CheckResult]:
        return [r for r in self.results if not r.ok]

    @property
    def error_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.WARNING)

    @property
    def info_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.INFO)

    @property
    def exit_code(self) -> int:
        if self.error_count == 0 and not self.failures:
            return 0
        return min(len(self.findings) + len(self.failures), MAX_EXIT_CODE)

    @property
    def summary(self) -> dict[str, Any]:
        return {
            "scope": self.scope,
            "subjects": self.subjects,
            "total_findings": len(self.findings),
            "error_count": self.error_count,
            "warning_count": self.warning_count,
            "info_count": self.info_count,
            "by_validation_type": dict(Counter(f.validation_type for f in self.findings)),
            "failed_checks": [r.name for r in self.failures],
            "rc": self.exit_code,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "findings": [f.to_dict() for f in self.findings],
            "failures": [r.to_dict() for r in self.failures],
            "check_results": [r.to_dict() for r in self.results],
        }


def validate_manifest(
    manifest: Manifest | str,
    live: ResourceProvider | None = None,
    config: SharedConfig | None = None,
    scope: str = "file-only",
    checks: list[str] | None = None,
) -> OneShotResult:
    if scope not in SCOPES:
        raise ValueError(f"scope must be one of {', '.join(SCOPES)}, got {scope!r}")
    if isinstance(manifest, str):
        manifest = load_manifest(manifest)

    provider: ResourceProvider = manifest.provider()
    if live is not None:
        provider = MergedProvider(live, provider)

    orchestrator = Orchestrator(build_evaluators(config, checks), policy=BestEffort())
    subjects = manifest.subjects if scope == "file-only" else None
    outcome = orchestrator.run(ClusterSnapshot(provider), scope=subjects)

    result = OneShotResult(scope=scope, subjects=len(manifest.subjects),
                           results=outcome.results, findings=outcome.findings)
    for check in outcome.results:
        kept, _ = filter_scope(check.findings, subjects)
        result.findings_by_check[check.name] = kept

    logger.info("validated %d manifest objects: %d findings, %d failed checks",
                result.subjects, len(result.findings), len(result.failures))
    return result


# =====================================================================
# Report Text Generator
# =====================================================================

def _resource(f: Finding) -> str:
    if f.namespace:
        return f"{f.resource_type}/{f.namespace}/{f.resource_name}"
    return f"{f.resource_type}/{f.resource_name}"


def generate_report_text(result: OneShotResult) -> str:
    lines = [
        "# Kubernetes Manifest Hygiene Report",
        f"Scope: {result.scope}",
        f"Objects: {result.subjects} | Checks: {', '.join(r.name for r in result.results)}",
        "",
    ]

    lines.append(
        f"## Summary: {len(result.findings)} findings ({result.error_count} error, "
        f"{result.warning_count} warning, {result.info_count} info)"
    )
    lines.append("")

    if result.failures:
        lines.append("## Failed Checks")
        for r in result.failures:
            lines.append(f"- {r.name}: {r.error}")

    lines.append("\n## Findings by Check")
    for name, findings in result.findings_by_check.items():
        if not findings:
            continue
        lines.append(f"\n### {name}")
        for f in sorted(findings, key=lambda x: x.severity.sort_order):
            lines.append(f"- [{f.severity.value.upper()}] {f.error_code} {_resource(f)}: {f.message}")
            if f.remediation_hint:
                lines.append(f"    Remediation: {f.remediation_hint}")

    lines.append(f"\nExit code: {result.exit_code}")
    return "\n".join(lines)
