# SPDX-License-Identifier: MIT

"""Container resource request and limit checks."""

from __future__ import annotations

from typing import Any

from kub_hygiene.checks.workloads import all_containers, iter_workloads, parse_quantity
from kub_hygiene.config import SharedConfig
from kub_hygiene.models import Finding, Severity
from kub_hygiene.provider import ClusterSnapshot

ERROR_CODES = {
    "missing_resource_requests": "HYG-RES-001",
    "missing_resource_limits": "HYG-RES-002",
    "insufficient_cpu_request": "HYG-RES-003",
    "insufficient_memory_request": "HYG-RES-004",
    "invalid_resource_quantity": "HYG-RES-005",
}

# qos issue type -> (error code, severity, message, remediation)
QOS_ISSUES = {
    "best_effort": (
        "HYG-RES-006", Severity.ERROR,
        "BestEffort QoS: no resource constraints, can be killed first under pressure",
        "Add both resource requests and limits for predictable scheduling and resource management",
    ),
    "requests_differ_from_limits": (
        "HYG-RES-007", Severity.WARNING,
        "Burstable QoS: requests != limits, may face throttling under pressure",
        "Consider setting requests equal to limits for Guaranteed QoS, or optimize resource allocation",
    ),
    "requests_without_limits": (
        "HYG-RES-008", Severity.WARNING,
        "Burstable QoS: has requests but no limits, may consume unlimited resources",
        "Add resource limits to prevent unlimited resource consumption",
    ),
    "limits_without_requests": (
        "HYG-RES-009", Severity.WARNING,
        "Burstable QoS: has limits but no requests, requests will default to limits",
        "Review resource configuration for optimal QoS class assignment",
    ),
}


def _quantity(values: dict | None, name: str) -> float:
    raw = (values or {}).get(name)
    if raw in (None, ""):
        return 0.0
    return parse_quantity(raw)


def _invalid_quantities(kind: str, name: str, ns: str, container: Any,
                        requests: dict | None, limits: dict | None) -> list[Finding]:
    findings = []
    for section, values in (("requests", requests), ("limits", limits)):
        for resource, raw in sorted((values or {}).items()):
            try:
                parse_quantity(raw)
            except ValueError:
                findings.append(Finding(
                    kind, name, ns, "invalid_resource_quantity", ERROR_CODES["invalid_resource_quantity"],
                    f"Container '{container.name}' has an invalid {resource} {section[:-1]} {raw!r}",
                    remediation_hint="Use a Kubernetes quantity such as 250m, 1.5, 512Mi or 2Gi",
                    related_resources=[f"Container/{container.name}"],
                    details={"container_name": container.name, "section": section,
                             "resource": resource, "value": str(raw)},
                ))
    return findings


def qos_issue(requests: dict | None, limits: dict | None) -> str | None:
    """Classify the container's QoS shape; ``None`` when requests equal limits."""
    req = (_quantity(requests, "cpu"), _quantity(requests, "memory"))
    lim = (_quantity(limits, "cpu"), _quantity(limits, "memory"))
    has_requests = any(req)
    has_limits = any(lim)
    if not has_requests and not has_limits:
        return "best_effort"
    if has_requests and has_limits:
        return "requests_differ_from_limits" if req != lim else None
    if has_requests:
        return "requests_without_limits"
    return "limits_without_requests"


def _check_qos(kind: str, name: str, ns: str, container: Any,
               requests: dict | None, limits: dict | None) -> list[Finding]:
    issue = qos_issue(requests, limits)
    if issue is None:
        return []
    code, severity, message, hint = QOS_ISSUES[issue]
    return [Finding(
        kind, name, ns, "qos_class_issue", code,
        f"Container '{container.name}': {message}",
        severity=severity,
        remediation_hint=hint,
        related_resources=[f"Container/{container.name}"],
        details={"container_name": container.name, "qos_issue_type": issue},
    )]


def _check_container(kind: str, name: str, ns: str, container: Any,
                     config: SharedConfig) -> list[Finding]:
    resources = container.resources
    requests = resources.requests if resources else None
    limits = resources.limits if resources else None
    related = [f"Container/{container.name}"]

    # Nothing else can be judged about a container whose quantities don't parse.
    findings = _invalid_quantities(kind, name, ns, container, requests, limits)
    if findings:
        return findings

    req_cpu = _quantity(requests, "cpu")
    req_mem = _quantity(requests, "memory")

    if not req_cpu and not req_mem:
        findings.append(Finding(
            kind, name, ns, "missing_resource_requests", ERROR_CODES["missing_resource_requests"],
            f"Container '{container.name}' has no resource requests defined",
            remediation_hint=f"Add resource requests to prevent resource contention "
                             f"(e.g., cpu: {config.recommended_cpu_request}, "
                             f"memory: {config.recommended_memory_request})",
            related_resources=related,
            details={"container_name": container.name,
                     "recommended_cpu": config.recommended_cpu_request,
                     "recommended_memory": config.recommended_memory_request},
        ))
    else:
        if config.min_cpu_request and req_cpu < parse_quantity(config.min_cpu_request):
            current = str(requests.get("cpu", "0"))
            findings.append(Finding(
                kind, name, ns, "insufficient_cpu_request", ERROR_CODES["insufficient_cpu_request"],
                f"Container '{container.name}' CPU request {current} is below minimum "
                f"{config.min_cpu_request}",
                remediation_hint=f"Increase CPU request to at least {config.min_cpu_request}",
                related_resources=related,
                details={"container_name": container.name, "current_cpu_request": current,
                         "minimum_cpu_request": config.min_cpu_request},
            ))
        if config.min_memory_request and req_mem < parse_quantity(config.min_memory_request):
            current = str(requests.get("memory", "0"))
            findings.append(Finding(
                kind, name, ns, "insufficient_memory_request", ERROR_CODES["insufficient_memory_request"],
                f"Container '{container.name}' memory request {current} is below minimum "
                f"{config.min_memory_request}",
                remediation_hint=f"Increase memory request to at least {config.min_memory_request}",
                related_resources=related,
                details={"container_name": container.name, "current_memory_request": current,
                         "minimum_memory_request": config.min_memory_request},
            ))

    if not _quantity(limits, "cpu") and not _quantity(limits, "memory"):
        findings.append(Finding(
            kind, name, ns, "missing_resource_limits", ERROR_CODES["missing_resource_limits"],
            f"Container '{container.name}' has no resource limits defined",
            remediation_hint=f"Add resource limits to prevent resource overconsumption "
                             f"(e.g., cpu: {config.recommended_cpu_limit}, "
                             f"memory: {config.recommended_memory_limit})",
            related_resources=related,
            details={"container_name": container.name,
                     "recommended_cpu_limit": config.recommended_cpu_limit,
                     "recommended_memory_limit": config.recommended_memory_limit},
        ))

    if config.enable_qos_validation:
        findings.extend(_check_qos(kind, name, ns, container, requests, limits))
    return findings


def check_resources(snap: ClusterSnapshot, config: SharedConfig | None = None) -> list[Finding]:
    config = config if config is not None else SharedConfig()
    findings: list[Finding] = []
    for wl in iter_workloads(snap):
        for container in all_containers(wl.pod_spec):
            findings.extend(_check_container(wl.kind, wl.name, wl.namespace, container, config))
    return findings
