# SPDX-License-Identifier: MIT

"""Pod and container SecurityContext checks."""

from __future__ import annotations

from typing import Any

from kub_hygiene.checks.workloads import iter_workloads
from kub_hygiene.config import SharedConfig
from kub_hygiene.models import Finding
from kub_hygiene.provider import ClusterSnapshot

ERROR_CODES = {
    "missing_pod_security_context": "HYG-SEC-001",
    "pod_running_as_root": "HYG-SEC-002",
    "missing_container_security_context": "HYG-SEC-003",
    "container_running_as_root": "HYG-SEC-004",
    "container_allows_privilege_escalation": "HYG-SEC-005",
    "container_privileged_mode": "HYG-SEC-006",
}


def _finding(kind: str, name: str, ns: str, validation_type: str, message: str,
             **kwargs: Any) -> Finding:
    return Finding(kind, name, ns, validation_type, ERROR_CODES[validation_type], message, **kwargs)


def _check_pod_context(kind: str, name: str, ns: str, pod_spec: Any,
                       config: SharedConfig) -> list[Finding]:
    sc = pod_spec.security_context
    uid = config.recommended_user_id
    if sc is None:
        return [_finding(
            kind, name, ns, "missing_pod_security_context", "Pod has no SecurityContext defined",
            remediation_hint=f"Add a SecurityContext with runAsNonRoot: true and runAsUser: {uid}",
            related_resources=["SecurityContext/pod-security-context"],
            details={"resource_type": kind, "recommended_user_id": str(uid)},
        )]
    if sc.run_as_user == 0:
        return [_finding(
            kind, name, ns, "pod_running_as_root", "Pod SecurityContext specifies runAsUser: 0 (root)",
            remediation_hint=f"Change runAsUser to a non-zero value (e.g., {uid}) and set runAsNonRoot: true",
            related_resources=["SecurityContext/pod-security-context"],
            details={"current_user_id": "0", "recommended_user_id": str(uid)},
        )]
    return []


def _check_container_context(kind: str, name: str, ns: str, container: Any, container_type: str,
                             config: SharedConfig) -> list[Finding]:
    related = [f"Container/{container.name}"]
    base = {"container_name": container.name, "container_type": container_type}
    label = f"Container '{container.name}' ({container_type})"
    sc = container.security_context
    if sc is None:
        return [_finding(
            kind, name, ns, "missing_container_security_context",
            f"{label} has no SecurityContext defined",
            remediation_hint="Add a SecurityContext with allowPrivilegeEscalation: false, "
                             "runAsNonRoot: true and readOnlyRootFilesystem: true",
            related_resources=related, details=dict(base),
        )]

    findings: list[Finding] = []
    if sc.run_as_user == 0:
        findings.append(_finding(
            kind, name, ns, "container_running_as_root",
            f"{label} SecurityContext specifies runAsUser: 0 (root)",
            remediation_hint=f"Set runAsUser to a non-zero value (e.g., {config.recommended_user_id})",
            related_resources=related,
            details=dict(base, current_user_id="0", recommended_user_id=str(config.recommended_user_id)),
        ))
    if sc.allow_privilege_escalation is None or sc.allow_privilege_escalation:
        findings.append(_finding(
            kind, name, ns, "container_allows_privilege_escalation",
            f"{label} SecurityContext does not set allowPrivilegeEscalation: false",
            remediation_hint="Set allowPrivilegeEscalation: false in the container SecurityContext",
            related_resources=related,
            details=dict(base, current_setting="allowPrivilegeEscalation not set or true"),
        ))
    if sc.privileged:
        findings.append(_finding(
            kind, name, ns, "container_privileged_mode",
            f"{label} SecurityContext specifies privileged: true",
            remediation_hint="Remove privileged: true and grant specific capabilities instead",
            related_resources=related,
            details=dict(base, security_risk="full_system_access"),
        ))
    return findings


def check_security(snap: ClusterSnapshot, config: SharedConfig | None = None) -> list[Finding]:
    config = config if config is not None else SharedConfig()
    findings: list[Finding] = []
    for wl in iter_workloads(snap):
        if config.is_security_excluded(wl.namespace):
            continue
        findings.extend(_check_pod_context(wl.kind, wl.name, wl.namespace, wl.pod_spec, config))
        for container in wl.pod_spec.containers or []:
            findings.extend(_check_container_context(
                wl.kind, wl.name, wl.namespace, container, "container", config))
        for container in wl.pod_spec.init_containers or []:
            findings.extend(_check_container_context(
                wl.kind, wl.name, wl.namespace, container, "init container", config))
    return findings
