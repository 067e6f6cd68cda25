# SPDX-License-Identifier: MIT

"""Service, NetworkPolicy and Ingress connectivity checks.

A Service is expected to select pods, have ready endpoints and target ports
those pods expose. NetworkPolicies are expected to select something and, once
a namespace has any policy, to include a default-deny baseline. Namespaces
configured as policy-required must have at least one policy. Every Ingress
backend must resolve to an existing Service port with at least one Ready pod
behind it.
"""

from __future__ import annotations

from typing import Any

from kub_hygiene.config import SharedConfig
from kub_hygiene.models import Finding, Severity
from kub_hygiene.provider import ClusterSnapshot

ERROR_CODES = {
    "service_selector_mismatch": "HYG-NET-001",
    "service_no_endpoints": "HYG-NET-002",
    "service_port_mismatch": "HYG-NET-003",
    "pod_no_service": "HYG-NET-004",
    "network_policy_orphaned": "HYG-NET-005",
    "missing_network_policy_default_deny": "HYG-NET-006",
    "ingress_service_missing": "HYG-NET-007",
    "ingress_service_port_mismatch": "HYG-NET-008",
    "ingress_no_backend_pods": "HYG-NET-009",
    "missing_network_policy_required": "HYG-NET-010",
}


def _finding(resource_type: str, name: str, namespace: str, validation_type: str,
             message: str, severity: Severity, **kwargs: Any) -> Finding:
    return Finding(
        resource_type=resource_type, resource_name=name, namespace=namespace,
        validation_type=validation_type, error_code=ERROR_CODES[validation_type],
        message=message, severity=severity, **kwargs,
    )


# =====================================================================
# Selector helpers
# =====================================================================

def _selector_str(selector: dict) -> str:
    return ",".join(f"{k}={v}" for k, v in sorted(selector.items()))


def matches_labels(selector: dict[str, str], labels: dict[str, str] | None) -> bool:
    labels = labels or {}
    return all(labels.get(k) == v for k, v in selector.items())


def _matches_expression(expr: Any, labels: dict[str, str]) -> bool:
    op = expr.operator
    values = set(expr.values or [])
    present = expr.key in labels
    if op == "In":
        return present and labels[expr.key] in values
    if op == "NotIn":
        return not present or labels[expr.key] not in values
    if op == "Exists":
        return present
    if op == "DoesNotExist":
        return not present
    # Unknown operators select nothing, as the API server would reject them.
    return False


def matches_label_selector(selector: Any, labels: dict[str, str] | None) -> bool:
    """Evaluate a ``V1LabelSelector``. An empty selector matches everything."""
    labels = labels or {}
    if selector is None:
        return True
    if not matches_labels(selector.match_labels or {}, labels):
        return False
    return all(_matches_expression(e, labels) for e in selector.match_expressions or [])


def selects_all(selector: Any) -> bool:
    return selector is None or (not selector.match_labels and not selector.match_expressions)


def is_pod_ready(pod: Any) -> bool:
    for cond in (pod.status.conditions if pod.status else None) or []:
        if cond.type == "Ready" and cond.status == "True":
            return True
    return False


def _pod_labels(pod: Any) -> dict[str, str]:
    return dict(pod.metadata.labels or {})


def _matching_pods(selector: dict[str, str], pods: list[Any]) -> list[Any]:
    return [p for p in pods if matches_labels(selector, _pod_labels(p))]


def _is_special_service(svc: Any, config: SharedConfig) -> bool:
    spec = svc.spec
    if spec.cluster_ip == "None":
        return True
    if spec.type == "ExternalName" or not spec.selector:
        return True
    return config.is_networking_excluded(svc.metadata.namespace or "")


def _target_unset(target: Any) -> bool:
    return target is None or target == 0 or target == ""


def _pod_exposes(pod: Any, target: Any) -> bool:
    for container in pod.spec.containers or []:
        for cp in container.ports or []:
            if isinstance(target, int):
                if cp.container_port == target:
                    return True
            elif cp.name == str(target):
                return True
    return False


# =====================================================================
# Services
# =====================================================================

def _check_services(snap: ClusterSnapshot, config: SharedConfig) -> list[Finding]:
    findings: list[Finding] = []
    pods_by_ns = snap.by_namespace("Pod")

    for svc in snap.list("Service"):
        if _is_special_service(svc, config):
            continue
        meta = svc.metadata
        ns = meta.namespace or ""
        selector = dict(svc.spec.selector)
        ns_pods = pods_by_ns.get(ns, [])
        matching = _matching_pods(selector, ns_pods)

        if not matching:
            findings.append(_finding(
                "Service", meta.name, ns, "service_selector_mismatch",
                f"Service selector {_selector_str(selector)} does not match any pods",
                Severity.WARNING,
                remediation_hint="Update the service selector to match existing pod labels "
                                 "or deploy pods with matching labels.",
                related_resources=[f"Service/{meta.name}"],
                details={"service_selector": _selector_str(selector),
                         "namespace_pod_count": len(ns_pods)},
            ))

        findings.extend(_check_endpoints(snap, svc, matching))
        findings.extend(_check_service_ports(svc, matching))

    return findings


def _check_endpoints(snap: ClusterSnapshot, svc: Any, matching: list[Any]) -> list[Finding]:
    meta = svc.metadata
    ns = meta.namespace or ""
    ep = snap.get("Endpoints", ns, meta.name)
    if ep is None:
        return [_finding(
            "Service", meta.name, ns, "service_no_endpoints",
            "Service has no endpoints object", Severity.ERROR,
            remediation_hint="Verify the service selector matches pod labels and the pods are ready.",
            related_resources=[f"Service/{meta.name}"],
            details={"endpoints_missing": True, "matching_pods_count": len(matching)},
        )]
    subsets = ep.subsets or []
    if any(subset.addresses for subset in subsets):
        return []
    return [_finding(
        "Service", meta.name, ns, "service_no_endpoints",
        "Service has no ready endpoints", Severity.ERROR,
        remediation_hint="Check pod readiness probes and ensure matching pods are Ready.",
        related_resources=[f"Service/{meta.name}", f"Endpoints/{meta.name}"],
        details={"matching_pods_count": len(matching), "endpoints_subset_count": len(subsets)},
    )]


def _check_service_ports(svc: Any, matching: list[Any]) -> list[Finding]:
    findings: list[Finding] = []
    if not matching:
        return findings
    meta = svc.metadata
    for sp in svc.spec.ports or []:
        target = sp.target_port
        # An unset targetPort defaults to port.
        if _target_unset(target):
            continue
        if any(_pod_exposes(pod, target) for pod in matching):
            continue
        findings.append(_finding(
            "Service", meta.name, meta.namespace or "", "service_port_mismatch",
            f"Service port {sp.name or sp.port} (target: {target}) does not match "
            f"any container port in matching pods",
            Severity.ERROR,
            remediation_hint="Update the service targetPort to match a container port "
                             "or add the missing port to the container specification.",
            related_resources=[f"Service/{meta.name}"],
            details={"service_port_name": sp.name or "", "service_port_number": sp.port,
                     "target_port": str(target)},
        ))
    return findings


def _check_unexposed_pods(snap: ClusterSnapshot, config: SharedConfig) -> list[Finding]:
    findings: list[Finding] = []
    selectors_by_ns: dict[str, list[dict[str, str]]] = {}
    for svc in snap.list("Service"):
        if not _is_special_service(svc, config):
            selectors_by_ns.setdefault(svc.metadata.namespace or "", []).append(dict(svc.spec.selector))

    for pod in snap.list("Pod"):
        meta = pod.metadata
        ns = meta.namespace or ""
        if config.is_networking_excluded(ns) or config.is_unexposed_pod_name(meta.name):
            continue
        if any(ref.kind in config.batch_owner_kinds for ref in meta.owner_references or []):
            continue
        selectors = selectors_by_ns.get(ns, [])
        if any(matches_labels(sel, _pod_labels(pod)) for sel in selectors):
            continue
        findings.append(_finding(
            "Pod", meta.name, ns, "pod_no_service",
            "Pod is not exposed by any Service (consider if this is intentional)",
            Severity.INFO,
            remediation_hint="Create a Service for this pod, or ignore if it is a batch or worker pod.",
            related_resources=[f"Pod/{meta.name}"],
            details={"namespace_services_count": len(selectors)},
        ))
    return findings


# =====================================================================
# NetworkPolicies
# =====================================================================

def is_default_deny(policy: Any) -> bool:
    """True when the policy selects every pod and denies a direction outright."""
    spec = policy.spec
    if not selects_all(spec.pod_selector):
        return False
    types = spec.policy_types or []
    if "Ingress" in types and not spec.ingress:
        return True
    if "Egress" in types and not spec.egress:
        return True
    return False


def _check_network_policies(snap: ClusterSnapshot, config: SharedConfig) -> list[Finding]:
    findings: list[Finding] = []
    pods_by_ns = snap.by_namespace("Pod")
    policies_by_ns = snap.by_namespace("NetworkPolicy")

    for ns in sorted(config.policy_required_namespaces):
        if policies_by_ns.get(ns):
            continue
        findings.append(_finding(
            "Namespace", ns, ns, "missing_network_policy_required",
            f"Policy-required namespace '{ns}' has no NetworkPolicies",
            Severity.ERROR,
            remediation_hint="Create NetworkPolicies with default-deny ingress/egress rules and "
                             "explicit allow rules for required traffic.",
            related_resources=["NetworkPolicy/default-deny-all"],
            details={"namespace_type": "policy_required"},
        ))

    for ns in sorted(policies_by_ns):
        policies = policies_by_ns[ns]
        if config.is_networking_excluded(ns):
            continue
        if any(is_default_deny(p) for p in policies):
            continue
        findings.append(_finding(
            "Namespace", ns, ns, "missing_network_policy_default_deny",
            "Namespace has NetworkPolicies but no default deny policy",
            Severity.WARNING,
            remediation_hint="Add a default deny NetworkPolicy, then allow required traffic explicitly.",
            related_resources=["NetworkPolicy/default-deny-all"],
            details={"existing_policies_count": len(policies)},
        ))

    for policy in snap.list("NetworkPolicy"):
        meta = policy.metadata
        ns = meta.namespace or ""
        ns_pods = pods_by_ns.get(ns, [])
        if any(matches_label_selector(policy.spec.pod_selector, _pod_labels(p)) for p in ns_pods):
            continue
        findings.append(_finding(
            "NetworkPolicy", meta.name, ns, "network_policy_orphaned",
            "NetworkPolicy selector does not match any pods in namespace",
            Severity.WARNING,
            remediation_hint="Update the podSelector to match existing pods or remove the policy.",
            related_resources=[f"NetworkPolicy/{meta.name}"],
            details={"namespace_pods_count": len(ns_pods)},
        ))

    return findings


# =====================================================================
# Ingresses
# =====================================================================

def _ingress_backends(ing: Any) -> list[Any]:
    backends = []
    spec = ing.spec
    if spec.default_backend and spec.default_backend.service:
        backends.append(spec.default_backend.service)
    for rule in spec.rules or []:
        if not rule.http:
            continue
        for path in rule.http.paths or []:
            if path.backend and path.backend.service:
                backends.append(path.backend.service)
    return backends


def _service_port_refs(svc: Any) -> list[str]:
    refs = []
    for sp in svc.spec.ports or []:
        refs.append(f"{sp.name}:{sp.port}" if sp.name else str(sp.port))
    return refs


def _check_ingress_backend(snap: ClusterSnapshot, ing: Any, backend: Any) -> list[Finding]:
    findings: list[Finding] = []
    meta = ing.metadata
    ns = meta.namespace or ""
    svc = snap.get("Service", ns, backend.name)

    if svc is None:
        findings.append(_finding(
            "Ingress", meta.name, ns, "ingress_service_missing",
            f"Ingress references non-existent service '{backend.name}'", Severity.ERROR,
            remediation_hint=f"Create service '{backend.name}' in namespace '{ns}' "
                             f"or point the Ingress at an existing service.",
            related_resources=[f"Service/{backend.name}"],
            details={"service_name": backend.name},
        ))
        return findings

    port = backend.port
    if port is not None and (port.number or port.name):
        exists = any(
            (port.number and sp.port == port.number) or (port.name and sp.name == port.name)
            for sp in svc.spec.ports or []
        )
        if not exists:
            port_ref = str(port.number) if port.number else port.name
            findings.append(_finding(
                "Ingress", meta.name, ns, "ingress_service_port_mismatch",
                f"Ingress references service '{backend.name}' port '{port_ref}' that doesn't exist",
                Severity.ERROR,
                remediation_hint=f"Add port '{port_ref}' to service '{backend.name}' "
                                 f"or reference an existing port.",
                related_resources=[f"Service/{backend.name}"],
                details={"service_name": backend.name, "referenced_port": port_ref,
                         "available_ports": _service_port_refs(svc)},
            ))

    # Selectorless services are backed by manually managed endpoints, not pods.
    selector = dict(svc.spec.selector or {})
    if not selector:
        return findings
    matching = _matching_pods(selector, snap.list("Pod", ns))
    ready = [p for p in matching if is_pod_ready(p)]
    if not ready:
        findings.append(_finding(
            "Ingress", meta.name, ns, "ingress_no_backend_pods",
            f"Ingress service '{backend.name}' has no ready backend pods", Severity.ERROR,
            remediation_hint="Deploy pods matching the service selector and make sure they pass readiness checks.",
            related_resources=[f"Service/{backend.name}"],
            details={"service_name": backend.name, "matching_pods_count": len(matching),
                     "ready_pods_count": 0},
        ))
    return findings


def _check_ingresses(snap: ClusterSnapshot) -> list[Finding]:
    findings: list[Finding] = []
    for ing in snap.list("Ingress"):
        for backend in _ingress_backends(ing):
            findings.extend(_check_ingress_backend(snap, ing, backend))
    return findings


def check_networking(snap: ClusterSnapshot, config: SharedConfig | None = None) -> list[Finding]:
    config = config if config is not None else SharedConfig()
    findings = _check_services(snap, config)
    if config.warn_unexposed_pods:
        findings.extend(_check_unexposed_pods(snap, config))
    findings.extend(_check_network_policies(snap, config))
    findings.extend(_check_ingresses(snap))
    return findings
