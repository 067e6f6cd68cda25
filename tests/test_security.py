"""
Tests for pod and container SecurityContext checks.
"""

from kubernetes import client

from conftest import container, deployment, hardened_container, pod, snapshot
from kub_hygiene.checks.security import check_security

SAFE_POD_CONTEXT = client.V1PodSecurityContext(run_as_user=1000, run_as_non_root=True)


def _types(findings):
    return sorted(f.validation_type for f in findings)


def test_hardened_workload_is_clean():
    d = deployment("web", containers=[hardened_container()], security_context=SAFE_POD_CONTEXT)
    assert check_security(snapshot(d)) == []


def test_missing_contexts():
    findings = check_security(snapshot(deployment("web", containers=[container()])))
    assert _types(findings) == ["missing_container_security_context", "missing_pod_security_context"]
    assert {f.error_code for f in findings} == {"HYG-SEC-001", "HYG-SEC-003"}


def test_pod_running_as_root():
    ctx = client.V1PodSecurityContext(run_as_user=0)
    findings = check_security(snapshot(pod("web-1", containers=[hardened_container()], security_context=ctx)))
    assert [(f.validation_type, f.error_code) for f in findings] == [("pod_running_as_root", "HYG-SEC-002")]


def test_dangerous_container_settings():
    sc = client.V1SecurityContext(run_as_user=0, privileged=True)
    d = deployment("web", containers=[container(security_context=sc)], security_context=SAFE_POD_CONTEXT)
    findings = check_security(snapshot(d))

    assert _types(findings) == [
        "container_allows_privilege_escalation",
        "container_privileged_mode",
        "container_running_as_root",
    ]
    assert {f.error_code for f in findings} == {"HYG-SEC-004", "HYG-SEC-005", "HYG-SEC-006"}
    assert all(f.details["container_name"] == "app" for f in findings)


def test_init_containers_are_labelled():
    d = deployment("web", containers=[hardened_container()], init_containers=[container(name="setup")],
                   security_context=SAFE_POD_CONTEXT)
    (f,) = check_security(snapshot(d))
    assert f.details["container_type"] == "init container"
    assert "'setup' (init container)" in f.message


def test_excluded_namespaces_are_skipped():
    assert check_security(snapshot(deployment("web", namespace="kube-system"))) == []
