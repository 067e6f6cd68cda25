"""
Shared fixtures and Kubernetes model builders.

Every object is a real ``kubernetes.client`` model, so the evaluators see
exactly the types the live provider returns.
"""

from datetime import datetime, timedelta, timezone

import pytest
from kubernetes import client

from kub_hygiene.models import Finding, Severity
from kub_hygiene.provider import ClusterSnapshot, StaticProvider

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def meta(name, namespace="app", labels=None, owner_kind=None):
    owners = None
    if owner_kind:
        owners = [client.V1OwnerReference(api_version="v1", kind=owner_kind, name=f"{name}-owner", uid="uid-1")]
    return client.V1ObjectMeta(name=name, namespace=namespace, labels=labels, owner_references=owners)


def container(name="app", ports=None, requests=None, limits=None, security_context=None,
              env_from=None, env=None):
    resources = None
    if requests is not None or limits is not None:
        resources = client.V1ResourceRequirements(requests=requests, limits=limits)
    return client.V1Container(
        name=name,
        image="registry.example.com/app:1.0",
        ports=[client.V1ContainerPort(container_port=p, name=n) for p, n in (ports or [])] or None,
        resources=resources,
        security_context=security_context,
        env_from=env_from,
        env=env,
    )


def pod(name, namespace="app", labels=None, ports=None, ready=True, owner_kind=None,
        containers=None, phase="Running", **spec_kwargs):
    conditions = [client.V1PodCondition(type="Ready", status="True" if ready else "False")]
    return client.V1Pod(
        metadata=meta(name, namespace, labels, owner_kind),
        spec=client.V1PodSpec(containers=containers or [container(ports=ports)], **spec_kwargs),
        status=client.V1PodStatus(phase=phase, conditions=conditions),
    )


def service(name, namespace="app", selector=None, ports=None, cluster_ip=None, type=None):
    """``ports`` is a list of ``(port, target_port, name)``."""
    return client.V1Service(
        metadata=meta(name, namespace),
        spec=client.V1ServiceSpec(
            selector=selector,
            ports=[client.V1ServicePort(port=p, target_port=t, name=n) for p, t, n in (ports or [])] or None,
            cluster_ip=cluster_ip,
            type=type,
        ),
    )


def endpoints(name, namespace="app", ips=("10.0.0.1",)):
    addresses = [client.V1EndpointAddress(ip=ip) for ip in ips] or None
    return client.V1Endpoints(
        metadata=meta(name, namespace),
        subsets=[client.V1EndpointSubset(addresses=addresses)],
    )


def network_policy(name, namespace="app", match_labels=None, match_expressions=None,
                   policy_types=None, ingress=None, egress=None):
    return client.V1NetworkPolicy(
        metadata=meta(name, namespace),
        spec=client.V1NetworkPolicySpec(
            pod_selector=client.V1LabelSelector(match_labels=match_labels, match_expressions=match_expressions),
            policy_types=policy_types,
            ingress=ingress,
            egress=egress,
        ),
    )


def ingress(name, namespace="app", service_name="web", port_number=None, port_name=None,
            class_name=None, tls_secret=None):
    port = None
    if port_number is not None or port_name is not None:
        port = client.V1ServiceBackendPort(number=port_number, name=port_name)
    backend = client.V1IngressBackend(service=client.V1IngressServiceBackend(name=service_name, port=port))
    path = client.V1HTTPIngressPath(path="/", path_type="Prefix", backend=backend)
    tls = [client.V1IngressTLS(hosts=["shop.example.com"], secret_name=tls_secret)] if tls_secret else None
    return client.V1Ingress(
        metadata=meta(name, namespace),
        spec=client.V1IngressSpec(
            ingress_class_name=class_name,
            rules=[client.V1IngressRule(host="shop.example.com",
                                        http=client.V1HTTPIngressRuleValue(paths=[path]))],
            tls=tls,
        ),
    )


def deployment(name, namespace="app", containers=None, labels=None, **spec_kwargs):
    labels = labels or {"app": name}
    return client.V1Deployment(
        metadata=meta(name, namespace, labels),
        spec=client.V1DeploymentSpec(
            selector=client.V1LabelSelector(match_labels=labels),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=labels),
                spec=client.V1PodSpec(containers=containers or [container()], **spec_kwargs),
            ),
        ),
    )


def hardened_container(name="app", **kwargs):
    """A container that passes every resource and security check."""
    return container(
        name=name,
        requests={"cpu": "100m", "memory": "128Mi"},
        limits={"cpu": "500m", "memory": "256Mi"},
        security_context=client.V1SecurityContext(
            run_as_user=1000, run_as_non_root=True, allow_privilege_escalation=False, privileged=False,
        ),
        **kwargs,
    )


def snapshot(*objects):
    return ClusterSnapshot(StaticProvider(objects))


def finding(name="web", validation_type="service_no_endpoints", error_code="HYG-NET-002",
            namespace="app", resource_type="Service", severity=Severity.ERROR, message="broken"):
    return Finding(resource_type, name, namespace, validation_type, error_code, message, severity=severity)


class FakeClock:
    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()
