# SPDX-License-Identifier: MIT

"""Helpers shared by the workload-level checks."""

from __future__ import annotations

from typing import Any, Iterator, NamedTuple

from kubernetes import utils

from kub_hygiene.provider import ClusterSnapshot

WORKLOAD_KINDS = ("Deployment", "StatefulSet", "DaemonSet")


class Workload(NamedTuple):
    kind: str
    name: str
    namespace: str
    pod_spec: Any


def iter_workloads(snap: ClusterSnapshot) -> Iterator[Workload]:
    """Yield every controller pod template plus bare (unowned) Pods.

    Pods created by a controller are reported once through their owner.
    """
    for kind in WORKLOAD_KINDS:
        for obj in snap.list(kind):
            template = obj.spec.template if obj.spec else None
            if template is None or template.spec is None:
                continue
            yield Workload(kind, obj.metadata.name, obj.metadata.namespace or "", template.spec)

    for pod in snap.list("Pod"):
        if pod.metadata.owner_references:
            continue
        if pod.status is not None and pod.status.phase in ("Succeeded", "Failed"):
            continue
        if pod.spec is None:
            continue
        yield Workload("Pod", pod.metadata.name, pod.metadata.namespace or "", pod.spec)


def all_containers(pod_spec: Any) -> list[Any]:
    return list(pod_spec.init_containers or []) + list(pod_spec.containers or [])


def parse_quantity(val: str | int | float) -> float:
    """Kubernetes quantity (``250m``, ``1Gi``, ``500u``, ``2E``) as a float.

    Raises ``ValueError`` for a malformed value or unknown suffix.
    """
    return float(utils.parse_quantity(val))
