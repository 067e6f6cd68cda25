# SPDX-License-Identifier: MIT

"""Resource providers and the per-run cluster snapshot.

Evaluators never talk to the API server directly. They read through a
``ClusterSnapshot``, which lists each kind at most once per run from a
``ResourceProvider`` and serves every later lookup from that cache.
"""

from __future__ import annotations

import logging
import os
import re
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Iterable

from kub_hygiene.errors import ProviderError, RunCancelled

logger = logging.getLogger(__name__)

# Kind -> kubernetes.client model class name
KIND_MODELS: dict[str, str] = {
    "Namespace": "V1Namespace",
    "Pod": "V1Pod",
    "Service": "V1Service",
    "Endpoints": "V1Endpoints",
    "ConfigMap": "V1ConfigMap",
    "Secret": "V1Secret",
    "ServiceAccount": "V1ServiceAccount",
    "PersistentVolumeClaim": "V1PersistentVolumeClaim",
    "Deployment": "V1Deployment",
    "StatefulSet": "V1StatefulSet",
    "DaemonSet": "V1DaemonSet",
    "Ingress": "V1Ingress",
    "IngressClass": "V1IngressClass",
    "NetworkPolicy": "V1NetworkPolicy",
    "StorageClass": "V1StorageClass",
}

CLUSTER_SCOPED = frozenset({"Namespace", "IngressClass", "StorageClass"})

_MODEL_PREFIX = re.compile(r"^V\d+(?:(?:alpha|beta)\d+)?")


def kind_of(obj: Any) -> str:
    """Return the Kubernetes kind of a client model object."""
    kind = getattr(obj, "kind", None)
    if kind:
        return kind
    return _MODEL_PREFIX.sub("", type(obj).__name__)


def identity(obj: Any) -> tuple[str, str]:
    meta = obj.metadata
    return (meta.namespace or "", meta.name or "")


class ResourceProvider(ABC):
    """Supplies typed lists of cluster objects."""

    @abstractmethod
    def list(self, kind: str, namespace: str | None = None) -> list[Any]:
        ...

    def get(self, kind: str, namespace: str, name: str) -> Any | None:
        for obj in self.list(kind, namespace or None):
            if identity(obj) == (namespace or "", name):
                return obj
        return None


class StaticProvider(ResourceProvider):
    """In-memory objects, e.g. a parsed manifest or test fixtures."""

    def __init__(self, objects: Iterable[Any] = ()) -> None:
        self._objects: dict[str, list[Any]] = defaultdict(list)
        for obj in objects:
            self.add(obj)

    def add(self, obj: Any) -> None:
        self._objects[kind_of(obj)].append(obj)

    def list(self, kind: str, namespace: str | None = None) -> list[Any]:
        items = self._objects.get(kind, [])
        if namespace is None or kind in CLUSTER_SCOPED:
            return list(items)
        return [o for o in items if (o.metadata.namespace or "") == namespace]


class MergedProvider(ResourceProvider):
    """Overlay objects shadow base objects with the same identity."""

    def __init__(self, base: ResourceProvider, overlay: ResourceProvider) -> None:
        self.base = base
        self.overlay = overlay

    def list(self, kind: str, namespace: str | None = None) -> list[Any]:
        overlay = self.overlay.list(kind, namespace)
        shadowed = {identity(o) for o in overlay}
        merged = list(overlay)
        merged.extend(o for o in self.base.list(kind, namespace) if identity(o) not in shadowed)
        return merged


def connect(kubeconfig: str = "~/.kube/config", context: str | None = None) -> Any:
    """Return an ``ApiClient`` from kubeconfig, falling back to in-cluster config."""
    from kubernetes import client, config
    from kubernetes.config.config_exception import ConfigException

    try:
        config.load_kube_config(config_file=os.path.expanduser(kubeconfig), context=context)
    except ConfigException:
        config.load_incluster_config()
    return client.ApiClient()


class KubernetesProvider(ResourceProvider):
    """Live cluster state through the official Kubernetes Python client."""

    def __init__(self, api_client: Any, namespace: str | None = None,
                 request_timeout: float | None = None) -> None:
        from kubernetes.client import AppsV1Api, CoreV1Api, NetworkingV1Api, StorageV1Api

        core = CoreV1Api(api_client)
        apps = AppsV1Api(api_client)
        net = NetworkingV1Api(api_client)
        storage = StorageV1Api(api_client)

        self.namespace = namespace
        self.request_timeout = request_timeout
        # kind -> (namespaced list fn, all-namespaces or cluster list fn)
        self._calls: dict[str, tuple[Callable[..., Any] | None, Callable[..., Any]]] = {
            "Namespace": (None, core.list_namespace),
            "Pod": (core.list_namespaced_pod, core.list_pod_for_all_namespaces),
            "Service": (core.list_namespaced_service, core.list_service_for_all_namespaces),
            "Endpoints": (core.list_namespaced_endpoints, core.list_endpoints_for_all_namespaces),
            "ConfigMap": (core.list_namespaced_config_map, core.list_config_map_for_all_namespaces),
            "Secret": (core.list_namespaced_secret, core.list_secret_for_all_namespaces),
            "ServiceAccount": (core.list_namespaced_service_account, core.list_service_account_for_all_namespaces),
            "PersistentVolumeClaim": (core.list_namespaced_persistent_volume_claim,
                                      core.list_persistent_volume_claim_for_all_namespaces),
            "Deployment": (apps.list_namespaced_deployment, apps.list_deployment_for_all_namespaces),
            "StatefulSet": (apps.list_namespaced_stateful_set, apps.list_stateful_set_for_all_namespaces),
            "DaemonSet": (apps.list_namespaced_daemon_set, apps.list_daemon_set_for_all_namespaces),
            "Ingress": (net.list_namespaced_ingress, net.list_ingress_for_all_namespaces),
            "IngressClass": (None, net.list_ingress_class),
            "NetworkPolicy": (net.list_namespaced_network_policy, net.list_network_policy_for_all_namespaces),
            "StorageClass": (None, storage.list_storage_class),
        }

    def list(self, kind: str, namespace: str | None = None) -> list[Any]:
        if kind not in self._calls:
            raise ProviderError(kind, "unsupported kind")
        namespaced_fn, all_fn = self._calls[kind]
        namespace = namespace or self.namespace
        kwargs: dict[str, Any] = {}
        if self.request_timeout:
            kwargs["_request_timeout"] = self.request_timeout
        try:
            if namespaced_fn is not None and namespace:
                result = namespaced_fn(namespace, **kwargs)
            else:
                result = all_fn(**kwargs)
        except Exception as exc:
            raise ProviderError(kind, str(exc)) from exc
        logger.debug("listed %d %s objects", len(result.items or []), kind)
        return list(result.items or [])


class ClusterSnapshot:
    """Point-in-time, per-run view of cluster state.

    Each kind is listed at most once. ``cancel`` is checked before every
    provider call so a shutdown never waits on more than one request.
    """

    def __init__(self, provider: ResourceProvider, cancel: threading.Event | None = None) -> None:
        self.provider = provider
        self.cancel = cancel
        self._cache: dict[str, list[Any]] = {}
        self._index: dict[str, dict[tuple[str, str], Any]] = {}
        self._lock = threading.Lock()

    def _load(self, kind: str) -> list[Any]:
        with self._lock:
            if kind in self._cache:
                return self._cache[kind]
            if self.cancel is not None and self.cancel.is_set():
                raise RunCancelled(f"cancelled before listing {kind}")
            items = self.provider.list(kind)
            self._cache[kind] = items
            self._index[kind] = {identity(o): o for o in items}
            return items

    def list(self, kind: str, namespace: str | None = None) -> list[Any]:
        items = self._load(kind)
        if namespace is None or kind in CLUSTER_SCOPED:
            return list(items)
        return [o for o in items if (o.metadata.namespace or "") == namespace]

    def get(self, kind: str, namespace: str, name: str) -> Any | None:
        self._load(kind)
        if kind in CLUSTER_SCOPED:
            namespace = ""
        return self._index[kind].get((namespace or "", name))

    def exists(self, kind: str, namespace: str, name: str) -> bool:
        return self.get(kind, namespace, name) is not None

    def by_namespace(self, kind: str) -> dict[str, list[Any]]:
        grouped: dict[str, list[Any]] = defaultdict(list)
        for obj in self._load(kind):
            grouped[obj.metadata.namespace or ""].append(obj)
        return grouped
