# SPDX-License-Identifier: MIT

"""Dangling reference checks.

Each check resolves a name referenced from a workload, Ingress or PVC
against the snapshot and reports references to objects that do not exist.
References marked ``optional: true`` are allowed to dangle.
"""

from __future__ import annotations

from typing import Any

from kub_hygiene.checks.workloads import all_containers, iter_workloads
from kub_hygiene.config import SharedConfig
from kub_hygiene.models import Finding
from kub_hygiene.provider import ClusterSnapshot

ERROR_CODES = {
    "dangling_ingress_class": "HYG-REF-001",
    "dangling_configmap_volume": "HYG-REF-003",
    "dangling_configmap_envfrom": "HYG-REF-004",
    "dangling_secret_volume": "HYG-REF-005",
    "dangling_secret_envfrom": "HYG-REF-006",
    "dangling_secret_env": "HYG-REF-007",
    "dangling_tls_secret": "HYG-REF-008",
    "dangling_storage_class": "HYG-REF-009",
    "dangling_pvc_reference": "HYG-REF-010",
    "dangling_service_account": "HYG-REF-011",
}


def _dangling(kind: str, name: str, ns: str, validation_type: str, target_kind: str,
              target: str, where: str, **details: Any) -> Finding:
    scope = f" in namespace '{ns}'" if target_kind not in ("IngressClass", "StorageClass") else ""
    return Finding(
        kind, name, ns, validation_type, ERROR_CODES[validation_type],
        f"{target_kind} '{target}' referenced in {where} does not exist",
        remediation_hint=f"Create {target_kind} '{target}'{scope} or update the reference "
                         f"to an existing {target_kind}",
        related_resources=[f"{target_kind}/{target}"],
        details=details,
    )


def _check_pod_spec(snap: ClusterSnapshot, kind: str, name: str, ns: str, pod_spec: Any,
                    config: SharedConfig) -> list[Finding]:
    findings: list[Finding] = []

    for volume in pod_spec.volumes or []:
        cm = volume.config_map
        if cm is not None and cm.name and not cm.optional and not snap.exists("ConfigMap", ns, cm.name):
            findings.append(_dangling(kind, name, ns, "dangling_configmap_volume", "ConfigMap",
                                      cm.name, "volume", missing_configmap=cm.name,
                                      volume_name=volume.name))
        secret = volume.secret
        if (secret is not None and secret.secret_name and not secret.optional
                and not snap.exists("Secret", ns, secret.secret_name)):
            findings.append(_dangling(kind, name, ns, "dangling_secret_volume", "Secret",
                                      secret.secret_name, "volume", missing_secret=secret.secret_name,
                                      volume_name=volume.name))
        pvc = volume.persistent_volume_claim
        if pvc is not None and not snap.exists("PersistentVolumeClaim", ns, pvc.claim_name):
            findings.append(_dangling(kind, name, ns, "dangling_pvc_reference", "PersistentVolumeClaim",
                                      pvc.claim_name, "volume", missing_pvc=pvc.claim_name,
                                      volume_name=volume.name))

    for container in all_containers(pod_spec):
        for env_from in container.env_from or []:
            cm_ref = env_from.config_map_ref
            if (cm_ref is not None and not cm_ref.optional
                    and not snap.exists("ConfigMap", ns, cm_ref.name)):
                findings.append(_dangling(kind, name, ns, "dangling_configmap_envfrom", "ConfigMap",
                                          cm_ref.name, "envFrom", missing_configmap=cm_ref.name,
                                          container_name=container.name))
            secret_ref = env_from.secret_ref
            if (secret_ref is not None and not secret_ref.optional
                    and not snap.exists("Secret", ns, secret_ref.name)):
                findings.append(_dangling(kind, name, ns, "dangling_secret_envfrom", "Secret",
                                          secret_ref.name, "envFrom", missing_secret=secret_ref.name,
                                          container_name=container.name))
        for env in container.env or []:
            key_ref = env.value_from.secret_key_ref if env.value_from else None
            if key_ref is None or key_ref.optional or snap.exists("Secret", ns, key_ref.name):
                continue
            findings.append(_dangling(kind, name, ns, "dangling_secret_env", "Secret",
                                      key_ref.name, "env", missing_secret=key_ref.name,
                                      container_name=container.name, env_var_name=env.name))

    if config.validate_service_accounts:
        sa = pod_spec.service_account_name or config.default_service_account
        if not snap.exists("ServiceAccount", ns, sa):
            findings.append(_dangling(kind, name, ns, "dangling_service_account", "ServiceAccount",
                                      sa, "pod spec", missing_service_account=sa))
    return findings


def _check_ingresses(snap: ClusterSnapshot, config: SharedConfig) -> list[Finding]:
    findings: list[Finding] = []
    for ing in snap.list("Ingress"):
        meta = ing.metadata
        ns = meta.namespace or ""
        if config.is_system_namespace(ns):
            continue
        class_name = ing.spec.ingress_class_name
        if class_name and not snap.exists("IngressClass", "", class_name):
            findings.append(_dangling("Ingress", meta.name, ns, "dangling_ingress_class", "IngressClass",
                                      class_name, "Ingress", missing_class=class_name))
        for tls in ing.spec.tls or []:
            if tls.secret_name and not snap.exists("Secret", ns, tls.secret_name):
                findings.append(_dangling("Ingress", meta.name, ns, "dangling_tls_secret", "Secret",
                                          tls.secret_name, "Ingress TLS", missing_secret=tls.secret_name,
                                          tls_hosts=list(tls.hosts or [])))
    return findings


def _check_pvcs(snap: ClusterSnapshot, config: SharedConfig) -> list[Finding]:
    findings: list[Finding] = []
    for pvc in snap.list("PersistentVolumeClaim"):
        meta = pvc.metadata
        ns = meta.namespace or ""
        if config.is_system_namespace(ns):
            continue
        class_name = pvc.spec.storage_class_name
        if class_name and not snap.exists("StorageClass", "", class_name):
            findings.append(_dangling("PersistentVolumeClaim", meta.name, ns, "dangling_storage_class",
                                      "StorageClass", class_name, "PersistentVolumeClaim",
                                      missing_storage_class=class_name))
    return findings


def check_references(snap: ClusterSnapshot, config: SharedConfig | None = None) -> list[Finding]:
    config = config if config is not None else SharedConfig()
    findings = _check_ingresses(snap, config)
    for wl in iter_workloads(snap):
        if config.is_system_namespace(wl.namespace):
            continue
        findings.extend(_check_pod_spec(snap, wl.kind, wl.name, wl.namespace, wl.pod_spec, config))
    findings.extend(_check_pvcs(snap, config))
    return findings
