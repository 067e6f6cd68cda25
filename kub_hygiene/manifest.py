# SPDX-License-Identifier: MIT

"""Proposed-manifest loading.

Manifests are already-rendered multi-document YAML. Documents of a supported
kind are turned into ``kubernetes.client`` models so the evaluators see the
same types the live provider returns.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

import yaml
from kubernetes.client import ApiClient

from kub_hygiene.errors import ManifestError
from kub_hygiene.models import ResourceKey
from kub_hygiene.provider import CLUSTER_SCOPED, KIND_MODELS, StaticProvider

logger = logging.getLogger(__name__)

_TEMPLATE_RE = re.compile(r"\{\{.*?\}\}")


@dataclass
class Manifest:
    objects: list[Any] = field(default_factory=list)
    subjects: set[ResourceKey] = field(default_factory=set)
    unsupported: list[ResourceKey] = field(default_factory=list)

    def provider(self) -> StaticProvider:
        return StaticProvider(self.objects)

    def __len__(self) -> int:
        return len(self.subjects)


def _documents(text: str) -> list[dict[str, Any]]:
    try:
        raw = list(yaml.safe_load_all(text))
    except yaml.YAMLError as exc:
        raise ManifestError(f"invalid YAML: {exc}") from exc

    docs: list[dict[str, Any]] = []
    for index, doc in enumerate(raw):
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise ManifestError(f"document {index} is not a mapping")
        # kind: List wrappers, as produced by kubectl get -o yaml
        if str(doc.get("kind") or "").endswith("List") and isinstance(doc.get("items"), list):
            docs.extend(item for item in doc["items"] if isinstance(item, dict))
            continue
        docs.append(doc)
    return docs


def _stringify_quantities(node: Any) -> Any:
    """Turn bare numbers under ``requests``/``limits`` into quantity strings.

    YAML reads ``cpu: 1`` as an int; the API server accepts it but the typed
    models only take strings.
    """
    if isinstance(node, list):
        return [_stringify_quantities(item) for item in node]
    if not isinstance(node, dict):
        return node
    out = {}
    for key, value in node.items():
        if key in ("requests", "limits") and isinstance(value, dict):
            value = {
                resource: str(q) if isinstance(q, (int, float)) and not isinstance(q, bool) else q
                for resource, q in value.items()
            }
        out[key] = _stringify_quantities(value)
    return out


def load_manifest(text: str, default_namespace: str = "default") -> Manifest:
    """Parse ``text`` into typed objects plus the set of subject identities.

    Every document becomes a subject, whether or not its kind is one the
    evaluators understand.
    """
    match = _TEMPLATE_RE.search(text)
    if match:
        raise ManifestError(f"manifest contains unrendered template expression {match.group(0)!r}")

    api = ApiClient()
    manifest = Manifest()
    for doc in _documents(text):
        kind = doc.get("kind")
        metadata = doc.get("metadata") or {}
        if not isinstance(kind, str) or not isinstance(metadata, dict):
            raise ManifestError("every document needs a string kind and a metadata mapping")
        name = metadata.get("name")
        if not kind or not name:
            raise ManifestError("every document needs kind and metadata.name")

        metadata = dict(metadata)
        if kind in CLUSTER_SCOPED:
            metadata.pop("namespace", None)
            namespace = ""
        else:
            namespace = metadata.get("namespace") or default_namespace
            metadata["namespace"] = namespace
        doc = _stringify_quantities(dict(doc, metadata=metadata))

        key = ResourceKey(kind, name, namespace)
        manifest.subjects.add(key)

        model = KIND_MODELS.get(kind)
        if model is None:
            logger.debug("no evaluator reads %s, kept as subject only", key)
            manifest.unsupported.append(key)
            continue
        try:
            obj = api.deserialize(json.dumps(doc, default=str), model, "application/json")
        except (ValueError, TypeError) as exc:
            raise ManifestError(f"{key}: {exc}") from exc
        manifest.objects.append(obj)

    return manifest


def load_manifest_file(path: str, default_namespace: str = "default") -> Manifest:
    try:
        with open(path, encoding="utf-8") as fh:
            text = fh.read()
    except OSError as exc:
        raise ManifestError(f"cannot read {path}: {exc}") from exc
    return load_manifest(text, default_namespace=default_namespace)
