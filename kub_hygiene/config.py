# SPDX-License-Identifier: MIT

"""Check configuration and process settings."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from datetime import timedelta

from kubernetes.utils import parse_quantity

ALL_CHECKS = ("references", "resources", "security", "networking")

ENV_PREFIX = "KUB_HYGIENE_"


@dataclass
class SharedConfig:
    """Tunables shared by the rule evaluators."""

    system_namespaces: frozenset[str] = frozenset({
        "kube-system", "kube-public", "kube-node-lease", "default", "monitoring",
    })
    security_excluded_namespaces: frozenset[str] = frozenset({
        "kube-system", "kube-public", "kube-node-lease", "monitoring",
    })
    networking_excluded_namespaces: frozenset[str] = frozenset({
        "kube-system", "kube-public", "kube-node-lease", "monitoring",
    })
    batch_owner_kinds: frozenset[str] = frozenset({"Job", "CronJob"})
    unexposed_pod_prefixes: tuple[str, ...] = ("migration", "backup", "setup", "init")
    default_service_account: str = "default"
    policy_required_namespaces: frozenset[str] = frozenset()

    validate_service_accounts: bool = False
    warn_unexposed_pods: bool = False
    min_cpu_request: str | None = None
    min_memory_request: str | None = None
    enable_qos_validation: bool = False

    recommended_cpu_request: str = "100m"
    recommended_memory_request: str = "128Mi"
    recommended_cpu_limit: str = "500m"
    recommended_memory_limit: str = "256Mi"
    recommended_user_id: int = 1000

    def is_system_namespace(self, namespace: str) -> bool:
        return namespace in self.system_namespaces

    def is_security_excluded(self, namespace: str) -> bool:
        return namespace in self.security_excluded_namespaces

    def is_networking_excluded(self, namespace: str) -> bool:
        return namespace in self.networking_excluded_namespaces

    def is_unexposed_pod_name(self, name: str) -> bool:
        return any(len(name) > len(p) and name.startswith(p) for p in self.unexposed_pod_prefixes)


_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str) -> timedelta:
    """Parse ``30s``, ``5m``, ``1h``, ``2d`` or bare seconds."""
    m = _DURATION_RE.match(value)
    if not m:
        raise ValueError(f"invalid duration: {value!r}")
    seconds = float(m.group(1)) * _DURATION_UNITS[m.group(2)]
    if seconds <= 0:
        raise ValueError(f"duration must be positive: {value!r}")
    return timedelta(seconds=seconds)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"invalid boolean: {value!r}")


def _parse_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_request(name: str, value: str | None) -> str | None:
    if not value:
        return None
    try:
        parse_quantity(value)
    except ValueError as exc:
        raise ValueError(f"invalid {name}: {value!r}") from exc
    return value


@dataclass
class Settings:
    """Process settings for the periodic agent."""

    kubeconfig: str = "~/.kube/config"
    context: str | None = None
    namespace: str | None = None
    scan_interval: timedelta = timedelta(minutes=5)
    checks: list[str] = field(default_factory=lambda: list(ALL_CHECKS))
    resolved_retention: timedelta = timedelta(hours=24)
    request_timeout: float | None = 30.0
    log_level: str = "INFO"
    log_format: str = "text"
    checks_config: SharedConfig = field(default_factory=SharedConfig)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            return env.get(ENV_PREFIX + name)

        settings = cls()
        settings.kubeconfig = get("KUBECONFIG") or settings.kubeconfig
        settings.context = get("CONTEXT") or None
        settings.namespace = get("NAMESPACE") or None
        settings.log_level = (get("LOG_LEVEL") or settings.log_level).upper()

        interval = get("SCAN_INTERVAL")
        if interval:
            settings.scan_interval = parse_duration(interval)
        retention = get("RESOLVED_RETENTION")
        if retention:
            settings.resolved_retention = parse_duration(retention)
        timeout = get("REQUEST_TIMEOUT")
        if timeout:
            settings.request_timeout = parse_duration(timeout).total_seconds()

        checks = get("CHECKS")
        if checks:
            requested = _parse_list(checks)
            unknown = sorted(set(requested) - set(ALL_CHECKS))
            if unknown:
                raise ValueError(f"unknown checks: {', '.join(unknown)}")
            settings.checks = requested

        log_format = get("LOG_FORMAT")
        if log_format:
            if log_format not in ("text", "json"):
                raise ValueError(f"invalid log format: {log_format!r}")
            settings.log_format = log_format

        cfg = settings.checks_config
        cfg.warn_unexposed_pods = _parse_bool(get("WARN_UNEXPOSED_PODS") or "")
        cfg.validate_service_accounts = _parse_bool(get("VALIDATE_SERVICE_ACCOUNTS") or "")
        cfg.enable_qos_validation = _parse_bool(get("QOS_VALIDATION") or "")
        cfg.policy_required_namespaces = frozenset(_parse_list(get("POLICY_REQUIRED_NAMESPACES") or ""))
        cfg.min_cpu_request = _parse_request("minimum CPU request", get("MIN_CPU_REQUEST"))
        cfg.min_memory_request = _parse_request("minimum memory request", get("MIN_MEMORY_REQUEST"))
        return settings
