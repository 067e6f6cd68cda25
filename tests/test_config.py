"""
Tests for settings loading and check configuration.
"""

from datetime import timedelta

import pytest

from kub_hygiene.config import ALL_CHECKS, SharedConfig, Settings, parse_duration


class TestParseDuration:
    @pytest.mark.parametrize("raw, expected", [
        ("30s", timedelta(seconds=30)),
        ("5m", timedelta(minutes=5)),
        ("1h", timedelta(hours=1)),
        ("2d", timedelta(days=2)),
        ("90", timedelta(seconds=90)),
        (" 1.5h ", timedelta(minutes=90)),
    ])
    def test_valid(self, raw, expected):
        assert parse_duration(raw) == expected

    @pytest.mark.parametrize("raw", ["", "five minutes", "10y", "0s", "-5m"])
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_duration(raw)


class TestSettingsFromEnv:
    def test_defaults(self):
        s = Settings.from_env({})
        assert s.scan_interval == timedelta(minutes=5)
        assert s.resolved_retention == timedelta(hours=24)
        assert s.checks == list(ALL_CHECKS)
        assert s.log_format == "text"
        assert s.namespace is None
        assert not s.checks_config.warn_unexposed_pods
        assert not s.checks_config.enable_qos_validation
        assert s.checks_config.policy_required_namespaces == frozenset()

    def test_overrides(self):
        s = Settings.from_env({
            "KUB_HYGIENE_KUBECONFIG": "/etc/kube/admin.conf",
            "KUB_HYGIENE_CONTEXT": "prod",
            "KUB_HYGIENE_NAMESPACE": "shop",
            "KUB_HYGIENE_SCAN_INTERVAL": "30s",
            "KUB_HYGIENE_RESOLVED_RETENTION": "2h",
            "KUB_HYGIENE_REQUEST_TIMEOUT": "10",
            "KUB_HYGIENE_CHECKS": "networking, security",
            "KUB_HYGIENE_LOG_LEVEL": "debug",
            "KUB_HYGIENE_LOG_FORMAT": "json",
            "KUB_HYGIENE_WARN_UNEXPOSED_PODS": "true",
            "KUB_HYGIENE_VALIDATE_SERVICE_ACCOUNTS": "yes",
            "KUB_HYGIENE_MIN_CPU_REQUEST": "50m",
            "KUB_HYGIENE_MIN_MEMORY_REQUEST": "1Pi",
            "KUB_HYGIENE_QOS_VALIDATION": "on",
            "KUB_HYGIENE_POLICY_REQUIRED_NAMESPACES": "payments, shop",
        })
        assert s.kubeconfig == "/etc/kube/admin.conf"
        assert s.context == "prod"
        assert s.namespace == "shop"
        assert s.scan_interval == timedelta(seconds=30)
        assert s.resolved_retention == timedelta(hours=2)
        assert s.request_timeout == 10.0
        assert s.checks == ["networking", "security"]
        assert s.log_level == "DEBUG"
        assert s.log_format == "json"
        assert s.checks_config.warn_unexposed_pods
        assert s.checks_config.validate_service_accounts
        assert s.checks_config.min_cpu_request == "50m"
        assert s.checks_config.min_memory_request == "1Pi"
        assert s.checks_config.enable_qos_validation
        assert s.checks_config.policy_required_namespaces == {"payments", "shop"}

    @pytest.mark.parametrize("env", [
        {"KUB_HYGIENE_SCAN_INTERVAL": "soon"},
        {"KUB_HYGIENE_CHECKS": "networking,images"},
        {"KUB_HYGIENE_LOG_FORMAT": "xml"},
        {"KUB_HYGIENE_WARN_UNEXPOSED_PODS": "maybe"},
        {"KUB_HYGIENE_MIN_CPU_REQUEST": "a little"},
        {"KUB_HYGIENE_MIN_MEMORY_REQUEST": "12ki"},
    ])
    def test_invalid_values_fail_at_startup(self, env):
        with pytest.raises(ValueError):
            Settings.from_env(env)


class TestSharedConfig:
    def test_namespace_classification(self):
        cfg = SharedConfig()
        assert cfg.is_system_namespace("kube-system")
        assert cfg.is_system_namespace("default")
        assert not cfg.is_security_excluded("default")
        assert cfg.is_networking_excluded("monitoring")

    def test_unexposed_pod_prefixes(self):
        cfg = SharedConfig()
        assert cfg.is_unexposed_pod_name("migration-1")
        assert cfg.is_unexposed_pod_name("init-db")
        assert not cfg.is_unexposed_pod_name("init")
        assert not cfg.is_unexposed_pod_name("web-migration")
