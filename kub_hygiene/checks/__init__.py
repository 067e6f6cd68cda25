# SPDX-License-Identifier: MIT

"""Rule evaluator registry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from kub_hygiene.checks.networking import check_networking
from kub_hygiene.checks.references import check_references
from kub_hygiene.checks.resources import check_resources
from kub_hygiene.checks.security import check_security
from kub_hygiene.config import ALL_CHECKS, SharedConfig
from kub_hygiene.models import Finding
from kub_hygiene.provider import ClusterSnapshot

CheckFunc = Callable[[ClusterSnapshot, SharedConfig], "list[Finding]"]

CHECKS: dict[str, CheckFunc] = {
    "references": check_references,
    "resources": check_resources,
    "security": check_security,
    "networking": check_networking,
}


@dataclass
class Evaluator:
    """A named check bound to its configuration."""

    name: str
    func: CheckFunc
    config: SharedConfig

    def evaluate(self, snap: ClusterSnapshot) -> list[Finding]:
        return self.func(snap, self.config)


def build_evaluators(config: SharedConfig | None = None,
                     checks: list[str] | None = None) -> list[Evaluator]:
    """Return the enabled evaluators in their fixed registration order."""
    config = config if config is not None else SharedConfig()
    enabled = set(ALL_CHECKS if checks is None else checks)
    unknown = sorted(enabled - set(CHECKS))
    if unknown:
        raise ValueError(f"unknown checks: {', '.join(unknown)}")
    return [Evaluator(name, func, config) for name, func in CHECKS.items() if name in enabled]


__all__ = ["CHECKS", "Evaluator", "build_evaluators"]
