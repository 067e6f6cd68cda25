# SPDX-License-Identifier: MIT

"""Kubernetes configuration-hygiene scanner.

Finds dangling references, missing resource limits, insecure settings and
broken service connectivity, either periodically against a live cluster or
once against a proposed manifest.
"""

from kub_hygiene.errors import (
    EvaluatorError,
    HygieneError,
    ManifestError,
    ProviderError,
    RunAborted,
    RunCancelled,
)
from kub_hygiene.models import Finding, FindingKey, Severity, TemporalState

__version__ = "0.1.0"

__all__ = [
    "EvaluatorError",
    "Finding",
    "FindingKey",
    "HygieneError",
    "ManifestError",
    "ProviderError",
    "RunAborted",
    "RunCancelled",
    "Severity",
    "TemporalState",
    "__version__",
]
