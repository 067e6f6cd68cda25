# SPDX-License-Identifier: MIT

"""Exception taxonomy."""

from __future__ import annotations


class HygieneError(Exception):
    """Base class for every error raised by kub_hygiene."""


class ProviderError(HygieneError):
    """The resource provider could not list or get a resource kind."""

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(f"cannot read {kind}: {message}")
        self.kind = kind


class EvaluatorError(HygieneError):
    """An evaluator failed for a reason other than reading cluster state."""

    def __init__(self, evaluator: str, message: str) -> None:
        super().__init__(f"evaluator {evaluator} failed: {message}")
        self.evaluator = evaluator


class RunAborted(HygieneError):
    """A fail-fast run stopped at the first failing evaluator."""

    def __init__(self, evaluator: str, cause: Exception) -> None:
        super().__init__(f"run aborted by evaluator {evaluator}: {cause}")
        self.evaluator = evaluator
        self.cause = cause


class RunCancelled(HygieneError):
    """The caller cancelled the run before it completed."""


class ManifestError(HygieneError):
    """A proposed manifest could not be parsed."""
