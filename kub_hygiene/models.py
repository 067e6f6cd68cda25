# SPDX-License-Identifier: MIT

"""Finding, identity and lifecycle types shared by every component."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def sort_order(self) -> int:
        return {Severity.ERROR: 0, Severity.WARNING: 1, Severity.INFO: 2}[self]


class TemporalState(str, Enum):
    NEW = "new"
    RECENT = "recent"
    STABLE = "stable"
    RESOLVED = "resolved"

    @property
    def active(self) -> bool:
        return self is not TemporalState.RESOLVED


class TransitionKind(str, Enum):
    CREATED = "created"
    STATE_CHANGED = "state_changed"
    RESOLVED = "resolved"


NEW_THRESHOLD = timedelta(hours=1)
STABLE_THRESHOLD = timedelta(hours=24)


def classify_age(age: timedelta) -> TemporalState:
    """Map the age of an active finding to its temporal state.

    The upper bound of each band is exclusive: exactly one hour is RECENT
    and exactly 24 hours is STABLE.
    """
    if age < NEW_THRESHOLD:
        return TemporalState.NEW
    if age < STABLE_THRESHOLD:
        return TemporalState.RECENT
    return TemporalState.STABLE


@dataclass(frozen=True)
class ResourceKey:
    kind: str
    name: str
    namespace: str = ""

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"


@dataclass(frozen=True)
class FindingKey:
    namespace: str
    resource_name: str
    resource_type: str
    validation_type: str
    error_code: str

    def __str__(self) -> str:
        return "/".join((
            self.namespace, self.resource_type, self.resource_name,
            self.validation_type, self.error_code,
        ))


@dataclass
class Finding:
    resource_type: str
    resource_name: str
    namespace: str
    validation_type: str
    error_code: str
    message: str
    severity: Severity = Severity.ERROR
    remediation_hint: str = ""
    related_resources: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> FindingKey:
        return FindingKey(
            self.namespace, self.resource_name, self.resource_type,
            self.validation_type, self.error_code,
        )

    @property
    def subject(self) -> ResourceKey:
        return ResourceKey(self.resource_type, self.resource_name, self.namespace)

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource_type": self.resource_type,
            "resource_name": self.resource_name,
            "namespace": self.namespace,
            "validation_type": self.validation_type,
            "error_code": self.error_code,
            "severity": self.severity.value,
            "message": self.message,
            "remediation_hint": self.remediation_hint,
            "related_resources": list(self.related_resources),
            "details": dict(self.details),
        }


@dataclass
class TrackedState:
    first_seen: datetime
    last_seen: datetime
    occurrence_count: int = 1
    state: TemporalState = TemporalState.NEW
    resolved_at: datetime | None = None
    finding: Finding | None = None

    def age(self, now: datetime) -> timedelta:
        return now - self.first_seen

    def to_dict(self) -> dict[str, Any]:
        return {
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "occurrence_count": self.occurrence_count,
            "state": self.state.value,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


@dataclass(frozen=True)
class Transition:
    key: FindingKey
    kind: TransitionKind
    from_state: TemporalState | None
    to_state: TemporalState
    at: datetime
    finding: Finding | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": str(self.key),
            "kind": self.kind.value,
            "from_state": self.from_state.value if self.from_state else None,
            "to_state": self.to_state.value,
            "at": self.at.isoformat(),
        }


@dataclass(frozen=True)
class ClassifiedFinding:
    finding: Finding
    state: TemporalState
    first_seen: datetime
    last_seen: datetime
    occurrence_count: int
    age: timedelta

    @property
    def age_hours(self) -> float:
        return self.age.total_seconds() / 3600

    def to_dict(self) -> dict[str, Any]:
        d = self.finding.to_dict()
        d.update({
            "state": self.state.value,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "occurrence_count": self.occurrence_count,
            "age_hours": round(self.age_hours, 3),
        })
        return d


@dataclass
class CheckResult:
    """Outcome of one evaluator within one run."""

    name: str
    findings: list[Finding] = field(default_factory=list)
    error: Exception | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.WARNING)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "findings_count": len(self.findings),
            "error_count": self.error_count,
            "warning_count": self.warning_count,
            "error": str(self.error) if self.error else None,
            "duration_ms": round(self.duration_ms, 1),
        }
