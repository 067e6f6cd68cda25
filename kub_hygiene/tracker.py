# SPDX-License-Identifier: MIT

"""Temporal state tracking across runs.

The tracker diffs each run's findings against what it has seen before,
classifies every active finding by age (new, recent, stable) and detects
resolution: a key that was active in the previous run and is absent from
this one. Age is always measured from ``first_seen``.

A key that reappears after resolution starts over with a fresh
``first_seen`` and emits a ``created`` transition from ``resolved``.
Resolved entries are kept for ``retention`` so reopen transitions stay
visible, then evicted.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from kub_hygiene.models import (
    ClassifiedFinding,
    Finding,
    FindingKey,
    TemporalState,
    TrackedState,
    Transition,
    TransitionKind,
    classify_age,
)

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(hours=24)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TrackerUpdate:
    """What one ``update`` call observed."""

    records: list[ClassifiedFinding] = field(default_factory=list)
    transitions: list[Transition] = field(default_factory=list)
    evicted: int = 0

    @property
    def resolved(self) -> list[Transition]:
        return [t for t in self.transitions if t.kind == TransitionKind.RESOLVED]

    @property
    def created(self) -> list[Transition]:
        return [t for t in self.transitions if t.kind == TransitionKind.CREATED]


class TemporalStateTracker:
    def __init__(self, retention: timedelta = DEFAULT_RETENTION,
                 clock: Callable[[], datetime] = utcnow) -> None:
        if retention <= timedelta(0):
            raise ValueError("retention must be positive")
        self.retention = retention
        self.clock = clock
        self._store: dict[FindingKey, TrackedState] = {}
        self._lock = threading.Lock()

    def update(self, findings: Iterable[Finding], now: datetime | None = None) -> TrackerUpdate:
        """Apply one run's findings.

        The store lock is held for the whole diff so readers never observe a
        half-applied run.
        """
        now = now or self.clock()
        current: dict[FindingKey, Finding] = {}
        for finding in findings:
            # First occurrence wins.
            current.setdefault(finding.key, finding)

        result = TrackerUpdate()
        with self._lock:
            for key, finding in current.items():
                entry = self._store.get(key)
                if entry is None or not entry.state.active:
                    from_state = entry.state if entry is not None else None
                    entry = TrackedState(first_seen=now, last_seen=now, finding=finding)
                    self._store[key] = entry
                    result.transitions.append(Transition(
                        key, TransitionKind.CREATED, from_state, entry.state, now, finding))
                    continue

                entry.last_seen = max(now, entry.last_seen)
                entry.occurrence_count += 1
                entry.finding = finding
                new_state = classify_age(entry.age(now))
                if new_state != entry.state:
                    result.transitions.append(Transition(
                        key, TransitionKind.STATE_CHANGED, entry.state, new_state, now, finding))
                    entry.state = new_state

            for key, entry in self._store.items():
                if not entry.state.active or key in current:
                    continue
                result.transitions.append(Transition(
                    key, TransitionKind.RESOLVED, entry.state, TemporalState.RESOLVED, now, entry.finding))
                entry.state = TemporalState.RESOLVED
                entry.resolved_at = now

            for key, finding in current.items():
                entry = self._store[key]
                result.records.append(ClassifiedFinding(
                    finding=finding,
                    state=entry.state,
                    first_seen=entry.first_seen,
                    last_seen=entry.last_seen,
                    occurrence_count=entry.occurrence_count,
                    age=entry.age(now),
                ))

            result.evicted = self._evict_locked(now)

        logger.debug(
            "tracker update: %d active, %d transitions, %d evicted",
            len(result.records), len(result.transitions), result.evicted,
        )
        return result

    def _evict_locked(self, now: datetime) -> int:
        expired = [
            key for key, entry in self._store.items()
            if entry.resolved_at is not None and now - entry.resolved_at >= self.retention
        ]
        for key in expired:
            del self._store[key]
        return len(expired)

    def evict(self, now: datetime | None = None) -> int:
        now = now or self.clock()
        with self._lock:
            return self._evict_locked(now)

    def states(self) -> dict[FindingKey, TrackedState]:
        """Copy of the whole store."""
        with self._lock:
            return {key: replace(entry) for key, entry in self._store.items()}

    def get(self, key: FindingKey) -> TrackedState | None:
        with self._lock:
            entry = self._store.get(key)
            return replace(entry) if entry is not None else None

    def active_keys(self) -> set[FindingKey]:
        with self._lock:
            return {key for key, entry in self._store.items() if entry.state.active}

    def resolved_since(self, since: datetime) -> list[FindingKey]:
        with self._lock:
            return [
                key for key, entry in self._store.items()
                if entry.resolved_at is not None and entry.resolved_at >= since
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
