#!/usr/bin/env python3
"""Retention rule structures: match gates, threshold clauses and policies.

All rule objects are frozen and validated on construction, so anything
that reaches the evaluator is known to be well-formed.
"""

import math
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional, Tuple

from .exceptions import InvariantViolation
from .models import Snapshot
from .utils import format_duration


def _check_bounds(kind: str, lower: Optional[float], upper: Optional[float]) -> None:
    for label, value in (("min", lower), ("max", upper)):
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            raise InvariantViolation(f"{label}_{kind} must be a number, got {value!r}")
        if value < 0:
            raise InvariantViolation(f"{label}_{kind} must not be negative, got {value!r}")
    if lower is not None and upper is not None and lower > upper:
        raise InvariantViolation(
            f"min_{kind} ({lower}) is greater than max_{kind} ({upper}); this can never match"
        )


@dataclass(frozen=True)
class MatchGate:
    """Coarse eligibility filter evaluated before any threshold clause."""
    trackers: FrozenSet[str] = frozenset()
    min_file_count: Optional[int] = None
    max_file_count: Optional[int] = None

    def __post_init__(self):
        hosts = frozenset(t.strip().lower() for t in self.trackers if t and t.strip())
        object.__setattr__(self, "trackers", hosts)
        _check_bounds("file_count", self.min_file_count, self.max_file_count)

    def matches(self, trackers: Iterable[str], file_count: int) -> bool:
        """Check tracker membership and file-count bounds."""
        if self.trackers and not self.trackers.intersection(t.lower() for t in trackers):
            return False
        if self.min_file_count is not None and file_count < self.min_file_count:
            return False
        if self.max_file_count is not None and file_count > self.max_file_count:
            return False
        return True

    def describe(self) -> str:
        parts = [f"trackers={sorted(self.trackers) or 'any'}"]
        if self.min_file_count is not None:
            parts.append(f"files>={self.min_file_count}")
        if self.max_file_count is not None:
            parts.append(f"files<={self.max_file_count}")
        return " ".join(parts)


@dataclass(frozen=True)
class Clause:
    """AND-combination of optional ratio and seeding-time bounds."""
    min_ratio: Optional[float] = None
    max_ratio: Optional[float] = None
    min_seeding_seconds: Optional[int] = None
    max_seeding_seconds: Optional[int] = None

    def __post_init__(self):
        if self.is_unbounded:
            raise InvariantViolation(
                "clause sets no bounds; set at least one of min_ratio, max_ratio, "
                "min_seeding_time, max_seeding_time - otherwise it matches every torrent"
            )
        _check_bounds("ratio", self.min_ratio, self.max_ratio)
        _check_bounds("seeding_time", self.min_seeding_seconds, self.max_seeding_seconds)

    @property
    def is_unbounded(self) -> bool:
        return (self.min_ratio is None and self.max_ratio is None
                and self.min_seeding_seconds is None and self.max_seeding_seconds is None)

    def matches(self, snapshot: Snapshot) -> bool:
        """Return True if every bound that is set holds for the snapshot."""
        if self.min_ratio is not None and snapshot.ratio < self.min_ratio:
            return False
        if self.max_ratio is not None and snapshot.ratio > self.max_ratio:
            return False
        if self.min_seeding_seconds is not None and snapshot.seeding_seconds < self.min_seeding_seconds:
            return False
        if self.max_seeding_seconds is not None and snapshot.seeding_seconds > self.max_seeding_seconds:
            return False
        return True

    def describe(self) -> str:
        parts = []
        if self.min_ratio is not None:
            parts.append(f"ratio>={self.min_ratio:g}")
        if self.max_ratio is not None:
            parts.append(f"ratio<={self.max_ratio:g}")
        if self.min_seeding_seconds is not None:
            parts.append(f"seeding>={format_duration(self.min_seeding_seconds)}")
        if self.max_seeding_seconds is not None:
            parts.append(f"seeding<={format_duration(self.max_seeding_seconds)}")
        return " & ".join(parts)


@dataclass(frozen=True)
class Policy:
    """A named match gate plus one or more OR'd clauses."""
    name: str
    gate: MatchGate = field(default_factory=MatchGate)
    clauses: Tuple[Clause, ...] = ()
    delete_data: bool = True

    def __post_init__(self):
        object.__setattr__(self, "clauses", tuple(self.clauses))
        if not self.name:
            raise InvariantViolation("policy name must not be empty")
        if not self.clauses:
            raise InvariantViolation(f"policy '{self.name}' has no clauses")

    def matching_clause(self, snapshot: Snapshot) -> Optional[int]:
        """
        Find the first clause that matches, if the gate lets the torrent through.

        Args:
            snapshot: Torrent to check

        Returns:
            Index of the first matching clause, or None
        """
        if not self.gate.matches(snapshot.trackers, snapshot.file_count):
            return None
        for index, clause in enumerate(self.clauses):
            if clause.matches(snapshot):
                return index
        return None

    def fires(self, snapshot: Snapshot) -> bool:
        return self.matching_clause(snapshot) is not None

    def describe(self) -> str:
        clauses = " | ".join(f"({c.describe()})" for c in self.clauses)
        return f"{self.name}: [{self.gate.describe()}] {clauses} delete_data={self.delete_data}"


@dataclass(frozen=True)
class RuleSet:
    """Ordered, immutable collection of an instance's policies."""
    policies: Tuple[Policy, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "policies", tuple(self.policies))
        seen = set()
        for policy in self.policies:
            if policy.name in seen:
                raise InvariantViolation(f"duplicate policy name '{policy.name}'")
            seen.add(policy.name)

    def __iter__(self):
        return iter(self.policies)

    def __len__(self) -> int:
        return len(self.policies)
