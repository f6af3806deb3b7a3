#!/usr/bin/env python3
"""Data models for seedbox maintenance."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .constants import DecisionKind, TorrentState
from .exceptions import MalformedRecordError
from .utils import tracker_hostname


def _number(record: Mapping[str, Any], key: str, torrent_id: str) -> float:
    value = record.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedRecordError(f"field '{key}' is missing or not a number: {value!r}", torrent_id)
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise MalformedRecordError(f"field '{key}' has invalid value {value!r}", torrent_id)
    return value


@dataclass(frozen=True)
class Snapshot:
    """Normalized, read-only view of one torrent for a single poll cycle."""
    torrent_id: str
    display_name: str
    trackers: Tuple[str, ...]
    file_count: int
    ratio: float
    seeding_seconds: int
    total_size: int = 0
    complete: bool = True

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Snapshot":
        """
        Build a snapshot from a raw record returned by the seed-box client.

        Args:
            record: Raw torrent record

        Returns:
            Normalized snapshot

        Raises:
            MalformedRecordError: If a required field is missing or invalid
        """
        torrent_id = record.get("hash")
        if not isinstance(torrent_id, str) or not torrent_id:
            raise MalformedRecordError(f"record has no torrent hash: {torrent_id!r}")

        trackers = record.get("trackers")
        if not isinstance(trackers, (list, tuple)):
            raise MalformedRecordError(f"field 'trackers' is not a list: {trackers!r}", torrent_id)
        hosts = []
        for announce in trackers:
            host = tracker_hostname(announce) if isinstance(announce, str) else None
            if host and host not in hosts:
                hosts.append(host)

        file_count = _number(record, "file_count", torrent_id)
        if file_count != int(file_count):
            raise MalformedRecordError(f"field 'file_count' is not whole: {file_count!r}", torrent_id)

        if "progress" in record:
            complete = _number(record, "progress", torrent_id) >= 1.0
        elif "state" in record:
            complete = record["state"] in {s.value for s in TorrentState.seeding_states()}
        else:
            complete = True

        size = record.get("size", 0)
        return cls(
            torrent_id=torrent_id,
            display_name=str(record.get("name") or torrent_id),
            trackers=tuple(hosts),
            file_count=int(file_count),
            ratio=float(_number(record, "ratio", torrent_id)),
            seeding_seconds=int(_number(record, "seeding_time", torrent_id)),
            total_size=int(size) if isinstance(size, (int, float)) and size > 0 else 0,
            complete=complete,
        )


@dataclass(frozen=True)
class Decision:
    """Deletion decision for one torrent in one cycle."""
    torrent_id: str
    policy_name: str
    delete_data: bool
    dry_run: bool
    display_name: str = ""
    clause_index: int = 0

    @property
    def kind(self) -> DecisionKind:
        if self.delete_data:
            return DecisionKind.DELETE_WITH_DATA
        return DecisionKind.DELETE_WITHOUT_DATA

    def format_action(self) -> str:
        """Format the action for logging."""
        action = "delete torrent+data" if self.delete_data else "delete torrent (keep data)"
        if self.dry_run:
            return f"would {action}"
        return action


@dataclass
class Evaluation:
    """Decisions for one cycle, partitioned by what has to happen."""
    delete_with_data: List[Decision] = field(default_factory=list)
    delete_without_data: List[Decision] = field(default_factory=list)
    no_action: List[str] = field(default_factory=list)
    matched_counts: Dict[str, int] = field(default_factory=dict)
    matched_sizes: Dict[str, int] = field(default_factory=dict)

    @property
    def decisions(self) -> List[Decision]:
        return self.delete_with_data + self.delete_without_data

    @property
    def total_deletions(self) -> int:
        return len(self.delete_with_data) + len(self.delete_without_data)

    def add(self, decision: Decision) -> None:
        if decision.kind == DecisionKind.DELETE_WITH_DATA:
            self.delete_with_data.append(decision)
        else:
            self.delete_without_data.append(decision)

    def get_stats(self) -> dict:
        return {
            "with_data": len(self.delete_with_data),
            "without_data": len(self.delete_without_data),
            "no_action": len(self.no_action),
        }


@dataclass
class CycleReport:
    """Outcome of one scheduler cycle, kept for status reporting."""
    instance: str
    started_at: datetime
    duration: float = 0.0
    success: bool = False
    error: Optional[str] = None
    fetched: int = 0
    malformed: int = 0
    evaluation: Optional[Evaluation] = None
    removed: int = 0
    removal_failures: int = 0
    dry_run: bool = True
    drift: bool = False

    def to_dict(self) -> dict:
        stats = self.evaluation.get_stats() if self.evaluation else {}
        return {
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration, 3),
            "success": self.success,
            "error": self.error,
            "fetched": self.fetched,
            "malformed": self.malformed,
            "decisions": stats,
            "removed": self.removed,
            "removal_failures": self.removal_failures,
            "dry_run": self.dry_run,
            "drift": self.drift,
        }
