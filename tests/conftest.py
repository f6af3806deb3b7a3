"""Shared fixtures for the seedbox-maintenance test suite."""

import threading
from typing import Dict, List, Optional

import pytest

from seedbox_maintenance.config import Instance
from seedbox_maintenance.exceptions import RPCError
from seedbox_maintenance.metrics import MetricsRegistry
from seedbox_maintenance.models import Snapshot
from seedbox_maintenance.rules import Clause, MatchGate, Policy, RuleSet

HOURS = 3600
DAYS = 86400


def make_record(torrent_hash: str = "abc123", trackers=("https://tracker-hostname.horse:443/announce",),
                file_count: int = 3, ratio: float = 1.5, seeding_time: int = 13 * HOURS,
                name: Optional[str] = None, state: str = "stalledUP", size: int = 1000) -> Dict:
    """Build a raw record the way SeedboxClient.fetch_torrents returns it."""
    return {
        "hash": torrent_hash,
        "name": name or f"torrent-{torrent_hash}",
        "state": state,
        "ratio": ratio,
        "seeding_time": seeding_time,
        "size": size,
        "trackers": list(trackers),
        "file_count": file_count,
    }


def make_snapshot(torrent_id: str = "abc123", trackers=("tracker-hostname.horse",), file_count: int = 3,
                  ratio: float = 1.5, seeding_seconds: int = 13 * HOURS, complete: bool = True,
                  total_size: int = 1000) -> Snapshot:
    return Snapshot(
        torrent_id=torrent_id,
        display_name=f"torrent-{torrent_id}",
        trackers=tuple(trackers),
        file_count=file_count,
        ratio=ratio,
        seeding_seconds=seeding_seconds,
        total_size=total_size,
        complete=complete,
    )


def horse_policy(name: str = "horse", delete_data: bool = True) -> Policy:
    """Gate on the horse tracker with 2+ files; delete at 1.4 ratio after 12h, or after 365d."""
    return Policy(
        name=name,
        gate=MatchGate(trackers=frozenset({"tracker-hostname.horse"}), min_file_count=2),
        clauses=(
            Clause(min_ratio=1.4, min_seeding_seconds=12 * HOURS),
            Clause(min_seeding_seconds=365 * DAYS),
        ),
        delete_data=delete_data,
    )


def make_instance(name: str = "x", policies=None, poll_interval: int = 60) -> Instance:
    return Instance(
        url=f"http://{name}.example:8080",
        name=name,
        rules=RuleSet(policies=tuple(policies if policies is not None else [horse_policy()])),
        poll_interval=poll_interval,
    )


class FakeClient:
    """In-memory stand-in for SeedboxClient."""

    def __init__(self, records: Optional[List[Dict]] = None, fetch_errors=None, fail_remove=()):
        self.records = list(records or [])
        self.fetch_errors = list(fetch_errors or [])
        self.fail_remove = set(fail_remove)
        self.removed = []
        self.fetch_calls = 0
        self.disconnected = False
        self.fetched = threading.Event()
        self._lock = threading.Lock()

    def fetch_torrents(self) -> List[Dict]:
        with self._lock:
            self.fetch_calls += 1
            error = self.fetch_errors.pop(0) if self.fetch_errors else None
        self.fetched.set()
        if error is not None:
            raise error
        return [dict(r) for r in self.records]

    def remove_torrent(self, torrent_id: str, delete_data: bool) -> bool:
        if torrent_id in self.fail_remove:
            raise RPCError(f"refused to remove {torrent_id}")
        with self._lock:
            self.removed.append((torrent_id, delete_data))
        return True

    def disconnect(self) -> None:
        self.disconnected = True


@pytest.fixture
def metrics():
    return MetricsRegistry()


@pytest.fixture
def rules():
    return RuleSet(policies=(horse_policy(),))
