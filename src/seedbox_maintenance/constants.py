#!/usr/bin/env python3
"""Constants and enumerations for seedbox maintenance."""

from enum import Enum
from typing import Final

# Time constants
SECONDS_PER_MINUTE: Final[int] = 60
SECONDS_PER_HOUR: Final[int] = 3600
SECONDS_PER_DAY: Final[int] = 86400
SECONDS_PER_WEEK: Final[int] = 7 * SECONDS_PER_DAY

# Network constants
DEFAULT_TIMEOUT: Final[int] = 30

# Scheduling defaults
DEFAULT_POLL_INTERVAL: Final[int] = 15 * SECONDS_PER_MINUTE
DEFAULT_GRACE_PERIOD: Final[float] = 30.0
MAX_REMOVAL_WORKERS: Final[int] = 8

# File paths
DEFAULT_CONFIG_FILE: Final[str] = "/config/seedbox.yml"

# Metric name prefix
METRICS_NAMESPACE: Final[str] = "seedbox"


class TorrentState(str, Enum):
    """qBittorrent states of a torrent whose download is complete."""
    PAUSED_UP = "pausedUP"
    STOPPED_UP = "stoppedUP"
    UPLOADING = "uploading"
    STALLED_UP = "stalledUP"
    QUEUED_UP = "queuedUP"
    FORCED_UP = "forcedUP"

    @classmethod
    def seeding_states(cls) -> set:
        """Return set of states in which the download is complete."""
        return {cls.PAUSED_UP, cls.STOPPED_UP, cls.UPLOADING, cls.STALLED_UP,
                cls.QUEUED_UP, cls.FORCED_UP}


class SchedulerState(str, Enum):
    """Phases of an instance scheduler's poll loop."""
    IDLE = "idle"
    POLLING = "polling"
    EVALUATING = "evaluating"
    ACTING = "acting"
    ERROR = "error"
    STOPPED = "stopped"
    CRASHED = "crashed"


class DecisionKind(str, Enum):
    """Partition a torrent falls into after evaluation."""
    DELETE_WITH_DATA = "delete_with_data"
    DELETE_WITHOUT_DATA = "delete_without_data"
