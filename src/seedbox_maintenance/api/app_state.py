#!/usr/bin/env python3
"""Thread-safe application state shared between the supervisor and API."""

import threading
import time
from typing import List, Optional

from ..metrics import MetricsRegistry
from ..supervisor import Supervisor


class AppState:
    """Read-only bridge from the web API to the running supervisor.

    Scheduler state and last-cycle reports are read through the
    schedulers' own locks; this object only adds the process start time
    and an audit of manual poll requests.
    """

    def __init__(self, supervisor: Supervisor) -> None:
        self.supervisor = supervisor
        self.started_at = time.time()
        self.poll_requests = 0
        self._lock = threading.Lock()

    @property
    def metrics(self) -> MetricsRegistry:
        return self.supervisor.metrics

    def uptime(self) -> float:
        return time.time() - self.started_at

    def request_poll(self, name: Optional[str] = None) -> List[str]:
        """Wake one scheduler, or all of them.

        Args:
            name: Instance name, or None for every instance.

        Returns:
            Names of the instances that were woken.
        """
        with self._lock:
            self.poll_requests += 1
        if name is None:
            self.supervisor.trigger_all()
            return [s.name for s in self.supervisor.schedulers]
        scheduler = self.supervisor.get_scheduler(name)
        if scheduler is None:
            return []
        scheduler.trigger()
        return [scheduler.name]

    def describe_instance(self, name: str) -> Optional[dict]:
        """Return the status of one instance, or None if it is unknown."""
        scheduler = self.supervisor.get_scheduler(name)
        if scheduler is None:
            return None
        report = scheduler.last_report
        return {
            "name": scheduler.name,
            "url": scheduler.instance.url,
            "state": scheduler.state.value,
            "poll_interval_seconds": scheduler.instance.poll_interval,
            "policies": [p.name for p in scheduler.instance.rules],
            "cycles": scheduler.cycles,
            "crash_reason": self.supervisor.crash_reason(scheduler.name),
            "last_cycle": report.to_dict() if report else None,
        }

    def get_status(self) -> dict:
        """Return a snapshot of every instance's status."""
        return {
            "enforce": self.supervisor.enforce,
            "instances": [self.describe_instance(s.name) for s in self.supervisor.schedulers],
        }
