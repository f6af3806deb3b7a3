#!/usr/bin/env python3
"""Runs one scheduler thread per instance and coordinates shutdown."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence

from .client import SeedboxClient
from .config import Instance
from .constants import DEFAULT_GRACE_PERIOD
from .metrics import MetricsRegistry
from .scheduler import InstanceScheduler

logger = logging.getLogger(__name__)


class Supervisor:
    """Owns the instance schedulers, the enforce flag and the metrics registry.

    The enforce flag is fixed at construction. A scheduler thread that dies
    is logged and counted, and the others keep running.
    """

    def __init__(self, instances: Sequence[Instance], enforce: bool,
                 metrics: Optional[MetricsRegistry] = None,
                 client_factory: Optional[Callable[[Instance], SeedboxClient]] = None):
        """
        Initialize the supervisor.

        Args:
            instances: Validated instances to run
            enforce: Whether removals are actually issued
            metrics: Metrics registry shared by all schedulers
            client_factory: Builds the RPC client for an instance (SeedboxClient by default)
        """
        client_factory = client_factory or SeedboxClient
        self._enforce = bool(enforce)
        self.metrics = metrics if metrics is not None else MetricsRegistry()
        self.schedulers: List[InstanceScheduler] = [
            InstanceScheduler(instance, self._enforce, self.metrics, client=client_factory(instance))
            for instance in instances
        ]
        self._threads: Dict[str, threading.Thread] = {}
        self._crashed: Dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def enforce(self) -> bool:
        return self._enforce

    def get_scheduler(self, name: str) -> Optional[InstanceScheduler]:
        for scheduler in self.schedulers:
            if scheduler.name == name:
                return scheduler
        return None

    def crash_reason(self, name: str) -> Optional[str]:
        with self._lock:
            return self._crashed.get(name)

    def _run_scheduler(self, scheduler: InstanceScheduler) -> None:
        try:
            scheduler.run()
        except Exception as e:
            scheduler.mark_crashed()
            with self._lock:
                self._crashed[scheduler.name] = str(e)
            self.metrics.increment_counter("scheduler_crashes", scheduler.labels)
            logger.error(f"[{scheduler.name}] Scheduler crashed, other instances keep running: {e}",
                         exc_info=True)

    def start(self) -> None:
        """Start one thread per instance."""
        mode = "ENFORCE" if self._enforce else "DRY RUN"
        logger.info(f"Starting {len(self.schedulers)} instance scheduler(s) in {mode} mode")
        for scheduler in self.schedulers:
            thread = threading.Thread(
                target=self._run_scheduler,
                args=(scheduler,),
                name=f"scheduler-{scheduler.name}",
                daemon=True,
            )
            self._threads[scheduler.name] = thread
            thread.start()

    def trigger_all(self) -> None:
        """Ask every scheduler to poll now."""
        for scheduler in self.schedulers:
            scheduler.trigger()

    def stop(self, grace_period: float = DEFAULT_GRACE_PERIOD) -> List[str]:
        """
        Stop every scheduler and wait for running cycles to finish.

        Args:
            grace_period: Seconds to wait in total before abandoning threads

        Returns:
            Names of instances whose threads were still running
        """
        for scheduler in self.schedulers:
            scheduler.stop()

        deadline = time.monotonic() + grace_period
        abandoned = []
        for name, thread in self._threads.items():
            thread.join(timeout=max(0.0, deadline - time.monotonic()))
            if thread.is_alive():
                abandoned.append(name)

        if abandoned:
            logger.warning(
                f"Grace period of {grace_period:.0f}s elapsed, abandoning: {', '.join(abandoned)}"
            )
        else:
            logger.info("All instance schedulers stopped")
        return abandoned

    def run(self, cancellation_signal: threading.Event,
            grace_period: float = DEFAULT_GRACE_PERIOD) -> List[str]:
        """
        Run every scheduler until the cancellation signal is set.

        Args:
            cancellation_signal: Event that requests shutdown
            grace_period: Seconds granted to in-flight cycles on shutdown

        Returns:
            Names of instances abandoned after the grace period
        """
        self.start()
        cancellation_signal.wait()
        logger.info("Shutdown requested")
        return self.stop(grace_period)

    def run_once(self) -> bool:
        """
        Run a single cycle on every instance in parallel.

        Returns:
            True if every instance completed its cycle successfully
        """
        if not self.schedulers:
            return True
        with ThreadPoolExecutor(max_workers=len(self.schedulers), thread_name_prefix="once") as pool:
            reports = list(pool.map(lambda s: s.run_cycle(), self.schedulers))
        for scheduler in self.schedulers:
            scheduler.client.disconnect()
        return all(report.success for report in reports)


def run(instances: Sequence[Instance], enforce: bool, cancellation_signal: threading.Event,
        metrics: Optional[MetricsRegistry] = None,
        grace_period: float = DEFAULT_GRACE_PERIOD) -> List[str]:
    """
    Evaluate retention policies on every instance until cancelled.

    Args:
        instances: Validated instances to run
        enforce: Whether removals are actually issued
        cancellation_signal: Event that requests shutdown
        metrics: Optional shared metrics registry
        grace_period: Seconds granted to in-flight cycles on shutdown

    Returns:
        Names of instances abandoned after the grace period
    """
    supervisor = Supervisor(instances, enforce, metrics=metrics)
    return supervisor.run(cancellation_signal, grace_period)
