#!/usr/bin/env python3
"""Per-instance poll loop: fetch, evaluate, act, wait."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .client import SeedboxClient
from .config import Instance
from .constants import MAX_REMOVAL_WORKERS, SchedulerState
from .evaluator import evaluate_all
from .exceptions import MalformedRecordError, ProtocolError, RPCError, SeedboxConnectionError
from .metrics import MetricsRegistry
from .models import CycleReport, Decision, Evaluation, Snapshot
from .utils import format_duration, truncate_name

logger = logging.getLogger(__name__)


def next_delay(interval: float, elapsed: float) -> float:
    """Seconds to wait before the next cycle, measured from the start of the last one."""
    return max(0.0, interval - elapsed)


class InstanceScheduler:
    """Runs the poll loop for one seed-box instance.

    Cycles never overlap: fetch, evaluation and every removal finish
    before the next interval starts counting. Stop requests are honored
    between cycles only.
    """

    def __init__(self, instance: Instance, enforce: bool, metrics: MetricsRegistry,
                 client: Optional[SeedboxClient] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the scheduler.

        Args:
            instance: Instance to poll
            enforce: Whether to actually remove torrents
            metrics: Shared metrics registry
            client: RPC client; a SeedboxClient for the instance by default
            clock: Monotonic clock used for interval timing
        """
        self.instance = instance
        self.enforce = enforce
        self.metrics = metrics
        self.client = client if client is not None else SeedboxClient(instance)
        self._clock = clock
        self._wake = threading.Event()
        self._stopping = threading.Event()
        self._lock = threading.Lock()
        self._state = SchedulerState.IDLE
        self._last_report: Optional[CycleReport] = None
        self._cycles = 0

    @property
    def name(self) -> str:
        return self.instance.name

    @property
    def labels(self) -> dict:
        return {"instance": self.instance.name}

    @property
    def state(self) -> SchedulerState:
        with self._lock:
            return self._state

    @property
    def last_report(self) -> Optional[CycleReport]:
        with self._lock:
            return self._last_report

    @property
    def cycles(self) -> int:
        with self._lock:
            return self._cycles

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def _set_state(self, state: SchedulerState) -> None:
        with self._lock:
            if self._state == state:
                return
            logger.debug(f"[{self.name}] {self._state.value} -> {state.value}")
            self._state = state

    def mark_crashed(self) -> None:
        self._set_state(SchedulerState.CRASHED)

    def stop(self) -> None:
        """Ask the loop to stop after the current cycle."""
        self._stopping.set()
        self._wake.set()

    def trigger(self) -> None:
        """Start the next cycle now instead of waiting out the interval."""
        self._wake.set()

    def run(self) -> None:
        """Poll until stopped."""
        mode = "enforce" if self.enforce else "dry-run"
        logger.info(
            f"[{self.name}] Polling {self.instance} every "
            f"{format_duration(self.instance.poll_interval)} ({mode}, {len(self.instance.rules)} policies)"
        )
        try:
            while not self._stopping.is_set():
                report = self.run_cycle()
                if report.duration > self.instance.poll_interval:
                    report.drift = True
                    self.metrics.increment_counter("schedule_drift", self.labels)
                    logger.warning(
                        f"[{self.name}] Cycle took {report.duration:.1f}s, longer than the "
                        f"{self.instance.poll_interval}s poll interval; starting next cycle immediately"
                    )
                if self._stopping.is_set():
                    break
                delay = next_delay(self.instance.poll_interval, report.duration)
                if self._wake.wait(timeout=delay):
                    self._wake.clear()
                    if not self._stopping.is_set():
                        logger.info(f"[{self.name}] Poll requested")
        finally:
            self._set_state(SchedulerState.STOPPED)
            self.client.disconnect()
            logger.info(f"[{self.name}] Stopped")

    def run_cycle(self) -> CycleReport:
        """
        Run one fetch/evaluate/act cycle.

        Never raises: failures are logged, counted and recorded in the
        returned report.

        Returns:
            Report describing the cycle
        """
        report = CycleReport(
            instance=self.name,
            started_at=datetime.now(timezone.utc),
            dry_run=not self.enforce,
        )
        started = self._clock()
        try:
            self._run_cycle(report)
        except Exception as e:
            self._set_state(SchedulerState.ERROR)
            report.success = False
            report.error = f"unexpected error: {e}"
            self.metrics.increment_counter("cycle_errors", self.labels)
            logger.error(f"[{self.name}] Cycle failed: {e}", exc_info=True)
        finally:
            report.duration = self._clock() - started
            self.metrics.observe("cycle_duration_seconds", self.labels, report.duration)
            self._set_state(SchedulerState.IDLE)
            with self._lock:
                self._last_report = report
                self._cycles += 1
        return report

    def _run_cycle(self, report: CycleReport) -> None:
        self._set_state(SchedulerState.POLLING)
        fetch_started = self._clock()
        try:
            records = self.client.fetch_torrents()
        except (SeedboxConnectionError, ProtocolError) as e:
            self._set_state(SchedulerState.ERROR)
            report.error = str(e)
            self.metrics.increment_counter("fetch_failures", self.labels)
            logger.warning(f"[{self.name}] Could not fetch torrents, skipping cycle: {e}")
            return
        finally:
            self.metrics.observe("fetch_duration_seconds", self.labels, self._clock() - fetch_started)

        report.fetched = len(records)
        logger.debug(f"[{self.name}] Found {len(records)} torrents")

        self._set_state(SchedulerState.EVALUATING)
        snapshots = self._build_snapshots(records, report)
        evaluation = evaluate_all(self.instance.rules, snapshots, dry_run=not self.enforce)
        report.evaluation = evaluation
        self._record_evaluation(evaluation)

        self._set_state(SchedulerState.ACTING)
        self._act(evaluation, report)

        report.success = True
        self.metrics.set_gauge("last_success_timestamp_seconds", self.labels, time.time())

    def _build_snapshots(self, records: list, report: CycleReport) -> List[Snapshot]:
        snapshots = []
        for record in records:
            try:
                snapshots.append(Snapshot.from_record(record))
            except MalformedRecordError as e:
                report.malformed += 1
                self.metrics.increment_counter("malformed_records", self.labels)
                logger.warning(f"[{self.name}] Skipping malformed torrent record {e.torrent_id or '?'}: {e}")
        return snapshots

    def _record_evaluation(self, evaluation: Evaluation) -> None:
        mode = "dry_run" if not self.enforce else "enforce"
        for policy, count in evaluation.matched_counts.items():
            labels = {"instance": self.name, "policy": policy}
            self.metrics.set_gauge("torrents_matched", labels, count)
            self.metrics.set_gauge("torrents_matched_bytes", labels, evaluation.matched_sizes.get(policy, 0))
        for decision in evaluation.decisions:
            self.metrics.increment_counter(
                "decisions", {"instance": self.name, "policy": decision.policy_name, "mode": mode}
            )

    def _act(self, evaluation: Evaluation, report: CycleReport) -> None:
        decisions = evaluation.decisions
        if not decisions:
            logger.debug(f"[{self.name}] No torrents need cleanup")
            return

        stats = evaluation.get_stats()
        if not self.enforce:
            logger.info(
                f"[{self.name}] [DRY RUN] Would delete {len(decisions)} torrent(s) "
                f"(with data: {stats['with_data']} | keep data: {stats['without_data']})"
            )
            return

        logger.info(
            f"[{self.name}] Removing {len(decisions)} torrent(s) "
            f"(with data: {stats['with_data']} | keep data: {stats['without_data']})"
        )
        workers = min(MAX_REMOVAL_WORKERS, len(decisions))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"remove-{self.name}") as pool:
            futures = {pool.submit(self._remove, decision): decision for decision in decisions}
            for future in as_completed(futures):
                decision = futures[future]
                try:
                    removed = future.result()
                except Exception as e:
                    removed = False
                    self._count_removal_failure(decision)
                    logger.error(
                        f"[{self.name}] Unexpected error removing {truncate_name(decision.display_name)}: {e}",
                        exc_info=True,
                    )
                if removed:
                    report.removed += 1
                else:
                    report.removal_failures += 1

        if report.removal_failures:
            logger.warning(
                f"[{self.name}] Removed {report.removed} torrent(s), {report.removal_failures} failed; "
                f"failed torrents will be retried next cycle"
            )
        else:
            logger.info(f"[{self.name}] Removed {report.removed} torrent(s)")

    def _remove(self, decision: Decision) -> bool:
        try:
            self.client.remove_torrent(decision.torrent_id, decision.delete_data)
        except (SeedboxConnectionError, RPCError) as e:
            self._count_removal_failure(decision)
            logger.error(f"[{self.name}] Failed to remove {truncate_name(decision.display_name)}: {e}")
            return False
        self.metrics.increment_counter("removals", {"instance": self.name, "policy": decision.policy_name})
        logger.debug(f"[{self.name}] Removed {decision.torrent_id} (delete_data={decision.delete_data})")
        return True

    def _count_removal_failure(self, decision: Decision) -> None:
        self.metrics.increment_counter(
            "removal_failures", {"instance": self.name, "policy": decision.policy_name}
        )
