#!/usr/bin/env python3
"""Prometheus metrics shared by every instance scheduler."""

import logging
from typing import Dict, Optional, Tuple

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from .constants import METRICS_NAMESPACE

logger = logging.getLogger(__name__)

# Metric families: short name -> (type, help text, label names)
METRIC_DEFINITIONS: Dict[str, Tuple[type, str, Tuple[str, ...]]] = {
    "fetch_failures": (
        Counter, "Number of times fetching the torrent list from an instance failed", ("instance",)),
    "fetch_duration_seconds": (
        Histogram, "Time it took to fetch the torrent list from an instance", ("instance",)),
    "cycle_duration_seconds": (
        Histogram, "Time it took to run a full fetch/evaluate/act cycle", ("instance",)),
    "cycle_errors": (
        Counter, "Cycles aborted by an unexpected error", ("instance",)),
    "malformed_records": (
        Counter, "Torrent records skipped because they could not be normalized", ("instance",)),
    "decisions": (
        Counter, "Deletion decisions made, per instance, policy and mode", ("instance", "policy", "mode")),
    "removals": (
        Counter, "Torrents removed from an instance, per policy", ("instance", "policy")),
    "removal_failures": (
        Counter, "Removal calls that the instance rejected or that failed", ("instance", "policy")),
    "schedule_drift": (
        Counter, "Cycles that took longer than the poll interval", ("instance",)),
    "scheduler_crashes": (
        Counter, "Instance loops that terminated with an unhandled error", ("instance",)),
    "torrents_matched": (
        Gauge, "Torrents whose policy gate matched in the last cycle", ("instance", "policy")),
    "torrents_matched_bytes": (
        Gauge, "Total size of torrents whose policy gate matched in the last cycle", ("instance", "policy")),
    "last_success_timestamp_seconds": (
        Gauge, "Unix time of the last successful cycle", ("instance",)),
}


class MetricsRegistry:
    """Metrics sink backed by a private Prometheus collector registry.

    Each supervisor gets its own registry, so several can live in one
    process (notably in tests). Individual metric updates are thread-safe.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics = {}
        for name, (kind, documentation, labels) in METRIC_DEFINITIONS.items():
            self._metrics[name] = kind(
                name, documentation, labelnames=labels,
                namespace=METRICS_NAMESPACE, registry=self.registry,
            )

    def _get(self, name: str, kind: type):
        metric = self._metrics.get(name)
        if metric is None:
            raise KeyError(f"unknown metric '{name}'")
        if not isinstance(metric, kind):
            raise TypeError(f"metric '{name}' is not a {kind.__name__}")
        return metric

    def increment_counter(self, name: str, labels: Dict[str, str], amount: float = 1) -> None:
        """Increment a counter by ``amount``."""
        self._get(name, Counter).labels(**labels).inc(amount)

    def set_gauge(self, name: str, labels: Dict[str, str], value: float) -> None:
        """Set a gauge to ``value``."""
        self._get(name, Gauge).labels(**labels).set(value)

    def observe(self, name: str, labels: Dict[str, str], value: float) -> None:
        """Record an observation in a histogram."""
        self._get(name, Histogram).labels(**labels).observe(value)

    def get_value(self, name: str, labels: Dict[str, str]) -> float:
        """
        Read the current value of a counter or gauge.

        Returns 0.0 for label combinations that were never touched.
        """
        metric = self._metrics[name]
        sample = f"{METRICS_NAMESPACE}_{name}"
        if isinstance(metric, Counter):
            sample += "_total"
        elif isinstance(metric, Histogram):
            sample += "_count"
        value = self.registry.get_sample_value(sample, labels)
        return value if value is not None else 0.0

    def exposition(self) -> Tuple[bytes, str]:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
