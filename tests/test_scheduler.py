"""Tests for the per-instance poll loop."""

import itertools
import logging
import threading

import pytest

from seedbox_maintenance.constants import SchedulerState
from seedbox_maintenance.exceptions import ProtocolError, SeedboxConnectionError
from seedbox_maintenance.scheduler import InstanceScheduler, next_delay

from .conftest import FakeClient, horse_policy, make_instance, make_record


def make_scheduler(client, metrics, enforce=False, **kwargs):
    return InstanceScheduler(make_instance("x", **kwargs), enforce, metrics, client=client)


class TestNextDelay:
    def test_measured_from_cycle_start(self):
        assert next_delay(60, 10) == 50

    def test_never_negative(self):
        assert next_delay(60, 75) == 0


class TestRunCycle:
    def test_dry_run_issues_no_removal(self, metrics, caplog):
        client = FakeClient([make_record("a")])
        scheduler = make_scheduler(client, metrics)

        with caplog.at_level(logging.INFO):
            report = scheduler.run_cycle()

        assert report.success
        assert report.dry_run
        assert client.removed == []
        assert report.evaluation.total_deletions == 1
        assert "would delete torrent+data" in caplog.text
        assert metrics.get_value("decisions", {"instance": "x", "policy": "horse", "mode": "dry_run"}) == 1
        assert metrics.get_value("removals", {"instance": "x", "policy": "horse"}) == 0

    def test_enforce_removes_matching_torrents(self, metrics):
        client = FakeClient([
            make_record("a"),
            make_record("b", ratio=0.1, seeding_time=60),
            make_record("c", file_count=1),
        ])
        scheduler = make_scheduler(client, metrics, enforce=True)

        report = scheduler.run_cycle()

        assert report.success
        assert client.removed == [("a", True)]
        assert report.removed == 1
        assert metrics.get_value("removals", {"instance": "x", "policy": "horse"}) == 1
        assert metrics.get_value("decisions", {"instance": "x", "policy": "horse", "mode": "enforce"}) == 1

    def test_delete_data_follows_policy(self, metrics):
        client = FakeClient([make_record("a")])
        scheduler = make_scheduler(client, metrics, enforce=True,
                                   policies=[horse_policy(delete_data=False)])
        scheduler.run_cycle()
        assert client.removed == [("a", False)]

    def test_removal_failure_does_not_abort_other_removals(self, metrics):
        client = FakeClient([make_record(h) for h in ("a", "b", "c")], fail_remove={"b"})
        scheduler = make_scheduler(client, metrics, enforce=True)

        report = scheduler.run_cycle()

        assert report.success
        assert sorted(client.removed) == [("a", True), ("c", True)]
        assert report.removed == 2
        assert report.removal_failures == 1
        assert metrics.get_value("removal_failures", {"instance": "x", "policy": "horse"}) == 1

    @pytest.mark.parametrize("error", [SeedboxConnectionError("down"), ProtocolError("garbage")])
    def test_fetch_failure_skips_evaluation(self, metrics, error):
        client = FakeClient([make_record("a")], fetch_errors=[error])
        scheduler = make_scheduler(client, metrics, enforce=True)

        report = scheduler.run_cycle()

        assert not report.success
        assert report.evaluation is None
        assert client.removed == []
        assert metrics.get_value("fetch_failures", {"instance": "x"}) == 1
        assert metrics.get_value("fetch_duration_seconds", {"instance": "x"}) == 1
        assert scheduler.state == SchedulerState.IDLE

    def test_fetch_recovers_on_next_cycle(self, metrics):
        client = FakeClient([make_record("a")], fetch_errors=[SeedboxConnectionError("down")])
        scheduler = make_scheduler(client, metrics, enforce=True)

        assert not scheduler.run_cycle().success
        assert scheduler.run_cycle().success
        assert client.removed == [("a", True)]
        assert metrics.get_value("fetch_failures", {"instance": "x"}) == 1

    def test_malformed_records_are_counted_and_skipped(self, metrics):
        bad = make_record("bad", ratio=-1)
        client = FakeClient([bad, make_record("a")])
        scheduler = make_scheduler(client, metrics)

        report = scheduler.run_cycle()

        assert report.success
        assert report.fetched == 2
        assert report.malformed == 1
        assert report.evaluation.total_deletions == 1
        assert metrics.get_value("malformed_records", {"instance": "x"}) == 1

    def test_unexpected_error_is_counted_not_raised(self, metrics):
        client = FakeClient(fetch_errors=[RuntimeError("boom")])
        scheduler = make_scheduler(client, metrics)

        report = scheduler.run_cycle()

        assert not report.success
        assert "boom" in report.error
        assert metrics.get_value("cycle_errors", {"instance": "x"}) == 1

    def test_matched_gauges(self, metrics):
        client = FakeClient([
            make_record("a", size=100),
            make_record("b", size=50, ratio=0.1, seeding_time=60),
            make_record("c", trackers=("https://other.tracker/announce",)),
        ])
        scheduler = make_scheduler(client, metrics)

        scheduler.run_cycle()

        labels = {"instance": "x", "policy": "horse"}
        assert metrics.get_value("torrents_matched", labels) == 2
        assert metrics.get_value("torrents_matched_bytes", labels) == 150

    def test_report_is_recorded(self, metrics):
        scheduler = make_scheduler(FakeClient([make_record("a")]), metrics)
        assert scheduler.last_report is None
        report = scheduler.run_cycle()
        assert scheduler.last_report is report
        assert scheduler.cycles == 1
        assert report.to_dict()["success"] is True


class StoppingClient(FakeClient):
    """Stops its scheduler from inside the first fetch."""

    scheduler = None

    def fetch_torrents(self):
        self.scheduler.stop()
        return super().fetch_torrents()


class TestRunLoop:
    def test_stop_before_run_runs_no_cycle(self, metrics):
        client = FakeClient()
        scheduler = make_scheduler(client, metrics)
        scheduler.stop()

        scheduler.run()

        assert client.fetch_calls == 0
        assert client.disconnected
        assert scheduler.state == SchedulerState.STOPPED

    def test_stop_is_honored_after_the_current_cycle(self, metrics):
        client = StoppingClient([make_record("a")])
        scheduler = make_scheduler(client, metrics, enforce=True)
        client.scheduler = scheduler

        scheduler.run()

        assert client.fetch_calls == 1
        assert client.removed == [("a", True)]
        assert scheduler.last_report.success

    def test_overrunning_cycle_is_reported_as_drift(self, metrics, caplog):
        client = StoppingClient()
        ticks = itertools.count(step=10)
        scheduler = InstanceScheduler(make_instance("x", poll_interval=1), False, metrics,
                                      client=client, clock=lambda: next(ticks))
        client.scheduler = scheduler

        with caplog.at_level(logging.WARNING):
            scheduler.run()

        assert scheduler.last_report.drift
        assert metrics.get_value("schedule_drift", {"instance": "x"}) == 1
        assert "longer than" in caplog.text

    def test_trigger_starts_a_cycle_early(self, metrics):
        client = FakeClient()
        scheduler = make_scheduler(client, metrics, poll_interval=3600)
        thread = threading.Thread(target=scheduler.run, daemon=True)
        thread.start()
        try:
            assert client.fetched.wait(timeout=5)
            client.fetched.clear()
            scheduler.trigger()
            assert client.fetched.wait(timeout=5)
            assert client.fetch_calls == 2
        finally:
            scheduler.stop()
            thread.join(timeout=5)
        assert not thread.is_alive()
        assert client.disconnected
