"""Tests for match gates, clauses and policies."""

import pytest

from seedbox_maintenance.exceptions import ConfigError, InvariantViolation
from seedbox_maintenance.rules import Clause, MatchGate, Policy, RuleSet

from .conftest import DAYS, HOURS, horse_policy, make_snapshot


class TestMatchGate:
    def test_empty_allowlist_matches_any_tracker(self):
        gate = MatchGate()
        assert gate.matches(["whatever.example"], 1)
        assert gate.matches([], 1)

    def test_allowlist_requires_intersection(self):
        gate = MatchGate(trackers=frozenset({"tracker-hostname.horse"}))
        assert gate.matches(["other.tracker", "tracker-hostname.horse"], 1)
        assert not gate.matches(["other.tracker"], 1)
        assert not gate.matches([], 1)

    def test_tracker_comparison_is_case_insensitive(self):
        gate = MatchGate(trackers=frozenset({"Tracker-Hostname.HORSE"}))
        assert gate.trackers == frozenset({"tracker-hostname.horse"})
        assert gate.matches(["TRACKER-hostname.horse"], 1)

    @pytest.mark.parametrize("file_count, expected", [
        (1, False),
        (2, True),
        (3, True),
        (4, True),
        (5, False),
    ])
    def test_file_count_bounds_are_inclusive(self, file_count, expected):
        gate = MatchGate(min_file_count=2, max_file_count=4)
        assert gate.matches([], file_count) is expected

    def test_rejects_inverted_file_count_bounds(self):
        with pytest.raises(InvariantViolation):
            MatchGate(min_file_count=5, max_file_count=2)

    def test_rejects_negative_file_count(self):
        with pytest.raises(InvariantViolation):
            MatchGate(min_file_count=-1)


class TestClause:
    def test_clause_without_bounds_is_rejected(self):
        with pytest.raises(InvariantViolation):
            Clause()

    def test_invariant_violation_is_a_config_error(self):
        with pytest.raises(ConfigError):
            Clause()

    def test_all_present_bounds_must_hold(self):
        clause = Clause(min_ratio=1.4, min_seeding_seconds=12 * HOURS)
        assert clause.matches(make_snapshot(ratio=1.5, seeding_seconds=13 * HOURS))
        assert not clause.matches(make_snapshot(ratio=1.3, seeding_seconds=13 * HOURS))
        assert not clause.matches(make_snapshot(ratio=1.5, seeding_seconds=11 * HOURS))

    def test_bounds_are_inclusive(self):
        clause = Clause(min_ratio=1.0, max_ratio=2.0, min_seeding_seconds=10, max_seeding_seconds=20)
        assert clause.matches(make_snapshot(ratio=1.0, seeding_seconds=10))
        assert clause.matches(make_snapshot(ratio=2.0, seeding_seconds=20))

    def test_max_bounds(self):
        clause = Clause(max_ratio=0.5, max_seeding_seconds=DAYS)
        assert clause.matches(make_snapshot(ratio=0.1, seeding_seconds=HOURS))
        assert not clause.matches(make_snapshot(ratio=0.6, seeding_seconds=HOURS))
        assert not clause.matches(make_snapshot(ratio=0.1, seeding_seconds=2 * DAYS))

    def test_rejects_inverted_ratio_bounds(self):
        with pytest.raises(InvariantViolation):
            Clause(min_ratio=2.0, max_ratio=1.0)

    def test_rejects_nan_ratio(self):
        with pytest.raises(InvariantViolation):
            Clause(min_ratio=float("nan"))

    def test_ratio_matching_is_monotonic(self):
        ratios = [0.0, 0.5, 1.0, 1.4, 1.5, 3.0, 100.0]
        min_clause = Clause(min_ratio=1.4)
        max_clause = Clause(max_ratio=1.4)
        min_results = [min_clause.matches(make_snapshot(ratio=r)) for r in ratios]
        max_results = [max_clause.matches(make_snapshot(ratio=r)) for r in ratios]
        # once satisfied, a min bound stays satisfied as ratio grows
        assert min_results == sorted(min_results)
        # once unsatisfied, a max bound stays unsatisfied as ratio grows
        assert max_results == sorted(max_results, reverse=True)

    def test_seeding_time_matching_is_monotonic(self):
        times = [0, HOURS, 12 * HOURS, DAYS, 365 * DAYS]
        min_clause = Clause(min_seeding_seconds=12 * HOURS)
        max_clause = Clause(max_seeding_seconds=12 * HOURS)
        min_results = [min_clause.matches(make_snapshot(seeding_seconds=t)) for t in times]
        max_results = [max_clause.matches(make_snapshot(seeding_seconds=t)) for t in times]
        assert min_results == sorted(min_results)
        assert max_results == sorted(max_results, reverse=True)


class TestPolicy:
    def test_policy_requires_a_clause(self):
        with pytest.raises(InvariantViolation):
            Policy(name="empty", clauses=())

    def test_fires_requires_gate_and_clause(self):
        policy = horse_policy()
        assert policy.fires(make_snapshot())
        assert not policy.fires(make_snapshot(trackers=("other.tracker",)))
        assert not policy.fires(make_snapshot(file_count=1))
        assert not policy.fires(make_snapshot(ratio=0.1, seeding_seconds=HOURS))

    def test_matching_clause_reports_first_match(self):
        policy = horse_policy()
        assert policy.matching_clause(make_snapshot(ratio=1.5, seeding_seconds=400 * DAYS)) == 0
        assert policy.matching_clause(make_snapshot(ratio=0.9, seeding_seconds=400 * DAYS)) == 1

    def test_describe_mentions_bounds(self):
        text = horse_policy().describe()
        assert "ratio>=1.4" in text
        assert "tracker-hostname.horse" in text


class TestRuleSet:
    def test_duplicate_policy_names_are_rejected(self):
        with pytest.raises(InvariantViolation):
            RuleSet(policies=(horse_policy("a"), horse_policy("a")))

    def test_preserves_declaration_order(self):
        rules = RuleSet(policies=[horse_policy("b"), horse_policy("a")])
        assert [p.name for p in rules] == ["b", "a"]
        assert len(rules) == 2
