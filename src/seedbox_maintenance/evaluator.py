#!/usr/bin/env python3
"""Policy evaluation: maps torrent snapshots to deletion decisions."""

import logging
from typing import Iterable, Optional

from .models import Decision, Evaluation, Snapshot
from .rules import RuleSet
from .utils import format_duration, truncate_name

logger = logging.getLogger(__name__)


def evaluate(rules: RuleSet, snapshot: Snapshot, dry_run: bool = True) -> Optional[Decision]:
    """
    Evaluate a single torrent against an instance's policies.

    The first policy (in declaration order) whose gate passes and which has
    a matching clause decides; later policies are not consulted.

    Args:
        rules: The instance's rule set
        snapshot: Torrent to evaluate
        dry_run: Whether the resulting decision is only to be logged

    Returns:
        The decision, or None if no policy fires
    """
    if not snapshot.complete:
        return None
    for policy in rules:
        clause_index = policy.matching_clause(snapshot)
        if clause_index is None:
            continue
        return Decision(
            torrent_id=snapshot.torrent_id,
            policy_name=policy.name,
            delete_data=policy.delete_data,
            dry_run=dry_run,
            display_name=snapshot.display_name,
            clause_index=clause_index,
        )
    return None


def evaluate_all(rules: RuleSet, snapshots: Iterable[Snapshot], dry_run: bool = True) -> Evaluation:
    """
    Evaluate every torrent of a cycle and partition the decisions.

    Also tallies, per policy, how many torrents (and bytes) that policy was
    responsible for: its gate let them through and no earlier policy fired.

    Args:
        rules: The instance's rule set
        snapshots: Torrents fetched this cycle
        dry_run: Whether decisions are only to be logged

    Returns:
        Partitioned evaluation result
    """
    result = Evaluation()
    for policy in rules:
        result.matched_counts[policy.name] = 0
        result.matched_sizes[policy.name] = 0

    for snapshot in snapshots:
        if snapshot.complete:
            for policy in rules:
                if policy.gate.matches(snapshot.trackers, snapshot.file_count):
                    result.matched_counts[policy.name] += 1
                    result.matched_sizes[policy.name] += snapshot.total_size
                if policy.fires(snapshot):
                    break

        decision = evaluate(rules, snapshot, dry_run)
        if decision is None:
            result.no_action.append(snapshot.torrent_id)
            continue

        result.add(decision)
        logger.info(
            f"→ {decision.format_action()}: {truncate_name(snapshot.display_name)} "
            f"(policy={decision.policy_name}, clause={decision.clause_index + 1}, "
            f"ratio={snapshot.ratio:.2f}, seeding={format_duration(snapshot.seeding_seconds)})"
        )

    return result
