"""Group membership reconciliation.

Joins the directory snapshot with the resolved desired state by display name
and converges each matched group with at most one PATCH request:

    match          -> diff, patch when the delta is non-empty
    desired-only   -> skipped (groups are never created)
    snapshot-only  -> untouched

A failure while patching one group is recorded in the report and never stops
the remaining groups. Nothing is rolled back; re-running is idempotent.
"""
from __future__ import annotations
import concurrent.futures
import logging
from typing import Any, Callable, Mapping, Optional

from .desired_state import parse_desired_state, resolve_group
from .models import (
    Delta,
    Directory,
    DirectorySnapshot,
    GroupOutcome,
    GroupSnapshot,
    OutcomeStatus,
    ReconcileReport,
    ResolvedDesiredGroup,
)
from .scim.exceptions import DirectoryAPIError
from .snapshot import load_snapshot

logger = logging.getLogger(__name__)

OutcomeListener = Callable[[GroupOutcome], None]


def match_groups(
    groups: Mapping[str, GroupSnapshot],
    desired: Mapping[str, ResolvedDesiredGroup],
) -> tuple[list[tuple[GroupSnapshot, ResolvedDesiredGroup]], frozenset[str]]:
    """Join snapshot and desired state by display name.

    Returns:
        (matched pairs, names present only in the desired state)
    """
    matched = [(groups[name], desired[name]) for name in desired if name in groups]
    desired_only = frozenset(name for name in desired if name not in groups)
    return matched, desired_only


def reconcile_group(
    directory: Directory,
    group: GroupSnapshot,
    desired: ResolvedDesiredGroup,
    *,
    dry_run: bool = False,
) -> GroupOutcome:
    """Converge one group and return its terminal outcome (never raises for patch failures)."""
    delta = Delta.between(group.member_ids, desired.member_ids)
    dropped = desired.dropped_handles

    if delta.is_empty:
        logger.info("Group '%s' unchanged (%d members)", group.display_name, len(group.member_ids))
        return GroupOutcome(group.display_name, OutcomeStatus.UNCHANGED, delta, dropped_handles=dropped)

    if dry_run:
        logger.info(
            "[dry-run] Group '%s' would add %d and remove %d members",
            group.display_name, len(delta.to_add), len(delta.to_remove),
        )
        return GroupOutcome(group.display_name, OutcomeStatus.PLANNED, delta, dropped_handles=dropped)

    try:
        directory.patch_group_members(group.id, delta.to_add, delta.to_remove)
    except DirectoryAPIError as exc:
        logger.error("Group '%s' failed to converge: %s", group.display_name, exc)
        return GroupOutcome(
            group.display_name,
            OutcomeStatus.FAILED,
            delta,
            reason=exc.message,
            status_code=exc.status_code,
            dropped_handles=dropped,
        )
    except Exception as exc:
        # Any collaborator failure is isolated to this group
        logger.exception("Group '%s' failed to converge", group.display_name)
        return GroupOutcome(
            group.display_name, OutcomeStatus.FAILED, delta, reason=str(exc), dropped_handles=dropped,
        )

    logger.info(
        "Group '%s' converged: +%d -%d",
        group.display_name, len(delta.to_add), len(delta.to_remove),
    )
    return GroupOutcome(group.display_name, OutcomeStatus.CONVERGED, delta, dropped_handles=dropped)


def apply_desired_state(
    directory: Directory,
    snapshot: DirectorySnapshot,
    desired: Mapping[str, ResolvedDesiredGroup],
    *,
    dry_run: bool = False,
    max_workers: int = 1,
    on_outcome: Optional[OutcomeListener] = None,
) -> ReconcileReport:
    """Reconcile every matched group against a snapshot already loaded.

    Args:
        directory: Directory collaborator used for patch calls
        snapshot: Directory state captured at the start of the run
        desired: Resolved desired state keyed by display name
        dry_run: Compute deltas without patching
        max_workers: Groups processed concurrently (1 = sequential)
        on_outcome: Called once per group as soon as its outcome is known

    Returns:
        ReconcileReport keyed by display name
    """
    matched, desired_only = match_groups(snapshot.groups, desired)
    for name in sorted(desired_only):
        logger.info("Group '%s' not found in directory; skipping", name)

    outcomes: dict[str, GroupOutcome] = {}

    def record(outcome: GroupOutcome) -> None:
        outcomes[outcome.display_name] = outcome
        if on_outcome is not None:
            on_outcome(outcome)

    if max_workers <= 1 or len(matched) <= 1:
        for group, wanted in matched:
            record(reconcile_group(directory, group, wanted, dry_run=dry_run))
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [
                pool.submit(reconcile_group, directory, group, wanted, dry_run=dry_run)
                for group, wanted in matched
            ]
            for future in concurrent.futures.as_completed(futures):
                record(future.result())

    report = ReconcileReport(outcomes=outcomes, skipped=desired_only, dry_run=dry_run)
    counts = {status.value: len(report.with_status(status)) for status in OutcomeStatus}
    logger.info("Reconciliation finished: %s, %d skipped", counts, len(desired_only))
    return report


def reconcile(
    document: Any,
    directory: Directory,
    *,
    dry_run: bool = False,
    max_workers: int = 1,
    on_outcome: Optional[OutcomeListener] = None,
) -> ReconcileReport:
    """Run one full reconciliation: snapshot, resolve, converge.

    Args:
        document: Parsed desired-state document
        directory: Authenticated directory collaborator
        dry_run: Compute deltas without patching
        max_workers: Groups processed concurrently (1 = sequential)
        on_outcome: Called once per group as soon as its outcome is known

    Returns:
        ReconcileReport with one outcome per matched group

    Raises:
        DirectoryFetchError: If the snapshot cannot be read
        DesiredStateFormatError: If the document is malformed
    """
    # Validate the document before touching the directory
    desired_groups = parse_desired_state(document)
    snapshot = load_snapshot(directory)
    desired = {
        name: resolve_group(group, snapshot.identities, snapshot.inactive_handles)
        for name, group in desired_groups.items()
    }
    return apply_desired_state(
        directory,
        snapshot,
        desired,
        dry_run=dry_run,
        max_workers=max_workers,
        on_outcome=on_outcome,
    )
