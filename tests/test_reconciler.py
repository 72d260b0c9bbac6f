"""Behavioural tests for group membership reconciliation."""
import pytest

from groupsync.core.models import Delta, OutcomeStatus
from groupsync.core.reconciler import apply_desired_state, match_groups, reconcile, reconcile_group
from groupsync.core.desired_state import resolve_desired_state
from groupsync.core.scim.exceptions import DesiredStateFormatError, DirectoryAPIError, DirectoryFetchError
from groupsync.core.snapshot import load_snapshot


def members(*handles):
    return {"members": list(handles)}


def test_set_difference_issues_single_patch(make_directory):
    directory = make_directory({"engineering": ("g-eng", {"u-alice", "u-bob", "u-carol"})})
    document = {"engineering": members("bob@example.com", "carol@example.com", "dave@example.com")}

    report = reconcile(document, directory)

    outcome = report.outcomes["engineering"]
    assert outcome.status is OutcomeStatus.CONVERGED
    assert outcome.delta == Delta(to_add=frozenset({"u-dave"}), to_remove=frozenset({"u-alice"}))
    assert (outcome.added_count, outcome.removed_count) == (1, 1)
    assert directory.patch_calls == [("g-eng", frozenset({"u-dave"}), frozenset({"u-alice"}))]


def test_identical_membership_makes_no_call(make_directory):
    directory = make_directory({"ops": ("g-ops", {"u-alice", "u-bob"})})
    document = {"ops": members("bob@example.com", "alice@example.com")}

    report = reconcile(document, directory)

    assert report.outcomes["ops"].status is OutcomeStatus.UNCHANGED
    assert directory.patch_calls == []


def test_second_run_is_idempotent(make_directory):
    directory = make_directory({
        "engineering": ("g-eng", {"u-alice"}),
        "ops": ("g-ops", {"u-bob", "u-carol"}),
    })
    document = {
        "engineering": members("alice@example.com", "bob@example.com"),
        "ops": members(),
    }

    first = reconcile(document, directory)
    second = reconcile(document, directory)

    assert {o.status for o in first.outcomes.values()} == {OutcomeStatus.CONVERGED}
    assert {o.status for o in second.outcomes.values()} == {OutcomeStatus.UNCHANGED}
    assert len(directory.patch_calls) == 2


def test_desired_only_group_is_skipped_without_call(make_directory):
    directory = make_directory({"ops": ("g-ops", {"u-alice"})})
    document = {"ops": members("alice@example.com"), "new-team": members("bob@example.com")}

    report = reconcile(document, directory)

    assert "new-team" not in report.outcomes
    assert report.skipped == frozenset({"new-team"})
    assert directory.patch_calls == []


def test_snapshot_only_group_is_untouched(make_directory):
    directory = make_directory({
        "ops": ("g-ops", {"u-alice"}),
        "legacy": ("g-legacy", {"u-bob"}),
    })

    report = reconcile({"ops": members()}, directory)

    assert set(report.outcomes) == {"ops"}
    assert directory.members_of("legacy") == {"u-bob"}
    assert [call[0] for call in directory.patch_calls] == ["g-ops"]


def test_unknown_and_inactive_handles_are_dropped(make_directory):
    directory = make_directory({"ops": ("g-ops", set())})
    document = {"ops": members("alice@example.com", "erin@example.com", "ghost@example.com")}

    report = reconcile(document, directory)

    outcome = report.outcomes["ops"]
    assert outcome.status is OutcomeStatus.CONVERGED
    assert outcome.delta.to_add == frozenset({"u-alice"})
    assert outcome.dropped_handles == frozenset({"erin@example.com", "ghost@example.com"})


def test_inactive_member_in_directory_is_removed(make_directory):
    directory = make_directory({"ops": ("g-ops", {"u-alice", "u-erin"})})

    report = reconcile({"ops": members("alice@example.com", "erin@example.com")}, directory)

    assert report.outcomes["ops"].delta.to_remove == frozenset({"u-erin"})
    assert directory.members_of("ops") == {"u-alice"}


def test_failed_group_does_not_stop_others(make_directory):
    directory = make_directory(
        {
            "alpha": ("g-alpha", {"u-alice"}),
            "beta": ("g-beta", {"u-alice"}),
            "gamma": ("g-gamma", {"u-carol"}),
        },
        failing_groups={"g-beta"},
    )
    document = {
        "alpha": members("alice@example.com", "bob@example.com"),
        "beta": members("bob@example.com"),
        "gamma": members("carol@example.com"),
    }

    report = reconcile(document, directory)

    assert report.outcomes["alpha"].status is OutcomeStatus.CONVERGED
    assert report.outcomes["beta"].status is OutcomeStatus.FAILED
    assert report.outcomes["beta"].status_code == 500
    assert report.outcomes["beta"].reason == "internal error"
    assert report.outcomes["gamma"].status is OutcomeStatus.UNCHANGED
    assert set(report.failed) == {"beta"}
    assert not report.ok


def test_unexpected_patch_exception_is_isolated(make_directory):
    directory = make_directory({"alpha": ("g-alpha", set()), "beta": ("g-beta", set())})

    def broken_patch(group_id, add, remove):
        if group_id == "g-alpha":
            raise TimeoutError("read timed out")
        directory.patch_calls.append((group_id, frozenset(add), frozenset(remove)))

    directory.patch_group_members = broken_patch
    document = {"alpha": members("alice@example.com"), "beta": members("bob@example.com")}

    report = reconcile(document, directory)

    assert report.outcomes["alpha"].status is OutcomeStatus.FAILED
    assert report.outcomes["alpha"].reason == "read timed out"
    assert report.outcomes["beta"].status is OutcomeStatus.CONVERGED


def test_dry_run_plans_without_patching(make_directory):
    directory = make_directory({"ops": ("g-ops", {"u-alice"}), "dev": ("g-dev", {"u-bob"})})
    document = {"ops": members("bob@example.com"), "dev": members("bob@example.com")}

    report = reconcile(document, directory, dry_run=True)

    assert report.dry_run
    assert report.outcomes["ops"].status is OutcomeStatus.PLANNED
    assert report.outcomes["dev"].status is OutcomeStatus.UNCHANGED
    assert directory.patch_calls == []


def test_concurrent_run_matches_sequential(make_directory):
    groups = {f"team-{i}": (f"g-{i}", {"u-alice"}) for i in range(8)}
    document = {name: members("bob@example.com") for name in groups}

    sequential = make_directory(dict(groups))
    parallel = make_directory(dict(groups))
    seq_report = reconcile(document, sequential)
    par_report = reconcile(document, parallel, max_workers=4)

    assert seq_report.to_dict() == par_report.to_dict()
    assert sorted(parallel.patch_calls) == sorted(sequential.patch_calls)
    assert len(parallel.patch_calls) == 8


def test_on_outcome_called_once_per_group(make_directory):
    directory = make_directory({"ops": ("g-ops", set()), "dev": ("g-dev", {"u-bob"})})
    seen = []

    reconcile(
        {"ops": members("alice@example.com"), "dev": members("bob@example.com"), "ghost": None},
        directory,
        on_outcome=seen.append,
    )

    assert sorted(o.display_name for o in seen) == ["dev", "ops"]


def test_round_trip_reproduces_desired_members(make_directory):
    directory = make_directory({"eng": ("g-eng", {"u-alice", "u-bob", "u-erin"})})
    document = {"eng": members("bob@example.com", "carol@example.com", "dave@example.com")}
    snapshot = load_snapshot(directory)
    desired = resolve_desired_state(document, snapshot.identities, snapshot.inactive_handles)

    outcome = reconcile_group(directory, snapshot.groups["eng"], desired["eng"], dry_run=True)

    assert outcome.delta.apply_to(snapshot.groups["eng"].member_ids) == desired["eng"].member_ids


def test_malformed_document_aborts_before_fetch(make_directory):
    directory = make_directory({"ops": ("g-ops", {"u-alice"})})

    with pytest.raises(DesiredStateFormatError) as excinfo:
        reconcile({"ops": members(), "broken": "alice@example.com"}, directory)

    assert excinfo.value.group_key == "broken"
    assert directory.fetch_calls == 0
    assert directory.patch_calls == []


def test_fetch_failure_aborts_run(make_directory):
    directory = make_directory({"ops": ("g-ops", {"u-alice"})})

    def failing_fetch():
        raise DirectoryAPIError(503, "unavailable", "/Groups")

    directory.fetch_groups = failing_fetch

    with pytest.raises(DirectoryFetchError) as excinfo:
        reconcile({"ops": members()}, directory)

    assert excinfo.value.status_code == 503
    assert excinfo.value.body == "unavailable"
    assert directory.patch_calls == []


def test_match_groups_reports_desired_only_names(make_directory):
    directory = make_directory({"ops": ("g-ops", set()), "legacy": ("g-legacy", set())})
    snapshot = load_snapshot(directory)
    desired = resolve_desired_state({"ops": None, "new": None}, snapshot.identities)

    matched, desired_only = match_groups(snapshot.groups, desired)

    assert [(g.display_name, d.display_name) for g, d in matched] == [("ops", "ops")]
    assert desired_only == frozenset({"new"})


def test_apply_desired_state_with_empty_desired(make_directory):
    directory = make_directory({"ops": ("g-ops", {"u-alice"})})
    snapshot = load_snapshot(directory)

    report = apply_desired_state(directory, snapshot, {})

    assert report.outcomes == {}
    assert report.ok
