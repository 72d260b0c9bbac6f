"""Immutable value types shared by the loader, resolver and reconciler."""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping, Optional, Protocol


def normalize_handle(handle: str) -> str:
    """Canonical form used to join document handles with directory handles."""
    return handle.strip().lower()


@dataclass(frozen=True)
class Identity:
    """A directory user. Only active identities are eligible for membership."""
    id: str
    handle: str
    active: bool = True


@dataclass(frozen=True)
class GroupSnapshot:
    """A remote group as observed at snapshot time."""
    id: str
    display_name: str
    member_ids: frozenset[str] = frozenset()


@dataclass(frozen=True)
class DesiredGroup:
    """A group as authored in the desired-state document."""
    display_name: str
    handles: frozenset[str] = frozenset()


@dataclass(frozen=True)
class ResolvedDesiredGroup:
    """Desired group translated into directory identifiers.

    Handles that could not be translated are kept for reporting only:
    ``unknown_handles`` match no directory user, ``inactive_handles`` match a
    deactivated one.
    """
    display_name: str
    member_ids: frozenset[str] = frozenset()
    unknown_handles: frozenset[str] = frozenset()
    inactive_handles: frozenset[str] = frozenset()

    @property
    def dropped_handles(self) -> frozenset[str]:
        return self.unknown_handles | self.inactive_handles


@dataclass(frozen=True)
class Delta:
    """Add/remove identifier sets that converge one group."""
    to_add: frozenset[str] = frozenset()
    to_remove: frozenset[str] = frozenset()

    @classmethod
    def between(cls, present: Iterable[str], desired: Iterable[str]) -> "Delta":
        present_set = frozenset(present)
        desired_set = frozenset(desired)
        return cls(to_add=desired_set - present_set, to_remove=present_set - desired_set)

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove

    def apply_to(self, members: Iterable[str]) -> frozenset[str]:
        """Return the member set the directory should hold after this delta."""
        return (frozenset(members) - self.to_remove) | self.to_add


@dataclass(frozen=True)
class DirectorySnapshot:
    """Everything read from the directory at the start of a run."""
    identities: Mapping[str, Identity]
    groups: Mapping[str, GroupSnapshot]
    inactive_handles: frozenset[str] = frozenset()


class OutcomeStatus(str, Enum):
    UNCHANGED = "unchanged"
    CONVERGED = "converged"
    FAILED = "failed"
    PLANNED = "planned"


@dataclass(frozen=True)
class GroupOutcome:
    """Terminal state of one matched group after a run."""
    display_name: str
    status: OutcomeStatus
    delta: Delta = field(default_factory=Delta)
    reason: Optional[str] = None
    status_code: Optional[int] = None
    dropped_handles: frozenset[str] = frozenset()

    @property
    def added_count(self) -> int:
        return len(self.delta.to_add)

    @property
    def removed_count(self) -> int:
        return len(self.delta.to_remove)

    def to_dict(self) -> dict:
        result = {
            "group": self.display_name,
            "status": self.status.value,
            "added": sorted(self.delta.to_add),
            "removed": sorted(self.delta.to_remove),
        }
        if self.reason is not None:
            result["reason"] = self.reason
        if self.status_code is not None:
            result["status_code"] = self.status_code
        if self.dropped_handles:
            result["dropped_handles"] = sorted(self.dropped_handles)
        return result


@dataclass(frozen=True)
class ReconcileReport:
    """Per-group outcomes of one run, keyed by display name.

    ``skipped`` lists desired-state groups that do not exist in the directory.
    """
    outcomes: Mapping[str, GroupOutcome]
    skipped: frozenset[str] = frozenset()
    dry_run: bool = False

    def with_status(self, status: OutcomeStatus) -> dict[str, GroupOutcome]:
        return {name: o for name, o in self.outcomes.items() if o.status is status}

    @property
    def failed(self) -> dict[str, GroupOutcome]:
        return self.with_status(OutcomeStatus.FAILED)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "dry_run": self.dry_run,
            "groups": {name: self.outcomes[name].to_dict() for name in sorted(self.outcomes)},
            "skipped": sorted(self.skipped),
        }


class Directory(Protocol):
    """Collaborator operations the core needs from an identity directory."""

    def fetch_identities(self) -> list[Identity]:
        ...

    def fetch_groups(self) -> list[GroupSnapshot]:
        ...

    def patch_group_members(self, group_id: str, add: frozenset[str], remove: frozenset[str]) -> None:
        ...
