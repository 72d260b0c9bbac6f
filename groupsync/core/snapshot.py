"""Directory snapshot loading.

Reads every user and group once at the start of a run and indexes them by
handle and display name. The snapshot is never refreshed mid-run.
"""
from __future__ import annotations
import logging

from .models import Directory, DirectorySnapshot, GroupSnapshot, Identity, normalize_handle
from .scim.exceptions import DirectoryAPIError, DirectoryFetchError

logger = logging.getLogger(__name__)


def index_identities(identities: list[Identity]) -> tuple[dict[str, Identity], frozenset[str]]:
    """Split identities into a handle -> active Identity map and the set of inactive handles."""
    active: dict[str, Identity] = {}
    inactive: set[str] = set()
    for identity in identities:
        handle = normalize_handle(identity.handle)
        if identity.active:
            active[handle] = identity
        else:
            inactive.add(handle)
    # A handle shared by an active and an inactive account resolves to the active one
    return active, frozenset(inactive - active.keys())


def index_groups(groups: list[GroupSnapshot]) -> dict[str, GroupSnapshot]:
    """Index groups by display name, keeping the first group seen for a duplicated name."""
    by_name: dict[str, GroupSnapshot] = {}
    for group in groups:
        existing = by_name.get(group.display_name)
        if existing is not None:
            logger.warning(
                "Duplicate directory group name '%s' (ids %s, %s); keeping %s",
                group.display_name, existing.id, group.id, existing.id,
            )
            continue
        by_name[group.display_name] = group
    return by_name


def fetch_active_identities(directory: Directory) -> dict[str, Identity]:
    """Return handle -> Identity for active directory users only."""
    active, _ = index_identities(_fetch(directory.fetch_identities, "users"))
    return active


def fetch_groups(directory: Directory) -> dict[str, GroupSnapshot]:
    """Return display name -> GroupSnapshot for every directory group."""
    return index_groups(_fetch(directory.fetch_groups, "groups"))


def load_snapshot(directory: Directory) -> DirectorySnapshot:
    """Read users and groups from the directory.

    Args:
        directory: Authenticated directory collaborator

    Returns:
        DirectorySnapshot with active identities, groups and inactive handles

    Raises:
        DirectoryFetchError: If either read fails; no partial snapshot is returned
    """
    active, inactive = index_identities(_fetch(directory.fetch_identities, "users"))
    groups = index_groups(_fetch(directory.fetch_groups, "groups"))
    logger.info(
        "Directory snapshot: %d active users, %d inactive users, %d groups",
        len(active), len(inactive), len(groups),
    )
    return DirectorySnapshot(identities=active, groups=groups, inactive_handles=inactive)


def _fetch(operation, what: str):
    try:
        return operation()
    except DirectoryFetchError:
        raise
    except DirectoryAPIError as exc:
        logger.error("Failed to fetch directory %s: %s", what, exc)
        raise DirectoryFetchError.from_api_error(exc) from exc
