"""Desired-state document loading, validation and resolution.

Document shape (YAML or JSON)::

    data-engineers:
      members:
        - alice@example.com
        - bob@example.com
    auditors:
      members: []

A bare list of handles is accepted in place of the ``members`` mapping, and an
absent or null member list means "no members".
"""
from __future__ import annotations
import json
import logging
from pathlib import Path
from collections.abc import Mapping
from typing import Any

import yaml

from .models import DesiredGroup, Identity, ResolvedDesiredGroup, normalize_handle
from .scim.exceptions import DesiredStateFormatError

ROOT_KEY = "<root>"

logger = logging.getLogger(__name__)


def load_desired_state_document(path: str | Path) -> dict:
    """Read a desired-state document from a YAML or JSON file.

    Raises:
        DesiredStateFormatError: If the file cannot be parsed
        OSError: If the file cannot be read
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            document = json.loads(text)
        else:
            document = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise DesiredStateFormatError(ROOT_KEY, f"cannot parse {path}: {exc}") from exc
    # An empty file means no groups are managed
    return {} if document is None else document


def _members_of(group_key: str, entry: Any) -> list:
    if entry is None:
        return []
    if isinstance(entry, list):
        return entry
    if isinstance(entry, Mapping):
        members = entry.get("members")
        if members is None:
            return []
        if not isinstance(members, list):
            raise DesiredStateFormatError(
                group_key, f"'members' must be a list of handles, got {type(members).__name__}"
            )
        return members
    raise DesiredStateFormatError(
        group_key, f"entry must be a mapping with 'members' or a list, got {type(entry).__name__}"
    )


def parse_desired_state(document: Any) -> dict[str, DesiredGroup]:
    """Validate the raw document and return display name -> DesiredGroup.

    Raises:
        DesiredStateFormatError: Naming the first malformed group entry
    """
    if document is None:
        return {}
    if not isinstance(document, Mapping):
        raise DesiredStateFormatError(ROOT_KEY, f"document must be a mapping, got {type(document).__name__}")

    groups: dict[str, DesiredGroup] = {}
    for group_key, entry in document.items():
        if not isinstance(group_key, str) or not group_key.strip():
            raise DesiredStateFormatError(str(group_key), "group name must be a non-empty string")
        handles = set()
        for member in _members_of(group_key, entry):
            if not isinstance(member, str) or not member.strip():
                raise DesiredStateFormatError(group_key, f"member {member!r} is not a handle string")
            handles.add(normalize_handle(member))
        groups[group_key] = DesiredGroup(display_name=group_key, handles=frozenset(handles))
    return groups


def resolve_group(
    group: DesiredGroup,
    identities: Mapping[str, Identity],
    inactive_handles: frozenset[str] = frozenset(),
) -> ResolvedDesiredGroup:
    member_ids = set()
    unknown = set()
    inactive = set()
    for handle in group.handles:
        identity = identities.get(handle)
        if identity is not None:
            member_ids.add(identity.id)
        elif handle in inactive_handles:
            inactive.add(handle)
        else:
            unknown.add(handle)
    if unknown or inactive:
        logger.debug(
            "Group '%s': dropping %d unknown and %d inactive handles",
            group.display_name, len(unknown), len(inactive),
        )
    return ResolvedDesiredGroup(
        display_name=group.display_name,
        member_ids=frozenset(member_ids),
        unknown_handles=frozenset(unknown),
        inactive_handles=frozenset(inactive),
    )


def resolve_desired_state(
    document: Any,
    identities: Mapping[str, Identity],
    inactive_handles: frozenset[str] = frozenset(),
) -> dict[str, ResolvedDesiredGroup]:
    """Translate a desired-state document into directory identifiers.

    Handles that match no active identity are dropped, never raised. When
    ``inactive_handles`` is given, dropped handles are classified as inactive
    rather than unknown. The document is not modified.

    Args:
        document: Parsed desired-state document
        identities: Active handle -> Identity mapping from the snapshot
        inactive_handles: Normalized handles of deactivated users

    Returns:
        Mapping of display name -> ResolvedDesiredGroup

    Raises:
        DesiredStateFormatError: If the document structure is invalid
    """
    return {
        name: resolve_group(group, identities, inactive_handles)
        for name, group in parse_desired_state(document).items()
    }
