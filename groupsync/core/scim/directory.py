"""SCIM-backed implementation of the directory collaborator."""
from __future__ import annotations
import logging
from typing import Iterable

from ..models import GroupSnapshot, Identity
from .client import ScimClient
from .groups import GroupService
from .users import UserService

logger = logging.getLogger(__name__)


def user_member_ids(members) -> frozenset[str]:
    """Ids of the user members of a SCIM group.

    Nested groups (``"type": "Group"``) are not users and are never managed.
    """
    ids = set()
    for member in members or []:
        if not isinstance(member, dict) or not member.get("value"):
            continue
        member_type = member.get("type")
        if member_type and str(member_type).lower() != "user":
            continue
        ids.add(str(member["value"]))
    return frozenset(ids)


class ScimDirectory:
    """Adapts SCIM user/group resources to Identity and GroupSnapshot values."""

    def __init__(self, client: ScimClient):
        self.client = client
        self.users = UserService(client)
        self.groups = GroupService(client)

    def fetch_identities(self) -> list[Identity]:
        identities = []
        for resource in self.users.list_users():
            if not isinstance(resource, dict):
                logger.debug("Skipping malformed user resource: %r", resource)
                continue
            handle = UserService.handle_of(resource)
            if not resource.get("id") or not handle:
                logger.debug("Skipping user without id or handle: %s", resource.get("id"))
                continue
            identities.append(Identity(
                id=str(resource["id"]),
                handle=handle,
                active=bool(resource.get("active", True)),
            ))
        return identities

    def fetch_groups(self) -> list[GroupSnapshot]:
        snapshots = []
        for resource in self.groups.list_groups():
            if not isinstance(resource, dict) or not resource.get("id"):
                logger.debug("Skipping group without id: %r", resource)
                continue
            snapshots.append(GroupSnapshot(
                id=str(resource["id"]),
                display_name=resource.get("displayName", ""),
                member_ids=user_member_ids(resource.get("members")),
            ))
        return snapshots

    def patch_group_members(self, group_id: str, add: Iterable[str], remove: Iterable[str]) -> None:
        self.groups.patch_members(group_id, add, remove)
