"""SCIM group read and membership patch operations."""
from __future__ import annotations
import logging
from typing import Iterable

from .client import ScimClient
from .users import DEFAULT_PAGE_SIZE, iter_resources

PATCH_OP_SCHEMA = "urn:ietf:params:scim:api:messages:2.0:PatchOp"
GROUP_ATTRIBUTES = "id,displayName,members"

logger = logging.getLogger(__name__)


def build_member_patch(add: Iterable[str], remove: Iterable[str]) -> dict:
    """Build one SCIM PatchOp: remove first, then add.

    Operations are omitted when their identifier set is empty. Identifiers are
    sorted so the same delta always yields the same payload.
    """
    operations = []
    to_remove = sorted(set(remove))
    to_add = sorted(set(add))
    if to_remove:
        operations.append({
            "op": "remove",
            "path": "members",
            "value": [{"value": member_id} for member_id in to_remove],
        })
    if to_add:
        operations.append({
            "op": "add",
            "path": "members",
            "value": [{"value": member_id} for member_id in to_add],
        })
    return {"schemas": [PATCH_OP_SCHEMA], "Operations": operations}


class GroupService:
    """Service for reading SCIM groups and patching their members."""

    def __init__(self, client: ScimClient, page_size: int = DEFAULT_PAGE_SIZE):
        """Initialize group service.

        Args:
            client: Authenticated SCIM client
            page_size: Resources requested per page
        """
        self.client = client
        self.page_size = page_size

    def list_groups(self) -> list[dict]:
        """Retrieve all group resources including their members."""
        groups = list(iter_resources(
            self.client, "/Groups", params={"attributes": GROUP_ATTRIBUTES}, page_size=self.page_size,
        ))
        logger.debug("Fetched %d directory groups", len(groups))
        return groups

    def patch_members(self, group_id: str, add: Iterable[str], remove: Iterable[str]) -> None:
        """Apply a member delta to a group in a single PATCH request.

        Args:
            group_id: Group ID
            add: User IDs to add
            remove: User IDs to remove

        Raises:
            DirectoryAPIError: On non-success response or transport failure
        """
        payload = build_member_patch(add, remove)
        if not payload["Operations"]:
            return
        self.client.patch(f"/Groups/{group_id}", json=payload)
