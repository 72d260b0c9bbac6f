"""SCIM user read operations."""
from __future__ import annotations
import logging
from typing import Iterator, Optional

from .client import ScimClient

DEFAULT_PAGE_SIZE = 100
USER_ATTRIBUTES = "id,userName,active,emails"

logger = logging.getLogger(__name__)


def iter_resources(client: ScimClient, path: str, params: Optional[dict] = None,
                   page_size: int = DEFAULT_PAGE_SIZE) -> Iterator[dict]:
    """Yield every resource of a SCIM list endpoint, following startIndex pagination."""
    start_index = 1
    while True:
        query = dict(params or {})
        query.update({"startIndex": start_index, "count": page_size})
        payload = client.get_json(path, params=query)
        resources = payload.get("Resources") or []
        yield from resources

        total = int(payload.get("totalResults", 0))
        start_index += len(resources)
        if not resources or start_index > total:
            return


def primary_email(resource: dict) -> Optional[str]:
    """Return the primary email of a SCIM user, or the first one listed."""
    emails = resource.get("emails") or []
    for email in emails:
        if email.get("primary") and email.get("value"):
            return email["value"]
    for email in emails:
        if email.get("value"):
            return email["value"]
    return None


class UserService:
    """Service for reading SCIM users."""

    def __init__(self, client: ScimClient, page_size: int = DEFAULT_PAGE_SIZE):
        """Initialize user service.

        Args:
            client: Authenticated SCIM client
            page_size: Resources requested per page
        """
        self.client = client
        self.page_size = page_size

    def list_users(self) -> list[dict]:
        """Retrieve all user resources (active and inactive)."""
        users = list(iter_resources(
            self.client, "/Users", params={"attributes": USER_ATTRIBUTES}, page_size=self.page_size,
        ))
        logger.debug("Fetched %d directory users", len(users))
        return users

    @staticmethod
    def handle_of(resource: dict) -> Optional[str]:
        """The human-readable handle of a user: userName, falling back to email."""
        return resource.get("userName") or primary_email(resource)
