"""SCIM 2.0 directory client library.

This package provides the default directory collaborator used by the reconciler.

Architecture:
- client.py: HTTP client with bearer authentication and token refresh
- users.py: User listing and pagination helpers
- groups.py: Group listing and member PatchOp requests
- directory.py: ScimDirectory facade returning Identity/GroupSnapshot values
- exceptions.py: Typed exceptions for error handling

Usage:
    from groupsync.core.scim import ScimClient, ScimDirectory

    client = ScimClient("https://idp.example.com/scim/v2")
    client.authenticate_token(token)
    directory = ScimDirectory(client)
"""
from .client import (
    ScimClient,
    create_client_with_token,
    REQUEST_TIMEOUT,
)
from .exceptions import (
    DirectoryError,
    DirectoryAPIError,
    DirectoryFetchError,
    DesiredStateFormatError,
)
from .users import UserService
from .groups import GroupService, build_member_patch
from .directory import ScimDirectory

__all__ = [
    # Client
    "ScimClient",
    "create_client_with_token",
    "REQUEST_TIMEOUT",

    # Exceptions
    "DirectoryError",
    "DirectoryAPIError",
    "DirectoryFetchError",
    "DesiredStateFormatError",

    # Services
    "UserService",
    "GroupService",
    "ScimDirectory",
    "build_member_patch",
]
