"""Directory and desired-state exceptions for error handling."""
from __future__ import annotations
from typing import Optional


class DirectoryError(Exception):
    """Base exception for all group sync operations."""
    pass


class DirectoryAPIError(DirectoryError):
    """HTTP or transport error from the SCIM directory API.

    Attributes:
        status_code: HTTP status code (None when no response was received)
        message: Error message or response body
        endpoint: API endpoint that failed
    """

    def __init__(self, status_code: Optional[int], message: str, endpoint: str):
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
        label = status_code if status_code is not None else "no-response"
        super().__init__(f"[{label}] {endpoint}: {message}")


class DirectoryFetchError(DirectoryAPIError):
    """Snapshot read failed - the run must abort before any mutation."""

    @property
    def body(self) -> str:
        return self.message

    @classmethod
    def from_api_error(cls, exc: DirectoryAPIError) -> "DirectoryFetchError":
        return cls(exc.status_code, exc.message, exc.endpoint)


class DesiredStateFormatError(DirectoryError):
    """Desired-state document structure is invalid.

    Attributes:
        group_key: Offending group key ("<root>" for the document itself)
        reason: What is wrong with the entry
    """

    def __init__(self, group_key: str, reason: str):
        self.group_key = group_key
        self.reason = reason
        super().__init__(f"Invalid desired state for group '{group_key}': {reason}")
