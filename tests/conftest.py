"""Pytest shared fixtures for group sync tests."""
import json
import os
import pathlib
import sys
from typing import Optional

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep tests independent from the developer's shell configuration
for _var in ("SCIM_BASE_URL", "SCIM_TOKEN", "SCIM_TOKEN_URL", "SCIM_CLIENT_ID", "SCIM_CLIENT_SECRET",
             "RECONCILE_MAX_WORKERS", "RECONCILE_DRY_RUN", "REQUEST_TIMEOUT", "DESIRED_STATE_PATH"):
    os.environ.pop(_var, None)

import pytest
import requests

from groupsync.core.models import GroupSnapshot, Identity
from groupsync.core.scim.exceptions import DirectoryAPIError


# ─────────────────────────────────────────────────────────────────────────────
# Network Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
class StubResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, payload: Optional[dict] = None, status_code: int = 200, url: str = "http://scim.test",
                 text: Optional[str] = None):
        self._payload = payload
        self.status_code = status_code
        self.url = url
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text

    def json(self):
        if self._payload is None and self.text:
            # Same shape as requests: JSONDecodeError is a ValueError
            return json.loads(self.text)
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(response=self)


@pytest.fixture
def stub_response():
    """The StubResponse class, for tests that fake requests.get/post/patch."""
    return StubResponse


@pytest.fixture(autouse=True)
def _block_network(monkeypatch, request):
    """
    Prevent unit tests from hitting live directories.

    Integration tests are explicitly marked with @pytest.mark.integration and
    are allowed to perform real HTTP calls by skipping this fixture.
    """
    if request.node.get_closest_marker("integration"):
        return

    def _refuse(method):
        def _stub(url, *args, **kwargs):
            raise RuntimeError(f"Unexpected HTTP {method} in unit test: {url}")
        return _stub

    monkeypatch.setattr(requests, "get", _refuse("GET"))
    monkeypatch.setattr(requests, "post", _refuse("POST"))
    monkeypatch.setattr(requests, "patch", _refuse("PATCH"))


# ─────────────────────────────────────────────────────────────────────────────
# In-memory Directory
# ─────────────────────────────────────────────────────────────────────────────
class FakeDirectory:
    """In-memory directory that applies patches to its own group state.

    Args:
        users: (id, handle, active) tuples
        groups: display name -> (group id, member ids)
        failing_groups: group ids whose patch raises DirectoryAPIError
    """

    def __init__(self, users, groups, failing_groups=()):
        self.identities = [Identity(id=uid, handle=handle, active=active) for uid, handle, active in users]
        self.groups = {
            gid: GroupSnapshot(id=gid, display_name=name, member_ids=frozenset(members))
            for name, (gid, members) in groups.items()
        }
        self.failing_groups = set(failing_groups)
        self.patch_calls = []
        self.fetch_calls = 0

    def fetch_identities(self):
        self.fetch_calls += 1
        return list(self.identities)

    def fetch_groups(self):
        return list(self.groups.values())

    def patch_group_members(self, group_id, add, remove):
        self.patch_calls.append((group_id, frozenset(add), frozenset(remove)))
        if group_id in self.failing_groups:
            raise DirectoryAPIError(500, "internal error", f"/Groups/{group_id}")
        group = self.groups[group_id]
        members = (group.member_ids - frozenset(remove)) | frozenset(add)
        self.groups[group_id] = GroupSnapshot(id=group.id, display_name=group.display_name, member_ids=members)

    def members_of(self, display_name):
        for group in self.groups.values():
            if group.display_name == display_name:
                return set(group.member_ids)
        raise KeyError(display_name)


@pytest.fixture
def users():
    return [
        ("u-alice", "alice@example.com", True),
        ("u-bob", "bob@example.com", True),
        ("u-carol", "carol@example.com", True),
        ("u-dave", "dave@example.com", True),
        ("u-erin", "erin@example.com", False),
    ]


@pytest.fixture
def make_directory(users):
    """Factory for FakeDirectory instances sharing the default user list."""
    def _make(groups, failing_groups=(), extra_users=()):
        return FakeDirectory(list(users) + list(extra_users), groups, failing_groups)
    return _make


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires a live directory)"
    )
