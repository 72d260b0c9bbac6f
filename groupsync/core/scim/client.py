"""Low-level HTTP client for a SCIM 2.0 directory API.

Handles authentication, token management, and HTTP operations.
"""
from __future__ import annotations
import logging
import threading
from typing import Optional, Dict, Any
from datetime import datetime, timedelta

import requests

from .exceptions import DirectoryAPIError

REQUEST_TIMEOUT = 5
SCIM_CONTENT_TYPE = "application/scim+json"

logger = logging.getLogger(__name__)


class ScimClient:
    """HTTP client for a SCIM 2.0 directory with automatic token management.

    Features:
    - Static bearer token or OAuth client-credentials token with auto-refresh
    - Fixed per-call timeout
    - Centralized error handling (HTTP and transport failures)

    Usage:
        client = ScimClient("https://idp.example.com/scim/v2")
        client.authenticate_client_credentials(token_url, "sync-bot", "secret")
        response = client.get("/Users", params={"count": 100})
    """

    def __init__(self, base_url: str, timeout: float = REQUEST_TIMEOUT):
        """Initialize SCIM client.

        Args:
            base_url: SCIM base URL (e.g. https://idp.example.com/scim/v2)
            timeout: Per-request timeout in seconds
        """
        if not base_url:
            raise ValueError("SCIM base URL is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self._auth_method: Optional[str] = None
        self._auth_params: Dict[str, Any] = {}
        self._token_lock = threading.Lock()

    def authenticate_token(self, token: str) -> None:
        """Use a pre-issued bearer token (never refreshed)."""
        self._auth_method = "static"
        self._token = token
        self._token_expires_at = None

    def authenticate_client_credentials(self, token_url: str, client_id: str, client_secret: str) -> str:
        """Obtain a token via client credentials and store credentials for auto-refresh.

        Args:
            token_url: OAuth token endpoint
            client_id: Client ID
            client_secret: Client secret

        Returns:
            Access token
        """
        self._auth_method = "client_credentials"
        self._auth_params = {
            "token_url": token_url,
            "client_id": client_id,
            "client_secret": client_secret,
        }
        self._refresh_token()
        return self._token

    def _refresh_token(self) -> None:
        token, expires_in = self._get_client_credentials_token(
            self._auth_params["token_url"],
            self._auth_params["client_id"],
            self._auth_params["client_secret"],
        )
        self._token = token
        self._token_expires_at = datetime.now() + timedelta(seconds=expires_in)

    def _ensure_authenticated(self) -> None:
        """Ensure we have a valid token, refreshing if necessary."""
        if not self._token:
            raise DirectoryAPIError(401, "Not authenticated - call authenticate_token or authenticate_client_credentials first", self.base_url)
        if self._auth_method != "client_credentials" or not self._token_expires_at:
            return
        if not self._token_expiring():
            return
        # Pool threads share one client; only the first one past the lock refreshes
        with self._token_lock:
            if self._token_expiring():
                logger.debug("Refreshing directory access token")
                self._refresh_token()

    def _token_expiring(self) -> bool:
        """True if the token expired or expires within 10 seconds."""
        return datetime.now() >= self._token_expires_at - timedelta(seconds=10)

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Accept": SCIM_CONTENT_TYPE}
        headers.update(extra or {})
        headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def get(self, path: str, params: Optional[Dict] = None, **kwargs) -> requests.Response:
        """Execute GET request with automatic authentication.

        Args:
            path: API endpoint path (e.g., "/Users")
            params: Query parameters
            **kwargs: Additional arguments for requests.get

        Returns:
            Response object

        Raises:
            DirectoryAPIError: On HTTP or transport error
        """
        self._ensure_authenticated()
        url = f"{self.base_url}{path}"
        headers = self._headers(kwargs.pop("headers", None))

        try:
            resp = requests.get(url, params=params, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise DirectoryAPIError(None, str(exc), url) from exc
        self._handle_error(resp)
        return resp

    def get_json(self, path: str, params: Optional[Dict] = None, **kwargs) -> Dict[str, Any]:
        """Execute GET request and return the decoded JSON object.

        Raises:
            DirectoryAPIError: On HTTP or transport error, or when the body is not a JSON object
        """
        resp = self.get(path, params=params, **kwargs)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise DirectoryAPIError(resp.status_code, resp.text, resp.url) from exc
        if not isinstance(payload, dict):
            raise DirectoryAPIError(resp.status_code, f"expected a JSON object: {resp.text}", resp.url)
        return payload

    def patch(self, path: str, json: Optional[Dict] = None, **kwargs) -> requests.Response:
        """Execute PATCH request with automatic authentication.

        Args:
            path: API endpoint path
            json: JSON payload (SCIM PatchOp)
            **kwargs: Additional arguments for requests.patch

        Returns:
            Response object

        Raises:
            DirectoryAPIError: On HTTP or transport error
        """
        self._ensure_authenticated()
        url = f"{self.base_url}{path}"
        headers = self._headers(kwargs.pop("headers", None))
        headers["Content-Type"] = SCIM_CONTENT_TYPE

        try:
            resp = requests.patch(url, json=json, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise DirectoryAPIError(None, str(exc), url) from exc
        self._handle_error(resp)
        return resp

    def _get_client_credentials_token(self, token_url: str, client_id: str, client_secret: str) -> tuple[str, int]:
        """Fetch an access token using the client credentials flow."""
        data = {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
        }
        try:
            resp = requests.post(token_url, data=data, timeout=self.timeout)
        except requests.RequestException as exc:
            raise DirectoryAPIError(None, str(exc), token_url) from exc
        if resp.status_code != 200:
            raise DirectoryAPIError(resp.status_code, resp.text, token_url)
        try:
            payload = resp.json()
            # Conservative expiry when the server does not say
            return payload["access_token"], int(payload.get("expires_in", 60))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise DirectoryAPIError(resp.status_code, f"invalid token response: {resp.text}", token_url) from exc

    def _handle_error(self, resp: requests.Response) -> None:
        """Centralized error handling for HTTP responses.

        Args:
            resp: Response object to check

        Raises:
            DirectoryAPIError: If response status indicates error
        """
        if resp.status_code >= 400:
            raise DirectoryAPIError(resp.status_code, resp.text, resp.url)


def create_client_with_token(base_url: str, token: str, timeout: float = REQUEST_TIMEOUT) -> ScimClient:
    """Create a pre-authenticated ScimClient from a static bearer token."""
    client = ScimClient(base_url, timeout=timeout)
    client.authenticate_token(token)
    return client
