"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from groupsync.core.scim.client import REQUEST_TIMEOUT

logger = logging.getLogger(__name__)


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                logger.debug("Loaded %s from /run/secrets", secret_name)
                return secret_value
        except OSError as e:
            logger.warning("Failed to read /run/secrets/%s: %s", secret_name, e)

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            logger.debug("Loaded %s from environment", env_var)
            return secret_value

    return None


def _env_flag(name: str, default: bool = False) -> bool:
    return os.environ.get(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, default, cast):
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be a number, got {raw!r}.") from None


@dataclass
class AppConfig:
    """Application configuration container."""
    # Directory
    scim_base_url: str
    scim_token: str = ""
    scim_token_url: str = ""
    scim_client_id: str = ""
    scim_client_secret: str = ""
    request_timeout: float = REQUEST_TIMEOUT

    # Reconciliation
    desired_state_path: str = "groups.yaml"
    max_workers: int = 1
    dry_run: bool = False

    # Audit
    audit_log_dir: str = ".runtime/audit"

    @property
    def uses_client_credentials(self) -> bool:
        return bool(self.scim_token_url and self.scim_client_id and self.scim_client_secret)

    def validate(self) -> None:
        """Raise RuntimeError when the configuration cannot produce a working run."""
        if not self.scim_base_url:
            raise RuntimeError("SCIM_BASE_URL is required.")
        if not self.scim_token and not self.uses_client_credentials:
            raise RuntimeError(
                "No directory credentials. Provide SCIM_TOKEN, or SCIM_TOKEN_URL, "
                "SCIM_CLIENT_ID and SCIM_CLIENT_SECRET."
            )
        if self.max_workers < 1:
            raise RuntimeError("RECONCILE_MAX_WORKERS must be at least 1.")
        if self.request_timeout <= 0:
            raise RuntimeError("REQUEST_TIMEOUT must be positive.")


def load_settings(validate: bool = True, **overrides: Optional[object]) -> AppConfig:
    """Load settings from environment and /run/secrets.

    Args:
        validate: Raise if the resulting configuration is incomplete
        **overrides: Field values taking precedence over the environment
            (None values are ignored, so CLI defaults can be passed through)

    Returns:
        AppConfig
    """
    config = AppConfig(
        scim_base_url=os.environ.get("SCIM_BASE_URL", "").strip(),
        scim_token=_load_secret_from_file("scim_token", "SCIM_TOKEN") or "",
        scim_token_url=os.environ.get("SCIM_TOKEN_URL", "").strip(),
        scim_client_id=os.environ.get("SCIM_CLIENT_ID", "").strip(),
        scim_client_secret=_load_secret_from_file("scim_client_secret", "SCIM_CLIENT_SECRET") or "",
        request_timeout=_env_number("REQUEST_TIMEOUT", REQUEST_TIMEOUT, float),
        desired_state_path=os.environ.get("DESIRED_STATE_PATH", "groups.yaml"),
        max_workers=_env_number("RECONCILE_MAX_WORKERS", 1, int),
        dry_run=_env_flag("RECONCILE_DRY_RUN"),
        audit_log_dir=os.environ.get("AUDIT_LOG_DIR", ".runtime/audit"),
    )
    for name, value in overrides.items():
        if value is None:
            continue
        if not hasattr(config, name):
            raise TypeError(f"Unknown setting: {name}")
        setattr(config, name, value)

    if validate:
        config.validate()

    auth_label = "client-credentials" if config.uses_client_credentials else "static-token"
    logger.info(
        "Settings: directory=%s; auth=%s; workers=%d; dry_run=%s",
        config.scim_base_url, auth_label, config.max_workers, config.dry_run,
    )
    return config
