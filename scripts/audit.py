"""Audit logging utilities for group membership changes."""

from __future__ import annotations
import datetime
import hashlib
import hmac
import json
import logging
import os
from pathlib import Path
from typing import Any, Literal

AUDIT_LOG_DIR = Path(os.environ.get("AUDIT_LOG_DIR", ".runtime/audit"))
AUDIT_LOG_FILE = AUDIT_LOG_DIR / "group-sync-events.jsonl"

logger = logging.getLogger(__name__)


def configure(audit_dir: str | Path) -> None:
    """Point the audit trail at another directory."""
    global AUDIT_LOG_DIR, AUDIT_LOG_FILE
    AUDIT_LOG_DIR = Path(audit_dir)
    AUDIT_LOG_FILE = AUDIT_LOG_DIR / "group-sync-events.jsonl"


def _get_signing_key() -> bytes:
    """Get the audit signing key from a secret file or the environment (loaded lazily)."""
    key_file = os.environ.get("AUDIT_LOG_SIGNING_KEY_FILE")
    if key_file and Path(key_file).exists():
        try:
            return Path(key_file).read_text(encoding="utf-8").strip().encode("utf-8")
        except OSError:
            logger.warning("Cannot read audit signing key file %s", key_file)
    return os.environ.get("AUDIT_LOG_SIGNING_KEY", "").strip().encode("utf-8")


EventType = Literal["group_converged", "group_failed", "group_planned"]


def _ensure_audit_dir() -> None:
    """Create audit directory with restricted permissions."""
    AUDIT_LOG_DIR.mkdir(parents=True, exist_ok=True)
    AUDIT_LOG_DIR.chmod(0o700)


def _sign_event(event: dict[str, Any]) -> str:
    """Generate HMAC-SHA256 signature for audit event."""
    signing_key = _get_signing_key()
    if not signing_key:
        return ""
    # Canonical JSON representation for signing
    canonical = json.dumps(event, sort_keys=True, separators=(",", ":"))
    return hmac.new(signing_key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()


def log_group_event(
    event_type: EventType,
    group: str,
    *,
    operator: str = "system",
    directory: str = "",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """Append a group membership event to the audit trail with timestamp and signature.

    Args:
        event_type: group_converged, group_failed or group_planned
        group: Display name of the affected group
        operator: Who ran the sync (user, CI job, "system")
        directory: SCIM base URL of the directory
        details: Added/removed identifiers, failure reason, etc.
        success: Whether the operation succeeded
    """
    _ensure_audit_dir()

    event = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "event_type": event_type,
        "directory": directory,
        "group": group,
        "operator": operator,
        "success": success,
        "details": details or {},
    }

    signature = _sign_event(event)
    if signature:
        event["signature"] = signature

    # Append to JSONL file (one JSON object per line)
    with AUDIT_LOG_FILE.open("a", encoding="utf-8") as f:
        f.write(json.dumps(event, ensure_ascii=False) + "\n")

    AUDIT_LOG_FILE.chmod(0o600)


def safe_log_group_event(
    event_type: EventType,
    group: str,
    *,
    operator: str = "system",
    directory: str = "",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> bool:
    """Log a group event, never raising.

    Audit failures must not interrupt a reconciliation run.

    Returns:
        True if event was logged successfully, False if logging failed
    """
    try:
        log_group_event(
            event_type,
            group,
            operator=operator,
            directory=directory,
            details=details,
            success=success,
        )
        return True
    except (OSError, TypeError, ValueError) as e:
        logger.warning("Failed to log %s event for group %s: %s", event_type, group, e)
        return False


def verify_audit_log() -> tuple[int, int]:
    """Verify all signatures in the audit log.

    Returns:
        Tuple of (total_events, valid_signatures)
    """
    if not AUDIT_LOG_FILE.exists():
        return 0, 0

    total = 0
    valid = 0

    with AUDIT_LOG_FILE.open("r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            total += 1
            try:
                event = json.loads(line)
                stored_sig = event.pop("signature", "")
                if not stored_sig:
                    continue
                computed_sig = _sign_event(event)
                if hmac.compare_digest(stored_sig, computed_sig):
                    valid += 1
            except (json.JSONDecodeError, KeyError):
                continue

    return total, valid


if __name__ == "__main__":
    import sys
    total, valid = verify_audit_log()
    print(f"Audit log: {valid}/{total} events with valid signatures")
    sys.exit(0 if total == valid else 1)
