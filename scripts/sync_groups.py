"""Reconcile SCIM group memberships with a desired-state file.

This module serves as a CLI wrapper around groupsync.core.reconciler.

Exit codes:
    0  every matched group is unchanged, converged or planned
    1  the run completed but at least one group failed
    2  the run aborted (configuration, unreadable snapshot, malformed document)
"""
from __future__ import annotations
import argparse
import json
import logging
import sys
from pathlib import Path

SCRIPT_DIR = Path(__file__).parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from groupsync.config import AppConfig, load_settings
from groupsync.core.desired_state import load_desired_state_document
from groupsync.core.models import GroupOutcome, OutcomeStatus, ReconcileReport
from groupsync.core.reconciler import reconcile
from groupsync.core.scim import (
    DesiredStateFormatError,
    DirectoryAPIError,
    ScimClient,
    ScimDirectory,
)
from scripts import audit

logger = logging.getLogger("groupsync")

EXIT_OK = 0
EXIT_GROUP_FAILURES = 1
EXIT_ABORTED = 2

_AUDIT_EVENTS = {
    OutcomeStatus.CONVERGED: "group_converged",
    OutcomeStatus.FAILED: "group_failed",
    OutcomeStatus.PLANNED: "group_planned",
}


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
        force=True,
    )
    # Request logging would include query strings on every page fetch
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_directory(config: AppConfig) -> ScimDirectory:
    """Create an authenticated SCIM directory from settings."""
    client = ScimClient(config.scim_base_url, timeout=config.request_timeout)
    if config.uses_client_credentials:
        client.authenticate_client_credentials(
            config.scim_token_url, config.scim_client_id, config.scim_client_secret
        )
    else:
        client.authenticate_token(config.scim_token)
    return ScimDirectory(client)


def audit_listener(config: AppConfig, operator: str):
    """Return an outcome callback writing one audit event per changed or failed group."""
    def _on_outcome(outcome: GroupOutcome) -> None:
        event_type = _AUDIT_EVENTS.get(outcome.status)
        if event_type is None:
            return
        audit.safe_log_group_event(
            event_type,
            outcome.display_name,
            operator=operator,
            directory=config.scim_base_url,
            details=outcome.to_dict(),
            success=outcome.status is not OutcomeStatus.FAILED,
        )
    return _on_outcome


def format_report(report: ReconcileReport) -> str:
    """Render a report as an aligned text table."""
    lines = []
    width = max([len(name) for name in report.outcomes] + [len(name) for name in report.skipped] + [5])
    for name in sorted(report.outcomes):
        outcome = report.outcomes[name]
        line = f"{name:<{width}}  {outcome.status.value:<9}  +{outcome.added_count} -{outcome.removed_count}"
        if outcome.status is OutcomeStatus.FAILED:
            code = outcome.status_code if outcome.status_code is not None else "no-response"
            line += f"  [{code}] {outcome.reason}"
        if outcome.dropped_handles:
            line += f"  dropped: {', '.join(sorted(outcome.dropped_handles))}"
        lines.append(line)
    for name in sorted(report.skipped):
        lines.append(f"{name:<{width}}  skipped    (not in directory)")
    if report.dry_run:
        lines.append("(dry run: no changes were made)")
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(description="Reconcile SCIM group memberships with a desired-state file")
    parser.add_argument("desired_state", nargs="?", help="YAML or JSON desired-state file (default: $DESIRED_STATE_PATH)")
    parser.add_argument("--scim-url", help="SCIM base URL (default: $SCIM_BASE_URL)")
    parser.add_argument("--token-url", help="OAuth token endpoint (default: $SCIM_TOKEN_URL)")
    parser.add_argument("--client-id", help="OAuth client ID (default: $SCIM_CLIENT_ID)")
    parser.add_argument("--dry-run", action="store_true", default=None, help="Compute deltas without patching")
    parser.add_argument("--max-workers", type=int, help="Groups reconciled concurrently (default: 1)")
    parser.add_argument("--timeout", type=float, help="Per-request timeout in seconds")
    parser.add_argument("--audit-dir", help="Audit trail directory (default: $AUDIT_LOG_DIR)")
    parser.add_argument("--no-audit", action="store_true", help="Do not write audit events")
    parser.add_argument("--operator", default="automation",
                       help="Operator identifier for audit logs (default: automation)")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = load_settings(
            scim_base_url=args.scim_url,
            scim_token_url=args.token_url,
            scim_client_id=args.client_id,
            desired_state_path=args.desired_state,
            dry_run=args.dry_run,
            max_workers=args.max_workers,
            request_timeout=args.timeout,
            audit_log_dir=args.audit_dir,
        )
    except RuntimeError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_ABORTED

    try:
        document = load_desired_state_document(config.desired_state_path)
    except OSError as e:
        logger.error("Cannot read desired state %s: %s", config.desired_state_path, e)
        return EXIT_ABORTED
    except DesiredStateFormatError as e:
        logger.error("%s", e)
        return EXIT_ABORTED

    on_outcome = None
    if not args.no_audit:
        audit.configure(config.audit_log_dir)
        on_outcome = audit_listener(config, args.operator)

    try:
        directory = build_directory(config)
        report = reconcile(
            document,
            directory,
            dry_run=config.dry_run,
            max_workers=config.max_workers,
            on_outcome=on_outcome,
        )
    except DesiredStateFormatError as e:
        logger.error("%s", e)
        return EXIT_ABORTED
    except DirectoryAPIError as e:
        logger.error("Reconciliation aborted: %s", e)
        return EXIT_ABORTED

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(format_report(report))

    if not report.ok:
        logger.error("%d group(s) failed: %s", len(report.failed), ", ".join(sorted(report.failed)))
        return EXIT_GROUP_FAILURES
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
