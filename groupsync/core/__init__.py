"""Core Business Logic Module

This module provides the reconciliation logic, independent of any transport.

Architecture:
    - Pure Python (the directory is an injected collaborator)
    - Testable with in-memory fake directories
    - Reusable from the CLI, CI jobs or other callers

Module Structure:
    - scim/             : SCIM 2.0 directory client library
    - models.py         : Identity, GroupSnapshot, Delta, GroupOutcome, ReconcileReport
    - snapshot.py       : Directory snapshot loader
    - desired_state.py  : Desired-state document loading and resolution
    - reconciler.py     : Per-group delta computation and patching

Public APIs:
    Reconciliation (groupsync.core.reconciler):
        - reconcile()
        - apply_desired_state()
        - reconcile_group()

    Snapshot (groupsync.core.snapshot):
        - load_snapshot()
        - fetch_active_identities()
        - fetch_groups()

    Desired state (groupsync.core.desired_state):
        - load_desired_state_document()
        - parse_desired_state()
        - resolve_desired_state()
"""
