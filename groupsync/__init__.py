"""Declarative group membership sync for SCIM 2.0 directories.

To reconcile a directory:
    from groupsync.core.reconciler import reconcile

To use the SCIM client:
    from groupsync.core.scim import ScimClient, ScimDirectory

To load settings:
    from groupsync.config import load_settings
"""
__version__ = "0.1.0"
