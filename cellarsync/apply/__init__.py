"""
Apply module for Cellar Sync - authorized mutations and their audit trail.

This module handles:
- Role-based authorization of mutation actions
- Writing room changes through the store
- Appending exactly one audit entry per successful mutation

Invariants:
    - Authorization happens before validation and before any write
    - A failed write never leaves an audit entry behind
    - Audit entries are append-only

How to change safely:
    - Add new actions to MutationAction and to every policy
    - Cover each new mutation with a log-count test
"""

from .acl import (
    ADMIN_ONLY_POLICY,
    OBSERVED_POLICY,
    AccessGate,
    MutationAction,
    get_access_gate,
    policy_for,
)
from .mutations import MutationResult, MutationService

__all__ = [
    "AccessGate",
    "MutationAction",
    "OBSERVED_POLICY",
    "ADMIN_ONLY_POLICY",
    "get_access_gate",
    "policy_for",
    "MutationService",
    "MutationResult",
]
