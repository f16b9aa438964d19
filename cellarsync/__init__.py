"""
Cellar Sync - state synchronization and audit layer for storage rooms.

This package keeps a local view of a small set of physical storage rooms
(temperature, material inventory, fermentation status) consistent with a
push-based document store, applies role-gated mutations, and records every
mutation as an immutable audit entry.

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Caller    │────▶│ AccessGate  │────▶│ MutationService │
    │ (API / UI)  │     │  (role ACL) │     │ write + audit   │
    └──────▲──────┘     └─────────────┘     └────────┬────────┘
           │                                         │
           │                                         ▼
    ┌──────┴──────┐                        ┌─────────────────┐
    │  RoomViews  │                        │    RoomStore    │
    │ (derived)   │                        │ rooms  │  logs  │
    └──────▲──────┘                        └────────┬────────┘
           │                                         │ push snapshots
    ┌──────┴──────────────────────────────────────────▼──────┐
    │                SyncEngine (AppState mirror)             │
    └─────────────────────────────────────────────────────────┘

Invariants:
    - The store is the single writer of truth; the mirror only changes
      when a pushed snapshot replaces it wholesale
    - Every successful mutation produces exactly one LogEntry
    - A failed write never produces a LogEntry
    - Inventory quantities are never negative

How to change safely:
    - New mutations must go through AccessGate and append exactly one log
    - New store backends must implement the RoomStore protocol
    - Keep LogEntry append-only; never add update/delete paths for logs
"""

from ._version import __version__

__all__ = ["__version__"]
