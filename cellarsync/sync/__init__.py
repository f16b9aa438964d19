"""
Synchronization module for Cellar Sync.

Holds the SyncEngine and the AppState mirror it owns.
"""

from .engine import AppState, SyncEngine, SyncStatus

__all__ = ["AppState", "SyncEngine", "SyncStatus"]
