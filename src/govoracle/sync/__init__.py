"""Event synchronization."""

from .engine import EventSyncEngine, SyncResult

__all__ = ["EventSyncEngine", "SyncResult"]
