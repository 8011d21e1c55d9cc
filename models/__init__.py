"""Models exposed by the HSSE field client."""
from .cache_entry import CacheEntry
from .queued_mutation import QueuedMutation, SyncStatus

__all__ = ["CacheEntry", "QueuedMutation", "SyncStatus"]
