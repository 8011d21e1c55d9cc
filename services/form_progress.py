"""Save/restore of half-filled forms, one slot per form key."""
from __future__ import annotations

from typing import Any, Dict, Optional

from core.settings import OFFLINE
from storage.offline_cache import CACHE_STORES, OfflineDataCache


class FormProgressStore:
    def __init__(
        self,
        cache: OfflineDataCache,
        *,
        store: str = CACHE_STORES.FORM_PROGRESS,
        max_age_ms: int = OFFLINE.form_progress_max_age_ms,
    ) -> None:
        self.cache = cache
        self.store = store
        self.max_age_ms = max_age_ms

    def save(self, form_key: str, data: Dict[str, Any]) -> None:
        self.cache.set(
            self.store,
            form_key,
            dict(data),
            max_age_ms=self.max_age_ms,
            stale_time_ms=self.max_age_ms,
        )

    def load(self, form_key: str) -> Optional[Dict[str, Any]]:
        cached = self.cache.get(self.store, form_key)
        if cached.is_miss or not isinstance(cached.data, dict):
            return None
        return cached.data

    def clear(self, form_key: str) -> None:
        self.cache.delete(self.store, form_key)


__all__ = ["FormProgressStore"]
