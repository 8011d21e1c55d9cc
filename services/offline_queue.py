from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from typing import Any, Callable, Dict, List, Mapping, Optional

from core.settings import OFFLINE, SYNC_LOG_PATH
from datetime_utils import from_epoch_ms, now_ms
from models.queued_mutation import QueuedMutation, SyncStatus, new_local_id
from services.network_status import NetworkMonitor
from services.notifications import LogNotifier, Notifier
from storage.offline_cache import CacheWriteError, OfflineDataCache


Submitter = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]

QUEUE_KEY = "pending_mutations"


def _ensure_logger() -> logging.Logger:
    logger = logging.getLogger("hsse.sync")
    if not logger.handlers:
        SYNC_LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(SYNC_LOG_PATH, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


def _error_message(exc: BaseException) -> str:
    message = str(exc) or exc.__class__.__name__
    return message[: OFFLINE.sync_error_max_len]


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


@dataclass
class EnqueueResult:
    success: bool
    local_id: Optional[str] = None
    error: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    @property
    def queued(self) -> bool:
        return self.local_id is not None


@dataclass
class SyncSummary:
    synced: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.synced + self.failed


class OfflineMutationQueue:
    """Persisted queue of writes made while the backend was unreachable.

    The whole list lives under one key of a cache store, so every write-back
    replaces it in a single transaction. Delivery is at-least-once: a retry
    after a lost response may create a duplicate on the server.
    """

    def __init__(
        self,
        cache: OfflineDataCache,
        store: str,
        submitters: Mapping[str, Submitter],
        network: NetworkMonitor,
        notifier: Optional[Notifier] = None,
        *,
        key: str = QUEUE_KEY,
        max_age_ms: int = OFFLINE.queue_max_age_ms,
        label: str = "item",
        auto_sync: bool = True,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if not submitters:
            raise ValueError("At least one submitter is required")
        self.cache = cache
        self.store = store
        self.key = key
        self.submitters = dict(submitters)
        self.network = network
        self.notifier = notifier or LogNotifier()
        self.max_age_ms = max_age_ms
        self.label = label
        self.logger = _ensure_logger()
        self._clock = clock
        self._items: List[QueuedMutation] = []
        self._syncing = False
        self._last_sync_at: Optional[int] = None
        self.auto_sync_task: Optional[asyncio.Task] = None
        self._auto_sync = auto_sync
        if auto_sync:
            self.network.subscribe(self._on_network_change)
        self.reload()

    def close(self) -> None:
        if self._auto_sync:
            self.network.unsubscribe(self._on_network_change)
            self._auto_sync = False

    # ------------------------------------------------------------------
    # Views
    def items(self) -> List[QueuedMutation]:
        return list(self._items)

    def pending_items(self) -> List[QueuedMutation]:
        return [item for item in self._items if item.is_active]

    @property
    def pending_count(self) -> int:
        return len(self.pending_items())

    @property
    def failed_count(self) -> int:
        return sum(1 for item in self._items if item.sync_status == SyncStatus.FAILED)

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    def get(self, local_id: str) -> Optional[QueuedMutation]:
        for item in self._items:
            if item.local_id == local_id:
                return item
        return None

    def status(self) -> dict:
        return {
            "store": self.store,
            "pending": self.pending_count,
            "failed": self.failed_count,
            "synced": sum(1 for item in self._items if item.sync_status == SyncStatus.SYNCED),
            "syncing": self._syncing,
            "online": self.network.is_online,
            "lastSyncAt": from_epoch_ms(self._last_sync_at),
        }

    # ------------------------------------------------------------------
    # Persistence
    def reload(self) -> List[QueuedMutation]:
        cached = self.cache.get(self.store, self.key)
        raw = cached.data if not cached.is_miss and isinstance(cached.data, list) else []
        cutoff = self._clock() - self.max_age_ms
        loaded: List[QueuedMutation] = []
        seen = set()
        for entry in raw:
            if not isinstance(entry, dict):
                continue
            try:
                item = QueuedMutation.from_dict(entry)
            except (KeyError, TypeError, ValueError) as exc:
                self.logger.warning("Skipping unreadable queue entry in %s: %s", self.store, exc)
                continue
            if item.local_id in seen or item.created_at <= cutoff:
                continue
            seen.add(item.local_id)
            loaded.append(item)
        loaded.sort(key=lambda item: item.created_at)
        self._items = loaded
        self.logger.info("Loaded %d queued mutation(s) from %s", len(loaded), self.store)
        return self.items()

    def _persist(self) -> None:
        self.cache.set(
            self.store,
            self.key,
            [item.to_dict() for item in self._items],
            max_age_ms=self.max_age_ms,
            stale_time_ms=self.max_age_ms,
        )

    # ------------------------------------------------------------------
    # Public API
    async def enqueue_or_submit(self, kind: str, payload: Mapping[str, Any]) -> EnqueueResult:
        submit = self._submitter_for(kind)

        if self.network.is_online:
            try:
                data = await asyncio.to_thread(submit, dict(payload))
            except Exception as exc:
                message = _error_message(exc)
                self.logger.warning("Direct submit of %s failed: %s", kind, message)
                self.notifier.error(message)
                return EnqueueResult(success=False, error=message)
            self.notifier.success(f"{self.label.capitalize()} created successfully")
            return EnqueueResult(success=True, data=data if isinstance(data, dict) else None)

        try:
            item = QueuedMutation.create(kind, payload, created_at=self._clock())
        except (TypeError, ValueError) as exc:
            raise CacheWriteError(f"Payload for {kind} cannot be stored offline: {exc}") from exc
        while self.get(item.local_id) is not None:
            item.local_id = new_local_id(item.created_at)
        self._items.append(item)
        try:
            self._persist()
        except CacheWriteError:
            self._items.remove(item)
            self.logger.error("Could not persist offline %s %s", kind, item.local_id)
            raise
        self.logger.info("Queued %s offline as %s", kind, item.local_id)
        self.notifier.info("Saved offline - will sync when connected")
        return EnqueueResult(success=True, local_id=item.local_id)

    async def sync_all(self) -> SyncSummary:
        if self._syncing:
            self.logger.debug("Sync already in progress for %s", self.store)
            return SyncSummary()
        if not self.network.is_online:
            return SyncSummary()
        targets = [
            item
            for item in self._items
            if item.sync_status in (SyncStatus.PENDING, SyncStatus.FAILED)
        ]
        if not targets:
            return SyncSummary()

        self._syncing = True
        self.logger.info("Syncing %d queued mutation(s) from %s", len(targets), self.store)
        try:
            for item in targets:
                item.transition(SyncStatus.SYNCING)
            outcomes = await asyncio.gather(*(self._deliver(item) for item in targets))
            synced = sum(1 for ok in outcomes if ok)
            summary = SyncSummary(synced=synced, failed=len(outcomes) - synced)
            self._last_sync_at = self._clock()
        finally:
            for item in targets:
                if item.sync_status == SyncStatus.SYNCING:
                    item.transition(SyncStatus.FAILED, "Sync interrupted")
            self._syncing = False
            self._persist()

        self.logger.info(
            "Sync of %s finished: %d synced, %d failed", self.store, summary.synced, summary.failed
        )
        if summary.synced:
            self.notifier.success(f"{_plural(summary.synced, self.label)} synced")
        if summary.failed:
            self.notifier.error(f"{_plural(summary.failed, self.label)} failed to sync")
        return summary

    async def retry(self, local_id: str) -> bool:
        """Deliver one item again. Returns True only when it ended up synced."""

        item = self.get(local_id)
        if item is None or not self.network.is_online:
            return False
        if item.sync_status in (SyncStatus.SYNCED, SyncStatus.SYNCING):
            return False

        item.transition(SyncStatus.SYNCING)
        try:
            ok = await self._deliver(item)
        finally:
            if item.sync_status == SyncStatus.SYNCING:
                item.transition(SyncStatus.FAILED, "Sync interrupted")
            self._persist()

        if ok:
            self.notifier.success(f"{_plural(1, self.label)} synced")
        else:
            self.notifier.error(f"{self.label.capitalize()} failed to sync: {item.sync_error}")
        return ok

    def discard(self, local_id: str) -> bool:
        for index, item in enumerate(self._items):
            if item.local_id == local_id:
                del self._items[index]
                try:
                    self._persist()
                except CacheWriteError:
                    self._items.insert(index, item)
                    raise
                self.logger.info("Discarded queued mutation %s", local_id)
                return True
        return False

    def clear_synced(self) -> int:
        remaining = [item for item in self._items if item.is_active]
        removed = len(self._items) - len(remaining)
        if not removed:
            return 0
        previous = self._items
        self._items = remaining
        try:
            if remaining:
                self._persist()
            else:
                self.cache.delete(self.store, self.key)
        except CacheWriteError:
            self._items = previous
            raise
        return removed

    # ------------------------------------------------------------------
    # Helpers
    def _submitter_for(self, kind: str) -> Submitter:
        try:
            return self.submitters[kind]
        except KeyError:
            raise ValueError(f"Unsupported mutation kind: {kind}") from None

    async def _deliver(self, item: QueuedMutation) -> bool:
        try:
            submit = self._submitter_for(item.kind)
            result = await asyncio.to_thread(submit, dict(item.payload))
        except Exception as exc:
            message = _error_message(exc)
            self.logger.warning("Delivery of %s (%s) failed: %s", item.local_id, item.kind, message)
            item.transition(SyncStatus.FAILED, message)
            return False
        item.result = result if isinstance(result, dict) else None
        item.transition(SyncStatus.SYNCED)
        return True

    def _on_network_change(self, online: bool) -> None:
        if not online:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self.sync_all())
            return
        self.auto_sync_task = loop.create_task(self.sync_all())


__all__ = [
    "EnqueueResult",
    "OfflineMutationQueue",
    "QUEUE_KEY",
    "SyncSummary",
]
