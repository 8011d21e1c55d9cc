"""Offline-first area inspections: cached sessions, queued responses and findings."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from core.settings import OFFLINE
from datetime_utils import from_epoch_ms, now_ms, to_rfc3339_utc
from models.queued_mutation import SyncStatus
from services.area_inspections import AreaInspectionGateway
from services.network_status import NetworkMonitor
from services.notifications import LogNotifier, Notifier
from services.offline_queue import EnqueueResult, OfflineMutationQueue, SyncSummary
from storage.offline_cache import CACHE_STORES, OfflineDataCache


AREA_RESPONSE_SAVE = "area_response_save"
AREA_FINDING_CREATE = "area_finding_create"

RESPONSE_INPUT_FIELDS = (
    "session_id",
    "template_item_id",
    "result",
    "response_value",
    "notes",
    "photo_paths",
    "gps_lat",
    "gps_lng",
    "gps_accuracy",
)

logger = logging.getLogger("hsse.inspections")


def _same_item(payload: Mapping[str, Any], session_id: str, template_item_id: str) -> bool:
    return payload.get("session_id") == session_id and payload.get("template_item_id") == template_item_id


class OfflineAreaInspection:
    """Area inspection capture that keeps working without a connection.

    Responses and findings go to separate queues. Findings are only ever
    delivered after the responses pass, since the server looks up the
    response a finding belongs to.
    """

    def __init__(
        self,
        cache: OfflineDataCache,
        network: NetworkMonitor,
        gateway: Optional[AreaInspectionGateway] = None,
        notifier: Optional[Notifier] = None,
        *,
        auto_sync: bool = True,
        clock: Callable[[], int] = now_ms,
        max_age_ms: int = OFFLINE.inspection_max_age_ms,
    ) -> None:
        self.cache = cache
        self.network = network
        self.gateway = gateway or AreaInspectionGateway()
        self.notifier = notifier or LogNotifier()
        self.max_age_ms = max_age_ms
        self._clock = clock
        self.responses = OfflineMutationQueue(
            cache,
            CACHE_STORES.AREA_RESPONSES,
            {AREA_RESPONSE_SAVE: self.gateway.save_response},
            network,
            self.notifier,
            label="response",
            auto_sync=False,
            clock=clock,
            max_age_ms=max_age_ms,
        )
        self.findings = OfflineMutationQueue(
            cache,
            CACHE_STORES.AREA_FINDINGS,
            {AREA_FINDING_CREATE: self.gateway.create_finding},
            network,
            self.notifier,
            label="finding",
            auto_sync=False,
            clock=clock,
            max_age_ms=max_age_ms,
        )
        self.auto_sync_task: Optional[asyncio.Task] = None
        self._auto_sync = auto_sync
        if auto_sync:
            self.network.subscribe(self._on_network_change)

    def close(self) -> None:
        if self._auto_sync:
            self.network.unsubscribe(self._on_network_change)
            self._auto_sync = False

    # ---------- session cache ----------
    def _cache_set(self, store: str, key: str, data: Any) -> None:
        self.cache.set(
            store,
            key,
            data,
            max_age_ms=self.max_age_ms,
            stale_time_ms=OFFLINE.default_stale_time_ms,
        )

    async def prefetch_session(self, session_id: str, *, quiet: bool = False) -> Optional[Dict[str, Any]]:
        """Download a session and its template items for offline use."""

        try:
            session = await asyncio.to_thread(self.gateway.fetch_session, session_id)
            self._cache_set(CACHE_STORES.AREA_SESSIONS, f"session_{session_id}", session)
            template_id = session.get("template_id")
            if template_id:
                items = await asyncio.to_thread(self.gateway.fetch_template_items, template_id)
                self._cache_set(CACHE_STORES.TEMPLATE_ITEMS, f"template_{template_id}", items)
        except Exception as exc:
            logger.error("Failed to prefetch area session %s: %s", session_id, exc)
            if not quiet:
                self.notifier.error("Failed to cache session")
            return None
        if not quiet:
            self.notifier.success("Session cached for offline use")
        return session

    async def load_session(self, session_id: str) -> Dict[str, Any]:
        """Cached session plus template items, refreshed when online and stale."""

        cached = self.cache.get(CACHE_STORES.AREA_SESSIONS, f"session_{session_id}")
        session = None if cached.is_miss else cached.data
        if self.network.is_online and (cached.is_miss or cached.is_stale):
            session = await self.prefetch_session(session_id, quiet=True) or session
        items: List[Dict[str, Any]] = []
        if session and session.get("template_id"):
            items = self.cached_template_items(session["template_id"])
        return {"session": session, "template_items": items, "is_cached": not cached.is_miss}

    def cached_template_items(self, template_id: str) -> List[Dict[str, Any]]:
        cached = self.cache.get(CACHE_STORES.TEMPLATE_ITEMS, f"template_{template_id}")
        return list(cached.data) if not cached.is_miss and isinstance(cached.data, list) else []

    def cached_sessions(self) -> List[Dict[str, Any]]:
        return [
            entry.data
            for entry in self.cache.get_all(CACHE_STORES.AREA_SESSIONS)
            if isinstance(entry.data, dict)
        ]

    # ---------- capture ----------
    def _supersede_queued_response(self, session_id: str, template_item_id: str) -> None:
        # A newer answer for the same item replaces one that has not gone out yet.
        for item in self.responses.pending_items():
            if item.sync_status in (SyncStatus.PENDING, SyncStatus.FAILED) and _same_item(
                item.payload, session_id, template_item_id
            ):
                self.responses.discard(item.local_id)

    def _finding_queued(self, session_id: str, template_item_id: str) -> bool:
        return any(_same_item(item.payload, session_id, template_item_id) for item in self.findings.pending_items())

    async def save_response(self, data: Mapping[str, Any]) -> EnqueueResult:
        """Record the answer to one template item; a "fail" also raises a finding."""

        session_id = data.get("session_id")
        template_item_id = data.get("template_item_id")
        if not session_id or not template_item_id:
            raise ValueError("session_id and template_item_id are required")

        payload = {name: data.get(name) for name in RESPONSE_INPUT_FIELDS}
        payload["photo_paths"] = list(payload["photo_paths"] or [])
        payload["responded_by"] = self.gateway.user_id
        payload["responded_at"] = to_rfc3339_utc(from_epoch_ms(self._clock()))

        self._supersede_queued_response(session_id, template_item_id)
        result = await self.responses.enqueue_or_submit(AREA_RESPONSE_SAVE, payload)
        if result.success and payload.get("result") == "fail":
            await self._raise_finding(payload, result)
        return result

    async def _raise_finding(self, response: Dict[str, Any], saved: EnqueueResult) -> None:
        session_id = response["session_id"]
        template_item_id = response["template_item_id"]
        if self._finding_queued(session_id, template_item_id):
            return
        finding = {
            "session_id": session_id,
            "template_item_id": template_item_id,
            "response_id": (saved.data or {}).get("id"),
            "classification": "observation",
            "risk_level": "medium",
            "status": "open",
            "created_by": self.gateway.user_id,
        }
        await self.findings.enqueue_or_submit(AREA_FINDING_CREATE, finding)

    # ---------- sync ----------
    async def sync_all(self) -> Dict[str, SyncSummary]:
        responses = await self.responses.sync_all()
        findings = await self.findings.sync_all()
        return {"responses": responses, "findings": findings}

    @property
    def pending_count(self) -> int:
        return self.responses.pending_count + self.findings.pending_count

    @property
    def failed_count(self) -> int:
        return self.responses.failed_count + self.findings.failed_count

    def clear_synced(self) -> int:
        return self.responses.clear_synced() + self.findings.clear_synced()

    def _on_network_change(self, online: bool) -> None:
        if not online:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self.sync_all())
            return
        self.auto_sync_task = loop.create_task(self.sync_all())


__all__ = ["AREA_FINDING_CREATE", "AREA_RESPONSE_SAVE", "OfflineAreaInspection"]
