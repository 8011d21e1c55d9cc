"""Offline-first permit creation: direct submit when online, queue otherwise."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from models.queued_mutation import QueuedMutation
from services.form_progress import FormProgressStore
from services.network_status import NetworkMonitor
from services.notifications import Notifier
from services.offline_queue import EnqueueResult, OfflineMutationQueue, SyncSummary
from services.ptw_permits import PermitGateway
from storage.offline_cache import CACHE_STORES, OfflineDataCache


PERMIT_CREATE = "ptw_permit_create"
PERMIT_FORM_KEY = "ptw_permit_create"


class OfflinePermitCreation:
    def __init__(
        self,
        cache: OfflineDataCache,
        network: NetworkMonitor,
        gateway: Optional[PermitGateway] = None,
        notifier: Optional[Notifier] = None,
        **queue_options: Any,
    ) -> None:
        self.gateway = gateway or PermitGateway()
        self.queue = OfflineMutationQueue(
            cache,
            CACHE_STORES.PTW_PERMITS,
            {PERMIT_CREATE: self.gateway.create_permit},
            network,
            notifier,
            label="permit",
            **queue_options,
        )
        self.form_progress = FormProgressStore(cache)

    async def create_permit(self, payload: Mapping[str, Any]) -> EnqueueResult:
        result = await self.queue.enqueue_or_submit(PERMIT_CREATE, payload)
        if result.success:
            self.form_progress.clear(PERMIT_FORM_KEY)
        return result

    async def sync_pending_permits(self) -> SyncSummary:
        return await self.queue.sync_all()

    async def retry_permit(self, local_id: str) -> bool:
        return await self.queue.retry(local_id)

    def discard_permit(self, local_id: str) -> bool:
        return self.queue.discard(local_id)

    def pending_permits(self) -> List[QueuedMutation]:
        return self.queue.pending_items()

    @property
    def pending_count(self) -> int:
        return self.queue.pending_count

    @property
    def failed_count(self) -> int:
        return self.queue.failed_count

    def save_draft(self, data: Dict[str, Any]) -> None:
        self.form_progress.save(PERMIT_FORM_KEY, data)

    def load_draft(self) -> Optional[Dict[str, Any]]:
        return self.form_progress.load(PERMIT_FORM_KEY)

    def close(self) -> None:
        self.queue.close()


__all__ = ["OfflinePermitCreation", "PERMIT_CREATE", "PERMIT_FORM_KEY"]
