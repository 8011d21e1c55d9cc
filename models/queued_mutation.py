"""Write operations waiting for delivery to the remote backend."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from datetime_utils import now_ms


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"


_TRANSITIONS = {
    SyncStatus.PENDING: {SyncStatus.SYNCING},
    SyncStatus.SYNCING: {SyncStatus.SYNCED, SyncStatus.FAILED},
    SyncStatus.FAILED: {SyncStatus.SYNCING},
    SyncStatus.SYNCED: set(),
}


def new_local_id(created_at: Optional[int] = None) -> str:
    stamp = created_at if created_at is not None else now_ms()
    return f"local-{stamp}-{uuid.uuid4().hex[:12]}"


def _freeze_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    # A JSON round trip detaches the copy from the caller and rejects values
    # that could not be persisted anyway.
    data = json.loads(json.dumps(dict(payload), ensure_ascii=False))
    if not isinstance(data, dict):
        raise ValueError("Payload must be a mapping")
    return data


@dataclass
class QueuedMutation:
    local_id: str
    kind: str
    payload: Dict[str, Any]
    created_at: int
    sync_status: SyncStatus = SyncStatus.PENDING
    sync_error: Optional[str] = None
    attempts: int = 0
    result: Optional[Dict[str, Any]] = field(default=None, compare=False)

    @classmethod
    def create(
        cls, kind: str, payload: Dict[str, Any], created_at: Optional[int] = None
    ) -> "QueuedMutation":
        if created_at is None:
            created_at = now_ms()
        return cls(
            local_id=new_local_id(created_at),
            kind=kind,
            payload=_freeze_payload(payload),
            created_at=created_at,
        )

    @property
    def is_active(self) -> bool:
        return self.sync_status != SyncStatus.SYNCED

    def transition(self, status: SyncStatus, error: Optional[str] = None) -> None:
        status = SyncStatus(status)
        if status not in _TRANSITIONS[self.sync_status]:
            raise ValueError(
                f"Illegal sync transition for {self.local_id}: "
                f"{self.sync_status.value} -> {status.value}"
            )
        self.sync_status = status
        if status == SyncStatus.SYNCING:
            self.attempts += 1
        self.sync_error = (error or "Unknown error") if status == SyncStatus.FAILED else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "localId": self.local_id,
            "kind": self.kind,
            "payload": self.payload,
            "createdAt": self.created_at,
            "syncStatus": self.sync_status.value,
            "syncError": self.sync_error,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueuedMutation":
        status = SyncStatus(data.get("syncStatus") or SyncStatus.PENDING.value)
        # Interrupted passes leave items half-delivered; they go back to pending.
        if status == SyncStatus.SYNCING:
            status = SyncStatus.PENDING
        return cls(
            local_id=str(data["localId"]),
            kind=str(data.get("kind") or ""),
            payload=dict(data.get("payload") or {}),
            created_at=int(data.get("createdAt") or 0),
            sync_status=status,
            sync_error=data.get("syncError") if status == SyncStatus.FAILED else None,
            attempts=int(data.get("attempts") or 0),
        )


__all__ = ["QueuedMutation", "SyncStatus", "new_local_id"]
