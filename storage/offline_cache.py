"""Namespaced key/value cache persisted to the local SQLite database."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.settings import OFFLINE
from datetime_utils import now_ms
from models.cache_entry import CacheEntry
from storage.db import get_session


class CACHE_STORES:
    PTW_PERMITS = "ptw_permits"
    FORM_PROGRESS = "form_progress"
    AREA_SESSIONS = "area_sessions"
    AREA_RESPONSES = "area_responses"
    AREA_FINDINGS = "area_findings"
    TEMPLATE_ITEMS = "template_items"


class CacheWriteError(RuntimeError):
    """Raised when the local store could not persist a value."""


@dataclass
class CacheResult:
    data: Any = None
    is_miss: bool = True
    is_stale: bool = False
    cached_at: Optional[int] = None


def _serialise(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, sort_keys=True)


def _deserialise(payload: Optional[str]) -> Any:
    if not payload:
        return None
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        return None


class OfflineDataCache:
    """High level helper around the ``cacheentry`` table.

    Entries are addressed by ``(store, key)``. Each write stamps a stale
    deadline (the value is still served, flagged ``is_stale``) and an expiry
    deadline (the value is dropped on the next read or prune).
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = get_session,
        *,
        clock: Callable[[], int] = now_ms,
    ):
        self._session_factory = session_factory
        self._clock = clock

    def get(self, store: str, key: str) -> CacheResult:
        now = self._clock()
        with self._session_factory() as session:
            row = session.get(CacheEntry, (store, key))
            if row is None:
                return CacheResult()
            if row.expires_at <= now:
                session.delete(row)
                session.commit()
                return CacheResult()
            data = _deserialise(row.data)
            if data is None:
                return CacheResult()
            return CacheResult(
                data=data,
                is_miss=False,
                is_stale=row.stale_at <= now,
                cached_at=row.cached_at,
            )

    def set(
        self,
        store: str,
        key: str,
        data: Any,
        *,
        max_age_ms: Optional[int] = None,
        stale_time_ms: Optional[int] = None,
    ) -> None:
        try:
            payload = _serialise(data)
        except (TypeError, ValueError) as exc:
            raise CacheWriteError(f"Value for {store}/{key} is not serialisable: {exc}") from exc

        now = self._clock()
        max_age = OFFLINE.default_max_age_ms if max_age_ms is None else max_age_ms
        stale_time = OFFLINE.default_stale_time_ms if stale_time_ms is None else stale_time_ms
        try:
            with self._session_factory() as session:
                row = session.get(CacheEntry, (store, key))
                if row is None:
                    row = CacheEntry(store=store, key=key, data=payload, cached_at=now, stale_at=now, expires_at=now)
                row.data = payload
                row.cached_at = now
                row.stale_at = now + min(stale_time, max_age)
                row.expires_at = now + max_age
                session.add(row)
                session.commit()
        except SQLAlchemyError as exc:
            raise CacheWriteError(f"Failed to write {store}/{key}: {exc}") from exc

    def delete(self, store: str, key: str) -> None:
        try:
            with self._session_factory() as session:
                row = session.get(CacheEntry, (store, key))
                if row is not None:
                    session.delete(row)
                    session.commit()
        except SQLAlchemyError as exc:
            raise CacheWriteError(f"Failed to delete {store}/{key}: {exc}") from exc

    def get_all(self, store: str) -> List[CacheResult]:
        now = self._clock()
        with self._session_factory() as session:
            stmt = (
                select(CacheEntry)
                .where(CacheEntry.store == store)
                .where(CacheEntry.expires_at > now)
                .order_by(CacheEntry.cached_at.asc())
            )
            rows = list(session.exec(stmt))

        result: List[CacheResult] = []
        for row in rows:
            data = _deserialise(row.data)
            if data is None:
                continue
            result.append(
                CacheResult(
                    data=data,
                    is_miss=False,
                    is_stale=row.stale_at <= now,
                    cached_at=row.cached_at,
                )
            )
        return result

    def clear_store(self, store: str) -> None:
        try:
            with self._session_factory() as session:
                session.execute(delete(CacheEntry).where(CacheEntry.store == store))
                session.commit()
        except SQLAlchemyError as exc:
            raise CacheWriteError(f"Failed to clear {store}: {exc}") from exc

    def prune_expired(self) -> int:
        now = self._clock()
        with self._session_factory() as session:
            rows = list(session.exec(select(CacheEntry).where(CacheEntry.expires_at <= now)))
            for row in rows:
                session.delete(row)
            session.commit()
        return len(rows)


__all__ = [
    "CACHE_STORES",
    "CacheResult",
    "CacheWriteError",
    "OfflineDataCache",
]
