"""SQLModel table backing the offline data cache."""

from __future__ import annotations

from sqlmodel import Field, SQLModel


class CacheEntry(SQLModel, table=True):
    store: str = Field(primary_key=True)
    key: str = Field(primary_key=True)
    data: str
    cached_at: int = Field(index=True)
    stale_at: int
    expires_at: int = Field(index=True)


__all__ = ["CacheEntry"]
