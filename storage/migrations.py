"""Ad-hoc database migrations for the offline store."""

from __future__ import annotations

from sqlalchemy import text


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def ensure_cache_columns(conn) -> None:
    # Early builds stored only an expiry; stale_at falls back to cached_at.
    if not _column_exists(conn, "cacheentry", "stale_at"):
        conn.execute(text("ALTER TABLE cacheentry ADD COLUMN stale_at INTEGER"))
    conn.execute(
        text(
            """
            UPDATE cacheentry
            SET stale_at = cached_at
            WHERE stale_at IS NULL
            """
        )
    )


def ensure_cache_indexes(conn) -> None:
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS ix_cacheentry_store_expires
            ON cacheentry (store, expires_at)
            """
        )
    )


def run_all(engine) -> None:
    with engine.begin() as conn:
        ensure_cache_columns(conn)
        ensure_cache_indexes(conn)


__all__ = ["run_all"]
