import pytest
from sqlmodel import select

from models.cache_entry import CacheEntry
from storage.offline_cache import CACHE_STORES, CacheWriteError, OfflineDataCache


MINUTE = 60 * 1000


def test_get_missing_key_is_a_miss(cache):
    result = cache.get(CACHE_STORES.AREA_SESSIONS, "session_1")
    assert result.is_miss
    assert result.data is None


def test_set_then_get_returns_fresh_value(cache, clock):
    cache.set(CACHE_STORES.AREA_SESSIONS, "session_1", {"id": "s1", "status": "in_progress"})
    result = cache.get(CACHE_STORES.AREA_SESSIONS, "session_1")
    assert not result.is_miss
    assert not result.is_stale
    assert result.data == {"id": "s1", "status": "in_progress"}
    assert result.cached_at == clock.now


def test_value_goes_stale_before_it_expires(cache, clock):
    cache.set("area_sessions", "k", [1, 2], max_age_ms=60 * MINUTE, stale_time_ms=5 * MINUTE)
    clock.advance(6 * MINUTE)
    result = cache.get("area_sessions", "k")
    assert not result.is_miss
    assert result.is_stale
    assert result.data == [1, 2]


def test_expired_value_is_a_miss_and_removed(cache, clock, session_factory):
    cache.set("area_sessions", "k", {"a": 1}, max_age_ms=10 * MINUTE)
    clock.advance(10 * MINUTE)
    assert cache.get("area_sessions", "k").is_miss
    with session_factory() as session:
        assert list(session.exec(select(CacheEntry))) == []


def test_set_overwrites_and_restamps(cache, clock):
    cache.set("form_progress", "k", {"v": 1}, max_age_ms=10 * MINUTE)
    clock.advance(8 * MINUTE)
    cache.set("form_progress", "k", {"v": 2}, max_age_ms=10 * MINUTE)
    clock.advance(8 * MINUTE)
    result = cache.get("form_progress", "k")
    assert result.data == {"v": 2}


def test_stores_are_isolated(cache):
    cache.set(CACHE_STORES.PTW_PERMITS, "same", {"store": "ptw"})
    cache.set(CACHE_STORES.FORM_PROGRESS, "same", {"store": "form"})
    cache.clear_store(CACHE_STORES.FORM_PROGRESS)
    assert cache.get(CACHE_STORES.PTW_PERMITS, "same").data == {"store": "ptw"}
    assert cache.get(CACHE_STORES.FORM_PROGRESS, "same").is_miss


def test_delete_removes_single_key(cache):
    cache.set("area_responses", "a", [1])
    cache.set("area_responses", "b", [2])
    cache.delete("area_responses", "a")
    cache.delete("area_responses", "missing")
    assert cache.get("area_responses", "a").is_miss
    assert cache.get("area_responses", "b").data == [2]


def test_get_all_skips_expired_entries(cache, clock):
    cache.set("area_sessions", "old", {"id": "old"}, max_age_ms=MINUTE)
    clock.advance(1)
    cache.set("area_sessions", "new", {"id": "new"}, max_age_ms=60 * MINUTE)
    cache.set("template_items", "other", {"id": "other"})
    clock.advance(MINUTE)
    results = cache.get_all("area_sessions")
    assert [r.data["id"] for r in results] == ["new"]


def test_prune_expired_counts_rows(cache, clock):
    cache.set("area_sessions", "a", 1, max_age_ms=MINUTE)
    cache.set("area_sessions", "b", 2, max_age_ms=MINUTE)
    cache.set("area_sessions", "c", 3, max_age_ms=10 * MINUTE)
    clock.advance(2 * MINUTE)
    assert cache.prune_expired() == 2
    assert cache.get("area_sessions", "c").data == 3


def test_unserialisable_value_raises_write_error(cache):
    with pytest.raises(CacheWriteError):
        cache.set("area_sessions", "bad", {"value": object()})


def test_database_failure_raises_write_error(tmp_path):
    def broken_factory():
        from sqlmodel import Session, create_engine

        # No tables were created on this engine.
        engine = create_engine(f"sqlite:///{(tmp_path / 'empty.db').as_posix()}")
        return Session(engine)

    cache = OfflineDataCache(broken_factory)
    with pytest.raises(CacheWriteError):
        cache.set("ptw_permits", "k", [])
