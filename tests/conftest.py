import threading

import pytest
from sqlmodel import Session, create_engine

from services.network_status import NetworkMonitor
from services.notifications import MemoryNotifier
from storage.db import init_db
from storage.offline_cache import OfflineDataCache


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeRemote:
    """Stands in for the permit insert call; fails for chosen project ids."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, payload):
        with self._lock:
            self.calls.append(dict(payload))
            number = len(self.calls)
        if payload.get("project_id") in self.fail_for:
            raise RuntimeError(f"Project {payload['project_id']} is closed")
        return {"id": f"permit-{number}", **payload}


@pytest.fixture()
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{(tmp_path / 'offline.db').as_posix()}")
    init_db(engine)

    def factory():
        return Session(engine)

    return factory


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def cache(session_factory, clock):
    return OfflineDataCache(session_factory, clock=clock)


@pytest.fixture()
def network():
    return NetworkMonitor(online=False, probe=lambda: False)


@pytest.fixture()
def notifier():
    return MemoryNotifier()


@pytest.fixture()
def remote():
    return FakeRemote()
