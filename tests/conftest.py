import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from studycore.identity import SessionIdentity
from studycore.schedule.database import RemoteStore, get_engine
from studycore.schedule.persistence import LocalStore
from studycore.service import ScheduleService

T0 = datetime(2024, 3, 4, 9, 30, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def local_store(tmp_path):
    store = LocalStore(tmp_path / "local_schedule.sqlite")
    store.init_db()
    return store


@pytest.fixture
def remote_store():
    store = RemoteStore(engine=get_engine("sqlite://"))
    assert store.init_db()
    yield store
    store.engine.dispose()


@pytest.fixture
def identity():
    return SessionIdentity()


@pytest.fixture
def service(local_store, remote_store, identity, clock):
    svc = ScheduleService(local_store, remote_store, identity, clock=clock, remote_timeout=5)
    yield svc
    svc.close()
