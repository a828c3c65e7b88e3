"""
Pytest fixtures and test configuration for draftsync tests.
"""

import copy
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from draftsync.config import Settings, get_settings
from draftsync.storage.sqlite import SQLiteDraftStore
from draftsync.types import LocalDraft, Record

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def ts(seconds: float) -> datetime:
    """Timestamp ``seconds`` after the fixed test epoch."""
    return T0 + timedelta(seconds=seconds)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    def set(self, when: datetime) -> None:
        self.now = when


class FakeTimer:
    """Stand-in for threading.Timer that only fires when told to."""

    def __init__(self, interval, function, args=()):
        self.interval = interval
        self.function = function
        self.args = args
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled and not self.fired:
            self.fired = True
            self.function(*self.args)


class FakeTimerFactory:
    """Collects FakeTimers created by the scheduler."""

    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, interval, function, args=()):
        timer = FakeTimer(interval, function, args)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> List[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]

    def fire_all(self) -> None:
        for timer in list(self.active):
            timer.fire()


class FakeRemoteStore:
    """In-memory remote record store that stamps writes like the backend does."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.records: Dict[str, Record] = {}
        self.fetch_calls = 0
        self.commits: List[Record] = []

    def add(self, record: Record) -> Record:
        self.records[record.id] = copy.deepcopy(record)
        return record

    def fetch_record(self, record_id: str) -> Optional[Record]:
        self.fetch_calls += 1
        record = self.records.get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def commit_record(self, record_id: str, record: Record) -> Record:
        previous = self.records.get(record_id)
        stored = replace(
            copy.deepcopy(record),
            last_modified_at=self.clock(),
            version=(previous.version + 1) if previous else 1,
        )
        self.records[record_id] = stored
        self.commits.append(stored)
        return copy.deepcopy(stored)


@pytest.fixture(autouse=True)
def draftsync_home(tmp_path, monkeypatch):
    """Point the data directory (logs, default db) at a temp dir."""
    home = tmp_path / "draftsync-home"
    monkeypatch.setenv("DRAFTSYNC_DATA_DIR", str(home))
    get_settings.cache_clear()
    yield home
    get_settings.cache_clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers():
    return FakeTimerFactory()


@pytest.fixture
def draft_store(tmp_path):
    """Create a SQLiteDraftStore backed by a temp file."""
    store = SQLiteDraftStore(db_path=tmp_path / "drafts.db")
    yield store
    store.close()


@pytest.fixture
def remote(clock):
    return FakeRemoteStore(clock)


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path / "data", debounce_seconds=2.0)


@pytest.fixture
def jane():
    """Remote record from the recovery scenario: Jane, last written at t=100."""
    return Record(
        id="p1",
        name="Jane",
        status="draft",
        description="Alumna, class of 1970",
        biography="Born in Leeds.",
        tags=["alumni"],
        last_modified_at=ts(100),
        last_modified_by="editor-1",
        version=3,
    )


def make_draft(profile_id: str = "p1", saved_at: Optional[datetime] = None, **fields) -> LocalDraft:
    return LocalDraft(profile_id=profile_id, saved_at=saved_at or ts(150), fields=fields)
