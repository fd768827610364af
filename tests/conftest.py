from __future__ import annotations

import pytest

from urlrecorder.config import RecorderConfig
from urlrecorder.engine import IngestionCoordinator
from urlrecorder.storage import MemoryStore, StorageError


class ManualScheduler:
    """Scheduler driven by ``advance`` instead of real time."""

    def __init__(self) -> None:
        self.clock = 0.0
        self.timers: list[_Handle] = []

    def now(self) -> float:
        return self.clock

    def call_later(self, delay, callback):
        handle = _Handle(self.clock + delay, callback)
        self.timers.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        self.clock += seconds
        for handle in list(self.timers):
            if not handle.cancelled and handle.when <= self.clock:
                self.timers.remove(handle)
                handle.callback()

    @property
    def active(self) -> int:
        return sum(1 for h in self.timers if not h.cancelled)


class _Handle:
    def __init__(self, when, callback) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FlakyStore(MemoryStore):
    """MemoryStore whose writes fail while ``failing`` is set."""

    def __init__(self, initial=None) -> None:
        super().__init__(initial)
        self.failing = False

    def set(self, mapping):
        if self.failing:
            raise StorageError("disk full")
        super().set(mapping)

    def update(self, key, fn):
        if self.failing:
            raise StorageError("disk full")
        return super().update(key, fn)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def counts():
    return []


@pytest.fixture
def engine(store, scheduler, counts):
    config = RecorderConfig(data_dir="unused", base_uri="https://example.com/")
    eng = IngestionCoordinator(store, config, count_callback=counts.append, scheduler=scheduler)
    yield eng
    eng.close()
