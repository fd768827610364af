import pytest

from urlrecorder.config import RECORDED_URLS_KEY, ConfigState
from urlrecorder.normalizer import normalize_url
from urlrecorder.records import RecordStore
from urlrecorder.storage import MemoryStore

from conftest import FlakyStore


@pytest.fixture
def state():
    return ConfigState()


@pytest.fixture
def kv():
    return MemoryStore()


@pytest.fixture
def records(kv, state):
    return RecordStore(kv, state)


def test_insertion_order_is_preserved(records, kv):
    for url in ("https://a.com/3", "https://a.com/1", "https://a.com/2"):
        assert records.try_insert(url)
    assert records.all() == ("https://a.com/3", "https://a.com/1", "https://a.com/2")
    assert kv.get([RECORDED_URLS_KEY])[RECORDED_URLS_KEY] == list(records.all())


def test_exact_duplicate_rejected(records):
    assert records.try_insert("https://a.com/x.pdf")
    assert not records.try_insert("https://a.com/x.pdf")
    assert len(records) == 1


def test_normalized_duplicate_keeps_first_raw_form(records, state):
    state.set_normalization(True, ["utm_source"])
    assert records.try_insert("https://a.com/p?utm_source=mail&id=7")
    assert records.contains("https://a.com/p?id=7")
    assert not records.try_insert("https://a.com/p?id=7&utm_source=web")
    assert records.all() == ("https://a.com/p?utm_source=mail&id=7",)


def test_disabled_normalization_compares_raw(records, state):
    state.set_normalization(False, ["x"])
    assert records.try_insert("https://a.com?x=1")
    assert records.try_insert("https://a.com?x=2")
    assert len(records) == 2


def test_index_follows_config_changes(records, state):
    records.try_insert("https://a.com?x=1")
    assert not records.contains("https://a.com?x=2")
    state.set_normalization(True, ["x"])
    assert records.contains("https://a.com?x=2")
    state.set_normalization(False, [])
    assert not records.contains("https://a.com?x=2")


def test_no_two_entries_share_a_key(records, state):
    state.set_normalization(True, ["s", "t"])
    candidates = [
        "https://a.com/?s=1", "https://a.com/?s=2", "https://a.com/?t=1&k=1",
        "https://a.com/?k=1", "https://a.com/?k=1&s=9", "https://b.com/",
    ]
    for url in candidates:
        records.try_insert(url)
    keys = [normalize_url(u, ["s", "t"]) for u in records.all()]
    assert len(keys) == len(set(keys))
    assert records.all() == ("https://a.com/?s=1", "https://a.com/?t=1&k=1", "https://b.com/")


def test_clear_empties_and_persists(records, kv):
    for i in range(5):
        records.try_insert(f"https://a.com/{i}")
    assert records.clear()
    assert records.all() == ()
    assert kv.get([RECORDED_URLS_KEY])[RECORDED_URLS_KEY] == []


def test_load_and_replace(kv, state):
    kv.set({RECORDED_URLS_KEY: ["https://a.com/1", 42, "https://a.com/2"]})
    records = RecordStore(kv, state)
    records.load()
    assert records.all() == ("https://a.com/1", "https://a.com/2")
    assert not records.try_insert("https://a.com/2")


def test_persist_failure_keeps_memory_and_retries(state):
    kv = FlakyStore()
    records = RecordStore(kv, state)
    kv.failing = True
    assert records.try_insert("https://a.com/1")
    assert not records.last_persist_ok
    assert records.dirty
    assert records.all() == ("https://a.com/1",)
    assert kv.get([RECORDED_URLS_KEY]) == {}

    kv.failing = False
    assert records.flush()
    assert not records.dirty
    assert kv.get([RECORDED_URLS_KEY])[RECORDED_URLS_KEY] == ["https://a.com/1"]


def test_failed_clear_reports_failure(state):
    kv = FlakyStore()
    records = RecordStore(kv, state)
    records.try_insert("https://a.com/1")
    kv.failing = True
    assert records.clear() is False
    assert records.all() == ()
    kv.failing = False
    assert records.flush()
    assert kv.get([RECORDED_URLS_KEY])[RECORDED_URLS_KEY] == []


def test_stores_sharing_a_backend_merge_inserts(kv):
    config = ConfigState()
    config.set_normalization(True, ["ref"])
    first = RecordStore(kv, config)
    second = RecordStore(kv, config)

    assert first.try_insert("https://a.com/1")
    assert second.try_insert("https://a.com/2")
    assert not second.try_insert("https://a.com/1?ref=feed")
    assert first.try_insert("https://a.com/3")

    stored = kv.get([RECORDED_URLS_KEY])[RECORDED_URLS_KEY]
    assert stored == ["https://a.com/1", "https://a.com/2", "https://a.com/3"]
    assert first.all() == tuple(stored)


def test_unsaved_inserts_merge_with_entries_written_meanwhile(state):
    kv = FlakyStore()
    ours = RecordStore(kv, state)
    theirs = RecordStore(kv, state)
    kv.failing = True
    assert ours.try_insert("https://a.com/mine")
    kv.failing = False
    assert theirs.try_insert("https://a.com/theirs")
    assert theirs.try_insert("https://a.com/mine")

    assert ours.flush()
    assert kv.get([RECORDED_URLS_KEY])[RECORDED_URLS_KEY] == ["https://a.com/theirs", "https://a.com/mine"]


def test_entries_recorded_earlier_survive_a_config_change(records, state, kv):
    assert records.try_insert("https://a.com/p?x=1")
    assert records.try_insert("https://a.com/p?x=2")

    state.set_normalization(True, ["x"])
    assert records.all() == ("https://a.com/p?x=1", "https://a.com/p?x=2")
    assert not records.try_insert("https://a.com/p?x=3")
    assert records.contains("https://a.com/p")
    assert kv.get([RECORDED_URLS_KEY])[RECORDED_URLS_KEY] == ["https://a.com/p?x=1", "https://a.com/p?x=2"]
