"""The ordered, deduplicated record of matched URLs."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .config import RECORDED_URLS_KEY, ConfigState
from .models import NormalizationConfig
from .normalizer import normalize_url
from .storage import KeyValueStore, StorageError

logger = logging.getLogger(__name__)


class RecordStore:
    """Ordered URL record with normalization-aware dedup.

    Entries are kept verbatim in insertion order. Lookups go through an
    index of normalized keys that is rebuilt whenever the active
    normalization config changes. Inserts are a read-merge-write through
    ``KeyValueStore.update``: the stored list is adopted first, so entries
    added by other front-ends are kept and checked for duplicates. If the
    store fails the in-memory record stays authoritative and its unsaved
    entries are merged back on the next mutation or ``flush``.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        config: ConfigState,
        normalizer: Callable[[str, Tuple[str, ...]], str] = normalize_url,
    ) -> None:
        self._kv = kv
        self._config = config
        self._normalize = normalizer
        self._lock = threading.RLock()
        self._urls: List[str] = []
        self._index: Dict[str, int] = {}
        self._index_config: Optional[NormalizationConfig] = None
        self._dirty = False
        self._cleared = False
        self.last_persist_ok = True

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)

    @property
    def dirty(self) -> bool:
        return self._dirty

    def load(self) -> None:
        """Replace the in-memory record with the persisted one."""
        try:
            stored = self._kv.get([RECORDED_URLS_KEY]).get(RECORDED_URLS_KEY)
        except StorageError as exc:
            logger.warning("Could not load recorded URLs: %s", exc)
            return
        self.replace(stored or [])

    def replace(self, urls: Iterable) -> None:
        """Adopt ``urls`` as the record without persisting them."""
        with self._lock:
            self._urls = _strings(urls)
            self._index_config = None
            self._dirty = False
            self._cleared = False
            logger.debug("Record re-synchronized (%d URLs)", len(self._urls))

    def contains(self, url: str) -> bool:
        with self._lock:
            key, index = self._lookup(url)
            return key in index

    def try_insert(self, url: str) -> bool:
        """Append ``url`` unless an equivalent entry exists; returns True if added."""
        with self._lock:
            outcome: List[bool] = []

            def merge(stored):
                self._adopt(stored)
                added = self._append_if_new(url)
                outcome.append(added)
                # cleared before the write: the store notifies before update() returns
                self._dirty = False
                return list(self._urls), added

            try:
                added = self._kv.update(RECORDED_URLS_KEY, merge)
            except StorageError as exc:
                added = outcome[0] if outcome else self._append_if_new(url)
                self._mark_unsaved(exc)
            else:
                self._saved()
            if added:
                logger.info("Recorded %s (total %d)", url, len(self._urls))
            return added

    def clear(self) -> bool:
        """Empty the record; returns whether the empty state was persisted."""
        with self._lock:
            self._urls = []
            self._index = {}
            self._index_config = self._config.normalization
            self._dirty = False
            try:
                self._kv.set({RECORDED_URLS_KEY: []})
            except StorageError as exc:
                self._cleared = True
                self._mark_unsaved(exc)
                return False
            self._saved()
            return True

    def all(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._urls)

    def flush(self) -> bool:
        """Merge unsaved entries into the stored record; True when nothing is left unsaved."""
        with self._lock:
            if not self._dirty:
                return True

            def merge(stored):
                self._adopt(stored)
                self._dirty = False
                return list(self._urls), None

            try:
                self._kv.update(RECORDED_URLS_KEY, merge)
            except StorageError as exc:
                self._mark_unsaved(exc)
                return False
            self._saved()
            return True

    def _adopt(self, stored) -> None:
        """Take the stored list as the base, keeping unsaved local entries."""
        # a clear that never reached the store discards the stored entries
        base = [] if self._cleared else _strings(stored)
        if self._dirty:
            params = self._config.normalization.active_params
            keys = {self._normalize(u, params) for u in base}
            for url in self._urls:
                key = self._normalize(url, params)
                if key not in keys:
                    keys.add(key)
                    base.append(url)
        if base != self._urls:
            self._urls = base
            self._index_config = None

    def _append_if_new(self, url: str) -> bool:
        key, index = self._lookup(url)
        if key in index:
            return False
        index[key] = len(self._urls)
        self._urls.append(url)
        return True

    def _saved(self) -> None:
        self._cleared = False
        self.last_persist_ok = True

    def _mark_unsaved(self, exc: StorageError) -> None:
        logger.warning("Failed to persist %d recorded URLs: %s", len(self._urls), exc)
        self._dirty = True
        self.last_persist_ok = False

    def _lookup(self, url: str) -> Tuple[str, Dict[str, int]]:
        config = self._config.normalization
        return self._normalize(url, config.active_params), self._index_for(config)

    def _index_for(self, config: NormalizationConfig) -> Dict[str, int]:
        if config != self._index_config:
            index: Dict[str, int] = {}
            params = config.active_params
            for i, url in enumerate(self._urls):
                index.setdefault(self._normalize(url, params), i)
            self._index = index
            self._index_config = config
        return self._index


def _strings(values) -> List[str]:
    if not isinstance(values, (list, tuple)):
        return []
    return [v for v in values if isinstance(v, str)]
