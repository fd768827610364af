"""Ingestion coordinator - the single entry point for candidate URLs."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from .config import (
    ALL_KEYS,
    DEBUG_MODE_KEY,
    IGNORED_PARAMS_KEY,
    NORMALIZATION_ENABLED_KEY,
    PATTERNS_KEY,
    RECORDED_URLS_KEY,
    ConfigState,
    RecorderConfig,
)
from .debounce import Debouncer
from .fetcher import Fetcher
from .filters import PatternMatcher, resolve_url
from .models import (
    DUPLICATE,
    NO_PATTERN_MATCH,
    UNRESOLVABLE,
    Change,
    OperationResult,
    RecorderState,
    SubmitResult,
)
from .parser import Parser
from .records import RecordStore
from .storage import KeyValueStore, StorageError

logger = logging.getLogger(__name__)

_PACKAGE_LOGGER = "urlrecorder"
_DEFAULTS = {
    PATTERNS_KEY: [],
    RECORDED_URLS_KEY: [],
    NORMALIZATION_ENABLED_KEY: False,
    IGNORED_PARAMS_KEY: [],
    DEBUG_MODE_KEY: False,
}


class IngestionCoordinator:
    """Filter, deduplicate and record URLs from every producer.

    Each submit runs match → contains → insert → persist under one lock, so
    concurrent producers cannot both insert the same URL. Store change
    notifications are queued and applied once that lock is free, so a
    front-end never blocks on another one that is in the middle of a write.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: Optional[RecorderConfig] = None,
        count_callback: Optional[Callable[[int], None]] = None,
        scheduler=None,
    ) -> None:
        self._config = config or RecorderConfig()
        self._kv = store
        self._state = ConfigState()
        self._matcher = PatternMatcher()
        self._records = RecordStore(store, self._state)
        self._count_callback = count_callback
        self._lock = threading.RLock()
        self._pending: Dict[str, Change] = {}
        self._pending_lock = threading.Lock()
        self._debouncer = Debouncer(
            self._flush_batch,
            delay=self._config.debounce_delay,
            scheduler=scheduler,
        )
        self._fetcher: Optional[Fetcher] = None

        self._initialize_defaults()
        self.resync()
        store.subscribe(self._on_storage_changed)

    # ── Producer surface ─────────────────────────────────────

    def submit(self, raw_url: Optional[str], base_uri: Optional[str] = None) -> SubmitResult:
        base = base_uri if base_uri is not None else self._config.base_uri
        url = resolve_url(raw_url, base)
        if url is None:
            logger.debug("Discarding unresolvable URL %r", raw_url)
            return SubmitResult.rejected(raw_url if isinstance(raw_url, str) else "", UNRESOLVABLE)

        with self._locked():
            if not self._matcher.matches(url, self._state.patterns):
                return SubmitResult.rejected(url, NO_PATTERN_MATCH)
            if not self._records.try_insert(url):
                logger.debug("Already recorded: %s", url)
                return SubmitResult.rejected(url, DUPLICATE)
            self._notify_count(len(self._records))
            return SubmitResult(url=url, accepted=True, persisted=self._records.last_persist_ok)

    def submit_batch(self, urls: Iterable, base_uri: Optional[str] = None) -> List[SubmitResult]:
        results = [self.submit(url, base_uri) for url in urls or []]
        accepted = sum(1 for r in results if r.accepted)
        if results:
            logger.info("Batch processed: %d/%d accepted", accepted, len(results))
        return results

    def enqueue(self, urls: Iterable, base_uri: Optional[str] = None) -> int:
        """Queue URLs for the next debounced flush; returns how many were queued."""
        base = base_uri if base_uri is not None else self._config.base_uri
        resolved = []
        for raw in urls or []:
            url = resolve_url(raw, base)
            if url is None:
                logger.debug("Discarding unresolvable URL %r", raw)
                continue
            resolved.append(url)
        self._debouncer.push(resolved)
        return len(resolved)

    def navigate(self, url: str, frame_id: int = 0) -> Optional[SubmitResult]:
        """Handle a navigation event; only main-frame http(s) URLs are submitted."""
        if frame_id != 0 or not isinstance(url, str):
            return None
        if not url.startswith(("http://", "https://")):
            return None
        logger.debug("Navigation to %s", url)
        return self.submit(url)

    def scan(self, page_url: str) -> List[SubmitResult]:
        """Fetch ``page_url`` and submit every link/resource URL found on it.

        Relative links resolve against the URL the page was finally served
        from, which differs from ``page_url`` after a redirect.
        """
        if self._fetcher is None:
            self._fetcher = Fetcher(self._config)
        page = self._fetcher.fetch(page_url)
        if page.html is None:
            logger.warning("Scan failed: %s (status=%d)", page_url, page.status_code)
            return []
        urls = Parser.extract_urls(page.html, page.url)
        logger.info("Found %d URLs on %s", len(urls), page.url)
        return self.submit_batch(urls, base_uri=page.url)

    def flush_pending(self) -> int:
        return self._debouncer.flush_now()

    def _flush_batch(self, urls: List[str]) -> None:
        self.submit_batch(urls)

    # ── Configuration surface ────────────────────────────────

    def set_patterns(self, patterns: Optional[Iterable]) -> OperationResult:
        with self._locked():
            cleaned = self._state.set_patterns(patterns)
            self._matcher.invalidate()
            ok = self._persist({PATTERNS_KEY: list(cleaned)})
        logger.info("Monitoring %d patterns", len(cleaned))
        return OperationResult(success=ok, patterns=list(cleaned))

    def set_normalization(self, enabled: bool, params: Optional[Iterable]) -> OperationResult:
        with self._locked():
            config = self._state.set_normalization(enabled, params)
            ok = self._persist({
                NORMALIZATION_ENABLED_KEY: config.enabled,
                IGNORED_PARAMS_KEY: list(config.ignored_params),
            })
        return OperationResult(success=ok)

    def set_debug_mode(self, enabled: bool) -> OperationResult:
        with self._locked():
            self._state.set_debug(enabled)
            self._apply_debug()
            ok = self._persist({DEBUG_MODE_KEY: self._state.debug})
        logger.info("DEBUG mode %s", "enabled" if enabled else "disabled")
        return OperationResult(success=ok)

    # ── Query surface ────────────────────────────────────────

    def get_state(self) -> RecorderState:
        with self._locked():
            normalization = self._state.normalization
            return RecorderState(
                urls=list(self._records.all()),
                patterns=list(self._state.patterns),
                normalization_enabled=normalization.enabled,
                ignored_params=list(normalization.ignored_params),
                debug_mode=self._state.debug,
            )

    @property
    def count(self) -> int:
        return len(self._records)

    def clear(self) -> OperationResult:
        with self._locked():
            ok = self._records.clear()
            self._notify_count(0)
        logger.info("All recorded URLs cleared.")
        return OperationResult(success=ok)

    # ── Synchronization ──────────────────────────────────────

    def resync(self) -> None:
        """Reload patterns, normalization, debug flag and record from the store."""
        with self._locked():
            with self._pending_lock:
                self._pending.clear()
            try:
                stored = self._kv.get(ALL_KEYS)
            except StorageError as exc:
                logger.warning("Could not load recorder state: %s", exc)
                return
            self._apply({k: Change(new_value=v) for k, v in stored.items()}, force=True)

    def close(self) -> None:
        self._debouncer.flush_now()
        with self._locked():
            self._records.flush()
        self._kv.unsubscribe(self._on_storage_changed)
        if self._fetcher is not None:
            self._fetcher.close()
            self._fetcher = None

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._lock:
            self._apply_pending()
            yield
        self._drain()

    def _on_storage_changed(self, changes: Dict[str, Change]) -> None:
        relevant = {k: c for k, c in changes.items() if k in ALL_KEYS}
        if not relevant:
            return
        with self._pending_lock:
            self._pending.update(relevant)
        self._drain()

    def _drain(self) -> None:
        # whoever holds the lock drains again after releasing it
        while True:
            with self._pending_lock:
                if not self._pending:
                    return
            if not self._lock.acquire(blocking=False):
                return
            try:
                self._apply_pending()
            finally:
                self._lock.release()

    def _apply_pending(self) -> None:
        with self._pending_lock:
            keys = list(self._pending)
            self._pending.clear()
        if not keys:
            return
        # notifications can arrive out of order; the store has the latest values
        try:
            fresh = self._kv.get(keys)
        except StorageError as exc:
            logger.warning("Could not re-sync %s: %s", sorted(keys), exc)
            return
        self._apply({k: Change(new_value=fresh.get(k)) for k in keys})

    def _apply(self, changes: Dict[str, Change], force: bool = False) -> None:
        if PATTERNS_KEY in changes:
            patterns = changes[PATTERNS_KEY].new_value
            if force or tuple(patterns or ()) != self._state.patterns:
                self._state.set_patterns(patterns if isinstance(patterns, list) else [])
                self._matcher.invalidate()

        if NORMALIZATION_ENABLED_KEY in changes or IGNORED_PARAMS_KEY in changes:
            current = self._state.normalization
            enabled = current.enabled
            params = list(current.ignored_params)
            if NORMALIZATION_ENABLED_KEY in changes:
                enabled = bool(changes[NORMALIZATION_ENABLED_KEY].new_value)
            if IGNORED_PARAMS_KEY in changes:
                value = changes[IGNORED_PARAMS_KEY].new_value
                params = value if isinstance(value, list) else []
            self._state.set_normalization(enabled, params)

        if DEBUG_MODE_KEY in changes:
            self._state.set_debug(bool(changes[DEBUG_MODE_KEY].new_value))
            self._apply_debug()

        if RECORDED_URLS_KEY in changes:
            urls = changes[RECORDED_URLS_KEY].new_value
            urls = urls if isinstance(urls, list) else []
            if self._records.dirty:
                # unsaved local inserts are merged into the stored copy
                logger.warning("Merging unsaved record into stored copy")
                self._records.flush()
                self._notify_count(len(self._records))
            elif force or tuple(urls) != self._records.all():
                self._records.replace(urls)
                self._notify_count(len(self._records))

    def _initialize_defaults(self) -> None:
        try:
            present = self._kv.get(ALL_KEYS)
            missing = {k: v for k, v in _DEFAULTS.items() if k not in present}
            if missing:
                self._kv.set(missing)
                logger.debug("Initialized defaults for %s", sorted(missing))
        except StorageError as exc:
            logger.warning("Could not initialize recorder state: %s", exc)

    def _persist(self, mapping: Dict[str, object]) -> bool:
        try:
            self._kv.set(mapping)
        except StorageError as exc:
            logger.warning("Failed to persist %s: %s", sorted(mapping), exc)
            return False
        return True

    def _apply_debug(self) -> None:
        level = logging.DEBUG if self._state.debug else logging.NOTSET
        logging.getLogger(_PACKAGE_LOGGER).setLevel(level)

    def _notify_count(self, count: int) -> None:
        if self._count_callback is None:
            return
        try:
            self._count_callback(count)
        except Exception:
            logger.exception("Count callback failed")
