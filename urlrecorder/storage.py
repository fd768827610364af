"""Key-value persistence with change notifications."""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
from typing import Any, Callable, Dict, Iterable, List, Tuple

from .models import Change

logger = logging.getLogger(__name__)

ChangeListener = Callable[[Dict[str, Change]], None]

_STATE_FILE = "state.json"


class StorageError(RuntimeError):
    """Raised when a read or write to the store fails or times out."""


class KeyValueStore:
    """Base store: ``get``/``set`` plus change subscription.

    Listeners receive ``{key: Change(old, new)}`` for keys whose value
    actually changed, whoever made the change. They are called outside the
    store lock.
    """

    def __init__(self) -> None:
        self._listeners: List[ChangeListener] = []

    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        raise NotImplementedError

    def set(self, mapping: Dict[str, Any]) -> None:
        raise NotImplementedError

    def update(self, key: str, fn: Callable[[Any], Tuple[Any, Any]]) -> Any:
        """Atomically read ``key``, pass it to ``fn`` and store what it returns.

        ``fn`` receives the current value (None when missing) and returns
        ``(new_value, result)``; ``result`` is handed back to the caller.
        No other write to the store can land between the read and the write.
        """
        raise NotImplementedError

    def subscribe(self, listener: ChangeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, changes: Dict[str, Change]) -> None:
        if not changes:
            return
        for listener in list(self._listeners):
            try:
                listener(changes)
            except Exception:
                logger.exception("Change listener failed")

    @staticmethod
    def _diff(old: Dict[str, Any], new: Dict[str, Any]) -> Dict[str, Change]:
        changes: Dict[str, Change] = {}
        for key in set(old) | set(new):
            before, after = old.get(key), new.get(key)
            if before != after:
                changes[key] = Change(old_value=before, new_value=after)
        return changes


class MemoryStore(KeyValueStore):
    """In-process store, useful for embedding and tests."""

    def __init__(self, initial: Dict[str, Any] | None = None) -> None:
        super().__init__()
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        with self._lock:
            return {k: copy.deepcopy(self._data[k]) for k in keys if k in self._data}

    def set(self, mapping: Dict[str, Any]) -> None:
        with self._lock:
            old = {k: self._data.get(k) for k in mapping}
            for key, value in mapping.items():
                self._data[key] = copy.deepcopy(value)
            changes = self._diff(old, {k: self._data[k] for k in mapping})
        self._notify(changes)

    def update(self, key: str, fn: Callable[[Any], Tuple[Any, Any]]) -> Any:
        with self._lock:
            old = self._data.get(key)
            new, result = fn(copy.deepcopy(old))
            self._data[key] = copy.deepcopy(new)
            changes = self._diff({key: old}, {key: new})
        self._notify(changes)
        return result


class JsonFileStore(KeyValueStore):
    """Persist all keys in one JSON document under ``data_dir``.

    Writes go through a temp file and ``os.replace``. ``refresh`` re-reads
    the file so changes from other processes reach subscribers.
    """

    def __init__(self, data_dir: str, timeout: float = 5.0) -> None:
        super().__init__()
        self._data_dir = data_dir
        self._timeout = timeout
        self._lock = threading.Lock()
        os.makedirs(data_dir, exist_ok=True)
        self._data: Dict[str, Any] = self._read()

    @property
    def path(self) -> str:
        return os.path.join(self._data_dir, _STATE_FILE)

    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        with self._acquire():
            return {k: copy.deepcopy(self._data[k]) for k in keys if k in self._data}

    def set(self, mapping: Dict[str, Any]) -> None:
        with self._acquire():
            merged = dict(self._data)
            merged.update(copy.deepcopy(mapping))
            self._write(merged)
            changes = self._diff(self._data, merged)
            self._data = merged
        logger.debug("Saved %s → %s", sorted(mapping), self.path)
        self._notify(changes)

    def update(self, key: str, fn: Callable[[Any], Tuple[Any, Any]]) -> Any:
        """Read-modify-write ``key`` against the file as it is on disk now.

        Re-reading first picks up writes from other processes, which are
        reported to subscribers together with this change.
        """
        with self._acquire():
            fresh = self._read() if os.path.exists(self.path) else dict(self._data)
            new, result = fn(copy.deepcopy(fresh.get(key)))
            merged = dict(fresh)
            merged[key] = copy.deepcopy(new)
            if merged != fresh:
                self._write(merged)
            changes = self._diff(self._data, merged)
            self._data = merged
        self._notify(changes)
        return result

    def refresh(self) -> Dict[str, Change]:
        """Reload from disk and notify about anything that changed."""
        with self._acquire():
            fresh = self._read()
            changes = self._diff(self._data, fresh)
            self._data = fresh
        self._notify(changes)
        return changes

    def _acquire(self) -> "_TimedLock":
        return _TimedLock(self._lock, self._timeout)

    def _read(self) -> Dict[str, Any]:
        path = self.path
        if not os.path.exists(path):
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning("Ignoring unreadable state file %s: %s", path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed state file %s", path)
            return {}
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        tmp = self.path + ".tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StorageError(f"Failed to write {self.path}: {exc}") from exc


class _TimedLock:
    """Context manager acquiring a lock with a timeout."""

    def __init__(self, lock: threading.Lock, timeout: float) -> None:
        self._lock = lock
        self._timeout = timeout

    def __enter__(self) -> None:
        if not self._lock.acquire(timeout=self._timeout):
            raise StorageError(f"Timed out after {self._timeout}s waiting for store")

    def __exit__(self, *exc) -> None:
        self._lock.release()
