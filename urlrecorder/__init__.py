"""Pattern-filtered, deduplicated URL recording."""

__version__ = "1.0.0"

from .engine import IngestionCoordinator
from .filters import PatternMatcher, resolve_url
from .normalizer import normalize_url
from .records import RecordStore
from .storage import JsonFileStore, KeyValueStore, MemoryStore, StorageError

__all__ = [
    "IngestionCoordinator",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "PatternMatcher",
    "RecordStore",
    "StorageError",
    "normalize_url",
    "resolve_url",
]
