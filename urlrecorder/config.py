"""Recorder configuration and the live pattern/normalization state."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .models import NormalizationConfig

logger = logging.getLogger(__name__)

# Persisted keys
PATTERNS_KEY = "targetPatterns"
RECORDED_URLS_KEY = "recordedUrls"
NORMALIZATION_ENABLED_KEY = "normalizationEnabled"
IGNORED_PARAMS_KEY = "ignoredParams"
DEBUG_MODE_KEY = "isDebugMode"

CONFIG_KEYS = (PATTERNS_KEY, NORMALIZATION_ENABLED_KEY, IGNORED_PARAMS_KEY, DEBUG_MODE_KEY)
ALL_KEYS = CONFIG_KEYS + (RECORDED_URLS_KEY,)


def _get_user_data_dir() -> str:
    """Return user-local data directory for UrlRecorder.

    Windows: %LOCALAPPDATA%/UrlRecorder/
    """
    base = os.environ.get("LOCALAPPDATA")
    if not base:
        base = os.path.expanduser("~")
    return os.path.join(base, "UrlRecorder")


@dataclass
class RecorderConfig:
    """Runtime settings for a recorder session."""

    data_dir: str = ""
    base_uri: Optional[str] = None
    debounce_delay: float = 0.5
    persist_timeout: float = 5.0
    retry_backoff: float = 1.0
    timeout: int = 10
    retries: int = 2
    verbose: bool = False
    user_agent: str = "UrlRecorder/1.0 (+https://github.com/example/urlrecorder)"

    def __post_init__(self) -> None:
        if not self.data_dir:
            self.data_dir = _get_user_data_dir()


def _clean_strings(values: Optional[Iterable]) -> List[str]:
    return [v for v in (values or []) if isinstance(v, str) and v.strip()]


class ConfigState:
    """Current patterns, normalization and debug flag.

    Writers replace whole values under a lock so readers never observe a
    half-applied update.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._patterns: Tuple[str, ...] = ()
        self._normalization = NormalizationConfig()
        self._debug = False

    @property
    def patterns(self) -> Tuple[str, ...]:
        with self._lock:
            return self._patterns

    @property
    def normalization(self) -> NormalizationConfig:
        with self._lock:
            return self._normalization

    @property
    def debug(self) -> bool:
        with self._lock:
            return self._debug

    def set_patterns(self, patterns: Optional[Iterable]) -> Tuple[str, ...]:
        """Replace the pattern list, dropping blank entries.

        Regex syntax is not checked here; invalid patterns simply never match.
        """
        cleaned = tuple(_clean_strings(patterns))
        with self._lock:
            self._patterns = cleaned
        logger.debug("Patterns set: %s", list(cleaned))
        return cleaned

    def set_normalization(self, enabled: bool, params: Optional[Iterable]) -> NormalizationConfig:
        # ordered set: first occurrence wins
        ignored = tuple(dict.fromkeys(_clean_strings(params)))
        config = NormalizationConfig(enabled=bool(enabled), ignored_params=ignored)
        with self._lock:
            self._normalization = config
        logger.debug("Normalization set: enabled=%s params=%s", config.enabled, list(ignored))
        return config

    def set_debug(self, enabled: bool) -> None:
        with self._lock:
            self._debug = bool(enabled)
