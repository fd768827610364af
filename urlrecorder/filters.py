"""URL filtering - candidate resolution and pattern matching."""

from __future__ import annotations

import logging
import re
import threading
from typing import Dict, Optional, Pattern, Sequence
from urllib.parse import urljoin, urlsplit

logger = logging.getLogger(__name__)

# Schemes that are meaningless without a host
_NETLOC_SCHEMES = frozenset({"http", "https", "ftp", "ws", "wss"})


def resolve_url(raw: Optional[str], base_uri: Optional[str] = None) -> Optional[str]:
    """Resolve ``raw`` to an absolute URL against ``base_uri``.

    Returns None when the string cannot be made absolute.
    """
    if not isinstance(raw, str):
        return None
    candidate = raw.strip()
    if not candidate:
        return None
    try:
        absolute = urljoin(base_uri, candidate) if base_uri else candidate
        parts = urlsplit(absolute)
    except ValueError:
        return None
    if not parts.scheme:
        return None
    if parts.scheme.lower() in _NETLOC_SCHEMES and not parts.hostname:
        return None
    return absolute


class PatternMatcher:
    """Match URLs against case-insensitive regex patterns.

    Compiled patterns are cached by pattern string. A pattern that fails to
    compile is remembered as invalid and skipped on every call; it never
    stops the remaining patterns from being tried.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._compiled: Dict[str, Optional[Pattern[str]]] = {}

    def matches(self, url: Optional[str], patterns: Sequence[str]) -> bool:
        if not url or not patterns:
            return False
        for pattern in patterns:
            regex = self._compile(pattern)
            if regex is not None and regex.search(url):
                logger.debug("URL %s matched pattern %r", url, pattern)
                return True
        logger.debug("URL %s did not match any active pattern", url)
        return False

    def invalidate(self) -> None:
        with self._lock:
            self._compiled.clear()

    def _compile(self, pattern: str) -> Optional[Pattern[str]]:
        with self._lock:
            if pattern in self._compiled:
                return self._compiled[pattern]
            try:
                regex: Optional[Pattern[str]] = re.compile(pattern, re.IGNORECASE)
            except (re.error, TypeError) as exc:
                logger.warning("Invalid regex pattern ignored: %r (%s)", pattern, exc)
                regex = None
            self._compiled[pattern] = regex
            return regex
