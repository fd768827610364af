"""Data models for recorder state and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

# Rejection reasons
UNRESOLVABLE = "unresolvable"
NO_PATTERN_MATCH = "no-pattern-match"
DUPLICATE = "duplicate"


@dataclass(frozen=True)
class NormalizationConfig:
    """Query parameters to strip before dedup comparison."""

    enabled: bool = False
    ignored_params: Tuple[str, ...] = ()

    @property
    def active_params(self) -> Tuple[str, ...]:
        """Params actually applied; empty when normalization is off."""
        return self.ignored_params if self.enabled else ()


@dataclass
class SubmitResult:
    """Outcome of one candidate URL."""

    url: str
    accepted: bool
    rejected_reason: Optional[str] = None
    persisted: bool = True

    @classmethod
    def rejected(cls, url: str, reason: str) -> "SubmitResult":
        return cls(url=url, accepted=False, rejected_reason=reason)

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "accepted": self.accepted,
            "rejected_reason": self.rejected_reason,
            "persisted": self.persisted,
        }


@dataclass
class OperationResult:
    """Result of a configuration or clear operation."""

    success: bool
    patterns: Optional[List[str]] = None


@dataclass
class Change:
    """A single key change reported by a key-value store."""

    old_value: Any = None
    new_value: Any = None


@dataclass
class FetchedPage:
    """A downloaded page; ``html`` is None unless it was an HTML success."""

    url: str
    status_code: int = 0
    html: Optional[str] = None


@dataclass
class RecorderState:
    """Snapshot returned by the query surface."""

    urls: List[str] = field(default_factory=list)
    patterns: List[str] = field(default_factory=list)
    normalization_enabled: bool = False
    ignored_params: List[str] = field(default_factory=list)
    debug_mode: bool = False

    @property
    def total_urls(self) -> int:
        return len(self.urls)

    def to_dict(self) -> dict:
        return {
            "urls": self.urls,
            "patterns": self.patterns,
            "normalization_enabled": self.normalization_enabled,
            "ignored_params": self.ignored_params,
            "debug_mode": self.debug_mode,
        }
