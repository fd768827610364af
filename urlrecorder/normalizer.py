"""Query-parameter stripping for dedup comparison."""

from __future__ import annotations

from typing import Sequence
from urllib.parse import unquote_plus, urlsplit, urlunsplit


def normalize_url(url: str, ignored_params: Sequence[str]) -> str:
    """Return ``url`` with every query parameter named in ``ignored_params`` removed.

    Keys are compared exactly (case-sensitive) after percent-decoding. The
    remaining parameters keep their original text and order; scheme, host,
    path and fragment are left alone. Anything that is not an absolute URL
    comes back unchanged.
    """
    if not ignored_params:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url

    ignored = set(ignored_params)
    kept = []
    for segment in parts.query.split("&"):
        if not segment:
            continue
        key = unquote_plus(segment.split("=", 1)[0])
        if key not in ignored:
            kept.append(segment)
    return urlunsplit(parts._replace(query="&".join(kept)))
