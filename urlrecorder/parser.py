"""HTML parsing - collect candidate URLs from link and resource attributes."""

from __future__ import annotations

import logging
from typing import List

from bs4 import BeautifulSoup

from .filters import resolve_url

logger = logging.getLogger(__name__)

# (tag, attribute) pairs that carry URLs
_URL_ATTRIBUTES = (
    ("a", "href"),
    ("link", "href"),
    ("img", "src"),
    ("script", "src"),
    ("iframe", "src"),
    ("form", "action"),
)

_SKIP_PREFIXES = ("javascript:", "mailto:", "tel:", "data:", "#")


class Parser:
    """Extract candidate URLs from HTML."""

    @staticmethod
    def extract_urls(html: str, base_url: str) -> List[str]:
        """Return unique absolute URLs in document order.

        Relative references are resolved against ``base_url`` (or the
        document's ``<base href>`` when present).
        """
        soup = BeautifulSoup(html, "html.parser")

        base_tag = soup.find("base", href=True)
        if base_tag:
            base_url = resolve_url(base_tag["href"], base_url) or base_url

        seen: set[str] = set()
        urls: List[str] = []
        for tag in soup.find_all([name for name, _ in _URL_ATTRIBUTES]):
            for name, attr in _URL_ATTRIBUTES:
                if tag.name != name or not tag.has_attr(attr):
                    continue
                value = tag[attr].strip()
                if not value or value.lower().startswith(_SKIP_PREFIXES):
                    continue
                absolute = resolve_url(value, base_url)
                if absolute is None:
                    logger.debug("Invalid URL in <%s %s>: %r", name, attr, value)
                    continue
                if absolute not in seen:
                    seen.add(absolute)
                    urls.append(absolute)
        return urls
