"""Page download for ``scan``."""

from __future__ import annotations

import logging
import time

import requests

from .config import RecorderConfig
from .models import FetchedPage

logger = logging.getLogger(__name__)


class Fetcher:
    """Download one page at a time for link extraction.

    Redirects are followed and the final URL is reported, so relative links
    on the page resolve against where it was actually served from. Connection
    errors and 5xx answers are retried; anything else is final.
    """

    def __init__(self, config: RecorderConfig) -> None:
        self._config = config
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": config.user_agent})

    def fetch(self, url: str) -> FetchedPage:
        attempts = 1 + max(self._config.retries, 0)
        status_code = 0
        for attempt in range(1, attempts + 1):
            try:
                resp = self._session.get(url, timeout=self._config.timeout)
            except requests.RequestException as exc:
                logger.warning("Request failed for %s (attempt %d/%d): %s", url, attempt, attempts, exc)
            else:
                status_code = resp.status_code
                if status_code < 500:
                    return self._page(url, resp)
                logger.warning("Server error %d for %s (attempt %d/%d)", status_code, url, attempt, attempts)
            if attempt < attempts:
                time.sleep(self._config.retry_backoff * attempt)
        return FetchedPage(url=url, status_code=status_code)

    @staticmethod
    def _page(url: str, resp: requests.Response) -> FetchedPage:
        final_url = resp.url or url
        if final_url != url:
            logger.debug("%s redirected to %s", url, final_url)
        if not resp.ok:
            logger.warning("Got %d for %s", resp.status_code, final_url)
            return FetchedPage(url=final_url, status_code=resp.status_code)
        content_type = resp.headers.get("Content-Type", "")
        if "html" not in content_type:
            logger.debug("Skipping non-HTML content: %s", content_type)
            return FetchedPage(url=final_url, status_code=resp.status_code)
        return FetchedPage(url=final_url, status_code=resp.status_code, html=resp.text)

    def close(self) -> None:
        self._session.close()
