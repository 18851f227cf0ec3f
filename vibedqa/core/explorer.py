"""Breadth-first page discovery.

Owns the frontier and the visited set for one viewport's crawl. Links are
fed in from the page currently being visited; only same-host HTTP(S) page
URLs that were never seen before get queued, one level deeper than the
page they were found on.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

from vibedqa.config import CrawlConfig
from vibedqa.models.types import FrontierEntry


logger = logging.getLogger(__name__)


SKIP_EXTENSIONS = {
    ".pdf", ".zip", ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".webp",
    ".css", ".js", ".woff", ".woff2", ".ttf", ".eot",
}

_AUTH_PATH_RE = re.compile(r"/(logout|log-out|signout|sign-out|auth/|oauth/)", re.I)


def normalize_url(url: str) -> str:
    """Canonical form used for dedup: no fragment, no trailing slash, sorted query."""
    parsed = urlparse(url)
    path = parsed.path
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    if not path and parsed.netloc:
        path = "/"
    params = sorted(parse_qsl(parsed.query, keep_blank_values=True))
    return urlunparse(parsed._replace(
        scheme=parsed.scheme.lower(),
        netloc=parsed.netloc.lower(),
        path=path,
        query=urlencode(params, doseq=True),
        fragment="",
    ))


class Explorer:
    """FIFO frontier plus a visited set that only ever grows."""

    def __init__(self, config: CrawlConfig):
        self.config = config
        self.base_hostname = config.hostname
        self._queue: deque[FrontierEntry] = deque()
        self._visited: set[str] = set()

    def init(self, start_url: str):
        normalized = normalize_url(start_url)
        self._visited.add(normalized)
        self._queue.append(FrontierEntry(normalized, 0))

    def next(self) -> FrontierEntry | None:
        if not self._queue:
            return None
        return self._queue.popleft()

    def has_more(self) -> bool:
        return bool(self._queue)

    @property
    def visited_count(self) -> int:
        return len(self._visited)

    def discover_links(
        self,
        links: list[str],
        current_depth: int,
        current_url: str | None = None,
    ) -> list[str]:
        """Queue unseen page links at `current_depth + 1`.

        Returns only the URLs that were newly queued, in DOM order.
        """
        if not self.config.enable_navigation:
            return []
        if current_depth >= self.config.max_depth:
            return []

        new_links: list[str] = []
        for link in links:
            url = self._accept(link, current_url)
            if not url:
                continue
            normalized = normalize_url(url)
            if normalized in self._visited:
                continue
            self._visited.add(normalized)
            self._queue.append(FrontierEntry(normalized, current_depth + 1))
            new_links.append(normalized)
            logger.debug("Discovered: %s (depth %s)", normalized, current_depth + 1)

        if new_links:
            logger.info("Discovered %s new links (depth %s)", len(new_links), current_depth + 1)
        return new_links

    def _accept(self, link: str, current_url: str | None) -> str | None:
        """Resolve a raw href and return it if it is a crawlable page URL."""
        if not link:
            return None
        try:
            url = urljoin(current_url, link) if current_url else link
            parsed = urlparse(url)
        except ValueError:
            return None

        if parsed.scheme not in ("http", "https"):
            return None
        if (parsed.hostname or "").lower() != self.base_hostname:
            return None
        if current_url and parsed.fragment and _same_page(parsed, urlparse(current_url)):
            return None

        path = parsed.path.lower()
        if any(path.endswith(ext) for ext in SKIP_EXTENSIONS):
            return None
        if _AUTH_PATH_RE.search(path):
            return None
        return url


def _same_page(a, b) -> bool:
    return (a.path.rstrip("/") or "/") == (b.path.rstrip("/") or "/")
