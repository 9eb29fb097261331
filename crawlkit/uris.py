# crawlkit/uris.py
"""
URL helpers shared by the queue, the engine and subscribers.

- normalize_url() decides crawl identity: two URLs are the same crawl target
  iff their normalized forms are equal.
- BaseUriCollection is the crawl boundary.
- extract_links() turns a parsed page into absolute, normalized link targets.
"""
from __future__ import annotations

import logging
from typing import Iterable, Iterator, List, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup, Tag

log = logging.getLogger(__name__)

ALLOWED_SCHEMES = {"http", "https"}
DEFAULT_PORTS = {"http": 80, "https": 443}


def _scheme(u: str) -> str:
    try:
        return urlsplit(u).scheme.lower()
    except ValueError:
        return ""


def is_fetchable_url(u: str) -> bool:
    """Return True iff URL uses a scheme we can actually fetch (http/https)."""
    return _scheme(u) in ALLOWED_SCHEMES


def normalize_url(url: str) -> str:
    """
    Lowercase scheme and host, strip default ports, drop the fragment.

    Path and query are kept byte-for-byte; only an empty path becomes "/".
    Robust to malformed URLs (returns input on failure).
    """
    try:
        p = urlsplit(url.strip())
        host = p.hostname or ""
        port = p.port
    except ValueError:
        return url

    scheme = p.scheme.lower()
    if ":" in host:
        host = f"[{host}]"  # IPv6 literal
    netloc = host
    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{host}:{port}"
    if "@" in p.netloc:
        netloc = p.netloc.rpartition("@")[0] + "@" + netloc

    path = p.path or ("/" if netloc else "")
    return urlunsplit((scheme, netloc, path, p.query, ""))


def host_of(url: str) -> str:
    """Lowercased host without port, "" when there is none."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


class BaseUriCollection:
    """
    Immutable set of seed URIs, deduplicated by host.

    The first URI given for a host wins; later ones with the same host are
    dropped.
    """

    def __init__(self, uris: Iterable[str] = ()) -> None:
        by_host: dict[str, str] = {}
        for uri in uris:
            norm = normalize_url(uri)
            host = host_of(norm)
            if not host or not is_fetchable_url(norm):
                raise ValueError(f'Base URI "{uri}" must be an absolute http(s) URL.')
            by_host.setdefault(host, norm)
        self._uris: Tuple[str, ...] = tuple(by_host.values())
        self._hosts = frozenset(by_host)

    @property
    def hosts(self) -> frozenset[str]:
        return self._hosts

    def contains_host(self, host: str) -> bool:
        return host.lower() in self._hosts

    def contains(self, uri: str) -> bool:
        return normalize_url(uri) in self._uris

    def merge_with(self, other: "BaseUriCollection") -> "BaseUriCollection":
        return BaseUriCollection(list(self) + list(other))

    def to_list(self) -> List[str]:
        return list(self._uris)

    def __iter__(self) -> Iterator[str]:
        return iter(self._uris)

    def __len__(self) -> int:
        return len(self._uris)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BaseUriCollection):
            return NotImplemented
        return self._uris == other._uris

    def __repr__(self) -> str:
        return f"BaseUriCollection({list(self._uris)!r})"


# ---------- Link extraction ----------


def rel_list(tag: Tag) -> List[str]:
    rel = tag.get("rel", None)
    if not rel:
        return []
    if isinstance(rel, str):
        rel = rel.split()
    return [r.strip().lower() for r in rel if isinstance(r, str)]


def _base_href(soup: BeautifulSoup, page_url: str) -> str:
    base = soup.find("base", href=True)
    if isinstance(base, Tag):
        href = base.get("href")
        if isinstance(href, str) and href.strip():
            try:
                return urljoin(page_url, href.strip())
            except ValueError:
                log.debug("Ignoring malformed <base href> %r on %s", href, page_url)
    return page_url


def extract_links(soup: BeautifulSoup, page_url: str) -> List[Tuple[str, bool]]:
    """
    Return (normalized_url, rel_nofollow) for every <a href> on the page.

    Links are resolved against <base href> when present, restricted to
    http/https and deduplicated while keeping document order.
    """
    base_url = _base_href(soup, page_url)
    seen: set[str] = set()
    out: List[Tuple[str, bool]] = []

    for el in soup.find_all("a", href=True):
        if not isinstance(el, Tag):
            continue
        href = el.get("href")
        if not isinstance(href, str) or not href.strip():
            continue
        try:
            resolved = normalize_url(urljoin(base_url, href.strip()))
        except ValueError:
            log.debug("Skipping malformed link %r on %s", href, page_url)
            continue
        if not is_fetchable_url(resolved):
            continue
        if resolved in seen:
            continue
        seen.add(resolved)
        out.append((resolved, "nofollow" in rel_list(el)))

    return out
