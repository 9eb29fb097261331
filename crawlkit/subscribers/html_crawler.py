# crawlkit/subscribers/html_crawler.py
"""
Link discovery.

Reads 200 text/html pages on hosts of the base URI collection and queues
every <a href> found on them. Pages tagged "nofollow" (X-Robots-Tag or
<meta name="robots">) or disallowed by robots.txt are not followed.
"""
from __future__ import annotations

import logging
from typing import Optional

from bs4 import BeautifulSoup, Tag

from crawlkit.models import Chunk, CrawlUri, Decision, Response, SubscriberResult
from crawlkit.subscriber import EngineAware, Subscriber
from crawlkit.subscribers.robots import TAG_DISALLOWED_ROBOTS_TXT, TAG_NOFOLLOW
from crawlkit.uris import extract_links, host_of

TAG_REL_NOFOLLOW = "rel-nofollow"
HTML_CONTENT_TYPES = {"text/html", "application/xhtml+xml"}


def _meta_robots(soup: BeautifulSoup) -> set[str]:
    directives: set[str] = set()
    for meta in soup.find_all("meta", attrs={"name": True, "content": True}):
        if not isinstance(meta, Tag):
            continue
        if str(meta.get("name", "")).strip().lower() != "robots":
            continue
        directives.update(d.strip().lower() for d in str(meta.get("content", "")).split(","))
    return directives


class HtmlCrawlerSubscriber(EngineAware, Subscriber):
    name = "html-crawler"

    def __init__(self) -> None:
        self.stats = {"pages": 0, "discovered": 0}

    async def should_request(self, crawl_uri: CrawlUri) -> Decision:
        return Decision.ABSTAIN

    async def needs_content(
        self, crawl_uri: CrawlUri, response: Response, chunk: Chunk
    ) -> Decision:
        if not chunk.is_first:
            return Decision.POSITIVE

        if response.status_code != 200 or response.content_type not in HTML_CONTENT_TYPES:
            return Decision.NEGATIVE
        if not self.engine.base_uris.contains_host(host_of(response.url)):
            return Decision.NEGATIVE
        if crawl_uri.has_tag(TAG_DISALLOWED_ROBOTS_TXT) or crawl_uri.has_tag(TAG_NOFOLLOW):
            return Decision.NEGATIVE

        return Decision.POSITIVE

    async def on_last_chunk(
        self, crawl_uri: CrawlUri, response: Response, chunk: Chunk
    ) -> None:
        soup = BeautifulSoup(response.text, "html.parser")

        if _meta_robots(soup) & {"nofollow", "none"}:
            crawl_uri.add_tag(TAG_NOFOLLOW)
            self.engine.log(
                logging.DEBUG,
                "Did not follow links, the page is marked nofollow.",
                crawl_uri,
                source=type(self).__name__,
            )
            return

        self.stats["pages"] += 1
        for url, rel_nofollow in extract_links(soup, response.url):
            tags = [TAG_REL_NOFOLLOW] if rel_nofollow else []
            if self.engine.add_uri(url, crawl_uri, tags) is not None:
                self.stats["discovered"] += 1

    def get_result(
        self, previous_result: Optional[SubscriberResult] = None
    ) -> SubscriberResult:
        stats = dict(self.stats)
        if previous_result is not None:
            for key, value in (previous_result.get_info("stats") or {}).items():
                stats[key] = stats.get(key, 0) + int(value)

        result = SubscriberResult(
            ok=True,
            summary=f"Parsed {stats['pages']} page(s), discovered {stats['discovered']} URI(s).",
        )
        result.add_info("stats", stats)
        return result
