# crawlkit/subscribers/robots.py
"""
robots.txt, X-Robots-Tag and sitemaps.

For hosts in the base URI collection the robots.txt of each origin is fetched
once (through the engine's transport, outside the queue) and:

- URIs it disallows are tagged "robots-disallowed" and voted NEGATIVE;
- its Sitemap: entries are queued with the "sitemap" tag, fetched, and every
  <loc> they list is queued in turn.

X-Robots-Tag response headers become "nofollow" / "noindex" tags.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional
from urllib.parse import urlsplit
from urllib.robotparser import RobotFileParser

from bs4 import BeautifulSoup

from crawlkit.exceptions import TransportError
from crawlkit.models import Chunk, CrawlUri, Decision, Response, SubscriberResult
from crawlkit.subscriber import EngineAware, Subscriber
from crawlkit.transport import read_all
from crawlkit.uris import host_of

log = logging.getLogger(__name__)

TAG_DISALLOWED_ROBOTS_TXT = "robots-disallowed"
TAG_NOFOLLOW = "nofollow"
TAG_NOINDEX = "noindex"
TAG_SITEMAP = "sitemap"


def _origin(url: str) -> str:
    p = urlsplit(url)
    return f"{p.scheme}://{p.netloc}"


class RobotsSubscriber(EngineAware, Subscriber):
    name = "robots"

    def __init__(self, user_agent: str = "*") -> None:
        self.user_agent = user_agent
        self._rules: Dict[str, Optional[RobotFileParser]] = {}
        self.stats = {"disallowed": 0, "sitemap_uris": 0}

    async def should_request(self, crawl_uri: CrawlUri) -> Decision:
        if crawl_uri.has_tag(TAG_SITEMAP):
            return Decision.POSITIVE

        if not self.engine.base_uris.contains_host(host_of(crawl_uri.uri)):
            return Decision.ABSTAIN

        rules = await self._rules_for(crawl_uri)
        if rules is not None and not rules.can_fetch(self.user_agent, crawl_uri.uri):
            crawl_uri.add_tag(TAG_DISALLOWED_ROBOTS_TXT)
            self.stats["disallowed"] += 1
            self.engine.log(
                logging.DEBUG,
                "Disallowed by robots.txt.",
                crawl_uri,
                source=type(self).__name__,
            )
            return Decision.NEGATIVE

        return Decision.ABSTAIN

    async def needs_content(
        self, crawl_uri: CrawlUri, response: Response, chunk: Chunk
    ) -> Decision:
        if chunk.is_first:
            directives = {
                d.strip().lower()
                for d in response.headers.get("x-robots-tag", "").split(",")
                if d.strip()
            }
            if directives & {"nofollow", "none"}:
                crawl_uri.add_tag(TAG_NOFOLLOW)
            if directives & {"noindex", "none"}:
                crawl_uri.add_tag(TAG_NOINDEX)

        if crawl_uri.has_tag(TAG_SITEMAP) and response.status_code == 200:
            return Decision.POSITIVE
        return Decision.NEGATIVE

    async def on_last_chunk(
        self, crawl_uri: CrawlUri, response: Response, chunk: Chunk
    ) -> None:
        if not crawl_uri.has_tag(TAG_SITEMAP):
            return

        soup = BeautifulSoup(response.text, "html.parser")
        for loc in soup.find_all("loc"):
            url = loc.get_text(strip=True)
            if not url:
                continue
            # <sitemapindex> entries point at further sitemaps
            tags = [TAG_SITEMAP] if loc.parent is not None and loc.parent.name == "sitemap" else []
            if self.engine.add_uri(url, crawl_uri, tags) is not None:
                self.stats["sitemap_uris"] += 1

    def get_result(
        self, previous_result: Optional[SubscriberResult] = None
    ) -> SubscriberResult:
        stats = dict(self.stats)
        if previous_result is not None:
            for key, value in (previous_result.get_info("stats") or {}).items():
                stats[key] = stats.get(key, 0) + int(value)

        result = SubscriberResult(
            ok=True,
            summary=(
                f"{stats['disallowed']} URI(s) disallowed by robots.txt, "
                f"{stats['sitemap_uris']} URI(s) found in sitemaps."
            ),
        )
        result.add_info("stats", stats)
        return result

    async def _rules_for(self, crawl_uri: CrawlUri) -> Optional[RobotFileParser]:
        origin = _origin(crawl_uri.uri)
        if origin in self._rules:
            return self._rules[origin]

        robots_url = f"{origin}/robots.txt"
        rules: Optional[RobotFileParser] = None
        try:
            response = await read_all(self.engine.transport, robots_url)
        except TransportError as e:
            log.warning("Could not load %s: %s", robots_url, e)
        else:
            if response.status_code in (401, 403):
                rules = RobotFileParser(robots_url)
                rules.disallow_all = True
            elif response.status_code == 200:
                rules = RobotFileParser(robots_url)
                rules.parse(response.text.splitlines())
                for sitemap in rules.site_maps() or []:
                    self.engine.add_uri(sitemap, crawl_uri, [TAG_SITEMAP])
            else:
                log.debug("%s -> HTTP %s, allowing everything", robots_url, response.status_code)

        self._rules[origin] = rules
        return rules
