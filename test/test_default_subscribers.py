# test/test_default_subscribers.py
# robots.txt, sitemaps and HTML link discovery.

from __future__ import annotations

import asyncio

from conftest import FakePage, FakeTransport, RecordingSubscriber, html_page, make_engine
from crawlkit.models import Decision
from crawlkit.subscribers import HtmlCrawlerSubscriber, RobotsSubscriber
from crawlkit.subscribers.html_crawler import TAG_REL_NOFOLLOW
from crawlkit.subscribers.robots import (
    TAG_DISALLOWED_ROBOTS_TXT,
    TAG_NOFOLLOW,
    TAG_NOINDEX,
    TAG_SITEMAP,
)

SEED = "https://example.com/"
ROBOTS = "https://example.com/robots.txt"


class PoliteSubscriber(RecordingSubscriber):
    """Requests everything robots.txt allows."""

    name = "polite"

    async def should_request(self, crawl_uri):
        await super().should_request(crawl_uri)
        if crawl_uri.has_tag(TAG_DISALLOWED_ROBOTS_TXT):
            return Decision.NEGATIVE
        return Decision.POSITIVE


def _engine(pages):
    transport = FakeTransport(pages)
    engine = make_engine(transport, SEED)
    robots = RobotsSubscriber()
    crawler = HtmlCrawlerSubscriber()
    engine.add_subscriber(robots)
    engine.add_subscriber(crawler)
    engine.add_subscriber(PoliteSubscriber())
    return transport, engine, robots, crawler


def test_robots_txt_disallow_tags_and_skips():
    transport, engine, robots, _ = _engine(
        {
            ROBOTS: FakePage(chunks=[b"User-agent: *\nDisallow: /private\n"]),
            SEED: html_page('<a href="/private/x">p</a><a href="/public">p</a>'),
            "https://example.com/public": html_page("<p>ok</p>"),
        }
    )

    result = asyncio.run(engine.crawl())

    # robots.txt is fetched once, out of band
    assert transport.requested.count(ROBOTS) == 1
    assert transport.page_requests == [SEED, "https://example.com/public"]
    private = engine.get_crawl_uri("https://example.com/private/x")
    assert private.processed
    assert private.has_tag(TAG_DISALLOWED_ROBOTS_TXT)
    assert result.results["robots"].get_info("stats")["disallowed"] == 1


def test_robots_txt_forbidden_disallows_everything():
    transport, engine, _, _ = _engine({ROBOTS: FakePage(status=403)})

    asyncio.run(engine.crawl())

    assert transport.page_requests == []
    assert engine.get_crawl_uri(SEED).has_tag(TAG_DISALLOWED_ROBOTS_TXT)


def test_sitemap_entries_are_queued():
    sitemap = "https://example.com/sitemap.xml"
    transport, engine, robots, _ = _engine(
        {
            ROBOTS: FakePage(chunks=[f"User-agent: *\nAllow: /\nSitemap: {sitemap}\n".encode()]),
            SEED: html_page("<p>no links</p>"),
            sitemap: FakePage(
                headers={"Content-Type": "application/xml"},
                chunks=[
                    b"<urlset><url><loc>https://example.com/from-sitemap</loc></url></urlset>"
                ],
            ),
            "https://example.com/from-sitemap": html_page("<p>hi</p>"),
        }
    )

    result = asyncio.run(engine.crawl())

    assert engine.get_crawl_uri(sitemap).has_tag(TAG_SITEMAP)
    assert "https://example.com/from-sitemap" in transport.page_requests
    assert result.results["robots"].get_info("stats")["sitemap_uris"] == 1


def test_x_robots_tag_nofollow_stops_discovery():
    transport, engine, _, crawler = _engine(
        {
            SEED: FakePage(
                headers={"Content-Type": "text/html", "X-Robots-Tag": "noindex, nofollow"},
                chunks=[b'<a href="/a">a</a>'],
            ),
        }
    )

    asyncio.run(engine.crawl())

    seed = engine.get_crawl_uri(SEED)
    assert seed.has_tag(TAG_NOFOLLOW)
    assert seed.has_tag(TAG_NOINDEX)
    assert engine.get_crawl_uri("https://example.com/a") is None
    assert crawler.stats["pages"] == 0


def test_meta_robots_nofollow_stops_discovery():
    transport, engine, _, crawler = _engine(
        {
            SEED: html_page(
                '<html><head><meta name="robots" content="noindex,nofollow"></head>'
                '<body><a href="/a">a</a></body></html>'
            ),
        }
    )

    asyncio.run(engine.crawl())

    assert engine.get_crawl_uri(SEED).has_tag(TAG_NOFOLLOW)
    assert engine.get_crawl_uri("https://example.com/a") is None
    assert crawler.stats["pages"] == 0


def test_rel_nofollow_links_are_tagged():
    transport, engine, _, crawler = _engine(
        {
            SEED: html_page('<a href="/a" rel="nofollow">a</a><a href="/b">b</a>'),
        }
    )

    result = asyncio.run(engine.crawl())

    assert engine.get_crawl_uri("https://example.com/a").has_tag(TAG_REL_NOFOLLOW)
    assert not engine.get_crawl_uri("https://example.com/b").has_tag(TAG_REL_NOFOLLOW)
    assert result.results["html-crawler"].get_info("stats") == {"pages": 1, "discovered": 2}


def test_non_html_is_not_parsed():
    transport, engine, _, crawler = _engine(
        {
            SEED: FakePage(
                headers={"Content-Type": "application/pdf"},
                chunks=[b'<a href="/a">a</a>'],
            ),
        }
    )

    asyncio.run(engine.crawl())

    assert engine.queue.count_all(engine.job_id) == 1
    assert crawler.stats["pages"] == 0
