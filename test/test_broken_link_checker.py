# test/test_broken_link_checker.py
from __future__ import annotations

import asyncio
import logging

from conftest import FakePage, FakeTransport, make_engine
from crawlkit.exceptions import HttpStatusError, TransportError
from crawlkit.models import Chunk, CrawlUri, Decision, Response, SubscriberResult
from crawlkit.subscribers import BrokenLinkCheckerSubscriber

SEED = "https://example.com/"


def _attached(transport):
    engine = make_engine(transport, SEED)
    checker = BrokenLinkCheckerSubscriber()
    engine.add_subscriber(checker)
    return engine, checker


def test_name():
    assert BrokenLinkCheckerSubscriber().get_name() == "broken-link-checker"


def test_should_request_scope(transport):
    engine, checker = _attached(transport)
    seed = engine.get_crawl_uri(SEED)
    outbound = engine.add_uri("https://other.com/x", seed)
    two_hops = engine.add_uri("https://other.com/y", outbound)

    assert asyncio.run(checker.should_request(seed)) is Decision.POSITIVE
    assert asyncio.run(checker.should_request(outbound)) is Decision.POSITIVE
    assert asyncio.run(checker.should_request(two_hops)) is Decision.NEGATIVE


def test_needs_content_counts_status_and_never_wants_body(transport):
    engine, checker = _attached(transport)
    crawl_uri = CrawlUri(SEED)
    first = Chunk(is_first=True)

    for status in (200, 204, 301, 404, 500):
        decision = asyncio.run(
            checker.needs_content(crawl_uri, Response(url=SEED, status_code=status), first)
        )
        assert decision is Decision.NEGATIVE

    assert checker.stats == {"ok": 3, "error": 2}


def test_http_error_is_logged_on_last_chunk_only(transport, caplog):
    engine, checker = _attached(transport)
    crawl_uri = CrawlUri(SEED)
    response = Response(url=SEED, status_code=500)
    error = HttpStatusError(response)

    with caplog.at_level(logging.ERROR, logger="crawlkit"):
        for chunk in (Chunk(data=b"a"), Chunk(data=b"b"), Chunk(data=b"c"), Chunk(is_last=True)):
            asyncio.run(checker.on_exception(crawl_uri, error, response, chunk))

    assert checker.stats["error"] == 1
    assert len([r for r in caplog.records if r.levelno == logging.ERROR]) == 1


def test_transport_error_is_logged_immediately(transport, caplog):
    engine, checker = _attached(transport)
    crawl_uri = CrawlUri(SEED)

    with caplog.at_level(logging.ERROR, logger="crawlkit"):
        asyncio.run(
            checker.on_exception(crawl_uri, TransportError(SEED, "timed out"), None, None)
        )

    assert checker.stats["error"] == 1
    assert "Could not request properly: timed out" in caplog.text


def test_result_merges_previous_stats():
    checker = BrokenLinkCheckerSubscriber()
    checker.stats = {"ok": 2, "error": 0}
    previous = SubscriberResult(ok=False, summary="", info={"stats": {"ok": 3, "error": 1}})

    result = checker.get_result(previous)

    assert result.get_info("stats") == {"ok": 5, "error": 1}
    assert not result.ok
    assert result.summary == "Checked 5 link(s) successfully. 1 were broken!"


def test_result_without_errors_is_ok():
    checker = BrokenLinkCheckerSubscriber()
    checker.stats = {"ok": 4, "error": 0}
    result = checker.get_result()
    assert result.ok
    assert result.summary == "Checked 4 link(s) successfully. 0 were broken!"


class ContentHungryChecker(BrokenLinkCheckerSubscriber):
    async def needs_content(self, crawl_uri, response, chunk):
        return Decision.POSITIVE


def test_error_body_streamed_by_engine_logs_one_line(caplog):
    transport = FakeTransport({SEED: FakePage(status=500, chunks=[b"a", b"b", b"c"])})
    engine = make_engine(transport, SEED)
    checker = ContentHungryChecker()
    engine.add_subscriber(checker)

    with caplog.at_level(logging.ERROR, logger="crawlkit"):
        result = asyncio.run(engine.crawl())

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "HTTP Status Code: 500" in errors[0].getMessage()
    assert result.results["broken-link-checker"].get_info("stats") == {"ok": 0, "error": 1}
