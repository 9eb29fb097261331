# test/test_models.py
from __future__ import annotations

import pytest

from crawlkit.models import CrawlResult, CrawlUri, Decision, Response, SubscriberResult

P, N, A = Decision.POSITIVE, Decision.NEGATIVE, Decision.ABSTAIN


@pytest.mark.parametrize(
    "decisions, expected",
    [
        ([], N),
        ([A], N),
        ([N, A], N),
        ([N, P], P),
        ([A, A, P], P),
        ([P, N, N], P),
    ],
)
def test_decision_combine(decisions, expected):
    assert Decision.combine(decisions) is expected


def test_crawl_uri_log_message():
    seed = CrawlUri("https://example.com/")
    assert seed.create_log_message("hello") == (
        "[https://example.com/] (Level: 0, Processed: no, Found on: root, Tags: none) hello"
    )

    child = CrawlUri(
        "https://example.com/a",
        level=1,
        found_on="https://example.com/",
        processed=True,
        tags={"b", "a"},
    )
    assert child.create_log_message("x") == (
        "[https://example.com/a] (Level: 1, Processed: yes, "
        "Found on: https://example.com/, Tags: a, b) x"
    )


def test_crawl_uri_dict_roundtrip_keeps_tags():
    uri = CrawlUri("https://example.com/a", level=2, found_on="https://example.com/", tags={"x"})
    again = CrawlUri.from_dict(uri.to_dict())
    assert again == uri


def test_response_content_type_and_charset():
    r = Response(
        url="https://example.com/",
        status_code=200,
        headers={"content-type": 'Text/HTML; charset="ISO-8859-1"'},
        content="café".encode("iso-8859-1"),
    )
    assert r.content_type == "text/html"
    assert r.charset == "iso-8859-1"
    assert r.text == "café"
    assert not r.is_http_error
    assert Response(url="x", status_code=404).is_http_error


def test_crawl_result_ok_requires_every_subscriber():
    result = CrawlResult(
        job_id="j",
        results={
            "a": SubscriberResult(ok=True, summary=""),
            "b": SubscriberResult(ok=False, summary=""),
        },
    )
    assert not result.ok
    result.results["b"].ok = True
    assert result.ok
