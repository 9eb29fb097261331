# Shared fakes for the engine and subscriber tests.

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pytest

from crawlkit.engine import Engine
from crawlkit.exceptions import TransportError
from crawlkit.models import Decision, Response, SubscriberResult
from crawlkit.queue import InMemoryQueue
from crawlkit.subscriber import EngineAware, ExceptionAware, Subscriber
from crawlkit.transport import StreamedResponse
from crawlkit.uris import BaseUriCollection


@dataclass
class FakePage:
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    chunks: List[bytes] = field(default_factory=list)
    error: Optional[str] = None
    final_url: Optional[str] = None


def html_page(body: str, status: int = 200) -> FakePage:
    return FakePage(
        status=status,
        headers={"Content-Type": "text/html; charset=utf-8"},
        chunks=[body.encode("utf-8")],
    )


class FakeTransport:
    """Scripted transport. Unknown URLs answer 404 with an empty body."""

    def __init__(self, pages: Optional[Dict[str, FakePage]] = None) -> None:
        self.pages: Dict[str, FakePage] = dict(pages or {})
        self.requested: List[str] = []
        self.closed = False

    @property
    def page_requests(self) -> List[str]:
        return [u for u in self.requested if not u.endswith("/robots.txt")]

    @asynccontextmanager
    async def stream(self, url):
        self.requested.append(url)
        page = self.pages.get(url, FakePage(status=404))
        if page.error is not None:
            raise TransportError(url, page.error)

        response = Response(
            url=page.final_url or url,
            status_code=page.status,
            headers={k.lower(): v for k, v in page.headers.items()},
        )
        yield StreamedResponse(url, response, self._body(page.chunks))

    async def _body(self, chunks):
        for data in chunks:
            yield data

    async def aclose(self) -> None:
        self.closed = True


class RecordingSubscriber(EngineAware, Subscriber, ExceptionAware):
    """Votes as told and records every hook call."""

    name = "recorder"

    def __init__(self, request=Decision.POSITIVE, content=Decision.NEGATIVE, name=None):
        self.request = request
        self.content = content
        if name:
            self.name = name
        self.requested: List[str] = []
        self.content_calls = []
        self.last_chunks = []
        self.exceptions = []

    async def should_request(self, crawl_uri):
        self.requested.append(crawl_uri.uri)
        return self.request

    async def needs_content(self, crawl_uri, response, chunk):
        self.content_calls.append((crawl_uri.uri, chunk))
        return self.content

    async def on_last_chunk(self, crawl_uri, response, chunk):
        self.last_chunks.append((crawl_uri.uri, response.content))

    async def on_exception(self, crawl_uri, error, response=None, chunk=None):
        self.exceptions.append((crawl_uri.uri, error, response, chunk))

    def get_result(self, previous_result=None):
        return SubscriberResult(ok=True, summary=f"{len(self.requested)} seen")


def make_engine(transport, *uris, queue=None, **options) -> Engine:
    return Engine.create(
        BaseUriCollection(uris), queue or InMemoryQueue(), transport, **options
    )


@pytest.fixture
def transport():
    return FakeTransport()
