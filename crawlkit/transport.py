# crawlkit/transport.py
"""
Transport capability and its HTTPX implementation.

The engine only needs `stream(url)`: an async context manager yielding a
StreamedResponse whose `response` holds status and headers as soon as they
are known, and whose `iter_chunks()` yields a data-less first chunk, the body
chunks, then a data-less last chunk. Any failure surfaces as TransportError.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Dict, Mapping, Optional, Protocol

import httpx

from crawlkit.__about__ import __title__, __version__
from crawlkit.exceptions import MalformedResponseError, TransportError
from crawlkit.models import Chunk, Response

log = logging.getLogger(__name__)

DEFAULT_USER_AGENT = f"{__title__}/{__version__}"
DEFAULT_CHUNK_SIZE = 64 * 1024


class StreamedResponse:
    """One in-flight response. Chunks can be iterated exactly once."""

    def __init__(self, url: str, response: Response, body: AsyncIterator[bytes]) -> None:
        self.url = url
        self.response = response
        self._body = body
        self._consumed = False

    async def iter_chunks(self) -> AsyncIterator[Chunk]:
        if self._consumed:
            raise MalformedResponseError(
                self.url, f"Response stream for {self.url} is already closed."
            )
        self._consumed = True
        yield Chunk(is_first=True)
        async for data in self._body:
            if data:
                yield Chunk(data=data)
        yield Chunk(is_last=True)


class Transport(Protocol):
    def stream(self, url: str) -> AsyncContextManager[StreamedResponse]:
        ...

    async def aclose(self) -> None:
        ...


async def read_all(transport: Transport, url: str) -> Response:
    """Fetch a whole body (used for side requests such as robots.txt)."""
    async with transport.stream(url) as streamed:
        body = bytearray()
        async for chunk in streamed.iter_chunks():
            body.extend(chunk.data)
        streamed.response.content = bytes(body)
        return streamed.response


class HttpxTransport:
    """
    httpx.AsyncClient based transport.

    Options consumed (passed through from configuration):
      - user_agent: str
      - headers: dict[str, str]
      - timeout: float (seconds)
      - follow_redirects: bool
      - max_redirects: int
      - verify: bool
    """

    def __init__(
        self,
        options: Optional[Mapping[str, Any]] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.options: Dict[str, Any] = dict(options or {})
        self.chunk_size = chunk_size
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"User-Agent": self.options.get("user_agent") or DEFAULT_USER_AGENT}
            headers.update(self.options.get("headers") or {})
            self._client = httpx.AsyncClient(
                follow_redirects=self.options.get("follow_redirects", True),
                max_redirects=int(self.options.get("max_redirects", 5)),
                timeout=self.options.get("timeout", 10.0),
                verify=self.options.get("verify", True),
                headers=headers,
                transport=self._transport,
            )
            log.info("httpx session initialized.")
        return self._client

    async def __aenter__(self) -> "HttpxTransport":
        self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            log.info("httpx session closed.")

    @asynccontextmanager
    async def stream(self, url: str) -> AsyncIterator[StreamedResponse]:
        client = self._get_client()
        try:
            resp = await client.send(client.build_request("GET", url), stream=True)
        except (httpx.RequestError, httpx.InvalidURL) as e:
            raise TransportError(url, f"Could not request {url}: {e}") from e

        try:
            response = Response(
                url=str(resp.url),
                status_code=resp.status_code,
                headers={k.lower(): v for k, v in resp.headers.items()},
            )
            yield StreamedResponse(url, response, self._iter_bytes(url, resp))
        finally:
            await resp.aclose()

    async def _iter_bytes(self, url: str, resp: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for data in resp.aiter_bytes(self.chunk_size):
                yield data
        except httpx.StreamError as e:
            raise MalformedResponseError(url, f"Broken response stream for {url}: {e}") from e
        except httpx.RequestError as e:
            raise TransportError(url, f"Network error reading {url}: {e}") from e
