# crawlkit/subscribers/broken_link_checker.py
"""
Broken link checker.

Checks every URI on the crawled site plus every URI linked from it (one hop
outward). A status code is all it needs, so it never asks for the body.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from crawlkit.exceptions import HttpStatusError, TransportError
from crawlkit.models import Chunk, CrawlUri, Decision, Response, SubscriberResult
from crawlkit.subscriber import EngineAware, ExceptionAware, Subscriber
from crawlkit.uris import host_of

if TYPE_CHECKING:
    from crawlkit.engine import Engine


class BrokenLinkCheckerSubscriber(EngineAware, Subscriber, ExceptionAware):
    name = "broken-link-checker"

    def __init__(self) -> None:
        self.stats = {"ok": 0, "error": 0}

    def set_engine(self, engine: "Engine") -> None:
        # counters cover one run
        super().set_engine(engine)
        self.stats = {"ok": 0, "error": 0}

    async def should_request(self, crawl_uri: CrawlUri) -> Decision:
        base_uris = self.engine.base_uris

        # Only check URIs that are part of our base collection or were found on one
        from_base_uri_collection = base_uris.contains_host(host_of(crawl_uri.uri))
        found_on_base_uri_collection = False
        if crawl_uri.found_on is not None:
            original = self.engine.get_crawl_uri(crawl_uri.found_on)
            found_on_base_uri_collection = original is not None and base_uris.contains_host(
                host_of(original.uri)
            )

        if not from_base_uri_collection and not found_on_base_uri_collection:
            self.engine.log(
                logging.DEBUG,
                "Did not check because it is not part of the base URI collection "
                "or was not found on one of that is.",
                crawl_uri,
                source=type(self).__name__,
            )
            return Decision.NEGATIVE

        return Decision.POSITIVE

    async def needs_content(
        self, crawl_uri: CrawlUri, response: Response, chunk: Chunk
    ) -> Decision:
        if response.status_code < 200 or response.status_code >= 400:
            self._log_error(crawl_uri, f"HTTP Status Code: {response.status_code}")
        else:
            self.stats["ok"] += 1

        return Decision.NEGATIVE

    async def on_last_chunk(
        self, crawl_uri: CrawlUri, response: Response, chunk: Chunk
    ) -> None:
        pass

    async def on_exception(
        self,
        crawl_uri: CrawlUri,
        error: Exception,
        response: Optional[Response] = None,
        chunk: Optional[Chunk] = None,
    ) -> None:
        if isinstance(error, TransportError) or response is None:
            self._log_error(crawl_uri, f"Could not request properly: {error}")
            return

        # Only log on the last chunk for HTTP errors, they surface on every chunk.
        if isinstance(error, HttpStatusError) and chunk is not None and not chunk.is_last:
            return

        self._log_error(crawl_uri, f"HTTP Status Code: {response.status_code}")

    def get_result(
        self, previous_result: Optional[SubscriberResult] = None
    ) -> SubscriberResult:
        stats = dict(self.stats)

        if previous_result is not None:
            previous_stats = previous_result.get_info("stats") or {}
            stats["ok"] += int(previous_stats.get("ok", 0))
            stats["error"] += int(previous_stats.get("error", 0))

        result = SubscriberResult(
            ok=stats["error"] == 0,
            summary=f"Checked {stats['ok']} link(s) successfully. {stats['error']} were broken!",
        )
        result.add_info("stats", stats)
        return result

    def _log_error(self, crawl_uri: CrawlUri, message: str) -> None:
        self.stats["error"] += 1
        self.engine.log(
            logging.ERROR,
            f"Broken link! {message}.",
            crawl_uri,
            source=type(self).__name__,
        )
