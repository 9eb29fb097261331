# crawlkit/engine.py
"""
Crawl engine.

Drains a job's queue one URI at a time:

  DISCOVERED -> EVALUATING -> FETCHING -> STREAMING -> DONE
                           `-> SKIPPED

1. Pop the earliest unprocessed URI (none -> the run ends).
2. Ask every subscriber should_request(); fetch iff one voted POSITIVE.
3. Stream the response; needs_content() is asked with the first chunk and
   then for every chunk while a subscriber keeps voting POSITIVE. If nobody
   wants the body it is not read; past max_body_size it is cut off.
4. On the last chunk, on_last_chunk() for every subscriber that ever voted
   POSITIVE. Link extraction happens there and feeds add_uri().
5. Mark processed (DONE and SKIPPED alike) and loop.

Per-URI failures go to ExceptionAware subscribers and never stop the drain.
A subscriber raising while a URI is handled is logged and the URI is still
marked processed.
Subscribers never see chunks of two URIs interleaved.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from crawlkit.exceptions import (
    CrawlConfigError,
    EmptyBaseUriCollectionError,
    HttpStatusError,
    MalformedResponseError,
    TransportError,
    UnknownJobError,
)
from crawlkit.models import (
    Chunk,
    CrawlResult,
    CrawlState,
    CrawlUri,
    Decision,
    Job,
    Response,
    SubscriberResult,
)
from crawlkit.queue import BaseQueue
from crawlkit.subscriber import EngineAware, ExceptionAware, Subscriber
from crawlkit.transport import StreamedResponse, Transport
from crawlkit.uris import BaseUriCollection, normalize_url

log = logging.getLogger(__name__)


@dataclass
class _Progress:
    """How far the current fetch got, for exception reporting."""

    response: Optional[Response] = None
    chunk: Optional[Chunk] = None


class Engine:
    def __init__(
        self,
        job: Job,
        queue: BaseQueue,
        transport: Transport,
        *,
        max_requests: int = 0,
        max_depth: int = 0,
        request_delay: float = 0.0,
        max_body_size: int = 0,
    ) -> None:
        self.job_id = job.job_id
        self.base_uris = job.base_uris
        self.queue = queue
        self.transport = transport
        # 0 means unlimited for all three limits
        self.max_requests = max_requests
        self.max_depth = max_depth
        self.max_body_size = max_body_size
        self.request_delay = request_delay

        self.request_count = 0
        self._subscribers: List[Subscriber] = []
        self._stopped = False

    # ---- Construction -----------------------------------------------------

    @classmethod
    def create(
        cls,
        base_uris: BaseUriCollection,
        queue: BaseQueue,
        transport: Transport,
        **options,
    ) -> "Engine":
        """Start a new job with every base URI queued as a level 0 seed."""
        if not len(base_uris):
            raise EmptyBaseUriCollectionError()

        job_id = queue.create_job(base_uris)
        for uri in base_uris:
            queue.add(job_id, CrawlUri(uri=uri, level=0))
        log.info("Created crawl job %s for %d base URI(s).", job_id, len(base_uris))
        return cls(queue.resume_job(job_id), queue, transport, **options)

    @classmethod
    def from_job_id(
        cls,
        job_id: str,
        queue: BaseQueue,
        transport: Transport,
        **options,
    ) -> "Engine":
        """Continue an existing job. Raises UnknownJobError / InvalidJobIdError."""
        job = queue.resume_job(job_id)
        log.info(
            "Resuming crawl job %s (%d of %d URI(s) pending).",
            job_id,
            queue.count_pending(job_id),
            queue.count_all(job_id),
        )
        return cls(job, queue, transport, **options)

    def add_subscriber(self, subscriber: Subscriber) -> "Engine":
        if isinstance(subscriber, EngineAware):
            subscriber.set_engine(self)
        self._subscribers.append(subscriber)
        return self

    @property
    def subscribers(self) -> List[Subscriber]:
        return list(self._subscribers)

    # ---- Services for subscribers ----------------------------------------

    def get_crawl_uri(self, url: str) -> Optional[CrawlUri]:
        return self.queue.get(self.job_id, url)

    def add_uri(
        self, url: str, found_on: CrawlUri, tags: Iterable[str] = ()
    ) -> Optional[CrawlUri]:
        """
        Queue a URI discovered on `found_on`, one level deeper.

        Returns the new record, or None if the URI was already known or lies
        beyond max_depth.
        """
        level = found_on.level + 1
        if self.max_depth and level > self.max_depth:
            self.log(
                logging.DEBUG,
                f"Did not add {url} because the maximum depth of {self.max_depth} was reached.",
                found_on,
            )
            return None

        crawl_uri = CrawlUri(
            uri=normalize_url(url), level=level, found_on=found_on.uri, tags=set(tags)
        )
        if not self.queue.add(self.job_id, crawl_uri):
            return None
        return crawl_uri

    def log(
        self,
        level: int,
        message: str,
        crawl_uri: Optional[CrawlUri] = None,
        source: Optional[str] = None,
    ) -> None:
        if crawl_uri is not None:
            message = crawl_uri.create_log_message(message)
        log.log(level, message, extra={"source": source or type(self).__name__})

    def stop(self) -> None:
        """Ask the running crawl to stop before it evaluates the next URI."""
        self._stopped = True

    # ---- The crawl loop ---------------------------------------------------

    async def crawl(
        self, previous_results: Optional[Dict[str, SubscriberResult]] = None
    ) -> CrawlResult:
        if not self._subscribers:
            raise CrawlConfigError("Cannot crawl without any subscriber.")

        finished = False
        log.info("Crawling job %s.", self.job_id)

        try:
            while True:
                crawl_uri = self.queue.next_unprocessed(self.job_id)
                if crawl_uri is None:
                    finished = True
                    break
                if self._stopped:
                    log.info("Crawl of job %s stopped on request.", self.job_id)
                    break
                if self.max_requests and self.request_count >= self.max_requests:
                    log.info(
                        "Crawl of job %s paused after %d request(s).",
                        self.job_id,
                        self.request_count,
                    )
                    break
                await self._process(crawl_uri)
        finally:
            self._stopped = False

        results = self._collect_results(previous_results or {})
        result = CrawlResult(
            job_id=self.job_id,
            results=results,
            finished=finished,
            request_count=self.request_count,
        )
        log.info(
            "Crawl of job %s %s after %d request(s), ok=%s.",
            self.job_id,
            "finished" if finished else "interrupted",
            self.request_count,
            result.ok,
        )
        return result

    async def _process(self, crawl_uri: CrawlUri) -> None:
        try:
            state = await self._handle(crawl_uri)
        except (CrawlConfigError, UnknownJobError):
            raise
        except Exception as e:
            self.log(
                logging.ERROR,
                f"Processing failed with {type(e).__name__}: {e}",
                crawl_uri,
            )
            log.debug("Traceback for %s", crawl_uri.uri, exc_info=True)
            state = CrawlState.DONE

        self._finish(crawl_uri, state)

    async def _handle(self, crawl_uri: CrawlUri) -> CrawlState:
        self._state(crawl_uri, CrawlState.EVALUATING)

        decisions = [await s.should_request(crawl_uri) for s in self._subscribers]
        self.queue.update_tags(self.job_id, crawl_uri)

        if Decision.combine(decisions) is not Decision.POSITIVE:
            self.log(logging.DEBUG, "Skipped, no subscriber requested it.", crawl_uri)
            return CrawlState.SKIPPED

        if self.request_delay:
            await asyncio.sleep(self.request_delay)

        self._state(crawl_uri, CrawlState.FETCHING)
        self.request_count += 1
        progress = _Progress()
        try:
            async with self.transport.stream(crawl_uri.uri) as streamed:
                await self._stream(crawl_uri, streamed, progress)
        except TransportError as e:
            self.log(logging.DEBUG, f"Request failed: {e}", crawl_uri)
            await self._notify_exception(crawl_uri, e, progress)

        return CrawlState.DONE

    async def _stream(
        self, crawl_uri: CrawlUri, streamed: StreamedResponse, progress: _Progress
    ) -> None:
        response = streamed.response
        progress.response = response
        self._state(crawl_uri, CrawlState.STREAMING)

        body = bytearray()
        interested: List[Subscriber] = []
        ever_positive: List[Subscriber] = []

        async for chunk in streamed.iter_chunks():
            progress.chunk = chunk
            if chunk.data:
                body.extend(chunk.data)
                if self.max_body_size and len(body) > self.max_body_size:
                    del body[self.max_body_size:]
                    self.log(
                        logging.WARNING,
                        f"Body cut off after {self.max_body_size} bytes.",
                        crawl_uri,
                    )
                    chunk = Chunk(is_last=True)
                    progress.chunk = chunk

            if chunk.is_last:
                response.content = bytes(body)
                await self._deliver_last_chunk(crawl_uri, response, chunk, ever_positive)
                break

            candidates = self._subscribers if chunk.is_first else interested
            interested = []
            for subscriber in candidates:
                # Reading the body of an error response is an error in itself.
                if (
                    not chunk.is_first
                    and response.is_http_error
                    and isinstance(subscriber, ExceptionAware)
                ):
                    await subscriber.on_exception(
                        crawl_uri, HttpStatusError(response), response, chunk
                    )
                    interested.append(subscriber)
                    continue

                decision = await subscriber.needs_content(crawl_uri, response, chunk)
                if decision is Decision.POSITIVE:
                    interested.append(subscriber)
                    if subscriber not in ever_positive:
                        ever_positive.append(subscriber)

            if not ever_positive:
                self.log(
                    logging.DEBUG,
                    "Did not read the content, no subscriber asked for it.",
                    crawl_uri,
                )
                return
        else:
            raise MalformedResponseError(
                crawl_uri.uri, f"Response stream for {crawl_uri.uri} ended without a last chunk."
            )

    async def _deliver_last_chunk(
        self,
        crawl_uri: CrawlUri,
        response: Response,
        chunk: Chunk,
        subscribers: List[Subscriber],
    ) -> None:
        for subscriber in subscribers:
            if response.is_http_error and isinstance(subscriber, ExceptionAware):
                await subscriber.on_exception(
                    crawl_uri, HttpStatusError(response), response, chunk
                )
            else:
                await subscriber.on_last_chunk(crawl_uri, response, chunk)

    async def _notify_exception(
        self, crawl_uri: CrawlUri, error: Exception, progress: _Progress
    ) -> None:
        for subscriber in self._subscribers:
            if isinstance(subscriber, ExceptionAware):
                await subscriber.on_exception(
                    crawl_uri, error, progress.response, progress.chunk
                )

    def _finish(self, crawl_uri: CrawlUri, state: CrawlState) -> None:
        self.queue.mark_processed(self.job_id, crawl_uri)
        self._state(crawl_uri, state)

    def _state(self, crawl_uri: CrawlUri, state: CrawlState) -> None:
        log.debug("%s -> %s", crawl_uri.uri, state.value)

    def _collect_results(
        self, previous_results: Dict[str, SubscriberResult]
    ) -> Dict[str, SubscriberResult]:
        results: Dict[str, SubscriberResult] = {}
        for subscriber in self._subscribers:
            name = subscriber.get_name()
            results[name] = subscriber.get_result(previous_results.get(name))
        return results
