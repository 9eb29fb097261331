# crawlkit/subscriber.py
"""
Subscriber protocol.

Every subscriber implements `Subscriber`. Optional capabilities are separate
classes a subscriber opts into; the engine checks them with isinstance():

- ExceptionAware: receives per-URI failures through on_exception().
- EngineAware: gets a reference to the running engine (base URIs, queue
  lookups, add_uri, logging) before the crawl starts.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from crawlkit.models import Chunk, CrawlUri, Decision, Response, SubscriberResult

if TYPE_CHECKING:
    from crawlkit.engine import Engine


class Subscriber(ABC):
    #: Unique, stable identifier used for selection and logging.
    name: str = ""

    def get_name(self) -> str:
        return self.name

    @abstractmethod
    async def should_request(self, crawl_uri: CrawlUri) -> Decision:
        """Vote on fetching the URI at all. Called before any network I/O."""

    @abstractmethod
    async def needs_content(
        self, crawl_uri: CrawlUri, response: Response, chunk: Chunk
    ) -> Decision:
        """
        Vote on receiving the body. Called with the first chunk once status
        and headers are known, then for every chunk while voting POSITIVE.
        """

    @abstractmethod
    async def on_last_chunk(
        self, crawl_uri: CrawlUri, response: Response, chunk: Chunk
    ) -> None:
        """The body is complete (`response.content`). Called once per URI."""

    @abstractmethod
    def get_result(
        self, previous_result: Optional[SubscriberResult] = None
    ) -> SubscriberResult:
        """
        Result of this run. When resuming, `previous_result` is the stored
        result of the earlier run and merging it is up to the subscriber.
        """


class ExceptionAware(ABC):
    @abstractmethod
    async def on_exception(
        self,
        crawl_uri: CrawlUri,
        error: Exception,
        response: Optional[Response] = None,
        chunk: Optional[Chunk] = None,
    ) -> None:
        """Report a failure for one URI. Must not raise."""


class EngineAware:
    _engine: Optional["Engine"] = None

    def set_engine(self, engine: "Engine") -> None:
        self._engine = engine

    @property
    def engine(self) -> "Engine":
        if self._engine is None:
            raise RuntimeError(f"{type(self).__name__} is not attached to an engine.")
        return self._engine
