# crawlkit/factory.py
"""
Builds engines.

Holds the registered (selectable) subscribers and the configuration, and
wires an Engine with the default subscribers first, then the selected ones.

Selected subscribers are shared instances: building a second engine from the
same factory re-attaches them, and attaching resets their per-run state.
Default subscribers are created fresh for every engine.
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from crawlkit.config import DEFAULT_CONFIG
from crawlkit.engine import Engine
from crawlkit.exceptions import InvalidSubscriberSelectionError
from crawlkit.queue import BaseQueue, DiskQueue, InMemoryQueue, LazyQueue
from crawlkit.storage import CrawlStorage, ResultStore, StorageConfig
from crawlkit.subscriber import Subscriber
from crawlkit.subscribers.html_crawler import HtmlCrawlerSubscriber
from crawlkit.subscribers.robots import RobotsSubscriber
from crawlkit.transport import HttpxTransport, Transport
from crawlkit.uris import BaseUriCollection

log = logging.getLogger(__name__)


class Factory:
    def __init__(
        self,
        config: Optional[Mapping[str, Any]] = None,
        storage: Optional[CrawlStorage] = None,
    ) -> None:
        self.config: Dict[str, Any] = copy.deepcopy(dict(config or DEFAULT_CONFIG))
        self._storage = storage
        self._subscribers: List[Subscriber] = []

    # ---- Subscriber registry ----------------------------------------------

    def add_subscriber(self, subscriber: Subscriber) -> "Factory":
        self._subscribers.append(subscriber)
        return self

    def get_subscribers(self, selected: Iterable[str] = ()) -> List[Subscriber]:
        selected = list(selected)
        if not selected:
            return list(self._subscribers)
        return [s for s in self._subscribers if s.get_name() in selected]

    def get_subscriber_names(self) -> List[str]:
        return [s.get_name() for s in self._subscribers]

    # ---- Collaborators ----------------------------------------------------

    @property
    def storage(self) -> CrawlStorage:
        if self._storage is None:
            storage_cfg = self.config.get("storage", {})
            self._storage = CrawlStorage(
                StorageConfig(directory=str(storage_cfg.get("directory", ".crawlkit")))
            )
        return self._storage

    def create_lazy_queue(self) -> LazyQueue:
        return LazyQueue(InMemoryQueue(), DiskQueue(self.storage))

    def create_result_store(self) -> ResultStore:
        return ResultStore(self.storage)

    def get_default_http_client_options(self) -> Dict[str, Any]:
        return dict(self.config.get("http_client", {}))

    def create_transport(self) -> HttpxTransport:
        return HttpxTransport(self.get_default_http_client_options())

    def get_search_uri_collection(self) -> BaseUriCollection:
        return BaseUriCollection(self.config.get("base_uris", [])).merge_with(
            self.get_additional_search_uri_collection()
        )

    def get_additional_search_uri_collection(self) -> BaseUriCollection:
        return BaseUriCollection(self.config.get("additional_uris", []))

    # ---- Engines ----------------------------------------------------------

    def create(
        self,
        base_uris: BaseUriCollection,
        queue: BaseQueue,
        selected: Iterable[str],
        transport: Optional[Transport] = None,
    ) -> Engine:
        """
        Raises:
            InvalidSubscriberSelectionError: nothing valid selected.
            EmptyBaseUriCollectionError: no base URIs.
        """
        names = self._validate_subscribers(selected)
        engine = Engine.create(
            base_uris,
            queue,
            transport or self.create_transport(),
            **self._engine_options(),
        )
        self._register_default_subscribers(engine)
        self._register_subscribers(engine, names)
        return engine

    def create_from_job_id(
        self,
        job_id: str,
        queue: BaseQueue,
        selected: Iterable[str],
        transport: Optional[Transport] = None,
    ) -> Engine:
        """
        Raises:
            InvalidSubscriberSelectionError: nothing valid selected.
            UnknownJobError / InvalidJobIdError: job cannot be resumed.
        """
        names = self._validate_subscribers(selected)
        engine = Engine.from_job_id(
            job_id,
            queue,
            transport or self.create_transport(),
            **self._engine_options(),
        )
        self._register_default_subscribers(engine)
        self._register_subscribers(engine, names)
        return engine

    def _engine_options(self) -> Dict[str, Any]:
        return {
            "max_requests": int(self.config.get("max_requests", 0)),
            "max_depth": int(self.config.get("max_depth", 0)),
            "request_delay": float(self.config.get("request_delay", 0.0)),
            "max_body_size": int(self.config.get("max_body_size", 0)),
        }

    def _register_default_subscribers(self, engine: Engine) -> None:
        user_agent = self.get_default_http_client_options().get("user_agent") or "*"
        engine.add_subscriber(RobotsSubscriber(user_agent=user_agent))
        engine.add_subscriber(HtmlCrawlerSubscriber())

    def _register_subscribers(self, engine: Engine, names: List[str]) -> None:
        for subscriber in self._subscribers:
            if subscriber.get_name() in names:
                engine.add_subscriber(subscriber)

    def _validate_subscribers(self, selected: Iterable[str]) -> List[str]:
        selected = list(selected)
        valid = self.get_subscriber_names()

        names = [name for name in valid if name in selected]
        if not names:
            raise InvalidSubscriberSelectionError(valid)

        unknown = sorted(set(selected) - set(valid))
        if unknown:
            log.warning("Ignoring unknown subscriber(s): %s", ", ".join(unknown))
        return names
