# crawlkit/queue.py
"""
Crawl queues.

A queue maps a job ID to an insertion-ordered collection of CrawlUri records.
A normalized URL appears at most once per job and records are never removed,
only marked processed, so a resumed job continues from the first unprocessed
URI without repeating finished work.

- InMemoryQueue: non-durable, good for one-shot runs.
- DiskQueue: durable, stored in a diskcache directory.
- LazyQueue: InMemoryQueue in front of a durable queue; writes go through to
  both, reads hydrate the fast layer from the durable one on a miss.
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional

from crawlkit.exceptions import InvalidJobIdError, UnknownJobError
from crawlkit.models import CrawlUri, Job
from crawlkit.storage import CrawlStorage
from crawlkit.uris import BaseUriCollection, normalize_url

log = logging.getLogger(__name__)


def new_job_id() -> str:
    return str(uuid.uuid4())


def validate_job_id(job_id: str) -> None:
    """Raises InvalidJobIdError unless job_id is a UUID string."""
    try:
        uuid.UUID(str(job_id))
    except ValueError:
        raise InvalidJobIdError(job_id) from None


def _copy(crawl_uri: CrawlUri) -> CrawlUri:
    return dataclasses.replace(crawl_uri, tags=set(crawl_uri.tags))


class BaseQueue(ABC):
    """Storage contract the engine drives. Only the engine marks URIs processed."""

    @abstractmethod
    def create_job(self, base_uris: BaseUriCollection) -> str:
        """Allocate a new job and return its ID."""

    @abstractmethod
    def resume_job(self, job_id: str) -> Job:
        """Return the job or raise InvalidJobIdError / UnknownJobError."""

    def is_job_id_valid(self, job_id: str) -> bool:
        try:
            self.resume_job(job_id)
        except UnknownJobError:
            return False
        return True

    @abstractmethod
    def add(self, job_id: str, crawl_uri: CrawlUri) -> bool:
        """Insert unless the normalized URL is known. Returns True if inserted."""

    @abstractmethod
    def get(self, job_id: str, url: str) -> Optional[CrawlUri]:
        """Look a record up by (normalized) URL."""

    @abstractmethod
    def next_unprocessed(self, job_id: str) -> Optional[CrawlUri]:
        """Earliest inserted record that is not processed yet."""

    @abstractmethod
    def mark_processed(self, job_id: str, crawl_uri: CrawlUri) -> None:
        """Flag the record processed, persisting its current tags as well."""

    @abstractmethod
    def update_tags(self, job_id: str, crawl_uri: CrawlUri) -> None:
        """Persist the tags subscribers attached to a record."""

    @abstractmethod
    def all(self, job_id: str) -> Iterator[CrawlUri]:
        """Every record of the job in insertion order."""

    @abstractmethod
    def count_all(self, job_id: str) -> int:
        ...

    @abstractmethod
    def count_pending(self, job_id: str) -> int:
        ...

    @abstractmethod
    def delete_job(self, job_id: str) -> None:
        ...

    @abstractmethod
    def jobs(self) -> List[str]:
        ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


@dataclass
class _MemoryJob:
    base_uris: BaseUriCollection
    uris: Dict[str, CrawlUri] = field(default_factory=dict)
    order: List[str] = field(default_factory=list)
    cursor: int = 0
    processed: int = 0


class InMemoryQueue(BaseQueue):
    def __init__(self) -> None:
        self._jobs: Dict[str, _MemoryJob] = {}

    def _job(self, job_id: str) -> _MemoryJob:
        validate_job_id(job_id)
        try:
            return self._jobs[job_id]
        except KeyError:
            raise UnknownJobError(job_id) from None

    def has_job(self, job_id: str) -> bool:
        return job_id in self._jobs

    def create_job(self, base_uris: BaseUriCollection) -> str:
        job_id = new_job_id()
        self._jobs[job_id] = _MemoryJob(base_uris=base_uris)
        return job_id

    def restore_job(self, job: Job, crawl_uris: Iterable[CrawlUri]) -> None:
        """Load a job that already exists elsewhere (see LazyQueue)."""
        self._jobs[job.job_id] = _MemoryJob(base_uris=job.base_uris)
        for crawl_uri in crawl_uris:
            self.add(job.job_id, crawl_uri)

    def resume_job(self, job_id: str) -> Job:
        return Job(job_id=job_id, base_uris=self._job(job_id).base_uris)

    def add(self, job_id: str, crawl_uri: CrawlUri) -> bool:
        job = self._job(job_id)
        key = normalize_url(crawl_uri.uri)
        if key in job.uris:
            return False
        job.uris[key] = dataclasses.replace(_copy(crawl_uri), uri=key)
        job.order.append(key)
        if crawl_uri.processed:
            job.processed += 1
        return True

    def get(self, job_id: str, url: str) -> Optional[CrawlUri]:
        found = self._job(job_id).uris.get(normalize_url(url))
        return _copy(found) if found is not None else None

    def next_unprocessed(self, job_id: str) -> Optional[CrawlUri]:
        job = self._job(job_id)
        while job.cursor < len(job.order):
            crawl_uri = job.uris[job.order[job.cursor]]
            if not crawl_uri.processed:
                return _copy(crawl_uri)
            job.cursor += 1
        return None

    def mark_processed(self, job_id: str, crawl_uri: CrawlUri) -> None:
        job = self._job(job_id)
        stored = job.uris.get(normalize_url(crawl_uri.uri))
        if stored is None:
            raise KeyError(crawl_uri.uri)
        if not stored.processed:
            job.processed += 1
        stored.processed = True
        stored.tags = set(crawl_uri.tags)
        crawl_uri.processed = True

    def update_tags(self, job_id: str, crawl_uri: CrawlUri) -> None:
        stored = self._job(job_id).uris.get(normalize_url(crawl_uri.uri))
        if stored is not None:
            stored.tags = set(crawl_uri.tags)

    def all(self, job_id: str) -> Iterator[CrawlUri]:
        job = self._job(job_id)
        for key in list(job.order):
            yield _copy(job.uris[key])

    def count_all(self, job_id: str) -> int:
        return len(self._job(job_id).order)

    def count_pending(self, job_id: str) -> int:
        job = self._job(job_id)
        return len(job.order) - job.processed

    def delete_job(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)

    def jobs(self) -> List[str]:
        return list(self._jobs)


# ---------------------------------------------------------------------------
# Durable (diskcache)
# ---------------------------------------------------------------------------


class DiskQueue(BaseQueue):
    """
    Durable queue in a diskcache directory.

    Keys:
      ("job", job_id)            -> {"base_uris": [...], "size": n, "processed": n}
      ("uri", job_id, url)       -> CrawlUri.to_dict()
      ("seq", job_id, index)     -> url (insertion order)
      ("cursor", job_id)         -> first index that may still be unprocessed
    """

    def __init__(self, storage: CrawlStorage) -> None:
        self.storage = storage

    @property
    def _cache(self) -> Any:
        return self.storage.cache

    def _meta(self, job_id: str) -> Dict[str, Any]:
        validate_job_id(job_id)
        meta = self._cache.get(("job", job_id))
        if meta is None:
            raise UnknownJobError(job_id)
        return meta

    def create_job(self, base_uris: BaseUriCollection) -> str:
        job_id = new_job_id()
        self._cache.set(
            ("job", job_id),
            {"base_uris": base_uris.to_list(), "size": 0, "processed": 0},
        )
        log.debug("Created job %s", job_id)
        return job_id

    def resume_job(self, job_id: str) -> Job:
        meta = self._meta(job_id)
        return Job(job_id=job_id, base_uris=BaseUriCollection(meta["base_uris"]))

    def add(self, job_id: str, crawl_uri: CrawlUri) -> bool:
        key = normalize_url(crawl_uri.uri)
        with self._cache.transact():
            meta = self._meta(job_id)
            if ("uri", job_id, key) in self._cache:
                return False
            record = crawl_uri.to_dict()
            record["uri"] = key
            self._cache.set(("uri", job_id, key), record)
            self._cache.set(("seq", job_id, meta["size"]), key)
            meta["size"] += 1
            if crawl_uri.processed:
                meta["processed"] += 1
            self._cache.set(("job", job_id), meta)
        return True

    def get(self, job_id: str, url: str) -> Optional[CrawlUri]:
        self._meta(job_id)
        record = self._cache.get(("uri", job_id, normalize_url(url)))
        return CrawlUri.from_dict(record) if record is not None else None

    def next_unprocessed(self, job_id: str) -> Optional[CrawlUri]:
        meta = self._meta(job_id)
        index = self._cache.get(("cursor", job_id), 0)
        while index < meta["size"]:
            key = self._cache.get(("seq", job_id, index))
            record = self._cache.get(("uri", job_id, key))
            if record is not None and not record["processed"]:
                self._cache.set(("cursor", job_id), index)
                return CrawlUri.from_dict(record)
            index += 1
        self._cache.set(("cursor", job_id), index)
        return None

    def mark_processed(self, job_id: str, crawl_uri: CrawlUri) -> None:
        key = normalize_url(crawl_uri.uri)
        with self._cache.transact():
            meta = self._meta(job_id)
            record = self._cache.get(("uri", job_id, key))
            if record is None:
                raise KeyError(crawl_uri.uri)
            if not record["processed"]:
                meta["processed"] += 1
                self._cache.set(("job", job_id), meta)
            record["processed"] = True
            record["tags"] = sorted(crawl_uri.tags)
            self._cache.set(("uri", job_id, key), record)
        crawl_uri.processed = True

    def update_tags(self, job_id: str, crawl_uri: CrawlUri) -> None:
        key = normalize_url(crawl_uri.uri)
        with self._cache.transact():
            record = self._cache.get(("uri", job_id, key))
            if record is None:
                return
            record["tags"] = sorted(crawl_uri.tags)
            self._cache.set(("uri", job_id, key), record)

    def all(self, job_id: str) -> Iterator[CrawlUri]:
        meta = self._meta(job_id)
        for index in range(meta["size"]):
            key = self._cache.get(("seq", job_id, index))
            record = self._cache.get(("uri", job_id, key))
            if record is not None:
                yield CrawlUri.from_dict(record)

    def count_all(self, job_id: str) -> int:
        return int(self._meta(job_id)["size"])

    def count_pending(self, job_id: str) -> int:
        meta = self._meta(job_id)
        return int(meta["size"] - meta["processed"])

    def delete_job(self, job_id: str) -> None:
        with self._cache.transact():
            try:
                meta = self._meta(job_id)
            except UnknownJobError:
                return
            for index in range(meta["size"]):
                key = self._cache.pop(("seq", job_id, index), None)
                if key is not None:
                    self._cache.delete(("uri", job_id, key))
            self._cache.delete(("cursor", job_id))
            self._cache.delete(("job", job_id))

    def jobs(self) -> List[str]:
        return [
            key[1]
            for key in self._cache.iterkeys()
            if isinstance(key, tuple) and len(key) == 2 and key[0] == "job"
        ]


# ---------------------------------------------------------------------------
# Lazy (memory in front of durable)
# ---------------------------------------------------------------------------


class LazyQueue(BaseQueue):
    def __init__(self, primary: InMemoryQueue, secondary: BaseQueue) -> None:
        self.primary = primary
        self.secondary = secondary

    def _ensure(self, job_id: str) -> None:
        if self.primary.has_job(job_id):
            return
        job = self.secondary.resume_job(job_id)
        log.debug("Loading job %s from durable storage", job_id)
        self.primary.restore_job(job, self.secondary.all(job_id))

    def create_job(self, base_uris: BaseUriCollection) -> str:
        job_id = self.secondary.create_job(base_uris)
        self.primary.restore_job(Job(job_id=job_id, base_uris=base_uris), [])
        return job_id

    def resume_job(self, job_id: str) -> Job:
        self._ensure(job_id)
        return self.primary.resume_job(job_id)

    def add(self, job_id: str, crawl_uri: CrawlUri) -> bool:
        self._ensure(job_id)
        inserted = self.primary.add(job_id, crawl_uri)
        if inserted:
            self.secondary.add(job_id, crawl_uri)
        return inserted

    def get(self, job_id: str, url: str) -> Optional[CrawlUri]:
        self._ensure(job_id)
        return self.primary.get(job_id, url)

    def next_unprocessed(self, job_id: str) -> Optional[CrawlUri]:
        self._ensure(job_id)
        return self.primary.next_unprocessed(job_id)

    def mark_processed(self, job_id: str, crawl_uri: CrawlUri) -> None:
        self._ensure(job_id)
        self.primary.mark_processed(job_id, crawl_uri)
        self.secondary.mark_processed(job_id, crawl_uri)

    def update_tags(self, job_id: str, crawl_uri: CrawlUri) -> None:
        self._ensure(job_id)
        self.primary.update_tags(job_id, crawl_uri)
        self.secondary.update_tags(job_id, crawl_uri)

    def all(self, job_id: str) -> Iterator[CrawlUri]:
        self._ensure(job_id)
        return self.primary.all(job_id)

    def count_all(self, job_id: str) -> int:
        self._ensure(job_id)
        return self.primary.count_all(job_id)

    def count_pending(self, job_id: str) -> int:
        self._ensure(job_id)
        return self.primary.count_pending(job_id)

    def delete_job(self, job_id: str) -> None:
        self.primary.delete_job(job_id)
        self.secondary.delete_job(job_id)

    def jobs(self) -> List[str]:
        return self.secondary.jobs()
