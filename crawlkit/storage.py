# crawlkit/storage.py
"""
File-backed durable storage.

- Storage: diskcache.Cache (robust, fast, cross-platform).
- Location: default is a visible folder in CWD; optionally an OS-specific app
  data dir via platformdirs.
- Scope: crawl queue records (see queue.DiskQueue) and per-job subscriber
  results (ResultStore). Nothing here expires; jobs are removed explicitly.
"""
from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import diskcache
from platformdirs import user_cache_dir as _user_cache_dir

from crawlkit.models import SubscriberResult

log = logging.getLogger(__name__)

DEFAULT_DIRECTORY = ".crawlkit"


@dataclasses.dataclass
class StorageConfig:
    # Either a concrete directory path, or special marker "os-default"
    # for an OS-specific global location.
    directory: str = DEFAULT_DIRECTORY


class CrawlStorage:
    """
    Thin wrapper over diskcache owning the on-disk directory.

    Queue and result store share one instance so a job's URIs and its results
    live (and get deleted) together.
    """

    def __init__(self, cfg: StorageConfig | None = None, app_name: str = "crawlkit"):
        self.cfg = cfg or StorageConfig()
        self.app_name = app_name
        self._cache: Optional[diskcache.Cache] = None
        self.create_cache_object()

    def create_cache_object(self) -> None:
        if self._cache is not None and self._cache.directory:
            return
        directory = self.cfg.directory
        if directory == "os-default":
            directory = _user_cache_dir(self.app_name, appauthor=False)

        log.debug("Crawl storage at %s", directory)
        self._cache = diskcache.Cache(directory)

    @property
    def cache(self) -> diskcache.Cache:
        if self._cache is None:
            raise RuntimeError("Crawl storage is closed.")
        return self._cache

    def close(self) -> None:
        if self._cache is not None:
            self._cache.close()
            self._cache = None

    # ---- Introspection helpers ---------------------------------------------

    @property
    def directory(self) -> Optional[str]:
        """Returns the absolute storage directory path if available."""
        if self._cache is None or not self._cache.directory:
            return None
        return str(self._cache.directory)

    def _dir_size_bytes(self) -> int:
        d = self.directory
        if not d:
            return 0
        total = 0
        path = Path(d)
        if not path.exists():
            return 0
        for p in path.rglob("*"):
            # skip broken links just in case
            try:
                if p.is_file():
                    total += p.stat().st_size
            except OSError:
                continue
        return total

    def stats(self) -> dict[str, int | str]:
        """
        Returns a simple stats dict:
            - items: number of keys in storage
            - bytes: on-disk size in bytes (recursive directory walk)
            - directory: absolute directory path
        """
        if self._cache is None or not self._cache.directory:
            return {"items": 0, "bytes": 0, "directory": ""}

        return {
            "items": len(self._cache),
            "bytes": self._dir_size_bytes(),
            "directory": os.path.abspath(self.directory or ""),
        }

    def clear_all(self) -> None:
        """Wipes every job and every stored result."""
        self.cache.clear()


class ResultStore:
    """Subscriber results per job, so a resumed run can merge its counters."""

    def __init__(self, storage: CrawlStorage) -> None:
        self.storage = storage

    @staticmethod
    def _key(job_id: str) -> tuple[str, str]:
        return ("results", job_id)

    def save(self, job_id: str, results: Dict[str, SubscriberResult]) -> None:
        self.storage.cache.set(
            self._key(job_id), {name: r.to_dict() for name, r in results.items()}
        )

    def load(self, job_id: str) -> Dict[str, SubscriberResult]:
        raw: Any = self.storage.cache.get(self._key(job_id))
        if not raw:
            return {}
        return {name: SubscriberResult.from_dict(data) for name, data in raw.items()}

    def delete(self, job_id: str) -> None:
        self.storage.cache.delete(self._key(job_id))
