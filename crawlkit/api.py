# crawlkit/api.py
# The primary, programmer-facing API for the library.

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional

from crawlkit.config import load_config
from crawlkit.engine import Engine
from crawlkit.factory import Factory
from crawlkit.models import CrawlResult
from crawlkit.subscribers.broken_link_checker import BrokenLinkCheckerSubscriber
from crawlkit.transport import Transport
from crawlkit.uris import BaseUriCollection

log = logging.getLogger(__name__)

DEFAULT_SUBSCRIBERS = ("broken-link-checker",)


def create_factory(config: Optional[Dict[str, Any]] = None) -> Factory:
    """A Factory with every selectable subscriber shipped by crawlkit."""
    factory = Factory(config if config is not None else load_config())
    factory.add_subscriber(BrokenLinkCheckerSubscriber())
    return factory


def _load(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    # Never mutate a config dict owned by the caller.
    return copy.deepcopy(config) if config is not None else load_config()


def _apply_overrides(
    config: Dict[str, Any],
    max_requests: Optional[int],
    max_depth: Optional[int],
    storage_dir: Optional[str],
) -> None:
    if max_requests is not None:
        config["max_requests"] = max_requests
        log.info("Applied override - max_requests set to: %d", max_requests)
    if max_depth is not None:
        config["max_depth"] = max_depth
        log.info("Applied override - max_depth set to: %d", max_depth)
    if storage_dir is not None:
        config.setdefault("storage", {})["directory"] = storage_dir
        log.info("Applied override - storage directory set to: %s", storage_dir)


async def _run(
    factory: Factory,
    engine: Engine,
    previous: Dict[str, Any],
    owns_transport: bool,
) -> CrawlResult:
    try:
        result = await engine.crawl(previous)
        factory.create_result_store().save(result.job_id, result.results)
        return result
    finally:
        if owns_transport:
            await engine.transport.aclose()


async def crawl_site(
    base_uris: Iterable[str] = (),
    *,
    subscribers: Iterable[str] = DEFAULT_SUBSCRIBERS,
    max_requests: Optional[int] = None,
    max_depth: Optional[int] = None,
    storage_dir: Optional[str] = None,
    config: Optional[Dict[str, Any]] = None,
    transport: Optional[Transport] = None,
) -> CrawlResult:
    """
    Start a new crawl job.

    Args:
        base_uris: Seeds, merged with `base_uris`/`additional_uris` from config.
        subscribers: Names of the subscribers to run besides the defaults.
        max_requests: Pause the job after this many requests (0 = no limit).
        max_depth: Do not queue URIs deeper than this (0 = no limit).
        storage_dir: Override the directory jobs are persisted in.
        config: Use this instead of loading pyproject.toml.
        transport: Use this instead of an httpx client built from config.

    Returns:
        The CrawlResult; its job_id resumes the crawl if it did not finish.
    """
    config = _load(config)
    _apply_overrides(config, max_requests, max_depth, storage_dir)
    factory = create_factory(config)

    uris = BaseUriCollection(list(base_uris)).merge_with(factory.get_search_uri_collection())
    log.info("Starting new crawl for %d base URI(s).", len(uris))
    try:
        engine = factory.create(uris, factory.create_lazy_queue(), subscribers, transport)
        return await _run(factory, engine, {}, transport is None)
    finally:
        factory.storage.close()


async def resume_crawl(
    job_id: str,
    *,
    subscribers: Iterable[str] = DEFAULT_SUBSCRIBERS,
    max_requests: Optional[int] = None,
    max_depth: Optional[int] = None,
    storage_dir: Optional[str] = None,
    config: Optional[Dict[str, Any]] = None,
    transport: Optional[Transport] = None,
) -> CrawlResult:
    """
    Continue a job where it stopped; subscriber results of the earlier runs
    are handed to the subscribers for merging.

    Raises UnknownJobError / InvalidJobIdError for a job that cannot be found.
    """
    config = _load(config)
    _apply_overrides(config, max_requests, max_depth, storage_dir)
    factory = create_factory(config)

    log.info("Resuming crawl job %s.", job_id)
    try:
        engine = factory.create_from_job_id(
            job_id, factory.create_lazy_queue(), subscribers, transport
        )
        previous = factory.create_result_store().load(job_id)
        return await _run(factory, engine, previous, transport is None)
    finally:
        factory.storage.close()


def list_jobs(storage_dir: Optional[str] = None, config: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """Known jobs with their progress."""
    config = _load(config)
    _apply_overrides(config, None, None, storage_dir)
    factory = create_factory(config)
    try:
        queue = factory.create_lazy_queue()
        return [
            {
                "job_id": job_id,
                "base_uris": queue.resume_job(job_id).base_uris.to_list(),
                "total": queue.count_all(job_id),
                "pending": queue.count_pending(job_id),
            }
            for job_id in queue.jobs()
        ]
    finally:
        factory.storage.close()


def delete_job(job_id: str, storage_dir: Optional[str] = None, config: Optional[Dict[str, Any]] = None) -> None:
    """Forget a job and its stored results. Raises UnknownJobError if absent."""
    config = _load(config)
    _apply_overrides(config, None, None, storage_dir)
    factory = create_factory(config)
    try:
        queue = factory.create_lazy_queue()
        queue.resume_job(job_id)
        queue.delete_job(job_id)
        factory.create_result_store().delete(job_id)
        log.info("Deleted job %s.", job_id)
    finally:
        factory.storage.close()
