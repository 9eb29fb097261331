# Entrypoint for the crawlkit package.
# This file makes the public API available to programmers.

from __future__ import annotations

from crawlkit.__about__ import __version__
from crawlkit.api import crawl_site, delete_job, list_jobs, resume_crawl
from crawlkit.engine import Engine
from crawlkit.factory import Factory
from crawlkit.models import CrawlResult, CrawlUri, Decision, SubscriberResult
from crawlkit.queue import DiskQueue, InMemoryQueue, LazyQueue
from crawlkit.subscriber import EngineAware, ExceptionAware, Subscriber
from crawlkit.uris import BaseUriCollection

# The __all__ variable defines the public API of the package.
# When a user writes `from crawlkit import *`, only these names will be imported.
__all__ = [
    "crawl_site",
    "resume_crawl",
    "list_jobs",
    "delete_job",
    "Engine",
    "Factory",
    "CrawlResult",
    "CrawlUri",
    "Decision",
    "SubscriberResult",
    "DiskQueue",
    "InMemoryQueue",
    "LazyQueue",
    "Subscriber",
    "ExceptionAware",
    "EngineAware",
    "BaseUriCollection",
    "__version__",
]
