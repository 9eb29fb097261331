# test/test_queue.py
from __future__ import annotations

import pytest

from crawlkit.exceptions import InvalidJobIdError, UnknownJobError
from crawlkit.models import CrawlUri
from crawlkit.queue import DiskQueue, InMemoryQueue, LazyQueue
from crawlkit.storage import CrawlStorage, StorageConfig
from crawlkit.uris import BaseUriCollection

BASE = BaseUriCollection(["https://example.com/"])


@pytest.fixture
def storage(tmp_path):
    s = CrawlStorage(StorageConfig(directory=str(tmp_path / "store")))
    yield s
    s.close()


@pytest.fixture(params=["memory", "disk", "lazy"])
def queue(request, storage):
    if request.param == "memory":
        return InMemoryQueue()
    if request.param == "disk":
        return DiskQueue(storage)
    return LazyQueue(InMemoryQueue(), DiskQueue(storage))


def test_add_is_idempotent_on_normalized_url(queue):
    job_id = queue.create_job(BASE)
    assert queue.add(job_id, CrawlUri("https://example.com/a"))
    assert not queue.add(job_id, CrawlUri("HTTPS://EXAMPLE.COM:443/a#frag", level=3))
    assert queue.count_all(job_id) == 1
    assert queue.get(job_id, "https://example.com/a").level == 0


def test_next_unprocessed_is_fifo(queue):
    job_id = queue.create_job(BASE)
    for path in ("a", "b", "c"):
        queue.add(job_id, CrawlUri(f"https://example.com/{path}"))

    seen = []
    while True:
        crawl_uri = queue.next_unprocessed(job_id)
        if crawl_uri is None:
            break
        seen.append(crawl_uri.uri)
        queue.mark_processed(job_id, crawl_uri)

    assert seen == [
        "https://example.com/a",
        "https://example.com/b",
        "https://example.com/c",
    ]
    assert queue.count_pending(job_id) == 0
    assert all(u.processed for u in queue.all(job_id))


def test_uri_added_while_draining_is_picked_up(queue):
    job_id = queue.create_job(BASE)
    queue.add(job_id, CrawlUri("https://example.com/"))
    first = queue.next_unprocessed(job_id)
    queue.add(job_id, CrawlUri("https://example.com/late", level=1, found_on=first.uri))
    queue.mark_processed(job_id, first)

    late = queue.next_unprocessed(job_id)
    assert late is not None
    assert late.uri == "https://example.com/late"
    assert late.found_on == "https://example.com/"


def test_tags_are_persisted(queue):
    job_id = queue.create_job(BASE)
    queue.add(job_id, CrawlUri("https://example.com/a"))
    crawl_uri = queue.next_unprocessed(job_id)
    crawl_uri.add_tag("nofollow")
    # returned records are copies until written back
    assert not queue.get(job_id, crawl_uri.uri).has_tag("nofollow")

    queue.update_tags(job_id, crawl_uri)
    assert queue.get(job_id, crawl_uri.uri).has_tag("nofollow")

    crawl_uri.add_tag("noindex")
    queue.mark_processed(job_id, crawl_uri)
    stored = queue.get(job_id, crawl_uri.uri)
    assert stored.processed
    assert stored.tags == {"nofollow", "noindex"}


def test_invalid_and_unknown_job_ids(queue):
    with pytest.raises(InvalidJobIdError):
        queue.resume_job("not-a-uuid")
    with pytest.raises(UnknownJobError):
        queue.resume_job("6f1c1f5e-2b1a-4c55-8f6e-1c2d3e4f5a6b")
    assert not queue.is_job_id_valid("not-a-uuid")

    job_id = queue.create_job(BASE)
    assert queue.is_job_id_valid(job_id)
    assert queue.resume_job(job_id).base_uris == BASE


def test_delete_job(queue):
    job_id = queue.create_job(BASE)
    queue.add(job_id, CrawlUri("https://example.com/"))
    assert job_id in queue.jobs()
    queue.delete_job(job_id)
    assert job_id not in queue.jobs()
    with pytest.raises(UnknownJobError):
        queue.resume_job(job_id)


def test_disk_queue_survives_reopen(tmp_path):
    directory = str(tmp_path / "store")
    storage = CrawlStorage(StorageConfig(directory=directory))
    queue = DiskQueue(storage)
    job_id = queue.create_job(BASE)
    for path in ("", "a", "b"):
        queue.add(job_id, CrawlUri(f"https://example.com/{path}"))
    queue.mark_processed(job_id, queue.next_unprocessed(job_id))
    storage.close()

    reopened = CrawlStorage(StorageConfig(directory=directory))
    try:
        queue = DiskQueue(reopened)
        assert queue.resume_job(job_id).base_uris == BASE
        assert queue.count_all(job_id) == 3
        assert queue.count_pending(job_id) == 2
        assert queue.next_unprocessed(job_id).uri == "https://example.com/a"
    finally:
        reopened.close()


def test_lazy_queue_hydrates_from_secondary(storage):
    disk = DiskQueue(storage)
    job_id = disk.create_job(BASE)
    disk.add(job_id, CrawlUri("https://example.com/"))
    disk.add(job_id, CrawlUri("https://example.com/a", level=1, found_on="https://example.com/"))
    disk.mark_processed(job_id, disk.next_unprocessed(job_id))

    lazy = LazyQueue(InMemoryQueue(), disk)
    assert lazy.count_pending(job_id) == 1
    nxt = lazy.next_unprocessed(job_id)
    assert nxt.uri == "https://example.com/a"

    # writes go through to the durable layer
    lazy.mark_processed(job_id, nxt)
    lazy.add(job_id, CrawlUri("https://example.com/b", level=2))
    assert disk.count_pending(job_id) == 1
    assert disk.get(job_id, "https://example.com/a").processed
