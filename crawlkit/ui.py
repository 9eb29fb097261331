# crawlkit/ui.py
# Presentation-only utilities for CLI output.
from __future__ import annotations

from typing import IO, Any, Dict, Iterable

from crawlkit.models import CrawlResult


def _writeln(text: str = "", *, file: IO[str]) -> None:
    file.write(text + "\n")


def render_crawl_header(uris: Iterable[str], *, file: IO[str]) -> None:
    _writeln(f"Crawling: {', '.join(uris) or '(configured base URIs)'}...", file=file)


def render_resume_header(job_id: str, *, file: IO[str]) -> None:
    _writeln(f"Resuming job: {job_id}...", file=file)


def render_results_section(result: CrawlResult, *, file: IO[str]) -> None:
    _writeln("\n--- Results ---", file=file)
    for name, subscriber_result in result.results.items():
        status = "OK" if subscriber_result.ok else "FAIL"
        _writeln(f"- [{status:<4}] {name}: {subscriber_result.summary}", file=file)


def render_job_line(result: CrawlResult, *, file: IO[str]) -> None:
    state = "finished" if result.finished else "interrupted"
    _writeln(
        f"\nJob {result.job_id} {state} after {result.request_count} request(s).",
        file=file,
    )
    if not result.finished:
        _writeln(f"Resume with: crawlkit resume {result.job_id}", file=file)


def render_jobs_section(jobs: Iterable[Dict[str, Any]], *, file: IO[str]) -> None:
    jobs = list(jobs)
    if not jobs:
        _writeln("No jobs.", file=file)
        return
    for job in jobs:
        _writeln(
            f"{job['job_id']}  {job['total'] - job['pending']}/{job['total']} processed  "
            f"{', '.join(job['base_uris'])}",
            file=file,
        )


def render_subscribers_section(names: Iterable[str], *, file: IO[str]) -> None:
    for name in names:
        _writeln(f"- {name}", file=file)
