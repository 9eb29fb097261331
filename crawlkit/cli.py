# crawlkit/cli.py
# Defines the command-line interface using argparse.

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import IO, Any, Sequence

from crawlkit import __version__
from crawlkit.api import (
    DEFAULT_SUBSCRIBERS,
    create_factory,
    crawl_site,
    delete_job,
    list_jobs,
    resume_crawl,
)
from crawlkit.config import load_config
from crawlkit.exceptions import CrawlConfigError, UnknownJobError
from crawlkit.models import CrawlResult
from crawlkit.storage import CrawlStorage, StorageConfig
from crawlkit.ui import (
    render_crawl_header,
    render_job_line,
    render_jobs_section,
    render_results_section,
    render_resume_header,
    render_subscribers_section,
)

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PROBLEMS = 1
EXIT_SETUP_ERROR = 2


def _configure_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _json_default(o: Any) -> Any:
    # Minimal, safe encoder for dataclasses and sets.
    if is_dataclass(o):
        return asdict(o)  # type: ignore[arg-type]
    if isinstance(o, (set, frozenset)):
        return sorted(o)
    return str(o)


def _human_bytes(n: int) -> str:
    # Compact human-readable bytes
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    v = float(n)
    while v >= 1024 and i < len(units) - 1:
        v /= 1024.0
        i += 1
    # max 2 decimals, strip trailing zeros
    s = f"{v:.2f}".rstrip("0").rstrip(".")
    return f"{s} {units[i]}"


def _write_json(result: CrawlResult, path: str) -> None:
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "job_id": result.job_id,
        "ok": result.ok,
        "finished": result.finished,
        "request_count": result.request_count,
        "results": {name: r.to_dict() for name, r in result.results.items()},
    }
    with out_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, default=_json_default, indent=2)


def _add_run_args(parser: argparse.ArgumentParser) -> None:
    """Add arguments common to both 'crawl' and 'resume' commands."""
    parser.add_argument(
        "-s",
        "--subscriber",
        dest="subscribers",
        metavar="NAME",
        action="append",
        help=f"Subscriber to run, repeatable. (Default: {', '.join(DEFAULT_SUBSCRIBERS)})",
    )
    parser.add_argument(
        "--max-requests",
        type=int,
        default=None,
        help="Pause the job after this many requests; resume it later.",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Do not follow links deeper than this many hops from a base URI.",
    )
    parser.add_argument(
        "--json",
        dest="json_output",
        metavar="FILEPATH",
        help="Also write the results as JSON to this file.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="A resumable site crawler with a broken link checker.",
        prog="crawlkit",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable verbose logging output to stderr (-vv for debug).",
    )
    parser.add_argument(
        "--storage-dir",
        metavar="PATH",
        default=None,
        help="Directory crawl jobs are stored in ('os-default' for the OS cache dir).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- crawl ---
    crawl_parser = subparsers.add_parser("crawl", help="Start a new crawl job.")
    crawl_parser.add_argument(
        "urls",
        nargs="*",
        metavar="URL",
        help="Base URIs to crawl (added to the configured ones).",
    )
    _add_run_args(crawl_parser)

    # --- resume ---
    resume_parser = subparsers.add_parser("resume", help="Resume an interrupted job.")
    resume_parser.add_argument("job_id", help="The job ID printed by 'crawl'.")
    _add_run_args(resume_parser)

    # --- subscribers ---
    subparsers.add_parser("subscribers", help="List the selectable subscribers.")

    # --- jobs ---
    jobs_parser = subparsers.add_parser("jobs", help="Manage stored crawl jobs.")
    jobs_sub = jobs_parser.add_subparsers(dest="jobs_cmd", required=True)
    jobs_sub.add_parser("list", help="List stored jobs and their progress.")
    jobs_delete = jobs_sub.add_parser("delete", help="Delete one job.")
    jobs_delete.add_argument("job_id")
    jobs_sub.add_parser("clear", help="Delete every job and result.")
    jobs_sub.add_parser("stats", help="Show total items and size on disk.")

    return parser


def _storage(storage_dir: str | None) -> CrawlStorage:
    directory = storage_dir or load_config()["storage"]["directory"]
    return CrawlStorage(StorageConfig(directory=directory))


def _jobs_command(args: argparse.Namespace, stdout: IO[str]) -> int:
    if args.jobs_cmd == "list":
        render_jobs_section(list_jobs(storage_dir=args.storage_dir), file=stdout)
        return EXIT_OK

    if args.jobs_cmd == "delete":
        try:
            delete_job(args.job_id, storage_dir=args.storage_dir)
        except UnknownJobError as e:
            print(str(e), file=stdout)
            return EXIT_SETUP_ERROR
        print(f"Deleted job {args.job_id}", file=stdout)
        return EXIT_OK

    storage = _storage(args.storage_dir)
    try:
        if args.jobs_cmd == "clear":
            storage.clear_all()
            print(f"Storage cleared at: {storage.directory}", file=stdout)
            return EXIT_OK

        st = storage.stats()
        bytes_on_disk = int(st.get("bytes", 0))
        out = {
            "directory": st.get("directory", ""),
            "items": int(st.get("items", 0)),
            "bytes": bytes_on_disk,
            "human_bytes": _human_bytes(bytes_on_disk),
        }
        print(json.dumps(out, indent=2), file=stdout)
        return EXIT_OK
    finally:
        storage.close()


async def async_main(
    argv: Sequence[str] | None = None, stdout: IO[str] | None = None
) -> int:
    """Async entry point for the command-line interface."""
    stdout = stdout or sys.stdout

    args = _build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    if args.command == "subscribers":
        render_subscribers_section(create_factory().get_subscriber_names(), file=stdout)
        return EXIT_OK

    if args.command == "jobs":
        return _jobs_command(args, stdout)

    run_kwargs = {
        "subscribers": args.subscribers or DEFAULT_SUBSCRIBERS,
        "max_requests": args.max_requests,
        "max_depth": args.max_depth,
        "storage_dir": args.storage_dir,
    }

    try:
        if args.command == "crawl":
            render_crawl_header(args.urls, file=stdout)
            result = await crawl_site(args.urls, **run_kwargs)
        else:
            render_resume_header(args.job_id, file=stdout)
            result = await resume_crawl(args.job_id, **run_kwargs)
    except (CrawlConfigError, UnknownJobError, ValueError) as e:
        log.error("%s", e)
        print(f"Error: {e}", file=stdout)
        return EXIT_SETUP_ERROR

    render_results_section(result, file=stdout)
    render_job_line(result, file=stdout)

    if args.json_output:
        _write_json(result, args.json_output)
        print(f"Results written to {args.json_output}", file=stdout)

    return EXIT_OK if result.ok else EXIT_PROBLEMS


def main(argv: Sequence[str] | None = None) -> int:
    """Synchronous wrapper for the CLI entry point."""
    return asyncio.run(async_main(argv))


if __name__ == "__main__":
    sys.exit(main())
