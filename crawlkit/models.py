# Defines the data structures shared by the queue, the engine and subscribers.

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Set

from crawlkit.uris import BaseUriCollection


class Decision(str, enum.Enum):
    """A subscriber's vote on whether the engine should act on a URI."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    ABSTAIN = "abstain"

    @staticmethod
    def combine(decisions: Iterable["Decision"]) -> "Decision":
        """
        OR-of-POSITIVE: one POSITIVE wins, NEGATIVE never vetoes it.
        Returns NEGATIVE when nobody voted POSITIVE.
        """
        for decision in decisions:
            if decision is Decision.POSITIVE:
                return Decision.POSITIVE
        return Decision.NEGATIVE


class CrawlState(str, enum.Enum):
    DISCOVERED = "discovered"
    EVALUATING = "evaluating"
    FETCHING = "fetching"
    STREAMING = "streaming"
    DONE = "done"
    SKIPPED = "skipped"


@dataclass
class CrawlUri:
    """
    One discovered URI.

    `uri` is always the normalized absolute URL. `found_on` is the normalized
    URL of the page this one was discovered on (None for seeds); resolve it
    through the queue rather than keeping an object reference.
    """

    uri: str
    level: int = 0
    found_on: Optional[str] = None
    processed: bool = False
    tags: Set[str] = field(default_factory=set)

    def add_tag(self, tag: str) -> None:
        self.tags.add(tag)

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    def create_log_message(self, message: str) -> str:
        return "[{uri}] (Level: {level}, Processed: {processed}, Found on: {found_on}, Tags: {tags}) {message}".format(
            uri=self.uri,
            level=self.level,
            processed="yes" if self.processed else "no",
            found_on=self.found_on or "root",
            tags=", ".join(sorted(self.tags)) or "none",
            message=message,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uri": self.uri,
            "level": self.level,
            "found_on": self.found_on,
            "processed": self.processed,
            "tags": sorted(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrawlUri":
        return cls(
            uri=data["uri"],
            level=int(data.get("level", 0)),
            found_on=data.get("found_on"),
            processed=bool(data.get("processed", False)),
            tags=set(data.get("tags", ())),
        )


@dataclass(frozen=True)
class Job:
    """A resumable crawl: its opaque ID and the base URIs it was created for."""

    job_id: str
    base_uris: BaseUriCollection


@dataclass
class SubscriberResult:
    """Outcome of one subscriber for one run."""

    ok: bool
    summary: str
    info: Dict[str, Any] = field(default_factory=dict)

    def add_info(self, key: str, value: Any) -> None:
        self.info[key] = value

    def get_info(self, key: str, default: Any = None) -> Any:
        return self.info.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "summary": self.summary, "info": dict(self.info)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubscriberResult":
        return cls(
            ok=bool(data["ok"]),
            summary=str(data.get("summary", "")),
            info=dict(data.get("info", {})),
        )


@dataclass
class Response:
    """
    Response as seen by subscribers.

    Headers are stored with lowercased keys. `content` is empty while chunks
    arrive and holds the whole body (up to the engine's max_body_size) once
    the last chunk is delivered.
    """

    url: str
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "").split(";", 1)[0].strip().lower()

    @property
    def charset(self) -> str:
        for param in self.headers.get("content-type", "").split(";")[1:]:
            key, _, value = param.partition("=")
            if key.strip().lower() == "charset" and value.strip():
                return value.strip().strip('"').lower()
        return "utf-8"

    @property
    def text(self) -> str:
        try:
            return self.content.decode(self.charset, errors="replace")
        except LookupError:
            return self.content.decode("utf-8", errors="replace")

    @property
    def is_http_error(self) -> bool:
        return self.status_code >= 400


@dataclass(frozen=True)
class Chunk:
    """A piece of a streamed body. The first chunk carries no data."""

    data: bytes = b""
    is_first: bool = False
    is_last: bool = False


@dataclass
class CrawlResult:
    """The final result of one engine run."""

    job_id: str
    results: Dict[str, SubscriberResult] = field(default_factory=dict)
    finished: bool = True
    request_count: int = 0

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results.values())
