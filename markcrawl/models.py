import re
from dataclasses import dataclass, field, replace
from typing import Dict, List, Any, Tuple


def _checked_patterns(patterns) -> Tuple[str, ...]:
    for pattern in patterns:
        try:
            re.compile(pattern)
        except re.error as e:
            raise ValueError(f"Invalid ignore pattern {pattern!r}: {e}") from e
    return tuple(patterns)


@dataclass(frozen=True)
class CrawlTask:
    """
    Unit of frontier work carried on the crawler queue.
    INVARIANT: current_depth grows by exactly one per re-enqueue (see child()).
    """
    current_url: str
    original_url: str
    current_depth: int
    max_depth: int
    limit: int
    callback: str
    detailed: bool = False
    ignore_pattern: Tuple[str, ...] = ()

    @property
    def is_beyond_depth(self) -> bool:
        # Depths 0..max_depth inclusive are processed
        return self.current_depth > self.max_depth

    def child(self, url: str) -> "CrawlTask":
        return replace(self, current_url=url, current_depth=self.current_depth + 1)

    def to_message(self) -> Dict[str, Any]:
        return {
            "currentUrl": self.current_url,
            "originalUrl": self.original_url,
            "currentDepth": self.current_depth,
            "maxDepth": self.max_depth,
            "limit": self.limit,
            "callback": self.callback,
            "detailed": self.detailed,
            "ignorePattern": list(self.ignore_pattern),
        }

    @classmethod
    def from_message(cls, body: Dict[str, Any]) -> "CrawlTask":
        return cls(
            current_url=body["currentUrl"],
            original_url=body["originalUrl"],
            current_depth=int(body["currentDepth"]),
            max_depth=int(body["maxDepth"]),
            limit=int(body["limit"]),
            callback=body["callback"],
            detailed=bool(body.get("detailed", False)),
            ignore_pattern=_checked_patterns(body.get("ignorePattern") or ()),
        )


@dataclass(frozen=True)
class CallbackTask:
    """
    Result-delivery unit. Points at the scraped page; the artifact itself
    is read back from the content cache at delivery time.
    """
    callback: str
    url: str

    def to_message(self) -> Dict[str, Any]:
        return {"callback": self.callback, "url": self.url}

    @classmethod
    def from_message(cls, body: Dict[str, Any]) -> "CallbackTask":
        return cls(callback=body["callback"], url=body["url"])


@dataclass(frozen=True)
class RenderedPage:
    """
    Output of one browser render. Transient: passed to link selection and
    extraction, never persisted.
    """
    url: str
    final_url: str
    html: str
    links: List[str] = field(default_factory=list)


@dataclass
class CrawlOutcome:
    url: str
    skipped: bool = False
    cache_hit: bool = False
    children: List[str] = field(default_factory=list)
