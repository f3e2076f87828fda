"""
Request bodies accepted by the HTTP surface.
"""

import re
from typing import List
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from markcrawl.core import MAX_CRAWL_DEPTH, MAX_CRAWL_LIMIT, DEFAULT_CRAWL_LIMIT


def absolute_http_url(value: str) -> str:
    value = value.strip()
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("must be an absolute http(s) URL")
    return value


class ScrapeRequest(BaseModel):
    url: str
    detailed: bool = False
    cache_enabled: bool = True

    @field_validator("url")
    @classmethod
    def check_url(cls, value):
        return absolute_http_url(value)


class ScreenshotRequest(BaseModel):
    url: str
    cache_enabled: bool = True

    @field_validator("url")
    @classmethod
    def check_url(cls, value):
        return absolute_http_url(value)


class CrawlRequest(BaseModel):
    url: str
    callback: str
    depth: int = Field(default=1, ge=1, le=MAX_CRAWL_DEPTH)
    limit: int = Field(default=DEFAULT_CRAWL_LIMIT, ge=1, le=MAX_CRAWL_LIMIT)
    detailed: bool = False
    ignore_pattern: List[str] = Field(default_factory=list)

    @field_validator("url", "callback")
    @classmethod
    def check_urls(cls, value):
        return absolute_http_url(value)

    @field_validator("ignore_pattern")
    @classmethod
    def check_patterns(cls, value):
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid regular expression {pattern!r}: {e}")
        return value
