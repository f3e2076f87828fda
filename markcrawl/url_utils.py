"""
Scope rules for discovered links.
A link is followed only when it lives strictly below the traversal's scope root.
"""

import re
from urllib.parse import urljoin, urlparse
from typing import Iterable, List, Optional

from markcrawl.core import setup_logger

logger = setup_logger("markcrawl.url_utils")


def _normalized_path(path: str) -> str:
    return path.rstrip("/")


def is_child_url(parent: str, child: str) -> bool:
    """
    True iff `child` (resolved against `parent`) shares the parent's scheme
    and host, carries no fragment, and its path strictly extends the
    parent's path on a segment boundary. Trailing slashes are ignored.
    """
    try:
        parent_url = urlparse(parent)
        child_url = urlparse(urljoin(parent, child))
    except ValueError:
        return False

    if child_url.scheme not in ("http", "https"):
        return False
    if child_url.scheme != parent_url.scheme:
        return False
    if child_url.netloc.lower() != parent_url.netloc.lower():
        return False
    if child_url.fragment:
        return False

    parent_path = _normalized_path(parent_url.path)
    child_path = _normalized_path(child_url.path)
    if child_path == parent_path:
        return False
    return child_path.startswith(parent_path + "/")


def _compile_patterns(patterns):
    compiled = []
    for pattern in patterns or ():
        compiled.append(pattern if isinstance(pattern, re.Pattern) else re.compile(pattern))
    return compiled


def select_child_links(links: Iterable[str], original_url: str, limit: int,
                       base: Optional[str] = None, ignore_patterns: Iterable[str] = ()) -> List[str]:
    """
    Keep in-scope links, de-duplicated, and stop scanning as soon as
    `limit` distinct links have been collected.

    Relative links resolve against `base` (the page they were found on,
    defaults to original_url); scope is always checked against original_url.
    Links matching any of `ignore_patterns` (regex, searched anywhere in the
    absolute URL) are skipped and do not count toward `limit`.
    """
    selected = []
    seen = set()
    if limit <= 0:
        return selected

    base = base or original_url
    ignored = _compile_patterns(ignore_patterns)

    for link in links:
        if not link:
            continue
        try:
            absolute = urljoin(base, link)
        except ValueError:
            logger.debug(f"select_child_links: skipping unparseable link {link!r}")
            continue
        key = absolute.rstrip("/")
        if key in seen:
            continue
        if not is_child_url(original_url, absolute):
            continue
        if any(p.search(absolute) for p in ignored):
            continue
        seen.add(key)
        selected.append(absolute)
        if len(selected) >= limit:
            break

    logger.debug(f"select_child_links: kept {len(selected)} of limit {limit} under {original_url}")
    return selected
