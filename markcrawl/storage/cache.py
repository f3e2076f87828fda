"""
Content cache: a TTL key-value store used cache-aside by the crawl actor and
the callback worker. Keys are "<kind>:<absoluteUrl>"; entries are immutable
until they expire or a repeat scrape overwrites them.
"""

import threading
import time
from abc import ABC, abstractmethod
from typing import Optional, Union

from markcrawl.storage.db import get_connection

SCRAPE = "scrape"
SCREENSHOT = "screenshot"

Artifact = Union[str, bytes]


def cache_key(kind: str, url: str) -> str:
    return f"{kind}:{url}"


class ContentCache(ABC):
    """
    Abstract interface for the content cache.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Artifact]:
        """Return the fresh artifact stored under key, or None."""
        pass

    @abstractmethod
    def put(self, key: str, artifact: Artifact, ttl: int) -> None:
        """Store artifact under key for ttl seconds, overwriting any previous entry."""
        pass


class MemoryCache(ContentCache):
    """
    FLOW: Stores (artifact, expires_at) per key in a dictionary ->
    Drops entries lazily on read once expired.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._entries = {}
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            entry = self._entries.get(key)
            if not entry:
                return None
            artifact, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return artifact

    def put(self, key, artifact, ttl):
        with self._lock:
            self._entries[key] = (artifact, self._clock() + ttl)

    def __len__(self):
        return len(self._entries)


class SQLiteCache(ContentCache):
    """
    SQLite implementation of ContentCache, shared across worker processes.
    Text artifacts are stored as TEXT, binary ones (screenshots) as BLOB.
    """

    def __init__(self, db_path, clock=time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._conn = get_connection(db_path)
        self.initialize()

    def initialize(self):
        with self._lock:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    value,
                    expires_at REAL NOT NULL
                );
            """)
            self._conn.commit()

    def get(self, key):
        with self._lock:
            cursor = self._conn.execute(
                "SELECT value, expires_at FROM cache_entries WHERE key = ?;", (key,)
            )
            row = cursor.fetchone()
            if row is None:
                return None
            value, expires_at = row
            if self._clock() >= expires_at:
                self._conn.execute("DELETE FROM cache_entries WHERE key = ?;", (key,))
                self._conn.commit()
                return None
            return value

    def put(self, key, artifact, ttl):
        value = artifact if isinstance(artifact, str) else memoryview(artifact)
        with self._lock:
            self._conn.execute("""
                INSERT INTO cache_entries (key, value, expires_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    expires_at=excluded.expires_at;
            """, (key, value, self._clock() + ttl))
            self._conn.commit()

    def purge_expired(self):
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM cache_entries WHERE expires_at <= ?;", (self._clock(),)
            )
            self._conn.commit()
            return cursor.rowcount

    def close(self):
        self._conn.close()
