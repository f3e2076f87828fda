"""
At-least-once message queues carrying crawl-frontier and callback tasks.

A received message is leased: it stays invisible until it is acknowledged,
negatively acknowledged, or its visibility timeout lapses. Unacknowledged
messages are redelivered; after max_retries deliveries a message is moved to
the FAILED state and never delivered again.
"""

import json
import threading
import time
from abc import ABC, abstractmethod
from enum import Enum
from itertools import count
from typing import Any, Dict, List

from markcrawl.core import QUEUE_MAX_RETRIES, QUEUE_VISIBILITY_TIMEOUT, setup_logger
from markcrawl.storage.db import get_connection

logger = setup_logger("markcrawl.queue")


class MessageState(Enum):
    PENDING = "PENDING"
    IN_FLIGHT = "IN_FLIGHT"
    FAILED = "FAILED"


class Message:
    """
    One delivery of a queued body. ack()/nack() settle this delivery only.
    """

    def __init__(self, message_id, body, attempts, queue):
        self.id = message_id
        self.body = body
        self.attempts = attempts
        self._queue = queue
        self.settled = False

    def ack(self):
        if self.settled:
            return
        self._queue.ack(self.id)
        self.settled = True

    def nack(self):
        if self.settled:
            return
        self._queue.nack(self.id)
        self.settled = True

    def __repr__(self):
        return f"Message(id={self.id!r}, attempts={self.attempts}, body={self.body!r})"


class MessageQueue(ABC):
    """
    Abstract interface for a named at-least-once queue.
    """

    def __init__(self, name, max_retries=QUEUE_MAX_RETRIES, visibility_timeout=QUEUE_VISIBILITY_TIMEOUT, clock=time.time):
        self.name = name
        self.max_retries = max_retries
        self.visibility_timeout = visibility_timeout
        self._clock = clock

    @abstractmethod
    def send(self, body: Dict[str, Any]) -> None:
        """Append a JSON-serializable body to the queue."""
        pass

    @abstractmethod
    def receive(self, max_messages: int = 10) -> List[Message]:
        """Lease up to max_messages visible messages, oldest first."""
        pass

    @abstractmethod
    def ack(self, message_id) -> None:
        """Delete a delivered message for good."""
        pass

    @abstractmethod
    def nack(self, message_id) -> None:
        """Release a delivered message for immediate redelivery."""
        pass

    @abstractmethod
    def dead_letters(self) -> List[Dict[str, Any]]:
        """Bodies of messages that exhausted max_retries."""
        pass


class MemoryQueue(MessageQueue):
    """
    In-process queue. Bodies are stored JSON-encoded so consumers never share
    mutable state with producers.
    """

    def __init__(self, name, **kwargs):
        super().__init__(name, **kwargs)
        self._lock = threading.Lock()
        self._ids = count(1)
        self._records = {}

    def send(self, body):
        encoded = json.dumps(body)
        with self._lock:
            message_id = next(self._ids)
            self._records[message_id] = {
                "body": encoded,
                "state": MessageState.PENDING,
                "attempts": 0,
                "visible_at": self._clock(),
            }
        logger.debug(f"[QUEUE] {self.name}: sent message {message_id}")

    def receive(self, max_messages=10):
        now = self._clock()
        batch = []
        with self._lock:
            for message_id, record in self._records.items():
                if len(batch) >= max_messages:
                    break
                if record["state"] == MessageState.FAILED or record["visible_at"] > now:
                    continue
                if record["attempts"] >= self.max_retries:
                    record["state"] = MessageState.FAILED
                    logger.warning(f"[QUEUE] {self.name}: message {message_id} exhausted {self.max_retries} deliveries")
                    continue
                record["attempts"] += 1
                record["state"] = MessageState.IN_FLIGHT
                record["visible_at"] = now + self.visibility_timeout
                batch.append(Message(message_id, json.loads(record["body"]), record["attempts"], self))
        return batch

    def ack(self, message_id):
        with self._lock:
            self._records.pop(message_id, None)

    def nack(self, message_id):
        with self._lock:
            record = self._records.get(message_id)
            if record and record["state"] == MessageState.IN_FLIGHT:
                record["state"] = MessageState.PENDING
                record["visible_at"] = self._clock()

    def dead_letters(self):
        with self._lock:
            return [json.loads(r["body"]) for r in self._records.values() if r["state"] == MessageState.FAILED]

    def __len__(self):
        with self._lock:
            return sum(1 for r in self._records.values() if r["state"] != MessageState.FAILED)


class SQLiteQueue(MessageQueue):
    """
    SQLite implementation of MessageQueue. Several named queues may share one
    database file, and several worker processes may consume the same queue:
    leases are taken inside an IMMEDIATE transaction.
    """

    def __init__(self, db_path, name, **kwargs):
        super().__init__(name, **kwargs)
        self._lock = threading.Lock()
        self._conn = get_connection(db_path)
        self.initialize()

    def initialize(self):
        with self._lock:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS queue_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    queue TEXT NOT NULL,
                    body TEXT NOT NULL,
                    state TEXT NOT NULL,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    visible_at REAL NOT NULL,
                    created_at REAL NOT NULL
                );
            """)
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_queue_messages_visible
                ON queue_messages (queue, state, visible_at);
            """)
            self._conn.commit()

    def send(self, body):
        now = self._clock()
        with self._lock:
            self._conn.execute("""
                INSERT INTO queue_messages (queue, body, state, attempts, visible_at, created_at)
                VALUES (?, ?, ?, 0, ?, ?);
            """, (self.name, json.dumps(body), MessageState.PENDING.value, now, now))
            self._conn.commit()

    def receive(self, max_messages=10):
        now = self._clock()
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE;")
                exhausted = self._conn.execute("""
                    UPDATE queue_messages SET state = ?
                    WHERE queue = ? AND state != ? AND visible_at <= ? AND attempts >= ?;
                """, (MessageState.FAILED.value, self.name, MessageState.FAILED.value, now, self.max_retries))
                if exhausted.rowcount:
                    logger.warning(f"[QUEUE] {self.name}: {exhausted.rowcount} message(s) exhausted {self.max_retries} deliveries")

                rows = self._conn.execute("""
                    SELECT id, body, attempts FROM queue_messages
                    WHERE queue = ? AND state != ? AND visible_at <= ?
                    ORDER BY id ASC
                    LIMIT ?;
                """, (self.name, MessageState.FAILED.value, now, max_messages)).fetchall()

                for message_id, _, _ in rows:
                    self._conn.execute("""
                        UPDATE queue_messages
                        SET state = ?, attempts = attempts + 1, visible_at = ?
                        WHERE id = ?;
                    """, (MessageState.IN_FLIGHT.value, now + self.visibility_timeout, message_id))
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

        batch = []
        for message_id, body, attempts in rows:
            try:
                decoded = json.loads(body)
            except ValueError:
                logger.error(f"[QUEUE] {self.name}: message {message_id} has an undecodable body")
                decoded = None
            batch.append(Message(message_id, decoded, attempts + 1, self))
        return batch

    def ack(self, message_id):
        with self._lock:
            self._conn.execute("DELETE FROM queue_messages WHERE id = ?;", (message_id,))
            self._conn.commit()

    def nack(self, message_id):
        with self._lock:
            self._conn.execute("""
                UPDATE queue_messages SET state = ?, visible_at = ?
                WHERE id = ? AND state = ?;
            """, (MessageState.PENDING.value, self._clock(), message_id, MessageState.IN_FLIGHT.value))
            self._conn.commit()

    def dead_letters(self):
        with self._lock:
            rows = self._conn.execute(
                "SELECT body FROM queue_messages WHERE queue = ? AND state = ? ORDER BY id;",
                (self.name, MessageState.FAILED.value),
            ).fetchall()
        return [json.loads(row[0]) for row in rows]

    def __len__(self):
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM queue_messages WHERE queue = ? AND state != ?;",
                (self.name, MessageState.FAILED.value),
            ).fetchone()
        return row[0]

    def close(self):
        self._conn.close()
