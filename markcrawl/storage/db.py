"""
SQLite connection helpers shared by the queue and cache stores.
"""

import sqlite3
from pathlib import Path


def get_connection(db_path):
    """
    Create and return a SQLite connection. The parent directory is created
    on demand so a fresh checkout runs without setup.
    """
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), timeout=30, check_same_thread=False)
    conn.execute("PRAGMA journal_mode = WAL;")
    return conn
