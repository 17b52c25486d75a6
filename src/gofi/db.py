from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import sqlite3
from typing import Iterator

SETUP_SQL = Path(__file__).resolve().parent / "setup.sql"

# Seconds a writer waits on another connection's lock before failing.
BUSY_TIMEOUT = 30.0

UNIQUE_KEY = ("path", "machine", "ip", "external", "external_name", "hash")


class Database:
    """The shared catalog. Each ``connect()`` block is one transaction."""

    def __init__(self, path: Path):
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path, timeout=BUSY_TIMEOUT)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        sql = SETUP_SQL.read_text()
        with self.connect() as conn:
            conn.executescript(sql)

    def count(self) -> int:
        with self.connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM files").fetchone()
        return int(row["n"])
