from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import sqlite3
from typing import Callable, Sequence

from gofi.codec import decode, record_to_mapping
from gofi.db import UNIQUE_KEY, Database
from gofi.errors import MergeError
from gofi.models import FileRecord
from gofi.util.time import now_iso

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

# The conflict target is the catalog's composite UNIQUE key, so only
# identity collisions are skipped; every other constraint still fails loudly.
INSERT_SQL = f"""
INSERT INTO files(
  name, path, size, isdir, machine, ip, external, external_name,
  filetype, filemime, hash, modified
) VALUES (
  :name, :path, :size, :isdir, :machine, :ip, :external, :external_name,
  :filetype, :filemime, :hash, :modified
)
ON CONFLICT({', '.join(UNIQUE_KEY)}) DO NOTHING
"""


@dataclass(slots=True)
class MergeStats:
    processed: int = 0
    inserted: int = 0
    skipped: int = 0

    def as_dict(self) -> dict[str, int]:
        return {"processed": self.processed, "inserted": self.inserted, "skipped": self.skipped}


def upsert_record(conn: sqlite3.Connection, record: FileRecord) -> bool:
    cur = conn.execute(INSERT_SQL, record_to_mapping(record))
    return cur.rowcount == 1


def merge_records(
    conn: sqlite3.Connection,
    records: Sequence[FileRecord],
    progress: ProgressCallback | None = None,
    progress_every: int = 1000,
) -> MergeStats:
    """Insert ``records`` in one transaction, skipping catalog duplicates.

    The write lock is taken up front so concurrent merges queue on the
    catalog instead of interleaving inside a batch. Any storage error rolls
    the whole batch back and is raised as :class:`MergeError`.
    """
    stats = MergeStats()
    total = len(records)
    try:
        if not conn.in_transaction:
            conn.execute("BEGIN IMMEDIATE")
        for record in records:
            if upsert_record(conn, record):
                stats.inserted += 1
            else:
                stats.skipped += 1
            stats.processed += 1
            if progress_every > 0 and stats.processed % progress_every == 0:
                log.debug("merged %d/%d records", stats.processed, total)
                if progress is not None:
                    progress(stats.processed, total)
    except sqlite3.Error as exc:
        conn.rollback()
        raise MergeError(f"merge aborted after {stats.processed} of {total} records: {exc}") from exc
    if progress is not None:
        progress(stats.processed, total)
    return stats


def record_snapshot(conn: sqlite3.Connection, name: str, stats: MergeStats) -> None:
    conn.execute(
        """
        INSERT INTO snapshots(name, received_at, record_count, inserted, skipped)
        VALUES (?, ?, ?, ?, ?)
        """,
        (name, now_iso(), stats.processed, stats.inserted, stats.skipped),
    )


def ingest_artifact(
    db: Database,
    artifact: Path,
    name: str | None = None,
    progress: ProgressCallback | None = None,
    progress_every: int = 1000,
    delete_on_success: bool = True,
) -> MergeStats:
    """Decode a staged snapshot and merge it into the catalog.

    The artifact is deleted only after a successful commit; on
    ``DecodeError`` or ``MergeError`` it is left in place for inspection.
    """
    records = decode(artifact)
    label = name or artifact.name
    try:
        with db.connect() as conn:
            stats = merge_records(conn, records, progress=progress, progress_every=progress_every)
            record_snapshot(conn, label, stats)
    except sqlite3.Error as exc:
        raise MergeError(f"could not commit snapshot {label}: {exc}") from exc

    log.info(
        "merged snapshot %s: %d records, %d new, %d already known",
        label,
        stats.processed,
        stats.inserted,
        stats.skipped,
    )
    if delete_on_success:
        artifact.unlink(missing_ok=True)
    return stats
