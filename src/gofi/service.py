from __future__ import annotations

import logging
from pathlib import Path
import socket
import sqlite3
from typing import Any, Mapping, Sequence

from gofi.config import AppConfig
from gofi.db import Database
from gofi.errors import DecodeError, MergeError, TransferError
from gofi.merge import MergeStats, ProgressCallback, ingest_artifact, merge_records, record_snapshot, upsert_record
from gofi.models import FileRecord
from gofi.output_models import CatalogViewOutput, FacetsOutput, FileRowOutput, SnapshotOutput, StatusOutput
from gofi.query import CatalogQuery, CatalogView, run_query
from gofi.transfer import receive_snapshot

log = logging.getLogger(__name__)


def _view_to_dict(view: CatalogView) -> dict[str, Any]:
    return CatalogViewOutput(
        rows=[FileRowOutput(**row) for row in view.rows],
        total=view.total,
        limit=view.query.limit,
        order_by=view.query.order_by,
        order=view.query.order,
        filters=view.description,
        facets=FacetsOutput(
            filetypes=view.facets.filetypes,
            machines=view.facets.machines,
            mimes=view.facets.mimes,
        ),
    ).model_dump()


class GofiService:
    def __init__(self, config: AppConfig):
        self.config = config
        self.db = Database(config.db_path)
        self.db.initialize()
        self.config.staging_dir.mkdir(parents=True, exist_ok=True)

    def ingest(
        self,
        artifact: Path,
        name: str | None = None,
        delete: bool = True,
        progress: ProgressCallback | None = None,
    ) -> dict[str, int]:
        stats = ingest_artifact(
            self.db,
            artifact,
            name=name,
            progress=progress,
            progress_every=self.config.merge.progress_every,
            delete_on_success=delete,
        )
        return stats.as_dict()

    def merge(self, records: Sequence[FileRecord], name: str = "direct") -> dict[str, int]:
        try:
            with self.db.connect() as conn:
                stats = merge_records(conn, records, progress_every=self.config.merge.progress_every)
                record_snapshot(conn, name, stats)
        except sqlite3.Error as exc:
            raise MergeError(f"could not commit {name}: {exc}") from exc
        return stats.as_dict()

    def push_record(self, record: FileRecord) -> bool:
        with self.db.connect() as conn:
            return upsert_record(conn, record)

    def accept_snapshot(self, sock: socket.socket) -> MergeStats | None:
        """Receive and merge the single snapshot carried by ``sock``.

        Failures are logged and swallowed here: the sender has no
        acknowledgement channel and other connections must keep going.
        """
        cfg = self.config.transfer
        try:
            received = receive_snapshot(
                sock,
                self.config.staging_dir,
                chunk_size=cfg.chunk_size,
                timeout=cfg.read_timeout,
            )
        except TransferError as exc:
            log.warning("transfer failed: %s", exc)
            return None

        log.info("received snapshot %s (%d bytes)", received.name, received.size)
        try:
            result = ingest_artifact(
                self.db,
                received.path,
                name=received.name,
                progress_every=self.config.merge.progress_every,
            )
        except DecodeError as exc:
            log.error("cannot decode snapshot %s, kept at %s: %s", received.name, received.path, exc)
            return None
        except MergeError as exc:
            log.error("merge of snapshot %s failed, kept at %s: %s", received.name, received.path, exc)
            return None
        return result

    def view(self, params: Mapping[str, Any]) -> CatalogView:
        query = CatalogQuery.from_params(params)
        try:
            with self.db.connect() as conn:
                return run_query(conn, query)
        except sqlite3.Error as exc:
            log.error("catalog query failed (%s): %s", query.describe(), exc)
            return CatalogView(query=query)

    def query(self, params: Mapping[str, Any]) -> dict[str, Any]:
        return _view_to_dict(self.view(params))

    def status(self) -> dict[str, Any]:
        with self.db.connect() as conn:
            files = conn.execute("SELECT COUNT(*) AS n FROM files").fetchone()
            machines = conn.execute("SELECT COUNT(DISTINCT machine) AS n FROM files").fetchone()
            recent = conn.execute(
                """
                SELECT name, received_at, record_count, inserted, skipped
                FROM snapshots
                ORDER BY id DESC
                LIMIT 10
                """
            ).fetchall()
        staged = sum(1 for p in self.config.staging_dir.iterdir() if p.is_file())
        return StatusOutput(
            db_path=str(self.config.db_path),
            staging_dir=str(self.config.staging_dir),
            files=int(files["n"]),
            machines=int(machines["n"]),
            staged=staged,
            snapshots=[SnapshotOutput(**dict(r)) for r in recent],
        ).model_dump()
