from __future__ import annotations

import json
import logging
from pathlib import Path
import sqlite3
from typing import Any, Iterable, Mapping

from gofi.errors import DecodeError
from gofi.models import FileRecord
from gofi.util.time import iso_from_timestamp

log = logging.getLogger(__name__)

SQLITE_MAGIC = b"SQLite format 3\x00"
INVENTORY_TABLE = "files"

# Snapshot field name -> FileRecord attribute. Several client generations
# wrote different spellings of the same field.
FIELD_ALIASES: dict[str, str] = {
    "name": "name",
    "path": "path",
    "size": "size",
    "isdir": "is_dir",
    "is_dir": "is_dir",
    "isDirectory": "is_dir",
    "machine": "machine",
    "ip": "ip",
    "external": "external",
    "onExternalSource": "external",
    "external_name": "external_name",
    "externalName": "external_name",
    "filetype": "filetype",
    "fileType": "filetype",
    "filemime": "filemime",
    "fileMime": "filemime",
    "hash": "hash",
    "contentHash": "hash",
    "modified": "modified",
    "modifiedAt": "modified",
}

REQUIRED_FIELDS = ("name", "path", "machine", "ip")

# Largest value a SQLite INTEGER column can hold.
MAX_SIZE = 2**63 - 1

SNAPSHOT_SQL = """
CREATE TABLE files (
  id INTEGER NOT NULL PRIMARY KEY,
  name TEXT NOT NULL,
  path TEXT NOT NULL,
  size INTEGER NOT NULL,
  isdir INTEGER NOT NULL,
  machine TEXT NOT NULL,
  ip TEXT NOT NULL,
  external INTEGER NOT NULL DEFAULT 0,
  external_name TEXT NOT NULL DEFAULT '',
  filetype TEXT NOT NULL DEFAULT '',
  filemime TEXT NOT NULL DEFAULT '',
  hash TEXT NOT NULL DEFAULT '',
  modified TEXT NOT NULL DEFAULT ''
);
"""


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "t"}
    return bool(value)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _as_modified(value: Any) -> str:
    if value is None or value == "":
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return iso_from_timestamp(float(value))
        except (OverflowError, ValueError, OSError) as exc:
            raise DecodeError(f"modification time out of range: {value!r}") from exc
    return str(value)


def _as_size(value: Any, path: Any) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise DecodeError(f"invalid size for {path!r}: {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise DecodeError(f"invalid size for {path!r}: {value!r}")
        value = int(value)
    try:
        size = int(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise DecodeError(f"invalid size for {path!r}: {value!r}") from exc
    if size < 0:
        raise DecodeError(f"negative size for {path!r}: {size}")
    if size > MAX_SIZE:
        raise DecodeError(f"size too large for {path!r}: {size}")
    return size


def record_from_mapping(data: Mapping[str, Any]) -> FileRecord:
    """Build a record from one snapshot row or JSON object.

    Unknown keys are ignored and absent optional keys fall back to their
    zero value, so snapshots from older and newer clients both decode.
    """
    fields: dict[str, Any] = {}
    for key, value in data.items():
        attr = FIELD_ALIASES.get(key)
        if attr is not None and attr not in fields:
            fields[attr] = value

    missing = [f for f in REQUIRED_FIELDS if not _as_text(fields.get(f)).strip()]
    if missing:
        raise DecodeError(f"record missing required fields: {', '.join(missing)}")

    size = _as_size(fields.get("size"), fields.get("path"))

    return FileRecord(
        name=_as_text(fields["name"]),
        path=_as_text(fields["path"]),
        size=size,
        is_dir=_as_bool(fields.get("is_dir", False)),
        machine=_as_text(fields["machine"]),
        ip=_as_text(fields["ip"]),
        external=_as_bool(fields.get("external", False)),
        external_name=_as_text(fields.get("external_name")),
        filetype=_as_text(fields.get("filetype")),
        filemime=_as_text(fields.get("filemime")),
        hash=_as_text(fields.get("hash")),
        modified=_as_modified(fields.get("modified")),
    )


def record_to_mapping(record: FileRecord) -> dict[str, Any]:
    return {
        "name": record.name,
        "path": record.path,
        "size": record.size,
        "isdir": int(record.is_dir),
        "machine": record.machine,
        "ip": record.ip,
        "external": int(record.external),
        "external_name": record.external_name,
        "filetype": record.filetype,
        "filemime": record.filemime,
        "hash": record.hash,
        "modified": record.modified,
    }


def is_relational(artifact: Path) -> bool:
    with artifact.open("rb") as fh:
        return fh.read(len(SQLITE_MAGIC)) == SQLITE_MAGIC


def _inventory_table(conn: sqlite3.Connection) -> str:
    names = [
        str(r[0])
        for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        ).fetchall()
    ]
    if INVENTORY_TABLE in names:
        return INVENTORY_TABLE
    if len(names) == 1:
        return names[0]
    raise DecodeError(f"no file inventory table found (tables: {names})")


def _decode_relational(artifact: Path) -> list[FileRecord]:
    uri = f"{artifact.resolve().as_uri()}?mode=ro"
    try:
        conn = sqlite3.connect(uri, uri=True)
    except sqlite3.Error as exc:
        raise DecodeError(f"cannot open relational snapshot {artifact.name}: {exc}") from exc
    conn.row_factory = sqlite3.Row
    try:
        table = _inventory_table(conn)
        quoted = '"' + table.replace('"', '""') + '"'
        rows = conn.execute(f"SELECT * FROM {quoted}")
        return [record_from_mapping(dict(row)) for row in rows]
    except sqlite3.Error as exc:
        raise DecodeError(f"unreadable relational snapshot {artifact.name}: {exc}") from exc
    finally:
        conn.close()


def _decode_flat(artifact: Path) -> list[FileRecord]:
    try:
        payload = json.loads(artifact.read_bytes())
    except (ValueError, RecursionError) as exc:
        raise DecodeError(f"snapshot {artifact.name} is neither SQLite nor a JSON list: {exc}") from exc
    if not isinstance(payload, list):
        raise DecodeError(f"flat snapshot {artifact.name} must be a JSON array, got {type(payload).__name__}")
    records: list[FileRecord] = []
    for idx, item in enumerate(payload):
        if not isinstance(item, dict):
            raise DecodeError(f"flat snapshot {artifact.name}: item {idx} is not an object")
        records.append(record_from_mapping(item))
    return records


def decode(artifact: Path) -> list[FileRecord]:
    """Decode a staged snapshot into records, in snapshot order.

    The shape is detected from the content: a SQLite header means a relational
    snapshot, anything else is parsed as a JSON array of records.
    """
    try:
        relational = is_relational(artifact)
    except OSError as exc:
        raise DecodeError(f"cannot read snapshot {artifact}: {exc}") from exc
    if relational:
        records = _decode_relational(artifact)
        shape = "relational"
    else:
        records = _decode_flat(artifact)
        shape = "flat"
    log.debug("decoded %d records from %s snapshot %s", len(records), shape, artifact.name)
    return records


def encode_relational(records: Iterable[FileRecord], target: Path) -> Path:
    target.unlink(missing_ok=True)
    conn = sqlite3.connect(target)
    try:
        conn.executescript(SNAPSHOT_SQL)
        conn.executemany(
            """
            INSERT INTO files(
              name, path, size, isdir, machine, ip, external, external_name,
              filetype, filemime, hash, modified
            ) VALUES (
              :name, :path, :size, :isdir, :machine, :ip, :external, :external_name,
              :filetype, :filemime, :hash, :modified
            )
            """,
            (record_to_mapping(r) for r in records),
        )
        conn.commit()
    finally:
        conn.close()
    return target


def encode_json(records: Iterable[FileRecord], target: Path) -> Path:
    target.write_text(json.dumps([record_to_mapping(r) for r in records]))
    return target
