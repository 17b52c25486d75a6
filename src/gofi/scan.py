from __future__ import annotations

from hashlib import sha256
import logging
import mimetypes
import os
from pathlib import Path
import socket
from typing import Iterator

from gofi.models import FileRecord
from gofi.util.time import iso_from_timestamp

log = logging.getLogger(__name__)

HASH_BLOCK = 1 << 20


def local_identity() -> tuple[str, str]:
    machine = socket.gethostname()
    try:
        ip = socket.gethostbyname(machine)
    except OSError:
        ip = "127.0.0.1"
    return machine, ip


def file_hash(path: Path) -> str:
    h = sha256()
    with path.open("rb") as fh:
        for block in iter(lambda: fh.read(HASH_BLOCK), b""):
            h.update(block)
    return h.hexdigest()


def classify(path: Path, is_dir: bool) -> tuple[str, str]:
    if is_dir:
        return "directory", ""
    filetype = path.suffix.lower().lstrip(".")
    mime, _ = mimetypes.guess_type(path.name)
    return filetype, mime or ""


def scan_tree(
    root: Path,
    machine: str,
    ip: str,
    compute_hash: bool = False,
    external_name: str | None = None,
) -> Iterator[FileRecord]:
    """Walk ``root`` and yield one record per directory and file below it."""
    root = root.expanduser().resolve()
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        base = Path(dirpath)
        entries = [(name, True) for name in dirnames] + [(name, False) for name in sorted(filenames)]
        for name, is_dir in entries:
            path = base / name
            try:
                st = path.stat()
            except OSError as exc:
                log.warning("skipping %s: %s", path, exc)
                continue
            digest = ""
            if compute_hash and not is_dir:
                try:
                    digest = file_hash(path)
                except OSError as exc:
                    log.warning("cannot hash %s: %s", path, exc)
            filetype, filemime = classify(path, is_dir)
            yield FileRecord(
                name=name,
                path=str(path),
                size=int(st.st_size),
                is_dir=is_dir,
                machine=machine,
                ip=ip,
                external=external_name is not None,
                external_name=external_name or "",
                filetype=filetype,
                filemime=filemime,
                hash=digest,
                modified=iso_from_timestamp(st.st_mtime),
            )
