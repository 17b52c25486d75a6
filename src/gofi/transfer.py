"""Fixed-header bulk transfer of one snapshot over a stream socket.

Wire format, sent once per connection::

    size   10 bytes  ASCII decimal payload length, right-padded with ':'
    name   64 bytes  snapshot file name, right-padded with ':'
    body   size bytes, written in chunk_size blocks; the last block is
           padded up to a full chunk

There is no acknowledgement; the collector just closes its side.
"""

from __future__ import annotations

import logging
from pathlib import Path
import socket
import uuid

from gofi.errors import TransferError
from gofi.models import ReceivedSnapshot

log = logging.getLogger(__name__)

SIZE_FIELD = 10
NAME_FIELD = 64
PAD = b":"
CHUNK_SIZE = 2048
TAIL_FILL = b"\x00"


def _field(value: str, width: int) -> bytes:
    raw = value.encode("ascii", errors="replace")[:width]
    return raw.ljust(width, PAD)


def _safe_name(raw: str) -> str:
    name = raw.replace("\\", "/").rsplit("/", 1)[-1].strip()
    if name in {"", ".", ".."}:
        return "snapshot"
    return name


def read_exact(sock: socket.socket, n: int) -> bytes:
    """Read exactly ``n`` bytes, looping over short reads."""
    buf = bytearray()
    while len(buf) < n:
        data = sock.recv(n - len(buf))
        if not data:
            raise TransferError(f"connection closed after {len(buf)} of {n} bytes")
        buf.extend(data)
    return bytes(buf)


def _drain(sock: socket.socket, n: int) -> int:
    """Discard up to ``n`` tail-fill bytes; stop early at EOF or a read error.

    Only called once the payload is complete, so a sender that skips the
    fill and leaves the socket open costs one read deadline, not the upload.
    """
    drained = 0
    while drained < n:
        try:
            data = sock.recv(n - drained)
        except OSError as exc:
            log.debug("tail fill ended after %d of %d bytes: %s", drained, n, exc)
            break
        if not data:
            break
        drained += len(data)
    return drained


def read_header(sock: socket.socket) -> tuple[int, str]:
    size_raw = read_exact(sock, SIZE_FIELD).decode("ascii", errors="replace").strip(":")
    name_raw = read_exact(sock, NAME_FIELD).decode("ascii", errors="replace").strip(":")
    if not size_raw.isdigit():
        raise TransferError(f"invalid size field: {size_raw!r}")
    return int(size_raw), _safe_name(name_raw)


def receive_snapshot(
    sock: socket.socket,
    staging_dir: Path,
    chunk_size: int = CHUNK_SIZE,
    timeout: float | None = None,
) -> ReceivedSnapshot:
    """Stage the payload of one connection into ``staging_dir``.

    On any failure the partial file is removed and :class:`TransferError`
    is raised, so a returned path always holds exactly ``size`` bytes.
    """
    sock.settimeout(timeout)
    target: Path | None = None
    try:
        size, name = read_header(sock)
        staging_dir.mkdir(parents=True, exist_ok=True)
        target = staging_dir / f"{uuid.uuid4().hex[:12]}-{name}"
        received = 0
        with target.open("wb") as fh:
            while received < size:
                remaining = size - received
                if remaining < chunk_size:
                    fh.write(read_exact(sock, remaining))
                    received += remaining
                    # Senders fill the last block to a whole chunk.
                    _drain(sock, chunk_size - remaining)
                    break
                fh.write(read_exact(sock, chunk_size))
                received += chunk_size
        log.debug("staged %s (%d bytes) at %s", name, size, target)
        return ReceivedSnapshot(path=target, name=name, size=size)
    except (OSError, TransferError) as exc:
        if target is not None:
            target.unlink(missing_ok=True)
        if isinstance(exc, TransferError):
            raise
        raise TransferError(f"transfer aborted: {exc}") from exc


def write_snapshot(
    sock: socket.socket,
    artifact: Path,
    name: str | None = None,
    chunk_size: int = CHUNK_SIZE,
) -> int:
    size = artifact.stat().st_size
    size_text = str(size)
    if len(size_text) > SIZE_FIELD:
        raise ValueError(f"snapshot too large for the size field: {size} bytes")
    sock.sendall(_field(size_text, SIZE_FIELD) + _field(name or artifact.name, NAME_FIELD))
    with artifact.open("rb") as fh:
        while True:
            block = fh.read(chunk_size)
            if not block:
                break
            if len(block) < chunk_size:
                block = block + TAIL_FILL * (chunk_size - len(block))
            sock.sendall(block)
    return size


def send_snapshot(
    artifact: Path,
    host: str,
    port: int = 1985,
    chunk_size: int = CHUNK_SIZE,
    timeout: float | None = 30.0,
) -> int:
    with socket.create_connection((host, port), timeout=timeout) as sock:
        sent = write_snapshot(sock, artifact, chunk_size=chunk_size)
        sock.shutdown(socket.SHUT_WR)
    log.info("sent %s (%d bytes) to %s:%d", artifact.name, sent, host, port)
    return sent
