from pathlib import Path
import os
import socket
import threading

import pytest

from gofi.errors import TransferError
from gofi.transfer import CHUNK_SIZE, receive_snapshot, write_snapshot


def _header(size: int, name: str) -> bytes:
    return str(size).encode().ljust(10, b":") + name.encode().ljust(64, b":")


def _send_then_close(sock: socket.socket, data: bytes, step: int | None = None) -> threading.Thread:
    def run() -> None:
        try:
            if step is None:
                sock.sendall(data)
            else:
                for i in range(0, len(data), step):
                    sock.sendall(data[i : i + step])
        finally:
            sock.close()

    t = threading.Thread(target=run)
    t.start()
    return t


def _staged(staging: Path) -> list[Path]:
    if not staging.exists():
        return []
    return [p for p in staging.iterdir() if p.is_file()]


def test_transfer_error_is_a_connection_error() -> None:
    assert issubclass(TransferError, ConnectionError)


def test_receive_full_snapshot(tmp_path: Path) -> None:
    payload = os.urandom(2 * CHUNK_SIZE + 904)
    artifact = tmp_path / "client" / "snap.sqlite3"
    artifact.parent.mkdir()
    artifact.write_bytes(payload)
    staging = tmp_path / "staging"

    sender, receiver = socket.socketpair()

    def run() -> None:
        try:
            write_snapshot(sender, artifact)
        finally:
            sender.close()

    t = threading.Thread(target=run)
    t.start()
    received = receive_snapshot(receiver, staging, timeout=5.0)
    t.join()
    receiver.close()

    assert received.size == len(payload)
    assert received.name == "snap.sqlite3"
    assert received.path.parent == staging
    assert received.path.read_bytes() == payload


def test_receive_handles_short_reads(tmp_path: Path) -> None:
    payload = b"x" * 3000
    pad = b"\x00" * (CHUNK_SIZE - (len(payload) - CHUNK_SIZE))
    sender, receiver = socket.socketpair()
    t = _send_then_close(sender, _header(len(payload), "trickle.json") + payload + pad, step=7)

    received = receive_snapshot(receiver, tmp_path / "staging", timeout=5.0)
    t.join()
    receiver.close()

    assert received.path.read_bytes() == payload


def test_receive_exact_chunk_multiple_without_padding(tmp_path: Path) -> None:
    payload = b"y" * (2 * CHUNK_SIZE)
    sender, receiver = socket.socketpair()
    t = _send_then_close(sender, _header(len(payload), "even.json") + payload)

    received = receive_snapshot(receiver, tmp_path / "staging", timeout=5.0)
    t.join()
    receiver.close()

    assert received.path.read_bytes() == payload


def test_unpadded_tail_from_open_connection_is_kept(tmp_path: Path) -> None:
    payload = b"w" * (CHUNK_SIZE + 10)
    staging = tmp_path / "staging"
    sender, receiver = socket.socketpair()
    sender.sendall(_header(len(payload), "unpadded.json") + payload)

    received = receive_snapshot(receiver, staging, timeout=0.2)
    sender.close()
    receiver.close()

    assert received.path.read_bytes() == payload
    assert _staged(staging) == [received.path]


def test_partial_payload_leaves_no_staged_artifact(tmp_path: Path) -> None:
    size = 10_000
    staging = tmp_path / "staging"
    sender, receiver = socket.socketpair()
    t = _send_then_close(sender, _header(size, "partial.sqlite3") + b"z" * (size // 10))

    with pytest.raises(TransferError):
        receive_snapshot(receiver, staging, timeout=5.0)
    t.join()
    receiver.close()

    assert _staged(staging) == []


def test_connection_closed_inside_header(tmp_path: Path) -> None:
    staging = tmp_path / "staging"
    sender, receiver = socket.socketpair()
    t = _send_then_close(sender, b"123::")

    with pytest.raises(TransferError, match="closed"):
        receive_snapshot(receiver, staging, timeout=5.0)
    t.join()
    receiver.close()

    assert _staged(staging) == []


def test_invalid_size_field(tmp_path: Path) -> None:
    sender, receiver = socket.socketpair()
    t = _send_then_close(sender, b"12ab::::::" + b"name".ljust(64, b":"))

    with pytest.raises(TransferError, match="size"):
        receive_snapshot(receiver, tmp_path / "staging", timeout=5.0)
    t.join()
    receiver.close()


def test_stalled_sender_times_out(tmp_path: Path) -> None:
    staging = tmp_path / "staging"
    sender, receiver = socket.socketpair()
    sender.sendall(_header(5000, "stalled.json") + b"a" * 100)

    with pytest.raises(TransferError):
        receive_snapshot(receiver, staging, timeout=0.2)
    sender.close()
    receiver.close()

    assert _staged(staging) == []


def test_sender_name_cannot_escape_staging(tmp_path: Path) -> None:
    payload = b"[]"
    staging = tmp_path / "staging"
    sender, receiver = socket.socketpair()
    pad = b"\x00" * (CHUNK_SIZE - len(payload))
    t = _send_then_close(sender, _header(len(payload), "../../etc/passwd") + payload + pad)

    received = receive_snapshot(receiver, staging, timeout=5.0)
    t.join()
    receiver.close()

    assert received.name == "passwd"
    assert received.path.parent == staging
