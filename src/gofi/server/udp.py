from __future__ import annotations

import json
import logging
import socketserver
import sqlite3

from gofi.codec import record_from_mapping
from gofi.errors import DecodeError
from gofi.models import FileRecord
from gofi.service import GofiService

log = logging.getLogger(__name__)


def decode_datagram(data: bytes) -> FileRecord:
    try:
        payload = json.loads(data)
    except (ValueError, RecursionError) as exc:
        raise DecodeError(f"invalid datagram: {exc}") from exc
    if not isinstance(payload, dict):
        raise DecodeError("datagram must hold a single JSON object")
    return record_from_mapping(payload)


class _RecordHandler(socketserver.BaseRequestHandler):
    def handle(self) -> None:
        service: GofiService = self.server.service  # type: ignore[attr-defined]
        data = self.request[0]
        try:
            record = decode_datagram(data)
        except DecodeError as exc:
            log.warning("dropping datagram from %s: %s", self.client_address[0], exc)
            return
        try:
            added = service.push_record(record)
        except sqlite3.Error as exc:
            log.error("could not store record %s from %s: %s", record.path, record.machine, exc)
            return
        self.server.received += 1  # type: ignore[attr-defined]
        log.debug("record %s from %s (%s)", record.path, record.machine, "new" if added else "known")


class RecordServer(socketserver.UDPServer):
    """Fire-and-forget single-record pushes, handled in arrival order."""

    def __init__(self, service: GofiService, host: str, port: int, max_size: int = 65507):
        self.service = service
        self.received = 0
        self.max_packet_size = max_size
        super().__init__((host, port), _RecordHandler)
