from __future__ import annotations

from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
import json
import logging
from typing import Any
from urllib.parse import parse_qs, urlsplit

from gofi.service import GofiService

log = logging.getLogger(__name__)

LIVENESS_TEXT = "ok"


class _Handler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"
    server_version = "gofi"

    def do_GET(self) -> None:  # noqa: N802
        url = urlsplit(self.path)
        if url.path == "/health":
            self._write_text(200, LIVENESS_TEXT)
            return
        if url.path not in {"/", "/files"}:
            self._write_json(404, {"ok": False, "error": "not found"})
            return

        service: GofiService = self.server.service  # type: ignore[attr-defined]
        params = parse_qs(url.query, keep_blank_values=True)
        self._write_json(200, service.query(params))

    def log_message(self, fmt: str, *args: Any) -> None:
        log.debug("%s %s", self.address_string(), fmt % args)

    def _write_text(self, status: int, text: str) -> None:
        body = text.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _write_json(self, status: int, payload: dict[str, Any]) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


class CatalogHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, service: GofiService, host: str, port: int):
        self.service = service
        super().__init__((host, port), _Handler)
