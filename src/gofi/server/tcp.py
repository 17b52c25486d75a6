from __future__ import annotations

import logging
import socketserver

from gofi.service import GofiService

log = logging.getLogger(__name__)


class _TransferHandler(socketserver.BaseRequestHandler):
    def handle(self) -> None:
        service: GofiService = self.server.service  # type: ignore[attr-defined]
        peer = "%s:%s" % self.client_address[:2]
        log.debug("snapshot connection from %s", peer)
        stats = service.accept_snapshot(self.request)
        if stats is None:
            log.warning("dropped snapshot from %s", peer)


class TransferServer(socketserver.ThreadingTCPServer):
    """One thread per connection; each connection carries one snapshot."""

    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, service: GofiService, host: str, port: int):
        self.service = service
        super().__init__((host, port), _TransferHandler)
