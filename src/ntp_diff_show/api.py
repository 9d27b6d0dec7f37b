"""HTTP facade exposing a single time-source query over JSON.

`GET /api/ntp?host=<address>` passes straight through to a time-source
client; no statistics are computed here. `GET /health` reports refresh-cycle
freshness when a health monitor is attached.
"""

from __future__ import annotations

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Iterable
from urllib.parse import parse_qs, urlsplit

from pydantic import BaseModel

from .client import QuerySuccess, TimeSourceClient
from .config import FacadeConfig
from .models import ErrorResponse, NtpTimeResponse
from .monitor import HealthMonitor
from .presentation import format_iso


class FacadeServer:
    """Threaded HTTP server wrapping a `TimeSourceClient`."""

    def __init__(
        self,
        client: TimeSourceClient,
        config: FacadeConfig | None = None,
        health: HealthMonitor | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._config = config or FacadeConfig()
        self._health = health
        self._logger = logger or logging.getLogger(__name__)
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def server_address(self) -> tuple[str, int]:
        if self._server is None:
            raise RuntimeError("server not started")
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        self._server = ThreadingHTTPServer((self._config.host, self._config.port), self._handler_class())
        self._thread = threading.Thread(target=self._server.serve_forever, name="http-facade", daemon=True)
        self._thread.start()
        host, port = self.server_address
        self._logger.info("facade_started", extra={"url": f"http://{host}:{port}/api/ntp"})

    def serve_forever(self) -> None:
        """Start and block until interrupted."""

        self.start()
        assert self._thread is not None
        try:
            while self._thread.is_alive():
                self._thread.join(timeout=0.5)
        finally:
            self.stop()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
        if self._thread:
            self._thread.join(timeout=1.0)

    def _handler_class(self) -> type[BaseHTTPRequestHandler]:
        client = self._client
        health = self._health
        cors_origin = self._config.cors_origin
        logger = self._logger

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:  # noqa: N802
                url = urlsplit(self.path)
                if url.path == "/api/ntp":
                    host = parse_qs(url.query).get("host", [""])[0].strip()
                    if not host:
                        self._send_model(400, ErrorResponse(error="host required"))
                        return
                    outcome = client.query(host)
                    if isinstance(outcome, QuerySuccess):
                        self._send_model(200, NtpTimeResponse(time=format_iso(outcome.observed_time), host=host))
                    else:
                        logger.warning("facade_query_failed", extra={"host": host, "error": outcome.error})
                        self._send_model(500, ErrorResponse(error=outcome.error))
                elif url.path == "/health" and health is not None:
                    status = health.status()
                    self._send_json(200 if status.ok else 503, status.__dict__)
                else:
                    self._send_json(404, {"error": "not found"})

            def do_OPTIONS(self) -> None:  # noqa: N802
                self.send_response(204)
                self._cors_headers()
                self.send_header("Access-Control-Allow-Methods", "GET, OPTIONS")
                self.end_headers()

            def _send_model(self, status: int, model: BaseModel) -> None:
                self._send_json(status, model.model_dump())

            def _send_json(self, status: int, payload: Any) -> None:
                body = json.dumps(payload).encode()
                self.send_response(status)
                self._cors_headers()
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def _cors_headers(self) -> None:
                if cors_origin:
                    self.send_header("Access-Control-Allow-Origin", cors_origin)

            def log_message(self, format: str, *args: Iterable[object]) -> None:  # noqa: A003
                logger.debug("facade_request", extra={"client": self.client_address[0], "line": format % args})

        return Handler
