"""HTTP API over a RecordStore.

Routes:
    GET    /api/v1/query?query=...  → 200 JSON [{id, name, username, password}]
    POST   /api/v1/new              → 201 (JSON array of records, application/json)
    DELETE /api/v1/remove?id=...    → 204, or 404 if id is missing/malformed/unknown
    GET    /api/v1/sync             → 204, or 500 if the write fails
    anything else                   → 404

Requests are served one at a time on the calling thread; the store is never
touched by two requests at once. SIGINT/SIGTERM set a flag that is checked
after each request, so serve() returns with no request half-handled and the
caller can sync the store and release the instance lock.
A client that stalls mid-request is dropped after _REQUEST_TIMEOUT seconds.

Error responses carry only the reason phrase; details go to the log.
"""

from __future__ import annotations

import json
import logging
import signal
import urllib.parse
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import TYPE_CHECKING

from locket.models import PayloadError, normalize_record_id, records_from_json

if TYPE_CHECKING:
    from locket.store import RecordStore

logger = logging.getLogger("locket.web")

API_PREFIX = "/api/v1"
_JSON_TYPE = "application/json"
_POLL_INTERVAL = 0.5    # seconds handle_request() waits before rechecking the flag
_REQUEST_TIMEOUT = 10.0  # seconds a client may stall mid-request before it is dropped

# Mutable container so the signal handler and the serve loop share state.
_shutdown_requested: list[bool] = [False]


def _handle_shutdown(signum: int, frame: object) -> None:  # noqa: ARG001
    _shutdown_requested[0] = True
    logger.info("signal %d received, shutting down after the current request", signum)


def request_shutdown() -> None:
    """Ask a running serve() loop to stop after the current request."""
    _shutdown_requested[0] = True


class _Handler(BaseHTTPRequestHandler):
    store: RecordStore  # injected via make_handler()
    timeout = _REQUEST_TIMEOUT

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _route(self) -> tuple[str, dict[str, list[str]]]:
        parsed = urllib.parse.urlparse(self.path)
        return parsed.path, urllib.parse.parse_qs(parsed.query, keep_blank_values=True)

    def do_GET(self) -> None:
        path, qs = self._route()
        if path == f"{API_PREFIX}/query":
            self._api_query(qs.get("query", [None])[0])
        elif path == f"{API_PREFIX}/sync":
            self._api_sync()
        else:
            self._not_found(path)

    def do_POST(self) -> None:
        path, _ = self._route()
        try:
            body = self._read_body()
        except TimeoutError:
            logger.warning("timed out reading the request body from %s", self.address_string())
            self.close_connection = True
            return
        if path == f"{API_PREFIX}/new":
            self._api_new(body)
        else:
            self._not_found(path)

    def do_DELETE(self) -> None:
        path, qs = self._route()
        if path == f"{API_PREFIX}/remove":
            self._api_remove(qs.get("id", [None])[0])
        else:
            self._not_found(path)

    def _other(self) -> None:
        path, _ = self._route()
        self._not_found(path)

    do_HEAD = do_PUT = do_PATCH = do_OPTIONS = do_TRACE = do_CONNECT = _other

    def send_error(self, code: int, message: str | None = None, explain: str | None = None) -> None:
        # Methods with no do_* handler end up here as 501.
        if code == HTTPStatus.NOT_IMPLEMENTED and self.command:
            self._other()
            return
        super().send_error(code, message, explain)

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def _api_query(self, query: str | None) -> None:
        matches = self.store.query(query)
        try:
            body = json.dumps(
                [{"id": rid, **rec.to_dict()} for rid, rec in matches],
                ensure_ascii=False,
            ).encode()
        except (TypeError, ValueError):
            logger.exception("failed to serialise query matches")
            self._send_status(HTTPStatus.INTERNAL_SERVER_ERROR)
            return
        self._send_bytes(body, _JSON_TYPE, HTTPStatus.OK)

    def _api_new(self, body: bytes) -> None:
        content_type = self.headers.get("Content-Type")
        if content_type is None:
            logger.warning("POST %s/new without a Content-Type header", API_PREFIX)
            self._send_status(HTTPStatus.UNSUPPORTED_MEDIA_TYPE)
            return
        media_type = content_type.split(";", 1)[0].strip().lower()
        if media_type != _JSON_TYPE:
            logger.warning("POST %s/new with unsupported Content-Type %r", API_PREFIX, content_type)
            self._send_status(HTTPStatus.UNSUPPORTED_MEDIA_TYPE)
            return

        try:
            records = records_from_json(body)
        except PayloadError as exc:
            logger.warning("rejected POST %s/new payload: %s", API_PREFIX, exc)
            self._send_status(HTTPStatus.UNSUPPORTED_MEDIA_TYPE)
            return

        ids = self.store.append(records)
        logger.info("added %d record(s)", len(ids))
        self._send_status(HTTPStatus.CREATED)

    def _api_remove(self, raw_id: str | None) -> None:
        if raw_id is None:
            logger.warning("DELETE %s/remove without an id", API_PREFIX)
            self._send_status(HTTPStatus.NOT_FOUND)
            return
        record_id = normalize_record_id(raw_id)
        if record_id is None:
            logger.warning("DELETE %s/remove with malformed id %r", API_PREFIX, raw_id)
            self._send_status(HTTPStatus.NOT_FOUND)
            return
        if self.store.remove(record_id) is None:
            logger.info("DELETE %s/remove: no record %s", API_PREFIX, record_id)
            self._send_status(HTTPStatus.NOT_FOUND)
            return
        logger.info("removed record %s", record_id)
        self._send_status(HTTPStatus.NO_CONTENT)

    def _api_sync(self) -> None:
        try:
            self.store.sync()
        except OSError:
            logger.exception("failed to sync store to %s", self.store.path)
            self._send_status(HTTPStatus.INTERNAL_SERVER_ERROR)
            return
        self._send_status(HTTPStatus.NO_CONTENT)

    def _not_found(self, path: str) -> None:
        logger.warning("404 served: %s %s", self.command, path)
        self._send_status(HTTPStatus.NOT_FOUND)

    # ------------------------------------------------------------------
    # I/O helpers
    # ------------------------------------------------------------------

    def _read_body(self) -> bytes:
        try:
            length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            length = 0
        return self.rfile.read(length) if length > 0 else b""

    def _send_bytes(self, body: bytes, content_type: str, status: HTTPStatus) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def _send_status(self, status: HTTPStatus) -> None:
        if status == HTTPStatus.NO_CONTENT:
            self.send_response(status)
            self.end_headers()
            return
        self._send_bytes(status.phrase.encode(), "text/plain; charset=utf-8", status)

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        logger.debug("%s - %s", self.address_string(), format % args)


def make_handler(store: RecordStore) -> type[_Handler]:
    class _Bound(_Handler):
        pass
    _Bound.store = store
    return _Bound


def make_server(store: RecordStore, host: str, port: int) -> HTTPServer:
    """Bind a single-threaded HTTP server for store (port 0 picks a free port)."""
    server = HTTPServer((host, port), make_handler(store))
    server.timeout = _POLL_INTERVAL
    return server


def serve(store: RecordStore, host: str, port: int) -> None:
    """Serve the API until SIGINT/SIGTERM. The caller syncs and unlocks afterwards."""
    _shutdown_requested[0] = False
    previous = {
        sig: signal.signal(sig, _handle_shutdown)
        for sig in (signal.SIGINT, signal.SIGTERM)
    }
    server = make_server(store, host, port)
    bound_host, bound_port = server.server_address[:2]
    logger.info("serving %s at http://%s:%s", store.path, bound_host, bound_port)
    print(f"locket api  →  http://{bound_host}:{bound_port}{API_PREFIX}  (Ctrl+C to stop)", flush=True)
    try:
        while not _shutdown_requested[0]:
            server.handle_request()
    finally:
        server.server_close()
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    logger.info("server stopped")
