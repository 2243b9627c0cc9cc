"""
FluxGuard - HTTP surface for the admission gate.

create_app() wraps an AdmissionGate in a Flask application that routes
every method and path through the gate. PooledWSGIServer serves it with a
fixed-size worker pool: each accepted connection is handed to a
ThreadPoolExecutor, so no request waits on another and the detection tick
never shares a thread with request handling.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

from flask import Flask, Response, request
from werkzeug.serving import BaseWSGIServer, WSGIRequestHandler

from fluxguard.core.admission import AdmissionGate, resolve_source

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 8

_ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]


def create_app(gate: AdmissionGate) -> Flask:
    """Flask app whose single catch-all view delegates to the gate."""
    app = Flask(__name__)

    @app.route("/", defaults={"path": ""}, methods=_ALL_METHODS)
    @app.route("/<path:path>", methods=_ALL_METHODS)
    def admit(path: str) -> Response:
        source = resolve_source(
            request.headers.get("X-Forwarded-For"),
            request.remote_addr,
        )
        result = gate.admit(source, request.path)
        response = Response(result.body, status=result.status)
        for name, value in result.headers.items():
            response.headers[name] = value
        if not result.body:
            response.headers.pop("Content-Type", None)
        return response

    return app


class GateRequestHandler(WSGIRequestHandler):
    """Request handler that logs dropped connections instead of printing."""

    # One request per connection so idle keep-alive clients cannot pin pool workers
    protocol_version = "HTTP/1.0"

    def connection_dropped(self, error: BaseException, environ: Optional[dict] = None) -> None:
        logger.warning(
            "[GATE] Connection dropped while responding to %s: %s",
            self.address_string(), error,
        )

    def log_request(self, code: Any = "-", size: Any = "-") -> None:
        logger.debug("[GATE] %s %s -> %s", self.address_string(), self.requestline, code)


class PooledWSGIServer(BaseWSGIServer):
    """
    Werkzeug WSGI server dispatching connections to a fixed worker pool.
    Response write failures are logged and the connection closed; they
    never propagate out of the worker.
    """

    multithread = True

    def __init__(
        self,
        host: str,
        port: int,
        app: Any,
        workers: int = DEFAULT_WORKERS,
    ) -> None:
        super().__init__(host, port, app, handler=GateRequestHandler)
        self.workers = max(1, int(workers))
        self._executor = ThreadPoolExecutor(
            max_workers=self.workers, thread_name_prefix="fluxguard-http",
        )
        self._thread: Optional[threading.Thread] = None

    def process_request(self, request: Any, client_address: Any) -> None:
        self._executor.submit(self._process_in_worker, request, client_address)

    def _process_in_worker(self, request: Any, client_address: Any) -> None:
        try:
            self.finish_request(request, client_address)
        except Exception:
            self.handle_error(request, client_address)
        finally:
            self.shutdown_request(request)

    def handle_error(self, request: Any, client_address: Any) -> None:
        logger.exception("[GATE] Error while handling request from %s", client_address)

    def start_background(self) -> None:
        """Serve on a dedicated accept thread."""
        self._thread = threading.Thread(
            target=self.serve_forever, daemon=True, name="fluxguard-accept",
        )
        self._thread.start()
        logger.info(
            "[GATE] Serving on http://%s:%d (%d workers)",
            self.host, self.port, self.workers,
        )

    def stop(self) -> None:
        """Stop accepting, let in-flight requests finish, then close the socket."""
        if self._thread is not None:
            self.shutdown()
            self._thread.join(timeout=5.0)
            self._thread = None
        self._executor.shutdown(wait=True)
        self.server_close()
        logger.info("[GATE] HTTP server stopped")
