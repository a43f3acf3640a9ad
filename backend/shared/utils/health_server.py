"""
Minimal HTTP health endpoint for the monitor worker.
Serves GET /health on PORT with the scheduler's status snapshot.
Runs in a daemon thread; no-op when PORT is not set (e.g. local dev).
"""
from __future__ import annotations

import json
import os
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Optional

from shared.utils.logging import get_logger

logger = get_logger(__name__)

StatusProvider = Callable[[], dict[str, Any]]


def start_health_server(
    service_name: str,
    status_provider: Optional[StatusProvider] = None,
) -> Optional[threading.Thread]:
    """
    Start a daemon thread answering GET /health.

    ``status_provider`` is called per request; its dict is merged into the
    response so the endpoint reports live scheduler state.
    """
    port_str = os.environ.get("PORT")
    if not port_str:
        return None
    try:
        port = int(port_str)
    except ValueError:
        logger.warning("health_server_bad_port", port=port_str)
        return None

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:
            if self.path not in ("/health", "/health/"):
                self.send_response(404)
                self.end_headers()
                return
            payload: dict[str, Any] = {"status": "ok", "service": service_name}
            if status_provider is not None:
                payload.update(status_provider())
            body = json.dumps(payload, default=str).encode("utf-8")
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format: str, *args: object) -> None:
            pass  # Suppress request logging

    def serve() -> None:
        with HTTPServer(("0.0.0.0", port), Handler) as httpd:
            httpd.serve_forever()

    t = threading.Thread(target=serve, name="health-server", daemon=True)
    t.start()
    logger.info("health_server_started", port=port)
    return t
