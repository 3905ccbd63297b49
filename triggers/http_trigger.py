"""
Authenticated HTTP trigger for a renewal run.

Contract:
  * any method other than POST           → 405 "Method not allowed"
  * missing / non-Bearer Authorization    → 401 "Unauthorized"
  * Bearer token != configured secret     → 401 "Invalid token"
  * otherwise run the renewal             → 200 application/json
                                            {"success": bool, "result"?: {...}, "error"?: str}

The HTTP status never encodes the renewal outcome; only the body does.
"""
from __future__ import annotations

import hmac
import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Mapping, Optional

logger = logging.getLogger(__name__)

RenewalRunner = Callable[[], dict]

_BEARER = "Bearer "


def is_authorized(authorization: Optional[str], secret: str) -> bool:
    """Constant-time check of ``Authorization: Bearer <secret>``.  Empty secrets never match."""
    if not secret or not authorization or not authorization.startswith(_BEARER):
        return False
    token = authorization[len(_BEARER):]
    return hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8"))


def handle_trigger(
    method: str,
    headers: Mapping[str, str],
    secret: str,
    run_renewal: RenewalRunner,
) -> tuple[int, str, str]:
    """Apply the trigger contract.  Returns (status, content_type, body)."""
    if method.upper() != "POST":
        return 405, "text/plain", "Method not allowed"

    authorization = headers.get("Authorization")
    if not authorization or not authorization.startswith(_BEARER):
        return 401, "text/plain", "Unauthorized"
    if not is_authorized(authorization, secret):
        logger.warning("Rejected renewal trigger with invalid token")
        return 401, "text/plain", "Invalid token"

    logger.info("Renewal triggered over HTTP")
    result = run_renewal()
    return 200, "application/json", json.dumps(result)


class _TriggerHandler(BaseHTTPRequestHandler):
    """Routes every method through handle_trigger."""

    # Injected by TriggerServer before binding
    secret: str = ""
    run_renewal: Optional[RenewalRunner] = None

    def _dispatch(self) -> None:
        # Drain any request body so keep-alive clients are not left hanging.
        length = int(self.headers.get("Content-Length") or 0)
        if length:
            self.rfile.read(length)

        status, content_type, body = handle_trigger(
            self.command, self.headers, self.secret, type(self).run_renewal
        )
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(payload)

    do_POST = _dispatch

    def __getattr__(self, name: str):
        # Every verb, known to http.server or not, gets 405 rather than 501.
        if name.startswith("do_"):
            return self._dispatch
        raise AttributeError(name)

    def log_message(self, fmt: str, *args: object) -> None:
        logger.debug("%s - %s", self.address_string(), fmt % args)


class TriggerServer:
    """
    HTTP server exposing the renewal trigger.

    Usage:
        srv = TriggerServer(run_renewal, secret, port=8080)
        srv.start()          # background thread
        ...
        srv.stop()
    or ``srv.serve_forever()`` to block the calling thread.
    """

    def __init__(self, run_renewal: RenewalRunner, secret: str, host: str = "0.0.0.0", port: int = 8080) -> None:
        self.host = host
        self.port = port
        handler = type(
            "TriggerHandler",
            (_TriggerHandler,),
            {"secret": secret, "run_renewal": staticmethod(run_renewal)},
        )
        self._handler = handler
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def server_port(self) -> int:
        return self._server.server_address[1] if self._server else self.port

    def _bind(self) -> ThreadingHTTPServer:
        if self._server is not None:
            raise RuntimeError("Trigger server is already running")
        self._server = ThreadingHTTPServer((self.host, self.port), self._handler)
        self._server.daemon_threads = True
        logger.info("Renewal trigger listening on %s:%d", self.host, self.server_port)
        return self._server

    def start(self) -> None:
        """Start the HTTP server in a background thread."""
        server = self._bind()
        self._thread = threading.Thread(target=server.serve_forever, daemon=True)
        self._thread.start()

    def serve_forever(self) -> None:
        self._bind().serve_forever()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    def __enter__(self) -> "TriggerServer":
        return self

    def __exit__(self, *_: object) -> None:
        self.stop()
