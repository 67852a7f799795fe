"""Single-use loopback HTTP listener for the OAuth 2.0 redirect.

The listener binds ``127.0.0.1:<port>`` when entered and serves requests
one at a time until a request hits the callback path or the deadline
passes. Requests to any other path get a 404 and do not end the wait,
so favicon probes and stray tabs cannot consume the slot.

Example::

    with CallbackListener(port=9749) as listener:
        webbrowser.open(auth_url)
        result = listener.wait()     # CallbackResult(code=..., state=...)

The socket is closed when the ``with`` block exits, whatever the outcome.
"""

from __future__ import annotations

import html
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional, Union
from urllib.parse import parse_qs, urlparse

from nsql.config import CALLBACK_PATH, CALLBACK_TIMEOUT_SECONDS, DEFAULT_CALLBACK_PORT
from nsql.exceptions import (
    AuthError,
    AuthorizationDeniedError,
    BindError,
    CallbackTimeoutError,
    MissingCodeError,
)
from nsql.models import CallbackResult
from nsql.output import OutputManager, get_output

SUCCESS_PAGE = """<!DOCTYPE html>
<html>
<head><title>nsql - Authentication successful</title></head>
<body style="font-family: sans-serif; text-align: center; padding-top: 50px;">
<h1>Authentication successful</h1>
<p>You can close this window and return to the terminal.</p>
</body>
</html>
"""

ERROR_PAGE = """<!DOCTYPE html>
<html>
<head><title>nsql - Authentication failed</title></head>
<body style="font-family: sans-serif; text-align: center; padding-top: 50px;">
<h1>Authentication failed</h1>
<p>{message}</p>
<p>Return to the terminal for details.</p>
</body>
</html>
"""

Outcome = Union[CallbackResult, AuthError]

CONNECTION_TIMEOUT_SECONDS = 2.0


class _CallbackServer(HTTPServer):
    """HTTPServer that records the first qualifying callback outcome.

    Each accepted connection gets a read timeout so an idle socket (a
    browser preconnect, say) cannot hold the single-threaded loop past
    the listener deadline.
    """

    def __init__(self, address: tuple[str, int], callback_path: str) -> None:
        super().__init__(address, _CallbackHandler)
        self.callback_path = callback_path
        self.outcome: Optional[Outcome] = None
        self.connection_timeout: float = CONNECTION_TIMEOUT_SECONDS

    def finish_request(self, request: Any, client_address: Any) -> None:
        request.settimeout(self.connection_timeout)
        super().finish_request(request, client_address)


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackServer

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        if parsed.path != self.server.callback_path:
            self._respond(404, "Not found")
            return

        params = parse_qs(parsed.query)
        error = _first(params, "error")
        code = _first(params, "code")
        state = _first(params, "state")

        if error:
            description = _first(params, "error_description")
            self._respond(200, ERROR_PAGE.format(message=html.escape(f"Error: {error}")))
            self.server.outcome = AuthorizationDeniedError(error, description)
        elif not code:
            self._respond(400, ERROR_PAGE.format(message="No authorization code received."))
            self.server.outcome = MissingCodeError("No authorization code received in callback")
        else:
            self._respond(200, SUCCESS_PAGE)
            self.server.outcome = CallbackResult(code=code, state=state)

    def _respond(self, status: int, body: str) -> None:
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format: str, *args: Any) -> None:
        # Suppress default logging
        pass


def _first(params: dict[str, list[str]], key: str) -> Optional[str]:
    values = params.get(key)
    return values[0] if values else None


class CallbackListener:
    """Scoped loopback listener that captures one authorization redirect.

    Args:
        port: TCP port to bind on ``127.0.0.1``. ``0`` picks a free port,
            which is only useful in tests since the redirect URI must be
            registered in advance.
        callback_path: Path the provider redirects to.
        timeout: Seconds to wait for a qualifying request.
        connection_timeout: Seconds a single connection may stay silent
            before it is dropped and the wait resumes.
        output: Diagnostics sink; defaults to the global manager.

    Raises:
        BindError: On entering, if the port cannot be bound.
    """

    def __init__(
        self,
        port: int = DEFAULT_CALLBACK_PORT,
        callback_path: str = CALLBACK_PATH,
        timeout: float = CALLBACK_TIMEOUT_SECONDS,
        connection_timeout: float = CONNECTION_TIMEOUT_SECONDS,
        output: Optional[OutputManager] = None,
    ) -> None:
        self._requested_port = port
        self._callback_path = callback_path
        self._timeout = timeout
        self._connection_timeout = connection_timeout
        self._output = output or get_output()
        self._server: Optional[_CallbackServer] = None

    @property
    def port(self) -> int:
        """The bound port (the requested one until the listener is entered)."""
        if self._server is None:
            return self._requested_port
        return self._server.server_address[1]

    @property
    def is_listening(self) -> bool:
        """Whether the socket is currently bound."""
        return self._server is not None

    def __enter__(self) -> "CallbackListener":
        try:
            self._server = _CallbackServer(("127.0.0.1", self._requested_port), self._callback_path)
        except OSError as exc:
            raise BindError(self._requested_port, exc.strerror or str(exc)) from exc
        self._output.debug(
            f"Callback listener bound to http://127.0.0.1:{self.port}{self._callback_path}"
        )
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Release the socket. Safe to call more than once."""
        if self._server is not None:
            self._server.server_close()
            self._server = None
            self._output.debug("Callback listener closed")

    def wait(self) -> CallbackResult:
        """Serve requests until the callback arrives or the deadline passes.

        Returns:
            The captured code and state.

        Raises:
            AuthorizationDeniedError: The provider redirected with ``error``.
            MissingCodeError: The callback carried no ``code``.
            CallbackTimeoutError: Nothing reached the callback path in time.
        """
        if self._server is None:
            raise RuntimeError("CallbackListener.wait() called outside its context")

        server = self._server
        deadline = time.monotonic() + self._timeout
        try:
            while server.outcome is None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    minutes = self._timeout / 60
                    window = f"{minutes:g} minutes" if minutes >= 1 else f"{self._timeout:g} seconds"
                    raise CallbackTimeoutError(
                        f"Authentication timed out. No callback received within {window}."
                    )
                server.timeout = remaining
                server.connection_timeout = min(self._connection_timeout, remaining)
                server.handle_request()
        finally:
            self.close()

        outcome = server.outcome
        if isinstance(outcome, AuthError):
            raise outcome
        self._output.debug("Authorization code received")
        return outcome
