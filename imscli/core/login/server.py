"""Local HTTP callback server for the authorization code flow.

The server handles exactly one redirect endpoint. Its results leave the
server through single-use handoff points (futures) that never block the
producer, so a request handler that finishes after the waiting side has
moved on can always complete.
"""

from __future__ import annotations

import contextlib
import logging
import socket
import threading
import time
from collections.abc import Iterator
from concurrent.futures import Future, InvalidStateError
from enum import StrEnum
from typing import Any, Protocol, TypeVar

from flask import Flask, redirect, request
from markupsafe import escape
from werkzeug.serving import BaseWSGIServer, WSGIRequestHandler, make_server
from werkzeug.wrappers import Response

from imscli.core.errors import AuthorizationError, ListenError, ShutdownError
from imscli.core.ims.client import AuthorizationURL, TokenResponse
from imscli.core.logging import mask_token

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_HOST = "localhost"

SUCCESS_PAGE = """\
<h1>Login successful!</h1>
<p>You can close this tab.</p>
"""

ERROR_PAGE = """\
<h1>An error occurred</h1>
<p>{detail}</p>
<p>Please look at the terminal output for further details.</p>
"""


class CodeExchanger(Protocol):
    """The part of the IMS client the callback needs."""

    def exchange_code(
        self,
        client_id: str,
        code: str,
        client_secret: str | None = None,
        code_verifier: str | None = None,
    ) -> TokenResponse: ...


class ServerLifecycle(StrEnum):
    """State of the local callback server."""

    NOT_STARTED = "not_started"
    LISTENING = "listening"
    SERVING = "serving"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


def deliver(handoff: Future[T], value: T) -> bool:
    """Hand a value to a single-use handoff point without blocking.

    Returns:
        False if the handoff already holds a value; the new one is dropped.
    """
    try:
        handoff.set_result(value)
    except InvalidStateError:
        logger.debug(f"Dropping late result {type(value).__name__}: handoff already used")
        return False
    return True


class _CallbackRequestHandler(WSGIRequestHandler):
    """Route werkzeug's access log to the imscli logger instead of stderr."""

    def log(self, type: str, message: str, *args: Any) -> None:
        logger.debug(f"{self.address_string()} {message % args}")


class CallbackServer:
    """One-shot local server receiving the IMS authorization redirect.

    Attributes:
        response: Receives the TokenResponse of a successful code exchange.
        error: Receives an AuthorizationError from the callback.
        stopped: Receives the serve loop's exception, or None if it returned.
    """

    def __init__(
        self,
        client: CodeExchanger,
        client_id: str,
        authorization: AuthorizationURL,
        port: int,
        client_secret: str | None = None,
        host: str = DEFAULT_HOST,
    ) -> None:
        self.client = client
        self.client_id = client_id
        self.client_secret = client_secret
        self.authorization = authorization
        self.host = host
        self.port = port

        self.response: Future[TokenResponse] = Future()
        self.error: Future[AuthorizationError] = Future()
        self.stopped: Future[BaseException | None] = Future()

        self.state = ServerLifecycle.NOT_STARTED
        self._active_requests = 0
        self._idle = threading.Condition()
        self.app = self._create_app()
        self._server: BaseWSGIServer | None = None
        self._serve_thread: threading.Thread | None = None

    def _create_app(self) -> Flask:
        app = Flask(__name__)
        app.add_url_rule("/", "callback", self._callback)
        return app

    @contextlib.contextmanager
    def _in_flight(self) -> Iterator[None]:
        with self._idle:
            self._active_requests += 1
        try:
            yield
        finally:
            with self._idle:
                self._active_requests -= 1
                self._idle.notify_all()

    def _callback(self) -> Response | tuple[str, int]:
        with self._in_flight():
            return self._handle_callback()

    def _handle_callback(self) -> Response | tuple[str, int]:
        """Handle the IMS redirect (or start the flow when opened directly)."""
        args = request.args

        if "error" in args:
            error = args["error"]
            description = args.get("error_description", "")
            message = f"{error}: {description}" if description else error
            logger.info(f"Authorization callback returned an error: {message}")
            deliver(self.error, AuthorizationError(message, error=error))
            return ERROR_PAGE.format(detail=escape(message)), 400

        code = args.get("code")
        if not code:
            # Opening the local URL by hand starts the login
            return redirect(self.authorization.url)

        if args.get("state") != self.authorization.state:
            logger.warning("Authorization callback state does not match the request")
            deliver(
                self.error,
                AuthorizationError("state mismatch in the authorization callback", error="invalid_state"),
            )
            return ERROR_PAGE.format(detail="Invalid state parameter."), 400

        logger.info("Authorization code received, exchanging it for a token")
        try:
            token = self.client.exchange_code(
                self.client_id,
                code,
                client_secret=self.client_secret,
                code_verifier=self.authorization.code_verifier,
            )
        except Exception as e:
            logger.exception("Authorization code exchange failed")
            deliver(self.error, AuthorizationError(f"error exchanging the authorization code: {e}"))
            return ERROR_PAGE.format(detail=escape(str(e))), 500

        if not token.is_success:
            message = f"{token.error}: {token.error_description}"
            deliver(
                self.error,
                AuthorizationError(f"error exchanging the authorization code: {message}", error=token.error),
            )
            return ERROR_PAGE.format(detail=escape(message)), 500

        logger.info(f"Token obtained: {mask_token(token.access_token)}")
        deliver(self.response, token)
        return SUCCESS_PAGE, 200

    def listen(self) -> None:
        """Bind the listening socket.

        Raises:
            ListenError: If the port cannot be bound.
        """
        try:
            listener = socket.create_server((self.host, self.port))
        except OSError as e:
            raise ListenError(f"unable to listen at port {self.port}: {e.strerror or e}") from e

        try:
            self._server = make_server(
                self.host,
                self.port,
                self.app,
                threaded=True,
                request_handler=_CallbackRequestHandler,
                fd=listener.fileno(),
            )
        finally:
            # werkzeug works on a duplicate of the descriptor
            listener.close()

        self.state = ServerLifecycle.LISTENING
        logger.info(f"Local server listening on http://{self.host}:{self.port}/")

    def serve(self) -> None:
        """Start the serve loop on a background thread."""
        if self._server is None:
            raise RuntimeError("listen() must be called before serve()")
        self._serve_thread = threading.Thread(
            target=self._serve,
            name=f"imscli-callback-{self.port}",
            daemon=True,
        )
        self._serve_thread.start()
        self.state = ServerLifecycle.SERVING

    def _serve(self) -> None:
        assert self._server is not None
        try:
            self._server.serve_forever()
        except Exception as e:
            logger.error(f"Local server stopped unexpectedly: {e}")
            deliver(self.stopped, e)
        else:
            deliver(self.stopped, None)

    @property
    def active_requests(self) -> int:
        """Number of callback requests being handled right now."""
        with self._idle:
            return self._active_requests

    def shutdown(self, timeout: float) -> None:
        """Stop the serve loop, wait for in-flight callbacks and release the socket.

        Both the serve loop and the callbacks being handled share the same
        grace period. The socket is closed even when they fail to finish in
        time.

        Args:
            timeout: Seconds allowed for the whole shutdown.

        Raises:
            ShutdownError: If the serve loop or a callback is still running
                after timeout.
        """
        if self._server is None:
            self.state = ServerLifecycle.STOPPED
            return

        self.state = ServerLifecycle.SHUTTING_DOWN
        server = self._server
        deadline = time.monotonic() + timeout
        try:
            if self._serve_thread is not None:
                # shutdown() blocks until serve_forever() returns, so it runs on its own thread
                stopper = threading.Thread(target=server.shutdown, name="imscli-callback-shutdown", daemon=True)
                stopper.start()
                stopper.join(timeout)
                if stopper.is_alive():
                    raise ShutdownError(f"local server did not stop within {timeout:g} seconds")

            with self._idle:
                finished = self._idle.wait_for(
                    lambda: self._active_requests == 0,
                    timeout=max(0.0, deadline - time.monotonic()),
                )
                if not finished:
                    raise ShutdownError(
                        f"local server did not stop within {timeout:g} seconds: "
                        f"{self._active_requests} callback request(s) still in flight"
                    )
        finally:
            server.server_close()
            self._server = None
            self.state = ServerLifecycle.STOPPED
        logger.info("Local server shut down")
