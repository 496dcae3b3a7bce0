"""Interactive Authorization Code flow.

Runs one browser based login against IMS: a local callback server receives
the redirect, the waiting CLI takes the first outcome among success, error,
server crash and timeout, then the server is shut down within a bounded
grace period whatever the outcome was.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, wait
from dataclasses import dataclass, field
from enum import StrEnum
from functools import partial
from typing import Protocol, TextIO

from imscli.core.config import ImsParams
from imscli.core.errors import (
    AuthorizationError,
    AuthorizationTimeoutError,
    ClientCreationError,
    IMSCLIError,
    ServerCrashedError,
    ValidationError,
)
from imscli.core.ims.client import AuthorizationURL, IMSClient, TokenResponse, is_absolute_url
from imscli.core.login.browser import launch_browser
from imscli.core.login.server import CallbackServer, CodeExchanger

logger = logging.getLogger(__name__)

# How long the user has to complete the browser login
DEFAULT_TIMEOUT = 5 * 60.0
# Grace period for the local server to stop; shorter than DEFAULT_TIMEOUT
DEFAULT_SHUTDOWN_TIMEOUT = 10.0


class LoginClient(CodeExchanger, Protocol):
    """The IMS client operations used by the login flow."""

    def authorization_url(
        self,
        client_id: str,
        scopes: list[str],
        redirect_uri: str,
        use_pkce: bool = False,
        state: str | None = None,
        additional_params: dict[str, str] | None = None,
    ) -> AuthorizationURL: ...

    def close(self) -> None: ...


@dataclass
class AuthorizationRequest:
    """Parameters of one interactive login."""

    url: str
    client_id: str
    organization: str
    scopes: list[str] = field(default_factory=list)
    port: int = 8888
    client_secret: str = ""
    public_client: bool = False
    use_pkce: bool = False

    @classmethod
    def from_params(cls, params: ImsParams, use_pkce: bool = False) -> AuthorizationRequest:
        """Create a request from the command parameters."""
        return cls(
            url=params.url,
            client_id=params.client_id,
            organization=params.organization,
            scopes=list(params.scopes),
            port=params.port,
            client_secret=params.client_secret,
            public_client=params.public_client,
            use_pkce=use_pkce,
        )

    @property
    def redirect_uri(self) -> str:
        """The local callback URI registered with IMS."""
        return f"http://localhost:{self.port}"

    def validate(self) -> None:
        """Check every required parameter before any socket is opened.

        Raises:
            ValidationError: Naming the first missing or invalid parameter.
        """
        if not self.url:
            raise ValidationError("missing IMS base URL parameter", field="url")
        if not is_absolute_url(self.url):
            raise ValidationError("unable to parse URL parameter", field="url")
        if not self.scopes or self.scopes[0] == "":
            raise ValidationError("missing scopes parameter", field="scopes")
        if not self.client_id:
            raise ValidationError("missing client id parameter", field="clientID")
        if not self.organization:
            raise ValidationError("missing organization parameter", field="organization")
        if isinstance(self.port, bool) or not isinstance(self.port, int) or self.port <= 0:
            raise ValidationError("missing or invalid port parameter", field="port")
        if not self.client_secret and not self.public_client:
            raise ValidationError("missing client secret parameter", field="clientSecret")
        logger.info("All needed parameters verified not empty")


class OutcomeKind(StrEnum):
    """Which event ended the wait for the callback."""

    SUCCESS = "success"
    FAILURE = "failure"
    SERVER_CRASHED = "server_crashed"
    TIMED_OUT = "timed_out"


@dataclass
class CallbackOutcome:
    """The single result of waiting for the callback."""

    kind: OutcomeKind
    token: TokenResponse | None = None
    error: IMSCLIError | None = None

    def access_token(self) -> str:
        """Return the access token, or raise the outcome's error."""
        if self.kind is OutcomeKind.SUCCESS and self.token is not None:
            return self.token.access_token
        assert self.error is not None
        raise self.error


class AuthorizeUserFlow:
    """Coordinates one interactive Authorization Code login."""

    def __init__(
        self,
        request: AuthorizationRequest,
        client_factory: Callable[[str], LoginClient] = IMSClient,
        browser: Callable[[str], bool] = launch_browser,
        timeout: float = DEFAULT_TIMEOUT,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
        stderr: TextIO | None = None,
    ) -> None:
        """Initialize the flow.

        Args:
            request: Login parameters.
            client_factory: Builds the IMS client from the base URL.
            browser: Opens a URL, returning False when no browser could be launched.
            timeout: Seconds to wait for the user to finish the login.
            shutdown_timeout: Seconds allowed for the local server to stop.
            stderr: Stream for user facing diagnostics (defaults to sys.stderr).
        """
        self.request = request
        self.client_factory = client_factory
        self.browser = browser
        self.timeout = timeout
        self.shutdown_timeout = shutdown_timeout
        self._stderr = stderr
        self.server: CallbackServer | None = None

    @property
    def stderr(self) -> TextIO:
        return self._stderr or sys.stderr

    def run(self) -> str:
        """Execute the login and return the access token.

        Raises:
            ValidationError: Invalid parameters; nothing was started.
            ClientCreationError: The IMS client could not be built.
            ListenError: The local port could not be bound.
            AuthorizationError: IMS returned an error or the code exchange failed.
            ServerCrashedError: The local server stopped before any callback.
            AuthorizationTimeoutError: The user did not finish in time.
            ShutdownError: The local server did not stop within its grace period.
        """
        try:
            self.request.validate()
        except ValidationError as e:
            raise ValidationError(f"invalid parameters for login user: {e}", field=e.field) from e

        try:
            client = self.client_factory(self.request.url)
        except ClientCreationError as e:
            raise ClientCreationError(f"error creating the IMS client: {e}") from e

        try:
            return self._authorize(client)
        finally:
            client.close()

    def _authorize(self, client: LoginClient) -> str:
        authorization = client.authorization_url(
            self.request.client_id,
            self.request.scopes,
            self.request.redirect_uri,
            use_pkce=self.request.use_pkce,
        )

        self.server = server = CallbackServer(
            client,
            self.request.client_id,
            authorization,
            port=self.request.port,
            client_secret=self.request.client_secret or None,
        )
        server.listen()

        try:
            server.serve()
            self._open_browser(authorization.url)
            outcome = self.wait_for_outcome(server)
        finally:
            server.shutdown(self.shutdown_timeout)

        if outcome.kind is OutcomeKind.SUCCESS:
            logger.info("No error from the authorization code handler, local server is shut down")
        return outcome.access_token()

    def _open_browser(self, url: str) -> None:
        if not self.browser(url):
            print(f"error launching the browser, open it and visit {url}", file=self.stderr)

    def wait_for_outcome(self, server: CallbackServer) -> CallbackOutcome:
        """Block until the first of success, error, server stop or timeout.

        Handoffs that did not win stay unread; their producers never block
        on them, so late callbacks finish on their own.
        """
        done, _ = wait(
            [server.error, server.response, server.stopped],
            timeout=self.timeout,
            return_when=FIRST_COMPLETED,
        )

        if server.error in done:
            logger.info("The callback handler returned an error")
            error = server.error.result()
            return CallbackOutcome(
                OutcomeKind.FAILURE,
                error=AuthorizationError(
                    f"error negotiating the authorization code: {error}", error=error.error
                ),
            )

        if server.response in done:
            logger.info("The callback handler returned a token")
            return CallbackOutcome(OutcomeKind.SUCCESS, token=server.response.result())

        if server.stopped in done:
            cause = server.stopped.result()
            logger.info("The local server stopped unexpectedly")
            return CallbackOutcome(
                OutcomeKind.SERVER_CRASHED,
                error=ServerCrashedError(
                    f"error negotiating the authorization code: local server stopped unexpectedly: "
                    f"{cause or 'serve loop exited'}"
                ),
            )

        print("Timeout reached waiting for the user to finish the authentication ...", file=self.stderr)
        return CallbackOutcome(
            OutcomeKind.TIMED_OUT,
            error=AuthorizationTimeoutError("error negotiating the authorization code: user timed out"),
        )


def authorize_user(params: ImsParams, use_pkce: bool = False) -> str:
    """Run the interactive Authorization Code login for the given parameters.

    Args:
        params: Command parameters (url, client id/secret, organization,
            scopes, port, public client flag, timeout and proxy settings).
        use_pkce: Add a PKCE challenge to the authorization request.

    Returns:
        The access token.
    """
    client_factory = partial(
        IMSClient,
        timeout=params.timeout,
        proxy_url=params.proxy_url or None,
        proxy_ignore_tls=params.proxy_ignore_tls,
    )
    flow = AuthorizeUserFlow(
        AuthorizationRequest.from_params(params, use_pkce=use_pkce),
        client_factory=client_factory,
    )
    return flow.run()
