"""Interactive Authorization Code login through a local callback server."""

from imscli.core.login.browser import launch_browser, suppress_stdout
from imscli.core.login.flow import (
    DEFAULT_SHUTDOWN_TIMEOUT,
    DEFAULT_TIMEOUT,
    AuthorizationRequest,
    AuthorizeUserFlow,
    CallbackOutcome,
    OutcomeKind,
    authorize_user,
)
from imscli.core.login.server import CallbackServer, ServerLifecycle

__all__ = [
    "DEFAULT_SHUTDOWN_TIMEOUT",
    "DEFAULT_TIMEOUT",
    "AuthorizationRequest",
    "AuthorizeUserFlow",
    "CallbackOutcome",
    "CallbackServer",
    "OutcomeKind",
    "ServerLifecycle",
    "authorize_user",
    "launch_browser",
    "suppress_stdout",
]
