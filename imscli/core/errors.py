"""Exceptions raised by imscli operations.

Every error carries the phase in which it happened so the CLI can report it
without inspecting internal state.
"""

from __future__ import annotations


class IMSCLIError(Exception):
    """Base exception for imscli errors."""

    phase = "ims"


class ValidationError(IMSCLIError):
    """Raised when a required parameter is missing or malformed."""

    phase = "validation"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ClientCreationError(IMSCLIError):
    """Raised when the HTTP or IMS client cannot be built."""

    phase = "client"


class ListenError(IMSCLIError):
    """Raised when the local callback server cannot bind its port."""

    phase = "listen"


class AuthorizationError(IMSCLIError):
    """Raised when IMS rejects the authorization or the code exchange fails."""

    phase = "callback"

    def __init__(self, message: str, error: str | None = None) -> None:
        super().__init__(message)
        self.error = error


class ServerCrashedError(IMSCLIError):
    """Raised when the local callback server stops before any outcome."""

    phase = "serve"


class AuthorizationTimeoutError(IMSCLIError):
    """Raised when the user does not complete the browser flow in time."""

    phase = "timeout"


class ShutdownError(IMSCLIError):
    """Raised when the local callback server does not stop within its grace period."""

    phase = "shutdown"


class IMSRequestError(IMSCLIError):
    """Raised when an IMS API call fails."""

    phase = "request"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = error
