"""Core IMS operations and the interactive login flow."""

from imscli.core.errors import (
    AuthorizationError,
    AuthorizationTimeoutError,
    ClientCreationError,
    IMSCLIError,
    IMSRequestError,
    ListenError,
    ServerCrashedError,
    ShutdownError,
    ValidationError,
)
from imscli.core.logging import (
    HTTPExchange,
    LoggingClient,
    LogLevel,
    ProtocolLogger,
    configure_logging,
    get_protocol_logger,
    redact_sensitive,
    set_protocol_logger,
)

__all__ = [
    # Errors
    "AuthorizationError",
    "AuthorizationTimeoutError",
    "ClientCreationError",
    "IMSCLIError",
    "IMSRequestError",
    "ListenError",
    "ServerCrashedError",
    "ShutdownError",
    "ValidationError",
    # Logging
    "HTTPExchange",
    "LoggingClient",
    "LogLevel",
    "ProtocolLogger",
    "configure_logging",
    "get_protocol_logger",
    "redact_sensitive",
    "set_protocol_logger",
]
