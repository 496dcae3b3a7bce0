"""IMS REST API client and the operations built on it."""

from imscli.core.ims.client import (
    APIResponse,
    AuthorizationURL,
    IMSClient,
    TokenResponse,
    TokenType,
    generate_code_challenge,
    generate_code_verifier,
)
from imscli.core.ims.operations import (
    TokenInfo,
    TokenValidation,
    authorize_client_credentials,
    authorize_jwt_exchange,
    authorize_service,
    cluster_exchange,
    decode,
    get_admin_organizations,
    get_admin_profile,
    get_organizations,
    get_profile,
    invalidate_token,
    obo_exchange,
    refresh,
    register,
    validate_token,
)
from imscli.core.ims.tokens import DecodedToken, build_jwt_assertion, decode_token

__all__ = [
    # Client
    "APIResponse",
    "AuthorizationURL",
    "IMSClient",
    "TokenResponse",
    "TokenType",
    "generate_code_challenge",
    "generate_code_verifier",
    # Operations
    "TokenInfo",
    "TokenValidation",
    "authorize_client_credentials",
    "authorize_jwt_exchange",
    "authorize_service",
    "cluster_exchange",
    "decode",
    "get_admin_organizations",
    "get_admin_profile",
    "get_organizations",
    "get_profile",
    "invalidate_token",
    "obo_exchange",
    "refresh",
    "register",
    "validate_token",
    # Tokens
    "DecodedToken",
    "build_jwt_assertion",
    "decode_token",
]
