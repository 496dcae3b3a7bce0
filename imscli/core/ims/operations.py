"""IMS operations behind the imscli commands.

Each operation checks its required parameters, performs a single IMS call
and turns the response into a small result object. Parameter problems
raise ValidationError before any request is sent; failed calls raise
IMSRequestError.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import json
import logging
import zlib
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from imscli.core.config import ImsParams
from imscli.core.errors import ClientCreationError, IMSRequestError, ValidationError
from imscli.core.ims.client import APIResponse, IMSClient, TokenResponse, TokenType, is_absolute_url
from imscli.core.ims.tokens import DecodedToken, build_jwt_assertion, decode_token

logger = logging.getLogger(__name__)

PROFILE_API_VERSIONS = ("v1", "v2", "v3")
ADMIN_ORGS_API_VERSIONS = ("v1", "v2", "v3", "v4", "v5", "v6")

# Product contexts whose fulfillable_data holds a gzipped instance ID
FULFILLABLE_DATA_SERVICE_CODES = frozenset(
    {"dma_media_library", "dma_aem_cloud", "dma_aem_contenthub", "dx_genstudio"}
)

OBO_INVALID_SCOPE_HINT = (
    "IMS may be rejecting the subject token's scopes for this client. Ensure the client has "
    "Token exchange enabled and allowed scopes in the portal, or try a user token obtained "
    "with fewer scopes."
)


@dataclass
class TokenInfo:
    """A token returned by one of the grant operations."""

    access_token: str
    # Lifetime in milliseconds
    expires: int = 0
    refresh_token: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        data: dict[str, Any] = {"access_token": self.access_token, "expires": self.expires}
        if self.refresh_token:
            data["refresh_token"] = self.refresh_token
        return data


@dataclass
class TokenValidation:
    """Result of a token validation request."""

    valid: bool
    info: str


@contextmanager
def _parameters_for(action: str) -> Iterator[None]:
    """Prefix validation errors raised in the block with the operation name."""
    try:
        yield
    except ValidationError as e:
        raise ValidationError(f"invalid parameters for {action}: {e}", field=e.field) from e


def _require(value: Any, message: str, field: str) -> None:
    if not value:
        raise ValidationError(message, field=field)


def _require_url(params: ImsParams) -> None:
    _require(params.url, "missing IMS base URL parameter", "url")


def _require_scopes(scopes: list[str], message: str = "missing scopes parameter") -> None:
    if not scopes or (len(scopes) == 1 and scopes[0] == ""):
        raise ValidationError(message, field="scopes")


def create_client(params: ImsParams) -> IMSClient:
    """Build an IMS client from the connection parameters.

    Raises:
        ClientCreationError: If the base URL or the proxy URL is malformed.
    """
    try:
        return IMSClient(
            params.url,
            timeout=params.timeout,
            proxy_url=params.proxy_url or None,
            proxy_ignore_tls=params.proxy_ignore_tls,
        )
    except ClientCreationError as e:
        raise ClientCreationError(f"error creating the IMS client: {e}") from e


def _token_info(response: TokenResponse, action: str) -> TokenInfo:
    if not response.is_success:
        raise IMSRequestError(
            f"error during {action}: {response.error}: {response.error_description}",
            status_code=response.status_code,
            error=response.error,
        )
    return TokenInfo(
        access_token=response.access_token,
        expires=response.expires_ms,
        refresh_token=response.refresh_token,
    )


def _body(response: APIResponse, action: str) -> str:
    if not response.is_success:
        raise IMSRequestError(
            f"error during {action}: {response.error}: {response.error_description}",
            status_code=response.status_code,
            error=response.error,
        )
    return response.body


# Grants


def authorize_service(params: ImsParams) -> TokenInfo:
    """Exchange an authorization code obtained out of band (service to service flow)."""
    with _parameters_for("service authorization"):
        _require_url(params)
        _require(params.client_id, "missing client ID parameter", "clientID")
        _require(params.client_secret, "missing client secret parameter", "clientSecret")
        _require(params.authorization_code, "missing authorization code parameter", "authorizationCode")

    with create_client(params) as client:
        response = client.exchange_code(
            params.client_id,
            params.authorization_code,
            client_secret=params.client_secret,
        )
    return _token_info(response, "the service authorization")


def authorize_client_credentials(params: ImsParams) -> TokenInfo:
    """Execute the Client Credentials grant."""
    with _parameters_for("client credentials authorization"):
        _require_url(params)
        _require(params.client_id, "missing client ID parameter", "clientID")
        _require(params.client_secret, "missing client secret parameter", "clientSecret")
        _require_scopes(params.scopes)

    with create_client(params) as client:
        response = client.client_credentials(params.client_id, params.client_secret, params.scopes)
    return _token_info(response, "the client credentials authorization")


def authorize_jwt_exchange(params: ImsParams) -> TokenInfo:
    """Sign a JWT assertion with the integration's private key and exchange it.

    Raises:
        ValidationError: If a parameter is missing or the key cannot be read.
        IMSRequestError: If IMS rejects the assertion.
    """
    with _parameters_for("JWT authorization"):
        _require_url(params)
        _require(params.client_id, "missing client ID parameter", "clientID")
        _require(params.client_secret, "missing client secret parameter", "clientSecret")
        _require(params.organization, "missing organization parameter", "organization")
        _require(params.account, "missing technical account parameter", "account")
        _require(params.private_key_path, "missing private key file parameter", "privateKey")
        _require_scopes(params.metascopes, "missing metascopes parameter")

    try:
        private_key = Path(params.private_key_path).read_bytes()
    except OSError as e:
        raise ValidationError(f"read private key file: {e}", field="privateKey") from e

    assertion = build_jwt_assertion(
        private_key,
        params.url,
        params.organization,
        params.account,
        params.client_id,
        params.metascopes,
    )

    with create_client(params) as client:
        response = client.exchange_jwt(params.client_id, params.client_secret, assertion)
    return _token_info(response, "the JWT exchange")


def refresh(params: ImsParams) -> TokenInfo:
    """Exchange a refresh token for new access and refresh tokens."""
    with _parameters_for("token refresh"):
        _require_url(params)
        _require(params.client_id, "missing client ID parameter", "clientID")
        _require(params.client_secret, "missing client secret parameter", "clientSecret")
        _require(params.refresh_token, "missing refresh token parameter", "refreshToken")

    with create_client(params) as client:
        response = client.refresh(
            params.client_id,
            params.client_secret,
            params.refresh_token,
            scopes=[scope for scope in params.scopes if scope],
        )
    return _token_info(response, "the token refresh")


def cluster_exchange(params: ImsParams) -> TokenInfo:
    """Exchange an access token for one with another user ID or organization."""
    with _parameters_for("cluster exchange"):
        _require_url(params)
        _require(params.client_id, "missing client ID parameter", "clientID")
        _require(params.client_secret, "missing client secret parameter", "clientSecret")
        _require(params.access_token, "missing access token parameter", "accessToken")
        if params.user_id and params.organization:
            raise ValidationError(
                "can't perform the request with user ID and IMS Organization at the same time",
                field="userID",
            )
        if not params.user_id and not params.organization:
            raise ValidationError("missing user ID or IMS Organization parameter", field="userID")

    with create_client(params) as client:
        response = client.cluster_exchange(
            params.client_id,
            params.client_secret,
            params.access_token,
            user_id=params.user_id,
            org_id=params.organization,
            scopes=[scope for scope in params.scopes if scope],
        )
    return _token_info(response, "the cluster exchange")


def obo_exchange(params: ImsParams) -> TokenInfo:
    """Perform the On-Behalf-Of exchange of a user access token.

    Only user access tokens are accepted as the subject token, and the
    requested scopes cannot exceed the client's configured scopes.
    """
    with _parameters_for("On-Behalf-Of exchange"):
        _require_url(params)
        _require(params.client_id, "missing client ID parameter", "clientID")
        _require(params.client_secret, "missing client secret parameter", "clientSecret")
        _require(
            params.access_token,
            "missing access token parameter (only access tokens are accepted)",
            "accessToken",
        )
        _require_scopes(params.scopes, "scopes are required for On-Behalf-Of exchange")

    with create_client(params) as client:
        response = client.obo_exchange(
            params.client_id,
            params.client_secret,
            params.access_token,
            params.scopes,
        )

    if not response.is_success:
        message = (
            f"On-Behalf-Of exchange failed (status {response.status_code}): "
            f"{response.error}: {response.error_description}"
        )
        if response.status_code == 400 and "invalid_scope" in message:
            message = f"{message}. {OBO_INVALID_SCOPE_HINT}"
        raise IMSRequestError(message, status_code=response.status_code, error=response.error)
    return _token_info(response, "the On-Behalf-Of exchange")


# Token validation


def _select_token(params: ImsParams, candidates: list[tuple[str, TokenType]]) -> tuple[str, TokenType] | None:
    """Pick the first token present, in precedence order."""
    for attribute, token_type in candidates:
        token = getattr(params, attribute)
        if token:
            logger.info(f"{token_type.replace('_', ' ')} selected")
            return token, token_type
    return None


def validate_token(params: ImsParams) -> TokenValidation:
    """Ask IMS whether a token is valid.

    The token kind follows the precedence access token, refresh token,
    device token, authorization code.
    """
    with _parameters_for("token validation"):
        _require(params.client_id, "missing client ID parameter", "clientID")
        _require_url(params)
        selected = _select_token(
            params,
            [
                ("access_token", TokenType.ACCESS_TOKEN),
                ("refresh_token", TokenType.REFRESH_TOKEN),
                ("device_token", TokenType.DEVICE_TOKEN),
                ("authorization_code", TokenType.AUTHORIZATION_CODE),
            ],
        )
        if selected is None:
            raise ValidationError("no token type has been found for validation", field="token")

    token, token_type = selected
    with create_client(params) as client:
        response = client.validate_token(token, token_type, params.client_id)
    body = _body(response, "token validation")

    try:
        valid = bool(response.json().get("valid", False))
    except (ValueError, AttributeError):
        valid = False
    return TokenValidation(valid=valid, info=body)


def invalidate_token(params: ImsParams) -> None:
    """Invalidate a token.

    The token kind follows the precedence access token, refresh token,
    device token, service token. Service tokens also need the client secret.
    """
    with _parameters_for("token invalidation"):
        _require(params.client_id, "missing client ID parameter", "clientID")
        _require_url(params)
        selected = _select_token(
            params,
            [
                ("access_token", TokenType.ACCESS_TOKEN),
                ("refresh_token", TokenType.REFRESH_TOKEN),
                ("device_token", TokenType.DEVICE_TOKEN),
                ("service_token", TokenType.SERVICE_TOKEN),
            ],
        )
        if selected is None:
            raise ValidationError("no token has been found for invalidation", field="token")
        if selected[1] is TokenType.SERVICE_TOKEN and not params.client_secret:
            raise ValidationError(
                "missing client secret, mandatory to invalidate service token",
                field="clientSecret",
            )

    token, token_type = selected
    with create_client(params) as client:
        response = client.invalidate_token(
            token,
            token_type,
            params.client_id,
            cascading=params.cascading,
            client_secret=params.client_secret or None,
        )
    _body(response, "token invalidation")


# Profile and organizations


def get_profile(params: ImsParams) -> str:
    """Fetch the profile of the access token's user.

    With ``decode_fulfillable_data`` set, the gzipped instance IDs in the
    product contexts are decoded in place.
    """
    with _parameters_for("profile"):
        if params.profile_api_version not in PROFILE_API_VERSIONS:
            raise ValidationError(
                "invalid API version parameter, latest version is v3", field="profileApiVersion"
            )
        _require(params.access_token, "missing access token parameter", "accessToken")
        _require_url(params)

    with create_client(params) as client:
        response = client.get_profile(params.access_token, params.profile_api_version)
    body = _body(response, "profile request")

    if not params.decode_fulfillable_data:
        return body
    return decode_profile(body)


def decode_profile(body: str) -> str:
    """Decode every fulfillable_data entry of a profile document.

    Raises:
        IMSRequestError: If the profile is not JSON.
    """
    try:
        profile = json.loads(body)
    except json.JSONDecodeError as e:
        raise IMSRequestError(f"error parsing profile JSON: {e}") from e
    _decode_fulfillable_data(profile)
    return json.dumps(profile)


def _decode_fulfillable_data(data: Any) -> None:
    if isinstance(data, list):
        for item in data:
            _decode_fulfillable_data(item)
        return
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if key != "fulfillable_data":
            _decode_fulfillable_data(value)
            continue
        if data.get("serviceCode") not in FULFILLABLE_DATA_SERVICE_CODES or not isinstance(value, str):
            continue
        try:
            data[key] = decode_instance_id(value)
        except ValueError as e:
            logger.warning(f"Error decoding fulfillable_data: {e}")


def decode_instance_id(fulfillable_data: str) -> str:
    """Extract the instance ID from a base64, gzipped JSON ``{"iid": ...}`` value.

    Raises:
        ValueError: If any decoding step fails.
    """
    stripped = fulfillable_data.replace('"', "", 2)
    try:
        compressed = base64.b64decode(stripped, validate=True)
    except binascii.Error as e:
        raise ValueError(f"unable to base64 decode fulfillable_data: {e}") from e
    try:
        document = json.loads(gzip.decompress(compressed))
    except (OSError, EOFError, zlib.error) as e:
        raise ValueError(f"unable to gunzip fulfillable_data: {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"unable to unmarshall the fulfillable_data: {e}") from e
    if not isinstance(document, dict):
        raise ValueError("unable to unmarshall the fulfillable_data: not an object")
    return str(document.get("iid", ""))


def get_organizations(params: ImsParams) -> str:
    """Fetch the organizations of the access token's user."""
    with _parameters_for("organizations"):
        _require(params.access_token, "missing access token parameter", "accessToken")
        _require_url(params)
        _require(params.orgs_api_version, "missing API version parameter", "orgsApiVersion")

    with create_client(params) as client:
        response = client.get_organizations(params.access_token, params.orgs_api_version)
    return _body(response, "organizations request")


def _validate_admin_params(params: ImsParams) -> None:
    _require(params.service_token, "missing service token parameter", "serviceToken")
    _require_url(params)
    _require(params.client_id, "missing client ID parameter", "clientID")
    _require(params.guid, "missing guid parameter", "guid")
    _require(params.auth_src, "missing auth source parameter", "authSrc")


def get_admin_profile(params: ImsParams) -> str:
    """Fetch any user's profile with a service token."""
    with _parameters_for("admin profile"):
        if params.profile_api_version not in PROFILE_API_VERSIONS:
            raise ValidationError(
                "invalid API version parameter, latest version is v3", field="profileApiVersion"
            )
        _validate_admin_params(params)

    with create_client(params) as client:
        response = client.get_admin_profile(
            params.service_token,
            params.profile_api_version,
            params.client_id,
            params.guid,
            params.auth_src,
        )
    return _body(response, "admin profile request")


def get_admin_organizations(params: ImsParams) -> str:
    """Fetch any user's organizations with a service token."""
    with _parameters_for("admin organizations"):
        if params.orgs_api_version not in ADMIN_ORGS_API_VERSIONS:
            raise ValidationError(
                "invalid API version parameter, latest version is v6", field="orgsApiVersion"
            )
        _validate_admin_params(params)

    with create_client(params) as client:
        response = client.get_admin_organizations(
            params.service_token,
            params.orgs_api_version,
            params.client_id,
            params.guid,
            params.auth_src,
        )
    return _body(response, "admin organizations request")


# Dynamic client registration


def register(params: ImsParams) -> str:
    """Register a client dynamically and return the IMS response body.

    The body is returned for any HTTP status, since IMS explains a rejected
    registration in it; only transport failures raise.
    """
    with _parameters_for("client registration"):
        _require_url(params)
        if not is_absolute_url(params.url):
            raise ValidationError("invalid IMS base URL parameter", field="url")
        _require(params.client_name, "missing client name parameter", "clientName")
        _require(
            [uri for uri in params.redirect_uris if uri],
            "missing redirect URIs parameter",
            "redirectURIs",
        )

    with create_client(params) as client:
        response = client.register(params.client_name, params.redirect_uris)
    if response.status_code == 0:
        raise IMSRequestError(f"error making registration request: {response.error_description}")
    return response.body


# Local decoding


def decode(params: ImsParams) -> DecodedToken:
    """Decode the token parameter locally."""
    return decode_token(params.token)
