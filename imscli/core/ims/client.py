"""IMS client implementation.

Provides an httpx based client for the IMS REST API: the authorization
endpoint used by the interactive login, the token endpoints for every
supported grant, token validation and invalidation, profile and
organization lookups and dynamic client registration.
"""

from __future__ import annotations

import base64
import hashlib
import json
import secrets
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from urllib.parse import urlencode, urlparse

import httpx

from imscli.core.errors import ClientCreationError
from imscli.core.logging import LoggingClient, ProtocolLogger, get_protocol_logger

AUTHORIZE_PATH = "/ims/authorize/v2"
TOKEN_PATH = "/ims/token/v3"
# On-Behalf-Of exchange is only available on token v4
TOKEN_V4_PATH = "/ims/token/v4"
JWT_EXCHANGE_PATH = "/ims/exchange/jwt"
VALIDATE_PATH = "/ims/validate_token/v1"
INVALIDATE_PATH = "/ims/invalidate_token/v2"
REGISTER_PATH = "/ims/register"

OBO_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:token-exchange"
ACCESS_TOKEN_TYPE_URN = "urn:ietf:params:oauth:token-type:access_token"


def generate_code_verifier(length: int = 64) -> str:
    """Generate a PKCE code verifier.

    The code verifier is a high-entropy cryptographic random string
    between 43 and 128 characters, using unreserved URI characters.

    Args:
        length: Length of the verifier (43-128, default 64).

    Returns:
        URL-safe base64-encoded random string.
    """
    # Clamp length to valid range per RFC 7636
    length = max(43, min(128, length))
    num_bytes = (length * 3) // 4 + 1
    verifier = base64.urlsafe_b64encode(secrets.token_bytes(num_bytes)).decode("ascii")
    return verifier.rstrip("=")[:length]


def generate_code_challenge(code_verifier: str) -> str:
    """Generate an S256 PKCE code challenge from a code verifier."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def is_absolute_url(url: str) -> bool:
    """Check that a URL parses and has both a scheme and a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc)


class TokenType(StrEnum):
    """Token kinds accepted by the validate and invalidate endpoints."""

    ACCESS_TOKEN = "access_token"
    REFRESH_TOKEN = "refresh_token"
    DEVICE_TOKEN = "device_token"
    AUTHORIZATION_CODE = "authorization_code"
    SERVICE_TOKEN = "service_token"


@dataclass
class AuthorizationURL:
    """An authorization endpoint URL and the state needed to complete it."""

    url: str
    state: str
    redirect_uri: str
    code_verifier: str | None = None  # For PKCE
    code_challenge: str | None = None  # For PKCE


@dataclass
class TokenResponse:
    """Represents an IMS token endpoint response."""

    access_token: str
    token_type: str
    expires_in: int | None = None
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None

    # Raw response for debugging
    raw_response: dict[str, Any] = field(default_factory=dict)

    # Error information
    status_code: int | None = None
    error: str | None = None
    error_description: str | None = None

    @property
    def is_success(self) -> bool:
        """Check if the token response is successful."""
        return self.error is None and bool(self.access_token)

    @property
    def expires_ms(self) -> int:
        """Token lifetime in milliseconds (IMS reports seconds)."""
        return (self.expires_in or 0) * 1000


@dataclass
class APIResponse:
    """Represents a non-token IMS API response.

    The body is kept verbatim; commands print it as (pretty) JSON.
    """

    status_code: int
    body: str = ""

    # Error information
    error: str | None = None
    error_description: str | None = None

    @property
    def is_success(self) -> bool:
        """Check if the request succeeded."""
        return self.error is None and 200 <= self.status_code < 300

    def json(self) -> Any:
        """Parse the body as JSON."""
        return json.loads(self.body)


def _error_fields(response: httpx.Response, default_error: str) -> tuple[str, str]:
    """Extract OAuth style error/error_description from an error response."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        return (
            str(data.get("error", default_error)),
            str(
                data.get(
                    "error_description",
                    f"Request failed with status {response.status_code}: {response.text}",
                )
            ),
        )
    return default_error, f"Request failed with status {response.status_code}: {response.text}"


class IMSClient:
    """Client for the IMS REST API.

    Every call goes through a ``LoggingClient`` so HTTP traffic is captured
    by the protocol logger with secrets redacted.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        proxy_url: str | None = None,
        proxy_ignore_tls: bool = False,
        protocol_logger: ProtocolLogger | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the IMS client.

        Args:
            base_url: IMS base URL, e.g. https://ims-na1.adobelogin.com.
            timeout: HTTP timeout in seconds.
            proxy_url: Optional http(s)://host:port proxy.
            proxy_ignore_tls: Skip TLS verification (only honored with a proxy).
            protocol_logger: Optional protocol logger for HTTP traffic capture.
            transport: Optional httpx transport (used by tests).

        Raises:
            ClientCreationError: If the base URL or proxy URL is malformed.
        """
        if not is_absolute_url(base_url):
            raise ClientCreationError(f"invalid IMS base URL: {base_url!r}")
        if proxy_url and not is_absolute_url(proxy_url):
            raise ClientCreationError("proxy provided but its URL is malformed")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.proxy_url = proxy_url or None
        self.proxy_ignore_tls = proxy_ignore_tls
        self._transport = transport
        self._protocol_logger = protocol_logger or get_protocol_logger()
        self._http_client: LoggingClient | None = None

    @property
    def http_client(self) -> LoggingClient:
        """Get or create HTTP client with logging."""
        if self._http_client is None:
            kwargs: dict[str, Any] = {"timeout": self.timeout}
            if self.proxy_url:
                kwargs["proxy"] = self.proxy_url
                kwargs["verify"] = not self.proxy_ignore_tls
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._http_client = LoggingClient(protocol_logger=self._protocol_logger, **kwargs)
        return self._http_client

    @property
    def protocol_logger(self) -> ProtocolLogger:
        """Get the protocol logger."""
        return self._protocol_logger

    def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def __enter__(self) -> IMSClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    # Authorization code grant

    def authorization_url(
        self,
        client_id: str,
        scopes: list[str],
        redirect_uri: str,
        use_pkce: bool = False,
        state: str | None = None,
        additional_params: dict[str, str] | None = None,
    ) -> AuthorizationURL:
        """Build the authorization endpoint URL for the user login.

        Args:
            client_id: IMS client ID.
            scopes: Scopes to request.
            redirect_uri: Local callback URI.
            use_pkce: Whether to add an S256 PKCE challenge.
            state: OAuth2 state parameter (generated if not provided).
            additional_params: Additional query parameters.

        Returns:
            AuthorizationURL with the URL, state and PKCE verifier.
        """
        state = state or secrets.token_urlsafe(32)

        params: dict[str, str] = {
            "client_id": client_id,
            "scope": ",".join(scopes),
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "state": state,
        }

        code_verifier: str | None = None
        code_challenge: str | None = None
        if use_pkce:
            code_verifier = generate_code_verifier()
            code_challenge = generate_code_challenge(code_verifier)
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "S256"

        if additional_params:
            params.update(additional_params)

        return AuthorizationURL(
            url=f"{self._url(AUTHORIZE_PATH)}?{urlencode(params)}",
            state=state,
            redirect_uri=redirect_uri,
            code_verifier=code_verifier,
            code_challenge=code_challenge,
        )

    def exchange_code(
        self,
        client_id: str,
        code: str,
        client_secret: str | None = None,
        code_verifier: str | None = None,
    ) -> TokenResponse:
        """Exchange an authorization code for tokens.

        Args:
            client_id: IMS client ID.
            code: Authorization code from the callback.
            client_secret: Client secret (confidential clients).
            code_verifier: PKCE code verifier (public clients).

        Returns:
            TokenResponse with access token, refresh token, etc.
        """
        data: dict[str, str] = {
            "grant_type": "authorization_code",
            "client_id": client_id,
            "code": code,
        }
        if client_secret:
            data["client_secret"] = client_secret
        if code_verifier:
            data["code_verifier"] = code_verifier

        return self._token_request(self._url(TOKEN_PATH), data, "token exchange")

    # Other grants

    def client_credentials(self, client_id: str, client_secret: str, scopes: list[str]) -> TokenResponse:
        """Execute the Client Credentials grant."""
        data = {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
            "scope": ",".join(scopes),
        }
        return self._token_request(self._url(TOKEN_PATH), data, "client credentials request")

    def refresh(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        scopes: list[str] | None = None,
    ) -> TokenResponse:
        """Exchange a refresh token for a new access token."""
        data = {
            "grant_type": "refresh_token",
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
        }
        if scopes:
            data["scope"] = ",".join(scopes)
        return self._token_request(self._url(TOKEN_PATH), data, "token refresh")

    def cluster_exchange(
        self,
        client_id: str,
        client_secret: str,
        user_token: str,
        user_id: str = "",
        org_id: str = "",
        scopes: list[str] | None = None,
    ) -> TokenResponse:
        """Exchange a user token for a token in another IMS cluster/organization."""
        data = {
            "grant_type": "cluster_at_exchange",
            "client_id": client_id,
            "client_secret": client_secret,
            "user_token": user_token,
        }
        if user_id:
            data["user_id"] = user_id
        if org_id:
            data["org_id"] = org_id
        if scopes:
            data["scope"] = ",".join(scopes)
        return self._token_request(self._url(TOKEN_PATH), data, "cluster exchange")

    def obo_exchange(
        self,
        client_id: str,
        client_secret: str,
        subject_token: str,
        scopes: list[str],
    ) -> TokenResponse:
        """Perform the RFC 8693 On-Behalf-Of token exchange."""
        data = {
            "grant_type": OBO_GRANT_TYPE,
            "client_id": client_id,
            "client_secret": client_secret,
            "subject_token": subject_token,
            "subject_token_type": ACCESS_TOKEN_TYPE_URN,
            "requested_token_type": ACCESS_TOKEN_TYPE_URN,
            "scope": ",".join(scopes),
        }
        url = f"{self._url(TOKEN_V4_PATH)}?{urlencode({'client_id': client_id})}"
        return self._token_request(url, data, "On-Behalf-Of exchange")

    def exchange_jwt(self, client_id: str, client_secret: str, jwt_token: str) -> TokenResponse:
        """Exchange a signed JWT assertion for an access token."""
        data = {
            "client_id": client_id,
            "client_secret": client_secret,
            "jwt_token": jwt_token,
        }
        return self._token_request(self._url(JWT_EXCHANGE_PATH), data, "JWT exchange")

    def _token_request(self, url: str, data: dict[str, str], action: str) -> TokenResponse:
        """POST a form to a token endpoint and parse the response."""
        try:
            response = self.http_client.post(url, data=data, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            return TokenResponse(
                access_token="",
                token_type="",
                error="http_error",
                error_description=f"HTTP error during {action}: {e}",
            )

        if response.status_code != 200:
            error, description = _error_fields(response, "token_error")
            return TokenResponse(
                access_token="",
                token_type="",
                status_code=response.status_code,
                error=error,
                error_description=description,
            )

        try:
            response_data = response.json()
        except ValueError as e:
            return TokenResponse(
                access_token="",
                token_type="",
                status_code=response.status_code,
                error="invalid_response",
                error_description=f"Unable to decode {action} response: {e}",
            )
        if not isinstance(response_data, dict):
            return TokenResponse(
                access_token="",
                token_type="",
                status_code=response.status_code,
                error="invalid_response",
                error_description=f"{action} response is not a JSON object",
            )
        if not response_data.get("access_token"):
            return TokenResponse(
                access_token="",
                token_type="",
                raw_response=response_data,
                status_code=response.status_code,
                error=response_data.get("error") or "invalid_response",
                error_description=response_data.get("error_description") or f"{action} response has no access token",
            )

        return TokenResponse(
            access_token=response_data["access_token"],
            token_type=response_data.get("token_type", "bearer"),
            expires_in=response_data.get("expires_in"),
            refresh_token=response_data.get("refresh_token"),
            id_token=response_data.get("id_token"),
            scope=response_data.get("scope"),
            raw_response=response_data,
            status_code=response.status_code,
        )

    # Token validation

    def validate_token(self, token: str, token_type: TokenType, client_id: str) -> APIResponse:
        """Ask IMS whether a token is valid."""
        params = {"type": str(token_type), "client_id": client_id, "token": token}
        return self._api_request("GET", self._url(VALIDATE_PATH), "token validation", params=params)

    def invalidate_token(
        self,
        token: str,
        token_type: TokenType,
        client_id: str,
        cascading: bool = False,
        client_secret: str | None = None,
    ) -> APIResponse:
        """Invalidate a token; with cascading, tokens derived from it too."""
        data = {
            "type": str(token_type),
            "client_id": client_id,
            "token": token,
            "cascading": "all" if cascading else "",
        }
        if client_secret:
            data["client_secret"] = client_secret
        return self._api_request("POST", self._url(INVALIDATE_PATH), "token invalidation", data=data)

    # Profile and organizations

    def get_profile(self, access_token: str, api_version: str) -> APIResponse:
        """Fetch the profile of the token's user."""
        return self._api_request(
            "GET",
            self._url(f"/ims/profile/{api_version}"),
            "profile request",
            headers={"Authorization": f"Bearer {access_token}"},
        )

    def get_organizations(self, access_token: str, api_version: str) -> APIResponse:
        """Fetch the organizations of the token's user."""
        return self._api_request(
            "GET",
            self._url(f"/ims/organizations/{api_version}"),
            "organizations request",
            headers={"Authorization": f"Bearer {access_token}"},
        )

    def get_admin_profile(
        self,
        service_token: str,
        api_version: str,
        client_id: str,
        guid: str,
        auth_src: str,
    ) -> APIResponse:
        """Fetch any user's profile through the admin API."""
        return self._api_request(
            "GET",
            self._url(f"/ims/admin_profile/{api_version}"),
            "admin profile request",
            headers={"Authorization": f"Bearer {service_token}"},
            params={"client_id": client_id, "userId": guid, "auth_src": auth_src},
        )

    def get_admin_organizations(
        self,
        service_token: str,
        api_version: str,
        client_id: str,
        guid: str,
        auth_src: str,
    ) -> APIResponse:
        """Fetch any user's organizations through the admin API."""
        return self._api_request(
            "GET",
            self._url(f"/ims/admin_organizations/{api_version}"),
            "admin organizations request",
            headers={"Authorization": f"Bearer {service_token}"},
            params={"client_id": client_id, "userId": guid, "auth_src": auth_src},
        )

    # Dynamic client registration

    def register(self, client_name: str, redirect_uris: list[str]) -> APIResponse:
        """Register a new OAuth2 client (RFC 7591)."""
        return self._api_request(
            "POST",
            self._url(REGISTER_PATH),
            "client registration",
            json={"client_name": client_name, "redirect_uris": redirect_uris},
        )

    def _api_request(self, method: str, url: str, action: str, **kwargs: Any) -> APIResponse:
        """Send a request and wrap the outcome in an APIResponse."""
        headers = {"Accept": "application/json", **kwargs.pop("headers", {})}
        try:
            response = self.http_client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            return APIResponse(
                status_code=0,
                error="http_error",
                error_description=f"HTTP error during {action}: {e}",
            )

        if not response.is_success:
            error, description = _error_fields(response, f"{action.replace(' ', '_')}_error")
            return APIResponse(
                status_code=response.status_code,
                body=response.text,
                error=error,
                error_description=description,
            )

        return APIResponse(status_code=response.status_code, body=response.text)
