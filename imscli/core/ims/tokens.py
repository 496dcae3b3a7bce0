"""JWT helpers.

Decodes tokens locally for inspection and builds the signed JWT assertion
used by the JWT bearer exchange.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from cryptography.hazmat.primitives import serialization

from imscli.core.errors import ValidationError

JWT_ASSERTION_LIFETIME = timedelta(minutes=30)


@dataclass
class DecodedToken:
    """Represents a decoded JWT token.

    ``header`` and ``payload`` hold the indented JSON text; the parsed claims
    are kept alongside for programmatic use.
    """

    header: str
    payload: str
    signature: str
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def expiration(self) -> datetime | None:
        """Expiration time of the token, if the claims carry one."""
        exp = self.claims.get("exp")
        if isinstance(exp, (int, float)):
            return datetime.fromtimestamp(exp, tz=UTC)

        # IMS access tokens carry created_at and expires_in, both in milliseconds
        created_at = self.claims.get("created_at")
        expires_in = self.claims.get("expires_in")
        try:
            return datetime.fromtimestamp((int(created_at) + int(expires_in)) / 1000, tz=UTC)
        except (TypeError, ValueError):
            return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "header": json.loads(self.header),
            "payload": self.claims,
            "signature": self.signature,
        }


def _decode_segment(segment: str, name: str) -> tuple[str, Any]:
    """Decode one base64url JSON segment into (indented text, parsed value)."""
    padding = -len(segment) % 4
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * padding)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"error decoding token {name}: {e}", field="token") from e
    try:
        value = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"error formatting token {name}: {e}", field="token") from e
    return json.dumps(value, indent=2, ensure_ascii=False), value


def decode_token(token: str) -> DecodedToken:
    """Decode a JWT without verifying its signature.

    Args:
        token: JWT token string.

    Returns:
        DecodedToken with pretty header and payload.

    Raises:
        ValidationError: If the token is empty, not three parts, or a part
            is not base64url JSON.
    """
    if not token:
        raise ValidationError(
            "incomplete parameters for token decodification: missing token parameter",
            field="token",
        )

    parts = token.split(".")
    if len(parts) != 3:
        raise ValidationError("the JWT is not composed by 3 parts", field="token")

    header, _ = _decode_segment(parts[0], "header")
    payload, claims = _decode_segment(parts[1], "payload")

    return DecodedToken(
        header=header,
        payload=payload,
        signature=parts[2],
        claims=claims if isinstance(claims, dict) else {},
    )


def build_jwt_assertion(
    private_key_pem: bytes,
    base_url: str,
    organization: str,
    account: str,
    client_id: str,
    metascopes: list[str],
    now: datetime | None = None,
) -> str:
    """Build the RS256 signed assertion for the JWT bearer exchange.

    Metascopes are passed as claims named ``<base_url>/s/<metascope>`` with
    the value ``true``.

    Args:
        private_key_pem: PEM encoded RSA private key of the integration.
        base_url: IMS base URL.
        organization: Issuer (IMS organization ID).
        account: Subject (technical account ID).
        client_id: IMS client ID, used in the audience.
        metascopes: Metascopes to request.
        now: Issue time (defaults to the current time).

    Returns:
        Encoded JWT.

    Raises:
        ValidationError: If the private key cannot be loaded.
    """
    try:
        private_key = serialization.load_pem_private_key(private_key_pem, password=None)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"unable to load private key: {e}", field="privateKey") from e

    base_url = base_url.rstrip("/")
    issued_at = now or datetime.now(UTC)

    claims: dict[str, Any] = {
        "exp": int((issued_at + JWT_ASSERTION_LIFETIME).timestamp()),
        "iss": organization,
        "sub": account,
        "aud": f"{base_url}/c/{client_id}",
    }
    for metascope in metascopes:
        claims[f"{base_url}/s/{metascope}"] = True

    return jwt.encode(claims, private_key, algorithm="RS256")  # type: ignore[arg-type]
