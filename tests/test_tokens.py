"""Tests for local JWT decoding and the JWT assertion."""

import json
from datetime import UTC, datetime

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from imscli.core.errors import ValidationError
from imscli.core.ims.tokens import build_jwt_assertion, decode_token

IMS_URL = "https://ims.example.com"
SECRET = "a-signing-secret-long-enough-for-hs256"


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="module")
def rsa_key_pem(rsa_key) -> bytes:
    return rsa_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )


class TestDecodeToken:
    """Tests for decode_token."""

    def test_decode(self):
        """Test decoding header and payload without verifying the signature."""
        token = jwt.encode({"sub": "user", "exp": 2000000000}, SECRET, algorithm="HS256")

        decoded = decode_token(token)

        assert decoded.claims == {"sub": "user", "exp": 2000000000}
        assert json.loads(decoded.header) == {"alg": "HS256", "typ": "JWT"}
        assert decoded.payload == json.dumps(decoded.claims, indent=2)
        assert decoded.signature == token.split(".")[2]
        assert decoded.expiration == datetime.fromtimestamp(2000000000, tz=UTC)

    def test_ims_expiration(self):
        """Test the expiration computed from created_at and expires_in."""
        token = jwt.encode(
            {"created_at": "1700000000000", "expires_in": "86400000"}, SECRET, algorithm="HS256"
        )

        assert decode_token(token).expiration == datetime.fromtimestamp(1700086400, tz=UTC)

    def test_no_expiration(self):
        """Test a token without expiration claims."""
        token = jwt.encode({"sub": "user"}, SECRET, algorithm="HS256")
        assert decode_token(token).expiration is None

    def test_to_dict(self):
        """Test the dictionary form of a decoded token."""
        token = jwt.encode({"sub": "user"}, SECRET, algorithm="HS256")

        data = decode_token(token).to_dict()

        assert data["header"]["alg"] == "HS256"
        assert data["payload"] == {"sub": "user"}

    @pytest.mark.parametrize(
        ("token", "message"),
        [
            ("", "missing token parameter"),
            ("a.b", "the JWT is not composed by 3 parts"),
            ("a.b.c.d", "the JWT is not composed by 3 parts"),
            ("abcde.e30.sig", "error decoding token header"),
            ("e30.bm90IGpzb24.sig", "error formatting token payload"),
        ],
    )
    def test_invalid_token(self, token, message):
        """Test the errors for malformed tokens."""
        with pytest.raises(ValidationError, match=message):
            decode_token(token)


class TestJWTAssertion:
    """Tests for build_jwt_assertion."""

    def test_claims(self, rsa_key, rsa_key_pem):
        """Test the signed claims of the assertion."""
        now = datetime.now(UTC).replace(microsecond=0)

        assertion = build_jwt_assertion(
            rsa_key_pem,
            IMS_URL + "/",
            "ORG@AdobeOrg",
            "tech@techacct.adobe.com",
            "my-client",
            ["ent_dataservices_sdk", "ent_analytics_bulk_ingest_sdk"],
            now=now,
        )

        claims = jwt.decode(
            assertion,
            rsa_key.public_key(),
            algorithms=["RS256"],
            audience=f"{IMS_URL}/c/my-client",
        )
        assert claims["iss"] == "ORG@AdobeOrg"
        assert claims["sub"] == "tech@techacct.adobe.com"
        assert claims[f"{IMS_URL}/s/ent_dataservices_sdk"] is True
        assert claims[f"{IMS_URL}/s/ent_analytics_bulk_ingest_sdk"] is True
        assert claims["exp"] == int(now.timestamp()) + 30 * 60

    def test_invalid_key(self):
        """Test that a file that is not a PEM key is rejected."""
        with pytest.raises(ValidationError, match="unable to load private key"):
            build_jwt_assertion(b"not a key", IMS_URL, "ORG", "acc", "client", ["scope"])
