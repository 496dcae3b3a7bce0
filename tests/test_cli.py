"""Tests for the CLI commands."""

import json

import jwt
import pytest
import yaml

from imscli import __version__
from imscli.cli import authorize as authorize_commands
from imscli.cli.main import cli
from imscli.core.errors import AuthorizationTimeoutError
from imscli.core.logging import configure_logging

IMS_URL = "https://ims.example.com"

TOKEN_BODY = {"access_token": "tok-123", "token_type": "bearer", "expires_in": 86399}


@pytest.fixture(autouse=True)
def silence_logging():
    """Detach handlers bound to the runner's streams once the test is done."""
    yield
    configure_logging()


def invoke(runner, *args, **kwargs):
    return runner.invoke(cli, ["--url", IMS_URL, *args], **kwargs)


class TestMain:
    """Tests for the root command."""

    def test_version(self, runner):
        """Test the version option."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands_and_aliases(self, runner):
        """Test the help of the root command."""
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "a tool to interact with Adobe IMS" in result.output
        for command in ("authorize", "validate", "invalidate", "exchange", "decode", "refresh", "dcr"):
            assert command in result.output
        assert "Aliases" in result.output

    def test_alias(self, runner):
        """Test that a command alias resolves to the command."""
        result = runner.invoke(cli, ["authz", "--help"])

        assert result.exit_code == 0
        assert "Negotiate an access token with IMS" in result.output

    def test_unknown_command(self, runner):
        """Test that an unknown command is a usage error."""
        result = runner.invoke(cli, ["frobnicate"])
        assert result.exit_code == 2

    def test_missing_config_file(self, runner, tmp_path):
        """Test that an explicit configuration file must exist."""
        result = runner.invoke(cli, ["--configFile", str(tmp_path / "missing.yaml"), "config", "show"])

        assert result.exit_code == 1
        assert "unable to read configuration file" in result.output


class TestAuthorizeCommands:
    """Tests for the authorize commands."""

    @pytest.fixture
    def login_calls(self, monkeypatch):
        calls = []

        def fake_authorize_user(params, use_pkce=False):
            calls.append((params, use_pkce))
            return "user-tok"

        monkeypatch.setattr(authorize_commands, "authorize_user", fake_authorize_user)
        return calls

    def test_user(self, runner, login_calls):
        """Test that flags reach the login and only the token is printed."""
        result = invoke(
            runner,
            "authorize",
            "user",
            "-c",
            "my-client",
            "-p",
            "s3cr3t",
            "-o",
            "ORG@AdobeOrg",
            "-s",
            "openid,AdobeID",
            "-s",
            "profile",
            "-l",
            "9999",
        )

        assert result.exit_code == 0, result.output
        assert result.output == "user-tok\n"
        params, use_pkce = login_calls[0]
        assert use_pkce is False
        assert params.url == IMS_URL
        assert params.scopes == ["openid", "AdobeID", "profile"]
        assert params.port == 9999
        assert params.public_client is False

    def test_pkce_public_client(self, runner, login_calls):
        """Test the PKCE login of a public client."""
        result = invoke(
            runner, "authz", "pkce", "-c", "my-client", "-o", "ORG", "-s", "openid", "--publicClient"
        )

        assert result.exit_code == 0, result.output
        params, use_pkce = login_calls[0]
        assert use_pkce is True
        assert params.public_client is True

    def test_user_failure(self, runner, monkeypatch):
        """Test that a login failure exits with the error."""

        def timed_out(params, use_pkce=False):
            raise AuthorizationTimeoutError("error negotiating the authorization code: user timed out")

        monkeypatch.setattr(authorize_commands, "authorize_user", timed_out)

        result = invoke(runner, "authorize", "user")

        assert result.exit_code == 1
        assert "error in user authorization: error negotiating the authorization code: user timed out" in result.output

    def test_user_validation_error(self, runner):
        """Test that missing parameters fail before anything is started."""
        result = invoke(runner, "authorize", "user", "-c", "my-client")

        assert result.exit_code == 1
        assert "invalid parameters for login user: missing scopes parameter" in result.output

    def test_client_credentials(self, runner, fake_ims):
        """Test the client credentials command."""
        fake_ims.add("POST", "/ims/token/v3", json_body=TOKEN_BODY)

        result = invoke(runner, "authorize", "client", "-c", "my-client", "-p", "s3cr3t", "-s", "openid")

        assert result.exit_code == 0, result.output
        assert result.output == "tok-123\n"

    def test_client_credentials_full_output(self, runner, fake_ims):
        """Test the JSON output of the client credentials command."""
        fake_ims.add("POST", "/ims/token/v3", json_body=TOKEN_BODY)

        result = invoke(
            runner, "authorize", "client", "-c", "my-client", "-p", "s3cr3t", "-s", "openid", "--fullOutput"
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {"access_token": "tok-123", "expires": 86399000}


class TestTokenCommands:
    """Tests for the validate, invalidate, refresh and exchange commands."""

    def test_validate(self, runner, fake_ims):
        """Test validating an access token."""
        fake_ims.add("GET", "/ims/validate_token/v1", json_body={"valid": True, "expires_at": 1})

        result = invoke(runner, "val", "acc", "-t", "acc-tok", "-c", "my-client")

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {"valid": True, "expires_at": 1}

    def test_validate_invalid_token(self, runner, fake_ims):
        """Test that an invalid token exits with an error."""
        fake_ims.add("GET", "/ims/validate_token/v1", json_body={"valid": False})

        result = invoke(runner, "validate", "authorizationCode", "-t", "code", "-c", "my-client")

        assert result.exit_code == 1
        assert "invalid token" in result.output
        assert fake_ims.last_request.url.params["type"] == "authorization_code"

    def test_invalidate_cascading(self, runner, fake_ims):
        """Test invalidating a refresh token with its derived tokens."""
        fake_ims.add("POST", "/ims/invalidate_token/v2", text="")

        result = invoke(runner, "inv", "ref", "-t", "ref-tok", "-c", "my-client", "--cascading")

        assert result.exit_code == 0, result.output
        assert "Refresh token successfully invalidated." in result.output
        assert fake_ims.last_form()["cascading"] == "all"

    def test_invalidate_service_token_needs_secret(self, runner, fake_ims):
        """Test that service token invalidation requires the client secret."""
        result = invoke(runner, "invalidate", "serviceToken", "-t", "svc", "-c", "my-client")

        assert result.exit_code == 1
        assert "missing client secret, mandatory to invalidate service token" in result.output
        assert fake_ims.requests == []

    def test_refresh_full_output(self, runner, fake_ims):
        """Test the JSON output of the refresh command."""
        fake_ims.add("POST", "/ims/token/v3", json_body={**TOKEN_BODY, "refresh_token": "ref-new"})

        result = invoke(runner, "refresh", "-c", "my-client", "-p", "s3cr3t", "-t", "ref-old", "-F")

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {"access_token": "tok-123", "refresh_token": "ref-new"}

    def test_refresh_error(self, runner, fake_ims):
        """Test that a rejected refresh token is reported."""
        fake_ims.add("POST", "/ims/token/v3", status_code=400, json_body={"error": "invalid_grant"})

        result = invoke(runner, "refresh", "-c", "my-client", "-p", "s3cr3t", "-t", "ref-old")

        assert result.exit_code == 1
        assert "error during the token refresh" in result.output
        assert "invalid_grant" in result.output

    def test_cluster_exchange_conflicting_target(self, runner, fake_ims):
        """Test that user ID and organization cannot be combined."""
        result = invoke(
            runner, "exch", "cluster", "-c", "c", "-p", "s", "-t", "tok", "-o", "ORG", "-u", "user"
        )

        assert result.exit_code == 1
        assert "at the same time" in result.output

    def test_obo(self, runner, fake_ims):
        """Test the On-Behalf-Of exchange command."""
        fake_ims.add("POST", "/ims/token/v4", json_body=TOKEN_BODY)

        result = invoke(runner, "exchange", "obo", "-c", "c", "-p", "s", "-t", "user-tok", "-s", "openid")

        assert result.exit_code == 0, result.output
        assert result.output == "tok-123\n"


class TestInspectionCommands:
    """Tests for the profile, organizations, decode and dcr commands."""

    def test_profile(self, runner, fake_ims):
        """Test that the profile is printed as indented JSON."""
        fake_ims.add("GET", "/ims/profile/v3", json_body={"userId": "user@AdobeID"})

        result = invoke(runner, "profile", "-t", "acc-tok", "-a", "v3")

        assert result.exit_code == 0, result.output
        assert result.output == json.dumps({"userId": "user@AdobeID"}, indent=2) + "\n"

    def test_organizations_alias(self, runner, fake_ims):
        """Test the organizations command through its alias."""
        fake_ims.add("GET", "/ims/organizations/v5", json_body=[{"orgName": "Org"}])

        result = invoke(runner, "orgs", "-t", "acc-tok")

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == [{"orgName": "Org"}]

    def test_admin_profile(self, runner, fake_ims):
        """Test the admin profile command."""
        fake_ims.add("GET", "/ims/admin_profile/v1", json_body={"userId": "user"})

        result = invoke(runner, "admin", "profile", "-t", "svc", "-c", "c", "-g", "user", "-A", "AdobeID")

        assert result.exit_code == 0, result.output
        assert fake_ims.last_request.url.params["userId"] == "user"

    def test_decode(self, runner):
        """Test decoding a token locally."""
        token = jwt.encode({"sub": "user"}, "a-signing-secret-long-enough-for-hs256", algorithm="HS256")

        result = runner.invoke(cli, ["decode", "-t", token])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {
            "header": {"alg": "HS256", "typ": "JWT"},
            "payload": {"sub": "user"},
        }

    def test_decode_verbose_shows_expiration(self, runner):
        """Test that the expiration is reported in verbose mode."""
        token = jwt.encode(
            {"sub": "user", "exp": 1000000000}, "a-signing-secret-long-enough-for-hs256", algorithm="HS256"
        )

        result = runner.invoke(cli, ["-v", "dec", "-t", token])

        assert result.exit_code == 0, result.output
        assert "Token expired: 2001-09-09T01:46:40+00:00" in result.output

    def test_decode_malformed(self, runner):
        """Test that a malformed token is reported."""
        result = runner.invoke(cli, ["decode", "-t", "not-a-jwt"])

        assert result.exit_code == 1
        assert "error decoding the token: the JWT is not composed by 3 parts" in result.output

    def test_dcr_register(self, runner, fake_ims):
        """Test dynamic client registration."""
        fake_ims.add("POST", "/ims/register", status_code=201, json_body={"client_id": "new-client"})

        result = invoke(runner, "dcr", "register", "-n", "app", "-r", "https://app.example.com/cb")

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {"client_id": "new-client"}
        assert fake_ims.last_json()["redirect_uris"] == ["https://app.example.com/cb"]


class TestConfigCommands:
    """Tests for the config commands."""

    def test_init(self, runner, tmp_path):
        """Test writing the example configuration file."""
        path = tmp_path / "imscli.yaml"

        result = runner.invoke(cli, ["config", "init", "--path", str(path)])

        assert result.exit_code == 0, result.output
        assert yaml.safe_load(path.read_text())["port"] == 8888

    def test_init_refuses_overwrite(self, runner, tmp_path):
        """Test that an existing file is kept without --force."""
        path = tmp_path / "imscli.yaml"
        path.write_text("clientID: keep-me\n")

        result = runner.invoke(cli, ["config", "init", "--path", str(path)])

        assert result.exit_code == 1
        assert "already exists" in result.output
        assert path.read_text() == "clientID: keep-me\n"

    def test_show_masks_secrets(self, runner, tmp_path):
        """Test that the resolved parameters are shown with secrets masked."""
        path = tmp_path / "custom.yaml"
        path.write_text("clientID: my-client\nclientSecret: super-secret-value\n")

        result = runner.invoke(
            cli,
            ["--configFile", str(path), "config", "show"],
            env={"IMS_ORGANIZATION": "ORG@AdobeOrg"},
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["clientID"] == "my-client"
        assert data["clientSecret"] == "super-...(18 chars)"
        assert data["organization"] == "ORG@AdobeOrg"
        assert "super-secret-value" not in result.output
