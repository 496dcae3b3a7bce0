"""Parameter configuration management.

Loads command parameters from a YAML configuration file and ``IMS_``
environment variables. Command line flags take precedence over both,
environment variables take precedence over the file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from imscli.core.errors import ValidationError

DEFAULT_URL = "https://ims-na1.adobelogin.com"
DEFAULT_PORT = 8888
DEFAULT_TIMEOUT = 30

# Default config locations, searched in order
DEFAULT_CONFIG_NAME = "imscli"
DEFAULT_CONFIG_DIRS = [Path("."), Path.home() / ".config"]
CONFIG_EXTENSIONS = (".yaml", ".yml")

# Environment variable prefix
ENV_PREFIX = "IMS_"


def _key(name: str) -> dict[str, str]:
    return {"key": name}


@dataclass
class ImsParams:
    """Every parameter understood by the imscli commands.

    Each field is bound to a configuration key, which is also the long flag
    name and, upper-cased with the ``IMS_`` prefix, the environment variable.
    """

    url: str = field(default=DEFAULT_URL, metadata=_key("url"))
    client_id: str = field(default="", metadata=_key("clientID"))
    client_secret: str = field(default="", metadata=_key("clientSecret"))
    service_token: str = field(default="", metadata=_key("serviceToken"))
    private_key_path: str = field(default="", metadata=_key("privateKey"))
    organization: str = field(default="", metadata=_key("organization"))
    account: str = field(default="", metadata=_key("account"))
    scopes: list[str] = field(default_factory=list, metadata=_key("scopes"))
    metascopes: list[str] = field(default_factory=list, metadata=_key("metascopes"))
    access_token: str = field(default="", metadata=_key("accessToken"))
    refresh_token: str = field(default="", metadata=_key("refreshToken"))
    device_token: str = field(default="", metadata=_key("deviceToken"))
    authorization_code: str = field(default="", metadata=_key("authorizationCode"))
    profile_api_version: str = field(default="v1", metadata=_key("profileApiVersion"))
    orgs_api_version: str = field(default="v5", metadata=_key("orgsApiVersion"))
    timeout: int = field(default=DEFAULT_TIMEOUT, metadata=_key("timeout"))
    proxy_url: str = field(default="", metadata=_key("proxyUrl"))
    proxy_ignore_tls: bool = field(default=False, metadata=_key("proxyIgnoreTLS"))
    public_client: bool = field(default=False, metadata=_key("publicClient"))
    user_id: str = field(default="", metadata=_key("userID"))
    cascading: bool = field(default=False, metadata=_key("cascading"))
    token: str = field(default="", metadata=_key("token"))
    port: int = field(default=DEFAULT_PORT, metadata=_key("port"))
    guid: str = field(default="", metadata=_key("guid"))
    auth_src: str = field(default="", metadata=_key("authSrc"))
    client_name: str = field(default="", metadata=_key("clientName"))
    redirect_uris: list[str] = field(default_factory=list, metadata=_key("redirectURIs"))
    decode_fulfillable_data: bool = field(default=False, metadata=_key("decodeFulfillableData"))
    full_output: bool = field(default=False, metadata=_key("fullOutput"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImsParams:
        """Create ImsParams from a dictionary keyed by configuration key."""
        return cls().apply(data, source="configuration file")

    def apply(self, data: dict[str, Any], source: str = "parameters") -> ImsParams:
        """Return a copy with the given configuration keys applied.

        Keys whose value is None are ignored so unset command flags never
        override a lower layer.

        Raises:
            ValidationError: If a key is unknown or a value has the wrong type.
        """
        by_key = {f.metadata["key"].lower(): f for f in fields(self)}
        changes: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            f = by_key.get(key.lower())
            if f is None:
                raise ValidationError(f"unknown parameter '{key}' in {source}", field=key)
            changes[f.name] = _coerce(f.name, f.default, value, source)
        return replace(self, **changes)


def _coerce(name: str, default: Any, value: Any, source: str) -> Any:
    """Convert a raw config/env value to the type of the field."""
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        return str(value).lower() in ("true", "1", "yes", "on")
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(
                f"invalid integer value '{value}' for {name} in {source}", field=name
            ) from None
    if isinstance(default, str):
        return str(value)
    # List fields
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(item) for item in value]


def _find_config_file() -> Path | None:
    """Locate the default configuration file, if one exists."""
    for directory in DEFAULT_CONFIG_DIRS:
        for ext in CONFIG_EXTENSIONS:
            candidate = directory / f"{DEFAULT_CONFIG_NAME}{ext}"
            if candidate.exists():
                return candidate
    return None


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ValidationError(f"unable to read configuration file: {e}") from e
    except yaml.YAMLError as e:
        raise ValidationError(f"unable to parse configuration file: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError(f"unable to parse configuration file: {path} is not a mapping")
    return data


def _env_values() -> dict[str, Any]:
    """Collect IMS_ environment variables for the known configuration keys."""
    values: dict[str, Any] = {}
    for f in fields(ImsParams):
        key = f.metadata["key"]
        env_value = os.environ.get(f"{ENV_PREFIX}{key.upper()}")
        if env_value:
            values[key] = env_value
    return values


def load_params(config_file: Path | str | None = None) -> ImsParams:
    """Load command parameters.

    Parameters are loaded in this order (later values override earlier):
    1. Default values
    2. Configuration file (explicit path, or imscli.yaml in the current
       directory or ~/.config)
    3. Environment variables (IMS_CLIENTID, IMS_SCOPES, ...)

    Command flags are applied by the caller with ``ImsParams.apply``.

    Args:
        config_file: Explicit configuration file. Must exist when given.

    Returns:
        ImsParams with merged settings.

    Raises:
        ValidationError: If an explicit file is missing or any file is invalid.
    """
    params = ImsParams()

    if config_file:
        path = Path(config_file)
        if not path.exists():
            raise ValidationError(f"unable to read configuration file: {path} not found")
    else:
        path = _find_config_file()

    if path is not None:
        params = params.apply(_read_config_file(path), source=str(path))

    return params.apply(_env_values(), source="environment")


def get_default_config_yaml() -> str:
    """Get an example imscli.yaml as a string."""
    return """\
# imscli configuration file
# Environment variables override these settings (prefix: IMS_, e.g. IMS_CLIENTID)
# Command line flags override both.

url: "https://ims-na1.adobelogin.com"

# clientID: "my-client"
# clientSecret: "..."
# organization: "ABCDEF0123456789@AdobeOrg"
# scopes:
#   - openid
#   - AdobeID

# Local port used by the authorization code callback server
port: 8888

# HTTP timeout in seconds
timeout: 30
"""
