"""Pytest configuration and fixtures."""

import json
import os
import socket
from collections.abc import Generator
from functools import partial
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
from click.testing import CliRunner

from imscli.core import config as config_module
from imscli.core.config import ENV_PREFIX
from imscli.core.ims import operations
from imscli.core.ims.client import IMSClient
from imscli.core.logging import ProtocolLogger, set_protocol_logger

IMS_URL = "https://ims.example.com"


class FakeIMS:
    """Answers IMS requests with canned responses and records them."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], httpx.Response] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        status_code: int = 200,
        json_body: Any = None,
        text: str = "",
    ) -> None:
        """Register the response for a method and path."""
        if json_body is not None:
            self.routes[(method, path)] = httpx.Response(status_code, json=json_body)
        else:
            self.routes[(method, path)] = httpx.Response(status_code, text=text)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, json={"error": "not_found"})
        return httpx.Response(response.status_code, content=response.content, headers=response.headers)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    def last_form(self) -> dict[str, str]:
        """The last request's form body, one value per field."""
        return {k: v[0] for k, v in parse_qs(self.last_request.content.decode(), keep_blank_values=True).items()}

    def last_json(self) -> Any:
        return json.loads(self.last_request.content)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep user config files and IMS_ variables out of the tests."""
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_DIRS", [tmp_path / "config"])
    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name)


@pytest.fixture(autouse=True)
def protocol_logger() -> Generator[ProtocolLogger, None, None]:
    """Give every test a fresh global protocol logger."""
    logger = ProtocolLogger()
    set_protocol_logger(logger)
    yield logger


@pytest.fixture
def fake_ims(monkeypatch: pytest.MonkeyPatch) -> FakeIMS:
    """Route the IMS clients built by the operations to a FakeIMS."""
    fake = FakeIMS()
    monkeypatch.setattr(operations, "IMSClient", partial(IMSClient, transport=fake.transport))
    return fake


@pytest.fixture
def free_port() -> int:
    """A localhost TCP port that is free at the time of the call."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("localhost", 0))
        return sock.getsockname()[1]


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()
