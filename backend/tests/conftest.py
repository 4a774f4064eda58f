"""
Shared test fixtures and configuration.
"""

import asyncio
import os
import re
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables before importing freya modules
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOCAL_STORAGE_PATH", "/tmp/freya_test_data")
os.environ.setdefault("LOG_FILE_ENABLED", "false")

from freya.config import Settings
from freya.plugins import Plugin, PluginRegistry, PluginResult
from freya.services import ChatServiceFactory
from freya.storage import KeyValueStore, LocalStorage, SessionRepository, UserStorage


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        secret_key="test-secret-key-for-testing",
        local_storage_path=str(tmp_path / "data"),
        log_file_enabled=False,
        log_console_enabled=False,
        log_api_requests=True,
        openweather_api_key="test-weather-key",
        newsapi_key="test-news-key",
        plugin_timeout_seconds=5.0,
    )


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(str(tmp_path / "data"))


@pytest.fixture
def session_repository(storage) -> SessionRepository:
    return SessionRepository(storage)


@pytest.fixture
def key_value(storage) -> KeyValueStore:
    return KeyValueStore(storage)


@pytest.fixture
def user_storage(storage) -> UserStorage:
    return UserStorage(storage)


@pytest.fixture
def chat_services(session_repository, key_value) -> ChatServiceFactory:
    return ChatServiceFactory(session_repository, key_value)


class EchoPlugin(Plugin):
    """/echo <text> -- returns its argument, renders as a card."""

    name = "echo"
    description = "Echoes text. Usage: /echo [text]"
    trigger = re.compile(r"^/echo\s+(.+)", re.IGNORECASE)
    loading_message = "Echoing..."

    def __init__(self):
        self.calls: List[List[str]] = []

    async def execute(self, args):
        self.calls.append(args)
        return PluginResult.ok(display_text=args[0], data={"text": args[0]})

    def render_result(self, data):
        return {"component": "EchoCard", "props": data}


class PlainPlugin(Plugin):
    """/plain -- succeeds with data but has no renderer."""

    name = "plain"
    description = "Plain text result"
    trigger = re.compile(r"^/plain$")

    async def execute(self, args):
        return PluginResult.ok(display_text="plain result", data={"value": 1})


class SlowPlugin(Plugin):
    """/slow -- blocks until released, so tests can act while a command is in flight."""

    name = "slow"
    description = "Waits for the test"
    trigger = re.compile(r"^/slow$")

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def execute(self, args):
        self.started.set()
        await self.release.wait()
        return PluginResult.ok(display_text="slow done")


@pytest.fixture
def echo_plugin() -> EchoPlugin:
    return EchoPlugin()


@pytest.fixture
def plain_plugin() -> PlainPlugin:
    return PlainPlugin()


@pytest.fixture
def slow_plugin() -> SlowPlugin:
    return SlowPlugin()


@pytest.fixture
def plugin_registry(echo_plugin, plain_plugin, slow_plugin) -> PluginRegistry:
    return PluginRegistry([echo_plugin, plain_plugin, slow_plugin])


def mock_httpx_client(mock_client, response_json, status_code=200, side_effect=None):
    """
    Configure a patched httpx.AsyncClient class to return one response from get().

    Returns:
        The mocked client instance, for call assertions
    """
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.json.return_value = response_json

    mock_instance = AsyncMock()
    if side_effect is not None:
        mock_instance.get.side_effect = side_effect
    else:
        mock_instance.get.return_value = mock_response
    mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
    mock_instance.__aexit__ = AsyncMock(return_value=False)
    mock_client.return_value = mock_instance
    return mock_instance


@pytest.fixture
def mock_http():
    return mock_httpx_client
