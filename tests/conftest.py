"""Shared pytest fixtures."""

import asyncio
from collections import deque
from types import SimpleNamespace
from typing import Any

import pytest

from mcp_toolchat.catalog import CatalogStore
from mcp_toolchat.llm import LLMClient
from mcp_toolchat.models.config import LLMSettings, SessionSettings
from mcp_toolchat.session_manager import SessionManager

USAGE = {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}


def build_tool(name: str, description: str = "", required: list[str] | None = None, **properties: Any):
    """Build an object shaped like an MCP ``Tool``."""
    props = properties or {key: {"type": "string"} for key in required or []}
    return SimpleNamespace(
        name=name,
        description=description,
        inputSchema={"type": "object", "properties": props, "required": list(required or [])},
        outputSchema=None,
    )


def build_result(text: str, structured: dict[str, Any] | None = None, is_error: bool = False):
    """Build an object shaped like a fastmcp ``CallToolResult``."""
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        structured_content=structured,
        is_error=is_error,
    )


class FakeMcpClient:
    """In-memory stand-in for ``fastmcp.Client``."""

    def __init__(
        self,
        url: str,
        tools: list[Any] | None = None,
        results: dict[str, Any] | None = None,
        fail_connect: Exception | None = None,
        fail_list: Exception | None = None,
        connect_delay: float = 0,
    ):
        self.url = url
        self.tools = list(tools or [])
        self.results = results or {}
        self.fail_connect = fail_connect
        self.fail_list = fail_list
        self.connect_delay = connect_delay
        self.connected = False
        self.enter_count = 0
        self.exit_count = 0
        self.list_calls = 0
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def __aenter__(self) -> "FakeMcpClient":
        self.enter_count += 1
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.fail_connect is not None:
            raise self.fail_connect
        self.connected = True
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.connected = False
        self.exit_count += 1

    def is_connected(self) -> bool:
        return self.connected

    async def list_tools(self) -> list[Any]:
        self.list_calls += 1
        if self.fail_list is not None:
            raise self.fail_list
        return list(self.tools)

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        self.calls.append((name, arguments))
        result = self.results[name]
        if isinstance(result, Exception):
            raise result
        return result


class FakeServerFarm:
    """Client factory that hands out a fresh FakeMcpClient per connect."""

    def __init__(self) -> None:
        self.servers: dict[str, dict[str, Any]] = {}
        self.clients: list[FakeMcpClient] = []

    def add(self, url: str, **options: Any) -> None:
        self.servers[url] = options

    def __call__(self, url: str) -> FakeMcpClient:
        client = FakeMcpClient(url, **self.servers.get(url, {}))
        self.clients.append(client)
        return client

    def clients_for(self, url: str) -> list[FakeMcpClient]:
        return [client for client in self.clients if client.url == url]


async def _stream(pieces: list[str]):
    for piece in pieces:
        yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=piece))])


class FakeCompletions:
    """Replaces ``AsyncOpenAI().chat.completions`` with queued replies.

    A queued string is a normal reply, a list of strings a streamed reply,
    and an exception is raised from ``create``.
    """

    def __init__(self) -> None:
        self.replies: deque[Any] = deque()
        self.requests: list[dict[str, Any]] = []

    def queue(self, *replies: Any) -> None:
        self.replies.extend(replies)

    async def create(self, **request: Any) -> Any:
        self.requests.append(request)
        reply = self.replies.popleft()
        if isinstance(reply, Exception):
            raise reply
        if request.get("stream"):
            return _stream(reply if isinstance(reply, list) else [reply])
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=reply))],
            usage=dict(USAGE),
        )


def fake_openai(completions: FakeCompletions) -> Any:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


class FakeLLMFactory:
    def __init__(self, completions: FakeCompletions):
        self.completions = completions
        self.settings_seen: list[LLMSettings] = []
        self.closed = False

    def get(self, settings: LLMSettings, stats: Any = None) -> LLMClient:
        self.settings_seen.append(settings)
        return LLMClient(fake_openai(self.completions), settings, stats)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def farm():
    return FakeServerFarm()


@pytest.fixture
def completions():
    return FakeCompletions()


@pytest.fixture
def openai_client(completions):
    return fake_openai(completions)


@pytest.fixture
def llm(openai_client):
    return LLMClient(openai_client, LLMSettings())


@pytest.fixture
def llm_factory(completions):
    return FakeLLMFactory(completions)


@pytest.fixture
def catalog():
    return CatalogStore()


@pytest.fixture
def session_settings():
    return SessionSettings(connect_timeout=0.5, call_timeout=0.5)


@pytest.fixture
async def sessions(catalog, farm, session_settings):
    manager = SessionManager(catalog, session_settings, client_factory=farm)
    yield manager
    await manager.close()


@pytest.fixture
def make_tool():
    return build_tool


@pytest.fixture
def text_result():
    return build_result
