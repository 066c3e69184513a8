"""Tests for MCPServerConnection using a fake protocol session."""

import asyncio
import contextlib
from collections.abc import Callable
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import Any

import anyio
import pytest

from toolbridge.mcp import connection as connection_module
from toolbridge.mcp.connection import MCPServerConnection
from toolbridge.mcp.exceptions import MCPConnectionError, MCPDiscoveryError, MCPError
from toolbridge.mcp.models import MCPServerConfig, MCPServerStatus


class Dumpable(SimpleNamespace):
    def model_dump(self, exclude_none: bool = False) -> dict[str, Any]:
        return {k: v for k, v in vars(self).items() if not (exclude_none and v is None)}


class FakeSession:
    """Replacement for mcp.ClientSession."""

    init_delay: float = 0
    call_error: Exception | None = None
    call_delay: float = 0

    def __init__(self, read_stream: Any, write_stream: Any) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    async def initialize(self) -> None:
        if self.init_delay:
            await asyncio.sleep(self.init_delay)

    async def list_tools(self) -> SimpleNamespace:
        return SimpleNamespace(
            tools=[Dumpable(name="read", description="Read", inputSchema={"type": "object"})]
        )

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Dumpable:
        self.calls.append((name, arguments))
        if self.call_delay:
            await asyncio.sleep(self.call_delay)
        if self.call_error is not None:
            raise self.call_error
        return Dumpable(content=[{"type": "text", "text": f"ran {name}"}], isError=False)


@pytest.fixture
def fake_transport(monkeypatch: pytest.MonkeyPatch) -> dict[str, Any]:
    state: dict[str, Any] = {"opened": 0, "closed": 0, "error": None}

    @asynccontextmanager
    async def open_transport(kind, config):
        if state["error"] is not None:
            raise state["error"]
        state["opened"] += 1
        try:
            yield object(), object()
        finally:
            state["closed"] += 1

    monkeypatch.setattr(connection_module, "open_transport", open_transport)
    monkeypatch.setattr(connection_module, "ClientSession", FakeSession)
    monkeypatch.setattr(FakeSession, "init_delay", 0)
    monkeypatch.setattr(FakeSession, "call_error", None)
    monkeypatch.setattr(FakeSession, "call_delay", 0)
    return state


class StreamReadingSession(FakeSession):
    """Fake session that drains the read stream in the background like the SDK."""

    def __init__(self, read_stream: Any, write_stream: Any) -> None:
        super().__init__(read_stream, write_stream)
        self.read_stream = read_stream
        self._reader: asyncio.Task[None] | None = None

    async def __aenter__(self) -> "StreamReadingSession":
        self._reader = asyncio.create_task(self._drain())
        return self

    async def _drain(self) -> None:
        async with self.read_stream:
            async for _ in self.read_stream:
                pass

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._reader is not None:
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader


@pytest.fixture
def closable_transport(monkeypatch: pytest.MonkeyPatch) -> dict[str, Any]:
    send_stream, receive_stream = anyio.create_memory_object_stream(10)
    state: dict[str, Any] = {"send": send_stream, "closed": 0}

    @asynccontextmanager
    async def open_transport(kind, config):
        try:
            yield receive_stream, object()
        finally:
            state["closed"] += 1

    monkeypatch.setattr(connection_module, "open_transport", open_transport)
    monkeypatch.setattr(connection_module, "ClientSession", StreamReadingSession)
    return state


async def wait_until(condition: Callable[[], bool], timeout: float = 1.0) -> None:
    with anyio.fail_after(timeout):
        while not condition():
            await asyncio.sleep(0.01)


def make_connection(timeout_ms: int = 1000):
    statuses: list[MCPServerStatus] = []
    conn = MCPServerConnection(
        "files",
        MCPServerConfig(command="files-server", timeout_ms=timeout_ms),
        on_status_change=lambda name, status: statuses.append(status),
    )
    return conn, statuses


class TestMCPServerConnection:
    """Tests for connection lifecycle."""

    @pytest.mark.asyncio
    async def test_connect_list_call_close(self, fake_transport):
        conn, statuses = make_connection()

        await conn.connect()
        assert conn.is_connected

        tools = await conn.list_tools()
        assert tools == [{"name": "read", "description": "Read", "inputSchema": {"type": "object"}}]

        reply = await conn.call_tool("read", {"path": "a"})
        assert reply["content"][0]["text"] == "ran read"

        await conn.close()

        assert statuses == [
            MCPServerStatus.CONNECTING,
            MCPServerStatus.CONNECTED,
            MCPServerStatus.DISCONNECTED,
        ]
        assert fake_transport["opened"] == 1
        assert fake_transport["closed"] == 1
        assert conn.is_connected is False

    @pytest.mark.asyncio
    async def test_connect_failure(self, fake_transport):
        fake_transport["error"] = OSError("command not found")
        conn, statuses = make_connection()

        with pytest.raises(MCPConnectionError, match="command not found"):
            await conn.connect()

        assert conn.status is MCPServerStatus.DISCONNECTED
        assert statuses[-1] is MCPServerStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_connect_timeout(self, fake_transport, monkeypatch):
        monkeypatch.setattr(FakeSession, "init_delay", 10)
        conn, _ = make_connection(timeout_ms=50)

        with pytest.raises(MCPConnectionError, match="Timed out"):
            await conn.connect()

        assert conn.status is MCPServerStatus.DISCONNECTED
        assert fake_transport["closed"] == 1

    @pytest.mark.asyncio
    async def test_requests_need_connection(self, fake_transport):
        conn, _ = make_connection()

        with pytest.raises(MCPConnectionError):
            await conn.call_tool("read", {})

    @pytest.mark.asyncio
    async def test_call_timeout(self, fake_transport, monkeypatch):
        monkeypatch.setattr(FakeSession, "call_delay", 10)
        conn, _ = make_connection()
        await conn.connect()

        with pytest.raises(MCPError, match="timed out"):
            await conn.call_tool("read", {}, timeout=0.05)

        assert conn.is_connected
        await conn.close()

    @pytest.mark.asyncio
    async def test_transport_error_disconnects(self, fake_transport, monkeypatch):
        monkeypatch.setattr(FakeSession, "call_error", anyio.ClosedResourceError())
        conn, statuses = make_connection()
        await conn.connect()

        with pytest.raises(MCPConnectionError):
            await conn.call_tool("read", {})

        assert conn.status is MCPServerStatus.DISCONNECTED
        await conn.close()
        assert fake_transport["closed"] == 1

    @pytest.mark.asyncio
    async def test_tool_error_propagates_without_disconnect(self, fake_transport, monkeypatch):
        monkeypatch.setattr(FakeSession, "call_error", ValueError("bad arguments"))
        conn, _ = make_connection()
        await conn.connect()

        with pytest.raises(ValueError):
            await conn.call_tool("read", {})

        assert conn.is_connected
        await conn.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, fake_transport):
        conn, _ = make_connection()
        await conn.connect()

        await conn.close()
        await conn.close()

        assert fake_transport["closed"] == 1

    @pytest.mark.asyncio
    async def test_list_tools_requires_session(self, fake_transport):
        conn, _ = make_connection()

        with pytest.raises(MCPConnectionError):
            await conn.list_tools()

    @pytest.mark.asyncio
    async def test_server_going_away_while_idle_disconnects(self, closable_transport):
        conn, statuses = make_connection()
        await conn.connect()
        assert conn.is_connected

        await closable_transport["send"].aclose()
        await wait_until(lambda: closable_transport["closed"] == 1)

        assert conn.status is MCPServerStatus.DISCONNECTED
        assert conn.is_connected is False
        assert statuses == [
            MCPServerStatus.CONNECTING,
            MCPServerStatus.CONNECTED,
            MCPServerStatus.DISCONNECTED,
        ]
        await conn.close()
        assert closable_transport["closed"] == 1

    @pytest.mark.asyncio
    async def test_regular_close_with_reading_session(self, closable_transport):
        conn, statuses = make_connection()
        await conn.connect()

        await conn.close()

        assert closable_transport["closed"] == 1
        assert statuses[-1] is MCPServerStatus.DISCONNECTED
        assert statuses.count(MCPServerStatus.DISCONNECTED) == 1

    def test_invalid_config_rejected_early(self):
        from toolbridge.mcp.exceptions import MCPConfigurationError

        with pytest.raises(MCPConfigurationError):
            MCPServerConnection("empty", MCPServerConfig())

    def test_discovery_error_type(self):
        assert issubclass(MCPDiscoveryError, MCPError)
