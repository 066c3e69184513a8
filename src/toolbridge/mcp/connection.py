"""Lifecycle of a single MCP server connection."""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from contextlib import AsyncExitStack
from typing import Any, Optional

import anyio
from mcp import ClientSession
from mcp.shared.exceptions import McpError

from toolbridge.mcp.exceptions import MCPConnectionError, MCPDiscoveryError, MCPError
from toolbridge.mcp.models import MCPServerConfig, MCPServerStatus, TransportKind
from toolbridge.mcp.transport import open_transport, select_transport

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, MCPServerStatus], None]

# JSON-RPC error code the SDK uses when the underlying stream closed
_CONNECTION_CLOSED_CODE = -32000

# Errors meaning the transport is gone rather than the request failed
_TRANSPORT_ERRORS = (
    anyio.ClosedResourceError,
    anyio.BrokenResourceError,
    anyio.EndOfStream,
    ConnectionError,
)

# How long close() waits for the transport task to wind down
_CLOSE_TIMEOUT_SECONDS = 5.0


class _WatchedReceiveStream:
    """Read side of a transport that reports when the server goes away.

    The session drains this stream in the background, so an idle
    connection notices a dead server as soon as the stream ends.
    """

    def __init__(self, stream: Any, on_lost: Callable[[BaseException], None]) -> None:
        self._stream = stream
        self._on_lost = on_lost

    async def receive(self) -> Any:
        try:
            return await self._stream.receive()
        except _TRANSPORT_ERRORS as e:
            self._on_lost(e)
            raise

    def __aiter__(self) -> "_WatchedReceiveStream":
        return self

    async def __anext__(self) -> Any:
        try:
            return await self.receive()
        except anyio.EndOfStream:
            raise StopAsyncIteration from None

    async def aclose(self) -> None:
        await self._stream.aclose()

    async def __aenter__(self) -> "_WatchedReceiveStream":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def __getattr__(self, name: str) -> Any:
        return getattr(self._stream, name)


class MCPServerConnection:
    """
    Owns the transport and protocol session of one MCP server.

    The transport and session contexts are entered and exited by a single
    background task, because the SDK's anyio cancel scopes must be closed
    by the task that opened them. Requests from any other task go through
    the session while that task waits for ``close()``.

    Status moves DISCONNECTED -> CONNECTING -> CONNECTED, and back to
    DISCONNECTED on close or on any transport error, including the
    server going away while the connection is idle.
    """

    def __init__(
        self,
        server_name: str,
        config: MCPServerConfig,
        on_status_change: Optional[StatusCallback] = None,
    ) -> None:
        """
        Initialize the connection.

        Args:
            server_name: Configured server name
            config: Server configuration
            on_status_change: Called with (server_name, status) on every change

        Raises:
            MCPConfigurationError: If the config selects no transport
        """
        self.server_name = server_name
        self.config = config
        self.transport_kind: TransportKind = select_transport(server_name, config)
        self.status = MCPServerStatus.DISCONNECTED
        self._on_status_change = on_status_change
        self._session: Optional[ClientSession] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._ready: Optional[asyncio.Future[None]] = None
        self._closed = asyncio.Event()

    @property
    def timeout_seconds(self) -> float:
        """Per-request timeout."""
        return self.config.timeout_seconds

    @property
    def is_connected(self) -> bool:
        return self.status is MCPServerStatus.CONNECTED and self._session is not None

    def _set_status(self, status: MCPServerStatus) -> None:
        if status is self.status:
            return
        self.status = status
        if self._on_status_change is not None:
            self._on_status_change(self.server_name, status)

    async def connect(self) -> None:
        """
        Open the transport and perform the protocol handshake.

        Raises:
            MCPConnectionError: On failure or when the timeout expires
        """
        self._set_status(MCPServerStatus.CONNECTING)

        loop = asyncio.get_running_loop()
        self._ready = loop.create_future()
        self._closed = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=f"mcp-{self.server_name}")

        try:
            await asyncio.wait_for(asyncio.shield(self._ready), self.timeout_seconds)
        except asyncio.TimeoutError as e:
            await self._stop_task()
            self._set_status(MCPServerStatus.DISCONNECTED)
            raise MCPConnectionError(
                f"Timed out connecting to MCP server '{self.server_name}' "
                f"after {self.config.effective_timeout_ms}ms",
                self.server_name,
            ) from e
        except asyncio.CancelledError:
            await self._stop_task()
            self._set_status(MCPServerStatus.DISCONNECTED)
            raise
        except Exception as e:
            await self._stop_task()
            self._set_status(MCPServerStatus.DISCONNECTED)
            raise MCPConnectionError(
                f"Failed to connect to MCP server '{self.server_name}': {e}",
                self.server_name,
            ) from e

        self._set_status(MCPServerStatus.CONNECTED)
        logger.info(
            f"Connected to MCP server: {self.server_name} ({self.transport_kind.value})"
        )

    async def _run(self) -> None:
        """Hold the transport open until close() is requested."""
        ready = self._ready
        try:
            async with AsyncExitStack() as stack:
                read_stream, write_stream = await stack.enter_async_context(
                    open_transport(self.transport_kind, self.config)
                )
                session = await stack.enter_async_context(
                    ClientSession(
                        _WatchedReceiveStream(read_stream, self._on_stream_lost), write_stream
                    )
                )
                await session.initialize()

                self._session = session
                if ready is not None and not ready.done():
                    ready.set_result(None)

                await self._closed.wait()
        except Exception as e:
            if ready is not None and not ready.done():
                ready.set_exception(e)
            else:
                logger.error(f"MCP ERROR ({self.server_name}): {e}")
        finally:
            self._session = None
            self._set_status(MCPServerStatus.DISCONNECTED)

    async def _stop_task(self) -> None:
        """Cancel the transport task and wait for it to exit."""
        if self._task is None:
            return
        task, self._task = self._task, None
        if not task.done():
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise MCPConnectionError(
                f"MCP server '{self.server_name}' is not connected", self.server_name
            )
        return self._session

    async def list_tools(self) -> list[dict[str, Any]]:
        """
        List the server's tools as plain dicts.

        Raises:
            MCPDiscoveryError: If listing fails or times out
        """
        session = self._require_session()
        try:
            result = await asyncio.wait_for(session.list_tools(), self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise MCPDiscoveryError(
                f"Listing tools on '{self.server_name}' timed out", self.server_name
            ) from e
        except Exception as e:
            if self._is_transport_error(e):
                self._mark_broken(e)
            raise MCPDiscoveryError(
                f"Failed to list tools on '{self.server_name}': {e}", self.server_name
            ) from e

        return [tool.model_dump(exclude_none=True) for tool in result.tools]

    async def call_tool(
        self, name: str, arguments: dict[str, Any], timeout: Optional[float] = None
    ) -> dict[str, Any]:
        """
        Call a tool by its server-side name.

        Args:
            name: Server-side tool name
            arguments: Tool arguments
            timeout: Seconds to wait (the server timeout if None)

        Raises:
            MCPConnectionError: If the transport is gone
            MCPError: If the call fails or times out
        """
        session = self._require_session()
        try:
            result = await asyncio.wait_for(
                session.call_tool(name, arguments), timeout or self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise MCPError(
                f"MCP tool '{name}' timed out after {timeout or self.timeout_seconds}s",
                self.server_name,
            ) from e
        except Exception as e:
            if self._is_transport_error(e):
                self._mark_broken(e)
                raise MCPConnectionError(
                    f"Connection to MCP server '{self.server_name}' lost: {e}",
                    self.server_name,
                ) from e
            raise

        return result.model_dump(exclude_none=True)

    def _is_transport_error(self, error: BaseException) -> bool:
        if isinstance(error, _TRANSPORT_ERRORS):
            return True
        if isinstance(error, McpError):
            return getattr(error.error, "code", None) == _CONNECTION_CLOSED_CODE
        return False

    def _mark_broken(self, error: BaseException) -> None:
        """Transport failed mid-session: disconnect and let the task exit."""
        logger.error(f"MCP ERROR ({self.server_name}): {error}")
        self._closed.set()
        self._set_status(MCPServerStatus.DISCONNECTED)

    def _on_stream_lost(self, error: BaseException) -> None:
        """The read side ended without close() being called."""
        if self._closed.is_set():
            return
        logger.error(
            f"MCP server '{self.server_name}' closed the connection ({type(error).__name__})"
        )
        self._closed.set()
        self._set_status(MCPServerStatus.DISCONNECTED)

    async def close(self) -> None:
        """Close the session and transport. Safe to call more than once."""
        self._closed.set()
        task = self._task
        self._task = None
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(task, _CLOSE_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                logger.warning(f"MCP server '{self.server_name}' did not close in time")
        self._session = None
        self._set_status(MCPServerStatus.DISCONNECTED)

    def __repr__(self) -> str:
        return (
            f"<MCPServerConnection server={self.server_name} "
            f"transport={self.transport_kind.value} status={self.status.value}>"
        )
