"""MCP server discovery and tool registration."""

import asyncio
import json
import logging
import shlex
import threading
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Optional, Union

from pydantic import ValidationError

from toolbridge.mcp.connection import MCPServerConnection
from toolbridge.mcp.exceptions import MCPConfigurationError, MCPConnectionError
from toolbridge.mcp.models import MCPDiscoveryState, MCPServerConfig, MCPServerStatus
from toolbridge.mcp.proxy import MCP_TOOL_CATEGORY, make_binding
from toolbridge.mcp.schema import build_parameter_schema
from toolbridge.tools.naming import normalize_tool_name
from toolbridge.tools.registry import ToolMetadata, ToolRegistry

if TYPE_CHECKING:
    from toolbridge.audit.logger import AuditLogger

logger = logging.getLogger(__name__)

StatusListener = Callable[[str, MCPServerStatus], None]
ConnectionFactory = Callable[..., MCPServerConnection]

# Server name used for the single command-line server
COMMAND_SERVER_NAME = "mcp"


class MCPClient:
    """Connects to MCP servers and registers their tools.

    Features:
    - Multi-transport support (stdio, SSE, streamable HTTP)
    - Concurrent, independent discovery of every configured server
    - Tool name normalization and schema sanitization
    - Per-server connection status with change listeners
    - Cleanup of every live connection

    A failing server never affects the others: connection, listing and
    configuration errors are logged and the server is left DISCONNECTED.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        audit_logger: Optional["AuditLogger"] = None,
        connection_factory: ConnectionFactory = MCPServerConnection,
    ):
        """Initialize the client.

        Args:
            registry: Registry receiving the discovered proxy tools
            audit_logger: Optional audit logger for server events
            connection_factory: Builds connections (replaceable in tests)
        """
        self.registry = registry
        self.audit_logger = audit_logger
        self._connection_factory = connection_factory
        self._statuses: dict[str, MCPServerStatus] = {}
        self._connections: dict[str, MCPServerConnection] = {}
        self._discovery_state = MCPDiscoveryState.NOT_STARTED
        self._listeners: list[StatusListener] = []
        self._lock = threading.Lock()

    # Status tracking

    def add_status_listener(self, listener: StatusListener) -> None:
        """Add a listener for server status changes."""
        with self._lock:
            self._listeners.append(listener)

    def remove_status_listener(self, listener: StatusListener) -> None:
        """Remove a previously added listener."""
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _update_server_status(self, server_name: str, status: MCPServerStatus) -> None:
        """Record a status and notify listeners outside the lock.

        Repeating the current status is a no-op.
        """
        with self._lock:
            if self._statuses.get(server_name) is status:
                return
            self._statuses[server_name] = status
            listeners = list(self._listeners)

        logger.debug(f"MCP server '{server_name}' is {status.value}")

        for listener in listeners:
            try:
                listener(server_name, status)
            except Exception as e:
                logger.error(f"Error in MCP status change listener: {e}")

        self._audit("log_server_status", server_name, status.value)

    def _audit(self, method: str, *args: Any) -> None:
        """Forward an event to the audit logger; never raises."""
        if self.audit_logger is None:
            return
        try:
            getattr(self.audit_logger, method)(*args)
        except Exception as e:
            logger.warning(f"Failed to write MCP audit event: {e}")

    def get_server_status(self, server_name: str) -> MCPServerStatus:
        """Get the current status of a server (DISCONNECTED if unknown)."""
        with self._lock:
            return self._statuses.get(server_name, MCPServerStatus.DISCONNECTED)

    def get_all_server_statuses(self) -> dict[str, MCPServerStatus]:
        """Snapshot of every known server status."""
        with self._lock:
            return dict(self._statuses)

    @property
    def discovery_state(self) -> MCPDiscoveryState:
        """State of the current (or last) discovery run."""
        return self._discovery_state

    def get_server_tools(self, server_name: str) -> list[str]:
        """Names of the tools registered from a server."""
        return self.registry.get_tools_by_namespace(server_name)

    def get_connection(self, server_name: str) -> Optional[MCPServerConnection]:
        """Live connection of a server, if any."""
        with self._lock:
            return self._connections.get(server_name)

    # Discovery

    async def discover_tools(
        self,
        servers: Mapping[str, Union[MCPServerConfig, dict[str, Any]]],
        server_command: Optional[str] = None,
    ) -> dict[str, MCPServerStatus]:
        """Discover and register tools from every configured server.

        Always ends in the COMPLETED state, even if every server fails.

        Args:
            servers: Server name -> configuration
            server_command: Optional command line for one extra stdio server,
                registered under the name ``mcp``

        Returns:
            Status of every server after discovery
        """
        all_servers = dict(servers)
        if server_command:
            command_config = self._parse_server_command(server_command)
            if command_config is not None:
                all_servers[COMMAND_SERVER_NAME] = command_config

        self._discovery_state = MCPDiscoveryState.IN_PROGRESS
        logger.info(f"Starting MCP discovery for {len(all_servers)} server(s)")
        self._audit("log_discovery_started", list(all_servers))

        try:
            results = await asyncio.gather(
                *(
                    self._connect_and_discover(name, config)
                    for name, config in all_servers.items()
                ),
                return_exceptions=True,
            )
            for name, result in zip(all_servers, results):
                if isinstance(result, BaseException):
                    logger.error(f"Unexpected error discovering MCP server '{name}': {result}")
                    self._update_server_status(name, MCPServerStatus.DISCONNECTED)
        finally:
            self._discovery_state = MCPDiscoveryState.COMPLETED

        statuses = self.get_all_server_statuses()
        connected = sum(1 for s in statuses.values() if s is MCPServerStatus.CONNECTED)
        logger.info(
            f"MCP discovery completed: {connected}/{len(all_servers)} server(s) connected"
        )
        self._audit(
            "log_discovery_completed", {name: s.value for name, s in statuses.items()}
        )
        return statuses

    def _parse_server_command(self, server_command: str) -> Optional[MCPServerConfig]:
        """Turn a command line into a stdio server config."""
        try:
            args = shlex.split(server_command)
        except ValueError as e:
            logger.error(f"Failed to parse MCP server command '{server_command}': {e}")
            return None

        if not args:
            logger.error("MCP server command is empty")
            return None

        return MCPServerConfig(command=args[0], args=args[1:])

    async def _connect_and_discover(
        self, server_name: str, config: Union[MCPServerConfig, dict[str, Any]]
    ) -> None:
        """Connect to one server and register its tools."""
        try:
            if not isinstance(config, MCPServerConfig):
                config = MCPServerConfig.model_validate(config)
            connection = self._connection_factory(
                server_name, config, on_status_change=self._update_server_status
            )
        except (MCPConfigurationError, ValidationError) as e:
            logger.warning(f"Skipping MCP server '{server_name}': {e}")
            self._update_server_status(server_name, MCPServerStatus.DISCONNECTED)
            return

        await self._close_existing(server_name)

        try:
            await connection.connect()
        except MCPConnectionError as e:
            logger.error(
                f"Failed to connect to MCP server '{server_name}' "
                f"{json.dumps(config.safe_summary())}: {e}"
            )
            self._update_server_status(server_name, MCPServerStatus.DISCONNECTED)
            return

        with self._lock:
            self._connections[server_name] = connection

        try:
            registered = await self._discover_tools_from_server(connection, server_name, config)
        except Exception as e:
            logger.error(f"Failed to discover tools for MCP server '{server_name}': {e}")
            self.registry.unregister_namespace(server_name)
            await self._close_connection(server_name, connection)
            self._update_server_status(server_name, MCPServerStatus.DISCONNECTED)
            return

        # Connections stay open even when a server exposes no tools
        logger.info(f"Registered {len(registered)} tool(s) from MCP server '{server_name}'")

    async def _discover_tools_from_server(
        self,
        connection: MCPServerConnection,
        server_name: str,
        config: MCPServerConfig,
    ) -> list[str]:
        """List a connected server's tools and register a proxy for each.

        Returns:
            Names the tools were registered under
        """
        tools = await connection.list_tools()
        registered: list[str] = []

        for tool in tools:
            raw_name = tool.get("name") if isinstance(tool, dict) else None
            if not raw_name or not isinstance(raw_name, str):
                logger.warning(
                    f"Discovered a tool without a name from MCP server '{server_name}'. Skipping."
                )
                continue

            description = tool.get("description") or ""
            if not isinstance(description, str):
                description = str(description)

            try:
                binding = make_binding(
                    connection,
                    server_tool_name=raw_name,
                    description=description,
                    parameter_schema=build_parameter_schema(tool.get("inputSchema")),
                    timeout_ms=config.effective_timeout_ms,
                    trust=config.trust,
                )
                final_name = self.registry.register(
                    normalize_tool_name(raw_name),
                    binding.factory(),
                    ToolMetadata(
                        description=description or f"MCP tool from {server_name}",
                        risk_level=binding.risk_level,
                        category=MCP_TOOL_CATEGORY,
                    ),
                    namespace=server_name,
                )
            except Exception as e:
                logger.warning(f"Skipping MCP tool '{raw_name}' from '{server_name}': {e}")
                continue

            registered.append(final_name)
            logger.debug(f"Registered MCP tool: {final_name} from {server_name}")

        return registered

    async def _close_existing(self, server_name: str) -> None:
        """Drop a connection left over from an earlier discovery run."""
        with self._lock:
            previous = self._connections.pop(server_name, None)
        if previous is not None:
            self.registry.unregister_namespace(server_name)
            await self._close_connection(server_name, previous)

    async def _close_connection(
        self, server_name: str, connection: MCPServerConnection
    ) -> None:
        """Close a connection, logging instead of raising on failure."""
        with self._lock:
            if self._connections.get(server_name) is connection:
                del self._connections[server_name]
        try:
            await connection.close()
        except Exception as e:
            logger.error(f"Error cleaning up MCP transport for '{server_name}': {e}")

    async def cleanup(self) -> None:
        """Close every live connection, mark every server DISCONNECTED and drop listeners."""
        with self._lock:
            connections = dict(self._connections)
            server_names = set(self._statuses) | set(connections)

        await asyncio.gather(
            *(self._close_connection(name, conn) for name, conn in connections.items())
        )

        for server_name in server_names:
            self.registry.unregister_namespace(server_name)
            self._update_server_status(server_name, MCPServerStatus.DISCONNECTED)

        with self._lock:
            self._listeners.clear()

        logger.info("MCP client cleanup completed")
