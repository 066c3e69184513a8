"""
Model Context Protocol integration for toolbridge.

Connects to external MCP servers over stdio, SSE or streamable HTTP,
discovers their tools and registers them as proxy tools in the
ToolRegistry.
"""

from toolbridge.mcp.client import MCPClient
from toolbridge.mcp.connection import MCPServerConnection
from toolbridge.mcp.exceptions import (
    MCPConfigurationError,
    MCPConnectionError,
    MCPDiscoveryError,
    MCPError,
)
from toolbridge.mcp.models import (
    MCP_DEFAULT_TIMEOUT_MS,
    MCPDiscoveryState,
    MCPServerConfig,
    MCPServerStatus,
    TransportKind,
)
from toolbridge.mcp.proxy import DiscoveredMCPTool, MCPToolBinding, project_result
from toolbridge.mcp.schema import sanitize_parameters

__all__ = [
    "MCPClient",
    "MCPServerConnection",
    "MCPConfigurationError",
    "MCPConnectionError",
    "MCPDiscoveryError",
    "MCPError",
    "MCP_DEFAULT_TIMEOUT_MS",
    "MCPDiscoveryState",
    "MCPServerConfig",
    "MCPServerStatus",
    "TransportKind",
    "DiscoveredMCPTool",
    "MCPToolBinding",
    "project_result",
    "sanitize_parameters",
]
