"""
MCP exceptions for toolbridge.

These errors are recovered per server inside the discovery client and
downgraded to a status change plus a log line.
"""

from typing import Optional


class MCPError(Exception):
    """Base exception for MCP errors."""

    def __init__(self, message: str, server_name: Optional[str] = None):
        super().__init__(message)
        self.server_name = server_name


class MCPConfigurationError(MCPError):
    """Server config has none of command, url or http_url."""

    pass


class MCPConnectionError(MCPError):
    """Transport-level failure talking to a server."""

    pass


class MCPDiscoveryError(MCPError):
    """Tool listing failed on an otherwise connected server."""

    pass
