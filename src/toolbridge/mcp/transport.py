"""Transport selection and setup for MCP servers."""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from mcp import StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client

from toolbridge.mcp.exceptions import MCPConfigurationError
from toolbridge.mcp.models import MCPServerConfig, TransportKind

logger = logging.getLogger(__name__)


def select_transport(server_name: str, config: MCPServerConfig) -> TransportKind:
    """
    Pick the transport for a server.

    Precedence: streamable HTTP URL, then SSE URL, then subprocess command.

    Raises:
        MCPConfigurationError: If none of them is configured
    """
    kind = config.transport_kind
    if kind is None:
        raise MCPConfigurationError(
            f"MCP server '{server_name}' has invalid configuration: "
            "missing http_url, url, and command",
            server_name,
        )
    return kind


def build_stdio_parameters(config: MCPServerConfig) -> StdioServerParameters:
    """Subprocess parameters; the server env extends the current one."""
    return StdioServerParameters(
        command=config.command or "",
        args=list(config.args),
        env={**os.environ, **config.env},
        cwd=config.cwd,
    )


@asynccontextmanager
async def open_transport(
    kind: TransportKind, config: MCPServerConfig
) -> AsyncIterator[tuple[Any, Any]]:
    """
    Open a transport and yield its ``(read_stream, write_stream)`` pair.

    Must be entered and exited by the same task.
    """
    if kind is TransportKind.STREAMABLE_HTTP:
        async with streamablehttp_client(config.http_url, headers=config.headers or None) as (
            read_stream,
            write_stream,
            _get_session_id,
        ):
            yield read_stream, write_stream

    elif kind is TransportKind.SSE:
        async with sse_client(config.url, headers=config.headers or None) as (
            read_stream,
            write_stream,
        ):
            yield read_stream, write_stream

    else:
        async with stdio_client(build_stdio_parameters(config)) as (read_stream, write_stream):
            yield read_stream, write_stream
