"""Data models for MCP server discovery."""

from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# Generous default so slow-starting subprocess servers can come up
MCP_DEFAULT_TIMEOUT_MS = 10 * 60 * 1000


class MCPServerStatus(str, Enum):
    """Connection status of one MCP server."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class MCPDiscoveryState(str, Enum):
    """State of the global discovery run."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TransportKind(str, Enum):
    """Transport used to reach an MCP server."""

    STREAMABLE_HTTP = "streamable_http"
    SSE = "sse"
    STDIO = "stdio"


class MCPServerConfig(BaseModel):
    """Configuration of a single MCP server.

    Exactly one transport is used, chosen by precedence:
    ``http_url`` (streamable HTTP), then ``url`` (SSE), then ``command``
    (subprocess over stdio).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    # Subprocess (stdio) transport
    command: Optional[str] = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    cwd: Optional[str] = None

    # Server-sent events transport
    url: Optional[str] = None

    # Streamable HTTP transport
    http_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("http_url", "httpUrl")
    )

    headers: dict[str, str] = Field(default_factory=dict)  # HTTP transports only
    timeout_ms: Optional[int] = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("timeout_ms", "timeoutMs", "timeout"),
    )
    trust: bool = False
    description: Optional[str] = None

    @property
    def transport_kind(self) -> Optional[TransportKind]:
        """Transport selected for this server, or None if unconfigured."""
        if self.http_url:
            return TransportKind.STREAMABLE_HTTP
        if self.url:
            return TransportKind.SSE
        if self.command:
            return TransportKind.STDIO
        return None

    @property
    def effective_timeout_ms(self) -> int:
        """Configured timeout, falling back to the default."""
        return self.timeout_ms or MCP_DEFAULT_TIMEOUT_MS

    @property
    def timeout_seconds(self) -> float:
        """Timeout in seconds for asyncio APIs."""
        return self.effective_timeout_ms / 1000

    def safe_summary(self) -> dict[str, object]:
        """Config fields that are safe to log (no env or headers)."""
        return {
            "command": self.command,
            "url": self.url,
            "http_url": self.http_url,
            "cwd": self.cwd,
            "timeout_ms": self.timeout_ms,
            "trust": self.trust,
        }
