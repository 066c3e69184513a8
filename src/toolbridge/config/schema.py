"""
Pydantic configuration schema for toolbridge.

This module defines all configuration models with validation.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from toolbridge.mcp.models import MCP_DEFAULT_TIMEOUT_MS

# =============================================================================
# MCP Configuration
# =============================================================================


class MCPConfig(BaseModel):
    """MCP server discovery configuration."""

    model_config = ConfigDict(extra="allow")

    # Raw per-server settings; each entry is validated as an MCPServerConfig
    # at discovery time so one bad server cannot break the whole config.
    servers: dict[str, dict[str, Any]] = Field(default_factory=dict)
    server_command: str | None = None
    default_timeout_ms: int = Field(default=MCP_DEFAULT_TIMEOUT_MS, gt=0)

    def resolved_servers(self) -> dict[str, dict[str, Any]]:
        """Server settings with the default timeout filled in."""
        resolved: dict[str, dict[str, Any]] = {}
        for name, settings in self.servers.items():
            entry = dict(settings or {})
            if not any(key in entry for key in ("timeout_ms", "timeoutMs", "timeout")):
                entry["timeout_ms"] = self.default_timeout_ms
            resolved[name] = entry
        return resolved


# =============================================================================
# Tools Configuration
# =============================================================================


class ToolsConfig(BaseModel):
    """Tool registry configuration."""

    model_config = ConfigDict(extra="allow")

    disabled: list[str] = Field(default_factory=list)
    call_timeout_seconds: float | None = Field(default=None, gt=0)


# =============================================================================
# Audit & Logging Configuration
# =============================================================================


class AuditLogConfig(BaseModel):
    """Audit logging configuration."""

    enable: bool = True
    path: str | None = None  # Defaults to <toolbridge home>/audit.jsonl
    rotation: Literal["daily", "weekly", "size"] = "daily"
    max_size_mb: int = 100
    retention_days: int = Field(default=90, ge=1, le=365)
    compress_old: bool = True
    include_params: bool = True
    hash_params: bool = False
    redact_paths: bool = False
    redact_patterns: list[str] = Field(default_factory=list)
    buffer_size: int = 100
    flush_interval_seconds: int = 5


class LoggingConfig(BaseModel):
    """Application logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"


# =============================================================================
# Root Configuration
# =============================================================================


class Config(BaseModel):
    """
    Root configuration model for toolbridge.

    Configuration can be loaded from YAML files and environment variables,
    merged in order of priority.
    """

    model_config = ConfigDict(extra="allow")

    mcp: MCPConfig = Field(default_factory=MCPConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    audit: AuditLogConfig = Field(default_factory=AuditLogConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
