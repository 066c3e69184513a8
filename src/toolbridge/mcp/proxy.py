"""Proxy tools forwarding calls to MCP servers."""

import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Optional, Protocol

from toolbridge.mcp.models import MCP_DEFAULT_TIMEOUT_MS
from toolbridge.mcp.schema import collect_errors, compile_validator
from toolbridge.tools.base import Tool
from toolbridge.tools.models import RiskLevel, ToolResult, ValidationResult

logger = logging.getLogger(__name__)

EMPTY_RESULT_TEXT = "(empty result)"

MCP_TOOL_CATEGORY = "mcp"


class ToolCaller(Protocol):
    """What a proxy tool needs from a server connection."""

    server_name: str

    async def call_tool(
        self, name: str, arguments: dict[str, Any], timeout: Optional[float] = None
    ) -> dict[str, Any]: ...


@dataclass(frozen=True)
class MCPToolBinding:
    """Identity of a discovered tool, shared by every proxy instance."""

    connection: ToolCaller
    server_name: str
    server_tool_name: str  # Original, un-normalized protocol name
    description: str
    parameter_schema: dict[str, Any]
    timeout_ms: int = MCP_DEFAULT_TIMEOUT_MS
    trust: bool = False
    validator: Any = field(default=None, compare=False, repr=False)

    @property
    def risk_level(self) -> RiskLevel:
        return RiskLevel.LOW if self.trust else RiskLevel.HIGH

    def factory(self) -> "partial[DiscoveredMCPTool]":
        """Registry factory building a proxy tool for a context."""
        return partial(DiscoveredMCPTool, self)


def make_binding(
    connection: ToolCaller,
    server_tool_name: str,
    description: str,
    parameter_schema: dict[str, Any],
    timeout_ms: int = MCP_DEFAULT_TIMEOUT_MS,
    trust: bool = False,
) -> MCPToolBinding:
    """Create a binding with its parameter validator compiled once."""
    return MCPToolBinding(
        connection=connection,
        server_name=connection.server_name,
        server_tool_name=server_tool_name,
        description=description,
        parameter_schema=parameter_schema,
        timeout_ms=timeout_ms,
        trust=trust,
        validator=compile_validator(parameter_schema, server_tool_name),
    )


class DiscoveredMCPTool(Tool):
    """
    Tool backed by an MCP server.

    Parameters are checked against the server's (sanitized) JSON schema,
    the call is forwarded under the original server-side name, and the
    reply is projected into a ToolResult. Untrusted servers give high risk
    tools, so every call is confirmed unless allowlisted.
    """

    def __init__(self, binding: MCPToolBinding, context: Any = None):
        self.binding = binding
        self._validator = binding.validator or compile_validator(
            binding.parameter_schema, binding.server_tool_name
        )
        super().__init__(context)

    @property
    def name(self) -> str:
        return self.binding.server_tool_name

    @property
    def description(self) -> str:
        desc = self.binding.description or "MCP tool"
        return f"{desc} ({self.binding.server_name} MCP Server)"

    @property
    def risk_level(self) -> RiskLevel:
        return self.binding.risk_level

    @property
    def category(self) -> str:
        return MCP_TOOL_CATEGORY

    @property
    def server_name(self) -> str:
        return self.binding.server_name

    @property
    def allowlist_tool_name(self) -> str:
        return self.binding.server_tool_name

    @property
    def parameter_schema(self) -> dict[str, Any]:
        return self.binding.parameter_schema

    def validate_parameters(self, raw_params: Any) -> ValidationResult:
        if raw_params is None:
            raw_params = {}

        if not isinstance(raw_params, dict):
            errors = [f"Parameters must be an object, got {type(raw_params).__name__}"]
        else:
            errors = collect_errors(self._validator, raw_params)

        if errors:
            return ValidationResult(
                valid=False,
                errors=errors,
                message=f"Parameter validation failed: {', '.join(errors)}",
            )
        return ValidationResult(valid=True, params=dict(raw_params))

    async def execute_internal(self, params: dict[str, Any]) -> ToolResult:
        logger.debug(
            f"Calling MCP tool {self.binding.server_tool_name} on {self.binding.server_name}"
        )
        reply = await self.binding.connection.call_tool(
            self.binding.server_tool_name, params, timeout=self.binding.timeout_ms / 1000
        )
        data = project_result(reply)

        if isinstance(reply, dict) and reply.get("isError"):
            error_text = data.get("content") if data.get("type") == "text" else None
            return ToolResult(
                success=False,
                message=f"MCP tool {self.binding.server_tool_name} reported an error",
                data=data,
                error=error_text or "Tool returned an error",
            )

        return ToolResult.ok(
            f"MCP tool {self.binding.server_tool_name} executed successfully", data
        )


def _is_text_part(part: Any) -> bool:
    return isinstance(part, dict) and part.get("text") is not None


def project_result(reply: Optional[Any]) -> dict[str, Any]:
    """
    Project an MCP tool reply into ``ToolResult.data``.

    - all parts text: ``{"type": "text", "content": <joined text>}``
    - mixed parts: ``{"type": "mixed", "content": <parts>}``
    - non-list content: ``{"type": "structured", "content": <content>}``
    - anything else: ``{"type": "raw", "content": <reply>}``
    - empty reply: ``{"content": "(empty result)"}``
    """
    if not reply:
        return {"content": EMPTY_RESULT_TEXT}

    content = reply.get("content") if isinstance(reply, dict) else None

    if isinstance(content, list):
        if all(_is_text_part(part) for part in content):
            return {"type": "text", "content": "".join(part["text"] for part in content)}
        return {"type": "mixed", "content": content}

    if content:
        return {"type": "structured", "content": content}

    return {"type": "raw", "content": reply}
