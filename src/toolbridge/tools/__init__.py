"""Tool execution system for toolbridge.

This module provides the foundation for tool use:
- A uniform Tool contract with parameter validation and risk levels
- An execution pipeline gating risky calls behind human confirmation
- A registry resolving name collisions and dispatching calls

Tools discovered from MCP servers plug into the same registry
(see ``toolbridge.mcp``).
"""

from toolbridge.tools.base import LOCAL_SERVER_NAME, Tool
from toolbridge.tools.exceptions import (
    ConfirmationUnavailableError,
    ToolError,
    ToolExecutionError,
    ToolRegistrationError,
    ToolValidationError,
    UserCancelledError,
)
from toolbridge.tools.models import (
    AuditRecord,
    ConfirmationDecision,
    ProgressUpdate,
    RiskLevel,
    ToolDefinition,
    ToolResult,
    ValidationResult,
)
from toolbridge.tools.pipeline import ExecutionPipeline
from toolbridge.tools.registry import (
    RegisteredTool,
    ToolMetadata,
    ToolRegistry,
    get_tool_registry,
)

__all__ = [
    "LOCAL_SERVER_NAME",
    "Tool",
    "ConfirmationUnavailableError",
    "ToolError",
    "ToolExecutionError",
    "ToolRegistrationError",
    "ToolValidationError",
    "UserCancelledError",
    "AuditRecord",
    "ConfirmationDecision",
    "ProgressUpdate",
    "RiskLevel",
    "ToolDefinition",
    "ToolResult",
    "ValidationResult",
    "ExecutionPipeline",
    "RegisteredTool",
    "ToolMetadata",
    "ToolRegistry",
    "get_tool_registry",
]
