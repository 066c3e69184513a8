"""Data models for the tool execution system."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class RiskLevel(str, Enum):
    """Risk classification controlling whether confirmation is required."""

    LOW = "low"  # Never confirmed
    MEDIUM = "medium"  # Confirmed when the operation looks destructive
    HIGH = "high"  # Always confirmed unless allowlisted


class ConfirmationDecision(str, Enum):
    """Answer given by the human-facing confirmation collaborator."""

    PROCEED_ONCE = "proceed_once"
    ALWAYS_ALLOW_TOOL = "always_allow_tool"
    ALWAYS_ALLOW_SERVER = "always_allow_server"
    CANCEL = "cancel"

    @property
    def proceeds(self) -> bool:
        """Whether the decision lets execution continue."""
        return self is not ConfirmationDecision.CANCEL


class ToolDefinition(BaseModel):
    """Schema-level description of a tool, as advertised to the LLM."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict)  # JSON Schema

    def to_function_schema(self) -> dict[str, Any]:
        """Get the definition in function-calling format."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


class ValidationResult(BaseModel):
    """Outcome of validating raw parameters against a tool schema."""

    valid: bool
    errors: Optional[list[str]] = None
    message: Optional[str] = None
    params: Any = Field(default=None, exclude=True)  # Typed params when valid


class ToolResult(BaseModel):
    """Uniform result of any tool invocation, local or proxied."""

    success: bool
    message: str
    data: Any = None
    error: Optional[str] = None
    user_cancelled: bool = False

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "ToolResult":
        """Create a successful result."""
        return cls(success=True, message=message, data=data)

    @classmethod
    def failure(cls, message: str, error: Optional[str] = None) -> "ToolResult":
        """Create a failed result."""
        return cls(success=False, message=message, error=error or "Unknown error")

    @classmethod
    def cancelled(cls, message: str = "Operation cancelled by user") -> "ToolResult":
        """Create a cancelled (non-error, non-success) result."""
        return cls(success=False, message=message, user_cancelled=True)

    def __str__(self) -> str:
        """String representation."""
        if self.user_cancelled:
            return f"Cancelled: {self.message}"
        if not self.success:
            return f"Error: {self.error or self.message}"
        return self.message[:200] + ("..." if len(self.message) > 200 else "")


class ProgressUpdate(BaseModel):
    """Progress notification emitted by the execution pipeline."""

    stage: str  # validation, risk_assessment, execution, completion
    percentage: int
    message: str


class AuditRecord(BaseModel):
    """Structured audit entry emitted after a tool has run."""

    timestamp: str
    tool_name: str
    params: Any = None
    outcome_summary: dict[str, Any] = Field(default_factory=dict)
    context_ref: Optional[str] = None
