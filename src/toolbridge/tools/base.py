"""Base classes for tool implementation."""

import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ValidationError

from toolbridge.tools.models import (
    RiskLevel,
    ToolDefinition,
    ToolResult,
    ValidationResult,
)

if TYPE_CHECKING:
    from toolbridge.tools.pipeline import ExecutionPipeline, ProgressCallback

logger = logging.getLogger(__name__)

# Server name used in allowlist keys for tools that run in-process
LOCAL_SERVER_NAME = "local"

DESTRUCTIVE_KEYWORDS = ("delete", "remove", "clear", "replace", "overwrite")


class Tool(ABC):
    """Base class for all tools.

    Tools are actions the AI agent can invoke to perform operations beyond
    text generation. Each tool defines:
    - Name and description (for AI to understand when to use it)
    - Input parameters (a pydantic model, exported as JSON schema)
    - Execution logic
    - Risk classification (low, medium, high)

    Tools are instantiated per call by the registry and bound to an opaque
    execution context supplied by the caller.
    """

    #: Pydantic model describing the parameters. ``None`` accepts any object.
    params_model: Optional[type[BaseModel]] = None

    def __init__(self, context: Any = None):
        """Initialize the tool.

        Args:
            context: Opaque execution context, forwarded untouched
        """
        self.context = context
        # Name under which the registry exposes this instance
        self.registered_name: Optional[str] = None
        self._validate_definition()

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool name (must be unique)."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Description of what the tool does (for AI)."""
        pass

    @property
    def risk_level(self) -> RiskLevel:
        """Risk classification of the tool."""
        return RiskLevel.LOW

    @property
    def category(self) -> str:
        """Category used for grouping and filtering."""
        return "general"

    @property
    def server_name(self) -> str:
        """Server the tool belongs to, used for allowlist keys."""
        return LOCAL_SERVER_NAME

    @property
    def allowlist_tool_name(self) -> str:
        """Tool part of the ``server.tool`` allowlist key."""
        return self.name

    @property
    def display_name(self) -> str:
        """Name the LLM sees (the registered name when registered)."""
        return self.registered_name or self.name

    @property
    def parameter_schema(self) -> dict[str, Any]:
        """JSON schema for tool input."""
        if self.params_model is None:
            return {"type": "object", "properties": {}}

        schema = self.params_model.model_json_schema()
        schema.pop("title", None)
        return schema

    def get_definition(self) -> ToolDefinition:
        """Get the tool definition advertised to the AI provider."""
        return ToolDefinition(
            name=self.display_name,
            description=self.description,
            parameters=self.parameter_schema,
        )

    def validate_parameters(self, raw_params: Any) -> ValidationResult:
        """Validate raw parameters against the tool's schema.

        Every violation is reported, not just the first one.

        Args:
            raw_params: Parameters as received from the caller

        Returns:
            ValidationResult carrying the typed params when valid
        """
        if raw_params is None:
            raw_params = {}

        if not isinstance(raw_params, dict):
            errors = [f"Parameters must be an object, got {type(raw_params).__name__}"]
            return ValidationResult(
                valid=False,
                errors=errors,
                message=f"Parameter validation failed: {errors[0]}",
            )

        if self.params_model is None:
            return ValidationResult(valid=True, params=dict(raw_params))

        try:
            params = self.params_model.model_validate(raw_params)
        except ValidationError as e:
            errors = [_format_pydantic_error(err) for err in e.errors()]
            return ValidationResult(
                valid=False,
                errors=errors,
                message=f"Parameter validation failed: {', '.join(errors)}",
            )

        return ValidationResult(valid=True, params=params)

    async def should_request_confirmation(self, params: Any) -> bool:
        """Determine if user confirmation is required for this operation."""
        if self.risk_level == RiskLevel.HIGH:
            return True

        if self.risk_level == RiskLevel.MEDIUM:
            return self.is_destructive_operation(params)

        return False

    def is_destructive_operation(self, params: Any) -> bool:
        """Check if the operation modifies or deletes data.

        The default looks for destructive verbs in the serialized
        parameters. Override in concrete tools for more specific logic.
        """
        params_str = json.dumps(self.serialize_params(params), default=str).lower()
        return any(keyword in params_str for keyword in DESTRUCTIVE_KEYWORDS)

    def serialize_params(self, params: Any) -> Any:
        """Convert typed params to JSON-compatible data."""
        if isinstance(params, BaseModel):
            return params.model_dump(mode="json")
        return params

    @abstractmethod
    async def execute_internal(self, params: Any) -> ToolResult:
        """Run the tool body with validated params.

        Args:
            params: Validated params (a ``params_model`` instance or a dict)

        Returns:
            ToolResult with output or error
        """
        pass

    async def execute(
        self,
        raw_params: Any,
        progress_callback: Optional["ProgressCallback"] = None,
        pipeline: Optional["ExecutionPipeline"] = None,
    ) -> ToolResult:
        """Execute the tool through the validation and confirmation pipeline.

        Args:
            raw_params: Unvalidated parameters
            progress_callback: Optional progress listener
            pipeline: Pipeline to run through (a default one if omitted)

        Returns:
            ToolResult; never raises for tool-level failures
        """
        if pipeline is None:
            from toolbridge.tools.pipeline import ExecutionPipeline

            pipeline = ExecutionPipeline()
        return await pipeline.run(self, raw_params, progress_callback)

    def create_error_result(
        self, message: str, error: Optional[BaseException] = None
    ) -> ToolResult:
        """Create a consistent error response."""
        return ToolResult.failure(message, str(error) if error else None)

    def create_success_result(self, message: str, data: Any = None) -> ToolResult:
        """Create a successful response."""
        return ToolResult.ok(message, data)

    def _validate_definition(self) -> None:
        """Validate tool definition is correct.

        Raises:
            ValueError: If tool definition is invalid
        """
        if not self.name:
            raise ValueError("Tool name cannot be empty")

        if not self.description:
            raise ValueError("Tool description cannot be empty")

    def __str__(self) -> str:
        """String representation."""
        return f"Tool({self.display_name})"

    def __repr__(self) -> str:
        """Representation."""
        return f"<Tool name={self.display_name} risk={self.risk_level.value}>"


def _format_pydantic_error(error: dict[str, Any]) -> str:
    """Render one pydantic error entry as ``path: message``."""
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "invalid value")
    return f"{location}: {message}" if location else message
