"""
Tool exceptions for toolbridge.

Every exception raised inside the execution pipeline is recovered into a
ToolResult before it reaches the caller.
"""

from typing import Any, Optional


class ToolError(Exception):
    """Base exception for tool errors."""

    def __init__(self, message: str, tool_name: Optional[str] = None):
        super().__init__(message)
        self.tool_name = tool_name


class ToolValidationError(ToolError):
    """Parameters do not match the tool schema."""

    def __init__(self, message: str, errors: list[str], tool_name: Optional[str] = None):
        super().__init__(message, tool_name)
        self.errors = errors


class UserCancelledError(ToolError):
    """The human declined the confirmation prompt."""

    def __init__(
        self, message: str = "Operation cancelled by user", tool_name: Optional[str] = None
    ):
        super().__init__(message, tool_name)


class ConfirmationUnavailableError(ToolError):
    """Confirmation is required but no handler is configured."""

    pass


class ToolExecutionError(ToolError):
    """The tool body failed."""

    def __init__(
        self,
        message: str,
        tool_name: Optional[str] = None,
        parameters: Any = None,
        original_error: Optional[BaseException] = None,
    ):
        """Initialize error.

        Args:
            message: Error message
            tool_name: Name of the failing tool
            parameters: Parameters the tool was called with
            original_error: Underlying exception, if any
        """
        super().__init__(message, tool_name)
        self.parameters = parameters
        self.original_error = original_error


class ToolRegistrationError(ToolError):
    """A tool could not be registered (e.g. duplicate local name)."""

    pass
