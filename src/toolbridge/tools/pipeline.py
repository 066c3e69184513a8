"""Execution pipeline shared by every tool invocation."""

import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from toolbridge.security.allowlist import AllowList
from toolbridge.tools.base import Tool
from toolbridge.tools.exceptions import (
    ConfirmationUnavailableError,
    ToolError,
    ToolExecutionError,
    ToolValidationError,
    UserCancelledError,
)
from toolbridge.tools.models import (
    AuditRecord,
    ConfirmationDecision,
    ProgressUpdate,
    ToolResult,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressUpdate], Optional[Awaitable[None]]]

ConfirmationHandler = Callable[
    [str, str, str, Any],
    ConfirmationDecision | Awaitable[ConfirmationDecision],
]


class AuditSink(Protocol):
    """Anything that accepts tool audit records."""

    def log_tool_execution(self, record: AuditRecord) -> None: ...


class ExecutionPipeline:
    """Validate, assess risk, confirm, execute and record a tool call.

    Steps run strictly in order and short-circuit on failure:
    1. Validate raw params against the tool schema
    2. Decide whether confirmation is needed from the risk level
    3. Consult the allowlist, then the confirmation handler
    4. Run the tool body
    5. Emit an audit record

    Whatever goes wrong is returned as a ToolResult; only task cancellation
    propagates to the caller.
    """

    def __init__(
        self,
        allowlist: Optional[AllowList] = None,
        confirmation_handler: Optional[ConfirmationHandler] = None,
        audit_sink: Optional[AuditSink] = None,
    ):
        """Initialize the pipeline.

        Args:
            allowlist: Approvals shared by every call through this pipeline
            confirmation_handler: Human-facing confirmation collaborator
            audit_sink: Receiver of audit records
        """
        self.allowlist = allowlist if allowlist is not None else AllowList()
        self.confirmation_handler = confirmation_handler
        self.audit_sink = audit_sink

    async def run(
        self,
        tool: Tool,
        raw_params: Any,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ToolResult:
        """Run one tool invocation through every pipeline stage.

        Args:
            tool: Tool instance bound to its execution context
            raw_params: Unvalidated parameters
            progress_callback: Optional progress listener (sync or async)

        Returns:
            ToolResult describing success, failure or cancellation
        """
        params: Any = raw_params
        try:
            await self._report(progress_callback, "validation", 10, "Validating parameters...")

            validation = tool.validate_parameters(raw_params)
            if not validation.valid:
                raise ToolValidationError(
                    f"Invalid parameters for {tool.display_name}: {validation.message}",
                    validation.errors or [],
                    tool.display_name,
                )
            params = validation.params

            await self._report(
                progress_callback, "risk_assessment", 20, "Assessing operation risk..."
            )

            if await tool.should_request_confirmation(params):
                await self._confirm(tool, params)

            await self._report(progress_callback, "execution", 50, "Executing operation...")

            try:
                result = await tool.execute_internal(params)
            except ToolError:
                raise
            except Exception as e:
                raise ToolExecutionError(
                    f"{tool.display_name} execution failed",
                    tool.display_name,
                    params,
                    e,
                ) from e

            await self._report(progress_callback, "completion", 100, "Operation completed")

            self._record(tool, params, result)
            return result

        except UserCancelledError as e:
            logger.info(f"Tool '{tool.display_name}' cancelled by user")
            self._record_cancellation(tool)
            return ToolResult.cancelled(str(e))

        except ConfirmationUnavailableError as e:
            logger.warning(str(e))
            return ToolResult(
                success=False, message=f"{tool.display_name} was not run", error=str(e)
            )

        except ToolValidationError as e:
            logger.warning(f"Validation failed for tool '{tool.display_name}': {e.errors}")
            return ToolResult(
                success=False,
                message=str(e),
                error=f"Validation failed: {', '.join(e.errors)}",
            )

        except ToolExecutionError as e:
            logger.error(f"Tool '{tool.display_name}' failed: {e.original_error or e}")
            result = ToolResult(
                success=False,
                message=str(e),
                error=str(e.original_error) if e.original_error else str(e),
            )
            self._record(tool, params, result)
            return result

        except Exception as e:
            logger.exception(f"Unexpected error running tool '{tool.display_name}'")
            return ToolResult(
                success=False,
                message=f"{tool.display_name} execution failed",
                error=str(e) or type(e).__name__,
            )

    async def _confirm(self, tool: Tool, params: Any) -> None:
        """Ask for confirmation unless the tool or its server is allowlisted.

        Raises:
            UserCancelledError: If the human cancels
            ConfirmationUnavailableError: If no confirmation handler is configured
        """
        server_name = tool.server_name
        tool_name = tool.allowlist_tool_name

        if self.allowlist.is_allowed(server_name, tool_name):
            logger.debug(f"Tool '{tool.display_name}' is allowlisted, skipping confirmation")
            return

        if self.confirmation_handler is None:
            raise ConfirmationUnavailableError(
                f"Confirmation required for {tool.display_name} but no handler is configured",
                tool.display_name,
            )

        decision = self.confirmation_handler(
            server_name, tool_name, tool.display_name, tool.serialize_params(params)
        )
        if inspect.isawaitable(decision):
            decision = await decision
        decision = ConfirmationDecision(decision)

        if decision is ConfirmationDecision.CANCEL:
            raise UserCancelledError(tool_name=tool.display_name)

        if decision is ConfirmationDecision.ALWAYS_ALLOW_SERVER:
            self.allowlist.allow_server(server_name)
        elif decision is ConfirmationDecision.ALWAYS_ALLOW_TOOL:
            self.allowlist.allow_tool(server_name, tool_name)

    async def _report(
        self,
        progress_callback: Optional[ProgressCallback],
        stage: str,
        percentage: int,
        message: str,
    ) -> None:
        """Notify the progress callback, ignoring its failures."""
        if progress_callback is None:
            return

        try:
            outcome = progress_callback(
                ProgressUpdate(stage=stage, percentage=percentage, message=message)
            )
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Progress callback error: {e}")

    def _record(self, tool: Tool, params: Any, result: ToolResult) -> None:
        """Emit an audit record; never fails the call."""
        try:
            record = AuditRecord(
                timestamp=datetime.now(timezone.utc).isoformat(),
                tool_name=tool.display_name,
                params=tool.serialize_params(params),
                outcome_summary={
                    "success": result.success,
                    "message": result.message,
                    "has_data": result.data is not None,
                    "error": result.error,
                },
                context_ref=_context_ref(tool.context),
            )
            logger.debug(f"Tool execution: {record.tool_name} success={result.success}")
            if self.audit_sink is not None:
                self.audit_sink.log_tool_execution(record)
        except Exception as e:
            logger.warning(f"Failed to record execution of '{tool.display_name}': {e}")

    def _record_cancellation(self, tool: Tool) -> None:
        """Tell the audit sink a call was cancelled, if it tracks cancellations."""
        log_cancelled = getattr(self.audit_sink, "log_tool_cancelled", None)
        if log_cancelled is None:
            return
        try:
            log_cancelled(tool.display_name, tool.server_name)
        except Exception as e:
            logger.warning(f"Failed to record cancellation of '{tool.display_name}': {e}")


def _context_ref(context: Any) -> Optional[str]:
    """Opaque reference to an execution context for audit records."""
    if context is None:
        return None
    return f"{type(context).__name__}@{id(context):x}"
