"""Tests for the Tool contract and the execution pipeline."""

import asyncio
from typing import Any

import pytest
from pydantic import BaseModel, Field

from toolbridge.security.allowlist import AllowList
from toolbridge.tools.base import LOCAL_SERVER_NAME, Tool
from toolbridge.tools.models import (
    AuditRecord,
    ConfirmationDecision,
    ProgressUpdate,
    RiskLevel,
    ToolResult,
)
from toolbridge.tools.pipeline import ExecutionPipeline
from toolbridge.tools.registry import ToolMetadata, ToolRegistry


class WriteParams(BaseModel):
    path: str
    content: str = ""
    count: int = Field(default=1, ge=1)


class RecordingTool(Tool):
    """Tool that records every execution."""

    params_model = WriteParams

    def __init__(self, context: Any = None, risk: RiskLevel = RiskLevel.LOW):
        self._risk = risk
        self.calls: list[WriteParams] = []
        super().__init__(context)

    @property
    def name(self) -> str:
        return "write_note"

    @property
    def description(self) -> str:
        return "Write a note to a file"

    @property
    def risk_level(self) -> RiskLevel:
        return self._risk

    async def execute_internal(self, params: WriteParams) -> ToolResult:
        self.calls.append(params)
        return ToolResult.ok(f"Wrote {params.path}", {"path": params.path})


class FailingTool(RecordingTool):
    async def execute_internal(self, params: WriteParams) -> ToolResult:
        raise RuntimeError("disk full")


class RecordingSink:
    def __init__(self) -> None:
        self.records: list[AuditRecord] = []
        self.cancelled: list[tuple[str, str]] = []

    def log_tool_execution(self, record: AuditRecord) -> None:
        self.records.append(record)

    def log_tool_cancelled(self, tool_name: str, server_name: str) -> None:
        self.cancelled.append((tool_name, server_name))


class Handler:
    """Confirmation handler returning a fixed decision and counting prompts."""

    def __init__(self, decision: ConfirmationDecision) -> None:
        self.decision = decision
        self.prompts: list[tuple[str, str, str, Any]] = []

    def __call__(self, server: str, tool: str, display: str, params: Any) -> ConfirmationDecision:
        self.prompts.append((server, tool, display, params))
        return self.decision


class TestToolContract:
    """Tests for Tool defaults."""

    def test_defaults(self):
        tool = RecordingTool()

        assert tool.server_name == LOCAL_SERVER_NAME
        assert tool.category == "general"
        assert tool.display_name == "write_note"
        assert tool.allowlist_tool_name == "write_note"

    def test_registered_name_changes_display_name(self):
        tool = RecordingTool()
        tool.registered_name = "write_note_2"

        assert tool.display_name == "write_note_2"
        assert tool.get_definition().name == "write_note_2"

    def test_parameter_schema_from_model(self):
        schema = RecordingTool().parameter_schema

        assert schema["type"] == "object"
        assert "path" in schema["properties"]
        assert schema["required"] == ["path"]
        assert "title" not in schema

    def test_function_schema(self):
        definition = RecordingTool().get_definition().to_function_schema()

        assert definition["name"] == "write_note"
        assert definition["description"] == "Write a note to a file"
        assert definition["parameters"]["type"] == "object"

    def test_empty_name_rejected(self):
        class Nameless(RecordingTool):
            @property
            def name(self) -> str:
                return ""

        with pytest.raises(ValueError, match="name"):
            Nameless()

    def test_validation_reports_all_errors(self):
        result = RecordingTool().validate_parameters({"count": 0})

        assert result.valid is False
        assert len(result.errors) == 2
        assert any(e.startswith("path:") for e in result.errors)
        assert any(e.startswith("count:") for e in result.errors)

    def test_validation_rejects_non_object(self):
        result = RecordingTool().validate_parameters(["a"])

        assert result.valid is False
        assert "list" in result.errors[0]

    def test_validation_returns_typed_params(self):
        result = RecordingTool().validate_parameters({"path": "a.txt"})

        assert result.valid is True
        assert isinstance(result.params, WriteParams)
        assert result.params.count == 1

    @pytest.mark.asyncio
    async def test_low_risk_never_confirms(self):
        tool = RecordingTool(risk=RiskLevel.LOW)
        assert await tool.should_request_confirmation(WriteParams(path="delete.txt")) is False

    @pytest.mark.asyncio
    async def test_high_risk_always_confirms(self):
        tool = RecordingTool(risk=RiskLevel.HIGH)
        assert await tool.should_request_confirmation(WriteParams(path="a.txt")) is True

    @pytest.mark.asyncio
    async def test_medium_risk_confirms_destructive_only(self):
        tool = RecordingTool(risk=RiskLevel.MEDIUM)

        assert await tool.should_request_confirmation(WriteParams(path="a.txt")) is False
        assert (
            await tool.should_request_confirmation(
                WriteParams(path="a.txt", content="Overwrite everything")
            )
            is True
        )


class TestExecutionPipeline:
    """Tests for the validate, confirm, execute and record pipeline."""

    @pytest.mark.asyncio
    async def test_successful_execution(self):
        sink = RecordingSink()
        pipeline = ExecutionPipeline(audit_sink=sink)
        tool = RecordingTool(context={"session": "s1"})

        result = await pipeline.run(tool, {"path": "a.txt"})

        assert result.success is True
        assert result.data == {"path": "a.txt"}
        assert len(tool.calls) == 1
        assert len(sink.records) == 1
        record = sink.records[0]
        assert record.tool_name == "write_note"
        assert record.params == {"path": "a.txt", "content": "", "count": 1}
        assert record.outcome_summary["success"] is True
        assert record.context_ref.startswith("dict@")

    @pytest.mark.asyncio
    async def test_validation_failure_skips_execution(self):
        sink = RecordingSink()
        tool = RecordingTool()

        result = await ExecutionPipeline(audit_sink=sink).run(tool, {"count": "many"})

        assert result.success is False
        assert result.error.startswith("Validation failed:")
        assert "path" in result.error
        assert "count" in result.error
        assert tool.calls == []
        assert sink.records == []

    @pytest.mark.asyncio
    async def test_progress_stages_in_order(self):
        updates: list[ProgressUpdate] = []

        await ExecutionPipeline().run(RecordingTool(), {"path": "a"}, updates.append)

        assert [u.stage for u in updates] == [
            "validation",
            "risk_assessment",
            "execution",
            "completion",
        ]
        assert [u.percentage for u in updates] == [10, 20, 50, 100]

    @pytest.mark.asyncio
    async def test_async_progress_callback(self):
        stages: list[str] = []

        async def on_progress(update: ProgressUpdate) -> None:
            stages.append(update.stage)

        await ExecutionPipeline().run(RecordingTool(), {"path": "a"}, on_progress)

        assert stages[-1] == "completion"

    @pytest.mark.asyncio
    async def test_failing_progress_callback_is_ignored(self):
        def on_progress(update: ProgressUpdate) -> None:
            raise ValueError("listener broke")

        result = await ExecutionPipeline().run(RecordingTool(), {"path": "a"}, on_progress)

        assert result.success is True

    @pytest.mark.asyncio
    async def test_high_risk_prompts_and_proceeds_once(self):
        handler = Handler(ConfirmationDecision.PROCEED_ONCE)
        allowlist = AllowList()
        pipeline = ExecutionPipeline(allowlist=allowlist, confirmation_handler=handler)
        tool = RecordingTool(risk=RiskLevel.HIGH)

        result = await pipeline.run(tool, {"path": "a.txt"})

        assert result.success is True
        assert len(handler.prompts) == 1
        server, tool_name, display, params = handler.prompts[0]
        assert (server, tool_name, display) == ("local", "write_note", "write_note")
        assert params == {"path": "a.txt", "content": "", "count": 1}
        assert len(allowlist) == 0

    @pytest.mark.asyncio
    async def test_cancel_returns_cancelled_result(self):
        handler = Handler(ConfirmationDecision.CANCEL)
        sink = RecordingSink()
        tool = RecordingTool(risk=RiskLevel.HIGH)
        pipeline = ExecutionPipeline(confirmation_handler=handler, audit_sink=sink)

        result = await pipeline.run(tool, {"path": "a.txt"})

        assert result.success is False
        assert result.user_cancelled is True
        assert result.error is None
        assert tool.calls == []
        assert sink.records == []
        assert sink.cancelled == [("write_note", "local")]

    @pytest.mark.asyncio
    async def test_always_allow_tool_skips_later_prompts(self):
        handler = Handler(ConfirmationDecision.ALWAYS_ALLOW_TOOL)
        allowlist = AllowList()
        pipeline = ExecutionPipeline(allowlist=allowlist, confirmation_handler=handler)
        tool = RecordingTool(risk=RiskLevel.HIGH)

        await pipeline.run(tool, {"path": "a.txt"})
        await pipeline.run(tool, {"path": "b.txt"})

        assert len(handler.prompts) == 1
        assert len(tool.calls) == 2
        assert allowlist.keys() == ["local.write_note"]

    @pytest.mark.asyncio
    async def test_always_allow_server(self):
        handler = Handler(ConfirmationDecision.ALWAYS_ALLOW_SERVER)
        allowlist = AllowList()
        pipeline = ExecutionPipeline(allowlist=allowlist, confirmation_handler=handler)

        await pipeline.run(RecordingTool(risk=RiskLevel.HIGH), {"path": "a.txt"})

        assert allowlist.keys() == ["local"]
        assert allowlist.is_allowed("local", "anything")

    @pytest.mark.asyncio
    async def test_async_confirmation_handler(self):
        prompts = []

        async def confirm(server, tool, display, params):
            prompts.append(tool)
            return ConfirmationDecision.PROCEED_ONCE

        pipeline = ExecutionPipeline(confirmation_handler=confirm)
        result = await pipeline.run(RecordingTool(risk=RiskLevel.HIGH), {"path": "a"})

        assert result.success is True
        assert prompts == ["write_note"]

    @pytest.mark.asyncio
    async def test_missing_handler_fails_closed(self):
        sink = RecordingSink()
        tool = RecordingTool(risk=RiskLevel.HIGH)

        result = await ExecutionPipeline(audit_sink=sink).run(tool, {"path": "a"})

        assert result.success is False
        assert "no handler" in result.error
        assert "execution failed" not in result.message
        assert tool.calls == []
        assert sink.records == []

    @pytest.mark.asyncio
    async def test_cancelling_dispatch_during_confirmation_aborts(self):
        prompted = asyncio.Event()
        created: list[RecordingTool] = []

        async def slow_confirm(server, tool, display, params):
            prompted.set()
            await asyncio.sleep(3600)
            return ConfirmationDecision.PROCEED_ONCE

        def factory(context):
            tool = RecordingTool(context, risk=RiskLevel.HIGH)
            created.append(tool)
            return tool

        sink = RecordingSink()
        registry = ToolRegistry(
            ExecutionPipeline(confirmation_handler=slow_confirm, audit_sink=sink)
        )
        registry.register(
            "write_note",
            factory,
            ToolMetadata(description="Write a note", risk_level=RiskLevel.HIGH),
        )

        task = asyncio.create_task(registry.dispatch("write_note", {"path": "a"}))
        await asyncio.wait_for(prompted.wait(), 1)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert created[0].calls == []
        assert sink.records == []

    @pytest.mark.asyncio
    async def test_preallowlisted_tool_runs_without_prompt(self):
        handler = Handler(ConfirmationDecision.CANCEL)
        pipeline = ExecutionPipeline(
            allowlist=AllowList(["local.write_note"]), confirmation_handler=handler
        )

        result = await pipeline.run(RecordingTool(risk=RiskLevel.HIGH), {"path": "a"})

        assert result.success is True
        assert handler.prompts == []

    @pytest.mark.asyncio
    async def test_execution_error_becomes_result(self):
        sink = RecordingSink()

        result = await ExecutionPipeline(audit_sink=sink).run(FailingTool(), {"path": "a"})

        assert result.success is False
        assert result.error == "disk full"
        assert result.user_cancelled is False
        assert len(sink.records) == 1
        assert sink.records[0].outcome_summary["success"] is False

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_fail_call(self):
        class BrokenSink:
            def log_tool_execution(self, record: AuditRecord) -> None:
                raise OSError("read-only filesystem")

        result = await ExecutionPipeline(audit_sink=BrokenSink()).run(
            RecordingTool(), {"path": "a"}
        )

        assert result.success is True

    @pytest.mark.asyncio
    async def test_tool_execute_uses_default_pipeline(self):
        tool = RecordingTool()

        result = await tool.execute({"path": "a"})

        assert result.success is True
        assert tool.calls[0].path == "a"


class TestToolResult:
    """Tests for ToolResult constructors."""

    def test_failure_defaults_error(self):
        result = ToolResult.failure("boom")
        assert result.error == "Unknown error"

    def test_cancelled(self):
        result = ToolResult.cancelled()
        assert result.user_cancelled is True
        assert result.success is False
        assert str(result) == "Cancelled: Operation cancelled by user"

    def test_confirmation_decision_proceeds(self):
        assert ConfirmationDecision.PROCEED_ONCE.proceeds
        assert not ConfirmationDecision.CANCEL.proceeds
