"""
Main Typer application for the toolbridge CLI.

Every command runs MCP discovery against the configured servers, does its
work, and closes all connections before exiting.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from rich.table import Table

from toolbridge import __version__
from toolbridge.audit.logger import AuditLogger
from toolbridge.cli.output import (
    console,
    print_error,
    print_info,
    print_success,
    print_warning,
    setup_logging,
)
from toolbridge.config import Config, ConfigurationError, load_config, set_config
from toolbridge.mcp import MCPClient, MCPServerStatus
from toolbridge.security import AllowList, RichConfirmationHandler, auto_approve
from toolbridge.tools import ConfirmationDecision, ExecutionPipeline, ToolRegistry

T = TypeVar("T")

# Create the main Typer app
app = typer.Typer(
    name="toolbridge",
    help="Run local and MCP-discovered tools through a confirmation-gated pipeline.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
)

_STATUS_STYLES = {
    MCPServerStatus.CONNECTED: "green",
    MCPServerStatus.CONNECTING: "yellow",
    MCPServerStatus.DISCONNECTED: "red",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        print_info(f"toolbridge version [green]{__version__}[/green]")
        raise typer.Exit()


# noinspection PyUnusedLocal
@app.callback()
def main_callback(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Config file merged over ~/.toolbridge/config.yaml.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Show debug logging.",
        ),
    ] = False,
) -> None:
    """
    [bold blue]toolbridge[/bold blue] - tool execution and MCP discovery
    """
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        print_error(str(e))
        raise typer.Exit(1)

    set_config(config)
    setup_logging("DEBUG" if verbose else config.logging.level)
    ctx.obj = config


class Runtime:
    """Registry, pipeline and MCP client wired from configuration."""

    def __init__(self, config: Config, confirm: bool = True) -> None:
        self.config = config
        self.audit_logger = (
            AuditLogger.from_config(config.audit) if config.audit.enable else None
        )
        handler: Callable[..., Any] = (
            _threaded(RichConfirmationHandler(console)) if confirm else auto_approve
        )
        self.pipeline = ExecutionPipeline(
            allowlist=AllowList(),
            confirmation_handler=handler,
            audit_sink=self.audit_logger,
        )
        self.registry = ToolRegistry(pipeline=self.pipeline)
        self.client = MCPClient(self.registry, audit_logger=self.audit_logger)

    async def discover(self) -> dict[str, MCPServerStatus]:
        """Discover tools and apply the configured disabled list."""
        statuses = await self.client.discover_tools(
            self.config.mcp.resolved_servers(), self.config.mcp.server_command
        )
        for name in self.config.tools.disabled:
            if not self.registry.set_tool_enabled(name, False):
                print_warning(f"Disabled tool '{name}' is not registered")
        return statuses

    async def run(self, work: Callable[["Runtime"], Awaitable[T]]) -> T:
        """Discover, run ``work`` and always clean up."""
        try:
            await self.discover()
            return await work(self)
        finally:
            await self.client.cleanup()
            if self.audit_logger is not None:
                self.audit_logger.close()


def _threaded(
    handler: Callable[..., ConfirmationDecision],
) -> Callable[..., Awaitable[ConfirmationDecision]]:
    """Run a blocking prompt off the event loop so transports keep flowing."""

    async def confirm(*args: Any) -> ConfirmationDecision:
        return await asyncio.to_thread(handler, *args)

    return confirm


def _no_servers_hint(config: Config) -> None:
    if not config.mcp.servers and not config.mcp.server_command:
        print_warning("No MCP servers configured (set mcp.servers in config.yaml)")


@app.command("servers")
def servers(ctx: typer.Context) -> None:
    """Connect to every configured MCP server and show its status."""
    config: Config = ctx.obj
    _no_servers_hint(config)

    async def work(runtime: Runtime) -> list[list[str]]:
        rows = []
        for name, status in sorted(runtime.client.get_all_server_statuses().items()):
            connection = runtime.client.get_connection(name)
            transport = connection.transport_kind.value if connection else "-"
            style = _STATUS_STYLES.get(status, "white")
            rows.append(
                [
                    name,
                    f"[{style}]{status.value}[/{style}]",
                    transport,
                    str(len(runtime.client.get_server_tools(name))),
                ]
            )
        return rows

    rows = asyncio.run(Runtime(config).run(work))

    table = Table(title="MCP Servers")
    table.add_column("Server", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Transport", style="magenta")
    table.add_column("Tools", justify="right")
    for row in rows:
        table.add_row(*row)
    console.print(table)


@app.command("tools")
def tools(
    ctx: typer.Context,
    category: Annotated[
        str | None,
        typer.Option("--category", help="Only show tools of this category."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print function-calling schemas as JSON."),
    ] = False,
) -> None:
    """List every enabled tool after discovery."""
    config: Config = ctx.obj
    _no_servers_hint(config)

    async def work(runtime: Runtime) -> list[tuple[str, str, str, dict[str, Any]]]:
        listed = []
        for definition in runtime.registry.list_definitions(category):
            entry = runtime.registry.lookup(definition.name)
            risk = entry.metadata.risk_level.value if entry else "-"
            listed.append(
                (definition.name, risk, definition.description, definition.to_function_schema())
            )
        return listed

    listed = asyncio.run(Runtime(config).run(work))

    if as_json:
        console.print_json(json.dumps([schema for *_, schema in listed]))
        return

    if not listed:
        console.print("[yellow]No tools registered.[/yellow]")
        return

    table = Table(title="Available Tools")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Risk", style="magenta")
    table.add_column("Description")
    for name, risk, description, _ in listed:
        desc = description[:80] + "..." if len(description) > 80 else description
        table.add_row(name, risk, desc)

    console.print(table)
    console.print(f"\n[dim]Total: {len(listed)} tool(s)[/dim]")


@app.command("call")
def call(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Registered tool name.")],
    params: Annotated[
        str,
        typer.Option("--params", "-p", help="Tool parameters as a JSON object."),
    ] = "{}",
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Approve confirmations without prompting."),
    ] = False,
) -> None:
    """Discover tools, then call one through the execution pipeline."""
    config: Config = ctx.obj

    try:
        raw_params = json.loads(params)
    except json.JSONDecodeError as e:
        print_error(f"Invalid --params JSON: {e}")
        raise typer.Exit(2)

    async def work(runtime: Runtime) -> Any:
        if name not in runtime.registry:
            return None
        return await runtime.registry.dispatch(
            name, raw_params, timeout=config.tools.call_timeout_seconds
        )

    result = asyncio.run(Runtime(config, confirm=not yes).run(work))

    if result is None:
        print_error(f"Tool '{name}' not found")
        raise typer.Exit(1)

    if result.user_cancelled:
        print_warning(result.message)
        raise typer.Exit(1)

    if not result.success:
        print_error(f"{result.message}: {result.error}")
        if result.data is not None:
            console.print_json(json.dumps(result.data, default=str))
        raise typer.Exit(1)

    print_success(result.message)
    if isinstance(result.data, dict) and result.data.get("type") == "text":
        console.print(result.data["content"])
    elif result.data is not None:
        console.print_json(json.dumps(result.data, default=str))
