"""
Confirmation collaborators for toolbridge.

Each handler takes ``(server_name, tool_name, display_name, params)`` and
returns a ConfirmationDecision. The pipeline also accepts async handlers.
"""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.syntax import Syntax

from toolbridge.tools.models import ConfirmationDecision

# Prompt answer -> decision
_CHOICES: dict[str, ConfirmationDecision] = {
    "once": ConfirmationDecision.PROCEED_ONCE,
    "tool": ConfirmationDecision.ALWAYS_ALLOW_TOOL,
    "server": ConfirmationDecision.ALWAYS_ALLOW_SERVER,
    "cancel": ConfirmationDecision.CANCEL,
}


class RichConfirmationHandler:
    """
    Terminal confirmation prompt rendered with rich.

    Shows the server, tool and parameters, then asks for one of
    ``once``, ``tool``, ``server`` or ``cancel``.
    """

    def __init__(self, console: Console | None = None, default: str = "cancel") -> None:
        self.console = console or Console()
        self.default = default

    def __call__(
        self, server_name: str, tool_name: str, display_name: str, params: Any
    ) -> ConfirmationDecision:
        self.console.print(
            Panel(
                f"Server: [cyan]{server_name}[/cyan]\n"
                f"Tool: [cyan]{tool_name}[/cyan] ({display_name})",
                title="Confirm Tool Execution",
                border_style="yellow",
            )
        )

        if params:
            self.console.print(
                Syntax(json.dumps(params, indent=2, default=str), "json", word_wrap=True)
            )

        self.console.print(
            "[yellow]Warning:[/yellow] this will run an external tool. "
            "Only proceed if you trust this server."
        )

        answer = Prompt.ask(
            "Proceed?",
            choices=list(_CHOICES),
            default=self.default,
            console=self.console,
        )
        return _CHOICES[answer]


def auto_approve(
    server_name: str, tool_name: str, display_name: str, params: Any
) -> ConfirmationDecision:
    """Handler approving every request once (non-interactive runs)."""
    return ConfirmationDecision.PROCEED_ONCE


def auto_deny(
    server_name: str, tool_name: str, display_name: str, params: Any
) -> ConfirmationDecision:
    """Handler cancelling every request."""
    return ConfirmationDecision.CANCEL
