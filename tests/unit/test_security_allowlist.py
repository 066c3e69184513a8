"""Tests for the confirmation allowlist and confirmation handlers."""

import io
from unittest.mock import patch

from rich.console import Console

from toolbridge.security.allowlist import AllowList
from toolbridge.security.confirmation import (
    RichConfirmationHandler,
    auto_approve,
    auto_deny,
)
from toolbridge.tools.models import ConfirmationDecision


class TestAllowList:
    """Tests for AllowList."""

    def test_empty_allows_nothing(self):
        allowlist = AllowList()

        assert allowlist.is_allowed("files", "read") is False
        assert len(allowlist) == 0

    def test_allow_tool(self):
        allowlist = AllowList()

        allowlist.allow_tool("files", "read")

        assert allowlist.is_allowed("files", "read") is True
        assert allowlist.is_allowed("files", "write") is False
        assert "files.read" in allowlist

    def test_allow_server_covers_every_tool(self):
        allowlist = AllowList()

        allowlist.allow_server("files")

        assert allowlist.is_allowed("files", "read") is True
        assert allowlist.is_allowed("files", "write") is True
        assert allowlist.is_allowed("search", "read") is False

    def test_initial_keys(self):
        allowlist = AllowList(["local.echo", "files"])

        assert allowlist.keys() == ["files", "local.echo"]
        assert list(allowlist) == ["files", "local.echo"]

    def test_discard_and_clear(self):
        allowlist = AllowList(["files", "local.echo"])

        assert allowlist.discard("files") is True
        assert allowlist.discard("files") is False
        assert allowlist.is_allowed("files", "read") is False

        allowlist.clear()
        assert len(allowlist) == 0


class TestConfirmationHandlers:
    """Tests for confirmation handlers."""

    def test_auto_handlers(self):
        assert auto_approve("s", "t", "t", {}) is ConfirmationDecision.PROCEED_ONCE
        assert auto_deny("s", "t", "t", {}) is ConfirmationDecision.CANCEL

    def test_rich_handler_maps_answers(self):
        console = Console(file=io.StringIO())
        handler = RichConfirmationHandler(console=console)
        expected = {
            "once": ConfirmationDecision.PROCEED_ONCE,
            "tool": ConfirmationDecision.ALWAYS_ALLOW_TOOL,
            "server": ConfirmationDecision.ALWAYS_ALLOW_SERVER,
            "cancel": ConfirmationDecision.CANCEL,
        }

        for answer, decision in expected.items():
            with patch("toolbridge.security.confirmation.Prompt.ask", return_value=answer):
                assert handler("files", "read", "read", {"path": "/tmp/x"}) is decision

    def test_rich_handler_shows_request(self):
        output = io.StringIO()
        handler = RichConfirmationHandler(console=Console(file=output, width=120))

        with patch("toolbridge.security.confirmation.Prompt.ask", return_value="cancel"):
            handler("files", "read_file", "files__read_file", {"path": "/tmp/x"})

        text = output.getvalue()
        assert "files" in text
        assert "read_file" in text
        assert "/tmp/x" in text
