"""
Pytest configuration and fixtures for toolbridge tests.
"""

import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest
from typer.testing import CliRunner

from toolbridge.audit.logger import reset_audit_logger
from toolbridge.config import clear_config_cache
from toolbridge.tools.registry import reset_tool_registry


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def mock_toolbridge_home(
    temp_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Point TOOLBRIDGE_HOME at a throwaway directory and drop env overrides."""
    import os

    for key in list(os.environ):
        if key.startswith("TOOLBRIDGE_"):
            monkeypatch.delenv(key)

    home = temp_dir / ".toolbridge"
    home.mkdir()
    home = home.resolve()
    monkeypatch.setenv("TOOLBRIDGE_HOME", str(home))

    yield home

    clear_config_cache()
    reset_audit_logger()
    reset_tool_registry()


@pytest.fixture
def sample_config() -> dict:
    """Provide a sample configuration dictionary."""
    return {
        "mcp": {
            "servers": {
                "files": {
                    "command": "npx",
                    "args": ["-y", "@modelcontextprotocol/server-filesystem", "/tmp"],
                    "trust": True,
                },
                "search": {
                    "httpUrl": "https://example.com/mcp",
                    "timeout": 30000,
                },
            },
            "default_timeout_ms": 60000,
        },
        "tools": {"disabled": ["search__drop_index"]},
        "audit": {"enable": True, "buffer_size": 1},
    }
