"""
toolbridge - Tool execution and MCP discovery framework

Lets an AI agent invoke local tools and tools discovered from external
Model Context Protocol servers through one validated, risk-gated pipeline.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("toolbridge")
except PackageNotFoundError:
    __version__ = "0.3.0"

__all__ = [
    "__version__",
]
