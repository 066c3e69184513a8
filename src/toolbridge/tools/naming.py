"""
Tool name normalization.

LLM function-calling APIs only accept names made of ``[A-Za-z0-9_.-]`` and
at most 63 characters long. Names coming from external servers are forced
into that shape here.
"""

import re

MAX_TOOL_NAME_LENGTH = 63

# Kept parts when a name has to be shortened: 28 + len("___") + 32 == 63
_HEAD_LENGTH = 28
_TAIL_LENGTH = 32
_ELLIPSIS = "___"

_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9_.-]")

# Separator between a server name and a tool name in qualified names
NAMESPACE_SEPARATOR = "__"


def normalize_tool_name(name: str) -> str:
    """
    Replace every character an LLM would reject with an underscore.

    Args:
        name: Raw tool name.

    Returns:
        Name containing only ``[A-Za-z0-9_.-]``. An empty name becomes ``_``.
    """
    return _INVALID_CHARS.sub("_", name) or "_"


def shorten_tool_name(name: str) -> str:
    """
    Collapse the middle of an over-long name.

    Keeps the first 28 and the last 32 characters joined by ``___`` so both a
    recognizable prefix and suffix survive.
    """
    if len(name) <= MAX_TOOL_NAME_LENGTH:
        return name
    return name[:_HEAD_LENGTH] + _ELLIPSIS + name[-_TAIL_LENGTH:]


def qualify_tool_name(namespace: str, name: str) -> str:
    """Prefix a tool name with its server namespace."""
    return normalize_tool_name(f"{namespace}{NAMESPACE_SEPARATOR}{name}")


def to_llm_tool_name(name: str) -> str:
    """Normalize and shorten a name in one step."""
    return shorten_tool_name(normalize_tool_name(name))
