"""
Configuration merging for toolbridge.

Deep merge with list operations: a ``+key`` entry appends to the list at
``key`` and a ``-key`` entry removes items from it.
"""

from typing import Any


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Merge ``override`` into a copy of ``base``.

    Merge rules:
    - Scalars and plain lists in override replace base
    - Dicts merge recursively
    - ``+key: [...]`` appends items not already present
    - ``-key: [...]`` removes the listed items
    - ``key: null`` removes the key

    Args:
        base: Base configuration dictionary.
        override: Override configuration dictionary.

    Returns:
        Merged configuration dictionary.

    Examples:
        >>> deep_merge({"tools": {"disabled": ["a"]}}, {"tools": {"+disabled": ["b"]}})
        {'tools': {'disabled': ['a', 'b']}}

        >>> deep_merge({"tools": {"disabled": ["a", "b"]}}, {"tools": {"-disabled": ["a"]}})
        {'tools': {'disabled': ['b']}}
    """
    merged = dict(base)

    for key, value in override.items():
        if key.startswith("+") and isinstance(value, list):
            target = key[1:]
            existing = merged.get(target)
            if isinstance(existing, list):
                merged[target] = existing + [item for item in value if item not in existing]
            else:
                merged[target] = list(value)

        elif key.startswith("-") and isinstance(value, list):
            target = key[1:]
            existing = merged.get(target)
            if isinstance(existing, list):
                merged[target] = [item for item in existing if item not in value]

        elif value is None:
            merged.pop(key, None)

        elif isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)

        else:
            merged[key] = value

    return merged


def get_nested_value(config: dict[str, Any], key_path: str) -> Any:
    """
    Get a value by dot-separated path, or None if any segment is missing.

    Examples:
        >>> get_nested_value({"mcp": {"server_command": "srv"}}, "mcp.server_command")
        'srv'
    """
    current: Any = config
    for key in key_path.split("."):
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def set_nested_value(config: dict[str, Any], key_path: str, value: Any) -> dict[str, Any]:
    """
    Set a value by dot-separated path, creating intermediate dicts.

    Returns:
        The modified configuration dictionary.
    """
    keys = key_path.split(".")
    current = config

    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]

    current[keys[-1]] = value
    return config


def resolve_key_path(config: dict[str, Any], parts: list[str]) -> str:
    """
    Map underscore-split name parts onto existing configuration keys.

    Environment variable names cannot tell ``mcp.default_timeout_ms`` from
    ``mcp.default.timeout.ms``, so at each level the longest run of parts
    naming an existing key wins. Unknown parts become one segment each.

    Examples:
        >>> resolve_key_path({"mcp": {"default_timeout_ms": 1}}, ["mcp", "default", "timeout", "ms"])
        'mcp.default_timeout_ms'
    """
    segments: list[str] = []
    current: Any = config
    index = 0

    while index < len(parts):
        match = None
        if isinstance(current, dict):
            for end in range(len(parts), index, -1):
                candidate = "_".join(parts[index:end])
                if candidate in current:
                    match = (candidate, end)
                    break

        if match is None:
            segments.append(parts[index])
            current = None
            index += 1
        else:
            candidate, index = match
            segments.append(candidate)
            current = current[candidate]

    return ".".join(segments)
