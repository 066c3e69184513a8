"""
Parameter schema handling for discovered MCP tools.

Schemas published by external servers are untrusted input. They are
sanitized into a fresh tree before being advertised to the LLM and
compiled into a jsonschema validator for call-time checks.
"""

import logging
from typing import Any

from jsonschema import exceptions as jsonschema_exceptions
from jsonschema import validators

logger = logging.getLogger(__name__)

EMPTY_OBJECT_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}

_UNION_KEYWORDS = ("anyOf",)


def sanitize_parameters(schema: Any, in_union: bool = False) -> Any:
    """
    Return a sanitized copy of a parameter schema.

    Wherever a node carries an ``anyOf`` union, its ``default`` and the
    ``default`` of each union branch are dropped (conflicting defaults
    across branches break some LLM APIs). The
    transform recurses into ``items``, ``properties`` values and every union
    branch. The input is never mutated, so sub-schemas shared between tools
    stay intact.

    Args:
        schema: JSON schema node (any JSON value)
        in_union: Whether the node is a direct branch of a union

    Returns:
        New schema tree
    """
    if isinstance(schema, list):
        return [sanitize_parameters(item) for item in schema]

    if not isinstance(schema, dict):
        return schema

    result: dict[str, Any] = {}
    drop_default = in_union or any(isinstance(schema.get(k), list) for k in _UNION_KEYWORDS)

    for key, value in schema.items():
        if key == "default" and drop_default:
            continue

        if key in _UNION_KEYWORDS and isinstance(value, list):
            result[key] = [sanitize_parameters(branch, in_union=True) for branch in value]
        elif key == "items":
            result[key] = sanitize_parameters(value)
        elif key == "properties" and isinstance(value, dict):
            result[key] = {name: sanitize_parameters(prop) for name, prop in value.items()}
        elif isinstance(value, (dict, list)):
            result[key] = _copy_json(value)
        else:
            result[key] = value

    return result


def build_parameter_schema(input_schema: Any) -> dict[str, Any]:
    """
    Turn a server-provided input schema into the schema advertised to the LLM.

    Missing or non-object schemas become an empty object schema.
    """
    if not isinstance(input_schema, dict) or not input_schema:
        return _copy_json(EMPTY_OBJECT_SCHEMA)
    return sanitize_parameters(input_schema)


def compile_validator(schema: dict[str, Any], tool_name: str = "") -> Any:
    """
    Create a jsonschema validator for a tool's parameters.

    A schema that is itself invalid is logged and replaced with a
    permissive object schema instead of rejecting the tool.

    Args:
        schema: Sanitized parameter schema
        tool_name: Tool name for log messages

    Returns:
        jsonschema validator instance
    """
    try:
        validator_class = validators.validator_for(
            schema, default=validators.Draft202012Validator
        )
        validator_class.check_schema(schema)
        return validator_class(schema)
    except jsonschema_exceptions.SchemaError as e:
        logger.warning(f"Invalid parameter schema for MCP tool '{tool_name}': {e.message}")
    except (TypeError, ValueError) as e:
        logger.warning(f"Unusable parameter schema for MCP tool '{tool_name}': {e}")
    return validators.Draft202012Validator(_copy_json(EMPTY_OBJECT_SCHEMA))


def collect_errors(validator: Any, params: Any) -> list[str]:
    """Every validation error for ``params``, as ``path: message`` strings."""
    errors = []
    for error in sorted(validator.iter_errors(params), key=lambda e: [str(p) for p in e.path]):
        location = ".".join(str(part) for part in error.path)
        errors.append(f"{location}: {error.message}" if location else error.message)
    return errors


def _copy_json(value: Any) -> Any:
    """Deep copy of a JSON-like value."""
    if isinstance(value, dict):
        return {k: _copy_json(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_copy_json(v) for v in value]
    return value
