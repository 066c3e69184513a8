"""Tool registry for managing available tools."""

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from toolbridge.tools.base import Tool
from toolbridge.tools.exceptions import ToolRegistrationError
from toolbridge.tools.models import RiskLevel, ToolDefinition, ToolResult
from toolbridge.tools.naming import qualify_tool_name, shorten_tool_name
from toolbridge.tools.pipeline import ExecutionPipeline, ProgressCallback

logger = logging.getLogger(__name__)

# Builds a tool instance bound to an execution context
ToolFactory = Callable[[Any], Tool]


@dataclass(frozen=True)
class ToolMetadata:
    """Metadata stored in the registry alongside a tool factory."""

    description: str
    risk_level: RiskLevel = RiskLevel.LOW
    category: str = "general"
    enabled: bool = True
    namespace: Optional[str] = None  # Owning server for discovered tools
    dependencies: tuple[str, ...] = field(default_factory=tuple)
    version: Optional[str] = None


@dataclass(frozen=True)
class RegisteredTool:
    """A registry entry. Replaced, never mutated, when its state changes."""

    name: str
    factory: ToolFactory
    metadata: ToolMetadata

    def create(self, context: Any = None) -> Tool:
        """Build a tool instance bound to ``context``."""
        tool = self.factory(context)
        tool.registered_name = self.name
        return tool


class ToolRegistry:
    """Registry for managing available tools.

    The registry maps tool names to factories and metadata. Tools are
    instantiated per call, bound to the caller's execution context, and run
    through the shared ExecutionPipeline.

    Name collisions never overwrite an existing entry: a duplicate local
    tool is rejected, and a duplicate tool from a server namespace is
    renamed to ``<namespace>__<name>``.
    """

    def __init__(
        self,
        pipeline: Optional[ExecutionPipeline] = None,
        default_context: Any = None,
    ):
        """Initialize the tool registry.

        Args:
            pipeline: Pipeline every dispatch goes through
            default_context: Context used when a dispatch supplies none
        """
        self.pipeline = pipeline or ExecutionPipeline()
        self.default_context = default_context
        self._tools: dict[str, RegisteredTool] = {}
        self._lock = threading.RLock()

    def register(
        self,
        name: str,
        factory: ToolFactory,
        metadata: ToolMetadata,
        namespace: Optional[str] = None,
    ) -> str:
        """Register a tool factory.

        Args:
            name: Requested tool name
            factory: Callable building the tool from an execution context
            metadata: Tool metadata
            namespace: Server namespace for discovered tools

        Returns:
            Name the tool was registered under

        Raises:
            ToolRegistrationError: If a local tool name is already taken
        """
        if namespace is not None and metadata.namespace is None:
            metadata = replace(metadata, namespace=namespace)

        with self._lock:
            final_name = self._resolve_name(name, namespace)
            self._tools[final_name] = RegisteredTool(final_name, factory, metadata)

        if final_name != name:
            logger.info(f"Tool name '{name}' already taken, registered as '{final_name}'")
        logger.info(f"Registered tool: {final_name} ({metadata.category})")
        return final_name

    def register_tool(self, tool_class: type[Tool], enabled: bool = True) -> str:
        """Register a local Tool subclass, reading metadata from the class.

        Args:
            tool_class: Tool subclass taking the context as only argument
            enabled: Whether the tool starts enabled

        Returns:
            Name the tool was registered under
        """
        sample = tool_class()
        metadata = ToolMetadata(
            description=sample.description,
            risk_level=sample.risk_level,
            category=sample.category,
            enabled=enabled,
        )
        return self.register(sample.name, tool_class, metadata)

    def _resolve_name(self, name: str, namespace: Optional[str]) -> str:
        """Apply the collision policy. Caller holds the lock."""
        if namespace is None:
            if name in self._tools:
                raise ToolRegistrationError(f"Tool '{name}' is already registered", name)
            return name

        candidate = shorten_tool_name(name)
        if name not in self._tools and candidate not in self._tools:
            return candidate

        qualified = qualify_tool_name(namespace, name)
        candidate = shorten_tool_name(qualified)
        suffix = 2
        while candidate in self._tools:
            candidate = shorten_tool_name(f"{qualified}_{suffix}")
            suffix += 1
        return candidate

    def unregister(self, name: str) -> bool:
        """Unregister a tool.

        Args:
            name: Tool name to unregister

        Returns:
            True if tool was unregistered, False if not found
        """
        with self._lock:
            removed = self._tools.pop(name, None)

        if removed is not None:
            logger.info(f"Unregistered tool: {name}")
            return True
        return False

    def unregister_namespace(self, namespace: str) -> int:
        """Unregister every tool registered from a server namespace.

        Returns:
            Number of tools removed
        """
        with self._lock:
            names = [n for n, e in self._tools.items() if e.metadata.namespace == namespace]
            for name in names:
                del self._tools[name]

        if names:
            logger.info(f"Unregistered {len(names)} tool(s) from '{namespace}'")
        return len(names)

    def lookup(self, name: str) -> Optional[RegisteredTool]:
        """Get the registry entry for a name, enabled or not."""
        with self._lock:
            return self._tools.get(name)

    def get_tool(self, name: str, context: Any = None) -> Optional[Tool]:
        """Get a tool instance bound to a context.

        Args:
            name: Tool name
            context: Execution context (registry default if None)

        Returns:
            Tool instance, or None if missing, disabled or unsatisfied
        """
        entry = self.lookup(name)
        if entry is None:
            logger.error(f"Tool '{name}' not found in registry")
            return None

        return self._instantiate(entry, context)

    def _instantiate(self, entry: RegisteredTool, context: Any) -> Optional[Tool]:
        if not entry.metadata.enabled:
            logger.warning(f"Tool '{entry.name}' is disabled")
            return None

        if entry.metadata.dependencies and not self._check_dependencies(
            entry.metadata.dependencies
        ):
            logger.error(f"Tool '{entry.name}' dependencies not satisfied")
            return None

        return entry.create(context if context is not None else self.default_context)

    async def dispatch(
        self,
        name: str,
        raw_params: Any,
        context: Any = None,
        progress_callback: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> ToolResult:
        """Execute a tool by name.

        The entry is resolved once; a concurrent re-registration under the
        same name does not affect a dispatch already in flight.

        Args:
            name: Tool name
            raw_params: Unvalidated parameters
            context: Execution context
            progress_callback: Optional progress listener
            timeout: Optional overall timeout in seconds

        Returns:
            ToolResult; never raises for tool-level failures
        """
        entry = self.lookup(name)
        if entry is None:
            return ToolResult.failure(f"Tool '{name}' not available", "Tool not found")

        try:
            tool = self._instantiate(entry, context)
        except Exception as e:
            logger.error(f"Failed to create tool '{name}': {e}")
            return ToolResult.failure(f"Tool '{name}' could not be created", str(e))

        if tool is None:
            return ToolResult.failure(
                f"Tool '{name}' not available", "Tool disabled or dependencies missing"
            )

        execution = self.pipeline.run(tool, raw_params, progress_callback)
        if timeout is None:
            return await execution

        try:
            return await asyncio.wait_for(execution, timeout)
        except asyncio.TimeoutError:
            return ToolResult.failure(
                f"Tool '{name}' execution failed",
                f"Tool '{name}' execution timed out after {timeout}s",
            )

    def list_definitions(self, category: Optional[str] = None) -> list[ToolDefinition]:
        """Get definitions of enabled tools for the AI provider.

        Args:
            category: Only include tools of this category

        Returns:
            List of tool definitions
        """
        definitions = []
        for entry in self.list_entries():
            if not entry.metadata.enabled:
                continue
            if category and entry.metadata.category != category:
                continue
            try:
                tool = entry.create(self.default_context)
                definitions.append(tool.get_definition())
            except Exception as e:
                logger.warning(f"Failed to get definition for tool '{entry.name}': {e}")
        return definitions

    def get_tool_definitions(self, category: Optional[str] = None) -> list[dict[str, Any]]:
        """Get enabled tool definitions in function-calling format."""
        return [d.to_function_schema() for d in self.list_definitions(category)]

    def list_entries(self) -> list[RegisteredTool]:
        """Snapshot of all registry entries."""
        with self._lock:
            return list(self._tools.values())

    def list_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        with self._lock:
            return list(self._tools.keys())

    def get_enabled_tool_names(self) -> list[str]:
        """Get names of enabled tools only."""
        return [e.name for e in self.list_entries() if e.metadata.enabled]

    def get_tools_by_category(self, category: str) -> list[str]:
        """Get names of enabled tools in a category."""
        return [
            e.name
            for e in self.list_entries()
            if e.metadata.enabled and e.metadata.category == category
        ]

    def get_tools_by_risk_level(self, risk_level: RiskLevel) -> list[str]:
        """Get names of enabled tools with a risk level."""
        return [
            e.name
            for e in self.list_entries()
            if e.metadata.enabled and e.metadata.risk_level == risk_level
        ]

    def get_tools_by_namespace(self, namespace: str) -> list[str]:
        """Get names of tools registered from a server namespace."""
        return [e.name for e in self.list_entries() if e.metadata.namespace == namespace]

    def set_tool_enabled(self, name: str, enabled: bool) -> bool:
        """Enable or disable a tool.

        Returns:
            True if the tool exists
        """
        with self._lock:
            entry = self._tools.get(name)
            if entry is None:
                return False
            self._tools[name] = replace(entry, metadata=replace(entry.metadata, enabled=enabled))

        logger.info(f"Tool '{name}' {'enabled' if enabled else 'disabled'}")
        return True

    def update_default_context(self, context: Any) -> None:
        """Replace the context used when dispatches supply none."""
        self.default_context = context

    def _check_dependencies(self, dependencies: tuple[str, ...]) -> bool:
        """Validate that all dependencies are registered and enabled."""
        for dep in dependencies:
            entry = self.lookup(dep)
            if entry is None or not entry.metadata.enabled:
                logger.error(f"Dependency '{dep}' not available")
                return False
        return True

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics."""
        entries = self.list_entries()
        by_category: dict[str, int] = {}
        by_risk_level = {level.value: 0 for level in RiskLevel}

        for entry in entries:
            by_category[entry.metadata.category] = by_category.get(entry.metadata.category, 0) + 1
            by_risk_level[entry.metadata.risk_level.value] += 1

        enabled = sum(1 for e in entries if e.metadata.enabled)
        return {
            "total": len(entries),
            "enabled": enabled,
            "disabled": len(entries) - enabled,
            "by_category": by_category,
            "by_risk_level": by_risk_level,
        }

    def clear(self) -> None:
        """Clear all registered tools."""
        with self._lock:
            self._tools.clear()
        logger.info("Cleared all tools from registry")

    def __len__(self) -> int:
        """Get number of registered tools."""
        with self._lock:
            return len(self._tools)

    def __contains__(self, name: str) -> bool:
        """Check if tool is registered."""
        with self._lock:
            return name in self._tools

    def __str__(self) -> str:
        """String representation."""
        return f"ToolRegistry({len(self)} tools)"

    def __repr__(self) -> str:
        """Representation."""
        return f"<ToolRegistry tools=[{', '.join(self.list_tool_names())}]>"


# Global registry instance
_tool_registry: Optional[ToolRegistry] = None


def get_tool_registry() -> ToolRegistry:
    """Get the global tool registry instance.

    Returns:
        ToolRegistry singleton
    """
    global _tool_registry
    if _tool_registry is None:
        _tool_registry = ToolRegistry()
    return _tool_registry


def reset_tool_registry() -> None:
    """Reset the global tool registry instance.

    Useful for testing.
    """
    global _tool_registry
    _tool_registry = None
