"""
Confirmation allowlist for toolbridge.

Remembers which servers and tools a human has approved so that later calls
can skip the confirmation prompt. Entries never expire; the list lives as
long as the object that owns it.
"""

import threading
from collections.abc import Iterator


class AllowList:
    """
    Thread-safe set of approved ``server`` and ``server.tool`` keys.

    A tool is allowed when either its server-level key or its tool-level
    key is present.
    """

    def __init__(self, keys: list[str] | None = None) -> None:
        """
        Initialize the allowlist.

        Args:
            keys: Keys to pre-approve
        """
        self._keys: set[str] = set(keys or [])
        self._lock = threading.Lock()

    @staticmethod
    def server_key(server_name: str) -> str:
        """Key approving every tool of a server."""
        return server_name

    @staticmethod
    def tool_key(server_name: str, tool_name: str) -> str:
        """Key approving a single tool of a server."""
        return f"{server_name}.{tool_name}"

    def is_allowed(self, server_name: str, tool_name: str) -> bool:
        """Check whether a tool may run without confirmation."""
        with self._lock:
            return (
                self.server_key(server_name) in self._keys
                or self.tool_key(server_name, tool_name) in self._keys
            )

    def allow_server(self, server_name: str) -> None:
        """Approve every tool of a server."""
        self.add(self.server_key(server_name))

    def allow_tool(self, server_name: str, tool_name: str) -> None:
        """Approve a single tool."""
        self.add(self.tool_key(server_name, tool_name))

    def add(self, key: str) -> None:
        """Add a raw key."""
        with self._lock:
            self._keys.add(key)

    def discard(self, key: str) -> bool:
        """
        Remove a raw key.

        Returns:
            True if the key was present
        """
        with self._lock:
            if key in self._keys:
                self._keys.remove(key)
                return True
            return False

    def clear(self) -> None:
        """Forget every approval."""
        with self._lock:
            self._keys.clear()

    def keys(self) -> list[str]:
        """Snapshot of the current keys, sorted."""
        with self._lock:
            return sorted(self._keys)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
