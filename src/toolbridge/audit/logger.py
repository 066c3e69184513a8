"""
Audit logging for toolbridge operations.

This module provides JSON Lines based audit logging for tool executions
and MCP server events.
"""

import gzip
import hashlib
import json
import re
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from toolbridge.storage.paths import get_audit_log_path
from toolbridge.tools.models import AuditRecord


class AuditEventType(str, Enum):
    """Types of audit events."""

    # Tool execution
    TOOL_EXECUTION = "tool_execution"
    TOOL_CANCELLED = "tool_cancelled"

    # MCP servers
    SERVER_STATUS = "server_status"
    DISCOVERY_STARTED = "discovery_started"
    DISCOVERY_COMPLETED = "discovery_completed"


class AuditLogger:
    """
    JSON Lines based audit logger.

    Logs events to a JSON Lines file with rotation and compression support.
    Implements the audit sink used by the execution pipeline.
    """

    def __init__(
        self,
        log_path: str | Path,
        enable: bool = True,
        rotation: str = "daily",
        max_size_mb: int = 100,
        retention_days: int = 90,
        compress_old: bool = True,
        include_params: bool = True,
        hash_params: bool = False,
        redact_paths: bool = False,
        redact_patterns: list[str] | None = None,
        buffer_size: int = 100,
        flush_interval_seconds: int = 5,
    ) -> None:
        """
        Initialize audit logger.

        Args:
            log_path: Path to audit log file
            enable: Whether logging is enabled
            rotation: Rotation strategy (daily, weekly, size)
            max_size_mb: Maximum log file size in MB before rotation
            retention_days: Days to keep old logs
            compress_old: Whether to compress rotated logs
            include_params: Whether to log tool parameters
            hash_params: Whether to hash parameters for privacy
            redact_paths: Whether to redact file paths in parameters
            redact_patterns: Additional patterns to redact
            buffer_size: Number of events to buffer before flush
            flush_interval_seconds: Seconds between forced flushes
        """
        self.log_path = Path(log_path).expanduser()
        self.enable = enable
        self.rotation = rotation
        self.max_size_mb = max_size_mb
        self.retention_days = retention_days
        self.compress_old = compress_old
        self.include_params = include_params
        self.hash_params = hash_params
        self.redact_paths = redact_paths
        self.redact_patterns = redact_patterns or []
        self.buffer_size = buffer_size
        self.flush_interval_seconds = flush_interval_seconds

        # Internal state
        self._buffer: list[dict[str, Any]] = []
        self._last_flush = datetime.now()

        # Ensure log directory exists
        if self.enable:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_config(cls, config: Any) -> "AuditLogger":
        """
        Create audit logger from configuration.

        Args:
            config: AuditLogConfig instance

        Returns:
            Configured AuditLogger
        """
        return cls(
            log_path=config.path or get_audit_log_path(),
            enable=config.enable,
            rotation=config.rotation,
            max_size_mb=config.max_size_mb,
            retention_days=config.retention_days,
            compress_old=config.compress_old,
            include_params=config.include_params,
            hash_params=config.hash_params,
            redact_paths=config.redact_paths,
            redact_patterns=config.redact_patterns,
            buffer_size=config.buffer_size,
            flush_interval_seconds=config.flush_interval_seconds,
        )

    def _redact_text(self, text: str) -> str:
        """Redact sensitive information from text."""
        redacted = text

        if self.redact_paths:
            # Absolute paths and home directory references
            redacted = re.sub(r"/[a-zA-Z0-9/_.-]+", "[PATH]", redacted)
            redacted = re.sub(r"~[a-zA-Z0-9/_.-]*", "[HOME]", redacted)

        for pattern in self.redact_patterns:
            redacted = re.sub(pattern, "[REDACTED]", redacted)

        return redacted

    def _hash_text(self, text: str) -> str:
        """Hash text for privacy-preserving logging."""
        return hashlib.sha256(text.encode()).hexdigest()

    def _prepare_params(self, params: Any) -> Any:
        """Apply the parameter privacy settings."""
        if not self.include_params:
            return None

        serialized = json.dumps(params, default=str, sort_keys=True)
        if self.hash_params:
            return self._hash_text(serialized)

        if self.redact_paths or self.redact_patterns:
            return self._redact_text(serialized)

        return params

    def _create_event(
        self, event_type: AuditEventType, data: dict[str, Any]
    ) -> dict[str, Any]:
        """Create an audit event."""
        return {
            "timestamp": datetime.now().isoformat(),
            "event_type": event_type.value,
            **data,
        }

    def _write_event(self, event: dict[str, Any]) -> None:
        """Buffer an event, flushing when the buffer or interval is exhausted."""
        if not self.enable:
            return

        self._buffer.append(event)

        now = datetime.now()
        should_flush = (
            len(self._buffer) >= self.buffer_size
            or (now - self._last_flush).seconds >= self.flush_interval_seconds
        )

        if should_flush:
            self.flush()

    def flush(self) -> None:
        """Flush buffered events to disk."""
        if not self.enable or not self._buffer:
            return

        self._rotate_if_needed()

        with self.log_path.open("a", encoding="utf-8") as f:
            for event in self._buffer:
                f.write(json.dumps(event, default=str) + "\n")

        self._buffer.clear()
        self._last_flush = datetime.now()

    def _rotate_if_needed(self) -> None:
        """Rotate log file if needed based on configuration."""
        if not self.log_path.exists():
            return

        should_rotate = False

        if self.rotation == "size":
            size_mb = self.log_path.stat().st_size / (1024 * 1024)
            if size_mb >= self.max_size_mb:
                should_rotate = True

        elif self.rotation == "daily":
            mtime = datetime.fromtimestamp(self.log_path.stat().st_mtime)
            if mtime.date() < datetime.now().date():
                should_rotate = True

        elif self.rotation == "weekly":
            mtime = datetime.fromtimestamp(self.log_path.stat().st_mtime)
            if (datetime.now() - mtime).days >= 7:
                should_rotate = True

        if should_rotate:
            self._rotate_log()

    def _rotate_log(self) -> None:
        """Rotate the current log file."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        rotated_name = f"{self.log_path.stem}_{timestamp}{self.log_path.suffix}"
        rotated_path = self.log_path.parent / rotated_name

        self.log_path.rename(rotated_path)

        if self.compress_old:
            self._compress_log(rotated_path)

        self._clean_old_logs()

    def _compress_log(self, log_path: Path) -> None:
        """Compress a log file with gzip."""
        compressed_path = log_path.with_suffix(log_path.suffix + ".gz")

        with log_path.open("rb") as f_in, gzip.open(compressed_path, "wb") as f_out:
            f_out.write(f_in.read())

        log_path.unlink()

    def _clean_old_logs(self) -> None:
        """Remove logs older than retention period."""
        cutoff = datetime.now() - timedelta(days=self.retention_days)

        pattern = f"{self.log_path.stem}_*{self.log_path.suffix}*"
        for old_log in self.log_path.parent.glob(pattern):
            mtime = datetime.fromtimestamp(old_log.stat().st_mtime)
            if mtime < cutoff:
                old_log.unlink()

    # Audit sink interface

    def log_tool_execution(self, record: AuditRecord) -> None:
        """Log a tool execution recorded by the pipeline."""
        event = self._create_event(
            AuditEventType.TOOL_EXECUTION,
            {
                "tool_name": record.tool_name,
                "executed_at": record.timestamp,
                "params": self._prepare_params(record.params),
                "outcome": record.outcome_summary,
                "context_ref": record.context_ref,
            },
        )
        self._write_event(event)

    def log_tool_cancelled(self, tool_name: str, server_name: str) -> None:
        """Log a tool call the user declined to confirm."""
        event = self._create_event(
            AuditEventType.TOOL_CANCELLED,
            {"tool_name": tool_name, "server_name": server_name},
        )
        self._write_event(event)

    # MCP events

    def log_server_status(self, server_name: str, status: str) -> None:
        """Log an MCP server status change."""
        event = self._create_event(
            AuditEventType.SERVER_STATUS,
            {"server_name": server_name, "status": status},
        )
        self._write_event(event)

    def log_discovery_started(self, server_names: list[str]) -> None:
        """Log the start of an MCP discovery run."""
        event = self._create_event(
            AuditEventType.DISCOVERY_STARTED, {"servers": server_names}
        )
        self._write_event(event)

    def log_discovery_completed(self, statuses: dict[str, str]) -> None:
        """Log the end of an MCP discovery run."""
        event = self._create_event(
            AuditEventType.DISCOVERY_COMPLETED, {"statuses": statuses}
        )
        self._write_event(event)

    # Query operations

    def read_events(
        self,
        event_type: AuditEventType | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Read events back from the current log file.

        Args:
            event_type: Only return events of this type
            limit: Return at most this many of the newest events

        Returns:
            Events in file order
        """
        self.flush()

        if not self.log_path.exists():
            return []

        events: list[dict[str, Any]] = []
        with self.log_path.open(encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if event_type is None or event.get("event_type") == event_type.value:
                    events.append(event)

        if limit is not None:
            events = events[-limit:]
        return events

    def close(self) -> None:
        """Flush remaining events."""
        self.flush()

    def __del__(self) -> None:
        """Flush on garbage collection."""
        try:
            self.flush()
        except Exception:
            pass


# Global audit logger instance
_audit_logger: AuditLogger | None = None


def get_audit_logger() -> AuditLogger:
    """
    Get the global audit logger instance.

    Returns:
        AuditLogger configured from the loaded configuration
    """
    global _audit_logger
    if _audit_logger is None:
        from toolbridge.config import get_config

        _audit_logger = AuditLogger.from_config(get_config().audit)
    return _audit_logger


def reset_audit_logger() -> None:
    """Reset the global audit logger (for testing)."""
    global _audit_logger
    if _audit_logger is not None:
        _audit_logger.flush()
    _audit_logger = None
