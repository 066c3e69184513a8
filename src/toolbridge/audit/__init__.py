"""Audit logging for toolbridge."""

from toolbridge.audit.logger import (
    AuditEventType,
    AuditLogger,
    get_audit_logger,
    reset_audit_logger,
)

__all__ = [
    "AuditEventType",
    "AuditLogger",
    "get_audit_logger",
    "reset_audit_logger",
]
