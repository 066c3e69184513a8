"""
Security for toolbridge.

This package provides the confirmation allowlist and the human-facing
confirmation handlers consulted before risky tool calls.
"""

from toolbridge.security.allowlist import AllowList
from toolbridge.security.confirmation import (
    RichConfirmationHandler,
    auto_approve,
    auto_deny,
)

__all__ = [
    "AllowList",
    "RichConfirmationHandler",
    "auto_approve",
    "auto_deny",
]
