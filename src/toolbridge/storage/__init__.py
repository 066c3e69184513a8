"""Storage locations for toolbridge."""

from toolbridge.storage.paths import (
    get_audit_log_path,
    get_global_config_path,
    get_toolbridge_home,
)

__all__ = [
    "get_audit_log_path",
    "get_global_config_path",
    "get_toolbridge_home",
]
