"""
Path utilities for toolbridge.

Provides consistent path resolution for configuration and audit files.
"""

import os
from pathlib import Path


def get_toolbridge_home() -> Path:
    """
    Get the toolbridge home directory.

    Resolution order:
    1. TOOLBRIDGE_HOME environment variable
    2. Default: ~/.toolbridge

    Returns:
        Path to the toolbridge home directory.
    """
    env_home = os.environ.get("TOOLBRIDGE_HOME")
    if env_home:
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".toolbridge"


def get_global_config_path() -> Path:
    """
    Get the path to the global configuration file.

    Returns:
        Path to ~/.toolbridge/config.yaml
    """
    return get_toolbridge_home() / "config.yaml"


def get_audit_log_path() -> Path:
    """
    Get the default audit log path.

    Returns:
        Path to ~/.toolbridge/audit.jsonl
    """
    return get_toolbridge_home() / "audit.jsonl"
