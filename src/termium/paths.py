"""Path resolution for termium global and project directories.

termium uses a two-tier directory structure:
- Global: ~/.termium/ (user-wide settings)
- Project: .termium/ (per-directory overrides)

Nothing is created on install; directories are only read.
"""

from __future__ import annotations

import os
from pathlib import Path

# Directory names
GLOBAL_DIR_NAME = ".termium"
PROJECT_DIR_NAME = ".termium"

# Default Unix socket the server binds when no TCP address is given
DEFAULT_SOCKET_PATH = "/tmp/termium.sock"


def get_effective_cwd() -> Path:
    """Get the effective working directory.

    Returns TERMIUM_CWD if set, else Path.cwd().

    Returns:
        Resolved Path for working directory
    """
    env_cwd = os.getenv("TERMIUM_CWD")
    if env_cwd:
        return Path(env_cwd).resolve()
    return Path.cwd()


def get_global_dir() -> Path:
    """Get the global termium directory path.

    Returns:
        Path to ~/.termium/ (not necessarily existing)
    """
    return Path.home() / GLOBAL_DIR_NAME

