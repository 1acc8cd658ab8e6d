"""Shared modules for parascenario.

This module provides functionality used by the orchestrator core and the CLI:
- Paths (user directory and per-run artifacts)
- Logging (structlog configuration)
"""

from .logging import configure_logging, get_logger
from .paths import (
    CONFIG_FILE,
    PARASCENARIO_DIR,
    ArtifactPaths,
    delete_path_if_exists,
    ensure_dirs,
)

__all__ = [
    # Paths
    "PARASCENARIO_DIR",
    "CONFIG_FILE",
    "ArtifactPaths",
    "delete_path_if_exists",
    "ensure_dirs",
    # Logging
    "configure_logging",
    "get_logger",
]
