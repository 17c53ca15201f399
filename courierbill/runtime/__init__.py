"""Runtime infrastructure for courierbill.

This package provides process/runtime services including:
- Logging setup via get_logger()
- Path resolution via get_paths(), ProjectPaths
- Settings via load_settings()
- Durable records via ManifestRecordStore

Usage:
    from courierbill.runtime import get_logger, get_paths

    logger = get_logger(__name__)
    paths = get_paths()
    print(paths.root, paths.records_file)
"""

from courierbill.runtime.logging import (
    DEFAULT_LOG_LEVEL,
    LOG_FORMAT,
    LOG_FORMAT_DEBUG,
    configure_logging,
    get_logger,
    set_log_level,
)
from courierbill.runtime.paths import ProjectPaths, get_paths, set_data_root
from courierbill.runtime.settings import ConfigurationError, Settings, load_settings

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "set_log_level",
    "DEFAULT_LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_FORMAT_DEBUG",
    # Paths
    "get_paths",
    "set_data_root",
    "ProjectPaths",
    # Settings
    "ConfigurationError",
    "Settings",
    "load_settings",
]
