"""Centralized path management for courierbill.

All durable state lives under one data directory so the record store,
settings file and exported archives never scatter across the filesystem.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _get_data_root() -> Path:
    """Resolve the data directory from COURIERBILL_HOME or the XDG default."""
    env_home = os.environ.get("COURIERBILL_HOME")
    if env_home:
        return Path(env_home).expanduser()

    xdg = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / "courierbill"


@dataclass
class ProjectPaths:
    """Container for all courierbill paths, relative to one data root."""

    root: Path = field(default_factory=_get_data_root)

    def __post_init__(self) -> None:
        self.root = self.root.resolve()

    @property
    def records_file(self) -> Path:
        """Single JSON document holding every persisted collection."""
        return self.root / "records.json"

    @property
    def settings_file(self) -> Path:
        """Optional TOML settings file."""
        return self.root / "courierbill.toml"

    @property
    def exports(self) -> Path:
        """Default destination for folder archives."""
        return self.root / "exports"

    def ensure_directories(self) -> None:
        """Create the data and export directories if they don't exist."""
        self.root.mkdir(parents=True, exist_ok=True)
        self.exports.mkdir(parents=True, exist_ok=True)


_paths: ProjectPaths | None = None


def get_paths() -> ProjectPaths:
    """Get the singleton ProjectPaths instance."""
    global _paths
    if _paths is None:
        _paths = ProjectPaths()
    return _paths


def set_data_root(root: Path) -> ProjectPaths:
    """Point the singleton at a different data root (CLI flag, tests)."""
    global _paths
    _paths = ProjectPaths(root=root)
    return _paths
