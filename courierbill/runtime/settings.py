"""Runtime settings loader.

Settings come from ``courierbill.toml`` in the data directory, with
``COURIERBILL_*`` environment variables taking precedence::

    [service]
    url = "http://localhost:8002"
    timeout = 120

    [capture]
    inter_chunk_delay = 0.5
    resize_images = true
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from courierbill.runtime.logging import get_logger
from courierbill.runtime.paths import get_paths

logger = get_logger(__name__)

DEFAULT_SERVICE_URL = "http://localhost:8002"
DEFAULT_SERVICE_TIMEOUT = 120.0
DEFAULT_INTER_CHUNK_DELAY = 0.5


class ConfigurationError(ValueError):
    """Raised when a settings file or environment override is invalid."""


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings."""

    service_url: str = DEFAULT_SERVICE_URL
    service_timeout: float = DEFAULT_SERVICE_TIMEOUT
    inter_chunk_delay: float = DEFAULT_INTER_CHUNK_DELAY
    resize_images: bool = True


def _as_float(name: str, value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc
    if result < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value!r}")
    return result


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _from_toml(path: Path) -> Settings:
    if not path.exists():
        return Settings()

    with open(path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigurationError(f"Invalid settings file {path}: {exc}") from exc

    service = data.get("service", {})
    capture = data.get("capture", {})
    settings = Settings()
    if "url" in service:
        settings = replace(settings, service_url=str(service["url"]))
    if "timeout" in service:
        settings = replace(settings, service_timeout=_as_float("service.timeout", service["timeout"]))
    if "inter_chunk_delay" in capture:
        settings = replace(
            settings, inter_chunk_delay=_as_float("capture.inter_chunk_delay", capture["inter_chunk_delay"])
        )
    if "resize_images" in capture:
        settings = replace(settings, resize_images=_as_bool("capture.resize_images", capture["resize_images"]))
    logger.debug("Loaded settings from %s", path)
    return settings


def load_settings(settings_path: Path | None = None) -> Settings:
    """Load settings from TOML, then apply environment overrides."""
    path = settings_path if settings_path is not None else get_paths().settings_file
    settings = _from_toml(path)

    env_url = os.environ.get("COURIERBILL_SERVICE_URL", "").strip()
    if env_url:
        settings = replace(settings, service_url=env_url)
    env_timeout = os.environ.get("COURIERBILL_SERVICE_TIMEOUT", "").strip()
    if env_timeout:
        settings = replace(settings, service_timeout=_as_float("COURIERBILL_SERVICE_TIMEOUT", env_timeout))
    env_delay = os.environ.get("COURIERBILL_INTER_CHUNK_DELAY", "").strip()
    if env_delay:
        settings = replace(settings, inter_chunk_delay=_as_float("COURIERBILL_INTER_CHUNK_DELAY", env_delay))
    env_resize = os.environ.get("COURIERBILL_RESIZE_IMAGES", "").strip()
    if env_resize:
        settings = replace(settings, resize_images=_as_bool("COURIERBILL_RESIZE_IMAGES", env_resize))

    return settings
