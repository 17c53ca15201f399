"""Tests for runtime settings and path resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from courierbill.runtime import paths as paths_module
from courierbill.runtime.paths import ProjectPaths
from courierbill.runtime.settings import ConfigurationError, Settings, load_settings

_ENV_VARS = (
    "COURIERBILL_SERVICE_URL",
    "COURIERBILL_SERVICE_TIMEOUT",
    "COURIERBILL_INTER_CHUNK_DELAY",
    "COURIERBILL_RESIZE_IMAGES",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    assert load_settings(tmp_path / "absent.toml") == Settings()


def test_toml_values_are_read(tmp_path: Path) -> None:
    path = tmp_path / "courierbill.toml"
    path.write_text(
        """
[service]
url = "http://gpu-box:9000"
timeout = 30

[capture]
inter_chunk_delay = 0
resize_images = false
""".lstrip()
    )

    settings = load_settings(path)

    assert settings.service_url == "http://gpu-box:9000"
    assert settings.service_timeout == 30.0
    assert settings.inter_chunk_delay == 0.0
    assert settings.resize_images is False


def test_environment_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "courierbill.toml"
    path.write_text('[service]\nurl = "http://from-file"\n')
    monkeypatch.setenv("COURIERBILL_SERVICE_URL", "http://from-env")
    monkeypatch.setenv("COURIERBILL_RESIZE_IMAGES", "no")

    settings = load_settings(path)

    assert settings.service_url == "http://from-env"
    assert settings.resize_images is False


@pytest.mark.parametrize(
    ("content", "env"),
    [
        ("[service\n", {}),
        ('[service]\ntimeout = "soon"\n', {}),
        ("[capture]\ninter_chunk_delay = -1\n", {}),
        ("", {"COURIERBILL_RESIZE_IMAGES": "maybe"}),
    ],
)
def test_invalid_values_raise_configuration_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, content: str, env: dict[str, str]
) -> None:
    path = tmp_path / "courierbill.toml"
    path.write_text(content)
    for name, value in env.items():
        monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError):
        load_settings(path)


def test_data_root_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COURIERBILL_HOME", str(tmp_path / "data"))
    monkeypatch.setattr(paths_module, "_paths", None)

    paths = paths_module.get_paths()

    assert paths.records_file == (tmp_path / "data" / "records.json").resolve()
    assert paths.settings_file.name == "courierbill.toml"


def test_ensure_directories_creates_exports(tmp_path: Path) -> None:
    paths = ProjectPaths(root=tmp_path / "root")

    paths.ensure_directories()

    assert paths.exports.is_dir()
