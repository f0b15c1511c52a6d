"""Tests for bundlestat.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from bundlestat.config import BundleStatConfig, ConfigError, load_config


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path, environ={})

    assert isinstance(config, BundleStatConfig)
    assert config.root == tmp_path.resolve()
    assert config.install.client == "npm"
    assert config.install.limit_concurrency is True
    assert config.install.network_concurrency == 4
    assert config.build.bundler == "esbuild"
    assert config.build.minifier == "esbuild"
    assert config.results_dir is None
    assert config.debug is False


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".bundlestat.yml"
    config_file.write_text(
        """
install:
  client: pnpm
  timeout: 30
  limit_concurrency: false
  network_concurrency: 2
build:
  minifier: terser
  timeout: 45.5
tmp_dir: scratch
results_dir: /var/tmp/results
debug: true
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path, environ={})

    assert config.install.client == "pnpm"
    assert config.install.timeout == 30.0
    assert config.install.limit_concurrency is False
    assert config.install.network_concurrency == 2
    assert config.build.minifier == "terser"
    assert config.build.timeout == 45.5
    assert config.tmp_dir == tmp_path.resolve() / "scratch"
    assert config.results_dir == Path("/var/tmp/results")
    assert config.debug is True


def test_environment_overrides_file_values(tmp_path: Path) -> None:
    (tmp_path / ".bundlestat.yml").write_text("install:\n  client: yarn\n", encoding="utf-8")

    config = load_config(
        tmp_path,
        environ={
            "BUNDLESTAT_CLIENT": "pnpm",
            "BUNDLESTAT_TMP_DIR": str(tmp_path / "elsewhere"),
            "BUNDLESTAT_CONCURRENCY": "8",
        },
    )

    assert config.install.client == "pnpm"
    assert config.tmp_dir == tmp_path / "elsewhere"
    assert config.install.network_concurrency == 8


def test_load_config_accepts_explicit_file_path(tmp_path: Path) -> None:
    config_file = tmp_path / ".bundlestat.yml"
    config_file.write_text("debug: yes\n", encoding="utf-8")

    config = load_config(config_file, environ={})

    assert config.debug is True


def test_malformed_yaml_raises_config_error(tmp_path: Path) -> None:
    (tmp_path / ".bundlestat.yml").write_text("install: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path, environ={})


def test_non_mapping_root_raises_config_error(tmp_path: Path) -> None:
    (tmp_path / ".bundlestat.yml").write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path, environ={})


@pytest.mark.parametrize(
    "content",
    [
        "install:\n  client: bun\n",
        "build:\n  minifier: uglify\n",
        "install:\n  network_concurrency: 0\n",
    ],
)
def test_invalid_values_are_rejected(tmp_path: Path, content: str) -> None:
    (tmp_path / ".bundlestat.yml").write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path, environ={})
