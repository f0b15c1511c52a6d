"""Configuration loading for bundlestat (.bundlestat.yml)."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

CONFIG_FILENAME = ".bundlestat.yml"

SUPPORTED_CLIENTS = ("npm", "yarn", "pnpm")
SUPPORTED_MINIFIERS = ("esbuild", "terser")

ENV_CLIENT = "BUNDLESTAT_CLIENT"
ENV_TMP_DIR = "BUNDLESTAT_TMP_DIR"
ENV_CONCURRENCY = "BUNDLESTAT_CONCURRENCY"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class InstallConfig:
    """Installer settings from .bundlestat.yml."""

    client: str = "npm"
    timeout: Optional[float] = 120.0
    limit_concurrency: bool = True
    network_concurrency: int = 4


@dataclass
class BuildConfig:
    """Bundler and minifier settings."""

    bundler: str = "esbuild"
    minifier: str = "esbuild"
    timeout: Optional[float] = 120.0


@dataclass
class BundleStatConfig:
    """Represents the settings defined in .bundlestat.yml."""

    root: Path
    install: InstallConfig = field(default_factory=InstallConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    tmp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "bundlestat")
    results_dir: Optional[Path] = None
    debug: bool = False


def load_config(config_path: Path, *, environ: Optional[Dict[str, str]] = None) -> BundleStatConfig:
    """Load configuration from disk, then apply environment overrides."""
    env = os.environ if environ is None else environ
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    config = BundleStatConfig(root=root)
    if config_file.exists():
        data = _read_config(config_file)
        if not isinstance(data, dict):
            raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")
        _apply_file_values(config, data, root)

    _apply_env_overrides(config, env)
    _validate(config)
    return config


def _apply_file_values(config: BundleStatConfig, data: Dict[str, Any], root: Path) -> None:
    install_data = _as_dict(data.get("install"))
    if install_data:
        client = _as_str(install_data.get("client"))
        if client:
            config.install.client = client
        if "timeout" in install_data:
            config.install.timeout = _as_float(install_data.get("timeout"))
        limit = _as_bool(install_data.get("limit_concurrency"))
        if limit is not None:
            config.install.limit_concurrency = limit
        concurrency = _as_int(install_data.get("network_concurrency"))
        if concurrency is not None:
            config.install.network_concurrency = concurrency

    build_data = _as_dict(data.get("build"))
    if build_data:
        bundler = _as_str(build_data.get("bundler"))
        if bundler:
            config.build.bundler = bundler
        minifier = _as_str(build_data.get("minifier"))
        if minifier:
            config.build.minifier = minifier
        if "timeout" in build_data:
            config.build.timeout = _as_float(build_data.get("timeout"))

    tmp_dir = _as_str(data.get("tmp_dir"))
    if tmp_dir:
        config.tmp_dir = _relative_to(root, tmp_dir)
    results_dir = _as_str(data.get("results_dir"))
    if results_dir:
        config.results_dir = _relative_to(root, results_dir)
    debug = _as_bool(data.get("debug"))
    if debug is not None:
        config.debug = debug


def _apply_env_overrides(config: BundleStatConfig, env: Dict[str, str]) -> None:
    client = env.get(ENV_CLIENT)
    if client:
        config.install.client = client
    tmp_dir = env.get(ENV_TMP_DIR)
    if tmp_dir:
        config.tmp_dir = Path(tmp_dir).expanduser()
    concurrency = _as_int(env.get(ENV_CONCURRENCY))
    if concurrency is not None:
        config.install.network_concurrency = concurrency


def _validate(config: BundleStatConfig) -> None:
    if config.install.client not in SUPPORTED_CLIENTS:
        raise ConfigError(
            f"Unsupported install client '{config.install.client}'. "
            f"Choose one of: {', '.join(SUPPORTED_CLIENTS)}"
        )
    if config.build.minifier not in SUPPORTED_MINIFIERS:
        raise ConfigError(
            f"Unsupported minifier '{config.build.minifier}'. "
            f"Choose one of: {', '.join(SUPPORTED_MINIFIERS)}"
        )
    if config.install.network_concurrency < 1:
        raise ConfigError("network_concurrency must be at least 1")


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _relative_to(root: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else root / path


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None
