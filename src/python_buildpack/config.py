from __future__ import annotations

import json
import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

LOG = logging.getLogger(__name__)

DEFAULT_STACK = "ubuntu-24.04"
DEFAULT_PYTHON_VERSION = "3.13.1"
DEFAULT_RUNTIME_BASE_URL = "https://python-runtimes.example.org"

# Variables from the env dir that would break the build environment if exported.
ENV_DIR_DENYLIST = frozenset(
    {
        "PATH",
        "PYTHONHOME",
        "PYTHONPATH",
        "LD_PRELOAD",
        "LD_LIBRARY_PATH",
        "LIBRARY_PATH",
        "CPATH",
        "CPPATH",
        "GIT_DIR",
    }
)


@dataclass
class BuildpackConfig:
    stack: str = DEFAULT_STACK
    default_python_version: str = DEFAULT_PYTHON_VERSION
    catalog_path: Optional[Path] = None
    catalog_url: Optional[str] = None
    runtime_base_url: str = DEFAULT_RUNTIME_BASE_URL
    install_prefix: Optional[Path] = None
    download_retries: int = 3
    connect_timeout: int = 10  # seconds
    retry_backoff: float = 1.0  # seconds
    pip_version: str = "24.3.1"
    pipenv_version: str = "2024.4.0"
    poetry_version: str = "1.8.5"
    debug: bool = False


def read_env_dir(env_dir: Optional[Path]) -> Dict[str, str]:
    """Read one-file-per-variable env dir, skipping variables on the denylist."""
    if env_dir is None or not env_dir.is_dir():
        return {}
    env: Dict[str, str] = {}
    for entry in sorted(env_dir.iterdir()):
        if not entry.is_file():
            continue
        if entry.name in ENV_DIR_DENYLIST:
            LOG.debug("Ignoring %s from env dir", entry.name)
            continue
        env[entry.name] = entry.read_text(encoding="utf-8")
    return env


def load_config(path: Optional[Path]) -> Dict:
    """Load a config file from TOML or JSON."""
    if path is None:
        return {}
    if not path.exists():
        raise FileNotFoundError(f"Config file {path} was not found.")
    if path.suffix in {".toml", ".tml"}:
        return tomllib.loads(path.read_text())
    if path.suffix in {".json"}:
        return json.loads(path.read_text())
    raise ValueError(f"Unsupported config format for {path}. Use TOML or JSON.")


def build_config(
    *,
    env: Optional[Mapping[str, str]] = None,
    config_file: Optional[Path] = None,
    stack: Optional[str] = None,
    catalog_path: Optional[Path] = None,
    catalog_url: Optional[str] = None,
    runtime_base_url: Optional[str] = None,
    install_prefix: Optional[Path] = None,
    download_retries: Optional[int] = None,
    connect_timeout: Optional[int] = None,
    debug: Optional[bool] = None,
) -> BuildpackConfig:
    """Merge CLI inputs, the build environment and any file-based configuration."""
    env = dict(os.environ) | dict(env or {})
    file_data = load_config(config_file)
    cfg = file_data.get("buildpack", {}) if isinstance(file_data, dict) else {}

    file_catalog = cfg.get("catalog_path")
    env_catalog = env.get("BUILDPACK_CATALOG_PATH")
    resolved_catalog = catalog_path or (Path(env_catalog) if env_catalog else None) or (
        Path(file_catalog) if file_catalog else None
    )

    file_prefix = cfg.get("install_prefix")
    env_prefix = env.get("BUILDPACK_INSTALL_PREFIX")
    resolved_prefix = install_prefix or (Path(env_prefix) if env_prefix else None) or (
        Path(file_prefix) if file_prefix else None
    )

    return BuildpackConfig(
        stack=(stack or env.get("STACK") or cfg.get("stack", DEFAULT_STACK)).strip(),
        default_python_version=cfg.get("default_python_version", DEFAULT_PYTHON_VERSION),
        catalog_path=resolved_catalog,
        catalog_url=catalog_url or env.get("BUILDPACK_CATALOG_URL") or cfg.get("catalog_url"),
        runtime_base_url=(
            runtime_base_url
            or env.get("BUILDPACK_RUNTIME_BASE_URL")
            or cfg.get("runtime_base_url", DEFAULT_RUNTIME_BASE_URL)
        ).rstrip("/"),
        install_prefix=resolved_prefix,
        download_retries=_first_set(
            download_retries, _maybe_int(env.get("BUILDPACK_DOWNLOAD_RETRIES")), cfg.get("download_retries"), 3
        ),
        connect_timeout=_first_set(
            connect_timeout, _maybe_int(env.get("BUILDPACK_CONNECT_TIMEOUT")), cfg.get("connect_timeout"), 10
        ),
        retry_backoff=float(cfg.get("retry_backoff", 1.0)),
        pip_version=cfg.get("pip_version", BuildpackConfig.pip_version),
        pipenv_version=cfg.get("pipenv_version", BuildpackConfig.pipenv_version),
        poetry_version=cfg.get("poetry_version", BuildpackConfig.poetry_version),
        debug=_maybe_bool(debug, _env_flag(env.get("BUILDPACK_DEBUG")) or cfg.get("debug")),
    )


def _maybe_int(value: Optional[str]) -> Optional[int]:
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError:
        LOG.warning("Ignoring non-integer setting value %r", value)
        return None


def _env_flag(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _maybe_bool(cli_value: Optional[bool], cfg_value: Optional[bool]) -> bool:
    if cli_value is not None:
        return cli_value
    return bool(cfg_value) if cfg_value is not None else False


def _first_set(*values):
    for value in values:
        if value is not None:
            return value
    return None
