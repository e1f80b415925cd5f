from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

INSTALL_DIRNAME = ".python"


@dataclass(frozen=True)
class BuildContext:
    build_dir: Path
    cache_dir: Path
    env_dir: Path
    stack: str
    env: Mapping[str, str] = field(default_factory=dict)
    # Where the runtime and venv live while building. The venv embeds this path,
    # so it should match where the app runs (e.g. /app/.python).
    install_prefix: Optional[Path] = None

    def __post_init__(self) -> None:
        # Freeze the captured environment so no step can mutate it in place.
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    @property
    def install_dir(self) -> Path:
        return self.install_prefix or self.slug_install_dir

    @property
    def slug_install_dir(self) -> Path:
        """Install tree location inside the build dir, shipped with the app."""
        return self.build_dir / INSTALL_DIRNAME

    @property
    def runtime_dir(self) -> Path:
        return self.install_dir / "runtime"

    @property
    def venv_dir(self) -> Path:
        return self.install_dir / "venv"


class VersionOrigin(str, Enum):
    """Where the requested Python version came from."""

    EXPLICIT_FILE = "python-version-file"
    DEPRECATED_FILE = "runtime-txt"
    PIPFILE_LOCK = "pipfile-lock"
    CACHED_MAJOR = "cached"
    DEFAULT = "default"


@dataclass(frozen=True)
class VersionSpec:
    requested: str
    origin: VersionOrigin
    resolved: str

    @property
    def major_minor(self) -> str:
        return major_minor(self.resolved)

    @property
    def is_full(self) -> bool:
        return self.requested.count(".") >= 2


class PackageManagerKind(str, Enum):
    PIP = "pip"
    PIPENV = "pipenv"
    POETRY = "poetry"


class PipelineState(str, Enum):
    INIT = "init"
    VERSION_RESOLVED = "version_resolved"
    CACHE_RESTORED = "cache_restored"
    RUNTIME_INSTALLED = "runtime_installed"
    MANAGER_INSTALLED = "manager_installed"
    DEPENDENCIES_INSTALLED = "dependencies_installed"
    EXTRAS_INSTALLED = "extras_installed"
    CACHE_SAVED = "cache_saved"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RestoreOutcome:
    reused: bool
    reasons: Tuple[str, ...] = ()
    purged: Tuple[str, ...] = ()

    @property
    def status(self) -> str:
        if self.reused:
            return "reused"
        if self.reasons:
            return "invalidated"
        return "empty"


def major_minor(version: str) -> str:
    parts = version.strip().split(".")
    return ".".join(parts[:2])
