from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Mapping, TypeVar

from .errors import AmbiguousPackageManager, InternalError
from .models import PackageManagerKind

LOG = logging.getLogger(__name__)

T = TypeVar("T")

POETRY_MARKERS = ("pyproject.toml", "poetry.lock")
PIPENV_MARKER = "Pipfile"
PIPENV_LOCK = "Pipfile.lock"
PIP_MARKER = "requirements.txt"


def select_package_manager(build_dir: Path) -> PackageManagerKind:
    """Pick exactly one package manager from the marker files in the build dir.

    Priority is Poetry, then Pipenv, then Pip. Lock files for both Poetry and
    Pipenv in the same tree cannot be resolved by priority alone and raise
    AmbiguousPackageManager.
    """
    has_poetry = all((build_dir / name).is_file() for name in POETRY_MARKERS)
    has_pipfile = (build_dir / PIPENV_MARKER).is_file()

    locks = [name for name in ("poetry.lock", PIPENV_LOCK) if (build_dir / name).is_file()]
    if len(locks) > 1:
        raise AmbiguousPackageManager(locks)

    if has_poetry:
        kind = PackageManagerKind.POETRY
    elif has_pipfile:
        kind = PackageManagerKind.PIPENV
    else:
        kind = PackageManagerKind.PIP
        if not (build_dir / PIP_MARKER).is_file():
            LOG.warning("No requirements.txt, Pipfile or poetry.lock found; no dependencies will be installed")
    LOG.info("Using package manager %s", kind.value)
    return kind


def dispatch(kind: PackageManagerKind, handlers: Mapping[PackageManagerKind, Callable[..., T]]) -> Callable[..., T]:
    """Return the per-manager handler, failing loudly if a kind has no handler."""
    try:
        return handlers[PackageManagerKind(kind)]
    except (KeyError, ValueError) as exc:
        raise InternalError(f"Unhandled package manager: {kind!r}") from exc
