from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Optional, Tuple

from .catalog import VersionCatalog
from .errors import InvalidVersionDeclaration, VersionNotFound
from .models import BuildContext, PackageManagerKind, VersionOrigin, VersionSpec, major_minor

LOG = logging.getLogger(__name__)

PYTHON_VERSION_FILE = ".python-version"
RUNTIME_TXT_FILE = "runtime.txt"
PIPFILE_LOCK_FILE = "Pipfile.lock"

_VERSION_RE = re.compile(r"\d+\.\d+(?:\.\d+)?")
_RUNTIME_TXT_RE = re.compile(r"python-(\d+\.\d+(?:\.\d+)?)")


class VersionResolver:
    """Decide which Python version to install and pin it to a full release.

    The requested version comes from the first source that has one:

    1. ``.python-version`` in the build dir
    2. ``runtime.txt`` (deprecated)
    3. ``Pipfile.lock`` for Pipenv projects
    4. the major.minor line of the version the previous build installed
    5. the built-in default full version
    """

    def __init__(self, catalog: VersionCatalog, default_version: str):
        self.catalog = catalog
        self.default_version = default_version

    def resolve(
        self,
        context: BuildContext,
        package_manager: PackageManagerKind,
        previous_full_version: Optional[str] = None,
    ) -> VersionSpec:
        requested, origin = self.requested_version(context.build_dir, package_manager, previous_full_version)
        resolved = self.pin(requested, context.stack)
        LOG.info("Using Python %s (requested %s via %s)", resolved, requested, origin.value)
        return VersionSpec(requested=requested, origin=origin, resolved=resolved)

    def requested_version(
        self,
        build_dir: Path,
        package_manager: PackageManagerKind,
        previous_full_version: Optional[str] = None,
    ) -> Tuple[str, VersionOrigin]:
        explicit = read_python_version_file(build_dir / PYTHON_VERSION_FILE)
        if explicit:
            return explicit, VersionOrigin.EXPLICIT_FILE

        deprecated = read_runtime_txt(build_dir / RUNTIME_TXT_FILE)
        if deprecated:
            LOG.warning(
                "runtime.txt is deprecated; replace it with a .python-version file containing %s",
                major_minor(deprecated),
            )
            return deprecated, VersionOrigin.DEPRECATED_FILE

        if package_manager == PackageManagerKind.PIPENV:
            locked = read_pipfile_lock_version(build_dir / PIPFILE_LOCK_FILE)
            if locked:
                return locked, VersionOrigin.PIPFILE_LOCK

        if previous_full_version:
            LOG.info(
                "No Python version declared; keeping the %s line used by the previous build",
                major_minor(previous_full_version),
            )
            return major_minor(previous_full_version), VersionOrigin.CACHED_MAJOR

        LOG.info("No Python version declared; using default %s", self.default_version)
        return self.default_version, VersionOrigin.DEFAULT

    def pin(self, requested: str, stack: str) -> str:
        if requested.count(".") >= 2:
            if not self.catalog.contains(requested, stack):
                raise VersionNotFound(requested, stack, available=self.catalog.supported_lines(stack))
            return requested
        latest = self.catalog.latest(requested, stack)
        if latest is None:
            raise VersionNotFound(requested, stack, available=self.catalog.supported_lines(stack))
        return latest


def read_python_version_file(path: Path) -> Optional[str]:
    if not path.is_file():
        return None
    lines = [
        line.strip()
        for line in path.read_text(encoding="utf-8", errors="replace").splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]
    if not lines:
        raise InvalidVersionDeclaration("no Python version found (expected e.g. 3.12)", path)
    if len(lines) > 1:
        raise InvalidVersionDeclaration(f"multiple Python versions found: {', '.join(lines)}", path)
    if not _VERSION_RE.fullmatch(lines[0]):
        raise InvalidVersionDeclaration(f"invalid Python version '{lines[0]}' (expected e.g. 3.12)", path)
    return lines[0]


def read_runtime_txt(path: Path) -> Optional[str]:
    if not path.is_file():
        return None
    content = path.read_text(encoding="utf-8", errors="replace").strip()
    match = _RUNTIME_TXT_RE.fullmatch(content)
    if not match:
        raise InvalidVersionDeclaration(f"invalid runtime '{content}' (expected e.g. python-3.12.7)", path)
    return match.group(1)


def read_pipfile_lock_version(path: Path) -> Optional[str]:
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidVersionDeclaration(f"unable to parse JSON ({exc.msg})", path) from exc
    requires = (data.get("_meta") or {}).get("requires") or {}
    version = requires.get("python_full_version") or requires.get("python_version")
    if version is None:
        return None
    version = str(version).strip()
    if not _VERSION_RE.fullmatch(version):
        raise InvalidVersionDeclaration(f"invalid Python version '{version}' in _meta.requires", path)
    return version
