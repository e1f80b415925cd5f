from __future__ import annotations

import json
import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from .errors import CacheCorrupt, InternalError
from .metadata import MetadataStore
from .models import BuildContext, PackageManagerKind, RestoreOutcome, major_minor

LOG = logging.getLogger(__name__)

ARTIFACT_DIRNAME = "python"
TOOL_CACHE_DIRNAME = "tool-caches"
MANIFEST_NAME = ".artifact.json"
RUNTIME = "runtime"
VENV = "venv"
SUBTREES = (RUNTIME, VENV)

# Metadata keys that describe what the cached artifact tree was built for.
IDENTITY_KEYS = ("stack", "python_version_full", "package_manager", "install_prefix")


class CacheManager:
    """Restore and save the cached runtime + dependency tree for one cache dir.

    Validity is decided against the previous build's metadata, in order:

    1. stack changed: drop the runtime, the virtualenv and every tool cache
    2. Python major.minor changed: drop the runtime and the virtualenv
    3. package manager changed: drop the virtualenv and the old manager's tool cache
    4. install prefix changed: drop the virtualenv, which embeds absolute paths

    The first mismatch wins; later rules are not evaluated.
    """

    def __init__(self, cache_dir: Path, metadata: MetadataStore):
        self.cache_dir = cache_dir
        self.metadata = metadata
        self.artifact_dir = cache_dir / ARTIFACT_DIRNAME
        self.tool_cache_root = cache_dir / TOOL_CACHE_DIRNAME

    def tool_cache_dir(self, kind: PackageManagerKind) -> Path:
        return self.tool_cache_root / PackageManagerKind(kind).value

    def restore(
        self,
        context: BuildContext,
        stack: str,
        previous_full_version: Optional[str],
        current_full_version: str,
        package_manager: PackageManagerKind,
    ) -> RestoreOutcome:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._sweep_stale()

        try:
            self._check_integrity(previous_full_version)
        except CacheCorrupt as exc:
            LOG.warning("Discarding cache: %s", exc)
            purged = self._purge([RUNTIME, VENV], tool_caches=self._all_tool_caches())
            return RestoreOutcome(reused=False, reasons=("cache-corrupt",), purged=tuple(purged))

        reason, subtrees, tool_caches = self._invalidation(
            stack, previous_full_version, current_full_version, package_manager, str(context.install_dir)
        )
        purged: List[str] = []
        if reason:
            LOG.info("Cache invalidated (%s); clearing %s", reason, ", ".join(subtrees + tool_caches) or "nothing")
            purged = self._purge(subtrees, tool_caches=tool_caches)

        if not self.artifact_dir.exists():
            return RestoreOutcome(reused=False, reasons=(reason,) if reason else (), purged=tuple(purged))

        restored = self._copy_into(context)
        if reason:
            LOG.info("Restored %s from cache", ", ".join(restored) or "nothing")
            return RestoreOutcome(reused=False, reasons=(reason,), purged=tuple(purged))
        LOG.info("Reusing cached Python %s environment", previous_full_version)
        return RestoreOutcome(reused=True)

    def save(
        self,
        context: BuildContext,
        stack: str,
        full_version: str,
        package_manager: PackageManagerKind,
    ) -> Path:
        source = context.install_dir
        if not source.is_dir():
            raise InternalError(f"Nothing to cache: {source} does not exist")
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        staging = self.cache_dir / f".{ARTIFACT_DIRNAME}.tmp-{uuid4().hex}"
        shutil.copytree(source, staging, symlinks=True)
        manifest = {
            "stack": stack,
            "python_version_full": full_version,
            "package_manager": PackageManagerKind(package_manager).value,
            "install_prefix": str(context.install_dir),
            "subtrees": [name for name in SUBTREES if (staging / name).is_dir()],
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }
        (staging / MANIFEST_NAME).write_text(json.dumps(manifest, indent=2))

        retired: Optional[Path] = None
        if self.artifact_dir.exists():
            retired = self.cache_dir / f".{ARTIFACT_DIRNAME}.old-{uuid4().hex}"
            os.replace(self.artifact_dir, retired)
        os.replace(staging, self.artifact_dir)
        if retired is not None:
            shutil.rmtree(retired, ignore_errors=True)

        self.metadata.set("stack", stack)
        self.metadata.set("python_version_full", full_version)
        self.metadata.set("package_manager", PackageManagerKind(package_manager).value)
        self.metadata.set("install_prefix", str(context.install_dir))
        self.metadata.flush()
        LOG.info("Saved Python %s environment to cache", full_version)
        return self.artifact_dir

    def _invalidation(
        self,
        stack: str,
        previous_full_version: Optional[str],
        current_full_version: str,
        package_manager: PackageManagerKind,
        install_prefix: str,
    ) -> tuple[Optional[str], List[str], List[str]]:
        previous_stack = self.metadata.get_previous("stack")
        previous_manager = self.metadata.get_previous("package_manager")
        previous_prefix = self.metadata.get_previous("install_prefix")

        if previous_stack is not None and previous_stack != stack:
            return "stack-changed", [RUNTIME, VENV], self._all_tool_caches()
        if previous_full_version and major_minor(previous_full_version) != major_minor(current_full_version):
            return "python-version-changed", [RUNTIME, VENV], []
        if previous_manager is not None and previous_manager != PackageManagerKind(package_manager).value:
            return "package-manager-changed", [VENV], [previous_manager]
        if previous_prefix is not None and previous_prefix != install_prefix:
            # The venv's interpreter link, pyvenv.cfg and script shebangs point at the old prefix.
            return "install-prefix-changed", [VENV], []
        return None, [], []

    def _check_integrity(self, previous_full_version: Optional[str]) -> None:
        if not self.artifact_dir.exists():
            return
        if not previous_full_version or self.metadata.get_previous("stack") is None:
            raise CacheCorrupt("cached artifacts have no build metadata")
        manifest_path = self.artifact_dir / MANIFEST_NAME
        try:
            manifest = json.loads(manifest_path.read_text())
        except FileNotFoundError as exc:
            raise CacheCorrupt("cached artifacts are incomplete (no manifest)") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise CacheCorrupt(f"unreadable artifact manifest: {exc}") from exc
        # A save interrupted before its metadata flush leaves a tree the record does not describe.
        for key in IDENTITY_KEYS:
            expected = previous_full_version if key == "python_version_full" else self.metadata.get_previous(key)
            if manifest.get(key) != expected:
                raise CacheCorrupt(f"artifacts were built for {key}={manifest.get(key)}, metadata says {expected}")
        for name in manifest.get("subtrees", []):
            if not (self.artifact_dir / name).is_dir():
                raise CacheCorrupt(f"cached {name} tree is missing")

    def _purge(self, subtrees: List[str], *, tool_caches: List[str]) -> List[str]:
        purged: List[str] = []
        for name in subtrees:
            path = self.artifact_dir / name
            if path.exists():
                shutil.rmtree(path)
                purged.append(name)
        if subtrees and self.artifact_dir.exists():
            # A partially purged tree must never pass the integrity check again.
            (self.artifact_dir / MANIFEST_NAME).unlink(missing_ok=True)
            if not any(self.artifact_dir.iterdir()):
                self.artifact_dir.rmdir()
        for name in tool_caches:
            path = self.tool_cache_root / name
            if path.exists():
                shutil.rmtree(path)
                purged.append(f"{TOOL_CACHE_DIRNAME}/{name}")
        return purged

    def _all_tool_caches(self) -> List[str]:
        if not self.tool_cache_root.is_dir():
            return []
        return sorted(p.name for p in self.tool_cache_root.iterdir() if p.is_dir())

    def _copy_into(self, context: BuildContext) -> List[str]:
        restored: List[str] = []
        for name in SUBTREES:
            source = self.artifact_dir / name
            if not source.is_dir():
                continue
            target = context.install_dir / name
            if target.exists():
                shutil.rmtree(target)
            shutil.copytree(source, target, symlinks=True)
            restored.append(name)
        return restored

    def _sweep_stale(self) -> None:
        for leftover in self.cache_dir.glob(f".{ARTIFACT_DIRNAME}.*-*"):
            if leftover.is_dir():
                LOG.debug("Removing leftover cache staging dir %s", leftover)
                shutil.rmtree(leftover, ignore_errors=True)
