"""
Build pipeline for the Python buildpack.

STATES (linear; any error goes to FAILED):

    init -> version_resolved -> cache_restored -> runtime_installed
         -> manager_installed -> dependencies_installed -> extras_installed
         -> cache_saved -> done

HOOKS:
    bin/pre_compile   runs before version_resolved
    bin/post_compile  runs right before cache_saved

Every transition records ``<state>_duration`` in the build metadata. A failure
records ``failure_reason`` and flushes the metadata without touching the cached
artifacts or the cache-identity keys.
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Tuple
from uuid import uuid4

from . import __version__
from .cache import IDENTITY_KEYS, CacheManager
from .catalog import VersionCatalog, load_catalog
from .config import BuildpackConfig
from .env_scripts import EnvScriptWriter
from .errors import BuildpackError, InternalError
from .history import BuildHistory
from .hooks import POST_COMPILE, PRE_COMPILE, HookRunner
from .installers import DependencyInstaller, PackageManagerInstaller
from .metadata import MetadataStore
from .models import (
    INSTALL_DIRNAME,
    BuildContext,
    PackageManagerKind,
    PipelineState,
    RestoreOutcome,
    VersionSpec,
)
from .package_manager import select_package_manager
from .process import build_overlay
from .runtime import RuntimeInstaller
from .version import VersionResolver

LOG = logging.getLogger(__name__)

ExtraStep = Callable[[BuildContext, Mapping[str, str]], None]

EXPORTED_VARIABLES = ("PATH", "LD_LIBRARY_PATH", "VIRTUAL_ENV", "LANG", "PYTHONUNBUFFERED")


@dataclass
class Collaborators:
    runtime: RuntimeInstaller
    package_manager: PackageManagerInstaller
    dependencies: DependencyInstaller
    hooks: HookRunner
    env_writer: EnvScriptWriter
    extras: List[ExtraStep] = field(default_factory=list)

    @classmethod
    def defaults(cls, context: BuildContext, config: BuildpackConfig, *, export_path: Optional[Path] = None):
        return cls(
            runtime=RuntimeInstaller(config),
            package_manager=PackageManagerInstaller(config),
            dependencies=DependencyInstaller(),
            hooks=HookRunner(),
            env_writer=EnvScriptWriter(context.build_dir, export_path),
        )


class Orchestrator:
    def __init__(
        self,
        context: BuildContext,
        config: BuildpackConfig,
        *,
        collaborators: Optional[Collaborators] = None,
        catalog: Optional[VersionCatalog] = None,
        metadata: Optional[MetadataStore] = None,
        history: Optional[BuildHistory] = None,
        run_id: Optional[str] = None,
    ):
        self.context = context
        self.config = config
        self.collaborators = collaborators or Collaborators.defaults(context, config)
        self.catalog = catalog
        self.metadata = metadata or MetadataStore(context.cache_dir, "python")
        self.cache = CacheManager(context.cache_dir, self.metadata)
        self.history = history
        self.run_id = run_id or uuid4().hex
        self.state = PipelineState.INIT
        self.transitions: List[PipelineState] = [PipelineState.INIT]
        self.version: Optional[VersionSpec] = None
        self.package_manager: Optional[PackageManagerKind] = None
        self.restore_outcome: Optional[RestoreOutcome] = None
        self.overlay: dict = {}

    def run(self) -> int:
        """Run every step in order; returns the process exit code."""
        started = time.monotonic()
        self.metadata.set("build_started_at", datetime.now(timezone.utc).isoformat())
        self.metadata.set("buildpack_version", __version__)
        self.metadata.set("run_id", self.run_id)
        try:
            self._timed("pre_compile_hook", lambda: self.collaborators.hooks.run(PRE_COMPILE, self.context, self._base_overlay()))
            self._advance(PipelineState.VERSION_RESOLVED, self._resolve_version)
            self._advance(PipelineState.CACHE_RESTORED, self._restore_cache)
            self._advance(PipelineState.RUNTIME_INSTALLED, self._install_runtime)
            self._advance(PipelineState.MANAGER_INSTALLED, self._install_package_manager)
            self._advance(PipelineState.DEPENDENCIES_INSTALLED, self._install_dependencies)
            self._advance(PipelineState.EXTRAS_INSTALLED, self._install_extras)
            self._timed("post_compile_hook", lambda: self.collaborators.hooks.run(POST_COMPILE, self.context, self.overlay))
            self._advance(PipelineState.CACHE_SAVED, self._save_cache)
        except BuildpackError as exc:
            return self._fail(exc, started)
        except Exception as exc:  # noqa: BLE001
            LOG.exception("Unexpected error while in state %s", self.state.value)
            return self._fail(InternalError(f"{type(exc).__name__}: {exc}"), started)

        self.state = PipelineState.DONE
        self.transitions.append(PipelineState.DONE)
        self.metadata.time("total_duration", started)
        self.metadata.flush()
        self._record_history("succeeded", started)
        LOG.info("Python %s environment ready", self.version.resolved if self.version else "")
        return 0

    def _advance(self, state: PipelineState, step: Callable[[], None]) -> None:
        self._timed(state.value, step)
        self.state = state
        self.transitions.append(state)
        LOG.debug("Pipeline state: %s", state.value)

    def _timed(self, key: str, step: Callable[[], object]) -> None:
        start = time.monotonic()
        step()
        self.metadata.time(f"{key}_duration", start)

    def _fail(self, exc: BuildpackError, started: float) -> int:
        failed_in = self.state
        self.state = PipelineState.FAILED
        self.transitions.append(PipelineState.FAILED)
        LOG.error("%s", exc)
        self.metadata.set("failure_reason", exc.failure_reason)
        self.metadata.set("failure_detail", str(exc))
        self.metadata.set("failed_after_state", failed_in.value)
        self.metadata.time("total_duration", started)
        # The cached artifacts were not replaced, so keep describing them.
        self.metadata.flush(preserve=IDENTITY_KEYS)
        self._record_history("failed", started, failure_reason=exc.failure_reason)
        return 1

    def _base_overlay(self) -> dict:
        return build_overlay(self.context)

    def _resolve_version(self) -> None:
        self.package_manager = select_package_manager(self.context.build_dir)
        if self.catalog is None:
            self.catalog = load_catalog(self.config)
        resolver = VersionResolver(self.catalog, self.config.default_python_version)
        self.version = resolver.resolve(
            self.context,
            self.package_manager,
            self.metadata.get_previous("python_version_full"),
        )
        self.metadata.set("package_manager", self.package_manager.value)
        self.metadata.set("python_version_requested", self.version.requested)
        self.metadata.set("python_version_origin", self.version.origin.value)
        self.metadata.set("python_version_full", self.version.resolved)
        self.metadata.set("stack", self.context.stack)
        self.overlay = build_overlay(self.context, self.cache.tool_cache_dir(self.package_manager))

    def _restore_cache(self) -> None:
        self.restore_outcome = self.cache.restore(
            self.context,
            self.context.stack,
            self.metadata.get_previous("python_version_full"),
            self.version.resolved,
            self.package_manager,
        )
        self.metadata.set("cache_restore", self.restore_outcome.status)
        self.metadata.set("cache_invalidation_reasons", ",".join(self.restore_outcome.reasons))

    def _install_runtime(self) -> None:
        downloaded = self.collaborators.runtime.install(self.context, self.version)
        self.metadata.set("python_downloaded", str(bool(downloaded)).lower())

    def _install_package_manager(self) -> None:
        self.collaborators.package_manager.install(self.context, self.package_manager, self.overlay)

    def _install_dependencies(self) -> None:
        self.collaborators.dependencies.install(self.context, self.package_manager, self.overlay)

    def _install_extras(self) -> None:
        self._ship_install_tree()
        self.collaborators.env_writer.write(runtime_env_pairs(self.context.install_prefix))
        self.collaborators.env_writer.write_export(
            [(name, self.overlay[name]) for name in EXPORTED_VARIABLES if name in self.overlay]
        )
        for extra in self.collaborators.extras:
            extra(self.context, self.overlay)

    def _ship_install_tree(self) -> None:
        """Copy a tree built at an external install prefix into the build dir so it ships with the app."""
        source = self.context.install_dir
        target = self.context.slug_install_dir
        if source == target:
            return
        LOG.info("Copying %s into %s", source, target)
        if target.exists():
            shutil.rmtree(target)
        shutil.copytree(source, target, symlinks=True)

    def _save_cache(self) -> None:
        self.cache.save(self.context, self.context.stack, self.version.resolved, self.package_manager)

    def _record_history(self, status: str, started: float, *, failure_reason: Optional[str] = None) -> None:
        if not self.history:
            return
        self.history.record_build(
            run_id=self.run_id,
            status=status,
            stack=self.context.stack,
            python_version=self.version.resolved if self.version else None,
            version_origin=self.version.origin.value if self.version else None,
            package_manager=self.package_manager.value if self.package_manager else None,
            cache_status=self.restore_outcome.status if self.restore_outcome else None,
            failure_reason=failure_reason,
            duration=round(time.monotonic() - started, 3),
            metadata=self.metadata.items(),
        )


def runtime_env_pairs(install_prefix: Optional[Path] = None) -> List[Tuple[str, str]]:
    """Variables for the running app.

    Without a fixed install prefix the tree is found relative to ``$HOME``, where the app is unpacked.
    """
    prefix = str(install_prefix) if install_prefix else f"$HOME/{INSTALL_DIRNAME}"
    return [
        ("PATH", f"{prefix}/venv/bin:{prefix}/runtime/bin:$PATH"),
        ("LD_LIBRARY_PATH", f"{prefix}/runtime/lib${{LD_LIBRARY_PATH:+:$LD_LIBRARY_PATH}}"),
        ("VIRTUAL_ENV", f"{prefix}/venv"),
        ("LANG", "${LANG:-C.UTF-8}"),
        ("PYTHONUNBUFFERED", "${PYTHONUNBUFFERED:-true}"),
    ]
