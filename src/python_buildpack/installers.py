from __future__ import annotations

import logging
from typing import List, Mapping

from .config import BuildpackConfig
from .errors import InstallFailure
from .models import BuildContext, PackageManagerKind
from .package_manager import PIP_MARKER, dispatch
from .process import run_command

LOG = logging.getLogger(__name__)


class PackageManagerInstaller:
    """Create the app virtualenv and install the selected package manager into it."""

    def __init__(self, config: BuildpackConfig):
        self.config = config

    def install(self, context: BuildContext, kind: PackageManagerKind, overlay: Mapping[str, str]) -> None:
        if not (context.venv_dir / "bin" / "python").exists():
            LOG.info("Creating virtualenv at %s", context.venv_dir)
            cmd = [context.runtime_dir / "bin" / "python3", "-m", "venv", context.venv_dir]
            if context.venv_dir.exists():
                # Its interpreter link dangles, so its scripts cannot be trusted either.
                cmd.append("--clear")
            self._run(cmd, context, overlay)

        packages = dispatch(
            kind,
            {
                PackageManagerKind.PIP: lambda: [f"pip=={self.config.pip_version}"],
                PackageManagerKind.PIPENV: lambda: [
                    f"pip=={self.config.pip_version}",
                    f"pipenv=={self.config.pipenv_version}",
                ],
                PackageManagerKind.POETRY: lambda: [
                    f"pip=={self.config.pip_version}",
                    f"poetry=={self.config.poetry_version}",
                ],
            },
        )()
        LOG.info("Installing %s", ", ".join(packages))
        self._run([context.venv_dir / "bin" / "python", "-m", "pip", "install", "--quiet", *packages], context, overlay)

    def _run(self, cmd: List, context: BuildContext, overlay: Mapping[str, str]) -> None:
        proc = run_command(cmd, context, overlay)
        if proc.returncode != 0:
            raise InstallFailure(
                "Package manager installation", proc.returncode, failure_reason="package-manager-install-failed"
            )


class DependencyInstaller:
    """Install the application's dependencies with the selected package manager."""

    def install(self, context: BuildContext, kind: PackageManagerKind, overlay: Mapping[str, str]) -> None:
        cmd = dispatch(
            kind,
            {
                PackageManagerKind.PIP: self._pip_command,
                PackageManagerKind.PIPENV: self._pipenv_command,
                PackageManagerKind.POETRY: self._poetry_command,
            },
        )(context)
        if cmd is None:
            LOG.info("No dependencies to install")
            return
        LOG.info("Installing dependencies with %s", PackageManagerKind(kind).value)
        proc = run_command(cmd, context, overlay)
        if proc.returncode != 0:
            raise InstallFailure("Dependency installation", proc.returncode, failure_reason="dependencies-install-failed")

    def _pip_command(self, context: BuildContext):
        if not (context.build_dir / PIP_MARKER).is_file():
            return None
        return [
            context.venv_dir / "bin" / "python",
            "-m",
            "pip",
            "install",
            "--requirement",
            context.build_dir / PIP_MARKER,
        ]

    def _pipenv_command(self, context: BuildContext):
        return [context.venv_dir / "bin" / "pipenv", "install", "--deploy"]

    def _poetry_command(self, context: BuildContext):
        return [context.venv_dir / "bin" / "poetry", "sync", "--only", "main", "--no-interaction"]
