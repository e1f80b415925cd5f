from __future__ import annotations

from pathlib import Path
from typing import Optional


class BuildpackError(RuntimeError):
    """Base class for errors that abort the build with a classified failure reason."""

    failure_reason = "internal-error"

    def __init__(self, message: str, *, failure_reason: Optional[str] = None):
        super().__init__(message)
        if failure_reason:
            self.failure_reason = failure_reason


class VersionNotFound(BuildpackError):
    failure_reason = "python-version-not-found"

    def __init__(self, version: str, stack: str, *, available: Optional[list[str]] = None):
        message = f"Python {version} is not available for stack {stack}."
        if available:
            message += f" Supported versions: {', '.join(available)}."
        super().__init__(message)
        self.version = version
        self.stack = stack
        self.available = available or []


class InvalidVersionDeclaration(BuildpackError):
    failure_reason = "python-version-invalid"

    def __init__(self, message: str, path: Path):
        super().__init__(f"{path.name}: {message}")
        self.path = path


class DownloadFailure(BuildpackError):
    failure_reason = "python-download-failed"

    def __init__(self, url: str, detail: str, *, attempts: int = 1):
        super().__init__(f"Failed to download {url} after {attempts} attempt(s): {detail}")
        self.url = url
        self.attempts = attempts


class AmbiguousPackageManager(BuildpackError):
    failure_reason = "package-manager-ambiguous"

    def __init__(self, markers: list[str]):
        super().__init__(
            "Found lock files for more than one package manager: "
            f"{', '.join(markers)}. Remove all but one of them."
        )
        self.markers = markers


class CacheCorrupt(BuildpackError):
    """Raised while inspecting the cache; recovered locally by a cold build."""

    failure_reason = "cache-corrupt"


class HookFailure(BuildpackError):
    def __init__(self, hook: str, returncode: int):
        super().__init__(
            f"Hook bin/{hook} exited with status {returncode}.",
            failure_reason=f"{hook.replace('_', '-')}-hook-failed",
        )
        self.hook = hook
        self.returncode = returncode


class InstallFailure(BuildpackError):
    def __init__(self, step: str, returncode: int, *, failure_reason: str):
        super().__init__(f"{step} failed (rc={returncode}).", failure_reason=failure_reason)
        self.step = step
        self.returncode = returncode


class InternalError(BuildpackError):
    failure_reason = "internal-error"


class ConfigInvalid(BuildpackError):
    failure_reason = "config-invalid"
