from __future__ import annotations

import logging
import shutil
import tarfile
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Optional

from .config import BuildpackConfig
from .errors import DownloadFailure
from .models import BuildContext, VersionSpec
from .net import download

LOG = logging.getLogger(__name__)

VERSION_STAMP = ".python-version-full"


class RuntimeInstaller:
    """Fetch and unpack a prebuilt CPython archive into the build's runtime dir."""

    def __init__(self, config: BuildpackConfig):
        self.config = config

    def archive_url(self, stack: str, version: str) -> str:
        return f"{self.config.runtime_base_url}/{stack}/python-{version}.tar.gz"

    def installed_version(self, runtime_dir: Path) -> Optional[str]:
        stamp = runtime_dir / VERSION_STAMP
        if not stamp.is_file():
            return None
        return stamp.read_text().strip() or None

    def install(self, context: BuildContext, spec: VersionSpec) -> bool:
        """Install the runtime unless the restored one already matches; returns True if it downloaded."""
        runtime_dir = context.runtime_dir
        if self.installed_version(runtime_dir) == spec.resolved:
            LOG.info("Python %s already installed", spec.resolved)
            return False
        if runtime_dir.exists():
            LOG.info("Replacing Python %s with %s", self.installed_version(runtime_dir) or "unknown", spec.resolved)
            shutil.rmtree(runtime_dir)
            # A venv built against another patch release points at the old interpreter.
            shutil.rmtree(context.venv_dir, ignore_errors=True)

        url = self.archive_url(context.stack, spec.resolved)
        LOG.info("Installing Python %s", spec.resolved)
        with TemporaryDirectory(prefix="python-runtime-", dir=context.cache_dir) as work_dir:
            archive = download(
                url,
                Path(work_dir) / "python.tar.gz",
                retries=self.config.download_retries,
                timeout=self.config.connect_timeout,
                backoff=self.config.retry_backoff,
            )
            staging = Path(work_dir) / "runtime"
            staging.mkdir()
            try:
                with tarfile.open(archive) as tf:
                    tf.extractall(staging, filter="data")
            except tarfile.TarError as exc:
                raise DownloadFailure(url, f"corrupt archive: {exc}") from exc
            runtime_dir.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(staging), str(runtime_dir))
        (runtime_dir / VERSION_STAMP).write_text(spec.resolved + "\n")
        return True
