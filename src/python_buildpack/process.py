from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

from .models import BuildContext

LOG = logging.getLogger(__name__)


def build_overlay(context: BuildContext, tool_cache_dir: Optional[Path] = None) -> Dict[str, str]:
    """Variables every build subprocess needs on top of the inherited environment."""
    base_path = os.environ.get("PATH", "/usr/local/bin:/usr/bin:/bin")
    base_ld = os.environ.get("LD_LIBRARY_PATH", "")
    overlay = {
        "PATH": os.pathsep.join([str(context.venv_dir / "bin"), str(context.runtime_dir / "bin"), base_path]),
        "LD_LIBRARY_PATH": os.pathsep.join(filter(None, [str(context.runtime_dir / "lib"), base_ld])),
        "VIRTUAL_ENV": str(context.venv_dir),
        "LANG": "C.UTF-8",
        "PYTHONUNBUFFERED": "1",
        "PIP_DISABLE_PIP_VERSION_CHECK": "1",
        "PIP_NO_PYTHON_VERSION_WARNING": "1",
    }
    if tool_cache_dir is not None:
        overlay["PIP_CACHE_DIR"] = str(tool_cache_dir)
        overlay["PIPENV_CACHE_DIR"] = str(tool_cache_dir)
        overlay["POETRY_CACHE_DIR"] = str(tool_cache_dir)
    return overlay


def command_env(context: BuildContext, overlay: Mapping[str, str]) -> Dict[str, str]:
    env = os.environ.copy()
    env.update(context.env)
    env.update(overlay)
    return env


def run_command(
    cmd: Iterable[str],
    context: BuildContext,
    overlay: Mapping[str, str],
    *,
    cwd: Optional[Path] = None,
) -> subprocess.CompletedProcess:
    """Run a build subprocess with the captured env and overlay applied; never raises on exit status."""
    cmd = [str(part) for part in cmd]
    LOG.debug("Running: %s", " ".join(cmd))
    return subprocess.run(cmd, cwd=cwd or context.build_dir, env=command_env(context, overlay), check=False)
