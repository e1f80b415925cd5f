from __future__ import annotations

import logging
import os
from typing import Mapping

from .errors import HookFailure
from .models import BuildContext
from .process import run_command

LOG = logging.getLogger(__name__)

PRE_COMPILE = "pre_compile"
POST_COMPILE = "post_compile"


class HookRunner:
    """Run optional ``bin/<hook>`` scripts from the app source.

    Hooks run with the build dir as cwd and the inherited environment plus the
    env dir variables and the build overlay. A missing hook is skipped; a
    non-zero exit aborts the build.
    """

    def run(self, name: str, context: BuildContext, overlay: Mapping[str, str]) -> bool:
        script = context.build_dir / "bin" / name
        if not script.is_file():
            return False
        LOG.info("Running bin/%s hook", name)
        cmd = [script] if os.access(script, os.X_OK) else ["/bin/sh", script]
        proc = run_command(cmd, context, overlay, cwd=context.build_dir)
        if proc.returncode != 0:
            raise HookFailure(name, proc.returncode)
        return True
