from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional, Tuple

LOG = logging.getLogger(__name__)

PROFILE_SCRIPT = Path(".profile.d") / "python.sh"


class EnvScriptWriter:
    """Write the scripts that set Python's variables for later build steps and at app start.

    Values are written inside double quotes so ``$HOME`` and ``${VAR:-default}`` expand
    when the script is sourced.
    """

    def __init__(self, build_dir: Path, export_path: Optional[Path] = None):
        self.profile_path = build_dir / PROFILE_SCRIPT
        self.export_path = export_path

    def write(self, pairs: Iterable[Tuple[str, str]]) -> Path:
        return _write_exports(self.profile_path, pairs)

    def write_export(self, pairs: Iterable[Tuple[str, str]]) -> Optional[Path]:
        if self.export_path is None:
            return None
        return _write_exports(self.export_path, pairs)


def _write_exports(path: Path, pairs: Iterable[Tuple[str, str]]) -> Path:
    lines = [f'export {name}="{_escape(value)}"' for name, value in pairs]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n")
    LOG.debug("Wrote %s", path)
    return path


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("`", "\\`")
