from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Dict, Iterable, Optional

LOG = logging.getLogger(__name__)

BUILD_DATA_DIRNAME = "build-data"


class MetadataStore:
    """Key/value record of the last build, kept as one JSON file per namespace under the cache dir.

    ``previous`` is what the last build flushed; writes go to the current record, which
    replaces the file wholesale on ``flush``.
    """

    def __init__(self, cache_dir: Path, namespace: str = "python"):
        self.path = cache_dir / BUILD_DATA_DIRNAME / f"{namespace}.json"
        self.previous: Dict[str, str] = self._read(self.path)
        self._current: Dict[str, str] = {}

    @staticmethod
    def _read(path: Path) -> Dict[str, str]:
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            LOG.warning("Ignoring unreadable build metadata %s: %s", path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def set(self, key: str, value) -> None:
        self._current[key] = str(value)

    def get(self, key: str) -> Optional[str]:
        return self._current.get(key)

    def get_previous(self, key: str) -> Optional[str]:
        return self.previous.get(key)

    def time(self, key: str, start: float) -> float:
        """Record seconds elapsed since ``start`` (a ``time.monotonic()`` value)."""
        elapsed = round(time.monotonic() - start, 3)
        self.set(key, f"{elapsed:.3f}")
        return elapsed

    def items(self) -> Dict[str, str]:
        return dict(self._current)

    def flush(self, *, preserve: Iterable[str] = ()) -> Path:
        """Atomically replace the on-disk record with the current one.

        Keys in ``preserve`` keep the value from the previous record (or are dropped if
        it had none) so a failed build does not overwrite facts about the cached artifacts.
        """
        record = dict(self._current)
        for key in preserve:
            if key in self.previous:
                record[key] = self.previous[key]
            else:
                record.pop(key, None)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(record, fh, indent=2, sort_keys=True)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        LOG.debug("Wrote build metadata to %s", self.path)
        return self.path
