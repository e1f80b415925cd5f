from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from packaging.version import InvalidVersion, Version

from .config import BuildpackConfig
from .models import major_minor
from .net import fetch

LOG = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "python_versions.yaml"


class VersionCatalog:
    """Known Python releases per stack, used to pin major.minor requests to a patch release."""

    def __init__(self, stacks: Dict[str, List[Version]]):
        self._stacks = stacks

    @classmethod
    def from_mapping(cls, data: dict) -> "VersionCatalog":
        stacks: Dict[str, List[Version]] = defaultdict(list)
        for stack, versions in (data.get("stacks") or {}).items():
            for raw in versions or []:
                try:
                    stacks[stack].append(Version(str(raw)))
                except InvalidVersion:
                    LOG.warning("Skipping invalid catalog version %r for stack %s", raw, stack)
            stacks[stack].sort()
        return cls(dict(stacks))

    @classmethod
    def from_file(cls, path: Path) -> "VersionCatalog":
        if not path.exists():
            raise FileNotFoundError(f"Version catalog {path} was not found.")
        return cls.from_mapping(yaml.safe_load(path.read_text()) or {})

    def versions(self, stack: str) -> List[str]:
        return [str(v) for v in self._stacks.get(stack, [])]

    def contains(self, version: str, stack: str) -> bool:
        try:
            wanted = Version(version)
        except InvalidVersion:
            return False
        return any(v == wanted and str(v) == version for v in self._stacks.get(stack, []))

    def latest(self, line: str, stack: str) -> Optional[str]:
        """Return the newest known patch release of a major.minor line, or None."""
        best: Optional[Version] = None
        for version in self._stacks.get(stack, []):
            if version.is_prerelease or major_minor(str(version)) != line:
                continue
            if best is None or version > best:
                best = version
        return str(best) if best else None

    def supported_lines(self, stack: str) -> List[str]:
        lines: List[str] = []
        for version in self._stacks.get(stack, []):
            line = f"{version.major}.{version.minor}"
            if line not in lines:
                lines.append(line)
        return lines


def load_catalog(config: BuildpackConfig) -> VersionCatalog:
    if config.catalog_url:
        LOG.debug("Fetching version catalog from %s", config.catalog_url)
        payload = fetch(
            config.catalog_url,
            retries=config.download_retries,
            timeout=config.connect_timeout,
            backoff=config.retry_backoff,
        )
        return VersionCatalog.from_mapping(yaml.safe_load(payload.decode("utf-8")) or {})
    return VersionCatalog.from_file(config.catalog_path or DEFAULT_CATALOG_PATH)
