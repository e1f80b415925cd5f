import shutil
from pathlib import Path

from python_buildpack.catalog import VersionCatalog
from python_buildpack.models import BuildContext

STACK = "ubuntu-24.04"


def make_catalog(versions: list[str], stack: str = STACK) -> VersionCatalog:
    return VersionCatalog.from_mapping({"stacks": {stack: versions}})


def make_context(
    tmp_path: Path,
    *,
    name: str = "build",
    stack: str = STACK,
    env: dict | None = None,
    install_prefix: Path | None = None,
) -> BuildContext:
    build_dir = tmp_path / name
    cache_dir = tmp_path / "cache"
    env_dir = tmp_path / "env"
    for path in (build_dir, cache_dir, env_dir):
        path.mkdir(parents=True, exist_ok=True)
    return BuildContext(
        build_dir=build_dir,
        cache_dir=cache_dir,
        env_dir=env_dir,
        stack=stack,
        env=env or {},
        install_prefix=install_prefix,
    )


def app_context(tmp_path: Path, *, name: str = "build", stack: str = STACK) -> BuildContext:
    """Context installing into a fixed prefix that starts empty, like a fresh build machine."""
    prefix = tmp_path / "app" / ".python"
    if prefix.exists():
        shutil.rmtree(prefix)
    return make_context(tmp_path, name=name, stack=stack, install_prefix=prefix)


def write_install_tree(context: BuildContext, version: str = "3.12.7") -> None:
    (context.runtime_dir / "bin").mkdir(parents=True, exist_ok=True)
    (context.runtime_dir / "bin" / "python3").write_text("#!/bin/sh\n")
    (context.runtime_dir / ".python-version-full").write_text(version + "\n")
    (context.venv_dir / "lib").mkdir(parents=True, exist_ok=True)
    (context.venv_dir / "lib" / "site.txt").write_text("deps\n")
