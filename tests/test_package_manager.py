from pathlib import Path

import pytest

from python_buildpack.errors import AmbiguousPackageManager, InternalError
from python_buildpack.models import PackageManagerKind
from python_buildpack.package_manager import dispatch, select_package_manager


def _tree(tmp_path: Path, *names: str) -> Path:
    for name in names:
        (tmp_path / name).write_text("")
    return tmp_path


@pytest.mark.parametrize(
    "files, expected",
    [
        ((), PackageManagerKind.PIP),
        (("requirements.txt",), PackageManagerKind.PIP),
        (("Pipfile",), PackageManagerKind.PIPENV),
        (("Pipfile", "Pipfile.lock", "requirements.txt"), PackageManagerKind.PIPENV),
        (("pyproject.toml", "poetry.lock"), PackageManagerKind.POETRY),
        (("pyproject.toml", "poetry.lock", "Pipfile", "requirements.txt"), PackageManagerKind.POETRY),
        (("pyproject.toml",), PackageManagerKind.PIP),
        (("pyproject.toml", "Pipfile"), PackageManagerKind.PIPENV),
    ],
)
def test_selection_priority(tmp_path: Path, files, expected):
    assert select_package_manager(_tree(tmp_path, *files)) == expected


def test_selection_is_stable_across_calls(tmp_path: Path):
    build_dir = _tree(tmp_path, "Pipfile", "requirements.txt")
    results = {select_package_manager(build_dir) for _ in range(5)}
    assert results == {PackageManagerKind.PIPENV}


def test_conflicting_lock_files_are_ambiguous(tmp_path: Path):
    build_dir = _tree(tmp_path, "pyproject.toml", "poetry.lock", "Pipfile", "Pipfile.lock")
    with pytest.raises(AmbiguousPackageManager) as excinfo:
        select_package_manager(build_dir)
    assert excinfo.value.markers == ["poetry.lock", "Pipfile.lock"]
    assert excinfo.value.failure_reason == "package-manager-ambiguous"


def test_dispatch_unknown_kind_is_internal_error():
    handlers = {PackageManagerKind.PIP: lambda: "pip"}
    assert dispatch(PackageManagerKind.PIP, handlers)() == "pip"
    with pytest.raises(InternalError):
        dispatch(PackageManagerKind.POETRY, handlers)
    with pytest.raises(InternalError):
        dispatch("conda", handlers)
