import json
from pathlib import Path

import pytest

from python_buildpack.errors import InvalidVersionDeclaration, VersionNotFound
from python_buildpack.models import PackageManagerKind, VersionOrigin
from python_buildpack.version import VersionResolver

from conftest import make_catalog, make_context

CATALOG = make_catalog(["3.10.2", "3.10.16", "3.11.4", "3.11.9", "3.12.7", "3.12.8", "3.13.1"])


def _resolver(default: str = "3.13.1") -> VersionResolver:
    return VersionResolver(CATALOG, default)


def test_default_version_when_nothing_declared(tmp_path: Path):
    spec = _resolver().resolve(make_context(tmp_path), PackageManagerKind.PIP)
    assert spec.origin == VersionOrigin.DEFAULT
    assert spec.requested == "3.13.1"
    assert spec.resolved == "3.13.1"


def test_major_minor_request_resolves_latest_patch(tmp_path: Path):
    context = make_context(tmp_path)
    (context.build_dir / ".python-version").write_text("3.11\n")
    spec = _resolver().resolve(context, PackageManagerKind.PIP)
    assert spec.origin == VersionOrigin.EXPLICIT_FILE
    assert spec.requested == "3.11"
    assert spec.resolved == "3.11.9"
    assert spec.major_minor == "3.11"
    assert not spec.is_full


def test_full_version_request_is_kept(tmp_path: Path):
    context = make_context(tmp_path)
    (context.build_dir / ".python-version").write_text("# pinned\n\n3.12.7\n")
    spec = _resolver().resolve(context, PackageManagerKind.PIP)
    assert spec.resolved == "3.12.7"
    assert spec.is_full


def test_unknown_full_version_is_not_found(tmp_path: Path):
    context = make_context(tmp_path)
    (context.build_dir / ".python-version").write_text("3.12.999\n")
    with pytest.raises(VersionNotFound) as excinfo:
        _resolver().resolve(context, PackageManagerKind.PIP)
    assert excinfo.value.failure_reason == "python-version-not-found"


def test_unknown_line_is_not_found(tmp_path: Path):
    context = make_context(tmp_path)
    (context.build_dir / ".python-version").write_text("3.7\n")
    with pytest.raises(VersionNotFound):
        _resolver().resolve(context, PackageManagerKind.PIP)


def test_missing_default_is_not_found(tmp_path: Path):
    with pytest.raises(VersionNotFound):
        _resolver(default="3.14.0").resolve(make_context(tmp_path), PackageManagerKind.PIP)


def test_previous_build_version_keeps_major_line(tmp_path: Path):
    spec = _resolver().resolve(make_context(tmp_path), PackageManagerKind.PIP, previous_full_version="3.10.2")
    assert spec.origin == VersionOrigin.CACHED_MAJOR
    assert spec.requested == "3.10"
    assert spec.resolved == "3.10.16"


def test_declared_version_beats_previous_build(tmp_path: Path):
    context = make_context(tmp_path)
    (context.build_dir / ".python-version").write_text("3.12\n")
    spec = _resolver().resolve(context, PackageManagerKind.PIP, previous_full_version="3.10.2")
    assert spec.origin == VersionOrigin.EXPLICIT_FILE
    assert spec.resolved == "3.12.8"


def test_runtime_txt_is_honoured_as_deprecated(tmp_path: Path):
    context = make_context(tmp_path)
    (context.build_dir / "runtime.txt").write_text("python-3.11.4\n")
    spec = _resolver().resolve(context, PackageManagerKind.PIP)
    assert spec.origin == VersionOrigin.DEPRECATED_FILE
    assert spec.resolved == "3.11.4"


def test_python_version_file_wins_over_runtime_txt(tmp_path: Path):
    context = make_context(tmp_path)
    (context.build_dir / "runtime.txt").write_text("python-3.11.4")
    (context.build_dir / ".python-version").write_text("3.12")
    spec = _resolver().resolve(context, PackageManagerKind.PIP)
    assert spec.origin == VersionOrigin.EXPLICIT_FILE


def test_pipfile_lock_version_for_pipenv_only(tmp_path: Path):
    context = make_context(tmp_path)
    lock = {"_meta": {"requires": {"python_version": "3.11"}}, "default": {}}
    (context.build_dir / "Pipfile.lock").write_text(json.dumps(lock))
    spec = _resolver().resolve(context, PackageManagerKind.PIPENV)
    assert spec.origin == VersionOrigin.PIPFILE_LOCK
    assert spec.resolved == "3.11.9"

    spec = _resolver().resolve(context, PackageManagerKind.PIP)
    assert spec.origin == VersionOrigin.DEFAULT


@pytest.mark.parametrize(
    "content",
    ["", "# only a comment\n", "3.11\n3.12\n", "python-3.12\n", "3\n", "latest\n"],
)
def test_invalid_python_version_file(tmp_path: Path, content: str):
    context = make_context(tmp_path)
    (context.build_dir / ".python-version").write_text(content)
    with pytest.raises(InvalidVersionDeclaration) as excinfo:
        _resolver().resolve(context, PackageManagerKind.PIP)
    assert excinfo.value.failure_reason == "python-version-invalid"


def test_invalid_runtime_txt(tmp_path: Path):
    context = make_context(tmp_path)
    (context.build_dir / "runtime.txt").write_text("3.12.7")
    with pytest.raises(InvalidVersionDeclaration):
        _resolver().resolve(context, PackageManagerKind.PIP)
