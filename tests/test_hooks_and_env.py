import os
from pathlib import Path

import pytest

from python_buildpack.env_scripts import EnvScriptWriter
from python_buildpack.errors import HookFailure
from python_buildpack.hooks import HookRunner
from python_buildpack.process import build_overlay, command_env

from conftest import make_context


def test_missing_hook_is_skipped(tmp_path: Path):
    assert HookRunner().run("pre_compile", make_context(tmp_path), {}) is False


def test_hook_sees_env_dir_and_overlay(tmp_path: Path):
    context = make_context(tmp_path, env={"SECRET_KEY": "abc"})
    hook = context.build_dir / "bin" / "post_compile"
    hook.parent.mkdir()
    hook.write_text('echo "$SECRET_KEY $VIRTUAL_ENV $(pwd)" > hook.out\n')
    assert HookRunner().run("post_compile", context, build_overlay(context)) is True
    output = (context.build_dir / "hook.out").read_text().split()
    assert output[0] == "abc"
    assert output[1] == str(context.venv_dir)
    assert os.path.realpath(output[2]) == os.path.realpath(context.build_dir)


def test_failing_hook_raises(tmp_path: Path):
    context = make_context(tmp_path)
    hook = context.build_dir / "bin" / "pre_compile"
    hook.parent.mkdir()
    hook.write_text("exit 4\n")
    with pytest.raises(HookFailure) as excinfo:
        HookRunner().run("pre_compile", context, {})
    assert excinfo.value.returncode == 4
    assert excinfo.value.failure_reason == "pre-compile-hook-failed"


def test_overlay_does_not_touch_process_environment(tmp_path: Path):
    context = make_context(tmp_path, env={"APP_MODE": "prod"})
    before = dict(os.environ)
    env = command_env(context, build_overlay(context, tmp_path / "tool-cache"))
    assert dict(os.environ) == before
    assert env["APP_MODE"] == "prod"
    assert env["PIP_CACHE_DIR"] == str(tmp_path / "tool-cache")
    assert env["PATH"].split(os.pathsep)[:2] == [str(context.venv_dir / "bin"), str(context.runtime_dir / "bin")]


def test_context_env_is_read_only(tmp_path: Path):
    context = make_context(tmp_path, env={"A": "1"})
    with pytest.raises(TypeError):
        context.env["B"] = "2"


def test_env_script_writer(tmp_path: Path):
    writer = EnvScriptWriter(tmp_path / "build", tmp_path / "export")
    profile = writer.write([("LANG", "${LANG:-C.UTF-8}"), ("QUOTED", 'say "hi"')])
    assert profile == tmp_path / "build" / ".profile.d" / "python.sh"
    assert profile.read_text() == 'export LANG="${LANG:-C.UTF-8}"\nexport QUOTED="say \\"hi\\""\n'
    writer.write_export([("VIRTUAL_ENV", "/build/.python/venv")])
    assert (tmp_path / "export").read_text() == 'export VIRTUAL_ENV="/build/.python/venv"\n'


def test_env_script_writer_without_export_path(tmp_path: Path):
    assert EnvScriptWriter(tmp_path).write_export([("A", "1")]) is None
