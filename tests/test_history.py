from pathlib import Path

from python_buildpack.history import BuildHistory, default_history_path


def _history(tmp_path: Path) -> BuildHistory:
    return BuildHistory(default_history_path(tmp_path / "cache"))


def test_history_records_and_filters(tmp_path: Path):
    history = _history(tmp_path)
    history.record_build(
        run_id="a",
        status="succeeded",
        stack="ubuntu-24.04",
        python_version="3.12.8",
        version_origin="python-version-file",
        package_manager="pip",
        cache_status="empty",
        duration=12.0,
        metadata={"cache_restore": "empty"},
    )
    history.record_build(
        run_id="b",
        status="failed",
        stack="ubuntu-24.04",
        failure_reason="python-version-not-found",
        duration=0.5,
    )
    history.record_build(run_id="c", status="succeeded", stack="ubuntu-24.04", cache_status="reused", duration=4.0)

    assert history.path == tmp_path / "cache" / "build-data" / "history.db"
    assert [b.run_id for b in history.recent()] == ["c", "b", "a"]
    assert [b.run_id for b in history.recent(status="failed")] == ["b"]
    assert history.last_build().run_id == "c"
    assert history.recent(status="succeeded")[-1].metadata == {"cache_restore": "empty"}

    failures = history.failure_counts()
    assert [(f.failure_reason, f.failures) for f in failures] == [("python-version-not-found", 1)]

    summary = history.summary()
    assert summary.status_counts == {"succeeded": 2, "failed": 1}
    assert summary.cache_counts == {"empty": 1, "reused": 1}
    assert summary.avg_success_duration == 8.0


def test_empty_history(tmp_path: Path):
    history = _history(tmp_path)
    assert history.last_build() is None
    assert history.summary().avg_success_duration is None
