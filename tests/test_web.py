from pathlib import Path

import pytest

pytest.importorskip("fastapi")
pytest.importorskip("httpx")
from fastapi.testclient import TestClient  # noqa: E402

from python_buildpack.history import BuildHistory, default_history_path  # noqa: E402
from python_buildpack.metadata import MetadataStore  # noqa: E402
from python_buildpack.web import create_app  # noqa: E402


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def history(cache_dir: Path) -> BuildHistory:
    history = BuildHistory(default_history_path(cache_dir))
    history.record_build(run_id="a", status="succeeded", stack="ubuntu-24.04", cache_status="empty", duration=3.0)
    history.record_build(
        run_id="b", status="failed", stack="ubuntu-24.04", failure_reason="dependencies-install-failed", duration=1.0
    )
    return history


def test_history_endpoints(history: BuildHistory, cache_dir: Path):
    client = TestClient(create_app(history, cache_dir=cache_dir))
    assert client.get("/healthz").json() == {"status": "ok"}

    builds = client.get("/api/builds").json()
    assert [b["run_id"] for b in builds] == ["b", "a"]
    assert client.get("/api/builds", params={"status": "failed"}).json()[0]["failure_reason"] == (
        "dependencies-install-failed"
    )
    assert client.get("/api/failures").json() == [{"failure_reason": "dependencies-install-failed", "failures": 1}]
    assert client.get("/api/summary").json()["status_counts"] == {"succeeded": 1, "failed": 1}


def test_last_build(history: BuildHistory, cache_dir: Path):
    client = TestClient(create_app(history, cache_dir=cache_dir))
    assert client.get("/api/last-build").status_code == 404

    store = MetadataStore(cache_dir, "python")
    store.set("python_version_full", "3.12.8")
    store.set("total_duration", "2.5")
    store.flush()

    payload = client.get("/api/last-build").json()
    assert payload["status"] == "succeeded"
    assert payload["record"]["python_version_full"] == "3.12.8"
    assert payload["timings"] == {"total": 2.5}


def test_last_build_without_cache_dir(history: BuildHistory):
    assert TestClient(create_app(history)).get("/api/last-build").status_code == 404
