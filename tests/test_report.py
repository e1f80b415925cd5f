import json

from python_buildpack.report import render_report, report_json, step_timings

RECORD = {
    "stack": "ubuntu-24.04",
    "python_version_full": "3.12.8",
    "python_version_origin": "python-version-file",
    "package_manager": "poetry",
    "cache_restore": "invalidated",
    "cache_invalidation_reasons": "python-version-changed",
    "version_resolved_duration": "0.012",
    "total_duration": "41.5",
    "bogus_duration": "n/a",
}


def test_render_report_for_successful_build():
    text = render_report(RECORD)
    assert text.splitlines()[0] == "Last build: succeeded"
    assert "  Python version: 3.12.8" in text
    assert "  Cache invalidated by: python-version-changed" in text
    assert "    total: 41.500s" in text
    assert "Failure reason" not in text


def test_render_report_for_failed_build():
    text = render_report({"stack": "ubuntu-24.04", "failure_reason": "python-version-not-found"})
    assert text.splitlines()[0] == "Last build: failed"
    assert "  Failure reason: python-version-not-found" in text


def test_empty_record():
    assert render_report({}) == "No build metadata recorded yet."


def test_step_timings_skips_unparseable_values():
    assert step_timings(RECORD) == {"version_resolved": 0.012, "total": 41.5}


def test_report_json_includes_timings():
    payload = json.loads(report_json(RECORD))
    assert payload["package_manager"] == "poetry"
    assert payload["timings"]["total"] == 41.5
