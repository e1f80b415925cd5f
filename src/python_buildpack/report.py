from __future__ import annotations

import json
from typing import Dict, List, Mapping

REPORT_FIELDS = [
    ("Stack", "stack"),
    ("Python version", "python_version_full"),
    ("Requested version", "python_version_requested"),
    ("Version source", "python_version_origin"),
    ("Package manager", "package_manager"),
    ("Cache", "cache_restore"),
    ("Cache invalidated by", "cache_invalidation_reasons"),
    ("Started at", "build_started_at"),
    ("Buildpack version", "buildpack_version"),
    ("Failure reason", "failure_reason"),
    ("Failure detail", "failure_detail"),
]


def render_report(record: Mapping[str, str]) -> str:
    """Human-readable summary of one build metadata record."""
    if not record:
        return "No build metadata recorded yet."
    status = "failed" if record.get("failure_reason") else "succeeded"
    lines: List[str] = [f"Last build: {status}"]
    for label, key in REPORT_FIELDS:
        value = record.get(key)
        if value:
            lines.append(f"  {label}: {value}")
    timings = step_timings(record)
    if timings:
        lines.append("  Timings:")
        for step, seconds in timings.items():
            lines.append(f"    {step}: {seconds:.3f}s")
    return "\n".join(lines)


def step_timings(record: Mapping[str, str]) -> Dict[str, float]:
    timings: Dict[str, float] = {}
    for key, value in record.items():
        if not key.endswith("_duration"):
            continue
        try:
            timings[key[: -len("_duration")]] = float(value)
        except ValueError:
            continue
    return timings


def report_json(record: Mapping[str, str]) -> str:
    payload = dict(record)
    payload["timings"] = step_timings(record)
    return json.dumps(payload, indent=2, sort_keys=True)
