from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .metadata import BUILD_DATA_DIRNAME

HISTORY_DB_NAME = "history.db"


def default_history_path(cache_dir: Path) -> Path:
    return cache_dir / BUILD_DATA_DIRNAME / HISTORY_DB_NAME


class BuildHistory:
    """SQLite-backed log of every build run against a cache dir."""

    def __init__(self, path: Path):
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with sqlite3.connect(self.path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS builds (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT,
                    timestamp TEXT,
                    status TEXT,
                    stack TEXT,
                    python_version TEXT,
                    version_origin TEXT,
                    package_manager TEXT,
                    cache_status TEXT,
                    failure_reason TEXT,
                    duration REAL,
                    metadata_json TEXT
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_builds_status ON builds(status)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_builds_failure ON builds(failure_reason)")
            conn.commit()

    def record_build(
        self,
        *,
        run_id: str,
        status: str,
        stack: str,
        python_version: Optional[str] = None,
        version_origin: Optional[str] = None,
        package_manager: Optional[str] = None,
        cache_status: Optional[str] = None,
        failure_reason: Optional[str] = None,
        duration: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload = {
            "run_id": run_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": status,
            "stack": stack,
            "python_version": python_version,
            "version_origin": version_origin,
            "package_manager": package_manager,
            "cache_status": cache_status,
            "failure_reason": failure_reason,
            "duration": duration,
            "metadata_json": json.dumps(metadata or {}),
        }
        with sqlite3.connect(self.path) as conn:
            conn.execute(
                """
                INSERT INTO builds (
                    run_id, timestamp, status, stack, python_version, version_origin,
                    package_manager, cache_status, failure_reason, duration, metadata_json
                )
                VALUES (
                    :run_id, :timestamp, :status, :stack, :python_version, :version_origin,
                    :package_manager, :cache_status, :failure_reason, :duration, :metadata_json
                )
                """,
                payload,
            )
            conn.commit()

    def recent(self, *, limit: int = 20, status: Optional[str] = None) -> List["BuildRecord"]:
        query = "SELECT * FROM builds"
        params: List[Any] = []
        if status:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)
        with sqlite3.connect(self.path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_record(row) for row in rows]

    def last_build(self) -> Optional["BuildRecord"]:
        builds = self.recent(limit=1)
        return builds[0] if builds else None

    def failure_counts(self, *, limit: int = 10) -> List["FailureStat"]:
        query = """
            SELECT failure_reason, COUNT(*) as failures
            FROM builds
            WHERE status = 'failed'
            GROUP BY failure_reason
            ORDER BY failures DESC
            LIMIT ?
        """
        with sqlite3.connect(self.path) as conn:
            rows = conn.execute(query, (limit,)).fetchall()
        return [FailureStat(failure_reason=row[0], failures=row[1]) for row in rows]

    def summary(self) -> "HistorySummary":
        with sqlite3.connect(self.path) as conn:
            rows = conn.execute("SELECT status, COUNT(*) FROM builds GROUP BY status").fetchall()
            cache_rows = conn.execute(
                "SELECT cache_status, COUNT(*) FROM builds WHERE cache_status IS NOT NULL GROUP BY cache_status"
            ).fetchall()
            avg = conn.execute("SELECT AVG(duration) FROM builds WHERE status = 'succeeded'").fetchone()
        return HistorySummary(
            status_counts={row[0]: row[1] for row in rows},
            cache_counts={row[0]: row[1] for row in cache_rows},
            avg_success_duration=avg[0] if avg and avg[0] is not None else None,
        )


@dataclass
class BuildRecord:
    run_id: str
    timestamp: str
    status: str
    stack: str
    python_version: Optional[str]
    version_origin: Optional[str]
    package_manager: Optional[str]
    cache_status: Optional[str]
    failure_reason: Optional[str]
    duration: Optional[float]
    metadata: Dict[str, Any]


@dataclass
class FailureStat:
    failure_reason: str
    failures: int


@dataclass
class HistorySummary:
    status_counts: Dict[str, int]
    cache_counts: Dict[str, int]
    avg_success_duration: Optional[float] = None


def _row_to_record(row: tuple) -> BuildRecord:
    (
        _id,
        run_id,
        timestamp,
        status,
        stack,
        python_version,
        version_origin,
        package_manager,
        cache_status,
        failure_reason,
        duration,
        metadata_json,
    ) = row
    return BuildRecord(
        run_id=run_id,
        timestamp=timestamp,
        status=status,
        stack=stack,
        python_version=python_version,
        version_origin=version_origin,
        package_manager=package_manager,
        cache_status=cache_status,
        failure_reason=failure_reason,
        duration=duration,
        metadata=json.loads(metadata_json or "{}"),
    )
