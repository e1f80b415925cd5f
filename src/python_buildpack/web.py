from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .history import BuildHistory, BuildRecord, FailureStat, HistorySummary
from .metadata import MetadataStore
from .report import step_timings


class LastBuild(BaseModel):
    status: str
    record: Dict[str, str]
    timings: Dict[str, float]


def create_app(history: BuildHistory, cache_dir: Optional[Path] = None) -> FastAPI:
    app = FastAPI(title="Python Buildpack Build History")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/healthz")
    def health():
        return {"status": "ok"}

    @app.get("/api/builds")
    def api_builds(limit: int = Query(20, le=200), status: Optional[str] = None) -> List[BuildRecord]:
        return history.recent(limit=limit, status=status)

    @app.get("/api/failures")
    def api_failures(limit: int = Query(10, le=100)) -> List[FailureStat]:
        return history.failure_counts(limit=limit)

    @app.get("/api/summary")
    def api_summary() -> HistorySummary:
        return history.summary()

    @app.get("/api/last-build", response_model=LastBuild)
    def api_last_build():
        if cache_dir is None:
            return JSONResponse(status_code=404, content={"detail": "cache dir not configured"})
        record = MetadataStore(cache_dir, "python").previous
        if not record:
            return JSONResponse(status_code=404, content={"detail": "no build metadata"})
        status = "failed" if record.get("failure_reason") else "succeeded"
        return LastBuild(status=status, record=record, timings=step_timings(record))

    return app
