from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel

from .cli import load_latest_report
from .config import ConfigError, load_config
from .storage import get_setting, init_db, queue_statistics
from .utils import configure_logging, log_event

app = FastAPI(title="indexsync Admin API")

logger = configure_logging("indexsync.admin")


def _require_admin_token(request: Request) -> None:
    token = os.environ.get("IS_ADMIN_TOKEN")
    if not token:
        return
    header = request.headers.get("X-Admin-Token")
    if header != token:
        raise HTTPException(status_code=401, detail="unauthorized")


class QueueStat(BaseModel):
    site_id: str
    type: str
    total: int
    pending: int
    indexed: int


class QueueStatsResponse(BaseModel):
    stats: list[QueueStat]


def _get_config():
    try:
        return load_config()
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "admin_config_error", error=str(exc))
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@app.get("/")
def root() -> dict[str, str]:
    return {"service": "indexsync Admin API"}


@app.get("/health")
def health() -> dict[str, object]:
    return {"ok": True, "time": datetime.now(tz=timezone.utc).isoformat()}


@app.get(
    "/queue/stats",
    response_model=QueueStatsResponse,
    dependencies=[Depends(_require_admin_token)],
)
def queue_stats(site: list[str] | None = Query(default=None)) -> QueueStatsResponse:
    config = _get_config()
    conn = init_db(config.paths.state_db)
    try:
        rows = queue_statistics(conn, site)
    finally:
        conn.close()
    return QueueStatsResponse(stats=[QueueStat(**row) for row in rows])


@app.get("/reports/latest", dependencies=[Depends(_require_admin_token)])
def latest_report() -> dict[str, object]:
    config = _get_config()
    conn = init_db(config.paths.state_db)
    try:
        path = get_setting(conn, "index.last_report_path", None)
    finally:
        conn.close()
    report = None
    if isinstance(path, str) and os.path.exists(path):
        report = _read_report(path)
    if report is None:
        report = load_latest_report(config.paths.run_reports_dir)
    if report is None:
        raise HTTPException(status_code=404, detail="no run report")
    return report


def _read_report(path: str) -> dict | None:
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)
