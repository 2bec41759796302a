from __future__ import annotations

import dataclasses
import hmac
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import (
    ConfigError,
    bootstrap_runtime_config,
    get_cron_secret,
    get_state_db_path,
    load_runtime_config,
)
from .engine.errors import GenerationError
from .engine.pipeline import generate_article
from .fsinit import build_default_paths, ensure_runtime_dirs, set_umask_from_env
from .pulse.descriptor import validate_job_descriptor
from .pulse.heartbeat import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_RETRYING,
    STATUS_SKIPPED,
    run_heartbeat,
    run_job_now,
)
from .pulse.planner import generate_schedule
from .services.credentials import clear_credential, list_credentials, set_credential
from .storage import (
    QueueJobNotFound,
    QueueJobNotPending,
    delete_queue_job,
    init_db,
    list_active_jobs,
    list_execution_logs,
    log_entry_to_dict,
    queue_job_to_dict,
    update_queue_job,
)
from .strategy import StrategyStore, StrategyValidationError, strategy_to_dict
from .utils import configure_logging, log_event, parse_iso

app = FastAPI(title="Rusty Tablet Pulse API")

_FAILED_STATUSES = (STATUS_RETRYING, STATUS_FAILED)


def _require_cron_token(request: Request) -> None:
    secret = get_cron_secret()
    if not secret:
        raise HTTPException(status_code=500, detail="server_misconfigured")
    header = request.headers.get("Authorization", "")
    if not hmac.compare_digest(header, f"Bearer {secret}"):
        raise HTTPException(status_code=401, detail="unauthorized")


class QueuePatchRequest(BaseModel):
    id: str | None = None
    scheduled_at: str | None = None
    job_params: dict[str, Any] | None = None


class QueueRunRequest(BaseModel):
    id: str | None = None


class CredentialRequest(BaseModel):
    value: str


@app.on_event("startup")
def _startup() -> None:
    try:
        conn = init_db(get_state_db_path())
        config = load_runtime_config(conn)
    except ConfigError:
        return
    set_umask_from_env()
    ensure_runtime_dirs(
        build_default_paths(
            config.paths.data_dir, config.paths.output_dir, config.paths.media_dir
        )
    )


@app.get("/health")
def health() -> dict[str, object]:
    return {
        "ok": True,
        "version": _get_version(),
        "time": datetime.now(tz=timezone.utc).isoformat(),
    }


router = APIRouter(dependencies=[Depends(_require_cron_token)])


@router.get("/strategy")
def strategy_get() -> dict[str, object]:
    conn = _get_conn()
    strategy = StrategyStore(conn, _logger()).load_or_seed()
    return {"success": True, "config": strategy_to_dict(strategy)}


@router.post("/strategy")
def strategy_save(payload: dict[str, Any] = Body(...)) -> dict[str, object]:
    conn = _get_conn()
    try:
        strategy = StrategyStore(conn, _logger()).save(payload)
    except StrategyValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.errors) from exc
    return {"success": True, "config": strategy_to_dict(strategy)}


@router.get("/queue")
def queue_list() -> dict[str, object]:
    conn = _get_conn()
    config = _load_config(conn)
    jobs = list_active_jobs(conn, limit=config.pulse.queue_view_limit)
    return {"success": True, "queue": [queue_job_to_dict(job) for job in jobs]}


@router.patch("/queue")
def queue_patch(payload: QueuePatchRequest) -> dict[str, object]:
    if not payload.id:
        raise HTTPException(status_code=400, detail="id_required")
    patch: dict[str, object] = {}
    if payload.scheduled_at is not None:
        try:
            patch["scheduled_at"] = parse_iso(payload.scheduled_at)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="invalid_scheduled_at") from exc
    if payload.job_params is not None:
        errors = validate_job_descriptor(payload.job_params)
        if errors:
            raise HTTPException(status_code=400, detail=errors)
        patch["job_params"] = payload.job_params
    conn = _get_conn()
    try:
        job = update_queue_job(conn, payload.id, patch)
    except QueueJobNotFound as exc:
        raise HTTPException(status_code=404, detail="job_not_found") from exc
    except QueueJobNotPending as exc:
        raise HTTPException(status_code=409, detail="job_not_pending") from exc
    log_event(_logger(), logging.INFO, "queue_job_updated", job_id=job.id, fields=",".join(patch))
    return {"success": True, "job": queue_job_to_dict(job)}


@router.delete("/queue")
def queue_delete(id: str | None = None) -> dict[str, object]:
    if not id:
        raise HTTPException(status_code=400, detail="id_required")
    conn = _get_conn()
    try:
        delete_queue_job(conn, id)
    except QueueJobNotFound as exc:
        raise HTTPException(status_code=404, detail="job_not_found") from exc
    except QueueJobNotPending as exc:
        raise HTTPException(status_code=409, detail="job_not_pending") from exc
    log_event(_logger(), logging.INFO, "queue_job_deleted", job_id=id)
    return {"success": True}


@router.post("/queue/run")
def queue_run(payload: QueueRunRequest) -> dict[str, object]:
    if not payload.id:
        raise HTTPException(status_code=400, detail="id_required")
    conn = _get_conn()
    config = _load_config(conn)
    outcome = run_job_now(conn, config, payload.id, logger=_logger())
    if outcome.status == STATUS_SKIPPED:
        raise HTTPException(status_code=404, detail=outcome.message)
    if outcome.status != STATUS_COMPLETED:
        raise HTTPException(status_code=500, detail=outcome.message)
    return {"success": True, "result": outcome.result}


@router.get("/logs")
def logs_list() -> dict[str, object]:
    conn = _get_conn()
    config = _load_config(conn)
    entries = list_execution_logs(conn, limit=config.pulse.log_view_limit)
    return {"success": True, "logs": [log_entry_to_dict(entry) for entry in entries]}


@router.post("/plan")
def plan_regenerate() -> dict[str, object]:
    return _plan(clear_existing=True)


@router.get("/cron/daily-plan")
def cron_daily_plan() -> dict[str, object]:
    return _plan(clear_existing=False)


@router.get("/cron/heartbeat")
def cron_heartbeat():
    conn = _get_conn()
    config = _load_config(conn)
    try:
        outcome = run_heartbeat(conn, config, logger=_logger())
    except ConfigError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    body = {"success": outcome.status not in _FAILED_STATUSES, **dataclasses.asdict(outcome)}
    if outcome.status in _FAILED_STATUSES:
        return JSONResponse(status_code=500, content=body)
    return body


@router.post("/engine/generate")
def engine_generate(payload: dict[str, Any] = Body(...)):
    errors = validate_job_descriptor(payload)
    if errors:
        raise HTTPException(status_code=400, detail=errors)
    conn = _get_conn()
    config = _load_config(conn)
    try:
        return generate_article(conn, config, payload, logger=_logger())
    except GenerationError as exc:
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


@router.get("/admin/credentials")
def credentials_list() -> list[dict[str, object]]:
    conn = _get_conn()
    return list_credentials(conn)


@router.put("/admin/credentials/{name}")
def credentials_set(name: str, payload: CredentialRequest) -> dict[str, object]:
    conn = _get_conn()
    try:
        stored = set_credential(conn, name, payload.value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_event(_logger(), logging.INFO, "credential_stored", name=name)
    return stored


@router.delete("/admin/credentials/{name}")
def credentials_clear(name: str) -> dict[str, object]:
    conn = _get_conn()
    try:
        removed = clear_credential(conn, name)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not removed:
        raise HTTPException(status_code=404, detail="credential_not_found")
    log_event(_logger(), logging.INFO, "credential_cleared", name=name)
    return {"status": "ok"}


app.include_router(router)


def _plan(clear_existing: bool) -> dict[str, object]:
    conn = _get_conn()
    try:
        count = generate_schedule(conn, clear_existing, logger=_logger())
    except ConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    mode = "regenerated" if clear_existing else "appended"
    return {"success": True, "count": count, "message": f"Schedule {mode}: {count} jobs"}


def _get_conn():
    conn = init_db(get_state_db_path())
    bootstrap_runtime_config(conn)
    return conn


def _load_config(conn):
    try:
        return load_runtime_config(conn)
    except ConfigError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def _logger() -> logging.Logger:
    return configure_logging("rustytablet.admin")


def _get_version() -> str:
    try:
        from importlib.metadata import version

        return version("rustytablet")
    except Exception:  # noqa: BLE001
        return "unknown"


def run() -> None:
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(prog="rustytablet-admin")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()
    uvicorn.run(app, host=args.host, port=args.port)
