from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta
from typing import Any, Callable

from ..config import Config
from ..engine.pipeline import generate_article
from ..engine.remote import call_remote_engine
from ..models import LOG_FAILURE, LOG_SUCCESS, HeartbeatOutcome, QueueJob
from ..storage import (
    claim_job,
    count_pending_jobs,
    insert_execution_log,
    list_due_jobs,
    mark_job_completed,
    mark_job_failed,
    reschedule_job_with_retry,
)
from ..strategy import StrategyStore
from ..utils import isoformat_utc, log_event, utc_now
from .planner import generate_schedule

Generator = Callable[[dict[str, Any]], dict[str, Any]]

STATUS_IDLE = "idle"
STATUS_PAUSED = "paused"
STATUS_SKIPPED = "skipped"
STATUS_COMPLETED = "completed"
STATUS_RETRYING = "retrying"
STATUS_FAILED = "failed"

SKIPPED_MESSAGE = "Job not found or already processing"


def build_generator(
    conn,
    config: Config,
    logger: logging.Logger,
    rng: random.Random | None = None,
) -> Generator:
    """Return the callable that turns a job descriptor into an article."""
    if config.engine.endpoint_url:
        return lambda job_params: call_remote_engine(config, job_params, logger)
    return lambda job_params: generate_article(
        conn, config, job_params, logger=logger, rng=rng
    )


def run_heartbeat(
    conn,
    config: Config,
    *,
    generator: Generator | None = None,
    now: datetime | None = None,
    rng: random.Random | None = None,
    logger: logging.Logger | None = None,
) -> HeartbeatOutcome:
    """One scheduler tick: refill, pick the next due job, run it, record it."""
    logger = logger or logging.getLogger("rustytablet.pulse")
    now = now or utc_now()

    strategy = StrategyStore(conn, logger).load()
    if strategy is not None and not strategy.is_active:
        log_event(logger, logging.INFO, "heartbeat_paused")
        return HeartbeatOutcome(status=STATUS_PAUSED, message="Strategy is inactive")

    refilled = 0
    pending = count_pending_jobs(conn)
    if pending <= config.pulse.low_water_mark:
        log_event(logger, logging.INFO, "queue_refill", pending=pending)
        refilled = generate_schedule(conn, False, now=now, rng=rng, logger=logger)

    due = list_due_jobs(conn, isoformat_utc(now), limit=config.pulse.due_batch_limit)
    if not due:
        return HeartbeatOutcome(status=STATUS_IDLE, message="No jobs due", refilled=refilled)

    for candidate in due:
        job = claim_job(conn, candidate.id)
        if job is None:
            log_event(logger, logging.INFO, "job_claim_lost", job_id=candidate.id)
            continue
        generator = generator or build_generator(conn, config, logger, rng)
        outcome = _execute(conn, config, job, generator, now, logger)
        outcome.refilled = refilled
        return outcome
    return HeartbeatOutcome(status=STATUS_SKIPPED, message=SKIPPED_MESSAGE, refilled=refilled)


def run_job_now(
    conn,
    config: Config,
    job_id: str,
    *,
    generator: Generator | None = None,
    now: datetime | None = None,
    rng: random.Random | None = None,
    logger: logging.Logger | None = None,
) -> HeartbeatOutcome:
    """Claim and run one pending job immediately, whatever its schedule."""
    logger = logger or logging.getLogger("rustytablet.pulse")
    job = claim_job(conn, job_id)
    if job is None:
        return HeartbeatOutcome(status=STATUS_SKIPPED, job_id=job_id, message=SKIPPED_MESSAGE)
    log_event(logger, logging.INFO, "job_manual_run", job_id=job_id)
    generator = generator or build_generator(conn, config, logger, rng)
    return _execute(conn, config, job, generator, now or utc_now(), logger)


def _execute(
    conn,
    config: Config,
    job: QueueJob,
    generator: Generator,
    now: datetime,
    logger: logging.Logger,
) -> HeartbeatOutcome:
    log_event(logger, logging.INFO, "job_started", job_id=job.id, retry_count=job.retry_count)
    try:
        result = generator(job.job_params)
    except Exception as exc:  # noqa: BLE001
        return _record_failure(conn, config, job, str(exc) or exc.__class__.__name__, now, logger)
    if not isinstance(result, dict) or not result.get("success"):
        error = result.get("error") if isinstance(result, dict) else None
        return _record_failure(conn, config, job, str(error or "Phantom Engine failed"), now, logger)

    mark_job_completed(conn, job.id)
    insert_execution_log(
        conn,
        job.id,
        LOG_SUCCESS,
        {"title": result.get("title"), "post_id": result.get("post_id")},
    )
    log_event(
        logger,
        logging.INFO,
        "job_completed",
        job_id=job.id,
        post_id=result.get("post_id"),
        title=result.get("title"),
    )
    return HeartbeatOutcome(status=STATUS_COMPLETED, job_id=job.id, result=result)


def _record_failure(
    conn,
    config: Config,
    job: QueueJob,
    error: str,
    now: datetime,
    logger: logging.Logger,
) -> HeartbeatOutcome:
    retry = job.retry_count + 1
    if retry < config.pulse.max_retries:
        message = f"Retry {retry}: {error}"
        retry_at = now + timedelta(minutes=config.pulse.retry_delay_minutes)
        reschedule_job_with_retry(conn, job.id, retry_at, retry, message)
        status = STATUS_RETRYING
        log_event(
            logger,
            logging.WARNING,
            "job_retry_scheduled",
            job_id=job.id,
            retry=retry,
            retry_at=isoformat_utc(retry_at),
            error=error,
        )
    else:
        message = f"Max retries reached. Error: {error}"
        mark_job_failed(conn, job.id, message, retry_count=retry)
        status = STATUS_FAILED
        log_event(logger, logging.ERROR, "job_failed", job_id=job.id, retry=retry, error=error)
    insert_execution_log(conn, job.id, LOG_FAILURE, {"error": error})
    return HeartbeatOutcome(status=status, job_id=job.id, message=message)
