from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta

from ..models import DrawnParameters
from ..storage import enqueue_jobs, get_latest_pending_job
from ..strategy import StrategyStore
from ..utils import isoformat_utc, log_event, parse_iso, utc_now
from .descriptor import build_job_descriptor
from .selector import pick_weighted

DAY_MS = 86_400_000


def generate_schedule(
    conn,
    clear_existing: bool = False,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
    logger: logging.Logger | None = None,
) -> int:
    """Plan one day of jobs and return how many were enqueued.

    In append mode the first new job lands one interval after the latest
    pending job, so successive runs never interleave. With ``clear_existing``
    the pending backlog is replaced; completed and failed history stays.
    """
    logger = logger or logging.getLogger("rustytablet.pulse")
    strategy = StrategyStore(conn, logger).require()
    now = now or utc_now()

    anchor = now
    if not clear_existing:
        latest = get_latest_pending_job(conn)
        if latest is not None:
            anchor = parse_iso(latest.scheduled_at)

    interval = timedelta(milliseconds=DAY_MS / strategy.articles_per_day)
    jobs: list[dict[str, object]] = []
    for _ in range(strategy.articles_per_day):
        anchor = anchor + interval
        drawn = DrawnParameters(
            source_mode=pick_weighted(strategy.source_weights, rng),
            image_source=pick_weighted(strategy.image_weights, rng),
            region=pick_weighted(strategy.region_weights, rng),
            sentiment=pick_weighted(strategy.sentiment_weights, rng),
        )
        jobs.append(
            {
                "scheduled_at": anchor,
                "job_params": build_job_descriptor(drawn, strategy, rng),
            }
        )

    enqueue_jobs(conn, jobs, replace_pending=clear_existing)
    log_event(
        logger,
        logging.INFO,
        "schedule_generated",
        count=len(jobs),
        mode="regenerate" if clear_existing else "append",
        first=isoformat_utc(jobs[0]["scheduled_at"]) if jobs else None,
        last=isoformat_utc(jobs[-1]["scheduled_at"]) if jobs else None,
    )
    return len(jobs)
