from __future__ import annotations

import argparse
import logging
import time
from datetime import datetime, timedelta

from .config import ConfigError, Config, get_state_db_path, load_runtime_config
from .fsinit import build_default_paths, ensure_runtime_dirs, set_umask_from_env
from .pulse.heartbeat import STATUS_FAILED, STATUS_RETRYING, run_heartbeat
from .pulse.planner import generate_schedule
from .storage import get_setting, init_db, set_setting
from .utils import configure_logging, isoformat_utc, log_event, parse_iso, utc_now

LAST_DAILY_PLAN_KEY = "pulse.last_daily_plan_at"


def _setup_logging() -> logging.Logger:
    return configure_logging("rustytablet.worker")


def run_once(now: datetime | None = None) -> int:
    """Run the daily plan when it is due, then one heartbeat."""
    logger = _setup_logging()
    try:
        conn = init_db(get_state_db_path())
        config = load_runtime_config(conn)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    except Exception as exc:  # noqa: BLE001
        log_event(logger, logging.ERROR, "heartbeat_error", error=str(exc))
        return 1

    set_umask_from_env()
    ensure_runtime_dirs(
        build_default_paths(
            config.paths.data_dir, config.paths.output_dir, config.paths.media_dir
        )
    )
    now = now or utc_now()
    try:
        _maybe_run_daily_plan(conn, config, now, logger)
        outcome = run_heartbeat(conn, config, now=now, logger=logger)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    except Exception as exc:  # noqa: BLE001
        log_event(logger, logging.ERROR, "heartbeat_error", error=str(exc))
        return 1
    finally:
        conn.close()

    log_event(
        logger,
        logging.INFO,
        "heartbeat_finished",
        status=outcome.status,
        job_id=outcome.job_id,
        refilled=outcome.refilled,
    )
    if outcome.status in (STATUS_RETRYING, STATUS_FAILED):
        return 1
    return 0


def run_loop(sleep_seconds: int) -> int:
    while True:
        run_once()
        time.sleep(sleep_seconds)


def _maybe_run_daily_plan(conn, config: Config, now: datetime, logger: logging.Logger) -> None:
    last_run = get_setting(conn, LAST_DAILY_PLAN_KEY, None)
    interval = timedelta(hours=config.pulse.daily_plan_interval_hours)
    if isinstance(last_run, str) and parse_iso(last_run) + interval > now:
        return
    count = generate_schedule(conn, False, now=now, logger=logger)
    set_setting(conn, LAST_DAILY_PLAN_KEY, isoformat_utc(now))
    log_event(logger, logging.INFO, "daily_plan_run", count=count)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rustytablet-worker")
    parser.add_argument("--once", action="store_true", help="Run a single heartbeat and exit")
    parser.add_argument("--sleep", type=int, default=60, help="Sleep seconds between polls")
    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    if args.once:
        return run_once()
    return run_loop(args.sleep)


if __name__ == "__main__":
    raise SystemExit(main())
