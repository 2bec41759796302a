from __future__ import annotations

import argparse
import json
import logging
from typing import Any

from .config import (
    ConfigError,
    bootstrap_runtime_config,
    get_state_db_path,
    load_runtime_config,
)
from .engine.errors import GenerationError
from .engine.pipeline import generate_article
from .models import (
    MODE_MANUAL,
    MODE_NEWS_API_AI,
    MODE_SPECIFIC_RSS,
    NEWS_AUTOMATIC,
    NEWS_TAILORED,
)
from .pulse.descriptor import DEFAULT_WORD_COUNT, validate_job_descriptor
from .pulse.heartbeat import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_RETRYING,
    STATUS_SKIPPED,
    run_heartbeat,
    run_job_now,
)
from .pulse.planner import generate_schedule
from .storage import (
    QueueJobNotFound,
    QueueJobNotPending,
    delete_queue_job,
    get_schema_version,
    init_db,
    list_execution_logs,
    list_execution_logs_for_job,
    list_queue_jobs,
)
from .strategy import StrategyStore, StrategyValidationError, strategy_to_dict
from .utils import configure_logging, log_event


def _setup_logging() -> logging.Logger:
    return configure_logging("rustytablet.cli")


def _open(logger: logging.Logger):
    try:
        conn = init_db(get_state_db_path())
        config = load_runtime_config(conn)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return None, None
    return conn, config


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, default=str))


def _cmd_db_migrate(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db(get_state_db_path())
    bootstrap_runtime_config(conn)
    log_event(logger, logging.INFO, "db_migrated", schema_version=get_schema_version(conn))
    return 0


def _cmd_strategy_show(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn, _ = _open(logger)
    if conn is None:
        return 1
    strategy = StrategyStore(conn, logger).load()
    if strategy is None:
        log_event(logger, logging.ERROR, "strategy_missing", hint="run `rustytablet strategy seed`")
        return 1
    _print_json(strategy_to_dict(strategy))
    return 0


def _cmd_strategy_seed(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn, _ = _open(logger)
    if conn is None:
        return 1
    strategy = StrategyStore(conn, logger).seed(force=args.force)
    _print_json(strategy_to_dict(strategy))
    return 0


def _cmd_strategy_set(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn, _ = _open(logger)
    if conn is None:
        return 1
    try:
        if args.file:
            with open(args.file, "r", encoding="utf-8") as handle:
                updates = json.load(handle)
        else:
            updates = json.loads(args.json)
    except (OSError, json.JSONDecodeError) as exc:
        log_event(logger, logging.ERROR, "strategy_input_invalid", error=str(exc))
        return 1
    try:
        strategy = StrategyStore(conn, logger).save(updates)
    except StrategyValidationError as exc:
        for error in exc.errors:
            log_event(logger, logging.ERROR, "strategy_invalid", error=error)
        return 1
    _print_json(strategy_to_dict(strategy))
    return 0


def _cmd_plan(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn, _ = _open(logger)
    if conn is None:
        return 1
    try:
        generate_schedule(conn, args.regenerate, logger=logger)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    return 0


def _cmd_heartbeat(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn, config = _open(logger)
    if conn is None:
        return 1
    try:
        outcome = run_heartbeat(conn, config, logger=logger)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    log_event(
        logger,
        logging.INFO,
        "heartbeat_finished",
        status=outcome.status,
        job_id=outcome.job_id,
        message=outcome.message,
        refilled=outcome.refilled,
    )
    if outcome.status in (STATUS_RETRYING, STATUS_FAILED):
        return 1
    return 0


def _cmd_queue_list(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn, _ = _open(logger)
    if conn is None:
        return 1
    for job in list_queue_jobs(conn, status=args.status, limit=args.limit):
        log_event(
            logger,
            logging.INFO,
            "queue_job",
            job_id=job.id,
            status=job.status,
            scheduled_at=job.scheduled_at,
            mode=job.job_params.get("mode"),
            retry_count=job.retry_count,
            log_message=job.log_message,
        )
    return 0


def _cmd_queue_run(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn, config = _open(logger)
    if conn is None:
        return 1
    outcome = run_job_now(conn, config, args.job_id, logger=logger)
    if outcome.status == STATUS_SKIPPED:
        log_event(logger, logging.ERROR, "job_not_runnable", job_id=args.job_id)
        return 1
    if outcome.status != STATUS_COMPLETED:
        log_event(logger, logging.ERROR, "job_run_failed", job_id=args.job_id, message=outcome.message)
        return 1
    _print_json(outcome.result)
    return 0


def _cmd_queue_cancel(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn, _ = _open(logger)
    if conn is None:
        return 1
    try:
        delete_queue_job(conn, args.job_id)
    except QueueJobNotFound:
        log_event(logger, logging.ERROR, "job_not_found", job_id=args.job_id)
        return 1
    except QueueJobNotPending:
        log_event(logger, logging.ERROR, "job_not_pending", job_id=args.job_id)
        return 1
    log_event(logger, logging.INFO, "job_canceled", job_id=args.job_id)
    return 0


def _cmd_logs(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn, _ = _open(logger)
    if conn is None:
        return 1
    if args.job_id:
        entries = list_execution_logs_for_job(conn, args.job_id)
    else:
        entries = list_execution_logs(conn, limit=args.limit)
    for entry in entries:
        log_event(
            logger,
            logging.INFO,
            "execution_log",
            job_id=entry.queue_job_id,
            status=entry.status,
            executed_at=entry.executed_at,
            summary=json.dumps(entry.result_summary, sort_keys=True),
        )
    return 0


def _cmd_generate(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn, config = _open(logger)
    if conn is None:
        return 1
    job_params = _descriptor_from_args(args)
    errors = validate_job_descriptor(job_params)
    if errors:
        for error in errors:
            log_event(logger, logging.ERROR, "descriptor_invalid", error=error)
        return 1
    try:
        result = generate_article(conn, config, job_params, logger=logger)
    except GenerationError as exc:
        log_event(logger, logging.ERROR, "generation_failed", error=str(exc))
        return 1
    _print_json(result)
    return 0


def _descriptor_from_args(args: argparse.Namespace) -> dict[str, Any]:
    job_config: dict[str, Any] = {
        "target_region": args.region,
        "article_sentiment": args.sentiment,
        "word_count": args.word_count,
        "complexity": args.complexity,
        "include_sidebar": not args.no_sidebar,
        "generate_social": not args.no_social,
    }
    if args.image_source:
        job_config["preferred_image_source"] = args.image_source
    if args.mode == MODE_MANUAL:
        job_config["content_input"] = args.content or ""
    elif args.mode == MODE_SPECIFIC_RSS:
        job_config["rss_url"] = args.rss_url or ""
        if args.topic:
            job_config["topic_search"] = args.topic
    else:
        job_config["news_mode"] = NEWS_TAILORED if args.topic else NEWS_AUTOMATIC
        if args.topic:
            job_config["news_topic"] = args.topic
        if args.category:
            job_config["news_category"] = args.category
    return {"mode": args.mode, "config": job_config}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rustytablet", description="Rusty Tablet CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    db_parser = subparsers.add_parser("db", help="Database maintenance")
    db_subparsers = db_parser.add_subparsers(dest="db_command", required=True)
    db_migrate = db_subparsers.add_parser("migrate", help="Apply schema migrations")
    db_migrate.set_defaults(func=_cmd_db_migrate)

    strategy_parser = subparsers.add_parser("strategy", help="Editorial strategy")
    strategy_subparsers = strategy_parser.add_subparsers(dest="strategy_command", required=True)
    strategy_show = strategy_subparsers.add_parser("show", help="Print the stored strategy")
    strategy_show.set_defaults(func=_cmd_strategy_show)
    strategy_seed = strategy_subparsers.add_parser("seed", help="Store the default strategy")
    strategy_seed.add_argument(
        "--force", action="store_true", help="Overwrite an existing strategy"
    )
    strategy_seed.set_defaults(func=_cmd_strategy_seed)
    strategy_set = strategy_subparsers.add_parser("set", help="Merge a partial strategy")
    source = strategy_set.add_mutually_exclusive_group(required=True)
    source.add_argument("--json", help="Partial strategy as a JSON string")
    source.add_argument("--file", help="Path to a JSON file with the partial strategy")
    strategy_set.set_defaults(func=_cmd_strategy_set)

    plan_parser = subparsers.add_parser("plan", help="Plan one day of jobs")
    plan_parser.add_argument(
        "--regenerate",
        action="store_true",
        help="Replace the pending backlog instead of appending",
    )
    plan_parser.set_defaults(func=_cmd_plan)

    heartbeat_parser = subparsers.add_parser("heartbeat", help="Run one scheduler tick")
    heartbeat_parser.set_defaults(func=_cmd_heartbeat)

    queue_parser = subparsers.add_parser("queue", help="Inspect and edit the job queue")
    queue_subparsers = queue_parser.add_subparsers(dest="queue_command", required=True)
    queue_list = queue_subparsers.add_parser("list", help="List queued jobs")
    queue_list.add_argument("--status", default=None, help="Filter by status")
    queue_list.add_argument("--limit", type=int, default=100)
    queue_list.set_defaults(func=_cmd_queue_list)
    queue_run = queue_subparsers.add_parser("run", help="Run a pending job now")
    queue_run.add_argument("job_id")
    queue_run.set_defaults(func=_cmd_queue_run)
    queue_cancel = queue_subparsers.add_parser("cancel", help="Delete a pending job")
    queue_cancel.add_argument("job_id")
    queue_cancel.set_defaults(func=_cmd_queue_cancel)

    logs_parser = subparsers.add_parser("logs", help="Show execution history")
    logs_parser.add_argument("--limit", type=int, default=50)
    logs_parser.add_argument("--job-id", default=None, help="History of one job")
    logs_parser.set_defaults(func=_cmd_logs)

    generate_parser = subparsers.add_parser("generate", help="Write one article now")
    generate_parser.add_argument(
        "--mode",
        choices=[MODE_MANUAL, MODE_SPECIFIC_RSS, MODE_NEWS_API_AI],
        default=MODE_MANUAL,
    )
    generate_parser.add_argument("--content", help="Source text for MANUAL mode")
    generate_parser.add_argument("--rss-url", help="Feed URL for SPECIFIC_RSS mode")
    generate_parser.add_argument("--topic", help="Topic filter or tailored news keyword")
    generate_parser.add_argument("--category", help="News category for automatic news mode")
    generate_parser.add_argument("--region", default="Global")
    generate_parser.add_argument("--sentiment", default="Neutral")
    generate_parser.add_argument("--word-count", type=int, default=DEFAULT_WORD_COUNT)
    generate_parser.add_argument(
        "--complexity", choices=["EASY", "GENERAL", "TECHNICAL"], default="GENERAL"
    )
    generate_parser.add_argument("--image-source", default=None)
    generate_parser.add_argument("--no-sidebar", action="store_true")
    generate_parser.add_argument("--no-social", action="store_true")
    generate_parser.set_defaults(func=_cmd_generate)

    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    logger = _setup_logging()
    return args.func(args, logger)


if __name__ == "__main__":
    raise SystemExit(main())
