from __future__ import annotations

import logging
import sqlite3
from typing import Callable

from .utils import utc_now_iso

Migration = Callable[[sqlite3.Connection], None]


def apply_migrations(conn: sqlite3.Connection) -> None:
    logger = logging.getLogger("rustytablet.migrations")
    conn.execute("BEGIN IMMEDIATE")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            applied_at TEXT NOT NULL
        )
        """
    )
    applied = {
        row[0]
        for row in conn.execute("SELECT version FROM schema_migrations").fetchall()
    }
    try:
        for version, migration in _get_migrations():
            if version in applied:
                logger.debug("migration_skipped version=%s", version)
                continue
            migration(conn)
            conn.execute(
                "INSERT OR IGNORE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                (version, utc_now_iso()),
            )
            logger.info("migration_applied version=%s", version)
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def _migration_initial_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )


def _migration_pulse_queue(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS pulse_queue (
            id TEXT PRIMARY KEY,
            scheduled_at TEXT NOT NULL,
            status TEXT NOT NULL,
            job_params_json TEXT NOT NULL,
            retry_count INTEGER NOT NULL DEFAULT 0,
            log_message TEXT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            claimed_at TEXT NULL,
            finished_at TEXT NULL
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_pulse_queue_status_scheduled "
        "ON pulse_queue(status, scheduled_at)"
    )


def _migration_pulse_logs(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS pulse_logs (
            id TEXT PRIMARY KEY,
            queue_job_id TEXT NOT NULL,
            status TEXT NOT NULL,
            result_summary_json TEXT NOT NULL,
            executed_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_pulse_logs_executed ON pulse_logs(executed_at DESC)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_pulse_logs_job ON pulse_logs(queue_job_id, executed_at)"
    )


def _migration_content_tables(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS authors (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            role TEXT NULL,
            is_ai INTEGER NOT NULL DEFAULT 1,
            bio TEXT NULL,
            created_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS posts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            excerpt TEXT NULL,
            content TEXT NOT NULL,
            author_id INTEGER NULL REFERENCES authors(id),
            category TEXT NULL,
            language TEXT NOT NULL DEFAULT 'en',
            featured_image TEXT NULL,
            source_url TEXT NULL,
            generation_mode TEXT NULL,
            nut_graph TEXT NULL,
            sidebar_json TEXT NULL,
            meta_description TEXT NULL,
            social_text TEXT NULL,
            alt_headlines_json TEXT NULL,
            chart_json TEXT NULL,
            is_published INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS post_images (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            post_id INTEGER NOT NULL REFERENCES posts(id),
            role TEXT NOT NULL,
            keyword TEXT NULL,
            tier TEXT NOT NULL,
            url TEXT NOT NULL,
            storage_path TEXT NULL,
            created_at TEXT NOT NULL
        )
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_posts_created ON posts(created_at DESC)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_post_images_post ON post_images(post_id)")


def _migration_credentials(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS credentials (
            name TEXT PRIMARY KEY,
            key_id TEXT NOT NULL,
            value_enc TEXT NOT NULL,
            value_last4 TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )


def _table_exists(conn: sqlite3.Connection, table: str) -> bool:
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name = ?", (table,)
    )
    return cursor.fetchone() is not None


def _get_migrations() -> list[tuple[str, Migration]]:
    return [
        ("001_initial_schema", _migration_initial_schema),
        ("002_pulse_queue", _migration_pulse_queue),
        ("003_pulse_logs", _migration_pulse_logs),
        ("004_content_tables", _migration_content_tables),
        ("005_credentials", _migration_credentials),
    ]
