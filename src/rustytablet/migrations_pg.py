from __future__ import annotations

import logging

from .utils import utc_now_iso


def apply_migrations_pg(conn) -> None:
    logger = logging.getLogger("rustytablet.migrations")
    conn.execute("BEGIN")
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
    if "pg_bootstrap_001" not in applied:
        _bootstrap_schema(conn)
        conn.execute(
            "INSERT INTO schema_migrations (version, applied_at) VALUES (%s, %s)",
            ("pg_bootstrap_001", utc_now_iso()),
        )
        conn.commit()
        logger.info("migration_applied version=pg_bootstrap_001")
        conn.execute("BEGIN")
    if "pg_credentials_002" not in applied:
        _migrate_credentials(conn)
        conn.execute(
            "INSERT INTO schema_migrations (version, applied_at) VALUES (%s, %s)",
            ("pg_credentials_002", utc_now_iso()),
        )
        logger.info("migration_applied version=pg_credentials_002")
    conn.commit()


def _bootstrap_schema(conn) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
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
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS authors (
            id BIGSERIAL PRIMARY KEY,
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
            id BIGSERIAL PRIMARY KEY,
            title TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            excerpt TEXT NULL,
            content TEXT NOT NULL,
            author_id BIGINT NULL REFERENCES authors(id),
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
            id BIGSERIAL PRIMARY KEY,
            post_id BIGINT NOT NULL REFERENCES posts(id),
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


def _migrate_credentials(conn) -> None:
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
