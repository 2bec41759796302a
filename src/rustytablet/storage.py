from __future__ import annotations

import json
import uuid
from typing import Any, Iterable

from .db import DBConn, connect_db
from .models import (
    ACTIVE_JOB_STATUSES,
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PENDING,
    JOB_PROCESSING,
    ExecutionLogEntry,
    QueueJob,
)
from .utils import isoformat_utc, json_dumps, parse_iso, utc_now_iso

_JOB_COLUMNS = (
    "id, scheduled_at, status, job_params_json, retry_count, log_message, "
    "created_at, updated_at, claimed_at, finished_at"
)


class QueueJobNotFound(LookupError):
    pass


class QueueJobNotPending(ValueError):
    pass


def init_db(path: str) -> DBConn:
    return connect_db(path)


def get_setting(conn: Any, key: str, default: object) -> object:
    cursor = conn.execute("SELECT value FROM settings WHERE key = ?", (key,))
    row = cursor.fetchone()
    if not row:
        return default
    try:
        return json.loads(row[0])
    except json.JSONDecodeError:
        return default


def set_setting(conn: Any, key: str, value: object) -> None:
    # weight maps are walked in stored order
    payload = json_dumps(value, sort_keys=False)
    now = utc_now_iso()
    conn.execute(
        """
        INSERT INTO settings (key, value, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        """,
        (key, payload, now),
    )
    conn.commit()


def get_setting_updated_at(conn: Any, key: str) -> str | None:
    cursor = conn.execute("SELECT updated_at FROM settings WHERE key = ?", (key,))
    row = cursor.fetchone()
    return row[0] if row else None


def get_schema_version(conn: Any) -> str | None:
    cursor = conn.execute("SELECT version FROM schema_migrations ORDER BY version DESC LIMIT 1")
    row = cursor.fetchone()
    return row[0] if row else None


# Queue


def enqueue_jobs(
    conn: Any, jobs: Iterable[dict[str, object]], replace_pending: bool = False
) -> list[str]:
    """Insert scheduled jobs in one transaction.

    Each item carries ``scheduled_at`` (datetime or ISO text) and
    ``job_params``. With ``replace_pending`` every PENDING job is deleted in the
    same transaction. Nothing is written if any row fails.
    """
    now = utc_now_iso()
    rows: list[tuple] = []
    job_ids: list[str] = []
    for job in jobs:
        job_id = str(job.get("id") or _new_job_id())
        rows.append(
            (
                job_id,
                _normalize_timestamp(job["scheduled_at"]),
                JOB_PENDING,
                json_dumps(job.get("job_params") or {}),
                0,
                None,
                now,
                now,
            )
        )
        job_ids.append(job_id)
    if not rows and not replace_pending:
        return []
    try:
        if replace_pending:
            conn.execute("DELETE FROM pulse_queue WHERE status = ?", (JOB_PENDING,))
        if rows:
            conn.executemany(
                """
                INSERT INTO pulse_queue
                    (id, scheduled_at, status, job_params_json, retry_count, log_message,
                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    return job_ids


def list_due_jobs(conn: Any, now_iso: str, limit: int = 1) -> list[QueueJob]:
    cursor = conn.execute(
        f"""
        SELECT {_JOB_COLUMNS}
        FROM pulse_queue
        WHERE status = ? AND scheduled_at <= ?
        ORDER BY scheduled_at ASC, id ASC
        LIMIT ?
        """,
        (JOB_PENDING, now_iso, limit),
    )
    return [_row_to_queue_job(row) for row in cursor.fetchall()]


def list_active_jobs(conn: Any, limit: int = 100) -> list[QueueJob]:
    cursor = conn.execute(
        f"""
        SELECT {_JOB_COLUMNS}
        FROM pulse_queue
        WHERE status IN (?, ?)
        ORDER BY scheduled_at ASC, id ASC
        LIMIT ?
        """,
        (*ACTIVE_JOB_STATUSES, limit),
    )
    return [_row_to_queue_job(row) for row in cursor.fetchall()]


def list_queue_jobs(conn: Any, status: str | None = None, limit: int = 100) -> list[QueueJob]:
    if status:
        cursor = conn.execute(
            f"""
            SELECT {_JOB_COLUMNS}
            FROM pulse_queue
            WHERE status = ?
            ORDER BY scheduled_at DESC
            LIMIT ?
            """,
            (status, limit),
        )
    else:
        cursor = conn.execute(
            f"SELECT {_JOB_COLUMNS} FROM pulse_queue ORDER BY scheduled_at DESC LIMIT ?",
            (limit,),
        )
    return [_row_to_queue_job(row) for row in cursor.fetchall()]


def count_pending_jobs(conn: Any) -> int:
    cursor = conn.execute("SELECT COUNT(*) FROM pulse_queue WHERE status = ?", (JOB_PENDING,))
    row = cursor.fetchone()
    return int(row[0]) if row else 0


def count_jobs_by_status(conn: Any) -> dict[str, int]:
    cursor = conn.execute("SELECT status, COUNT(*) FROM pulse_queue GROUP BY status")
    return {str(row[0]): int(row[1]) for row in cursor.fetchall()}


def get_latest_pending_job(conn: Any) -> QueueJob | None:
    cursor = conn.execute(
        f"""
        SELECT {_JOB_COLUMNS}
        FROM pulse_queue
        WHERE status = ?
        ORDER BY scheduled_at DESC
        LIMIT 1
        """,
        (JOB_PENDING,),
    )
    row = cursor.fetchone()
    return _row_to_queue_job(row) if row else None


def get_queue_job(conn: Any, job_id: str) -> QueueJob | None:
    cursor = conn.execute(f"SELECT {_JOB_COLUMNS} FROM pulse_queue WHERE id = ?", (job_id,))
    row = cursor.fetchone()
    return _row_to_queue_job(row) if row else None


def claim_job(conn: Any, job_id: str) -> QueueJob | None:
    """Move a job from PENDING to PROCESSING.

    The status check is part of the UPDATE itself, so only one caller can
    win; everyone else gets ``None``.
    """
    now = utc_now_iso()
    try:
        cursor = conn.execute(
            """
            UPDATE pulse_queue
            SET status = ?, claimed_at = ?, updated_at = ?
            WHERE id = ? AND status = ?
            """,
            (JOB_PROCESSING, now, now, job_id, JOB_PENDING),
        )
        claimed = cursor.rowcount == 1
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    if not claimed:
        return None
    return get_queue_job(conn, job_id)


def mark_job_completed(conn: Any, job_id: str, message: str | None = None) -> None:
    now = utc_now_iso()
    conn.execute(
        """
        UPDATE pulse_queue
        SET status = ?, log_message = ?, updated_at = ?, finished_at = ?
        WHERE id = ?
        """,
        (JOB_COMPLETED, message, now, now, job_id),
    )
    conn.commit()


def mark_job_failed(
    conn: Any, job_id: str, message: str, retry_count: int | None = None
) -> None:
    now = utc_now_iso()
    if retry_count is None:
        conn.execute(
            """
            UPDATE pulse_queue
            SET status = ?, log_message = ?, updated_at = ?, finished_at = ?
            WHERE id = ?
            """,
            (JOB_FAILED, message, now, now, job_id),
        )
    else:
        conn.execute(
            """
            UPDATE pulse_queue
            SET status = ?, log_message = ?, retry_count = ?, updated_at = ?, finished_at = ?
            WHERE id = ?
            """,
            (JOB_FAILED, message, retry_count, now, now, job_id),
        )
    conn.commit()


def reschedule_job_with_retry(
    conn: Any, job_id: str, scheduled_at: Any, retry_count: int, message: str
) -> None:
    now = utc_now_iso()
    conn.execute(
        """
        UPDATE pulse_queue
        SET status = ?, scheduled_at = ?, retry_count = ?, log_message = ?,
            claimed_at = NULL, updated_at = ?
        WHERE id = ?
        """,
        (JOB_PENDING, _normalize_timestamp(scheduled_at), retry_count, message, now, job_id),
    )
    conn.commit()


def update_queue_job(conn: Any, job_id: str, patch: dict[str, object]) -> QueueJob:
    assignments: list[str] = []
    params: list[object] = []
    if patch.get("scheduled_at") is not None:
        assignments.append("scheduled_at = ?")
        params.append(_normalize_timestamp(patch["scheduled_at"]))
    if patch.get("job_params") is not None:
        assignments.append("job_params_json = ?")
        params.append(json_dumps(patch["job_params"]))
    if not assignments:
        job = get_queue_job(conn, job_id)
        if job is None:
            raise QueueJobNotFound(job_id)
        return job
    assignments.append("updated_at = ?")
    params.append(utc_now_iso())
    params.extend([job_id, JOB_PENDING])
    cursor = conn.execute(
        f"UPDATE pulse_queue SET {', '.join(assignments)} WHERE id = ? AND status = ?",
        tuple(params),
    )
    updated = cursor.rowcount == 1
    conn.commit()
    job = get_queue_job(conn, job_id)
    if job is None:
        raise QueueJobNotFound(job_id)
    if not updated:
        raise QueueJobNotPending(job_id)
    return job


def delete_queue_job(conn: Any, job_id: str) -> None:
    cursor = conn.execute(
        "DELETE FROM pulse_queue WHERE id = ? AND status = ?", (job_id, JOB_PENDING)
    )
    deleted = cursor.rowcount == 1
    conn.commit()
    if deleted:
        return
    if get_queue_job(conn, job_id) is None:
        raise QueueJobNotFound(job_id)
    raise QueueJobNotPending(job_id)


def delete_pending_jobs(conn: Any) -> int:
    cursor = conn.execute("DELETE FROM pulse_queue WHERE status = ?", (JOB_PENDING,))
    count = cursor.rowcount
    conn.commit()
    return int(count or 0)


def _row_to_queue_job(row: tuple) -> QueueJob:
    (
        job_id,
        scheduled_at,
        status,
        job_params_json,
        retry_count,
        log_message,
        created_at,
        updated_at,
        claimed_at,
        finished_at,
    ) = row
    try:
        job_params = json.loads(job_params_json) if job_params_json else {}
    except json.JSONDecodeError:
        job_params = {}
    return QueueJob(
        id=job_id,
        scheduled_at=scheduled_at,
        status=status,
        job_params=job_params,
        retry_count=int(retry_count or 0),
        log_message=log_message,
        created_at=created_at,
        updated_at=updated_at,
        claimed_at=claimed_at,
        finished_at=finished_at,
    )


def queue_job_to_dict(job: QueueJob) -> dict[str, object]:
    return {
        "id": job.id,
        "scheduled_at": job.scheduled_at,
        "status": job.status,
        "job_params": job.job_params,
        "retry_count": job.retry_count,
        "log_message": job.log_message,
        "created_at": job.created_at,
        "updated_at": job.updated_at,
        "claimed_at": job.claimed_at,
        "finished_at": job.finished_at,
    }


# Execution log


def insert_execution_log(
    conn: Any,
    queue_job_id: str,
    status: str,
    result_summary: dict[str, object],
    executed_at: str | None = None,
) -> str:
    log_id = f"log_{uuid.uuid4().hex}"
    conn.execute(
        """
        INSERT INTO pulse_logs (id, queue_job_id, status, result_summary_json, executed_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (log_id, queue_job_id, status, json_dumps(result_summary), executed_at or utc_now_iso()),
    )
    conn.commit()
    return log_id


def list_execution_logs(conn: Any, limit: int = 50) -> list[ExecutionLogEntry]:
    cursor = conn.execute(
        """
        SELECT id, queue_job_id, status, result_summary_json, executed_at
        FROM pulse_logs
        ORDER BY executed_at DESC, id DESC
        LIMIT ?
        """,
        (limit,),
    )
    return [_row_to_log_entry(row) for row in cursor.fetchall()]


def list_execution_logs_for_job(conn: Any, queue_job_id: str) -> list[ExecutionLogEntry]:
    cursor = conn.execute(
        """
        SELECT id, queue_job_id, status, result_summary_json, executed_at
        FROM pulse_logs
        WHERE queue_job_id = ?
        ORDER BY executed_at ASC
        """,
        (queue_job_id,),
    )
    return [_row_to_log_entry(row) for row in cursor.fetchall()]


def _row_to_log_entry(row: tuple) -> ExecutionLogEntry:
    log_id, queue_job_id, status, summary_json, executed_at = row
    try:
        summary = json.loads(summary_json) if summary_json else {}
    except json.JSONDecodeError:
        summary = {"raw": summary_json}
    return ExecutionLogEntry(
        id=log_id,
        queue_job_id=queue_job_id,
        status=status,
        result_summary=summary,
        executed_at=executed_at,
    )


def log_entry_to_dict(entry: ExecutionLogEntry) -> dict[str, object]:
    return {
        "id": entry.id,
        "queue_id": entry.queue_job_id,
        "status": entry.status,
        "result_summary": entry.result_summary,
        "executed_at": entry.executed_at,
    }


# Generated content


def get_or_create_author(
    conn: Any, name: str, role: str | None, bio: str | None, is_ai: bool = True
) -> int:
    cursor = conn.execute("SELECT id FROM authors WHERE name = ?", (name,))
    row = cursor.fetchone()
    if row:
        return int(row[0])
    cursor = conn.execute(
        """
        INSERT INTO authors (name, role, is_ai, bio, created_at)
        VALUES (?, ?, ?, ?, ?)
        RETURNING id
        """,
        (name, role, 1 if is_ai else 0, bio, utc_now_iso()),
    )
    author_id = int(cursor.fetchone()[0])
    conn.commit()
    return author_id


def post_slug_exists(conn: Any, slug: str) -> bool:
    cursor = conn.execute("SELECT 1 FROM posts WHERE slug = ?", (slug,))
    return cursor.fetchone() is not None


def insert_post(conn: Any, post: dict[str, Any]) -> int:
    cursor = conn.execute(
        """
        INSERT INTO posts
            (title, slug, excerpt, content, author_id, category, language, featured_image,
             source_url, generation_mode, nut_graph, sidebar_json, meta_description,
             social_text, alt_headlines_json, chart_json, is_published, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        RETURNING id
        """,
        (
            post["title"],
            post["slug"],
            post.get("excerpt"),
            post["content"],
            post.get("author_id"),
            post.get("category"),
            post.get("language") or "en",
            post.get("featured_image"),
            post.get("source_url"),
            post.get("generation_mode"),
            post.get("nut_graph"),
            _dumps_or_none(post.get("sidebar_content")),
            post.get("meta_description"),
            post.get("social_text"),
            _dumps_or_none(post.get("alt_headlines")),
            _dumps_or_none(post.get("chart_data")),
            1 if post.get("is_published", True) else 0,
            post.get("created_at") or utc_now_iso(),
        ),
    )
    post_id = int(cursor.fetchone()[0])
    return post_id


def insert_post_image(
    conn: Any,
    post_id: int,
    role: str,
    tier: str,
    url: str,
    keyword: str | None = None,
    storage_path: str | None = None,
) -> None:
    conn.execute(
        """
        INSERT INTO post_images (post_id, role, keyword, tier, url, storage_path, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (post_id, role, keyword, tier, url, storage_path, utc_now_iso()),
    )


def get_post(conn: Any, post_id: int) -> dict[str, object] | None:
    cursor = conn.execute(
        """
        SELECT p.id, p.title, p.slug, p.excerpt, p.content, p.category, p.language,
               p.featured_image, p.source_url, p.generation_mode, p.nut_graph,
               p.sidebar_json, p.meta_description, p.social_text, p.alt_headlines_json,
               p.chart_json, p.is_published, p.created_at, a.name, a.role
        FROM posts p
        LEFT JOIN authors a ON a.id = p.author_id
        WHERE p.id = ?
        """,
        (post_id,),
    )
    row = cursor.fetchone()
    if not row:
        return None
    return {
        "id": row[0],
        "title": row[1],
        "slug": row[2],
        "excerpt": row[3],
        "content": row[4],
        "category": row[5],
        "language": row[6],
        "featured_image": row[7],
        "source_url": row[8],
        "generation_mode": row[9],
        "nut_graph": row[10],
        "sidebar_content": _loads_or_none(row[11]),
        "meta_description": row[12],
        "social_text": row[13],
        "alt_headlines": _loads_or_none(row[14]),
        "chart_data": _loads_or_none(row[15]),
        "is_published": bool(row[16]),
        "created_at": row[17],
        "author_name": row[18],
        "author_role": row[19],
    }


def list_post_images(conn: Any, post_id: int) -> list[dict[str, object]]:
    cursor = conn.execute(
        """
        SELECT role, keyword, tier, url, storage_path
        FROM post_images
        WHERE post_id = ?
        ORDER BY id ASC
        """,
        (post_id,),
    )
    return [
        {
            "role": row[0],
            "keyword": row[1],
            "tier": row[2],
            "url": row[3],
            "storage_path": row[4],
        }
        for row in cursor.fetchall()
    ]


def _dumps_or_none(value: object) -> str | None:
    if value is None:
        return None
    return json_dumps(value)


def _loads_or_none(value: str | None) -> object:
    if not value:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return None


def _normalize_timestamp(value: Any) -> str:
    if isinstance(value, str):
        return isoformat_utc(parse_iso(value))
    return isoformat_utc(value)


def _new_job_id() -> str:
    return f"job_{uuid.uuid4().hex}"
