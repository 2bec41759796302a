import threading
from datetime import datetime, timedelta, timezone

import pytest

from rustytablet.config import get_state_db_path
from rustytablet.storage import (
    QueueJobNotFound,
    QueueJobNotPending,
    claim_job,
    count_jobs_by_status,
    delete_pending_jobs,
    delete_queue_job,
    enqueue_jobs,
    get_queue_job,
    init_db,
    list_active_jobs,
    list_due_jobs,
    reschedule_job_with_retry,
    update_queue_job,
)
from rustytablet.utils import isoformat_utc

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
PARAMS = {"mode": "MANUAL", "config": {"content_input": "hello"}}


def _enqueue(conn, *offsets_minutes):
    jobs = [
        {"scheduled_at": NOW + timedelta(minutes=offset), "job_params": PARAMS}
        for offset in offsets_minutes
    ]
    return enqueue_jobs(conn, jobs)


def test_due_jobs_are_oldest_first(conn):
    late, early, future = _enqueue(conn, -60, -120, 60)

    due = list_due_jobs(conn, isoformat_utc(NOW), limit=10)
    assert [job.id for job in due] == [early, late]
    assert list_due_jobs(conn, isoformat_utc(NOW), limit=1)[0].id == early
    assert future not in {job.id for job in due}


def test_due_jobs_skip_non_pending(conn):
    (job_id,) = _enqueue(conn, -5)
    claim_job(conn, job_id)
    assert list_due_jobs(conn, isoformat_utc(NOW)) == []


def test_job_params_survive_storage(conn):
    (job_id,) = _enqueue(conn, 0)
    job = get_queue_job(conn, job_id)
    assert job.job_params == PARAMS
    assert job.scheduled_at == isoformat_utc(NOW)


def test_claim_is_exclusive(conn):
    (job_id,) = _enqueue(conn, -1)
    claimed = claim_job(conn, job_id)
    assert claimed is not None
    assert claimed.status == "PROCESSING"
    assert claimed.claimed_at is not None
    assert claim_job(conn, job_id) is None


def test_claim_is_exclusive_across_connections(conn):
    (job_id,) = _enqueue(conn, -1)
    barrier = threading.Barrier(4)
    results = []

    def _worker():
        worker_conn = init_db(get_state_db_path())
        try:
            barrier.wait()
            results.append(claim_job(worker_conn, job_id))
        finally:
            worker_conn.close()

    threads = [threading.Thread(target=_worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    winners = [job for job in results if job is not None]
    assert len(results) == 4
    assert len(winners) == 1


def test_reschedule_returns_job_to_pending(conn):
    (job_id,) = _enqueue(conn, -1)
    claim_job(conn, job_id)
    retry_at = NOW + timedelta(minutes=15)
    reschedule_job_with_retry(conn, job_id, retry_at, 1, "Retry 1: boom")

    job = get_queue_job(conn, job_id)
    assert job.status == "PENDING"
    assert job.retry_count == 1
    assert job.log_message == "Retry 1: boom"
    assert job.scheduled_at == isoformat_utc(retry_at)
    assert job.claimed_at is None


def test_update_only_touches_pending_jobs(conn):
    pending_id, running_id = _enqueue(conn, 10, -10)
    claim_job(conn, running_id)

    moved = update_queue_job(conn, pending_id, {"scheduled_at": NOW + timedelta(hours=3)})
    assert moved.scheduled_at == isoformat_utc(NOW + timedelta(hours=3))

    with pytest.raises(QueueJobNotPending):
        update_queue_job(conn, running_id, {"scheduled_at": NOW})
    with pytest.raises(QueueJobNotFound):
        update_queue_job(conn, "job_missing", {"scheduled_at": NOW})


def test_delete_only_pending(conn):
    pending_id, running_id = _enqueue(conn, 10, -10)
    claim_job(conn, running_id)

    delete_queue_job(conn, pending_id)
    assert get_queue_job(conn, pending_id) is None
    with pytest.raises(QueueJobNotPending):
        delete_queue_job(conn, running_id)
    with pytest.raises(QueueJobNotFound):
        delete_queue_job(conn, pending_id)


def test_active_jobs_and_bulk_delete(conn):
    _enqueue(conn, 30, 10, 20)
    (running_id,) = _enqueue(conn, -5)
    claim_job(conn, running_id)

    active = list_active_jobs(conn)
    assert [job.id for job in active][0] == running_id
    assert len(active) == 4

    assert delete_pending_jobs(conn) == 3
    assert count_jobs_by_status(conn) == {"PROCESSING": 1}
