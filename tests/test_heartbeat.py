from datetime import datetime, timedelta, timezone

from rustytablet.pulse import heartbeat
from rustytablet.pulse.heartbeat import run_heartbeat, run_job_now
from rustytablet.storage import (
    count_pending_jobs,
    enqueue_jobs,
    get_queue_job,
    list_execution_logs_for_job,
)
from rustytablet.strategy import StrategyStore
from rustytablet.utils import isoformat_utc

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
PARAMS = {"mode": "MANUAL", "config": {"content_input": "hello"}}


def _queue(conn, due_offset_minutes=-1):
    filler = [
        {"scheduled_at": NOW + timedelta(days=2, minutes=step), "job_params": PARAMS}
        for step in range(3)
    ]
    (job_id,) = enqueue_jobs(
        conn,
        [{"scheduled_at": NOW + timedelta(minutes=due_offset_minutes), "job_params": PARAMS}],
    )
    enqueue_jobs(conn, filler)
    return job_id


class _Recorder:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def __call__(self, job_params):
        self.calls.append(job_params)
        if self.error is not None:
            raise self.error
        return self.result


def test_due_job_completes(seeded, config):
    job_id = _queue(seeded)
    generator = _Recorder(result={"success": True, "post_id": 7, "title": "Rust Never Sleeps"})

    outcome = run_heartbeat(seeded, config, generator=generator, now=NOW)

    assert outcome.status == "completed"
    assert outcome.job_id == job_id
    assert generator.calls == [PARAMS]
    job = get_queue_job(seeded, job_id)
    assert job.status == "COMPLETED"
    assert job.finished_at is not None
    logs = list_execution_logs_for_job(seeded, job_id)
    assert [entry.status for entry in logs] == ["SUCCESS"]
    assert logs[0].result_summary == {"title": "Rust Never Sleeps", "post_id": 7}


def test_retry_until_exhausted(seeded, config):
    job_id = _queue(seeded)
    generator = _Recorder(error=RuntimeError("boom"))

    first = run_heartbeat(seeded, config, generator=generator, now=NOW)
    assert first.status == "retrying"
    job = get_queue_job(seeded, job_id)
    assert job.status == "PENDING"
    assert job.retry_count == 1
    assert job.log_message == "Retry 1: boom"
    assert job.scheduled_at == isoformat_utc(NOW + timedelta(minutes=15))

    second = run_heartbeat(seeded, config, generator=generator, now=NOW + timedelta(minutes=16))
    assert second.status == "retrying"
    assert get_queue_job(seeded, job_id).retry_count == 2

    third = run_heartbeat(seeded, config, generator=generator, now=NOW + timedelta(minutes=32))
    assert third.status == "failed"
    job = get_queue_job(seeded, job_id)
    assert job.status == "FAILED"
    assert job.retry_count == 3
    assert job.log_message == "Max retries reached. Error: boom"

    logs = list_execution_logs_for_job(seeded, job_id)
    assert [entry.status for entry in logs] == ["FAILURE"] * 3
    assert all(entry.result_summary == {"error": "boom"} for entry in logs)
    assert len(generator.calls) == 3


def test_unsuccessful_result_counts_as_failure(seeded, config):
    job_id = _queue(seeded)
    generator = _Recorder(result={"success": False, "error": "nope"})

    outcome = run_heartbeat(seeded, config, generator=generator, now=NOW)

    assert outcome.status == "retrying"
    assert get_queue_job(seeded, job_id).log_message == "Retry 1: nope"


def test_nothing_due_is_idle(seeded, config):
    _queue(seeded, due_offset_minutes=30)
    generator = _Recorder(result={"success": True})

    outcome = run_heartbeat(seeded, config, generator=generator, now=NOW)

    assert outcome.status == "idle"
    assert generator.calls == []


def test_low_queue_is_refilled(seeded, config, rng):
    generator = _Recorder(result={"success": True})

    outcome = run_heartbeat(seeded, config, generator=generator, now=NOW, rng=rng)

    assert outcome.refilled == 12
    assert outcome.status == "idle"
    assert count_pending_jobs(seeded) == 12


def test_lost_claim_is_skipped(seeded, config, monkeypatch):
    job_id = _queue(seeded)
    monkeypatch.setattr(heartbeat, "claim_job", lambda conn, candidate: None)
    generator = _Recorder(result={"success": True})

    outcome = run_heartbeat(seeded, config, generator=generator, now=NOW)

    assert outcome.status == "skipped"
    assert outcome.message == "Job not found or already processing"
    assert generator.calls == []
    assert get_queue_job(seeded, job_id).status == "PENDING"


def test_inactive_strategy_pauses_execution(seeded, config):
    job_id = _queue(seeded)
    StrategyStore(seeded).save({"is_active": False})
    generator = _Recorder(result={"success": True})

    outcome = run_heartbeat(seeded, config, generator=generator, now=NOW)

    assert outcome.status == "paused"
    assert generator.calls == []
    assert get_queue_job(seeded, job_id).status == "PENDING"


def test_run_job_now_ignores_schedule(seeded, config):
    job_id = _queue(seeded, due_offset_minutes=600)
    generator = _Recorder(result={"success": True, "post_id": 1, "title": "Early"})

    outcome = run_job_now(seeded, config, job_id, generator=generator, now=NOW)

    assert outcome.status == "completed"
    assert get_queue_job(seeded, job_id).status == "COMPLETED"


def test_run_job_now_unknown_job(seeded, config):
    outcome = run_job_now(seeded, config, "job_missing", generator=_Recorder())
    assert outcome.status == "skipped"


def test_remote_generator_when_endpoint_configured(conn, runtime_cfg, monkeypatch):
    from rustytablet.config import build_config

    runtime_cfg["engine"]["endpoint_url"] = "https://engine.example/engine/generate"
    config = build_config(runtime_cfg)
    calls = []

    def _fake_remote(cfg, job_params, logger):
        calls.append(job_params)
        return {"success": True, "post_id": 3, "title": "Remote"}

    monkeypatch.setattr(heartbeat, "call_remote_engine", _fake_remote)
    generator = heartbeat.build_generator(conn, config, logger=None)

    assert generator(PARAMS)["post_id"] == 3
    assert calls == [PARAMS]


def test_single_attempt_policy(seeded, runtime_cfg):
    from rustytablet.config import build_config

    runtime_cfg["pulse"]["max_retries"] = 1
    config = build_config(runtime_cfg)
    job_id = _queue(seeded)

    outcome = run_heartbeat(seeded, config, generator=_Recorder(error=ValueError("bad")), now=NOW)

    assert outcome.status == "failed"
    assert get_queue_job(seeded, job_id).retry_count == 1
