from datetime import datetime, timedelta

import pytest

from cfp.models.plugin import Plugin, PluginJob
from cfp.plugins import loader
from cfp.plugins.jobs import JOB_DEFAULTS
from cfp.plugins.jobs.locking import (
    acquire_jobs,
    calculate_backoff,
    cleanup_old_jobs,
    complete_job,
    extend_lock,
    fail_job,
    recover_stale_locks,
)
from cfp.plugins.jobs.queue import get_job_stats, get_pending_job_count, list_jobs, retry_job
from cfp.plugins.jobs.worker import PluginJobWorker
from cfp.plugins.registry import plugin_registry

JOB_PLUGIN = """
def ok(ctx, payload):
    return {"echo": payload.get("value")}

def wrapped(ctx, payload):
    return {"success": True, "data": {"wrapped": True}}

def refuse(ctx, payload):
    return {"success": False, "error": "remote said no"}

def explode(ctx, payload):
    raise RuntimeError("boom")

jobs = {"ok": ok, "wrapped": wrapped, "refuse": refuse, "explode": explode}
"""


@pytest.fixture
def job_plugin(db, write_plugin):
    write_plugin("jobber", JOB_PLUGIN)
    loader.initialize_plugins(db)
    plugin = db.query(Plugin).filter(Plugin.name == "jobber").first()
    loader.enable_plugin(db, plugin.id)
    return plugin_registry.get("jobber")


def _job(db, job_id):
    db.expire_all()
    return db.query(PluginJob).filter(PluginJob.id == job_id).first()


def test_backoff_grows_and_caps():
    for _ in range(20):
        assert 3.75 <= calculate_backoff(1) <= 6.25
        assert 7.5 <= calculate_backoff(2) <= 12.5
        assert 225 <= calculate_backoff(12) <= 375


def test_successful_job_completes(db, job_plugin):
    job_id = job_plugin.context.jobs.enqueue("ok", {"value": 7})

    summary = PluginJobWorker("test-worker").process_jobs(10)

    assert summary == {"processed": 1, "succeeded": 1, "failed": 0}
    job = _job(db, job_id)
    assert job.status == "completed"
    assert job.result == {"echo": 7}
    assert job.attempts == 1
    assert job.locked_by is None


def test_success_envelope_is_unwrapped(db, job_plugin):
    job_id = job_plugin.context.jobs.enqueue("wrapped")
    PluginJobWorker("test-worker").process_jobs(10)
    assert _job(db, job_id).result == {"wrapped": True}


def test_raising_job_is_rescheduled_with_backoff(db, job_plugin):
    job_id = job_plugin.context.jobs.enqueue("explode")
    before = datetime.utcnow()

    summary = PluginJobWorker("test-worker").process_jobs(10)

    assert summary["failed"] == 1
    job = _job(db, job_id)
    assert job.status == "pending"
    assert job.attempts == 1
    assert job.result["error"] == "boom"
    assert job.run_at.replace(tzinfo=None) > before + timedelta(seconds=3)
    # not yet due
    assert PluginJobWorker("test-worker").process_jobs(10)["processed"] == 0


def test_failure_result_fails_job_after_last_attempt(db, job_plugin):
    job_id = job_plugin.context.jobs.enqueue("refuse", max_attempts=1)

    PluginJobWorker("test-worker").process_jobs(10)

    job = _job(db, job_id)
    assert job.status == "failed"
    assert job.result == {"error": "remote said no", "attempts": 1}
    assert job.completed_at is not None


def test_missing_handler_fails_immediately(db, job_plugin):
    job_id = job_plugin.context.jobs.enqueue("not-a-handler", max_attempts=5)

    PluginJobWorker("test-worker").process_jobs(10)

    job = _job(db, job_id)
    assert job.status == "failed"
    assert job.attempts == 1


def test_disabling_plugin_fails_open_jobs(db, job_plugin):
    job_id = job_plugin.context.jobs.enqueue("ok")

    loader.disable_plugin(db, job_plugin.plugin_id)

    job = _job(db, job_id)
    assert job.status == "failed"
    assert "disabled" in job.result["error"]
    assert PluginJobWorker("test-worker").process_jobs(10)["processed"] == 0


def test_priority_orders_acquisition(db, job_plugin):
    low = job_plugin.context.jobs.enqueue("ok", priority=200)
    high = job_plugin.context.jobs.enqueue("ok", priority=10)

    jobs = acquire_jobs(db, "test-worker", limit=1)

    assert [job.id for job in jobs] == [high]
    assert jobs[0].status == "running"
    assert jobs[0].locked_by == "test-worker"
    assert _job(db, low).status == "pending"


def test_future_jobs_wait(db, job_plugin):
    job_plugin.context.jobs.enqueue("ok", run_at=datetime.utcnow() + timedelta(hours=1))
    assert acquire_jobs(db, "test-worker") == []


def test_stale_locks_are_recovered(db, job_plugin):
    job_id = job_plugin.context.jobs.enqueue("ok")
    acquire_jobs(db, "dead-worker")
    job = _job(db, job_id)
    job.locked_at = datetime.utcnow() - timedelta(seconds=JOB_DEFAULTS["STALE_LOCK_SECONDS"] + 60)
    db.commit()

    assert recover_stale_locks(db) == 1

    job = _job(db, job_id)
    assert job.status == "pending"
    assert job.locked_by is None


def test_extend_lock_only_for_owner(db, job_plugin):
    job_id = job_plugin.context.jobs.enqueue("ok")
    acquire_jobs(db, "worker-a")
    assert extend_lock(db, job_id, "worker-a") is True
    assert extend_lock(db, job_id, "worker-b") is False


def test_final_failure_and_manual_retry(db, job_plugin):
    job_id = job_plugin.context.jobs.enqueue("ok")
    acquire_jobs(db, "test-worker")

    assert fail_job(db, job_id, "gave up", is_final=True) == "failed"
    assert retry_job(db, job_id) is True

    job = _job(db, job_id)
    assert job.status == "pending"
    assert job.attempts == 0
    assert job.result is None
    assert retry_job(db, job_id) is False


def test_complete_job_wraps_scalar_results(db, job_plugin):
    job_id = job_plugin.context.jobs.enqueue("ok")
    complete_job(db, job_id, 5)
    assert _job(db, job_id).result == {"data": 5}


def test_stats_and_listing(db, job_plugin):
    first = job_plugin.context.jobs.enqueue("ok")
    job_plugin.context.jobs.enqueue("explode", max_attempts=1)
    PluginJobWorker("test-worker").process_jobs(10)
    job_plugin.context.jobs.enqueue("ok")

    stats = get_job_stats(db, job_plugin.plugin_id)

    assert stats == {"pending": 1, "running": 0, "completed": 1, "failed": 1, "total": 3}
    assert get_pending_job_count(db) == 1
    assert [job.id for job in list_jobs(db, job_plugin.plugin_id, status="completed")] == [first]


def test_plugin_can_cancel_pending_job(db, job_plugin):
    job_id = job_plugin.context.jobs.enqueue("ok")
    assert job_plugin.context.jobs.get_pending_count() == 1
    assert job_plugin.context.jobs.cancel_job(job_id) is True
    assert job_plugin.context.jobs.get_job(job_id)["status"] == "failed"
    assert job_plugin.context.jobs.cancel_job(job_id) is False


def test_cleanup_removes_old_finished_jobs(db, job_plugin):
    job_id = job_plugin.context.jobs.enqueue("ok")
    complete_job(db, job_id, {})
    job = _job(db, job_id)
    job.completed_at = datetime.utcnow() - timedelta(days=45)
    db.commit()

    assert cleanup_old_jobs(db, days=30) == 1
    assert _job(db, job_id) is None


def test_worker_status_counts(db, job_plugin):
    worker = PluginJobWorker("test-worker")
    job_plugin.context.jobs.enqueue("ok")
    job_plugin.context.jobs.enqueue("explode", max_attempts=1)

    worker.process_all_pending_jobs()

    status = worker.status()
    assert status["worker_id"] == "test-worker"
    assert status["processed_count"] == 2
    assert status["failed_count"] == 1
    assert status["running"] is False
