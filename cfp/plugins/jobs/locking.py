"""Job acquisition, completion and lock maintenance."""

import logging
import random
from datetime import datetime, timedelta
from typing import Any, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from cfp.models.plugin import PluginJob
from cfp.plugins.jobs import JOB_DEFAULTS

logger = logging.getLogger(__name__)

BACKOFF_BASE_SECONDS = 5
BACKOFF_MAX_SECONDS = 300
BACKOFF_JITTER = 0.25


def calculate_backoff(attempt: int) -> float:
    """Seconds to wait before retry `attempt` (1-based), +-25% jitter."""
    delay = min(BACKOFF_BASE_SECONDS * (2 ** max(0, attempt - 1)), BACKOFF_MAX_SECONDS)
    jitter = delay * BACKOFF_JITTER * (random.random() * 2 - 1)
    return max(0.0, delay + jitter)


def acquire_jobs(db: Session, worker_id: str, limit: int = JOB_DEFAULTS["BATCH_SIZE"]) -> List[PluginJob]:
    """
    Claim runnable jobs for this worker.

    Runnable: pending, due, attempts left, and either unlocked or holding a
    lock older than the stale threshold. Lowest priority value first, then
    oldest run_at.
    """
    now = datetime.utcnow()
    stale_before = now - timedelta(seconds=JOB_DEFAULTS["STALE_LOCK_SECONDS"])
    base_query = (
        db.query(PluginJob)
        .filter(
            PluginJob.status == "pending",
            PluginJob.run_at <= now,
            PluginJob.attempts < PluginJob.max_attempts,
            or_(PluginJob.locked_at.is_(None), PluginJob.locked_at < stale_before),
        )
        .order_by(PluginJob.priority.asc(), PluginJob.run_at.asc(), PluginJob.id.asc())
        .limit(limit)
    )
    try:
        jobs = base_query.with_for_update(skip_locked=True).all()
    except Exception:
        db.rollback()
        jobs = base_query.all()

    for job in jobs:
        job.status = "running"
        job.locked_at = now
        job.locked_by = worker_id
        job.attempts = (job.attempts or 0) + 1
        job.started_at = now
    db.commit()
    return jobs


def complete_job(db: Session, job_id: int, result: Any = None) -> None:
    job = db.query(PluginJob).filter(PluginJob.id == job_id).first()
    if job is None:
        return
    job.status = "completed"
    job.result = result if isinstance(result, dict) else {"data": result}
    job.completed_at = datetime.utcnow()
    job.locked_at = None
    job.locked_by = None
    db.commit()


def fail_job(db: Session, job_id: int, error: str, is_final: bool = False) -> Optional[str]:
    """
    Record a failed attempt. Returns the resulting status.

    The job is retried with exponential backoff until its attempts are used
    up or the failure is final.
    """
    job = db.query(PluginJob).filter(PluginJob.id == job_id).first()
    if job is None:
        return None
    now = datetime.utcnow()
    job.locked_at = None
    job.locked_by = None
    if is_final or job.attempts >= job.max_attempts:
        job.status = "failed"
        job.result = {"error": error, "attempts": job.attempts}
        job.completed_at = now
    else:
        job.status = "pending"
        job.result = {"error": error, "attempts": job.attempts}
        job.run_at = now + timedelta(seconds=calculate_backoff(job.attempts))
    db.commit()
    return job.status


def recover_stale_locks(db: Session) -> int:
    """Return running jobs whose worker vanished to the queue (or fail them when out of attempts)."""
    stale_before = datetime.utcnow() - timedelta(seconds=JOB_DEFAULTS["STALE_LOCK_SECONDS"])
    jobs = (
        db.query(PluginJob)
        .filter(PluginJob.status == "running", PluginJob.locked_at < stale_before)
        .all()
    )
    for job in jobs:
        job.locked_at = None
        job.locked_by = None
        if job.attempts >= job.max_attempts:
            job.status = "failed"
            job.result = {"error": "Job lock expired after final attempt"}
            job.completed_at = datetime.utcnow()
        else:
            job.status = "pending"
    if jobs:
        db.commit()
        logger.warning("Recovered %d stale plugin job locks", len(jobs))
    return len(jobs)


def extend_lock(db: Session, job_id: int, worker_id: str) -> bool:
    job = (
        db.query(PluginJob)
        .filter(PluginJob.id == job_id, PluginJob.status == "running", PluginJob.locked_by == worker_id)
        .first()
    )
    if job is None:
        return False
    job.locked_at = datetime.utcnow()
    db.commit()
    return True


def cleanup_old_jobs(db: Session, days: int = 30) -> int:
    """Delete finished jobs older than `days`."""
    cutoff = datetime.utcnow() - timedelta(days=days)
    deleted = (
        db.query(PluginJob)
        .filter(PluginJob.status.in_(("completed", "failed")), PluginJob.completed_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted
