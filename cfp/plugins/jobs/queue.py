"""Plugin-facing job queue plus admin helpers."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from cfp.core import database
from cfp.models.plugin import PluginJob, JOB_STATUSES
from cfp.plugins.jobs import JOB_DEFAULTS


class PluginJobQueue:
    """Queue scoped to one plugin; exposed as ctx.jobs."""

    def __init__(self, plugin_id: int):
        self.plugin_id = plugin_id

    def enqueue(
        self,
        job_type: str,
        payload: Optional[Dict[str, Any]] = None,
        run_at: Optional[datetime] = None,
        max_attempts: int = JOB_DEFAULTS["MAX_ATTEMPTS"],
        priority: int = JOB_DEFAULTS["PRIORITY"],
    ) -> int:
        db = database.SessionLocal()
        try:
            job = PluginJob(
                plugin_id=self.plugin_id,
                type=job_type,
                payload=payload or {},
                status="pending",
                attempts=0,
                max_attempts=max(1, max_attempts),
                priority=priority,
                run_at=run_at or datetime.utcnow(),
            )
            db.add(job)
            db.commit()
            return job.id
        finally:
            db.close()

    def get_job(self, job_id: int) -> Optional[dict]:
        db = database.SessionLocal()
        try:
            job = (
                db.query(PluginJob)
                .filter(PluginJob.id == job_id, PluginJob.plugin_id == self.plugin_id)
                .first()
            )
            return job.to_dict() if job else None
        finally:
            db.close()

    def cancel_job(self, job_id: int) -> bool:
        """Only pending jobs can be cancelled."""
        db = database.SessionLocal()
        try:
            job = (
                db.query(PluginJob)
                .filter(
                    PluginJob.id == job_id,
                    PluginJob.plugin_id == self.plugin_id,
                    PluginJob.status == "pending",
                )
                .first()
            )
            if job is None:
                return False
            job.status = "failed"
            job.result = {"cancelled": True, "error": "Job cancelled by plugin"}
            job.completed_at = datetime.utcnow()
            db.commit()
            return True
        finally:
            db.close()

    def get_pending_count(self) -> int:
        db = database.SessionLocal()
        try:
            return (
                db.query(PluginJob)
                .filter(PluginJob.plugin_id == self.plugin_id, PluginJob.status == "pending")
                .count()
            )
        finally:
            db.close()

    def get_jobs(self, status: Optional[str] = None, limit: int = 50) -> List[dict]:
        db = database.SessionLocal()
        try:
            return [job.to_dict() for job in list_jobs(db, self.plugin_id, status, limit)]
        finally:
            db.close()


def list_jobs(db: Session, plugin_id: Optional[int] = None, status: Optional[str] = None, limit: int = 50) -> List[PluginJob]:
    query = db.query(PluginJob)
    if plugin_id is not None:
        query = query.filter(PluginJob.plugin_id == plugin_id)
    if status:
        query = query.filter(PluginJob.status == status)
    return query.order_by(PluginJob.created_at.desc(), PluginJob.id.desc()).limit(limit).all()


def get_job_stats(db: Session, plugin_id: Optional[int] = None) -> Dict[str, int]:
    query = db.query(PluginJob.status, func.count(PluginJob.id))
    if plugin_id is not None:
        query = query.filter(PluginJob.plugin_id == plugin_id)
    counts = dict(query.group_by(PluginJob.status).all())
    stats = {status: int(counts.get(status, 0)) for status in JOB_STATUSES}
    stats["total"] = sum(stats.values())
    return stats


def get_pending_job_count(db: Session) -> int:
    return db.query(PluginJob).filter(PluginJob.status == "pending").count()


def retry_job(db: Session, job_id: int) -> bool:
    """Put a failed job back in the queue with a fresh attempt budget."""
    job = db.query(PluginJob).filter(PluginJob.id == job_id, PluginJob.status == "failed").first()
    if job is None:
        return False
    job.status = "pending"
    job.attempts = 0
    job.run_at = datetime.utcnow()
    job.locked_at = None
    job.locked_by = None
    job.result = None
    job.completed_at = None
    db.commit()
    return True
