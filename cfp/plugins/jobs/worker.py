"""Background worker that runs queued plugin jobs."""

from __future__ import annotations

import logging
import os
import socket
import threading
import time
from typing import Optional

from sqlalchemy.orm import Session

from cfp.config import settings
from cfp.core import database
from cfp.core.exceptions import JobHandlerNotFoundError
from cfp.models.plugin import PluginJob
from cfp.plugins.jobs.handlers import job_handlers
from cfp.plugins.jobs.locking import acquire_jobs, complete_job, fail_job, recover_stale_locks
from cfp.plugins.jobs.queue import get_pending_job_count

logger = logging.getLogger(__name__)

# stale lock sweep runs once per this many loop iterations
_RECOVERY_EVERY = 12


class PluginJobWorker:
    """DB-backed plugin job worker."""

    def __init__(self, worker_id: Optional[str] = None) -> None:
        self.worker_id = worker_id or f"{socket.gethostname()}:{os.getpid()}"
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._heartbeat: float = 0.0
        self._processed_count: int = 0
        self._failed_count: int = 0
        self._lock = threading.Lock()

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="plugin-job-worker", daemon=True)
        self._thread.start()
        logger.info("Plugin job worker started (%s)", self.worker_id)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        logger.info("Plugin job worker stopped")

    def status(self) -> dict:
        return {
            "running": self.is_running(),
            "worker_id": self.worker_id,
            "last_heartbeat": self._heartbeat,
            "processed_count": self._processed_count,
            "failed_count": self._failed_count,
        }

    def queue_depth(self, db: Session) -> int:
        return get_pending_job_count(db)

    def _run_loop(self) -> None:
        iteration = 0
        while not self._stop_event.is_set():
            if iteration % _RECOVERY_EVERY == 0:
                self._recover()
            iteration += 1
            try:
                summary = self.process_jobs()
            except Exception:
                logger.exception("Plugin job batch failed")
                summary = {"processed": 0}
            self._heartbeat = time.time()
            if summary["processed"] == 0:
                self._stop_event.wait(max(0.1, settings.WORKER_POLL_INTERVAL_SECONDS))

    def _recover(self) -> None:
        db = database.SessionLocal()
        try:
            recover_stale_locks(db)
        except Exception:
            logger.exception("Stale lock recovery failed")
            db.rollback()
        finally:
            db.close()

    def process_jobs(self, limit: Optional[int] = None) -> dict:
        """Claim and run one batch. Returns counts."""
        db = database.SessionLocal()
        summary = {"processed": 0, "succeeded": 0, "failed": 0}
        try:
            jobs = acquire_jobs(db, self.worker_id, limit or settings.WORKER_BATCH_SIZE)
            for job in jobs:
                ok = self._run_job(db, job)
                summary["processed"] += 1
                summary["succeeded" if ok else "failed"] += 1
            return summary
        finally:
            with self._lock:
                self._processed_count += summary["processed"]
                self._failed_count += summary["failed"]
            db.close()

    def process_all_pending_jobs(self, max_batches: int = 100) -> dict:
        """Drain the queue (bounded), e.g. from an admin trigger or a cron hit."""
        total = {"processed": 0, "succeeded": 0, "failed": 0, "batches": 0}
        for _ in range(max_batches):
            summary = self.process_jobs()
            if summary["processed"] == 0:
                break
            total["batches"] += 1
            for key in ("processed", "succeeded", "failed"):
                total[key] += summary[key]
        return total

    def _run_job(self, db: Session, job: PluginJob) -> bool:
        # imported here: the registry builds contexts, which import the job queue
        from cfp.plugins.registry import plugin_registry

        job_id, plugin_id, job_type = job.id, job.plugin_id, job.type
        handler = job_handlers.get(plugin_id, job_type)
        loaded = plugin_registry.get_by_id(plugin_id)
        if handler is None or loaded is None or not loaded.enabled:
            error = str(JobHandlerNotFoundError(plugin_id, job_type))
            logger.warning(error)
            fail_job(db, job_id, error, is_final=True)
            return False

        try:
            result = handler(loaded.context, dict(job.payload or {}))
        except Exception as exc:
            logger.exception("Plugin job %s (%s) raised", job_id, job_type)
            loaded.context.logger.error("Job failed", {"job_id": job_id, "type": job_type, "error": str(exc)})
            db.rollback()
            fail_job(db, job_id, str(exc))
            return False

        if isinstance(result, dict) and "success" in result:
            if not result.get("success"):
                fail_job(db, job_id, str(result.get("error") or "Job reported failure"))
                return False
            result = result.get("data")

        complete_job(db, job_id, result)
        return True


plugin_job_worker = PluginJobWorker()
