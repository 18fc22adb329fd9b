"""Plugin administration routes (admin only)"""

import logging
import math
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from sqlalchemy import func
from sqlalchemy.orm import Session

from cfp.api.deps import client_ip, get_current_admin_user
from cfp.config import settings
from cfp.core.database import get_db
from cfp.core.exceptions import BusinessLogicError, PluginArchiveError, ResourceNotFoundError
from cfp.models.plugin import Plugin, PluginJob, PluginLog
from cfp.models.user import User
from cfp.plugins import installer, loader
from cfp.plugins.config_encryption import mask_config
from cfp.plugins.gallery import plugin_gallery
from cfp.plugins.jobs.queue import get_job_stats, list_jobs, retry_job
from cfp.plugins.jobs.worker import plugin_job_worker
from cfp.plugins.registry import plugin_registry
from cfp.schemas.plugin import (
    GalleryInstallRequest,
    PluginConfigUpdate,
    PluginLogLevel,
    PluginLogPage,
    PluginResponse,
)
from cfp.services.audit_service import audit_service

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_LOG_PAGE_SIZE = 100


def _plugin_response(plugin: Plugin) -> PluginResponse:
    data = plugin.to_dict()
    data["config"] = mask_config(plugin.config or {}, plugin.config_schema)
    data["loaded"] = plugin_registry.get(plugin.name) is not None
    return PluginResponse(**data)


def _audit(db: Session, request: Request, user: User, action: str, plugin_id: Optional[int], metadata=None) -> None:
    audit_service.safe_log_event(
        db,
        user_id=user.id,
        action=action,
        entity_type="plugin",
        entity_id=plugin_id,
        ip_address=client_ip(request),
        metadata=metadata,
    )


@router.get("")
def list_plugins(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """All installed plugins with password config fields masked"""
    plugins = db.query(Plugin).order_by(Plugin.name).all()
    return {"plugins": [_plugin_response(p) for p in plugins]}


# Static paths are declared before /{plugin_id} so they are not captured by it

@router.get("/gallery")
def get_gallery(
    force_refresh: bool = False,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Official plugin registry annotated with local install status"""
    return plugin_gallery.get_gallery_with_status(db, force_refresh=force_refresh)


@router.post("/gallery/install")
def install_from_gallery(
    data: GalleryInstallRequest,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    Download and install a plugin from the gallery

    Installing runs third-party code on this server, so the request must
    carry an explicit acknowledgement.

    Args:
        data: Gallery plugin name and the acknowledgement flag
        request: Incoming request (for the audit IP)
        current_user: Current admin user
        db: Database session

    Returns:
        Install result with `action` installed or updated
    """
    result = plugin_gallery.install(db, data.plugin_name, data.acknowledge_code_execution)
    plugin = result["plugin"]
    _audit(
        db, request, current_user, f"plugin.gallery_{result['action']}", plugin["id"],
        {"name": plugin["name"], "version": plugin["version"]},
    )
    return {"success": True, **result}


@router.post("/upload")
def upload_plugin(
    request: Request,
    file: UploadFile = File(...),
    force: bool = Form(False),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    Install a plugin from an uploaded zip or tar.gz archive

    Without `force` an existing plugin directory is a 409 conflict.
    """
    data = file.file.read(settings.PLUGIN_MAX_ARCHIVE_SIZE + 1)
    if not data:
        raise PluginArchiveError("No file uploaded")
    if len(data) > settings.PLUGIN_MAX_ARCHIVE_SIZE:
        raise PluginArchiveError("Archive exceeds maximum allowed size")

    result = installer.install_archive(db, data, source="upload", force=force)
    plugin = result["plugin"]
    _audit(
        db, request, current_user, f"plugin.upload_{result['action']}", plugin["id"],
        {"name": plugin["name"], "version": plugin["version"], "filename": file.filename},
    )
    return {"success": True, **result}


@router.post("/jobs/process")
def process_jobs(
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Run one batch of due plugin jobs synchronously"""
    result = plugin_job_worker.process_jobs(settings.WORKER_BATCH_SIZE)
    _audit(db, request, current_user, "plugin.jobs_processed", None, result)
    return {"success": True, **result}


@router.get("/{plugin_id}")
def get_plugin(
    plugin_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    plugin = loader.get_plugin_or_404(db, plugin_id)
    log_count = db.query(func.count(PluginLog.id)).filter(PluginLog.plugin_id == plugin_id).scalar() or 0
    job_count = db.query(func.count(PluginJob.id)).filter(PluginJob.plugin_id == plugin_id).scalar() or 0
    return {
        "plugin": _plugin_response(plugin),
        "log_count": log_count,
        "job_count": job_count,
        "job_stats": get_job_stats(db, plugin_id),
    }


@router.patch("/{plugin_id}")
def update_plugin_config(
    plugin_id: int,
    data: PluginConfigUpdate,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    Replace the plugin's configuration

    Password fields submitted as the mask keep their stored value.
    """
    plugin = loader.update_plugin_config(db, plugin_id, data.config)
    _audit(db, request, current_user, "plugin.config_updated", plugin.id,
           {"name": plugin.name, "fields": sorted(data.config.keys())})
    return {"success": True, "plugin": _plugin_response(plugin)}


@router.post("/{plugin_id}/enable")
def enable_plugin(
    plugin_id: int,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    plugin = loader.enable_plugin(db, plugin_id)
    _audit(db, request, current_user, "plugin.enabled", plugin.id, {"name": plugin.name})
    return {"success": True, "plugin": _plugin_response(plugin)}


@router.post("/{plugin_id}/disable")
def disable_plugin(
    plugin_id: int,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    plugin = loader.disable_plugin(db, plugin_id)
    _audit(db, request, current_user, "plugin.disabled", plugin.id, {"name": plugin.name})
    return {"success": True, "plugin": _plugin_response(plugin)}


@router.post("/{plugin_id}/reload")
def reload_plugin(
    plugin_id: int,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Re-import the plugin code from disk"""
    plugin = loader.get_plugin_or_404(db, plugin_id)
    loaded = loader.reload_plugin(db, plugin.name)
    if loaded is None:
        raise BusinessLogicError("Plugin files not found on disk")
    db.refresh(plugin)
    _audit(db, request, current_user, "plugin.reloaded", plugin.id, {"name": plugin.name})
    return {"success": True, "plugin": _plugin_response(plugin)}


@router.delete("/{plugin_id}")
def uninstall_plugin(
    plugin_id: int,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    Uninstall a plugin

    Stops it, removes its files and deletes its logs, jobs and data.
    """
    result = loader.uninstall_plugin(db, plugin_id)
    _audit(db, request, current_user, "plugin.uninstalled", plugin_id,
           {"name": result["name"], "files_removed": result["files_removed"]})
    return {"success": True, **result}


@router.get("/{plugin_id}/logs", response_model=PluginLogPage)
def get_plugin_logs(
    plugin_id: int,
    page: int = 1,
    limit: int = 50,
    level: Optional[PluginLogLevel] = None,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Paginated plugin log, newest first"""
    loader.get_plugin_or_404(db, plugin_id)
    page = max(page, 1)
    limit = max(1, min(limit, MAX_LOG_PAGE_SIZE))

    query = db.query(PluginLog).filter(PluginLog.plugin_id == plugin_id)
    if level is not None:
        query = query.filter(PluginLog.level == level.value)
    total = query.count()
    logs = (
        query.order_by(PluginLog.created_at.desc(), PluginLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return PluginLogPage(
        logs=[entry.to_dict() for entry in logs],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


@router.delete("/{plugin_id}/logs")
def clear_plugin_logs(
    plugin_id: int,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    plugin = loader.get_plugin_or_404(db, plugin_id)
    deleted = db.query(PluginLog).filter(PluginLog.plugin_id == plugin_id).delete(synchronize_session=False)
    db.commit()
    _audit(db, request, current_user, "plugin.logs_cleared", plugin.id, {"name": plugin.name, "deleted": deleted})
    return {"success": True, "deleted_count": deleted}


@router.get("/{plugin_id}/jobs")
def get_plugin_jobs(
    plugin_id: int,
    status_filter: Optional[str] = None,
    limit: int = 50,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    loader.get_plugin_or_404(db, plugin_id)
    jobs = list_jobs(db, plugin_id=plugin_id, status=status_filter, limit=max(1, min(limit, 200)))
    return {
        "jobs": [job.to_dict() for job in jobs],
        "stats": get_job_stats(db, plugin_id),
    }


@router.post("/{plugin_id}/jobs/{job_id}/retry")
def retry_plugin_job(
    plugin_id: int,
    job_id: int,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Requeue a failed job"""
    loader.get_plugin_or_404(db, plugin_id)
    job = db.query(PluginJob).filter(PluginJob.id == job_id, PluginJob.plugin_id == plugin_id).first()
    if job is None:
        raise ResourceNotFoundError("Job")
    if not retry_job(db, job_id):
        raise BusinessLogicError("Only failed jobs can be retried")
    _audit(db, request, current_user, "plugin.job_retried", plugin_id, {"job_id": job_id})
    return {"success": True, "message": "Job queued for retry"}


def plugin_summary(db: Session) -> Dict[str, Any]:
    """Counts used by the health endpoint"""
    return {
        "installed": db.query(func.count(Plugin.id)).scalar() or 0,
        "enabled": db.query(func.count(Plugin.id)).filter(Plugin.enabled.is_(True)).scalar() or 0,
        "loaded": plugin_registry.count(),
    }
