"""Install a plugin from archive bytes (upload or gallery download)."""

import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from cfp.config import settings
from cfp.core.exceptions import PluginArchiveError, PluginConflictError, PluginExecutionError
from cfp.models.plugin import Plugin
from cfp.plugins.archive import extract_plugin, validate_archive
from cfp.plugins.config_encryption import mask_config
from cfp.plugins.loader import reload_plugin, sync_plugin_with_database

logger = logging.getLogger(__name__)


def install_archive(db: Session, data: bytes, source: str, force: bool = False) -> Dict[str, Any]:
    """
    Validate, extract, record and load a plugin archive.

    New plugins are recorded disabled. Reinstalling over an existing plugin
    keeps its enabled flag and config; the fresh code is loaded straight away.
    """
    if len(data) > settings.PLUGIN_MAX_ARCHIVE_SIZE:
        raise PluginArchiveError("Archive exceeds maximum allowed size")

    validation = validate_archive(data)
    if not validation.valid or validation.manifest is None:
        raise PluginArchiveError(validation.errors or ["Unrecognised archive"])

    name = validation.manifest.name
    existing = db.query(Plugin).filter(Plugin.name == name).first()

    result = extract_plugin(data, force=force)
    if result.conflict:
        existing_plugin = None
        if existing is not None:
            existing_plugin = {
                "id": existing.id,
                "name": existing.name,
                "version": existing.version,
                "enabled": existing.enabled,
            }
        raise PluginConflictError(name, existing_plugin)
    if not result.success:
        raise PluginExecutionError(result.error or "Plugin extraction failed")

    plugin = sync_plugin_with_database(db, result.manifest, result.plugin_path, source)
    action = "updated" if existing is not None else "installed"

    load_error = None
    try:
        reload_plugin(db, name)
    except Exception as exc:
        # files and row are in place; the admin can fix and reload
        logger.exception("Installed plugin %s but could not load it", name)
        load_error = str(exc)

    db.refresh(plugin)
    logger.info("Plugin %s %s from %s (v%s)", name, action, source, plugin.version)
    payload = plugin.to_dict()
    payload["config"] = mask_config(plugin.config, plugin.config_schema)
    return {"action": action, "plugin": payload, "load_error": load_error}
