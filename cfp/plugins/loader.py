"""
Plugin discovery, import and lifecycle.

The database row is the source of truth for whether a plugin is enabled;
the registry follows it. Every lifecycle function updates the row first and
then the registry, reverting the row when the plugin itself refuses to start.
"""

from __future__ import annotations

import importlib
import importlib.util
import json
import logging
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from cfp.core.exceptions import (
    BusinessLogicError,
    PluginExecutionError,
    PluginManifestError,
    PluginNotFoundError,
    PluginStateError,
)
from cfp.models.plugin import Plugin, PluginData, PluginJob, PluginLog
from cfp.plugins.archive import get_plugins_dir, remove_plugin_files
from cfp.plugins.config_encryption import encrypt_config
from cfp.plugins.context import create_plugin_context
from cfp.plugins.registry import plugin_registry
from cfp.plugins.types import PLUGIN_NAME_PATTERN, LoadedPlugin, PluginManifest, PluginModule

logger = logging.getLogger(__name__)

ENTRY_MODULES = ("__init__.py", "plugin.py")
MODULE_PREFIX = "cfp_plugin_"


def load_manifest(plugin_dir: Path) -> PluginManifest:
    manifest_path = plugin_dir / "manifest.json"
    if not manifest_path.is_file():
        raise PluginManifestError(f"manifest.json not found in {plugin_dir.name}")
    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise PluginManifestError("manifest.json contains invalid JSON")

    manifest = PluginManifest.from_dict(data)
    if manifest.name != plugin_dir.name:
        raise PluginManifestError(
            f"Plugin directory '{plugin_dir.name}' does not match manifest name '{manifest.name}'"
        )
    return manifest


def scan_plugins_directory() -> List[Path]:
    """Plugin directories in name order; hidden, private and manifest-less ones are skipped."""
    plugins_dir = get_plugins_dir()
    if not plugins_dir.is_dir():
        return []
    return [
        entry for entry in sorted(plugins_dir.iterdir())
        if entry.is_dir()
        and not entry.name.startswith((".", "_"))
        and (entry / "manifest.json").is_file()
    ]


def _module_name(plugin_name: str) -> str:
    return MODULE_PREFIX + plugin_name.replace("-", "_")


def _forget_module(plugin_name: str) -> None:
    module_name = _module_name(plugin_name)
    for key in [k for k in sys.modules if k == module_name or k.startswith(module_name + ".")]:
        del sys.modules[key]


def import_plugin_module(plugin_dir: Path, plugin_name: str) -> ModuleType:
    """Import the entry module fresh from disk under a private module name."""
    entry = next((plugin_dir / name for name in ENTRY_MODULES if (plugin_dir / name).is_file()), None)
    if entry is None:
        raise PluginManifestError(
            f"Plugin {plugin_name} has no entry module (expected {' or '.join(ENTRY_MODULES)})"
        )

    module_name = _module_name(plugin_name)
    _forget_module(plugin_name)
    importlib.invalidate_caches()

    search_locations = [str(plugin_dir)] if entry.name == "__init__.py" else None
    spec = importlib.util.spec_from_file_location(
        module_name, entry, submodule_search_locations=search_locations
    )
    if spec is None or spec.loader is None:
        raise PluginManifestError(f"Cannot import plugin {plugin_name} from {entry}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception:
        _forget_module(plugin_name)
        raise
    return module


def _default_config(schema: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    properties = (schema or {}).get("properties") or {}
    return {
        key: prop["default"]
        for key, prop in properties.items()
        if isinstance(prop, dict) and "default" in prop
    }


def sync_plugin_with_database(
    db: Session,
    manifest: PluginManifest,
    install_path: str,
    source: Optional[str] = None,
) -> Plugin:
    """Create the plugin row (disabled) or refresh its metadata from the manifest."""
    plugin = db.query(Plugin).filter(Plugin.name == manifest.name).first()
    if plugin is None:
        plugin = Plugin(
            name=manifest.name,
            display_name=manifest.display_name,
            version=manifest.version,
            api_version=manifest.api_version,
            description=manifest.description,
            author=manifest.author,
            homepage=manifest.homepage,
            source=source or "local",
            install_path=install_path,
            enabled=False,
            installed=True,
            permissions=list(manifest.permissions),
            hooks=list(manifest.hooks),
            config=_default_config(manifest.config_schema),
            config_schema=manifest.config_schema,
        )
        db.add(plugin)
        db.commit()
        db.refresh(plugin)
        logger.info("Registered plugin %s v%s in database", manifest.name, manifest.version)
        return plugin

    updates = {
        "display_name": manifest.display_name,
        "version": manifest.version,
        "api_version": manifest.api_version,
        "description": manifest.description,
        "author": manifest.author,
        "homepage": manifest.homepage,
        "install_path": install_path,
        "permissions": list(manifest.permissions),
        "hooks": list(manifest.hooks),
        "config_schema": manifest.config_schema,
        "installed": True,
    }
    if source:
        updates["source"] = source
    changed = {key: value for key, value in updates.items() if getattr(plugin, key) != value}
    if changed:
        previous_version = plugin.version
        for key, value in changed.items():
            setattr(plugin, key, value)
        db.commit()
        db.refresh(plugin)
        if "version" in changed:
            logger.info("Plugin %s updated %s -> %s", plugin.name, previous_version, plugin.version)
    return plugin


def load_plugin_from_directory(db: Session, plugin_dir: Path, source: Optional[str] = None) -> LoadedPlugin:
    """Sync, import and register one plugin; starts it if the database says enabled."""
    manifest = load_manifest(plugin_dir)
    row = sync_plugin_with_database(db, manifest, str(plugin_dir), source)
    module = import_plugin_module(plugin_dir, manifest.name)

    loaded = LoadedPlugin(
        plugin=PluginModule(module),
        manifest=manifest,
        context=create_plugin_context(
            row.id, manifest.name, row.config or {}, manifest.permissions, manifest.config_schema
        ),
        plugin_id=row.id,
        enabled=False,
        config=dict(row.config or {}),
        path=str(plugin_dir),
    )
    plugin_registry.register(loaded)

    if row.enabled and not plugin_registry.enable(manifest.name):
        logger.error("Plugin %s is enabled in the database but failed to start", manifest.name)
    return loaded


def initialize_plugins(db: Session, force: bool = False) -> Dict[str, Any]:
    """Load every plugin on disk. One broken plugin does not stop the rest."""
    if plugin_registry.is_initialized() and not force:
        return {"loaded": [p.name for p in plugin_registry.get_all()], "failed": {}}

    loaded: List[str] = []
    failed: Dict[str, str] = {}
    for plugin_dir in scan_plugins_directory():
        try:
            load_plugin_from_directory(db, plugin_dir)
            loaded.append(plugin_dir.name)
        except Exception as exc:
            db.rollback()
            logger.exception("Failed to load plugin from %s", plugin_dir)
            failed[plugin_dir.name] = str(exc)

    plugin_registry.mark_initialized()
    logger.info("Plugins initialized: %d loaded, %d failed", len(loaded), len(failed))
    return {"loaded": loaded, "failed": failed}


def load_single_plugin(db: Session, name: str, source: Optional[str] = None) -> Optional[LoadedPlugin]:
    """Load a plugin by name unless already registered. None when not on disk."""
    if not PLUGIN_NAME_PATTERN.match(name or ""):
        return None
    existing = plugin_registry.get(name)
    if existing is not None:
        return existing
    plugin_dir = get_plugins_dir() / name
    if not (plugin_dir / "manifest.json").is_file():
        return None
    return load_plugin_from_directory(db, plugin_dir, source)


def unload_plugin(name: str) -> bool:
    removed = plugin_registry.unregister(name)
    _forget_module(name)
    return removed


def reload_plugin(db: Session, name: str, source: Optional[str] = None) -> Optional[LoadedPlugin]:
    """Replace the registered instance with fresh code from disk."""
    current = plugin_registry.get(name)
    if current is not None and current.enabled:
        try:
            current.plugin.on_disable(current.context)
        except Exception as exc:
            current.context.logger.error("Error while stopping plugin for reload", {"error": str(exc)})
    unload_plugin(name)
    return load_single_plugin(db, name, source)


def get_plugin_or_404(db: Session, plugin_id: int) -> Plugin:
    plugin = db.query(Plugin).filter(Plugin.id == plugin_id).first()
    if plugin is None:
        raise PluginNotFoundError()
    return plugin


def enable_plugin(db: Session, plugin_id: int) -> Plugin:
    plugin = get_plugin_or_404(db, plugin_id)
    if plugin.enabled:
        raise PluginStateError("Plugin is already enabled")

    plugin.enabled = True
    db.commit()

    def _revert(reason: str) -> None:
        plugin.enabled = False
        db.commit()
        raise PluginExecutionError(reason)

    loaded = plugin_registry.get(plugin.name)
    if loaded is None:
        try:
            # enabled in the database already, so loading also starts it
            loaded = load_single_plugin(db, plugin.name)
        except Exception as exc:
            logger.exception("Failed to load plugin %s for enabling", plugin.name)
            _revert(f"Plugin could not be loaded: {exc}")
        if loaded is None or not loaded.enabled:
            _revert("Plugin failed to enable. Check plugin logs for details.")
    elif not loaded.enabled and not plugin_registry.enable(plugin.name):
        _revert("Plugin failed to enable. Check plugin logs for details.")

    db.refresh(plugin)
    return plugin


def disable_plugin(db: Session, plugin_id: int) -> Plugin:
    plugin = get_plugin_or_404(db, plugin_id)
    if not plugin.enabled:
        raise PluginStateError("Plugin is already disabled")

    plugin.enabled = False
    db.commit()
    if plugin_registry.get(plugin.name) is not None:
        plugin_registry.disable(plugin.name, db)
    db.refresh(plugin)
    return plugin


_SCHEMA_TYPES = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


def validate_config(config: Dict[str, Any], schema: Optional[Dict[str, Any]]) -> List[str]:
    """Check config against the manifest's configSchema (type, required, enum)."""
    if not isinstance(config, dict):
        return ["Config must be an object"]
    if not schema:
        return []

    errors: List[str] = []
    properties = schema.get("properties") or {}
    for key in schema.get("required") or []:
        if config.get(key) in (None, ""):
            errors.append(f"Missing required field: {key}")

    for key, value in config.items():
        prop = properties.get(key)
        if prop is None:
            if schema.get("additionalProperties") is False:
                errors.append(f"Unknown field: {key}")
            continue
        if value is None:
            continue
        expected = _SCHEMA_TYPES.get(prop.get("type"))
        # bool is an int subclass; reject it for numeric fields
        if expected and (not isinstance(value, expected) or (isinstance(value, bool) and bool not in expected)):
            errors.append(f"Field {key} must be of type {prop.get('type')}")
            continue
        if "enum" in prop and value not in prop["enum"]:
            errors.append(f"Field {key} must be one of: {', '.join(map(str, prop['enum']))}")
    return errors


def update_plugin_config(db: Session, plugin_id: int, config: Dict[str, Any]) -> Plugin:
    plugin = get_plugin_or_404(db, plugin_id)
    errors = validate_config(config, plugin.config_schema)
    if errors:
        raise BusinessLogicError("Invalid plugin configuration", details={"errors": errors})

    stored = encrypt_config(config, plugin.config_schema, existing=plugin.config or {})
    plugin.config = stored
    db.commit()
    db.refresh(plugin)
    plugin_registry.update_config(plugin.name, stored)
    logger.info("Updated config for plugin %s", plugin.name)
    return plugin


def uninstall_plugin(db: Session, plugin_id: int) -> Dict[str, Any]:
    """
    Remove a plugin completely.

    Failures while stopping the plugin or deleting its files are reported as
    warnings; the database cleanup always runs so the plugin is gone from the
    platform even if stray files remain on disk.
    """
    plugin = get_plugin_or_404(db, plugin_id)
    name = plugin.name
    warnings: List[str] = []

    if plugin.enabled and plugin_registry.get(name) is not None:
        try:
            plugin_registry.disable(name, db)
        except Exception as exc:
            logger.exception("Error disabling plugin %s during uninstall", name)
            warnings.append(f"Failed to disable plugin cleanly: {exc}")
    unload_plugin(name)

    files_removed = False
    try:
        files_removed = remove_plugin_files(name)
    except Exception as exc:
        logger.warning("Could not remove files for plugin %s: %s", name, exc)
        warnings.append(f"Failed to remove plugin files: {exc}")

    db.query(PluginLog).filter(PluginLog.plugin_id == plugin_id).delete(synchronize_session=False)
    db.query(PluginJob).filter(PluginJob.plugin_id == plugin_id).delete(synchronize_session=False)
    db.query(PluginData).filter(PluginData.plugin_id == plugin_id).delete(synchronize_session=False)
    db.delete(plugin)
    db.commit()
    logger.info("Uninstalled plugin %s", name)
    return {"name": name, "files_removed": files_removed, "warnings": warnings}
