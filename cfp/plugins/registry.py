"""In-memory plugin registry keyed by plugin name."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional, Set

from sqlalchemy.orm import Session

from cfp.core import database
from cfp.models.plugin import PluginJob
from cfp.plugins.context import create_plugin_context
from cfp.plugins.jobs.handlers import job_handlers
from cfp.plugins.types import LoadedPlugin

logger = logging.getLogger(__name__)


class PluginRegistry:
    """
    Loaded plugins and the hook index built from their handlers.

    The registry mirrors the database; it never decides whether a plugin is
    enabled on its own. Plugins keep registration order, which is also the
    order hooks run in.
    """

    def __init__(self) -> None:
        self._plugins: Dict[str, LoadedPlugin] = {}
        self._hook_index: Dict[str, Set[str]] = {}
        self._initialized = False
        self._lock = threading.RLock()

    # Registration

    def register(self, loaded: LoadedPlugin) -> None:
        with self._lock:
            if loaded.name in self._plugins:
                self._remove_from_index(loaded.name)
            self._plugins[loaded.name] = loaded
            for hook in loaded.plugin.hooks:
                self._hook_index.setdefault(hook, set()).add(loaded.name)
            if loaded.enabled:
                job_handlers.register_plugin(loaded.plugin_id, loaded.plugin.jobs)
        logger.info("Registered plugin %s v%s", loaded.name, loaded.manifest.version)

    def unregister(self, name: str) -> bool:
        with self._lock:
            loaded = self._plugins.pop(name, None)
            if loaded is None:
                return False
            self._remove_from_index(name)
            job_handlers.unregister_plugin(loaded.plugin_id)
        logger.info("Unregistered plugin %s", name)
        return True

    def _remove_from_index(self, name: str) -> None:
        for hook in list(self._hook_index):
            names = self._hook_index[hook]
            names.discard(name)
            if not names:
                del self._hook_index[hook]

    # Lookup

    def get(self, name: str) -> Optional[LoadedPlugin]:
        with self._lock:
            return self._plugins.get(name)

    def get_by_id(self, plugin_id: int) -> Optional[LoadedPlugin]:
        with self._lock:
            for loaded in self._plugins.values():
                if loaded.plugin_id == plugin_id:
                    return loaded
        return None

    def get_all(self) -> List[LoadedPlugin]:
        with self._lock:
            return list(self._plugins.values())

    def get_enabled(self) -> List[LoadedPlugin]:
        with self._lock:
            return [p for p in self._plugins.values() if p.enabled]

    def get_plugins_with_hook(self, hook: str) -> List[LoadedPlugin]:
        with self._lock:
            names = self._hook_index.get(hook, set())
            return [p for name, p in self._plugins.items() if name in names and p.enabled]

    def count(self) -> int:
        with self._lock:
            return len(self._plugins)

    def clear(self) -> None:
        with self._lock:
            for loaded in self._plugins.values():
                job_handlers.unregister_plugin(loaded.plugin_id)
            self._plugins.clear()
            self._hook_index.clear()
            self._initialized = False

    def is_initialized(self) -> bool:
        return self._initialized

    def mark_initialized(self) -> None:
        self._initialized = True

    # Lifecycle

    def enable(self, name: str) -> bool:
        """Run on_enable. Returns False, leaving the plugin disabled, if it raises."""
        loaded = self.get(name)
        if loaded is None:
            return False
        try:
            loaded.plugin.on_enable(loaded.context)
        except Exception as exc:
            logger.exception("Plugin %s failed to enable", name)
            loaded.context.logger.error("Failed to enable plugin", {"error": str(exc)})
            return False
        with self._lock:
            loaded.enabled = True
            job_handlers.register_plugin(loaded.plugin_id, loaded.plugin.jobs)
        logger.info("Enabled plugin %s", name)
        return True

    def disable(self, name: str, db: Optional[Session] = None) -> bool:
        """
        Run on_disable and stop the plugin's background work.

        A failing on_disable is logged; the plugin is disabled regardless.
        Its pending and running jobs are failed so no handler runs for a
        disabled plugin.
        """
        loaded = self.get(name)
        if loaded is None:
            return False
        try:
            loaded.plugin.on_disable(loaded.context)
        except Exception as exc:
            logger.exception("Plugin %s raised during disable", name)
            loaded.context.logger.error("Error while disabling plugin", {"error": str(exc)})
        with self._lock:
            loaded.enabled = False
            job_handlers.unregister_plugin(loaded.plugin_id)
        self._fail_open_jobs(loaded, db)
        logger.info("Disabled plugin %s", name)
        return True

    def _fail_open_jobs(self, loaded: LoadedPlugin, db: Optional[Session]) -> int:
        owns_session = db is None
        session = database.SessionLocal() if owns_session else db
        try:
            jobs = (
                session.query(PluginJob)
                .filter(
                    PluginJob.plugin_id == loaded.plugin_id,
                    PluginJob.status.in_(("pending", "running")),
                )
                .all()
            )
            now = datetime.utcnow()
            for job in jobs:
                job.status = "failed"
                job.result = {"error": f"Plugin {loaded.name} was disabled"}
                job.completed_at = now
                job.locked_at = None
                job.locked_by = None
            session.commit()
            return len(jobs)
        except Exception:
            logger.exception("Failed to cancel jobs for plugin %s", loaded.name)
            session.rollback()
            return 0
        finally:
            if owns_session:
                session.close()

    def update_config(self, name: str, config: dict) -> bool:
        """Swap in new config and a fresh context built from it."""
        loaded = self.get(name)
        if loaded is None:
            return False
        old_config = dict(loaded.context.config) if loaded.context else {}
        with self._lock:
            loaded.config = dict(config)
            loaded.context = create_plugin_context(
                loaded.plugin_id,
                loaded.name,
                loaded.config,
                loaded.manifest.permissions,
                loaded.manifest.config_schema,
            )
        if loaded.enabled:
            try:
                loaded.plugin.on_config_change(loaded.context, old_config, loaded.context.config)
            except Exception as exc:
                loaded.context.logger.error("Config change handler failed", {"error": str(exc)})
        return True


plugin_registry = PluginRegistry()
