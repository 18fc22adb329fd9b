"""Per-plugin execution context: config, logger and permission-gated capabilities."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Optional

from cfp.core import database
from cfp.core.exceptions import EncryptionError, PluginPermissionError
from cfp.models.plugin import PluginLog
from cfp.plugins.capabilities import (
    DataCapability,
    EmailCapability,
    EventCapability,
    ReviewCapability,
    SubmissionCapability,
    UserCapability,
)
from cfp.plugins.config_encryption import decrypt_config, strip_password_fields
from cfp.plugins.jobs.queue import PluginJobQueue

logger = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def _json_safe(metadata: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if metadata is None:
        return None
    return json.loads(json.dumps(metadata, default=str))


class PluginLogger:
    """Writes to the application log and to the plugin_logs table."""

    def __init__(self, plugin_id: int, plugin_name: str, persist: bool = True):
        self.plugin_id = plugin_id
        self.plugin_name = plugin_name
        self.persist = persist
        self._logger = logging.getLogger(f"cfp.plugins.{plugin_name}")

    def _log(self, level: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        if metadata:
            self._logger.log(_LEVELS[level], "[%s] %s %s", self.plugin_name, message, metadata)
        else:
            self._logger.log(_LEVELS[level], "[%s] %s", self.plugin_name, message)
        if self.persist:
            self._store(level, message, metadata)

    def _store(self, level: str, message: str, metadata: Optional[Dict[str, Any]]) -> None:
        db = database.SessionLocal()
        try:
            db.add(PluginLog(
                plugin_id=self.plugin_id,
                level=level,
                message=str(message)[:10000],
                metadata_json=_json_safe(metadata),
            ))
            db.commit()
        except Exception as exc:
            db.rollback()
            logger.warning("Could not persist log for plugin %s: %s", self.plugin_name, exc)
        finally:
            db.close()

    def debug(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._log("debug", message, metadata)

    def info(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._log("info", message, metadata)

    def warn(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._log("warn", message, metadata)

    warning = warn

    def error(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._log("error", message, metadata)


class PluginContext:
    """Everything a plugin may touch. Capabilities check permissions per call."""

    def __init__(
        self,
        plugin_id: int,
        plugin_name: str,
        config: Dict[str, Any],
        permissions: Iterable[str],
        config_schema: Optional[Dict[str, Any]] = None,
    ):
        self.plugin_id = plugin_id
        self.plugin_name = plugin_name
        self.permissions = frozenset(permissions)
        self.config_schema = config_schema
        self.config = config
        self.logger = PluginLogger(plugin_id, plugin_name)
        self.submissions = SubmissionCapability(self)
        self.users = UserCapability(self)
        self.events = EventCapability(self)
        self.reviews = ReviewCapability(self)
        self.data = DataCapability(self)
        self.email = EmailCapability(self)
        self.jobs = PluginJobQueue(plugin_id)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def require_permission(self, permission: str) -> None:
        if permission not in self.permissions:
            raise PluginPermissionError(permission)


def create_plugin_context(
    plugin_id: int,
    plugin_name: str,
    config: Dict[str, Any],
    permissions: Iterable[str],
    config_schema: Optional[Dict[str, Any]] = None,
) -> PluginContext:
    """Build a context from stored config; password fields are decrypted here."""

    def _unreadable(key: str, exc: EncryptionError) -> None:
        logger.error("Cannot decrypt config field %s for plugin %s: %s", key, plugin_name, exc)

    return PluginContext(
        plugin_id,
        plugin_name,
        decrypt_config(config, config_schema, on_error=_unreadable),
        permissions,
        config_schema,
    )


def get_client_safe_context(
    plugin_id: int,
    plugin_name: str,
    config: Dict[str, Any],
    config_schema: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Context shape that can be handed to a browser: no secrets."""
    return {
        "plugin_id": plugin_id,
        "plugin_name": plugin_name,
        "config": strip_password_fields(config, config_schema),
        "base_url": f"/api/v1/plugins/{plugin_id}",
    }
