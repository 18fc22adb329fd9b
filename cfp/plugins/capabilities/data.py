"""Per-plugin key/value storage."""

import json
from typing import Any, List, Optional

from cfp.core.encryption import decrypt_string, encrypt_string
from cfp.models.plugin import PluginData
from cfp.plugins.capabilities.base import Capability

DEFAULT_NAMESPACE = "default"


class DataCapability(Capability):
    """Values are stored as JSON, optionally encrypted at rest."""

    def _query(self, db, namespace: Optional[str]):
        query = db.query(PluginData).filter(PluginData.plugin_id == self._ctx.plugin_id)
        if namespace is not None:
            query = query.filter(PluginData.namespace == namespace)
        return query

    def set(self, key: str, value: Any, namespace: str = DEFAULT_NAMESPACE, encrypted: bool = False) -> None:
        self._require("storage:write")
        serialized = json.dumps(value, default=str)
        stored = encrypt_string(serialized) if encrypted else serialized
        with self._session() as db:
            row = self._query(db, namespace).filter(PluginData.key == key).first()
            if row is None:
                row = PluginData(plugin_id=self._ctx.plugin_id, namespace=namespace, key=key)
                db.add(row)
            row.value = stored
            row.encrypted = encrypted
            db.commit()

    def get(self, key: str, namespace: str = DEFAULT_NAMESPACE) -> Any:
        self._require("storage:read")
        with self._session() as db:
            row = self._query(db, namespace).filter(PluginData.key == key).first()
            if row is None:
                return None
            raw = decrypt_string(row.value) if row.encrypted else row.value
            return json.loads(raw)

    def list(self, namespace: str = DEFAULT_NAMESPACE) -> List[str]:
        self._require("storage:read")
        with self._session() as db:
            return [row.key for row in self._query(db, namespace).order_by(PluginData.key).all()]

    def delete(self, key: str, namespace: str = DEFAULT_NAMESPACE) -> bool:
        self._require("storage:write")
        with self._session() as db:
            deleted = self._query(db, namespace).filter(PluginData.key == key).delete()
            db.commit()
            return deleted > 0

    def clear(self, namespace: Optional[str] = None) -> int:
        """Delete a namespace, or everything the plugin stored when namespace is None."""
        self._require("storage:write")
        with self._session() as db:
            deleted = self._query(db, namespace).delete()
            db.commit()
            return deleted
