"""In-process registry of plugin job handlers, keyed plugin id -> job type."""

import threading
from typing import Callable, Dict, List, Optional


class JobHandlerRegistry:
    def __init__(self) -> None:
        self._handlers: Dict[int, Dict[str, Callable]] = {}
        self._lock = threading.Lock()

    def register(self, plugin_id: int, job_type: str, handler: Callable) -> None:
        with self._lock:
            self._handlers.setdefault(plugin_id, {})[job_type] = handler

    def register_plugin(self, plugin_id: int, handlers: Dict[str, Callable]) -> None:
        with self._lock:
            if handlers:
                self._handlers[plugin_id] = dict(handlers)
            else:
                self._handlers.pop(plugin_id, None)

    def unregister_plugin(self, plugin_id: int) -> None:
        with self._lock:
            self._handlers.pop(plugin_id, None)

    def get(self, plugin_id: int, job_type: str) -> Optional[Callable]:
        with self._lock:
            return self._handlers.get(plugin_id, {}).get(job_type)

    def types_for(self, plugin_id: int) -> List[str]:
        with self._lock:
            return sorted(self._handlers.get(plugin_id, {}))

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()


job_handlers = JobHandlerRegistry()
