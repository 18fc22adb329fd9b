"""Hook dispatch to enabled plugins."""

import logging
from typing import Any, Dict, Optional

from cfp.plugins.registry import plugin_registry
from cfp.plugins.types import HOOK_METADATA, HOOK_NAMES, get_hook_info, get_hooks_by_category  # noqa: F401

logger = logging.getLogger(__name__)


def dispatch(hook: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Run every enabled plugin's handler for `hook`, in registration order.

    A handler that returns a dict has it merged into the payload seen by the
    next handler; the final payload is returned. Handler exceptions are logged
    to the plugin's log and never reach the caller.
    """
    if hook not in HOOK_METADATA:
        logger.warning("Dispatch of unknown hook %s", hook)

    current: Dict[str, Any] = dict(payload or {})
    for loaded in plugin_registry.get_plugins_with_hook(hook):
        handler = loaded.plugin.hooks.get(hook)
        if handler is None:
            continue
        try:
            result = handler(loaded.context, dict(current))
        except Exception as exc:
            logger.exception("Plugin %s failed handling %s", loaded.name, hook)
            loaded.context.logger.error(f"Hook {hook} failed", {"error": str(exc)})
            continue
        if isinstance(result, dict):
            current.update(result)
    return current


def has_hook_handlers(hook: str) -> bool:
    return bool(plugin_registry.get_plugins_with_hook(hook))


def get_hook_handler_count(hook: str) -> int:
    return len(plugin_registry.get_plugins_with_hook(hook))
