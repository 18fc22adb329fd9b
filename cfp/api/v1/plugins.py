"""Plugin action and client-context routes"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from cfp.api.deps import client_ip, get_current_admin_user
from cfp.core.database import get_db
from cfp.core.exceptions import BusinessLogicError, PluginExecutionError, PluginNotFoundError, ResourceNotFoundError
from cfp.models.user import User
from cfp.plugins import loader
from cfp.plugins.context import get_client_safe_context
from cfp.plugins.registry import plugin_registry
from cfp.schemas.plugin import PluginActionRequest
from cfp.services.audit_service import audit_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{plugin_id}/actions/{action_name}")
def run_plugin_action(
    plugin_id: int,
    action_name: str,
    request: Request,
    data: PluginActionRequest = PluginActionRequest(),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    Invoke a named action exposed by an enabled plugin

    Args:
        plugin_id: Plugin ID
        action_name: Key in the plugin's `actions` mapping
        data: Parameters passed to the action
        current_user: Current admin user
        db: Database session

    Returns:
        Whatever the action returned
    """
    plugin = loader.get_plugin_or_404(db, plugin_id)
    if not plugin.enabled:
        raise BusinessLogicError("Plugin is not enabled")

    loaded = plugin_registry.get(plugin.name)
    if loaded is None:
        loaded = loader.load_single_plugin(db, plugin.name)
        if loaded is None:
            raise PluginNotFoundError(plugin.name)
    # enabled in the database but on_enable failed when it was loaded
    if not loaded.enabled:
        raise BusinessLogicError("Plugin is not enabled")

    actions = loaded.plugin.actions
    if not actions:
        raise BusinessLogicError("Plugin does not expose any actions")
    action = actions.get(action_name)
    if action is None:
        raise ResourceNotFoundError(f"Action '{action_name}'")

    try:
        result = action(loaded.context, dict(data.params))
    except Exception as exc:
        logger.exception("Plugin %s action %s failed", plugin.name, action_name)
        loaded.context.logger.error(f"Action {action_name} failed", {"error": str(exc)})
        raise PluginExecutionError(f"Action failed: {exc}")

    audit_service.safe_log_event(
        db,
        user_id=current_user.id,
        action="plugin.action_invoked",
        entity_type="plugin",
        entity_id=plugin.id,
        ip_address=client_ip(request),
        metadata={"name": plugin.name, "action": action_name},
    )
    return {"success": True, "result": result}


@router.get("/{plugin_id}/context")
def get_plugin_context(
    plugin_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Context safe to hand to a browser (password fields removed)"""
    plugin = loader.get_plugin_or_404(db, plugin_id)
    return get_client_safe_context(plugin.id, plugin.name, plugin.config or {}, plugin.config_schema)
