import io
import json
import zipfile
from types import SimpleNamespace

import pytest
from fastapi import UploadFile

from cfp.api.v1 import admin_plugins, plugins as plugin_routes
from cfp.core.exceptions import (
    BusinessLogicError,
    PluginArchiveError,
    PluginConflictError,
    PluginExecutionError,
    ResourceNotFoundError,
)
from cfp.models.audit import ActivityLog
from cfp.models.plugin import Plugin, PluginJob, PluginLog
from cfp.plugins import loader
from cfp.plugins.config_encryption import PASSWORD_PLACEHOLDER
from cfp.plugins.registry import plugin_registry
from cfp.schemas.plugin import PluginActionRequest, PluginConfigUpdate, PluginLogLevel

from conftest import manifest_for

ACTION_PLUGIN = """
def echo(ctx, params):
    return {"echo": params.get("value"), "plugin": ctx.plugin_name}

def fail(ctx, params):
    raise RuntimeError("action exploded")

actions = {"echo": echo, "fail": fail}
"""

SCHEMA = {"type": "object", "properties": {"token": {"type": "string", "format": "password"}}}


def _request():
    return SimpleNamespace(client=SimpleNamespace(host="127.0.0.1"))


@pytest.fixture
def admin(make_user):
    return make_user("admin@example.com", role="ADMIN")


@pytest.fixture
def installed(db, write_plugin):
    write_plugin("actor", ACTION_PLUGIN, configSchema=SCHEMA)
    loader.initialize_plugins(db)
    return db.query(Plugin).filter(Plugin.name == "actor").first()


def _zip(name, code=""):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("manifest.json", json.dumps(manifest_for(name)))
        archive.writestr("__init__.py", code)
    return buffer.getvalue()


def _actions(db):
    return [entry.action for entry in db.query(ActivityLog).order_by(ActivityLog.id)]


def test_list_masks_password_fields(db, admin, installed):
    loader.update_plugin_config(db, installed.id, {"token": "s3cret"})

    result = admin_plugins.list_plugins(current_user=admin, db=db)

    [plugin] = result["plugins"]
    assert plugin.config == {"token": PASSWORD_PLACEHOLDER}
    assert plugin.loaded is True


def test_enable_disable_are_audited(db, admin, installed):
    enabled = admin_plugins.enable_plugin(installed.id, request=_request(), current_user=admin, db=db)
    assert enabled["plugin"].enabled is True

    disabled = admin_plugins.disable_plugin(installed.id, request=_request(), current_user=admin, db=db)
    assert disabled["plugin"].enabled is False

    assert _actions(db) == ["plugin.enabled", "plugin.disabled"]
    entry = db.query(ActivityLog).first()
    assert entry.entity_type == "plugin"
    assert entry.entity_id == str(installed.id)
    assert entry.ip_address == "127.0.0.1"


def test_update_config_keeps_masked_secret(db, admin, installed):
    admin_plugins.update_plugin_config(
        installed.id, PluginConfigUpdate(config={"token": "s3cret"}), request=_request(), current_user=admin, db=db
    )
    result = admin_plugins.update_plugin_config(
        installed.id, PluginConfigUpdate(config={"token": PASSWORD_PLACEHOLDER}), request=_request(),
        current_user=admin, db=db,
    )

    assert result["plugin"].config == {"token": PASSWORD_PLACEHOLDER}
    assert plugin_registry.get("actor").context.config["token"] == "s3cret"


def test_logs_are_paginated_and_filtered(db, admin, installed):
    ctx = plugin_registry.get("actor").context
    for i in range(5):
        ctx.logger.info(f"info {i}")
    ctx.logger.error("bad thing")

    page = admin_plugins.get_plugin_logs(installed.id, page=1, limit=4, level=None, current_user=admin, db=db)
    assert page.total == 6
    assert page.total_pages == 2
    assert len(page.logs) == 4
    assert page.logs[0]["message"] == "bad thing"

    second = admin_plugins.get_plugin_logs(installed.id, page=2, limit=4, level=None, current_user=admin, db=db)
    assert len(second.logs) == 2

    errors = admin_plugins.get_plugin_logs(
        installed.id, page=1, limit=500, level=PluginLogLevel.ERROR, current_user=admin, db=db
    )
    assert errors.limit == 100
    assert [log["message"] for log in errors.logs] == ["bad thing"]


def test_empty_log_has_zero_pages(db, admin, installed):
    page = admin_plugins.get_plugin_logs(installed.id, page=1, limit=50, level=None, current_user=admin, db=db)
    assert (page.total, page.total_pages, page.logs) == (0, 0, [])


def test_clear_logs(db, admin, installed):
    plugin_registry.get("actor").context.logger.info("one")

    result = admin_plugins.clear_plugin_logs(installed.id, request=_request(), current_user=admin, db=db)

    assert result == {"success": True, "deleted_count": 1}
    assert db.query(PluginLog).count() == 0


def test_plugin_detail_counts(db, admin, installed):
    ctx = plugin_registry.get("actor").context
    ctx.logger.info("hello")
    ctx.jobs.enqueue("anything")

    detail = admin_plugins.get_plugin(installed.id, current_user=admin, db=db)

    assert detail["log_count"] == 1
    assert detail["job_count"] == 1
    assert detail["job_stats"]["pending"] == 1


def test_retry_only_failed_jobs(db, admin, installed):
    job_id = plugin_registry.get("actor").context.jobs.enqueue("anything")

    with pytest.raises(BusinessLogicError):
        admin_plugins.retry_plugin_job(installed.id, job_id, request=_request(), current_user=admin, db=db)

    job = db.get(PluginJob, job_id)
    job.status = "failed"
    db.commit()
    result = admin_plugins.retry_plugin_job(installed.id, job_id, request=_request(), current_user=admin, db=db)
    assert result["success"] is True

    with pytest.raises(ResourceNotFoundError):
        admin_plugins.retry_plugin_job(installed.id, 999, request=_request(), current_user=admin, db=db)


def test_reload_missing_files(db, admin, installed, plugins_dir):
    import shutil

    shutil.rmtree(plugins_dir / "actor")
    with pytest.raises(BusinessLogicError):
        admin_plugins.reload_plugin(installed.id, request=_request(), current_user=admin, db=db)


def test_uninstall_route(db, admin, installed, plugins_dir):
    result = admin_plugins.uninstall_plugin(installed.id, request=_request(), current_user=admin, db=db)

    assert result["success"] is True
    assert result["files_removed"] is True
    assert db.query(Plugin).count() == 0
    assert _actions(db) == ["plugin.uninstalled"]


def test_upload_installs_then_conflicts(db, admin, plugins_dir):
    upload = UploadFile(file=io.BytesIO(_zip("uploaded")), filename="uploaded.zip")
    result = admin_plugins.upload_plugin(request=_request(), file=upload, force=False, current_user=admin, db=db)

    assert result["action"] == "installed"
    assert result["plugin"]["source"] == "upload"
    assert plugin_registry.get("uploaded") is not None

    again = UploadFile(file=io.BytesIO(_zip("uploaded")), filename="uploaded.zip")
    with pytest.raises(PluginConflictError) as excinfo:
        admin_plugins.upload_plugin(request=_request(), file=again, force=False, current_user=admin, db=db)
    assert excinfo.value.status_code == 409

    forced = UploadFile(file=io.BytesIO(_zip("uploaded", "VERSION = 2\n")), filename="uploaded.zip")
    result = admin_plugins.upload_plugin(request=_request(), file=forced, force=True, current_user=admin, db=db)
    assert result["action"] == "updated"
    assert plugin_registry.get("uploaded").plugin.module.VERSION == 2
    assert _actions(db) == ["plugin.upload_installed", "plugin.upload_updated"]


def test_upload_rejects_empty_and_invalid_files(db, admin, plugins_dir):
    empty = UploadFile(file=io.BytesIO(b""), filename="empty.zip")
    with pytest.raises(PluginArchiveError):
        admin_plugins.upload_plugin(request=_request(), file=empty, force=False, current_user=admin, db=db)

    junk = UploadFile(file=io.BytesIO(b"definitely not an archive"), filename="junk.zip")
    with pytest.raises(PluginArchiveError):
        admin_plugins.upload_plugin(request=_request(), file=junk, force=False, current_user=admin, db=db)


def test_action_runs_on_enabled_plugin(db, admin, installed):
    loader.enable_plugin(db, installed.id)

    result = plugin_routes.run_plugin_action(
        installed.id, "echo", request=_request(), data=PluginActionRequest(params={"value": 3}),
        current_user=admin, db=db,
    )

    assert result == {"success": True, "result": {"echo": 3, "plugin": "actor"}}
    assert _actions(db)[-1] == "plugin.action_invoked"


def test_action_requires_enabled_plugin(db, admin, installed):
    with pytest.raises(BusinessLogicError):
        plugin_routes.run_plugin_action(
            installed.id, "echo", request=_request(), data=PluginActionRequest(), current_user=admin, db=db
        )


def test_action_refused_when_plugin_failed_to_start(db, admin, write_plugin):
    write_plugin("stalled", (
        "def on_enable(ctx):\n"
        "    raise RuntimeError('no connection')\n"
        "actions = {'ping': lambda ctx, params: 'pong'}\n"
    ))
    loader.initialize_plugins(db)
    row = db.query(Plugin).filter(Plugin.name == "stalled").first()
    row.enabled = True
    db.commit()
    loader.reload_plugin(db, "stalled")
    assert plugin_registry.get("stalled").enabled is False

    with pytest.raises(BusinessLogicError) as excinfo:
        plugin_routes.run_plugin_action(
            row.id, "ping", request=_request(), data=PluginActionRequest(), current_user=admin, db=db
        )
    assert excinfo.value.message == "Plugin is not enabled"


def test_unknown_action_is_not_found(db, admin, installed):
    loader.enable_plugin(db, installed.id)
    with pytest.raises(ResourceNotFoundError):
        plugin_routes.run_plugin_action(
            installed.id, "nope", request=_request(), data=PluginActionRequest(), current_user=admin, db=db
        )


def test_failing_action_is_logged(db, admin, installed):
    loader.enable_plugin(db, installed.id)

    with pytest.raises(PluginExecutionError) as excinfo:
        plugin_routes.run_plugin_action(
            installed.id, "fail", request=_request(), data=PluginActionRequest(), current_user=admin, db=db
        )

    assert "action exploded" in excinfo.value.message
    assert db.query(PluginLog).filter(PluginLog.message == "Action fail failed").count() == 1


def test_client_context_hides_secrets(db, admin, installed):
    loader.update_plugin_config(db, installed.id, {"token": "s3cret"})
    context = plugin_routes.get_plugin_context(installed.id, current_user=admin, db=db)
    assert context["config"] == {}
    assert context["plugin_name"] == "actor"


def test_plugin_summary(db, installed):
    loader.enable_plugin(db, installed.id)
    assert admin_plugins.plugin_summary(db) == {"installed": 1, "enabled": 1, "loaded": 1}
