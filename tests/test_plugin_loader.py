import json

import pytest

from cfp.core.encryption import is_encrypted
from cfp.core.exceptions import (
    BusinessLogicError,
    PluginExecutionError,
    PluginManifestError,
    PluginNotFoundError,
    PluginStateError,
)
from cfp.models.plugin import Plugin, PluginLog
from cfp.plugins import loader
from cfp.plugins.config_encryption import PASSWORD_PLACEHOLDER
from cfp.plugins.registry import plugin_registry

from conftest import manifest_for

RECORDING_PLUGIN = """
CALLS = []

def on_enable(ctx):
    CALLS.append("enable")

def on_disable(ctx):
    CALLS.append("disable")

def on_config_change(ctx, old, new):
    CALLS.append(("config", dict(new)))
"""

SECRET_SCHEMA = {
    "type": "object",
    "properties": {
        "apiKey": {"type": "string", "format": "password"},
        "channel": {"type": "string", "default": "#cfp"},
        "retries": {"type": "integer"},
        "mode": {"type": "string", "enum": ["fast", "safe"]},
    },
    "required": ["apiKey"],
}


def _row(db, name):
    db.expire_all()
    return db.query(Plugin).filter(Plugin.name == name).first()


def test_initialize_registers_disabled_plugins(db, write_plugin):
    write_plugin("recorder", RECORDING_PLUGIN, configSchema=SECRET_SCHEMA)

    summary = loader.initialize_plugins(db)

    assert summary == {"loaded": ["recorder"], "failed": {}}
    row = _row(db, "recorder")
    assert row.enabled is False
    assert row.source == "local"
    assert row.config == {"channel": "#cfp"}
    loaded = plugin_registry.get("recorder")
    assert loaded is not None and loaded.enabled is False
    assert loaded.plugin.module.CALLS == []


def test_broken_plugin_does_not_stop_others(db, write_plugin):
    write_plugin("broken", "def oops(:\n")
    write_plugin("healthy", "")

    summary = loader.initialize_plugins(db)

    assert summary["loaded"] == ["healthy"]
    assert "broken" in summary["failed"]


def test_initialize_is_idempotent_without_force(db, write_plugin):
    write_plugin("recorder", RECORDING_PLUGIN)
    loader.initialize_plugins(db)
    write_plugin("latecomer", "")

    assert loader.initialize_plugins(db)["loaded"] == ["recorder"]
    assert sorted(loader.initialize_plugins(db, force=True)["loaded"]) == ["latecomer", "recorder"]


def test_directory_must_match_manifest_name(plugins_dir):
    plugin_dir = plugins_dir / "renamed"
    plugin_dir.mkdir()
    (plugin_dir / "manifest.json").write_text(json.dumps(manifest_for("original-name")))

    with pytest.raises(PluginManifestError):
        loader.load_manifest(plugin_dir)


def test_hidden_directories_are_skipped(plugins_dir, write_plugin):
    write_plugin("visible", "")
    (plugins_dir / ".staging-visible-1234").mkdir()
    (plugins_dir / "_disabled").mkdir()

    assert [p.name for p in loader.scan_plugins_directory()] == ["visible"]


def test_enable_and_disable_cycle(db, write_plugin):
    write_plugin("recorder", RECORDING_PLUGIN)
    loader.initialize_plugins(db)
    plugin_id = _row(db, "recorder").id

    loader.enable_plugin(db, plugin_id)
    assert _row(db, "recorder").enabled is True
    assert plugin_registry.get("recorder").enabled is True

    with pytest.raises(PluginStateError):
        loader.enable_plugin(db, plugin_id)

    loader.disable_plugin(db, plugin_id)
    assert _row(db, "recorder").enabled is False
    assert plugin_registry.get("recorder").plugin.module.CALLS == ["enable", "disable"]

    with pytest.raises(PluginStateError):
        loader.disable_plugin(db, plugin_id)


def test_enable_loads_plugin_that_is_not_registered(db, write_plugin):
    write_plugin("recorder", RECORDING_PLUGIN)
    loader.initialize_plugins(db)
    plugin_id = _row(db, "recorder").id
    loader.unload_plugin("recorder")

    loader.enable_plugin(db, plugin_id)

    loaded = plugin_registry.get("recorder")
    assert loaded.enabled is True
    assert loaded.plugin.module.CALLS == ["enable"]


def test_failing_on_enable_reverts_database_state(db, write_plugin):
    write_plugin("grumpy", "def on_enable(ctx):\n    raise RuntimeError('no thanks')\n")
    loader.initialize_plugins(db)
    plugin_id = _row(db, "grumpy").id

    with pytest.raises(PluginExecutionError):
        loader.enable_plugin(db, plugin_id)

    assert _row(db, "grumpy").enabled is False
    assert plugin_registry.get("grumpy").enabled is False
    messages = [log.message for log in db.query(PluginLog).filter(PluginLog.plugin_id == plugin_id)]
    assert "Failed to enable plugin" in messages


def test_enabled_row_starts_plugin_on_load(db, write_plugin):
    write_plugin("recorder", RECORDING_PLUGIN)
    loader.initialize_plugins(db)
    row = _row(db, "recorder")
    row.enabled = True
    db.commit()
    plugin_registry.clear()

    loader.initialize_plugins(db)

    assert plugin_registry.get("recorder").enabled is True
    assert plugin_registry.get("recorder").plugin.module.CALLS == ["enable"]


def test_unknown_plugin_id_is_not_found(db):
    with pytest.raises(PluginNotFoundError):
        loader.enable_plugin(db, 999)


@pytest.mark.parametrize("config,expected", [
    ({"apiKey": "k"}, []),
    ({}, ["Missing required field: apiKey"]),
    ({"apiKey": "k", "retries": "3"}, ["Field retries must be of type integer"]),
    ({"apiKey": "k", "retries": True}, ["Field retries must be of type integer"]),
    ({"apiKey": "k", "mode": "reckless"}, ["Field mode must be one of: fast, safe"]),
])
def test_validate_config(config, expected):
    assert loader.validate_config(config, SECRET_SCHEMA) == expected


def test_validate_config_rejects_unknown_fields_when_closed():
    schema = {"type": "object", "properties": {"a": {"type": "string"}}, "additionalProperties": False}
    assert loader.validate_config({"b": "x"}, schema) == ["Unknown field: b"]
    assert loader.validate_config({"b": "x"}, {"type": "object", "properties": {}}) == []


def test_update_config_encrypts_secrets_and_notifies_plugin(db, write_plugin):
    write_plugin("recorder", RECORDING_PLUGIN, configSchema=SECRET_SCHEMA)
    loader.initialize_plugins(db)
    plugin_id = _row(db, "recorder").id
    loader.enable_plugin(db, plugin_id)

    plugin = loader.update_plugin_config(db, plugin_id, {"apiKey": "xoxb-1", "channel": "#talks"})

    assert is_encrypted(plugin.config["apiKey"])
    loaded = plugin_registry.get("recorder")
    assert loaded.context.config["apiKey"] == "xoxb-1"
    assert loaded.plugin.module.CALLS[-1] == ("config", {"apiKey": "xoxb-1", "channel": "#talks"})

    stored_secret = plugin.config["apiKey"]
    plugin = loader.update_plugin_config(db, plugin_id, {"apiKey": PASSWORD_PLACEHOLDER, "channel": "#cfp"})
    assert plugin.config["apiKey"] == stored_secret
    assert plugin.config["channel"] == "#cfp"


def test_update_config_rejects_invalid_values(db, write_plugin):
    write_plugin("recorder", RECORDING_PLUGIN, configSchema=SECRET_SCHEMA)
    loader.initialize_plugins(db)
    plugin_id = _row(db, "recorder").id

    with pytest.raises(BusinessLogicError) as excinfo:
        loader.update_plugin_config(db, plugin_id, {"channel": "#cfp"})

    assert excinfo.value.details == {"errors": ["Missing required field: apiKey"]}


def test_reload_picks_up_new_code(db, write_plugin):
    write_plugin("recorder", "VERSION = 1\n")
    loader.initialize_plugins(db)
    write_plugin("recorder", "VERSION = 2\n", version="1.1.0")

    reloaded = loader.reload_plugin(db, "recorder")

    assert reloaded.plugin.module.VERSION == 2
    assert _row(db, "recorder").version == "1.1.0"


def test_reload_of_missing_plugin_returns_none(db, plugins_dir):
    assert loader.reload_plugin(db, "ghost") is None


def test_uninstall_removes_files_and_rows(db, plugins_dir, write_plugin):
    write_plugin("recorder", RECORDING_PLUGIN)
    loader.initialize_plugins(db)
    plugin_id = _row(db, "recorder").id
    loader.enable_plugin(db, plugin_id)
    plugin_registry.get("recorder").context.logger.info("hello")

    result = loader.uninstall_plugin(db, plugin_id)

    assert result == {"name": "recorder", "files_removed": True, "warnings": []}
    assert not (plugins_dir / "recorder").exists()
    assert plugin_registry.get("recorder") is None
    assert _row(db, "recorder") is None
    assert db.query(PluginLog).filter(PluginLog.plugin_id == plugin_id).count() == 0


def test_uninstall_continues_when_files_cannot_be_removed(db, plugins_dir, write_plugin, monkeypatch):
    write_plugin("sticky", RECORDING_PLUGIN)
    loader.initialize_plugins(db)
    plugin_id = _row(db, "sticky").id
    loader.enable_plugin(db, plugin_id)

    def refuse(name):
        raise OSError("Permission denied")

    monkeypatch.setattr(loader, "remove_plugin_files", refuse)

    result = loader.uninstall_plugin(db, plugin_id)

    assert result["files_removed"] is False
    assert result["warnings"] == ["Failed to remove plugin files: Permission denied"]
    assert _row(db, "sticky") is None
    assert plugin_registry.get("sticky") is None
    assert (plugins_dir / "sticky").exists()


def test_manifest_with_wrong_field_type_is_not_loaded(db, plugins_dir, write_plugin):
    write_plugin("typed", version=1)
    write_plugin("fine")

    summary = loader.initialize_plugins(db)

    assert summary["loaded"] == ["fine"]
    assert "Manifest field 'version' must be a string" in summary["failed"]["typed"]
