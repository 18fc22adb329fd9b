import pytest

from cfp.core.exceptions import PluginManifestError, PluginVersionError
from cfp.plugins.types import PluginManifest, PluginModule, get_hook_info, manifest_errors
from cfp.plugins.version import are_versions_compatible, get_version_info

from conftest import manifest_for


def test_manifest_parses_camel_case_fields():
    manifest = PluginManifest.from_dict(manifest_for(
        "slack-notify",
        permissions=["submissions:read"],
        hooks=["submission.created"],
        configSchema={"type": "object", "properties": {}},
    ))
    assert manifest.display_name == "Slack Notify"
    assert manifest.api_version == "1.0"
    assert manifest.config_schema == {"type": "object", "properties": {}}
    assert manifest.hooks == ["submission.created"]


def test_manifest_errors_are_collected():
    errors = manifest_errors({
        "name": "Bad Name",
        "version": "1.0.0",
        "apiVersion": "1.0",
        "permissions": ["root:everything"],
        "hooks": ["submission.exploded"],
    })
    assert "Manifest missing required field: displayName" in errors
    assert any(e.startswith("Invalid plugin name") for e in errors)
    assert "Unknown permission: root:everything" in errors
    assert "Unknown hook: submission.exploded" in errors


def test_manifest_must_be_object():
    assert manifest_errors(["not", "a", "dict"]) == ["manifest.json must contain a JSON object"]


def test_only_version_problem_raises_version_error():
    with pytest.raises(PluginVersionError):
        PluginManifest.from_dict(manifest_for("future-plugin", apiVersion="2.0"))


def test_mixed_problems_raise_manifest_error():
    with pytest.raises(PluginManifestError):
        PluginManifest.from_dict(manifest_for("future-plugin", apiVersion="2.0", hooks=["nope"]))


@pytest.mark.parametrize("plugin_version,expected", [
    ("1.0", True),
    ("1.1", False),
    ("0.9", False),
    ("2.0", False),
    ("garbage", False),
])
def test_api_version_compatibility(plugin_version, expected):
    assert are_versions_compatible(plugin_version) is expected


def test_version_info():
    info = get_version_info("1.0")
    assert info["current"] == "1.0"
    assert info["is_supported"] is True


def test_hook_info_marks_modifiable_hooks():
    assert get_hook_info("email.beforeSend")["modifiable"] is True
    assert get_hook_info("submission.created")["category"] == "submission"
    assert get_hook_info("unknown.hook") is None


def test_plugin_module_reads_plugin_attribute():
    calls = []

    class Impl:
        hooks = {"submission.created": lambda ctx, payload: None}
        actions = {"ping": lambda ctx, params: "pong"}

        def on_enable(self, ctx):
            calls.append("enabled")

    class Module:
        plugin = Impl()

    wrapped = PluginModule(Module)
    wrapped.on_enable(None)
    wrapped.on_disable(None)
    assert calls == ["enabled"]
    assert list(wrapped.hooks) == ["submission.created"]
    assert wrapped.actions["ping"](None, {}) == "pong"
    assert wrapped.jobs == {}


@pytest.mark.parametrize("name,valid", [
    ("x", True),
    ("7", True),
    ("ab", True),
    ("slack-notify", True),
    ("-", False),
    ("a-", False),
    ("-a", False),
    ("Ab", False),
])
def test_plugin_name_rules(name, valid):
    errors = manifest_errors(manifest_for(name))
    assert (not any(e.startswith("Invalid plugin name") for e in errors)) is valid


def test_wrongly_typed_fields_raise_manifest_error():
    with pytest.raises(PluginManifestError) as excinfo:
        PluginManifest.from_dict(manifest_for("typed", version=1, author={"name": "Jane"}))
    assert "Manifest field 'version' must be a string" in excinfo.value.message
    assert "Manifest field 'author' must be a string" in excinfo.value.message
