from cfp.models.plugin import Plugin, PluginLog
from cfp.plugins import hooks, loader
from cfp.plugins.registry import plugin_registry


def _enable(db, name):
    plugin = db.query(Plugin).filter(Plugin.name == name).first()
    loader.enable_plugin(db, plugin.id)
    return plugin.id


def test_dispatch_chains_payload_in_registration_order(db, write_plugin):
    write_plugin("a-first", (
        "hooks = {'email.beforeSend': lambda ctx, payload: {'subject': '[CFP] ' + payload['subject']}}\n"
    ), hooks=["email.beforeSend"])
    write_plugin("b-second", (
        "hooks = {'email.beforeSend': lambda ctx, payload: {'subject': payload['subject'] + '!'}}\n"
    ), hooks=["email.beforeSend"])
    loader.initialize_plugins(db)
    _enable(db, "a-first")
    _enable(db, "b-second")

    result = hooks.dispatch("email.beforeSend", {"to": "jane@example.com", "subject": "Hello"})

    assert result == {"to": "jane@example.com", "subject": "[CFP] Hello!"}
    assert hooks.get_hook_handler_count("email.beforeSend") == 2


def test_disabled_plugins_are_not_called(db, write_plugin):
    write_plugin("sleeper", (
        "CALLS = []\n"
        "hooks = {'submission.created': lambda ctx, payload: CALLS.append(payload)}\n"
    ))
    loader.initialize_plugins(db)

    hooks.dispatch("submission.created", {"submission_id": 1})

    assert plugin_registry.get("sleeper").plugin.module.CALLS == []
    assert not hooks.has_hook_handlers("submission.created")


def test_failing_handler_is_logged_and_skipped(db, write_plugin):
    write_plugin("a-broken", (
        "def explode(ctx, payload):\n"
        "    raise ValueError('kaboom')\n"
        "hooks = {'submission.created': explode}\n"
    ))
    write_plugin("b-counter", (
        "CALLS = []\n"
        "def count(ctx, payload):\n"
        "    CALLS.append(payload['submission_id'])\n"
        "hooks = {'submission.created': count}\n"
    ))
    loader.initialize_plugins(db)
    broken_id = _enable(db, "a-broken")
    _enable(db, "b-counter")

    result = hooks.dispatch("submission.created", {"submission_id": 42})

    assert result == {"submission_id": 42}
    assert plugin_registry.get("b-counter").plugin.module.CALLS == [42]
    log = db.query(PluginLog).filter(PluginLog.plugin_id == broken_id).one()
    assert log.level == "error"
    assert log.message == "Hook submission.created failed"
    assert log.metadata_json == {"error": "kaboom"}


def test_handlers_cannot_mutate_callers_payload(db, write_plugin):
    write_plugin("mutator", (
        "def mutate(ctx, payload):\n"
        "    payload['injected'] = True\n"
        "hooks = {'submission.created': mutate}\n"
    ))
    loader.initialize_plugins(db)
    _enable(db, "mutator")
    original = {"submission_id": 1}

    result = hooks.dispatch("submission.created", original)

    assert original == {"submission_id": 1}
    assert result == {"submission_id": 1}


def test_dispatch_without_plugins_returns_copy():
    payload = {"event_id": 3}
    result = hooks.dispatch("event.published", payload)
    assert result == payload
    assert result is not payload
