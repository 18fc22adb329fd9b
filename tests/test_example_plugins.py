import hashlib
import hmac
import json
import shutil
from pathlib import Path

import httpx
import pytest

from cfp.models.plugin import Plugin, PluginJob, PluginLog
from cfp.plugins import hooks, loader
from cfp.plugins.jobs.worker import PluginJobWorker
from cfp.plugins.registry import plugin_registry

BUNDLED = Path(__file__).resolve().parent.parent / "plugins"


@pytest.fixture
def install_bundled(db, plugins_dir):
    def _install(name, config=None):
        shutil.copytree(BUNDLED / name, plugins_dir / name)
        loader.initialize_plugins(db)
        plugin = db.query(Plugin).filter(Plugin.name == name).first()
        if config is not None:
            loader.update_plugin_config(db, plugin.id, config)
        loader.enable_plugin(db, plugin.id)
        return plugin_registry.get(name)
    return _install


@pytest.fixture
def receiver(monkeypatch):
    """Route the webhook plugin's httpx.Client through a MockTransport"""
    real_client = httpx.Client
    received = []
    status = {"code": 200}

    def handler(request):
        received.append(request)
        return httpx.Response(status["code"], json={"ok": status["code"] < 400})

    def factory(*args, **kwargs):
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "Client", factory)
    return received, status


def test_logger_counts_hooks_and_logs(db, install_bundled):
    loaded = install_bundled("example-logger")

    hooks.dispatch("submission.created", {"submission_id": 1})
    hooks.dispatch("submission.created", {"submission_id": 2})
    hooks.dispatch("event.published", {"event_id": 1, "slug": "pyconf"})

    actions = loaded.plugin.module.actions
    assert actions["counters"](loaded.context, {}) == {"submission.created": 2, "event.published": 1}

    db.expire_all()
    messages = [log.message for log in db.query(PluginLog).filter(PluginLog.plugin_id == loaded.plugin_id)]
    assert messages.count("New submission") == 2
    assert "Example logger enabled" in messages

    assert actions["reset-counters"](loaded.context, {}) == {"deleted": 2}
    assert actions["counters"](loaded.context, {}) == {}


def test_logger_respects_config(db, install_bundled):
    loaded = install_bundled("example-logger", {"logLevel": "debug", "countEvents": False})

    hooks.dispatch("review.submitted", {"review_id": 3})

    assert loaded.plugin.module.actions["counters"](loaded.context, {}) == {}
    db.expire_all()
    log = db.query(PluginLog).filter(PluginLog.message == "Review submitted").one()
    assert log.level == "debug"


def test_webhook_delivers_signed_payload(db, install_bundled, receiver):
    received, _ = receiver
    loaded = install_bundled("example-webhook", {"url": "https://hooks.example.com/cfp", "secret": "shh"})

    hooks.dispatch("submission.created", {"submission_id": 9, "title": "Talk"})
    job = db.query(PluginJob).filter(PluginJob.plugin_id == loaded.plugin_id).one()
    assert job.type == "deliver"
    assert received == []

    summary = PluginJobWorker("test-worker").process_jobs(10)

    assert summary["succeeded"] == 1
    request = received[0]
    assert str(request.url) == "https://hooks.example.com/cfp"
    expected = "sha256=" + hmac.new(b"shh", request.content, hashlib.sha256).hexdigest()
    assert request.headers["X-Signature"] == expected
    body = json.loads(request.content)
    assert body["event"] == "submission.created"
    assert body["data"] == {"submission_id": 9, "title": "Talk"}

    db.expire_all()
    job = db.get(PluginJob, job.id)
    assert job.status == "completed"
    assert job.result == {"status_code": 200}


def test_webhook_receiver_error_schedules_retry(db, install_bundled, receiver):
    _, status = receiver
    status["code"] = 500
    loaded = install_bundled("example-webhook", {"url": "https://hooks.example.com/cfp"})

    hooks.dispatch("submission.statusChanged", {"submission_id": 9, "new_status": "ACCEPTED"})
    summary = PluginJobWorker("test-worker").process_jobs(10)

    assert summary["failed"] == 1
    db.expire_all()
    job = db.query(PluginJob).filter(PluginJob.plugin_id == loaded.plugin_id).one()
    assert job.status == "pending"
    assert job.attempts == 1
    assert "500" in job.result["error"]


def test_webhook_without_url_skips(db, install_bundled):
    loaded = install_bundled("example-webhook")

    hooks.dispatch("submission.created", {"submission_id": 1})

    assert db.query(PluginJob).count() == 0
    db.expire_all()
    warning = db.query(PluginLog).filter(PluginLog.plugin_id == loaded.plugin_id, PluginLog.level == "warn").one()
    assert warning.message == "No webhook URL configured; skipping"


def test_webhook_test_action_posts_immediately(install_bundled, receiver):
    received, _ = receiver
    loaded = install_bundled("example-webhook", {"url": "https://hooks.example.com/cfp"})

    result = loaded.plugin.module.actions["test"](loaded.context, {"message": "hello"})

    assert result == {"status_code": 200}
    assert "X-Signature" not in received[0].headers
    assert json.loads(received[0].content)["data"] == {"message": "hello"}
