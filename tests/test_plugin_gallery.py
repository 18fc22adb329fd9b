import io
import json
import zipfile

import httpx
import pytest

from cfp.config import settings
from cfp.core.exceptions import (
    BusinessLogicError,
    GalleryUnavailableError,
    PluginArchiveError,
    PluginDownloadError,
    PluginDownloadTimeoutError,
    PluginNotFoundError,
)
from cfp.models.plugin import Plugin
from cfp.plugins.gallery import PluginGallery, compare_semver, validate_download_url
from cfp.plugins.registry import plugin_registry

from conftest import manifest_for

DOWNLOAD_URL = "https://github.com/cfp/slack-notify/releases/download/v1.2.0/slack-notify.zip"


def _registry(*plugins):
    return {"version": "1", "lastUpdated": "2026-01-01", "plugins": list(plugins)}


def _zip_for(name, version="1.2.0"):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(f"{name}/manifest.json", json.dumps(manifest_for(name, version=version)))
        archive.writestr(f"{name}/__init__.py", "hooks = {}\n")
    return buffer.getvalue()


def _gallery(routes, calls=None):
    def handler(request):
        if calls is not None:
            calls.append(str(request.url))
        url = str(request.url).split("?")[0]
        responder = routes.get(url)
        if responder is None:
            return httpx.Response(404)
        if callable(responder):
            return responder(request)
        # fresh response per request so bodies can be read again
        return httpx.Response(responder.status_code, headers=responder.headers, content=responder.content)

    return PluginGallery(httpx.Client(transport=httpx.MockTransport(handler)))


@pytest.mark.parametrize("a,b,expected", [
    ("1.2.0", "1.1.9", 1),
    ("1.2", "1.2.0", 0),
    ("1.10.0", "1.9.0", 1),
    ("2.0.0-beta", "2.0.0", 0),
    ("0.9", "1.0", -1),
])
def test_compare_semver(a, b, expected):
    assert compare_semver(a, b) == expected


@pytest.mark.parametrize("url,error", [
    (DOWNLOAD_URL, None),
    ("http://github.com/x.zip", "Download URL must use HTTPS"),
    ("https://127.0.0.1/x.zip", "IP addresses are not allowed in download URLs"),
    ("https://[::1]/x.zip", "IP addresses are not allowed in download URLs"),
    ("https://evil.example.com/x.zip", 'Download host "evil.example.com" is not in the trusted hosts list'),
])
def test_validate_download_url(url, error):
    assert validate_download_url(url) == error


def test_registry_is_cached(db):
    calls = []
    gallery = _gallery({settings.PLUGIN_GALLERY_URL: httpx.Response(200, json=_registry())}, calls)

    gallery.fetch_registry()
    gallery.fetch_registry()
    assert len(calls) == 1

    gallery.fetch_registry(force_refresh=True)
    assert len(calls) == 2


def test_invalid_registry_is_unavailable():
    gallery = _gallery({settings.PLUGIN_GALLERY_URL: httpx.Response(200, json={"nope": True})})
    with pytest.raises(GalleryUnavailableError):
        gallery.fetch_registry()


def test_registry_http_error_is_unavailable():
    gallery = _gallery({settings.PLUGIN_GALLERY_URL: httpx.Response(503)})
    with pytest.raises(GalleryUnavailableError) as excinfo:
        gallery.fetch_registry()
    assert excinfo.value.status_code == 502


def test_gallery_annotates_install_status(db):
    db.add_all([
        Plugin(name="old-plugin", display_name="Old", version="1.0.0", api_version="1.0"),
        Plugin(name="current-plugin", display_name="Current", version="2.0.0", api_version="1.0"),
    ])
    db.commit()
    gallery = _gallery({settings.PLUGIN_GALLERY_URL: httpx.Response(200, json=_registry(
        {"name": "old-plugin", "version": "1.1.0"},
        {"name": "current-plugin", "version": "2.0.0"},
        {"name": "new-plugin", "version": "0.1.0"},
    ))})

    result = gallery.get_gallery_with_status(db)

    statuses = {p["name"]: p["install_status"] for p in result["plugins"]}
    assert statuses == {
        "old-plugin": "update_available",
        "current-plugin": "installed",
        "new-plugin": "not_installed",
    }
    assert result["plugins"][0]["installed_version"] == "1.0.0"
    assert result["last_updated"] == "2026-01-01"


def test_install_requires_acknowledgement(db):
    gallery = _gallery({})
    with pytest.raises(BusinessLogicError) as excinfo:
        gallery.install(db, "slack-notify", acknowledge_code_execution=False)
    assert excinfo.value.details["requires_acknowledgement"] is True


def test_install_unknown_plugin(db):
    gallery = _gallery({settings.PLUGIN_GALLERY_URL: httpx.Response(200, json=_registry())})
    with pytest.raises(PluginNotFoundError):
        gallery.install(db, "slack-notify", acknowledge_code_execution=True)


def test_install_downloads_and_loads_plugin(db, plugins_dir):
    gallery = _gallery({
        settings.PLUGIN_GALLERY_URL: httpx.Response(200, json=_registry(
            {"name": "slack-notify", "version": "1.2.0", "downloadUrl": DOWNLOAD_URL},
        )),
        DOWNLOAD_URL: httpx.Response(200, content=_zip_for("slack-notify")),
    })

    result = gallery.install(db, "slack-notify", acknowledge_code_execution=True)

    assert result["action"] == "installed"
    assert result["load_error"] is None
    assert result["plugin"]["source"] == "gallery"
    assert result["plugin"]["enabled"] is False
    assert (plugins_dir / "slack-notify" / "manifest.json").exists()
    assert plugin_registry.get("slack-notify") is not None


def test_untrusted_download_url_is_refused(db):
    gallery = _gallery({settings.PLUGIN_GALLERY_URL: httpx.Response(200, json=_registry(
        {"name": "slack-notify", "version": "1.2.0", "downloadUrl": "https://evil.example.com/x.zip"},
    ))})
    with pytest.raises(BusinessLogicError):
        gallery.install(db, "slack-notify", acknowledge_code_execution=True)


def test_redirects_are_refused():
    gallery = _gallery({DOWNLOAD_URL: httpx.Response(302, headers={"location": "https://evil.example.com/"})})
    with pytest.raises(BusinessLogicError):
        gallery.download(DOWNLOAD_URL)


def test_download_http_error():
    gallery = _gallery({DOWNLOAD_URL: httpx.Response(500)})
    with pytest.raises(PluginDownloadError):
        gallery.download(DOWNLOAD_URL)


def test_download_size_limit(monkeypatch):
    monkeypatch.setattr(settings, "PLUGIN_MAX_ARCHIVE_SIZE", 1024)
    gallery = _gallery({DOWNLOAD_URL: httpx.Response(200, content=b"x" * 4096)})
    with pytest.raises(PluginArchiveError):
        gallery.download(DOWNLOAD_URL)


def test_download_timeout():
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    gallery = _gallery({DOWNLOAD_URL: slow})
    with pytest.raises(PluginDownloadTimeoutError) as excinfo:
        gallery.download(DOWNLOAD_URL)
    assert excinfo.value.status_code == 504
