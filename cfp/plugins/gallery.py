"""
Plugin gallery: the official registry of installable plugins.

The registry JSON is fetched over HTTPS and cached in memory. Installs
resolve the download URL server-side from that registry; clients only
ever send a plugin name.
"""

from __future__ import annotations

import ipaddress
import logging
import threading
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx
from sqlalchemy.orm import Session

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
from cfp.plugins.installer import install_archive

logger = logging.getLogger(__name__)

SECURITY_WARNING = (
    "Installing this plugin will allow it to execute arbitrary code within your server. "
    "Even gallery plugins have full access to the database, environment variables and "
    "file system. The permission system is for UX guidance only. "
    "Set acknowledge_code_execution=true in the request body to proceed."
)

INSTALL_STATUSES = ("not_installed", "installed", "update_available")


def compare_semver(a: str, b: str) -> int:
    """1 if a > b, -1 if a < b, 0 if equal. Missing or non-numeric parts count as 0."""

    def parts(version: str) -> List[int]:
        values = []
        for piece in (version or "").split("-")[0].split(".")[:3]:
            try:
                values.append(int(piece))
            except ValueError:
                values.append(0)
        return values + [0] * (3 - len(values))

    pa, pb = parts(a), parts(b)
    if pa > pb:
        return 1
    if pa < pb:
        return -1
    return 0


def validate_download_url(url: str) -> Optional[str]:
    """Return an error message when the URL is not safe to fetch, else None."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return "Invalid download URL format"

    if parsed.scheme != "https":
        return "Download URL must use HTTPS"
    host = (parsed.hostname or "").lower()
    if not host:
        return "Invalid download URL format"
    try:
        ipaddress.ip_address(host)
        return "IP addresses are not allowed in download URLs"
    except ValueError:
        pass
    if host not in {h.lower() for h in settings.PLUGIN_TRUSTED_HOSTS}:
        return f'Download host "{host}" is not in the trusted hosts list'
    return None


class PluginGallery:
    """Registry client with a TTL cache. Pass an httpx.Client to reuse a transport."""

    def __init__(self, http_client: Optional[httpx.Client] = None):
        self._client = http_client
        self._cache: Optional[Dict[str, Any]] = None
        self._cached_at: float = 0.0
        self._lock = threading.Lock()

    def _http(self, timeout: float) -> httpx.Client:
        if self._client is not None:
            return self._client
        return httpx.Client(timeout=timeout, follow_redirects=False)

    def _close(self, client: httpx.Client) -> None:
        if client is not self._client:
            client.close()

    def clear_cache(self) -> None:
        with self._lock:
            self._cache = None
            self._cached_at = 0.0

    def fetch_registry(self, force_refresh: bool = False) -> Dict[str, Any]:
        with self._lock:
            fresh = time.monotonic() - self._cached_at < settings.PLUGIN_GALLERY_CACHE_TTL_SECONDS
            if not force_refresh and self._cache is not None and fresh:
                return self._cache

        client = self._http(settings.PLUGIN_GALLERY_TIMEOUT_SECONDS)
        try:
            response = client.get(
                settings.PLUGIN_GALLERY_URL,
                params={"_t": int(time.time() * 1000)},
                headers={"Cache-Control": "no-cache"},
                timeout=settings.PLUGIN_GALLERY_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            logger.warning("Plugin gallery fetch failed: %s", exc)
            raise GalleryUnavailableError(f"Plugin gallery is unavailable: {exc}")
        except ValueError:
            raise GalleryUnavailableError("Plugin gallery returned invalid JSON")
        finally:
            self._close(client)

        if not isinstance(data, dict) or not isinstance(data.get("plugins"), list):
            raise GalleryUnavailableError("Invalid registry format: missing plugins array")

        with self._lock:
            self._cache = data
            self._cached_at = time.monotonic()
        return data

    def get_gallery_with_status(self, db: Session, force_refresh: bool = False) -> Dict[str, Any]:
        registry = self.fetch_registry(force_refresh)
        installed = {name: version for name, version in db.query(Plugin.name, Plugin.version).all()}

        plugins = []
        for entry in registry["plugins"]:
            if not isinstance(entry, dict):
                continue
            item = dict(entry)
            installed_version = installed.get(entry.get("name"))
            if installed_version is None:
                item["install_status"] = "not_installed"
            elif compare_semver(str(entry.get("version", "0")), installed_version) > 0:
                item["install_status"] = "update_available"
            else:
                item["install_status"] = "installed"
            if installed_version is not None:
                item["installed_version"] = installed_version
            plugins.append(item)

        return {
            "plugins": plugins,
            "last_updated": registry.get("lastUpdated"),
            "registry_version": registry.get("version"),
        }

    def find(self, plugin_name: str) -> Dict[str, Any]:
        registry = self.fetch_registry()
        for entry in registry["plugins"]:
            if isinstance(entry, dict) and entry.get("name") == plugin_name:
                return entry
        raise PluginNotFoundError(f"{plugin_name} (not in gallery registry)")

    def download(self, url: str) -> bytes:
        """Size-limited download without redirects."""
        error = validate_download_url(url)
        if error:
            logger.error("Rejected plugin download URL %s: %s", url, error)
            raise BusinessLogicError(f"Plugin download URL is not allowed: {error}")

        limit = settings.PLUGIN_MAX_ARCHIVE_SIZE
        too_large = f"Plugin archive exceeds maximum size ({limit // (1024 * 1024)}MB)"
        client = self._http(settings.PLUGIN_DOWNLOAD_TIMEOUT_SECONDS)
        try:
            with client.stream(
                "GET", url, follow_redirects=False, timeout=settings.PLUGIN_DOWNLOAD_TIMEOUT_SECONDS
            ) as response:
                if response.is_redirect:
                    raise BusinessLogicError("Plugin download URL redirected (not allowed for security)")
                if not response.is_success:
                    raise PluginDownloadError(f"Failed to download plugin: HTTP {response.status_code}")

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > limit:
                    raise PluginArchiveError(too_large)

                chunks = []
                total = 0
                for chunk in response.iter_bytes():
                    total += len(chunk)
                    if total > limit:
                        raise PluginArchiveError(too_large)
                    chunks.append(chunk)
                return b"".join(chunks)
        except httpx.TimeoutException:
            raise PluginDownloadTimeoutError()
        except httpx.HTTPError as exc:
            raise PluginDownloadError(f"Failed to download plugin: {exc}")
        finally:
            self._close(client)

    def install(self, db: Session, plugin_name: str, acknowledge_code_execution: bool) -> Dict[str, Any]:
        if not plugin_name:
            raise BusinessLogicError("Missing required field: plugin_name")
        if acknowledge_code_execution is not True:
            raise BusinessLogicError(
                "Plugin installation requires acknowledgement of security risk",
                details={"requires_acknowledgement": True, "security_warning": SECURITY_WARNING},
            )

        entry = self.find(plugin_name)
        data = self.download(str(entry.get("downloadUrl") or ""))
        return install_archive(db, data, source="gallery", force=True)


plugin_gallery = PluginGallery()
