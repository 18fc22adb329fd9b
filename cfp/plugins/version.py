"""Plugin API versioning"""

from typing import Dict, List

CURRENT_API_VERSION = "1.0"
SUPPORTED_VERSIONS = ("1.0",)

VERSION_CHANGELOG: Dict[str, List[str]] = {
    "1.0": [
        "Initial plugin API release",
        "Core hooks: submission, user, review, event, email",
        "Capability-based context with permissions",
        "Plugin registry and loader",
        "Plugin logging system",
        "Background job queue with locking and retries",
        "Admin-invoked plugin actions",
    ],
}


def is_version_supported(api_version: str) -> bool:
    return api_version in SUPPORTED_VERSIONS


def get_major_version(version: str) -> int:
    return int(version.split(".")[0])


def get_minor_version(version: str) -> int:
    parts = version.split(".")
    return int(parts[1]) if len(parts) > 1 and parts[1] else 0


def are_versions_compatible(plugin_version: str, current_version: str = CURRENT_API_VERSION) -> bool:
    """A plugin may target an older or equal minor of the same major version."""
    try:
        if get_major_version(plugin_version) != get_major_version(current_version):
            return False
        return get_minor_version(plugin_version) <= get_minor_version(current_version)
    except ValueError:
        return False


def get_version_info(api_version: str) -> dict:
    return {
        "current": CURRENT_API_VERSION,
        "supported": list(SUPPORTED_VERSIONS),
        "is_supported": is_version_supported(api_version),
        "is_compatible": are_versions_compatible(api_version),
    }
