"""Plugin contract: permissions, hook names, manifest and module adapter."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import ModuleType
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from cfp.core.exceptions import PluginManifestError, PluginVersionError
from cfp.plugins.version import is_version_supported

PLUGIN_PERMISSIONS: Dict[str, str] = {
    "submissions:read": "View submissions",
    "submissions:manage": "Update submission status",
    "users:read": "View user information",
    "users:manage": "Create service accounts and manage users",
    "events:read": "View events",
    "events:manage": "Modify events",
    "reviews:read": "View reviews",
    "reviews:write": "Create and modify reviews",
    "storage:read": "Read plugin data storage",
    "storage:write": "Write plugin data storage",
    "email:send": "Send emails",
}

# name -> (description, category, payload may be modified by handlers)
HOOK_METADATA: Dict[str, tuple] = {
    "submission.created": ("A new submission was created", "submission", False),
    "submission.statusChanged": ("A submission changed status", "submission", False),
    "submission.updated": ("A speaker edited a submission", "submission", False),
    "submission.deleted": ("A submission was deleted", "submission", False),
    "user.registered": ("A new user registered", "user", False),
    "user.roleChanged": ("A user's role was changed", "user", False),
    "user.profileUpdated": ("A user updated their profile", "user", False),
    "review.submitted": ("A reviewer submitted a review", "review", False),
    "review.updated": ("A review was updated", "review", False),
    "review.allCompleted": ("A submission reached its required review count", "review", False),
    "event.published": ("An event was published", "event", False),
    "event.cfpOpened": ("An event's CFP opened", "event", False),
    "event.cfpClosed": ("An event's CFP closed", "event", False),
    "event.updated": ("An event was updated", "event", False),
    "email.beforeSend": ("An email is about to be sent", "email", True),
    "email.sent": ("An email was sent", "email", False),
}

HOOK_NAMES: List[str] = list(HOOK_METADATA)

MANIFEST_REQUIRED_FIELDS = ("name", "displayName", "version", "apiVersion")
MANIFEST_OPTIONAL_STRINGS = ("description", "author", "homepage")
PLUGIN_NAME_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$")


def get_hook_info(hook: str) -> Optional[dict]:
    meta = HOOK_METADATA.get(hook)
    if meta is None:
        return None
    description, category, modifiable = meta
    return {"name": hook, "description": description, "category": category, "modifiable": modifiable}


def get_hooks_by_category(category: str) -> List[str]:
    return [name for name, meta in HOOK_METADATA.items() if meta[1] == category]


def manifest_errors(data: Any) -> List[str]:
    """Collect every problem with a raw manifest dict."""
    if not isinstance(data, dict):
        return ["manifest.json must contain a JSON object"]

    errors = []
    for key in MANIFEST_REQUIRED_FIELDS:
        value = data.get(key)
        if not value:
            errors.append(f"Manifest missing required field: {key}")
        elif not isinstance(value, str):
            errors.append(f"Manifest field '{key}' must be a string")
    for key in MANIFEST_OPTIONAL_STRINGS:
        if data.get(key) is not None and not isinstance(data[key], str):
            errors.append(f"Manifest field '{key}' must be a string")

    name = data.get("name")
    if isinstance(name, str) and name and not PLUGIN_NAME_PATTERN.match(name):
        errors.append(
            "Invalid plugin name. Use lowercase letters, digits and hyphens; "
            "must start and end with a letter or digit"
        )

    api_version = data.get("apiVersion")
    if isinstance(api_version, str) and api_version and not is_version_supported(api_version):
        errors.append(f"Unsupported API version: {api_version}")

    for key, known, label in (
        ("permissions", PLUGIN_PERMISSIONS, "permission"),
        ("hooks", HOOK_METADATA, "hook"),
    ):
        values = data.get(key) or []
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            errors.append(f"Manifest field '{key}' must be a list of strings")
            continue
        errors.extend(f"Unknown {label}: {value}" for value in values if value not in known)

    schema = data.get("configSchema")
    if schema is not None and not isinstance(schema, dict):
        errors.append("Manifest field 'configSchema' must be an object")

    return errors


class PluginManifest(BaseModel):
    """Parsed manifest.json"""
    name: str
    display_name: str = Field(alias="displayName")
    version: str
    api_version: str = Field(alias="apiVersion")
    description: Optional[str] = None
    author: Optional[str] = None
    homepage: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)
    config_schema: Optional[Dict[str, Any]] = Field(default=None, alias="configSchema")
    hooks: List[str] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    @classmethod
    def from_dict(cls, data: Any) -> "PluginManifest":
        """Validate and parse, raising on the first category of problem."""
        errors = manifest_errors(data)
        version_errors = [e for e in errors if e.startswith("Unsupported API version")]
        if version_errors and len(errors) == len(version_errors):
            raise PluginVersionError(str(data.get("apiVersion")))
        if errors:
            raise PluginManifestError("; ".join(errors))
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise PluginManifestError("; ".join(validation_messages(exc)))


def validation_messages(exc: ValidationError) -> List[str]:
    return [
        f"Manifest field '{'.'.join(str(part) for part in err['loc'])}': {err['msg']}"
        for err in exc.errors()
    ]


class PluginModule:
    """
    Uniform view over a plugin's entry module.

    The entry module may expose everything at module level or through a
    `plugin` attribute (object or class instance) carrying the same names.
    """

    def __init__(self, module: ModuleType):
        self.module = module
        self.target = getattr(module, "plugin", module)

    def _callable(self, name: str) -> Optional[Callable]:
        fn = getattr(self.target, name, None)
        return fn if callable(fn) else None

    def on_enable(self, ctx) -> None:
        fn = self._callable("on_enable")
        if fn:
            fn(ctx)

    def on_disable(self, ctx) -> None:
        fn = self._callable("on_disable")
        if fn:
            fn(ctx)

    def on_config_change(self, ctx, old_config: dict, new_config: dict) -> None:
        fn = self._callable("on_config_change")
        if fn:
            fn(ctx, old_config, new_config)

    @property
    def hooks(self) -> Dict[str, Callable]:
        return dict(getattr(self.target, "hooks", None) or {})

    @property
    def actions(self) -> Dict[str, Callable]:
        return dict(getattr(self.target, "actions", None) or {})

    @property
    def jobs(self) -> Dict[str, Callable]:
        return dict(getattr(self.target, "jobs", None) or {})


@dataclass
class LoadedPlugin:
    """Registry entry"""
    plugin: PluginModule
    manifest: PluginManifest
    context: Any
    plugin_id: int
    enabled: bool = False
    config: Dict[str, Any] = field(default_factory=dict)
    path: Optional[str] = None

    @property
    def name(self) -> str:
        return self.manifest.name
