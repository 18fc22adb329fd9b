"""Encryption of password-format fields in plugin configuration."""

from typing import Any, Callable, Dict, List, Optional

from cfp.core.encryption import decrypt_string, encrypt_string, is_encrypted
from cfp.core.exceptions import EncryptionError

PASSWORD_PLACEHOLDER = "********"


def get_password_fields(schema: Optional[Dict[str, Any]]) -> List[str]:
    if not schema:
        return []
    properties = schema.get("properties") or {}
    return [
        key for key, spec in properties.items()
        if isinstance(spec, dict) and spec.get("format") == "password"
    ]


def encrypt_config(
    config: Dict[str, Any],
    schema: Optional[Dict[str, Any]],
    existing: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Prepare config for storage.

    A field submitted as the placeholder keeps the currently stored value
    (the admin UI only ever sees the mask). Already encrypted values are kept.
    """
    existing = existing or {}
    result = dict(config)
    for key in get_password_fields(schema):
        value = result.get(key)
        if value == PASSWORD_PLACEHOLDER:
            if key in existing:
                result[key] = existing[key]
            else:
                result.pop(key, None)
        elif isinstance(value, str) and value and not is_encrypted(value):
            result[key] = encrypt_string(value)
    return result


def decrypt_config(
    config: Dict[str, Any],
    schema: Optional[Dict[str, Any]],
    on_error: Optional[Callable[[str, EncryptionError], None]] = None,
) -> Dict[str, Any]:
    """Decrypt password fields. With on_error, unreadable fields are dropped instead of raising."""
    result = dict(config or {})
    for key in get_password_fields(schema):
        if not is_encrypted(result.get(key)):
            continue
        try:
            result[key] = decrypt_string(result[key])
        except EncryptionError as exc:
            if on_error is None:
                raise
            on_error(key, exc)
            result.pop(key, None)
    return result


def mask_config(config: Dict[str, Any], schema: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    result = dict(config or {})
    for key in get_password_fields(schema):
        if result.get(key):
            result[key] = PASSWORD_PLACEHOLDER
    return result


def strip_password_fields(config: Dict[str, Any], schema: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    hidden = set(get_password_fields(schema))
    return {key: value for key, value in (config or {}).items() if key not in hidden}
