import pytest

from cfp.config import settings
from cfp.core.encryption import (
    ENCRYPTED_PREFIX,
    decrypt_pii_fields,
    decrypt_string,
    encrypt_pii_fields,
    encrypt_string,
    is_encrypted,
)
from cfp.core.exceptions import EncryptionError
from cfp.plugins.config_encryption import (
    PASSWORD_PLACEHOLDER,
    decrypt_config,
    encrypt_config,
    mask_config,
    strip_password_fields,
)

SCHEMA = {
    "type": "object",
    "properties": {
        "apiKey": {"type": "string", "format": "password"},
        "channel": {"type": "string"},
    },
}


def test_encrypt_produces_versioned_value_with_random_salt():
    first = encrypt_string("jane@example.com")
    second = encrypt_string("jane@example.com")
    assert first.startswith(ENCRYPTED_PREFIX)
    assert first != second
    assert decrypt_string(first) == "jane@example.com"
    assert decrypt_string(second) == "jane@example.com"


def test_plain_values_pass_through_decrypt():
    assert decrypt_string("plain text") == "plain text"
    assert encrypt_string("") == ""
    assert not is_encrypted("plain text")
    assert not is_encrypted(None)


def test_tampered_ciphertext_fails():
    value = encrypt_string("secret")
    salt, iv, tag, ciphertext = value[len(ENCRYPTED_PREFIX):].split(":")
    forged = f"{ENCRYPTED_PREFIX}{salt}:{iv}:{tag}:{'A' * len(ciphertext)}"
    with pytest.raises(EncryptionError):
        decrypt_string(forged)


def test_malformed_value_fails():
    with pytest.raises(EncryptionError):
        decrypt_string(ENCRYPTED_PREFIX + "only:three:parts")


def test_key_change_makes_old_values_unreadable(monkeypatch):
    value = encrypt_string("secret")
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", "x" * 40)
    with pytest.raises(EncryptionError):
        decrypt_string(value)


def test_short_secret_is_refused(monkeypatch):
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", "")
    monkeypatch.setattr(settings, "SECRET_KEY", "short")
    with pytest.raises(EncryptionError):
        encrypt_string("anything")


def test_pii_helpers_only_touch_named_fields():
    encrypted = encrypt_pii_fields({"name": "Jane", "phone": "555", "bio": "hi"}, ["name", "phone"])
    assert is_encrypted(encrypted["name"])
    assert is_encrypted(encrypted["phone"])
    assert encrypted["bio"] == "hi"
    assert decrypt_pii_fields(encrypted, ["name", "phone"]) == {"name": "Jane", "phone": "555", "bio": "hi"}


def test_config_password_fields_are_encrypted_and_masked():
    stored = encrypt_config({"apiKey": "s3cret", "channel": "#cfp"}, SCHEMA)
    assert is_encrypted(stored["apiKey"])
    assert stored["channel"] == "#cfp"

    assert mask_config(stored, SCHEMA) == {"apiKey": PASSWORD_PLACEHOLDER, "channel": "#cfp"}
    assert strip_password_fields(stored, SCHEMA) == {"channel": "#cfp"}
    assert decrypt_config(stored, SCHEMA)["apiKey"] == "s3cret"


def test_placeholder_keeps_existing_secret():
    stored = encrypt_config({"apiKey": "s3cret"}, SCHEMA)
    updated = encrypt_config({"apiKey": PASSWORD_PLACEHOLDER, "channel": "#talks"}, SCHEMA, existing=stored)
    assert updated["apiKey"] == stored["apiKey"]
    assert updated["channel"] == "#talks"


def test_unreadable_config_field_is_dropped_with_callback(monkeypatch):
    stored = encrypt_config({"apiKey": "s3cret", "channel": "#cfp"}, SCHEMA)
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", "y" * 40)
    seen = []
    result = decrypt_config(stored, SCHEMA, on_error=lambda key, exc: seen.append(key))
    assert "apiKey" not in result
    assert result["channel"] == "#cfp"
    assert seen == ["apiKey"]
