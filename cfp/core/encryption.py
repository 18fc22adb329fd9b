"""Field-level encryption for PII and stored secrets.

Encrypted strings are self-describing:

    enc:v1:<salt>:<iv>:<tag>:<ciphertext>

Every part is base64. The key is derived per value from the configured
secret with PBKDF2-HMAC-SHA256 and the value's own salt, then used for
AES-256-GCM.
"""

from __future__ import annotations

import base64
import os
from functools import lru_cache
from typing import Any, Dict, Iterable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from cfp.config import settings
from cfp.core.exceptions import EncryptionError

ENCRYPTED_PREFIX = "enc:v1:"
IV_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32
SALT_LENGTH = 16
PBKDF2_ITERATIONS = 100_000
MIN_SECRET_LENGTH = 32

USER_PII_FIELDS = ["name", "phone"]


def _master_secret() -> str:
    secret = settings.get_encryption_secret()
    if not secret or len(secret) < MIN_SECRET_LENGTH:
        raise EncryptionError(
            f"Encryption secret must be at least {MIN_SECRET_LENGTH} characters"
        )
    return secret


@lru_cache(maxsize=256)
def _derive_key(secret: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(secret.encode("utf-8"))


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def is_encrypted(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(ENCRYPTED_PREFIX)


def encrypt_string(plaintext: str) -> str:
    if not plaintext:
        return plaintext

    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    key = _derive_key(_master_secret(), salt)
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    # AESGCM appends the tag to the ciphertext
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return f"{ENCRYPTED_PREFIX}{_b64(salt)}:{_b64(iv)}:{_b64(tag)}:{_b64(ciphertext)}"


def decrypt_string(value: str) -> str:
    if not value or not is_encrypted(value):
        return value

    parts = value[len(ENCRYPTED_PREFIX):].split(":")
    if len(parts) != 4 or not all(parts[:3]):
        raise EncryptionError("Invalid encrypted string format")

    try:
        salt, iv, tag, ciphertext = (base64.b64decode(part) for part in parts)
    except ValueError as exc:
        raise EncryptionError("Invalid encrypted string encoding") from exc

    key = _derive_key(_master_secret(), salt)
    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as exc:
        raise EncryptionError("Decryption failed: data was tampered with or key changed") from exc
    return plaintext.decode("utf-8")


def encrypt_pii_fields(data: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    """Return a copy of data with the named string fields encrypted."""
    result = dict(data)
    for field in fields:
        value = result.get(field)
        if isinstance(value, str) and value and not is_encrypted(value):
            result[field] = encrypt_string(value)
    return result


def decrypt_pii_fields(data: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    result = dict(data)
    for field in fields:
        value = result.get(field)
        if is_encrypted(value):
            result[field] = decrypt_string(value)
    return result
