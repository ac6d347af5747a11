"""AES-256-GCM encryption for onboarding profile PII.

Imported by the onboarding profile writer (wizard submissions: name, email,
health answers), which lives outside this API and shares ENCRYPTION_KEY with
it. Nothing in the consent or geo paths calls it.

Ciphertext format: ``iv:authTag:encryptedContent`` (hex). Decryption fails
loudly on tampering or malformed input.
"""

from __future__ import annotations

import base64
import binascii
import re
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from dietitian.config import settings

IV_LENGTH = 12
AUTH_TAG_LENGTH = 16
KEY_LENGTH = 32

_HEX_RE = re.compile(r"^[a-fA-F0-9]+$")


class EncryptionError(Exception):
    """Raised when the key is unusable or the input cannot be encrypted."""


class DecryptionError(Exception):
    """Raised when ciphertext is malformed or fails authentication."""


def _load_key(key: str | None = None) -> bytes:
    """Accept a 64-char hex key, falling back to base64 for older keys."""
    raw = key if key is not None else settings.ENCRYPTION_KEY
    if not raw:
        raise EncryptionError("ENCRYPTION_KEY is not set")

    if len(raw) == 64 and _HEX_RE.match(raw):
        key_bytes = bytes.fromhex(raw)
    else:
        try:
            key_bytes = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as e:
            raise EncryptionError("ENCRYPTION_KEY is neither hex nor base64") from e

    if len(key_bytes) != KEY_LENGTH:
        raise EncryptionError(f"ENCRYPTION_KEY must be {KEY_LENGTH} bytes (hex or base64 encoded)")
    return key_bytes


def generate_key() -> str:
    """Random 32-byte key, hex encoded for .env files."""
    return secrets.token_hex(KEY_LENGTH)


def encrypt(plaintext: str, key: str | None = None) -> str:
    if not plaintext or not isinstance(plaintext, str):
        raise EncryptionError("plaintext must be a non-empty string")

    iv = secrets.token_bytes(IV_LENGTH)
    sealed = AESGCM(_load_key(key)).encrypt(iv, plaintext.encode("utf-8"), None)
    # cryptography appends the tag to the ciphertext
    ciphertext, tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
    return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"


def decrypt(value: str, key: str | None = None) -> str:
    if not value or not isinstance(value, str):
        raise DecryptionError("encrypted value must be a non-empty string")

    parts = value.split(":")
    if len(parts) != 3:
        raise DecryptionError("expected iv:authTag:encryptedContent")

    iv_hex, tag_hex, content_hex = parts
    if not _HEX_RE.match(iv_hex) or len(iv_hex) != IV_LENGTH * 2:
        raise DecryptionError("invalid IV")
    if not _HEX_RE.match(tag_hex) or len(tag_hex) != AUTH_TAG_LENGTH * 2:
        raise DecryptionError("invalid auth tag")
    if not _HEX_RE.match(content_hex) or len(content_hex) % 2:
        raise DecryptionError("invalid encrypted content")

    sealed = bytes.fromhex(content_hex) + bytes.fromhex(tag_hex)
    try:
        plaintext = AESGCM(_load_key(key)).decrypt(bytes.fromhex(iv_hex), sealed, None)
    except InvalidTag as e:
        raise DecryptionError("authentication tag mismatch or corrupted data") from e
    return plaintext.decode("utf-8")


def is_encrypted(value: str) -> bool:
    if not value or not isinstance(value, str):
        return False
    parts = value.split(":")
    if len(parts) != 3:
        return False
    iv_hex, tag_hex, _ = parts
    return (
        bool(_HEX_RE.match(iv_hex)) and len(iv_hex) == IV_LENGTH * 2
        and bool(_HEX_RE.match(tag_hex)) and len(tag_hex) == AUTH_TAG_LENGTH * 2
    )


def safe_decrypt(value: str, key: str | None = None) -> str:
    """Decrypt if the value looks encrypted, otherwise return it unchanged (legacy rows)."""
    if is_encrypted(value):
        return decrypt(value, key)
    return value
