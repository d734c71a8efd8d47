"""Authenticated encryption of refresh tokens at rest (AES-256-GCM).

Blob layout, urlsafe-base64 encoded::

    nonce (12 bytes) || tag (16 bytes) || ciphertext
"""

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from fitsession.core.exceptions import ConfigurationError, DecryptionError

NONCE_SIZE = 12
TAG_SIZE = 16


def derive_key(secret: str) -> bytes:
    """
    Derive the 256-bit symmetric key from the server secret.

    Raises:
        ConfigurationError: If the secret is empty or missing
    """
    if not secret or not secret.strip():
        raise ConfigurationError("Refresh token encryption secret is not configured")
    return hashlib.sha256(secret.encode("utf-8")).digest()


def encrypt(plaintext: str, key: bytes) -> str:
    nonce = os.urandom(NONCE_SIZE)
    sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    # AESGCM appends the tag; the stored layout puts it before the ciphertext
    ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    return base64.urlsafe_b64encode(nonce + tag + ciphertext).decode("ascii")


def decrypt(blob: str, key: bytes) -> str:
    """
    Open a blob produced by :func:`encrypt`.

    Raises:
        DecryptionError: If the blob is malformed, was tampered with, or was
            sealed under a different key
    """
    try:
        raw = base64.urlsafe_b64decode(blob.encode("ascii"))
    except (binascii.Error, ValueError, UnicodeEncodeError) as exc:
        raise DecryptionError() from exc

    if len(raw) < NONCE_SIZE + TAG_SIZE:
        raise DecryptionError()

    nonce = raw[:NONCE_SIZE]
    tag = raw[NONCE_SIZE:NONCE_SIZE + TAG_SIZE]
    ciphertext = raw[NONCE_SIZE + TAG_SIZE:]

    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext + tag, None)
        return plaintext.decode("utf-8")
    except (InvalidTag, UnicodeDecodeError) as exc:
        raise DecryptionError() from exc


class TokenCipher:
    """Key-bound wrapper handed to the session service."""

    def __init__(self, secret: str):
        self._key = derive_key(secret)

    def encrypt(self, plaintext: str) -> str:
        return encrypt(plaintext, self._key)

    def decrypt(self, blob: str) -> str:
        return decrypt(blob, self._key)
