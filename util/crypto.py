"""
Credential vault for server and database secrets.

Format on disk is ``hex(iv):hex(ciphertext)`` with AES-256-CBC and a key
derived by scrypt(ENCRYPTION_KEY, salt="salt", N=16384, r=8, p=1), the same
parameters Node's ``crypto.scryptSync`` uses, so rows written by the old
panel still decrypt.
"""

from __future__ import annotations

import logging
import os
import secrets
from functools import lru_cache

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from flask import current_app, has_app_context

from util.errors import CredentialError

logger = logging.getLogger("ssh_logger")

KEY_SALT = b"salt"
KEY_LENGTH = 32
IV_LENGTH = 16


def _encryption_key() -> str:
    key = None
    if has_app_context():
        key = current_app.config.get("ENCRYPTION_KEY")
    key = key or os.getenv("ENCRYPTION_KEY")
    if not key:
        raise CredentialError("ENCRYPTION_KEY is not configured")
    return key


@lru_cache(maxsize=8)
def derive_key(password: str) -> bytes:
    kdf = Scrypt(salt=KEY_SALT, length=KEY_LENGTH, n=2**14, r=8, p=1)
    return kdf.derive(password.encode("utf-8"))


def encrypt(text: str | None, *, key: str | None = None) -> str:
    """Encrypt *text*; empty input stays empty."""
    if not text:
        return ""
    iv = secrets.token_bytes(IV_LENGTH)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(text.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(
        algorithms.AES(derive_key(key or _encryption_key())), modes.CBC(iv)
    ).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return f"{iv.hex()}:{ciphertext.hex()}"


def decrypt(text: str | None, *, key: str | None = None) -> str:
    """
    Decrypt an ``iv:ciphertext`` string.

    Missing input returns ``""``; callers that need a real secret must treat
    the empty string as a failure (see ``require_secret``).
    """
    if not text:
        return ""
    iv_hex, sep, body_hex = text.partition(":")
    if not sep:
        raise CredentialError("Encrypted value has no IV separator")
    try:
        iv = bytes.fromhex(iv_hex)
        ciphertext = bytes.fromhex(body_hex)
    except ValueError as e:
        raise CredentialError(f"Encrypted value is not hex: {e}") from e
    if len(iv) != IV_LENGTH or not ciphertext or len(ciphertext) % IV_LENGTH:
        raise CredentialError("Encrypted value has an invalid length")

    decryptor = Cipher(
        algorithms.AES(derive_key(key or _encryption_key())), modes.CBC(iv)
    ).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        plain = unpadder.update(padded) + unpadder.finalize()
        return plain.decode("utf-8")
    except (ValueError, UnicodeDecodeError) as e:
        raise CredentialError("Could not decrypt value (wrong key?)") from e


def require_secret(encrypted: str | None, what: str) -> str:
    secret = decrypt(encrypted)
    if not secret:
        raise CredentialError(f"No usable {what} stored")
    return secret


def server_password(server) -> str:
    return require_secret(server.password, f"password for server {server.name}")


def server_private_key(server) -> str:
    return require_secret(server.private_key, f"private key for server {server.name}")
