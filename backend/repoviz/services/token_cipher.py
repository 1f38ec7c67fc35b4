"""
Access token encryption for transit to the rendering backend.

Encoding: ``hex(iv) + ":" + hex(ciphertext)`` where the ciphertext is
AES-256-CTR over the UTF-8 credential, keyed with SHA-256(secret). A fresh
16-byte IV is drawn for every call, so equal inputs never produce equal
outputs. The rendering backend holds the same secret and decodes with the
inverse of this scheme (see ``decrypt_token``).
"""

from __future__ import annotations

import hashlib
import logging
import os
from typing import Optional

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from repoviz.services.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

IV_SIZE = 16
SEPARATOR = ":"


def derive_key(secret: str) -> bytes:
    """One-way 32-byte key from the configured secret."""
    return hashlib.sha256(secret.encode("utf-8")).digest()


class TokenCipher:
    """Encrypts repository credentials. Holds no decryption path."""

    def __init__(self, secret: Optional[str]):
        if not secret:
            raise ConfigurationError(
                "SECRET_KEY is not configured; refusing to handle access tokens"
            )
        self._key = derive_key(secret)

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_SIZE)
        encryptor = Cipher(algorithms.AES(self._key), modes.CTR(iv)).encryptor()
        ciphertext = encryptor.update(plaintext.encode("utf-8")) + encryptor.finalize()
        return f"{iv.hex()}{SEPARATOR}{ciphertext.hex()}"


def decrypt_token(encoded: str, secret: str) -> str:
    """
    Inverse of ``TokenCipher.encrypt``, as run by the rendering backend.

    Raises:
        ValueError: if the encoding is malformed or the plaintext is not UTF-8
    """
    parts = encoded.split(SEPARATOR)
    if len(parts) != 2:
        raise ValueError("Encrypted token must have the form iv:ciphertext")

    iv = bytes.fromhex(parts[0])
    ciphertext = bytes.fromhex(parts[1])
    if len(iv) != IV_SIZE:
        raise ValueError(f"IV must be {IV_SIZE} bytes, got {len(iv)}")

    decryptor = Cipher(algorithms.AES(derive_key(secret)), modes.CTR(iv)).decryptor()
    plaintext = decryptor.update(ciphertext) + decryptor.finalize()
    return plaintext.decode("utf-8")


def build_token_cipher(secret: Optional[str]) -> TokenCipher:
    """Startup hook: fail before serving if the secret is missing."""
    cipher = TokenCipher(secret)
    logger.info("Token cipher initialized (AES-256-CTR)")
    return cipher
