"""
vault/cipher.py -- Symmetric encryption for stored upstream API keys.

Security design decisions:
  Cipher: AES-256-CBC with PKCS7 padding via the `cryptography` library.
       Every encrypt() call draws a fresh 16-byte IV from os.urandom, so the
       same plaintext never produces the same ciphertext twice. The IV is
       returned alongside the ciphertext and must be stored with it --
       decryption is impossible without it.

  Encoding: ciphertext and IV are hex strings, the format the credentials
       table has always used.

  Key: 32 bytes given as hex (ENCRYPTION_KEY). Only the first 64 hex chars
       are used, so longer generated values remain valid. When no key is
       configured a random one is generated for the lifetime of the process
       and a WARNING is logged: every credential stored under it becomes
       unreadable after a restart. Startup continues regardless.

  Plaintext keys are never logged by this module.

Layer rule: no imports from api/, auth/, gateway/, or practice/.
"""

from __future__ import annotations

import binascii
import logging
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from core.errors import DecryptionError

logger = logging.getLogger("languagebot.vault.cipher")

KEY_BYTES = 32
IV_BYTES = 16
_BLOCK_BITS = algorithms.AES.block_size


def _parse_key(key_hex: str) -> bytes:
    """Decode the first 64 hex characters of key_hex into a 32-byte key.

    Raises ValueError for a key that is too short or not hex. A malformed key
    is an operator mistake, unlike a missing one, and should stop startup.
    """
    material = key_hex.strip()[: KEY_BYTES * 2]
    if len(material) < KEY_BYTES * 2:
        raise ValueError(f"ENCRYPTION_KEY must be at least {KEY_BYTES * 2} hex characters.")
    try:
        return bytes.fromhex(material)
    except ValueError as exc:
        raise ValueError("ENCRYPTION_KEY must be a hex string.") from exc


class CredentialCipher:
    """Encrypts and decrypts opaque secret strings under one process-wide key.

    Usage:
        cipher = CredentialCipher(settings.encryption_key)
        ciphertext, iv = cipher.encrypt("sk-...")
        cipher.decrypt(ciphertext, iv)   # "sk-..."
    """

    def __init__(self, key_hex: str | None = None) -> None:
        if key_hex:
            self._key = _parse_key(key_hex)
            self.ephemeral = False
        else:
            self._key = os.urandom(KEY_BYTES)
            self.ephemeral = True
            logger.warning(
                "ENCRYPTION_KEY is not set. Using a random key for this process -- "
                "stored API keys will be UNRECOVERABLE after a restart. "
                "Set ENCRYPTION_KEY in .env for production!"
            )

    def _cipher(self, iv: bytes) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CBC(iv))

    def encrypt(self, plaintext: str) -> tuple[str, str]:
        """Return (ciphertext_hex, iv_hex) for plaintext."""
        iv = os.urandom(IV_BYTES)
        padder = padding.PKCS7(_BLOCK_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = self._cipher(iv).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return ciphertext.hex(), iv.hex()

    def decrypt(self, ciphertext_hex: str, iv_hex: str) -> str:
        """Return the plaintext for a (ciphertext, iv) pair.

        Raises DecryptionError when the pair does not decrypt under the active
        key: malformed hex, wrong IV length, bad padding, or non-UTF-8 output.
        """
        try:
            ciphertext = bytes.fromhex(ciphertext_hex)
            iv = bytes.fromhex(iv_hex)
            decryptor = self._cipher(iv).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(_BLOCK_BITS).unpadder()
            data = unpadder.update(padded) + unpadder.finalize()
            return data.decode("utf-8")
        except (ValueError, TypeError, binascii.Error) as exc:
            # UnicodeDecodeError is a ValueError subclass.
            raise DecryptionError(type(exc).__name__) from None
