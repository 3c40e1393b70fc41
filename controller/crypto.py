"""Envelope encryption: per-file data keys wrapped by password-derived keys."""

import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from common.constants import (
    KEY_SIZE_BYTES,
    MIN_PBKDF2_ITERATIONS,
    NONCE_SIZE_BYTES,
    PBKDF2_ITERATIONS,
    SALT_SIZE_BYTES,
    TAG_SIZE_BYTES,
)
from controller.exceptions import DecryptionError


def sha256_hex(data: bytes) -> str:
    """SHA-256 hex digest, used for checksums over encrypted chunk bytes."""
    return hashlib.sha256(data).hexdigest()


class EnvelopeCrypto:
    """
    AES-256-GCM envelope encryption.

    Blob format for every encrypt() call: 12-byte nonce followed by the
    ciphertext and its 128-bit tag. Keys are raw 32-byte strings and are never
    logged or persisted unwrapped.
    """

    def __init__(self, iterations: int = PBKDF2_ITERATIONS):
        """
        Args:
            iterations: PBKDF2 iteration count (at least 100,000)
        """
        if iterations < MIN_PBKDF2_ITERATIONS:
            raise ValueError(
                f"PBKDF2 iteration count must be at least {MIN_PBKDF2_ITERATIONS}, got {iterations}"
            )
        self.iterations = iterations

    def generate_data_key(self) -> bytes:
        """Random 256-bit data encryption key."""
        return AESGCM.generate_key(bit_length=KEY_SIZE_BYTES * 8)

    def generate_salt(self) -> bytes:
        """16 cryptographically random bytes."""
        return os.urandom(SALT_SIZE_BYTES)

    def derive_wrapping_key(self, password: str, salt: bytes) -> bytes:
        """
        Derive a 256-bit key-encryption key from a password with PBKDF2-HMAC-SHA256.

        This is deliberately slow; async callers run it in an executor.
        """
        if len(salt) != SALT_SIZE_BYTES:
            raise ValueError(f"Salt must be {SALT_SIZE_BYTES} bytes")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE_BYTES,
            salt=salt,
            iterations=self.iterations,
        )
        return kdf.derive(password.encode('utf-8'))

    def encrypt(self, plaintext: bytes, key: bytes) -> bytes:
        """Encrypt with a fresh random nonce; returns nonce + ciphertext + tag."""
        nonce = os.urandom(NONCE_SIZE_BYTES)
        return nonce + AESGCM(key).encrypt(nonce, plaintext, None)

    def decrypt(self, blob: bytes, key: bytes) -> bytes:
        """
        Verify and decrypt a blob produced by encrypt().

        Raises:
            DecryptionError: If the blob is truncated or the tag does not verify
        """
        if len(blob) < NONCE_SIZE_BYTES + TAG_SIZE_BYTES:
            raise DecryptionError("Encrypted blob is too short")
        nonce, ciphertext = blob[:NONCE_SIZE_BYTES], blob[NONCE_SIZE_BYTES:]
        try:
            return AESGCM(key).decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise DecryptionError("Authentication tag verification failed") from e

    def wrap_key(self, data_key: bytes, wrapping_key: bytes) -> bytes:
        return self.encrypt(data_key, wrapping_key)

    def unwrap_key(self, blob: bytes, wrapping_key: bytes) -> bytes:
        data_key = self.decrypt(blob, wrapping_key)
        if len(data_key) != KEY_SIZE_BYTES:
            raise DecryptionError("Unwrapped data key has unexpected length")
        return data_key
