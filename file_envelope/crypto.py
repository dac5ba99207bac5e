"""
Cryptographic primitives for AES-256-CBC file envelopes.

This module provides:
- SecureKey: Secure key wrapper with automatic zeroization
- AesCbcCipher: AES-256-CBC encryption/decryption with PKCS#7 padding
- generate_random_bytes: CSPRNG helper used for keys and IVs
"""

from __future__ import annotations

import secrets

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import CryptoError, DecryptionFailedError

# Cryptographic constants
AES_256_KEY_SIZE: int = 32  # 256 bits
IV_SIZE: int = 16  # 128 bits
BLOCK_SIZE: int = 16  # AES block, PKCS#7 pads up to a multiple of this
MAX_FILE_SIZE: int = 10 * 1024 * 1024  # 10 MiB


class SecureKey:
    """
    Secure key wrapper with automatic memory cleanup on deletion.

    Uses bytearray internally for mutable zeroing in __del__.
    Note: Python's garbage collector doesn't guarantee immediate cleanup,
    so this is best-effort zeroization.
    """

    __slots__ = ("_bytes",)

    def __init__(self, key_bytes: bytes | bytearray) -> None:
        """
        Create a SecureKey from raw bytes.

        Args:
            key_bytes: Raw key material (should be 32 bytes for AES-256)
        """
        if not isinstance(key_bytes, (bytes, bytearray)):
            raise CryptoError("Key must be bytes or bytearray")
        self._bytes = bytearray(key_bytes)

    @classmethod
    def generate(cls) -> SecureKey:
        """Generate a cryptographically secure random 32-byte key."""
        return cls(secrets.token_bytes(AES_256_KEY_SIZE))

    @classmethod
    def from_hex(cls, value: str) -> SecureKey:
        """
        Parse key material from a hex string.

        Raises:
            DecryptionFailedError: If the text is not valid hex
        """
        try:
            return cls(bytes.fromhex(value))
        except ValueError as e:
            raise DecryptionFailedError(f"Invalid key encoding: {e}")

    def as_bytes(self) -> bytes:
        """Return key as immutable bytes."""
        return bytes(self._bytes)

    def hex(self) -> str:
        """Return key as lowercase hex (envelope wire form)."""
        return self._bytes.hex()

    def __len__(self) -> int:
        """Return key length in bytes."""
        return len(self._bytes)

    def __repr__(self) -> str:
        """Redacted representation to prevent accidental key disclosure."""
        return "SecureKey([REDACTED])"

    def __del__(self) -> None:
        """Zero memory on deletion (best-effort)."""
        if hasattr(self, "_bytes"):
            for i in range(len(self._bytes)):
                self._bytes[i] = 0


class AesCbcCipher:
    """
    AES-256-CBC with PKCS#7 padding.

    CBC is not authenticated: a corrupted ciphertext either fails the padding
    check or decrypts to garbage. Callers must not assume tamper detection.
    """

    @staticmethod
    def encrypt(key: SecureKey, iv: bytes, plaintext: bytes) -> bytes:
        """
        Encrypt plaintext with AES-256-CBC.

        Args:
            key: 32-byte encryption key
            iv: 16-byte initialization vector
            plaintext: Data to encrypt (any length, including zero)

        Returns:
            Ciphertext, always a non-empty multiple of BLOCK_SIZE

        Raises:
            CryptoError: If key/iv size is invalid or encryption fails
        """
        if len(key) != AES_256_KEY_SIZE:
            raise CryptoError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}"
            )
        if len(iv) != IV_SIZE:
            raise CryptoError(f"Invalid IV size: expected {IV_SIZE}, got {len(iv)}")

        try:
            padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
            padded = padder.update(plaintext) + padder.finalize()
            encryptor = Cipher(algorithms.AES(key.as_bytes()), modes.CBC(iv)).encryptor()
            return encryptor.update(padded) + encryptor.finalize()
        except Exception as e:
            raise CryptoError(f"Encryption error: {e}")

    @staticmethod
    def decrypt(key: SecureKey, iv: bytes, ciphertext: bytes) -> bytes:
        """
        Decrypt ciphertext with AES-256-CBC and strip PKCS#7 padding.

        Args:
            key: 32-byte decryption key
            iv: 16-byte initialization vector
            ciphertext: Encrypted data

        Returns:
            Unpadded plaintext bytes

        Raises:
            DecryptionFailedError: If sizes are invalid or padding is corrupt
        """
        if len(key) != AES_256_KEY_SIZE:
            raise DecryptionFailedError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}"
            )
        if len(iv) != IV_SIZE:
            raise DecryptionFailedError(
                f"Invalid IV size: expected {IV_SIZE}, got {len(iv)}"
            )
        if not ciphertext or len(ciphertext) % BLOCK_SIZE:
            raise DecryptionFailedError(
                f"Invalid ciphertext length: {len(ciphertext)} bytes"
            )

        decryptor = Cipher(algorithms.AES(key.as_bytes()), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
        try:
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError:
            raise DecryptionFailedError("Invalid padding (wrong key, IV or corrupted data)")


def generate_random_bytes(length: int) -> bytes:
    """
    Generate cryptographically secure random bytes.

    Args:
        length: Number of bytes to generate

    Returns:
        Random bytes of specified length
    """
    return secrets.token_bytes(length)
