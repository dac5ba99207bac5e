"""
Self-contained file envelope: encoder and decoder.

This module provides:
- Envelope: Immutable key/iv/ciphertext/length record
- encode: bytes -> transport string (fresh key and IV per call)
- decode: transport string -> original bytes
- transport_encode / transport_decode: base64url without padding

Wire format (must stay bit-exact for previously stored envelopes):

    base64url_nopad(JSON({"k": hex(key32), "i": hex(iv16),
                          "d": base64(ciphertext), "s": plaintext_length}))

The key travels inside the envelope. Anyone holding the string can decrypt
it; the envelope only protects content from passive inspection of storage.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .crypto import (
    IV_SIZE,
    MAX_FILE_SIZE,
    AesCbcCipher,
    SecureKey,
    generate_random_bytes,
)
from .errors import (
    CryptoError,
    DecryptionFailedError,
    EmptyInputError,
    FileEnvelopeError,
    IncompleteEnvelopeError,
    InvalidStructureError,
    MalformedTransportEncodingError,
    PayloadTooLargeError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Transport Encoding
# =============================================================================


def transport_encode(data: bytes) -> str:
    """Base64 with ``+``->``-``, ``/``->``_`` and trailing ``=`` stripped."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def transport_decode(text: str) -> bytes:
    """
    Reverse of transport_encode.

    Raises:
        MalformedTransportEncodingError: If the text is not base64url
    """
    standard = text.replace("-", "+").replace("_", "/")
    standard += "=" * (-len(standard) % 4)
    try:
        return base64.b64decode(standard, validate=True)
    except (binascii.Error, ValueError):
        raise MalformedTransportEncodingError()


# =============================================================================
# Envelope
# =============================================================================


@dataclass(frozen=True)
class Envelope:
    """
    Encrypted file envelope.

    ``plaintext_length`` is authoritative for trimming on decode: CBC output
    is padded to a block boundary and does not reveal the original length.
    """

    key: bytes = field(repr=False)  # 32 bytes
    iv: bytes = field(repr=False)  # 16 bytes
    ciphertext: str  # standard base64, as the cipher library renders it
    plaintext_length: int

    @classmethod
    def seal(cls, payload: bytes) -> Envelope:
        """Encrypt payload under a freshly generated key and IV."""
        key = SecureKey.generate()
        iv = generate_random_bytes(IV_SIZE)
        encrypted = AesCbcCipher.encrypt(key, iv, payload)
        return cls(
            key=key.as_bytes(),
            iv=iv,
            ciphertext=base64.b64encode(encrypted).decode("ascii"),
            plaintext_length=len(payload),
        )

    def open(self) -> bytes:
        """
        Decrypt and return exactly ``plaintext_length`` bytes.

        The unpadded length must equal ``plaintext_length``; any mismatch
        means the ciphertext or the recorded length was altered.

        Raises:
            DecryptionFailedError: If the ciphertext cannot be decrypted
        """
        try:
            encrypted = base64.b64decode(self.ciphertext, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionFailedError(f"Invalid ciphertext encoding: {e}")

        recovered = AesCbcCipher.decrypt(SecureKey(self.key), self.iv, encrypted)

        # A corrupted final block can still carry valid-looking padding
        if len(recovered) != self.plaintext_length:
            raise DecryptionFailedError(
                f"Recovered {len(recovered)} bytes, expected {self.plaintext_length}"
            )
        return recovered

    def to_dict(self) -> dict[str, Any]:
        """Wire-form dict, keys in k/i/d/s order."""
        return {
            "k": self.key.hex(),
            "i": self.iv.hex(),
            "d": self.ciphertext,
            "s": self.plaintext_length,
        }

    def to_json(self) -> str:
        """Serialize to compact JSON."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def to_transport(self) -> str:
        """Serialize to the stored string form."""
        return transport_encode(self.to_json().encode("utf-8"))

    @classmethod
    def from_dict(cls, data: Any) -> Envelope:
        """
        Build an Envelope from a parsed wire dict.

        Presence is checked explicitly: ``s == 0`` is a valid empty file.

        Raises:
            InvalidStructureError: If data is not a JSON object
            IncompleteEnvelopeError: If a field is missing or mistyped
            DecryptionFailedError: If key or IV is not valid hex
        """
        if not isinstance(data, dict):
            raise InvalidStructureError()

        for name in ("k", "i", "d"):
            value = data.get(name)
            if not isinstance(value, str) or value == "":
                raise IncompleteEnvelopeError()

        length = data.get("s")
        # bool is an int subclass; JSON true must not pass as a length
        if isinstance(length, bool) or not isinstance(length, int) or length < 0:
            raise IncompleteEnvelopeError()

        key = SecureKey.from_hex(data["k"])
        try:
            iv = bytes.fromhex(data["i"])
        except ValueError as e:
            raise DecryptionFailedError(f"Invalid IV encoding: {e}")

        return cls(
            key=key.as_bytes(),
            iv=iv,
            ciphertext=data["d"],
            plaintext_length=length,
        )

    @classmethod
    def from_json(cls, json_str: str) -> Envelope:
        """Parse compact JSON produced by to_json."""
        try:
            data = json.loads(json_str)
        except (ValueError, RecursionError):
            raise InvalidStructureError()
        return cls.from_dict(data)

    @classmethod
    def from_transport(cls, text: Optional[str]) -> Envelope:
        """
        Parse the stored string form, validating in order.

        Raises:
            EmptyInputError: If text is empty or None
            MalformedTransportEncodingError: If text is not base64url/UTF-8
            InvalidStructureError: If the decoded text is not a JSON object
            IncompleteEnvelopeError: If a field is missing
        """
        if not text:
            raise EmptyInputError()

        raw = transport_decode(text)
        try:
            json_str = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedTransportEncodingError()

        return cls.from_json(json_str)


# =============================================================================
# Encoder / Decoder
# =============================================================================


def encode(payload: bytes, max_size: int = MAX_FILE_SIZE) -> str:
    """
    Encrypt payload into a self-describing envelope string.

    Args:
        payload: Raw file bytes
        max_size: Upper bound on len(payload), checked before any crypto

    Returns:
        base64url envelope string

    Raises:
        PayloadTooLargeError: If payload exceeds max_size
        CryptoError: If encryption fails
    """
    if len(payload) > max_size:
        raise PayloadTooLargeError(len(payload), max_size)

    try:
        envelope = Envelope.seal(payload)
        encoded = envelope.to_transport()
    except CryptoError:
        raise
    except Exception as e:
        raise CryptoError(f"Failed to encrypt file: {e}")

    logger.debug(
        "Encoded %d bytes into %d-char envelope", len(payload), len(encoded)
    )
    return encoded


def decode(envelope: Optional[str]) -> bytes:
    """
    Recover the original bytes from an envelope string.

    Args:
        envelope: String produced by encode

    Returns:
        Original payload bytes

    Raises:
        EmptyInputError, MalformedTransportEncodingError,
        InvalidStructureError, IncompleteEnvelopeError: Malformed envelope
        DecryptionFailedError: Cryptographic transform failed
    """
    parsed = Envelope.from_transport(envelope)
    try:
        data = parsed.open()
    except FileEnvelopeError:
        raise
    except Exception as e:
        raise DecryptionFailedError(str(e))

    logger.debug("Decoded envelope into %d bytes", len(data))
    return data
