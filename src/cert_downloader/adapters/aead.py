"""
AES-256-GCM decryption of platform certificate envelopes.

Adapter layer — implements the Decryptor port with the `cryptography` AEAD
primitive. The ciphertext carries the 16-byte tag at its end, which is the
layout AESGCM expects.
"""

from __future__ import annotations

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from cert_downloader.domain.errors import DecryptionFailure

KEY_LENGTH_BYTES = 32
TAG_LENGTH_BYTES = 16


def decrypt(ciphertext: bytes, key: bytes, nonce: bytes, associated_data: bytes) -> bytes:
    """
    Authenticate and decrypt one envelope.

    Raises DecryptionFailure when the key has the wrong length, the input is
    shorter than a tag, or the tag does not verify. No plaintext is returned
    in any of those cases.
    """
    if len(key) != KEY_LENGTH_BYTES:
        raise DecryptionFailure(
            f"AES-256-GCM key must be {KEY_LENGTH_BYTES} bytes, got {len(key)}"
        )
    if len(ciphertext) < TAG_LENGTH_BYTES:
        raise DecryptionFailure("Ciphertext is shorter than the authentication tag")
    if not nonce:
        raise DecryptionFailure("Nonce must not be empty")
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, associated_data or None)
    except InvalidTag as e:
        raise DecryptionFailure("Authentication tag mismatch") from e
