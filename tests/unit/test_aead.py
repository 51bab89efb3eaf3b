"""
Unit tests for the AES-256-GCM envelope decryptor.

Test categories:
  - Round trip: ciphertext produced by a matching encryption decrypts exactly
  - Tampering: altered tag, ciphertext or associated data → DecryptionFailure
  - Bad input: wrong key, wrong key length, truncated ciphertext → DecryptionFailure
"""

from __future__ import annotations

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from cert_downloader.adapters.aead import decrypt
from cert_downloader.domain.errors import DecryptionFailure

KEY = b"0123456789abcdefghijklmnopqrstuv"
NONCE = b"c5ac7061fccf"
AAD = b"certificate"
PEM = b"-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n"


def _encrypt(plaintext: bytes = PEM, key: bytes = KEY, aad: bytes = AAD) -> bytes:
    return AESGCM(key).encrypt(NONCE, plaintext, aad)


class TestDecryptSuccess:
    """
    GIVEN a ciphertext produced with the same key, nonce and associated data
    WHEN decrypt is called
    THEN the original plaintext is returned.
    """

    def test_returns_original_plaintext(self) -> None:
        assert decrypt(_encrypt(), KEY, NONCE, AAD) == PEM

    def test_empty_associated_data(self) -> None:
        """
        GIVEN an envelope encrypted without associated data
        WHEN decrypt is called with b""
        THEN the plaintext is returned.
        """
        ciphertext = AESGCM(KEY).encrypt(NONCE, PEM, None)
        assert decrypt(ciphertext, KEY, NONCE, b"") == PEM


class TestDecryptTampering:
    """
    GIVEN a ciphertext whose tag, body or associated data was altered
    WHEN decrypt is called
    THEN DecryptionFailure is raised and nothing is returned.
    """

    def test_flipped_tag_bit(self) -> None:
        ciphertext = bytearray(_encrypt())
        ciphertext[-1] ^= 0x01
        with pytest.raises(DecryptionFailure, match="tag"):
            decrypt(bytes(ciphertext), KEY, NONCE, AAD)

    def test_flipped_ciphertext_bit(self) -> None:
        ciphertext = bytearray(_encrypt())
        ciphertext[0] ^= 0x80
        with pytest.raises(DecryptionFailure):
            decrypt(bytes(ciphertext), KEY, NONCE, AAD)

    def test_altered_associated_data(self) -> None:
        with pytest.raises(DecryptionFailure):
            decrypt(_encrypt(), KEY, NONCE, b"transaction")

    def test_wrong_nonce(self) -> None:
        with pytest.raises(DecryptionFailure):
            decrypt(_encrypt(), KEY, b"000000000000", AAD)


class TestDecryptBadInput:
    """
    GIVEN a key or ciphertext that cannot possibly authenticate
    WHEN decrypt is called
    THEN DecryptionFailure is raised.
    """

    def test_wrong_key(self) -> None:
        with pytest.raises(DecryptionFailure):
            decrypt(_encrypt(), b"vutsrqponmlkjihgfedcba9876543210", NONCE, AAD)

    @pytest.mark.parametrize("key", [b"", b"short", KEY + b"x"])
    def test_key_must_be_32_bytes(self, key: bytes) -> None:
        with pytest.raises(DecryptionFailure, match="32 bytes"):
            decrypt(_encrypt(), key, NONCE, AAD)

    def test_ciphertext_shorter_than_tag(self) -> None:
        with pytest.raises(DecryptionFailure, match="shorter"):
            decrypt(b"\x00" * 15, KEY, NONCE, AAD)
