"""
Ports — Protocol-based interfaces for the response pipeline.

  ResponseStage : one step of the response chain (injector, verifier, recorder)
  Decryptor     : the AEAD primitive the injector delegates to

Stages satisfy the contract structurally; no inheritance is needed.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import httpx


@runtime_checkable
class ResponseStage(Protocol):
    """
    Port: transform one HTTP response.

    The response body has already been read when a stage runs. A stage may
    read or write the shared CertificateStore it was constructed with, and
    must return the response it was given. Raising a CertificateDownloadError
    aborts the chain.
    """

    def __call__(self, response: httpx.Response) -> httpx.Response: ...


@runtime_checkable
class Decryptor(Protocol):
    """Port: authenticated decryption of one certificate envelope."""

    def __call__(
        self,
        ciphertext: bytes,
        key: bytes,
        nonce: bytes,
        associated_data: bytes,
    ) -> bytes: ...
