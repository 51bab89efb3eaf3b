"""
Domain exceptions raised by response stages.

Stages run inside an httpx response hook, where raising is the only way to
abort processing of a response. Each exception carries the ErrorCode the
orchestrator uses when it moves the failure onto the railway.
"""

from __future__ import annotations

from cert_downloader.railway import ErrorCode


class CertificateDownloadError(Exception):
    """Base class for every failure a response stage can signal."""

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR


class DecryptionFailure(CertificateDownloadError):
    """AEAD authentication failed: tampered ciphertext, wrong key or wrong AAD."""

    code = ErrorCode.DECRYPTION_FAILURE


class VerificationFailure(CertificateDownloadError):
    """The response signature could not be checked or did not match."""

    code = ErrorCode.VERIFICATION_FAILURE


class MalformedResponse(CertificateDownloadError):
    """The body is not JSON, or a certificate entry lacks required fields."""

    code = ErrorCode.MALFORMED_RESPONSE


class CertificateConflict(CertificateDownloadError):
    """A serial number already holds different plaintext."""

    code = ErrorCode.CERTIFICATE_CONFLICT
