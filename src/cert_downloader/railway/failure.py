"""
Failure description — structured error information for the failure track.

Every way a certificate download can go wrong is named by an ErrorCode.
The FailureDescription carries that code together with the human message,
the originating exception (for stack traces) and, for HTTP failures, the
response body returned by the platform.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from typing import Optional


@unique
class ErrorCode(Enum):
    """
    Structured error codes for the failure track.

    - Input: VALIDATION_ERROR, CONFIGURATION_ERROR
    - Download pipeline: NETWORK_ERROR, MALFORMED_RESPONSE, DECRYPTION_FAILURE,
      VERIFICATION_FAILURE, CERTIFICATE_CONFLICT, STORAGE_ERROR
    - Anything else: TECHNICAL_ERROR, UNKNOWN_ERROR
    """

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Missing or malformed user input."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """Options that parse but cannot be used (unreadable key file, bad key length)."""

    NETWORK_ERROR = "NETWORK_ERROR"
    """Transport failure or non-2xx HTTP status."""

    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    """Response body is not the expected JSON shape."""

    DECRYPTION_FAILURE = "DECRYPTION_FAILURE"
    """AEAD tag check failed for a certificate envelope."""

    VERIFICATION_FAILURE = "VERIFICATION_FAILURE"
    """Response signature could not be verified against the fetched certificates."""

    CERTIFICATE_CONFLICT = "CERTIFICATE_CONFLICT"
    """A serial number was delivered twice with different content."""

    STORAGE_ERROR = "STORAGE_ERROR"
    """Writing a certificate to disk failed."""

    TECHNICAL_ERROR = "TECHNICAL_ERROR"
    """Unexpected exception escaping an execution context."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    """Unclassified failure."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor.

    >>> desc = FailureDescription(ErrorCode.NETWORK_ERROR, "connection refused")
    >>> desc.code
    <ErrorCode.NETWORK_ERROR: 'NETWORK_ERROR'>
    """

    code: ErrorCode
    message: str
    exception: Optional[BaseException] = field(default=None, repr=False)
    response_body: Optional[str] = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @staticmethod
    def create(
        code: ErrorCode,
        message: str,
        exception: Optional[BaseException] = None,
        response_body: Optional[str] = None,
    ) -> FailureDescription:
        return FailureDescription(
            code=code,
            message=message,
            exception=exception,
            response_body=response_body,
        )

    def full_stack_trace(self) -> str:
        """Message followed by the formatted exception chain, if any."""
        if self.exception is None:
            return self.message
        tb = "".join(
            traceback.format_exception(
                type(self.exception), self.exception, self.exception.__traceback__
            )
        )
        return f"{self.message}\n{tb}"

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"
