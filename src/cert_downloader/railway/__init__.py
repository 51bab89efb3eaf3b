"""
Railway-Oriented Programming primitives used across the downloader.

    from cert_downloader.railway import Result, ErrorCode

    Result.from_computation(
        lambda: key_path.read_text(),
        ErrorCode.CONFIGURATION_ERROR,
        "Cannot read private key",
    ).map(str.strip)
"""

from cert_downloader.railway.assertions import ResultAssertions
from cert_downloader.railway.execution import (
    ExecutionContext,
    LoggingExecutionContext,
    NoOpExecutionContext,
)
from cert_downloader.railway.failure import ErrorCode, FailureDescription
from cert_downloader.railway.result import Failure, Result, Success

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ResultAssertions",
]
