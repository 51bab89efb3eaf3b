"""
Pipeline — fetch, decrypt, verify and persist the platform certificates.

Orchestration of one download run:

  Init       CertificateStore.bootstrap()  → {"any": None}
  Configure  ResponseChain [injector, verifier, recorder] on a signed client
  Dispatch   GET v3/certificates
  Await      the response chain runs inside the client's response hook
  Result     Success(list[CertificateRecord]) or Failure(<classified error>)

Exceptions from httpx and from the stages are classified into ErrorCodes
here; nothing raises past run_download.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable
from typing import TextIO

import httpx
import structlog

from cert_downloader.adapters.aead import decrypt
from cert_downloader.adapters.http_client import create_client
from cert_downloader.adapters.signing import ResponseVerifier
from cert_downloader.config import DownloadOptions
from cert_downloader.domain.errors import CertificateDownloadError
from cert_downloader.domain.models import CertificateRecord, CertificateStore
from cert_downloader.interceptors import CertificateInjector, CertificateRecorder, ResponseChain
from cert_downloader.railway import ErrorCode, FailureDescription, Result

log = structlog.get_logger()

CERTIFICATES_PATH = "v3/certificates"


def _stdout() -> TextIO:
    return sys.stdout


def build_chain(
    options: DownloadOptions,
    store: CertificateStore,
    out: Callable[[], TextIO] = _stdout,
    verifier: Callable[[httpx.Response], httpx.Response] | None = None,
) -> ResponseChain:
    """
    Assemble the response chain around the verifier.

    The order is fixed: the injector must fill the store before the verifier
    reads it, and the recorder must only see verified responses.
    """
    return ResponseChain(
        [
            ("injector", CertificateInjector(options.api_key_bytes, store, decrypt)),
            ("verifier", verifier or ResponseVerifier(store)),
            ("recorder", CertificateRecorder(options.output_dir, store, out)),
        ]
    )


def classify_failure(error: Exception) -> FailureDescription:
    """Map an exception raised while fetching into a FailureDescription."""
    match error:
        case CertificateDownloadError():
            return FailureDescription.create(error.code, str(error), error)
        case httpx.HTTPStatusError(response=response):
            return FailureDescription.create(
                ErrorCode.NETWORK_ERROR,
                f"HTTP {response.status_code} from {response.request.url}",
                error,
                response_body=response.text,
            )
        case httpx.HTTPError():
            return FailureDescription.create(
                ErrorCode.NETWORK_ERROR, f"{type(error).__name__}: {error}", error
            )
        case OSError():
            return FailureDescription.create(
                ErrorCode.STORAGE_ERROR, f"Cannot write certificate: {error}", error
            )
        case _:
            return FailureDescription.create(
                ErrorCode.UNKNOWN_ERROR, f"{type(error).__name__}: {error}", error
            )


async def fetch_certificates(
    client: httpx.AsyncClient,
    store: CertificateStore,
) -> Result[list[CertificateRecord]]:
    """
    Issue the single certificate-list request and wait for it to settle.

    By the time the request returns, the response chain has already run.
    """

    async def _fetch() -> list[CertificateRecord]:
        async with client:
            await client.get(CERTIFICATES_PATH)
        return store.records()

    return await Result.from_awaitable(_fetch(), classify_failure)


def run_download(
    options: DownloadOptions,
    timeout: float = 60,
    trace: bool = True,
    out: Callable[[], TextIO] = _stdout,
) -> Result[list[CertificateRecord]]:
    """
    Execute one complete download run.

    Returns Success with the decrypted certificates (possibly empty), or the
    classified failure. The store lives only for the duration of this call.
    """
    store = CertificateStore.bootstrap()
    log.info(
        "download.start",
        merchant_id=options.merchant_id,
        base_uri=options.base_uri,
        output_dir=str(options.output_dir),
    )

    client_result = Result.from_computation(
        lambda: create_client(options, build_chain(options, store, out), timeout, trace),
        ErrorCode.CONFIGURATION_ERROR,
        "Cannot build signed client",
    )
    return (
        client_result.flat_map(lambda client: asyncio.run(fetch_certificates(client, store)))
        .peek(lambda records: log.info("download.completed", certificates=len(records)))
        .peek_failure(lambda err: log.error("download.failed", failure=str(err)))
    )


def report_failure(failure: FailureDescription, out: TextIO) -> None:
    """Print message, platform response body (if any) and stack trace."""
    out.write(f"{failure.message}\n")
    if failure.response_body:
        out.write(f"{failure.response_body}\n\n\n")
    out.write(f"{failure.full_stack_trace()}\n")
    out.flush()
