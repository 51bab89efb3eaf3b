"""
Unit tests for the pipeline — chain assembly and failure classification.

The full HTTP round trip lives in tests/integration; here the chain is built
and exercised directly, and exceptions are classified in isolation.
"""

from __future__ import annotations

import io
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from cert_downloader.config import DownloadOptions
from cert_downloader.domain.errors import (
    CertificateConflict,
    DecryptionFailure,
    MalformedResponse,
    VerificationFailure,
)
from cert_downloader.domain.models import CertificateStore
from cert_downloader.pipeline import build_chain, classify_failure
from cert_downloader.railway import ErrorCode


class TestBuildChain:
    """
    GIVEN validated options and a bootstrapped store
    WHEN build_chain assembles the response chain
    THEN the order is injector → verifier → recorder.
    """

    def test_order(self, options: DownloadOptions) -> None:
        chain = build_chain(options, CertificateStore.bootstrap())
        assert chain.names == ["injector", "verifier", "recorder"]

    def test_custom_verifier_sees_injected_store(
        self,
        options: DownloadOptions,
        platform: Any,
        make_entry: Callable[..., dict[str, Any]],
        make_response: Callable[..., httpx.Response],
    ) -> None:
        store = CertificateStore.bootstrap()
        observed: list[bytes | None] = []

        def verifier(response: httpx.Response) -> httpx.Response:
            observed.append(store.get(platform.serial_no))
            return response

        out = io.StringIO()
        chain = build_chain(options, store, out=lambda: out, verifier=verifier)
        chain.run(make_response({"data": [make_entry(platform.serial_no, platform.pem)]}, platform))

        assert observed == [platform.pem]
        assert (options.output_dir / f"wechatpay_{platform.serial_no}.pem").exists()

    def test_default_verifier_uses_shared_store(
        self,
        options: DownloadOptions,
        platform: Any,
        make_entry: Callable[..., dict[str, Any]],
        make_response: Callable[..., httpx.Response],
    ) -> None:
        out = io.StringIO()
        chain = build_chain(options, CertificateStore.bootstrap(), out=lambda: out)
        response = make_response({"data": [make_entry(platform.serial_no, platform.pem)]}, platform)

        assert chain.run(response) is response
        assert "Certificate #0" in out.getvalue()


class TestClassifyFailure:
    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (DecryptionFailure("tag"), ErrorCode.DECRYPTION_FAILURE),
            (VerificationFailure("sig"), ErrorCode.VERIFICATION_FAILURE),
            (MalformedResponse("json"), ErrorCode.MALFORMED_RESPONSE),
            (CertificateConflict("dup"), ErrorCode.CERTIFICATE_CONFLICT),
            (httpx.ConnectError("refused"), ErrorCode.NETWORK_ERROR),
            (PermissionError("read-only"), ErrorCode.STORAGE_ERROR),
            (KeyError("x"), ErrorCode.UNKNOWN_ERROR),
        ],
    )
    def test_codes(self, error: Exception, code: ErrorCode) -> None:
        failure = classify_failure(error)
        assert failure.code is code
        assert failure.exception is error

    def test_status_error_keeps_body(self) -> None:
        request = httpx.Request("GET", "https://api.example.com/v3/certificates")
        response = httpx.Response(500, text='{"code":"SYSTEM_ERROR"}', request=request)
        error = httpx.HTTPStatusError("server error", request=request, response=response)

        failure = classify_failure(error)

        assert failure.code is ErrorCode.NETWORK_ERROR
        assert failure.message == "HTTP 500 from https://api.example.com/v3/certificates"
        assert failure.response_body == '{"code":"SYSTEM_ERROR"}'
