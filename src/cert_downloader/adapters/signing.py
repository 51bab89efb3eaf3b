"""
Signed HTTP adapter — request signing and response verification.

Adapter layer — the APIv3 authentication scheme on top of httpx:

  Request : WechatPayAuth (httpx.Auth) adds
            Authorization: WECHATPAY2-SHA256-RSA2048 mchid=..,nonce_str=..,
                           signature=..,timestamp=..,serial_no=..
            signed with the merchant RSA private key.
  Response: ResponseVerifier checks Wechatpay-Signature with the platform
            certificate named by Wechatpay-Serial, looked up in the
            CertificateStore it shares with the injector.

Both sides sign newline-terminated lines with RSA PKCS#1 v1.5 + SHA-256.
"""

from __future__ import annotations

import base64
import binascii
import secrets
import time
from collections.abc import Callable, Generator, Mapping

import httpx
import structlog
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from cert_downloader.domain.errors import VerificationFailure

log = structlog.get_logger()

AUTH_SCHEME = "WECHATPAY2-SHA256-RSA2048"
MAXIMUM_CLOCK_OFFSET_SECONDS = 300

HEADER_TIMESTAMP = "Wechatpay-Timestamp"
HEADER_NONCE = "Wechatpay-Nonce"
HEADER_SIGNATURE = "Wechatpay-Signature"
HEADER_SERIAL = "Wechatpay-Serial"
HEADER_REQUEST_ID = "Request-ID"


def load_private_key(pem: str) -> RSAPrivateKey:
    """Load the merchant's PEM-encoded RSA private key."""
    key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    if not isinstance(key, RSAPrivateKey):
        raise ValueError("Merchant private key must be an RSA key")
    return key


def _nonce() -> str:
    return secrets.token_hex(16).upper()


def _lines(*parts: str | bytes) -> bytes:
    """Join parts with '\\n', including a trailing newline."""
    return b"".join(
        (part if isinstance(part, bytes) else part.encode("utf-8")) + b"\n" for part in parts
    )


class WechatPayAuth(httpx.Auth):
    """
    httpx authentication flow that signs every outgoing request.

    The signed message is METHOD, canonical URL (path + query), timestamp,
    nonce and body, one per line.
    """

    requires_request_body = True

    def __init__(
        self,
        merchant_id: str,
        serial_no: str,
        private_key: RSAPrivateKey,
        clock: Callable[[], float] = time.time,
        nonce_factory: Callable[[], str] = _nonce,
    ) -> None:
        self._merchant_id = merchant_id
        self._serial_no = serial_no
        self._private_key = private_key
        self._clock = clock
        self._nonce_factory = nonce_factory

    def authorization(self, method: str, canonical_url: str, body: bytes) -> str:
        timestamp = str(int(self._clock()))
        nonce = self._nonce_factory()
        message = _lines(method.upper(), canonical_url, timestamp, nonce, body)
        signature = base64.b64encode(
            self._private_key.sign(message, padding.PKCS1v15(), hashes.SHA256())
        ).decode("ascii")
        return (
            f'{AUTH_SCHEME} mchid="{self._merchant_id}",nonce_str="{nonce}",'
            f'signature="{signature}",timestamp="{timestamp}",serial_no="{self._serial_no}"'
        )

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        canonical_url = request.url.raw_path.decode("ascii")
        request.headers["Authorization"] = self.authorization(
            request.method, canonical_url, request.content
        )
        yield request


class ResponseVerifier:
    """
    The `verifier` response stage.

    Reads platform certificates from the shared store by serial number. The
    bootstrap placeholder has no plaintext and therefore never verifies.
    """

    def __init__(
        self,
        store: Mapping[str, bytes | None],
        clock: Callable[[], float] = time.time,
        max_clock_offset: int = MAXIMUM_CLOCK_OFFSET_SECONDS,
    ) -> None:
        self._store = store
        self._clock = clock
        self._max_clock_offset = max_clock_offset

    def __call__(self, response: httpx.Response) -> httpx.Response:
        headers = response.headers
        missing = [
            name
            for name in (HEADER_TIMESTAMP, HEADER_NONCE, HEADER_SIGNATURE, HEADER_SERIAL)
            if name not in headers
        ]
        if missing:
            raise VerificationFailure(f"Response is missing headers: {', '.join(missing)}")

        timestamp = headers[HEADER_TIMESTAMP]
        try:
            offset = abs(self._clock() - int(timestamp))
        except ValueError as e:
            raise VerificationFailure(f"Invalid {HEADER_TIMESTAMP}: {timestamp!r}") from e
        if offset > self._max_clock_offset:
            raise VerificationFailure(
                f"{HEADER_TIMESTAMP} {timestamp} is {int(offset)}s away from local time"
            )

        serial = headers[HEADER_SERIAL]
        public_key = self._public_key(serial)
        message = _lines(timestamp, headers[HEADER_NONCE], response.content)
        try:
            signature = base64.b64decode(headers[HEADER_SIGNATURE], validate=True)
            public_key.verify(signature, message, padding.PKCS1v15(), hashes.SHA256())
        except (InvalidSignature, binascii.Error) as e:
            raise VerificationFailure(
                f"Signature check failed for platform certificate {serial}"
            ) from e

        log.info(
            "response.verified",
            serial_no=serial,
            request_id=headers.get(HEADER_REQUEST_ID),
        )
        return response

    def _public_key(self, serial: str) -> RSAPublicKey:
        pem = self._store.get(serial)
        if pem is None:
            raise VerificationFailure(f"No platform certificate available for serial {serial}")
        try:
            public_key = x509.load_pem_x509_certificate(pem).public_key()
        except ValueError as e:
            raise VerificationFailure(f"Platform certificate {serial} is not valid PEM") from e
        if not isinstance(public_key, RSAPublicKey):
            raise VerificationFailure(f"Platform certificate {serial} does not hold an RSA key")
        return public_key
