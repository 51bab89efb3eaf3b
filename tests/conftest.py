"""
Shared test fixtures for the cert-downloader test suite.

Generates real key material with `cryptography`:
  - a platform RSA key + self-signed certificate (what the API encrypts and signs with)
  - a merchant RSA key written to a PEM file (what the client signs requests with)

and provides factories that build encrypted envelopes and signed
`v3/certificates` responses exactly as the platform would.
"""

from __future__ import annotations

import base64
import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.x509.oid import NameOID

from cert_downloader.config import DownloadOptions

API_KEY = "0123456789abcdefghijklmnopqrstuv"
MERCHANT_ID = "1900000001"
MERCHANT_SERIAL = "MERCHANT0001"
BASE_URI = "https://api.example.com/"
CERTIFICATES_URL = f"{BASE_URI}v3/certificates"
NONCE = "c5ac7061fccf"
ASSOCIATED_DATA = "certificate"


@dataclass(frozen=True)
class PlatformIdentity:
    """A platform certificate and the key that signs responses with it."""

    serial_no: str
    private_key: rsa.RSAPrivateKey
    pem: bytes


def _self_signed(key: rsa.RSAPrivateKey, serial: int) -> bytes:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Tenpay.com Root CA")])
    now = datetime.now(UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(serial)
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM)


@pytest.fixture(scope="session")
def platform() -> PlatformIdentity:
    """Platform certificate used to sign test responses."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    serial = 0x5157F09EFDC096DE15EBE81A47057A72
    return PlatformIdentity(serial_no=f"{serial:X}", private_key=key, pem=_self_signed(key, serial))


@pytest.fixture(scope="session")
def merchant_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture()
def merchant_key_file(tmp_path: Path, merchant_key: rsa.RSAPrivateKey) -> Path:
    """Merchant private key written as PKCS#8 PEM."""
    path = tmp_path / "apiclient_key.pem"
    path.write_bytes(
        merchant_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return path


@pytest.fixture()
def make_entry() -> Callable[..., dict[str, Any]]:
    """Factory for one element of the response `data` array."""

    def _make(
        serial_no: str,
        plaintext: bytes,
        effective_time: str = "2024-01-01T00:00:00+08:00",
        expire_time: str = "2029-01-01T00:00:00+08:00",
        key: str = API_KEY,
        nonce: str = NONCE,
        associated_data: str = ASSOCIATED_DATA,
    ) -> dict[str, Any]:
        ciphertext = AESGCM(key.encode()).encrypt(
            nonce.encode(), plaintext, associated_data.encode()
        )
        return {
            "serial_no": serial_no,
            "effective_time": effective_time,
            "expire_time": expire_time,
            "encrypt_certificate": {
                "algorithm": "AEAD_AES_256_GCM",
                "nonce": nonce,
                "associated_data": associated_data,
                "ciphertext": base64.b64encode(ciphertext).decode(),
            },
        }

    return _make


@pytest.fixture()
def signed_headers() -> Callable[..., dict[str, str]]:
    """Factory for the Wechatpay-* headers the platform attaches to a body."""

    def _sign(
        body: bytes,
        identity: PlatformIdentity,
        timestamp: int | None = None,
        nonce: str = "593BEC0C930BF1AFEB40B4A08C8FB242",
    ) -> dict[str, str]:
        ts = str(int(time.time()) if timestamp is None else timestamp)
        message = f"{ts}\n{nonce}\n".encode() + body + b"\n"
        signature = identity.private_key.sign(message, padding.PKCS1v15(), hashes.SHA256())
        return {
            "Wechatpay-Timestamp": ts,
            "Wechatpay-Nonce": nonce,
            "Wechatpay-Signature": base64.b64encode(signature).decode(),
            "Wechatpay-Serial": identity.serial_no,
            "Request-ID": "08F78BB5AF0610D302A1D8F80C2F2E70",
        }

    return _sign


@pytest.fixture()
def make_response(signed_headers: Callable[..., dict[str, str]]) -> Callable[..., httpx.Response]:
    """Factory for a complete, signed `v3/certificates` httpx.Response."""

    def _make(
        payload: Any,
        identity: PlatformIdentity,
        status_code: int = 200,
        **sign_kwargs: Any,
    ) -> httpx.Response:
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        return httpx.Response(
            status_code,
            content=body,
            headers={"Content-Type": "application/json", **signed_headers(body, identity, **sign_kwargs)},
            request=httpx.Request("GET", CERTIFICATES_URL),
        )

    return _make


@pytest.fixture()
def api_key() -> bytes:
    return API_KEY.encode()


@pytest.fixture()
def options(tmp_path: Path, merchant_key_file: Path) -> DownloadOptions:
    """Validated options pointing at the test base URI and a temp output dir."""
    return DownloadOptions(
        api_key=API_KEY,
        merchant_id=MERCHANT_ID,
        serial_no=MERCHANT_SERIAL,
        private_key_pem=merchant_key_file.read_text(),
        output_dir=tmp_path / "certs",
        base_uri=BASE_URI,
    )
