"""
Response chain — injector → verifier → recorder.

The response that carries the platform certificates is signed with one of
those same certificates. So each response is processed in a fixed order:

  1. injector  decrypts every envelope into the CertificateStore
  2. verifier  checks the response signature against the store
  3. recorder  writes the (now verified) certificates to disk

The chain is an explicit ordered list registered as a single httpx response
hook. Stages run synchronously, one after another, on the same response
object; the first exception aborts the remaining stages.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any, TextIO

import httpx
import structlog

from cert_downloader.domain.errors import MalformedResponse
from cert_downloader.domain.models import (
    CertificateRecord,
    CertificateStore,
    EncryptedEnvelope,
    parse_timestamp,
)
from cert_downloader.domain.ports import Decryptor, ResponseStage

log = structlog.get_logger()


def certificate_entries(response: httpx.Response) -> list[Any]:
    """
    The `data` array of a certificate-list response.

    A missing or non-array `data` means zero certificates. A body that is not
    JSON at all raises MalformedResponse.
    """
    try:
        body = json.loads(response.content)
    except ValueError as e:
        raise MalformedResponse("Response body is not valid JSON") from e
    data = body.get("data") if isinstance(body, dict) else None
    return data if isinstance(data, list) else []


def w3c(moment: datetime) -> str:
    """Format as YYYY-MM-DDTHH:MM:SS±HH:MM."""
    return moment.isoformat(timespec="seconds")


class ResponseChain:
    """Run named response stages in list order on every successful response."""

    def __init__(self, stages: Sequence[tuple[str, ResponseStage]]) -> None:
        self._stages = tuple(stages)

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self._stages]

    def run(self, response: httpx.Response) -> httpx.Response:
        for name, stage in self._stages:
            log.debug("chain.stage", stage=name)
            response = stage(response)
        return response

    async def __call__(self, response: httpx.Response) -> None:
        await response.aread()
        response.raise_for_status()
        self.run(response)


class CertificateInjector:
    """Decrypt every envelope of the response into the shared store."""

    def __init__(
        self,
        api_key: bytes,
        store: CertificateStore,
        decryptor: Decryptor,
    ) -> None:
        self._api_key = api_key
        self._store = store
        self._decrypt = decryptor

    def __call__(self, response: httpx.Response) -> httpx.Response:
        for entry in certificate_entries(response):
            envelope = EncryptedEnvelope.from_entry(entry)
            plaintext = self._decrypt(
                envelope.ciphertext,
                self._api_key,
                envelope.nonce,
                envelope.associated_data,
            )
            self._store.put(
                CertificateRecord(
                    serial_number=envelope.serial_no,
                    not_before=parse_timestamp(entry.get("effective_time")),
                    not_after=parse_timestamp(entry.get("expire_time")),
                    plaintext=plaintext,
                )
            )
            log.info("certificate.decrypted", serial_no=envelope.serial_no)
        return response


class CertificateRecorder:
    """
    Write each certificate of a verified response to `<output_dir>/wechatpay_<serial>.pem`.

    Files are written one by one in `data` order; a failure on one leaves the
    earlier files in place.
    """

    def __init__(
        self,
        output_dir: Path,
        store: CertificateStore,
        out: Callable[[], TextIO],
    ) -> None:
        self._output_dir = output_dir
        self._store = store
        self._out = out

    def output_path(self, serial_no: str) -> Path:
        return self._output_dir / f"wechatpay_{serial_no}.pem"

    def __call__(self, response: httpx.Response) -> httpx.Response:
        entries = certificate_entries(response)
        if entries:
            self._output_dir.mkdir(parents=True, exist_ok=True)
        for index, entry in enumerate(entries):
            try:
                serial_no = str(entry["serial_no"])
            except (KeyError, TypeError) as e:
                raise MalformedResponse(f"Certificate entry #{index} has no serial_no") from e
            plaintext = self._store.get(serial_no)
            if plaintext is None:
                raise MalformedResponse(f"Certificate {serial_no} was not decrypted")
            path = self.output_path(serial_no)

            self._report(
                index,
                serial_no,
                parse_timestamp(entry.get("effective_time")),
                parse_timestamp(entry.get("expire_time")),
                path,
                plaintext,
            )
            path.write_bytes(plaintext)
            log.info("certificate.saved", serial_no=serial_no, path=str(path))
        return response

    def _report(
        self,
        index: int,
        serial_no: str,
        not_before: datetime,
        not_after: datetime,
        path: Path,
        plaintext: bytes,
    ) -> None:
        out = self._out()
        out.write(
            f"Certificate #{index} {{\n"
            f"    Serial Number: {serial_no}\n"
            f"    Not Before: {w3c(not_before)}\n"
            f"    Not After: {w3c(not_after)}\n"
            f"    Saved to: {path}\n"
            f"    Content: \n\n{plaintext.decode('utf-8')}\n\n"
            "}\n"
        )
        out.flush()
