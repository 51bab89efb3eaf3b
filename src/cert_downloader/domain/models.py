"""
Domain models — certificate records, encrypted envelopes and the store.

CertificateRecord and EncryptedEnvelope are frozen dataclasses (value objects).
CertificateStore is the one deliberately mutable object in the system: it is
created by the orchestrator, handed to each response stage at construction
time, and written exactly once per serial number by the injector.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cert_downloader.domain.errors import CertificateConflict, MalformedResponse

PLACEHOLDER_SERIAL = "any"


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an RFC 3339 timestamp as sent by the platform.

    Naive values are interpreted in the local timezone so the result is
    always timezone-aware.
    """
    if not isinstance(value, str):
        raise MalformedResponse(f"Expected an RFC 3339 timestamp, got {value!r}")
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise MalformedResponse(f"Invalid timestamp {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


@dataclass(frozen=True, slots=True)
class CertificateRecord:
    """
    A decrypted platform certificate and its validity window.

    `plaintext` is the PEM text as bytes; it is None only for the bootstrap
    placeholder that seeds every store.
    """

    serial_number: str
    not_before: datetime | None = None
    not_after: datetime | None = None
    plaintext: bytes | None = field(default=None, repr=False)

    @property
    def is_placeholder(self) -> bool:
        return self.plaintext is None


@dataclass(frozen=True, slots=True)
class EncryptedEnvelope:
    """
    One `encrypt_certificate` object from the `v3/certificates` response.

    The ciphertext is base64-decoded (ciphertext || 16-byte GCM tag); nonce and
    associated data are the raw UTF-8 bytes of the JSON strings.
    """

    serial_no: str
    ciphertext: bytes = field(repr=False)
    nonce: bytes
    associated_data: bytes

    @classmethod
    def from_entry(cls, entry: Any) -> EncryptedEnvelope:
        """Build an envelope from one element of the response `data` array."""
        try:
            serial_no = entry["serial_no"]
            encrypted = entry["encrypt_certificate"]
            ciphertext = base64.b64decode(encrypted["ciphertext"], validate=True)
            nonce = encrypted["nonce"]
            associated_data = encrypted.get("associated_data") or ""
        except (KeyError, TypeError, AttributeError) as e:
            raise MalformedResponse(f"Certificate entry is missing {e}") from e
        except (binascii.Error, ValueError) as e:
            raise MalformedResponse(f"Ciphertext for {entry.get('serial_no')!r} is not base64") from e
        return cls(
            serial_no=str(serial_no),
            ciphertext=ciphertext,
            nonce=str(nonce).encode("utf-8"),
            associated_data=str(associated_data).encode("utf-8"),
        )


class CertificateStore(Mapping[str, bytes | None]):
    """
    Serial number → PEM plaintext, shared by the injector, verifier and recorder.

    Reads go through the Mapping interface. Writes go through put(), which
    refuses to replace existing plaintext with different content.
    """

    def __init__(self, records: Mapping[str, CertificateRecord] | None = None) -> None:
        self._records: dict[str, CertificateRecord] = dict(records or {})

    @classmethod
    def bootstrap(cls) -> CertificateStore:
        """A fresh store holding only the `"any"` placeholder."""
        return cls({PLACEHOLDER_SERIAL: CertificateRecord(serial_number=PLACEHOLDER_SERIAL)})

    def put(self, record: CertificateRecord) -> None:
        if record.plaintext is None:
            raise ValueError("Only decrypted certificates can be stored")
        existing = self._records.get(record.serial_number)
        if existing is not None and existing.plaintext is not None:
            if existing.plaintext != record.plaintext:
                raise CertificateConflict(
                    f"Certificate {record.serial_number} already stored with different content"
                )
            return
        self._records[record.serial_number] = record

    def record(self, serial_number: str) -> CertificateRecord:
        return self._records[serial_number]

    def records(self) -> list[CertificateRecord]:
        """Decrypted certificates in the order they were stored."""
        return [r for r in self._records.values() if not r.is_placeholder]

    def __getitem__(self, serial_number: str) -> bytes | None:
        return self._records[serial_number].plaintext

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"CertificateStore({list(self._records)!r})"
