from __future__ import annotations

import datetime
from collections.abc import Iterator, Mapping
from typing import Any

from pdfsig._typing import SignatureFields
from pdfsig.exceptions import ByteRangeError, MalformedSignedDataError
from pdfsig.pdf.byte_range import ByteRange
from pdfsig.pdf.text import decode_text, parse_pdf_date
from pdfsig.x509.certificates import Certificate


class SignatureDictionary(Mapping[str, Any]):
    """Read-only view of the declared entries of a signature (ISO 32000-1, table
    252), keyed by PDF name without the leading slash. The field-level /Lock
    dictionary, if any, is available under ``Lock``.
    """

    def __init__(self, fields: SignatureFields):
        self._fields = dict(fields)

    def __getitem__(self, key: str) -> Any:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"SignatureDictionary({sorted(self._fields)})"

    def _text(self, key: str) -> str | None:
        return decode_text(self._fields.get(key))

    def _name(self, key: str) -> str | None:
        value = self._fields.get(key)
        return str(value) if value is not None else None

    @property
    def type(self) -> str:
        return self._name("Type") or "Sig"

    @property
    def filter(self) -> str | None:
        return self._name("Filter")

    @property
    def sub_filter(self) -> str | None:
        return self._name("SubFilter")

    @property
    def byte_range(self) -> ByteRange:
        """:raises ByteRangeError: if the /ByteRange is missing or malformed"""
        if "ByteRange" not in self._fields:
            raise ByteRangeError("Signature dictionary has no /ByteRange")
        return ByteRange.from_descriptor(self._fields["ByteRange"])

    @property
    def contents(self) -> bytes:
        """The raw signature value, including any zero padding.

        :raises MalformedSignedDataError: if /Contents is missing
        """
        contents = self._fields.get("Contents")
        if not isinstance(contents, bytes):
            raise MalformedSignedDataError("Signature dictionary has no /Contents")
        return contents

    @property
    def signer_name(self) -> str | None:
        return self._text("Name")

    @property
    def reason(self) -> str | None:
        return self._text("Reason")

    @property
    def location(self) -> str | None:
        return self._text("Location")

    @property
    def contact_info(self) -> str | None:
        return self._text("ContactInfo")

    @property
    def signing_time(self) -> datetime.datetime | None:
        """The time of signing according to /M. This is an unverified claim."""
        return parse_pdf_date(self._fields.get("M"))

    @property
    def certificates(self) -> list[Certificate]:
        """The certificates in /Cert, as used by ``adbe.x509.rsa_sha1``. The first
        one is the signer's.

        :raises MalformedSignedDataError: if a certificate can not be parsed
        """
        value = self._fields.get("Cert")
        if value is None:
            return []
        values = value if isinstance(value, list) else [value]
        try:
            certificates = [Certificate.from_der(v) for v in values]
            for certificate in certificates:
                certificate.serial_number  # noqa: B018
        except (ValueError, TypeError) as e:
            raise MalformedSignedDataError(f"/Cert could not be parsed: {e}")
        return certificates

    @property
    def references(self) -> list[Mapping[str, Any]]:
        """The signature reference dictionaries in /Reference."""
        value = self._fields.get("Reference")
        if isinstance(value, Mapping):
            return [value]
        if isinstance(value, list):
            return [ref for ref in value if isinstance(ref, Mapping)]
        return []

    @property
    def lock(self) -> Mapping[str, Any] | None:
        """The /Lock dictionary of the signature field."""
        value = self._fields.get("Lock")
        return value if isinstance(value, Mapping) else None
