from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import cast

from asn1crypto import tsp

from pdfsig._typing import HashFunction
from pdfsig.asn1.hashing import _get_digest_algorithm, compute_digest
from pdfsig.asn1.helpers import accuracy_to_python
from pdfsig.exceptions import (
    MalformedSignedDataError,
    NoSigningCertificateError,
    TimestampParseError,
)
from pdfsig.pkcs7 import SignedData, SignerInfo
from pdfsig.x509 import (
    Certificate,
    CertificateName,
    CertificateStore,
    CertificateValidity,
)

logger = logging.getLogger(__name__)


class TimestampSignerInfo(SignerInfo):
    """Subclass of SignerInfo that is used to contain the signerinfo of a
    :class:`TimestampSignedData`.
    """

    _expected_content_type = "tst_info"
    _timestamp_class_name = None  # prevent nested timestamps


class TSTInfo:
    """This is an implementation of the TSTInfo class as defined by RFC3161, used as
    content for a SignedData structure.
    """

    def __init__(self, asn1: tsp.TSTInfo):
        """
        :param asn1: The ASN.1 structure of the TSTInfo object
        """
        self.asn1 = asn1
        try:
            self._validate_asn1()
        except (ValueError, TypeError, KeyError) as e:
            raise TimestampParseError(f"TSTInfo could not be parsed: {e}")

    def _validate_asn1(self) -> None:
        if self.asn1["version"].native != "v1":
            raise TimestampParseError(
                f"TSTInfo.version must be v1, not {self.asn1['version'].native}"
            )
        self.hash_algorithm  # noqa: B018
        self.signing_time  # noqa: B018

    @property
    def hash_algorithm(self) -> HashFunction:
        """The hash algorithm of the message imprint."""
        return _get_digest_algorithm(
            self.asn1["message_imprint"]["hash_algorithm"],
            location="TSTInfo.messageImprint.hashAlgorithm",
        )

    @property
    def message_digest(self) -> bytes:
        """The hashed message"""
        return cast(bytes, self.asn1["message_imprint"]["hashed_message"].native)

    @property
    def serial_number(self) -> int:
        """The serial number of this timestamp"""
        return cast(int, self.asn1["serial_number"].native)

    @property
    def signing_time(self) -> datetime.datetime:
        """The time this timestamp was generated"""
        return cast(datetime.datetime, self.asn1["gen_time"].native)

    @property
    def signing_time_accuracy(self) -> datetime.timedelta | None:
        """The accuracy of the above time"""
        if self.asn1["accuracy"].native is None:
            return None
        return accuracy_to_python(self.asn1["accuracy"])

    @property
    def signing_authority(self) -> CertificateName | None:
        """The authority generating this timestamp"""
        if self.asn1["tsa"].native is None:
            return None
        return CertificateName(self.asn1["tsa"])


class TimestampSignedData(SignedData):
    """An RFC3161 timestamp token: a SignedData structure containing a
    :class:`TSTInfo`, signed by a timestamp authority (TSA). It is either attached
    to a signature as the ``signature-time-stamp-token`` unsigned attribute, stamping
    the signature value, or stored as a document timestamp, stamping the covered
    bytes of the document.
    """

    content_asn1: tsp.TSTInfo
    _expected_content_type = "tst_info"
    _signerinfo_class = TimestampSignerInfo
    _parse_error = TimestampParseError

    def _validate_asn1(self) -> None:
        super()._validate_asn1()
        if self.is_detached:
            raise TimestampParseError("Timestamp token does not contain a TSTInfo")
        self.tst_info  # noqa: B018

    @property
    def tst_info(self) -> TSTInfo:
        """Contains the :class:`TSTInfo` class for this SignedData."""
        return TSTInfo(self.content_asn1)

    @property
    def signing_time(self) -> datetime.datetime:
        """The time of the timestamp, according to the TSA."""
        return self.tst_info.signing_time

    def check_message_digest(self, data: bytes) -> bool:
        """Given the data, returns whether the hash_algorithm and message_digest match
        the data provided.
        """
        return (
            compute_digest(self.tst_info.hash_algorithm, data)
            == self.tst_info.message_digest
        )

    def check_token_signature(self, certificate: Certificate) -> tuple[bool, bool]:
        """Checks the TSA's signature over the :class:`TSTInfo`, returning the
        integrity and authenticity of the token.
        """
        return self.signer_info.check_signature(
            certificate, self.get_content_digest()
        )


@dataclass(frozen=True)
class TimestampResult:
    """The outcome of validating a timestamp token."""

    token_signature_valid: bool
    """The TSA's signature over the token verifies and the token is intact."""
    imprint_matches: bool
    """The message imprint of the token equals the digest of the stamped data."""
    timestamp: datetime.datetime | None = None
    tsa_name: str | None = None
    tsa_certificate: Certificate | None = None
    tsa_certificate_valid: CertificateValidity | None = None
    """The validity of the TSA certificate at :attr:`timestamp`."""
    error: str | None = None
    """Set when the token could not be parsed, or its certificate not found."""

    @property
    def is_valid(self) -> bool:
        return self.token_signature_valid and self.imprint_matches

    @classmethod
    def failed(cls, error: Exception | str) -> TimestampResult:
        return cls(token_signature_valid=False, imprint_matches=False, error=str(error))


def validate_timestamp(
    token: TimestampSignedData,
    stamped_data: bytes,
    *,
    certificate_store: CertificateStore | None = None,
) -> TimestampResult:
    """Validates a timestamp token against the data it stamps. For a timestamp
    attached to a signature, that is the encrypted digest of the signature.

    Failed checks are reported in the result, and never raise.

    :param token: The timestamp token
    :param stamped_data: The data of which the digest should be in the token
    :param certificate_store: Additional certificates to search for the TSA
        certificate
    """
    try:
        tst_info = token.tst_info
        imprint_matches = token.check_message_digest(stamped_data)
    except MalformedSignedDataError as e:
        logger.debug(f"Timestamp token could not be processed: {e}")
        return TimestampResult.failed(e)

    authority = tst_info.signing_authority
    tsa_name = authority.dn if authority is not None else None

    try:
        certificate = token.signer_certificate(certificate_store)
    except NoSigningCertificateError as e:
        logger.debug(f"TSA certificate not found: {e}")
        return TimestampResult(
            token_signature_valid=False,
            imprint_matches=imprint_matches,
            timestamp=tst_info.signing_time,
            tsa_name=tsa_name,
            error=str(e),
        )

    intact, valid = token.check_token_signature(certificate)
    if tsa_name is None:
        tsa_name = certificate.subject.dn

    return TimestampResult(
        token_signature_valid=intact and valid,
        imprint_matches=imprint_matches,
        timestamp=tst_info.signing_time,
        tsa_name=tsa_name,
        tsa_certificate=certificate,
        tsa_certificate_valid=certificate.validity_at(tst_info.signing_time),
    )
