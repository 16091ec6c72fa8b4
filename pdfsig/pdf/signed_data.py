from __future__ import annotations

import datetime
import hashlib
import logging
from functools import cached_property
from typing import cast

from asn1crypto import core

from pdfsig._typing import HashFunction
from pdfsig.asn1.hashing import ACCEPTED_DIGEST_ALGORITHMS, compute_digest
from pdfsig.exceptions import (
    CertificateVerificationError,
    MalformedSignedDataError,
    NoSigningCertificateError,
    TimestampParseError,
)
from pdfsig.pdf.dictionary import SignatureDictionary
from pdfsig.pdf.tsp import TimestampSignedData
from pdfsig.pkcs7 import SignedData, SignerInfo
from pdfsig.x509 import Certificate, CertificateStore

logger = logging.getLogger(__name__)


class PdfSignerInfo(SignerInfo):
    """The signer of a CMS-based PDF signature. The signature may carry an RFC3161
    timestamp token over its signature value.
    """

    _expected_content_type = "data"


class PdfSignedData(SignedData):
    _signerinfo_class = PdfSignerInfo


class PdfSignature:
    """A parsed PDF signature value, as produced by a
    :class:`~pdfsig.pdf.parsers.SignedDataParser`. This is the common interface of
    all supported signature formats.

    :param dictionary: The signature dictionary the value was read from
    :param certificate_store: Certificates supplied by the caller, used when the
        signature does not embed the certificate of its signer
    """

    is_document_timestamp = False

    def __init__(
        self,
        dictionary: SignatureDictionary,
        certificate_store: CertificateStore | None = None,
    ):
        self.dictionary = dictionary
        self.certificate_store = certificate_store

    @property
    def sub_filter(self) -> str | None:
        return self.dictionary.sub_filter

    @property
    def digest_algorithm(self) -> HashFunction:
        raise NotImplementedError

    @property
    def encryption_algorithm(self) -> str:
        raise NotImplementedError

    @property
    def encrypted_digest(self) -> bytes:
        raise NotImplementedError

    @property
    def certificates(self) -> CertificateStore:
        """The certificates embedded in the signature."""
        raise NotImplementedError

    @property
    def signer_certificate(self) -> Certificate:
        """:raises NoSigningCertificateError: if the certificate is not available"""
        raise NotImplementedError

    @property
    def signed_signing_time(self) -> datetime.datetime | None:
        """The signing time as covered by the signature itself, if any."""
        return None

    @property
    def timestamp_token(self) -> TimestampSignedData | None:
        """:raises TimestampParseError: if a token is present but malformed"""
        return None

    def timestamped_data(self, covered: bytes) -> bytes:
        """The data that the :attr:`timestamp_token` should stamp."""
        return self.encrypted_digest

    def compute_digest(self, covered: bytes) -> bytes:
        return compute_digest(self.digest_algorithm, covered)

    def verify_integrity(self, covered: bytes) -> tuple[bool, bool]:
        """Verifies the signature over the covered bytes of the document. Returns a
        tuple of whether the signed digest equals the digest of ``covered``
        (integrity) and whether the signature verifies with the signer's public key
        (authenticity). A failed check does not raise.

        :raises NoSigningCertificateError: if the signer's certificate is not
            available
        """
        raise NotImplementedError


class CmsSignature(PdfSignature):
    """A detached CMS signature (``adbe.pkcs7.detached`` and
    ``ETSI.CAdES.detached``): the signer signs the digest of the covered bytes.
    """

    def __init__(
        self,
        signed_data: SignedData,
        dictionary: SignatureDictionary,
        certificate_store: CertificateStore | None = None,
    ):
        super().__init__(dictionary, certificate_store)
        self.signed_data = signed_data

    @property
    def signer_info(self) -> SignerInfo:
        return self.signed_data.signer_info

    @property
    def digest_algorithm(self) -> HashFunction:
        return self.signer_info.digest_algorithm

    @property
    def encryption_algorithm(self) -> str:
        try:
            return cast(str, self.signer_info.signature_algorithm.signature_algo)
        except ValueError:
            return self.signer_info.digest_encryption_algorithm

    @property
    def encrypted_digest(self) -> bytes:
        return self.signer_info.encrypted_digest

    @property
    def certificates(self) -> CertificateStore:
        return self.signed_data.certificates

    @cached_property
    def signer_certificate(self) -> Certificate:
        return self.signed_data.signer_certificate(self.certificate_store)

    @property
    def signed_signing_time(self) -> datetime.datetime | None:
        return self.signer_info.signing_time

    @cached_property
    def timestamp_token(self) -> TimestampSignedData | None:
        return self.signer_info.timestamp_token

    def signed_content_digest(self, covered: bytes) -> tuple[bool, bytes]:
        """Returns whether the encapsulated content, if any, is consistent with the
        covered bytes, and the digest the signer info should carry.
        """
        return True, self.compute_digest(covered)

    def verify_integrity(self, covered: bytes) -> tuple[bool, bool]:
        content_intact, digest = self.signed_content_digest(covered)
        intact, valid = self.signer_info.check_signature(
            self.signer_certificate, digest
        )
        return content_intact and intact, valid


class Sha1CmsSignature(CmsSignature):
    """An ``adbe.pkcs7.sha1`` signature: the SHA-1 digest of the covered bytes is
    encapsulated in the CMS structure, which is signed as regular content.
    """

    @property
    def digest_algorithm(self) -> HashFunction:
        return hashlib.sha1

    def signed_content_digest(self, covered: bytes) -> tuple[bool, bytes]:
        content = self.signed_data.content_bytes
        return (
            content == compute_digest(hashlib.sha1, covered),
            compute_digest(self.signer_info.digest_algorithm, content),
        )


class RawRsaSignature(PdfSignature):
    """An ``adbe.x509.rsa_sha1`` signature: /Contents holds a bare PKCS#1 signature
    over the digest of the covered bytes, and /Cert holds the signer's certificate
    followed by its chain.
    """

    def __init__(
        self,
        signature: bytes,
        dictionary: SignatureDictionary,
        certificate_store: CertificateStore | None = None,
    ):
        super().__init__(dictionary, certificate_store)
        self.signature = signature
        self._certificates = dictionary.certificates

    @property
    def encryption_algorithm(self) -> str:
        return "rsassa_pkcs1v15"

    @property
    def encrypted_digest(self) -> bytes:
        return self.signature

    @property
    def certificates(self) -> CertificateStore:
        return CertificateStore(self._certificates)

    @cached_property
    def signer_certificate(self) -> Certificate:
        if self._certificates:
            return self._certificates[0]
        raise NoSigningCertificateError(
            "Signature dictionary does not contain the signer certificate in /Cert"
        )

    @cached_property
    def _recovered_digest(self) -> tuple[str | None, bytes] | None:
        try:
            return self.signer_certificate.recover_digest_info(self.signature)
        except CertificateVerificationError as e:
            logger.debug(f"Unable to recover the digest of the signature: {e}")
            return None

    @property
    def digest_algorithm(self) -> HashFunction:
        """The algorithm in the signed DigestInfo. Although the name of the format
        implies SHA-1, later versions of the format allow SHA-256 and up.
        """
        recovered = self._recovered_digest
        if recovered is not None and recovered[0] in ACCEPTED_DIGEST_ALGORITHMS:
            return cast(HashFunction, getattr(hashlib, recovered[0]))
        return hashlib.sha1

    def verify_integrity(self, covered: bytes) -> tuple[bool, bool]:
        self.signer_certificate  # noqa: B018
        recovered = self._recovered_digest
        if recovered is None:
            return False, False
        return recovered[1] == self.compute_digest(covered), True


class DocumentTimestamp(PdfSignature):
    """An ``ETSI.RFC3161`` document timestamp: /Contents holds a timestamp token
    whose message imprint is the digest of the covered bytes.
    """

    is_document_timestamp = True

    def __init__(
        self,
        token: TimestampSignedData,
        dictionary: SignatureDictionary,
        certificate_store: CertificateStore | None = None,
    ):
        super().__init__(dictionary, certificate_store)
        self.token = token

    @property
    def digest_algorithm(self) -> HashFunction:
        return self.token.tst_info.hash_algorithm

    @property
    def encryption_algorithm(self) -> str:
        try:
            return cast(str, self.token.signer_info.signature_algorithm.signature_algo)
        except ValueError:
            return self.token.signer_info.digest_encryption_algorithm

    @property
    def encrypted_digest(self) -> bytes:
        return self.token.signer_info.encrypted_digest

    @property
    def certificates(self) -> CertificateStore:
        return self.token.certificates

    @cached_property
    def signer_certificate(self) -> Certificate:
        return self.token.signer_certificate(self.certificate_store)

    @property
    def signed_signing_time(self) -> datetime.datetime | None:
        return self.token.signing_time

    @property
    def timestamp_token(self) -> TimestampSignedData | None:
        return self.token

    def timestamped_data(self, covered: bytes) -> bytes:
        return covered

    def verify_integrity(self, covered: bytes) -> tuple[bool, bool]:
        intact, valid = self.token.check_token_signature(self.signer_certificate)
        return intact and self.token.check_message_digest(covered), valid


def load_raw_signature(blob: bytes) -> bytes:
    """Reads the DER OCTET STRING of an ``adbe.x509.rsa_sha1`` signature, ignoring
    the zero padding of the /Contents placeholder.

    :raises MalformedSignedDataError: if the blob is not an OCTET STRING
    """
    if not blob or blob[0] != 0x04:
        raise MalformedSignedDataError("Signature value is not an OCTET STRING")
    try:
        return cast(bytes, core.OctetString.load(blob, strict=False).native)
    except (ValueError, TypeError) as e:
        raise MalformedSignedDataError(f"Signature value could not be parsed: {e}")


def load_timestamp_token(blob: bytes) -> TimestampSignedData:
    """:raises TimestampParseError: if the blob is not a timestamp token"""
    try:
        return TimestampSignedData.from_envelope(blob)
    except TimestampParseError:
        raise
    except MalformedSignedDataError as e:
        raise TimestampParseError(str(e))
