from __future__ import annotations

import datetime
import importlib
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, cast

from asn1crypto import algos, cms, core
from asn1crypto.core import Asn1Value

from pdfsig._typing import HashFunction
from pdfsig.asn1.hashing import _get_digest_algorithm, compute_digest
from pdfsig.exceptions import (
    CertificateVerificationError,
    MalformedSignedDataError,
    NoSigningCertificateError,
    TimestampParseError,
)
from pdfsig.x509.certificates import Certificate, CertificateName
from pdfsig.x509.store import CertificateStore

if TYPE_CHECKING:
    from pdfsig.pdf.tsp import TimestampSignedData
    from pdfsig.pkcs7.signed_data import SignedData

logger = logging.getLogger(__name__)


class SignerInfo:
    """The SignerInfo class is defined in RFC2315 and RFC5652 (amongst others) and
    defines the per-signer information in a :class:`SignedData` structure.

    It is based on the following ASN.1 object (as per RFC5652)::

        SignerInfo ::= SEQUENCE {
          version CMSVersion,
          sid SignerIdentifier,
          digestAlgorithm DigestAlgorithmIdentifier,
          signedAttrs [0] IMPLICIT SignedAttributes OPTIONAL,
          signatureAlgorithm SignatureAlgorithmIdentifier,
          signature SignatureValue,
          unsignedAttrs [1] IMPLICIT UnsignedAttributes OPTIONAL
        }

    When signed attributes are present, they contain the digest of the signed
    content (:attr:`message_digest`) and the :attr:`encrypted_digest` is a
    signature over the attributes. Otherwise, the :attr:`encrypted_digest` is a
    signature over the content itself.

    .. attribute:: asn1

       The underlying ASN.1 data object

    .. attribute:: parent

       The parent :class:`SignedData` object
    """

    _timestamp_class_name: str | None = "pdfsig.pdf.tsp.TimestampSignedData"
    _required_authenticated_attributes: Iterable[str] = (
        "content_type",
        "message_digest",
    )
    _singular_authenticated_attributes: Iterable[str] = (
        "message_digest",
        "content_type",
        "signing_time",
    )
    _singular_unauthenticated_attributes: Iterable[str] = (
        "signature_time_stamp_token",
    )
    _expected_content_type: str | None = None

    def __init__(self, asn1: cms.SignerInfo, parent: SignedData | None = None):
        """
        :param asn1: The ASN.1 structure of the SignerInfo.
        :param parent: The parent :class:`SignedData` object.
        """
        self.asn1 = asn1
        self.parent = parent
        try:
            self._validate_asn1()
        except (ValueError, TypeError, KeyError) as e:
            raise MalformedSignedDataError(f"SignerInfo could not be parsed: {e}")

    def _validate_asn1(self) -> None:
        # Attributes are optional, but if there are any, the required ones must be
        # present.
        if self.has_authenticated_attributes and not all(
            x in self.authenticated_attributes
            for x in self._required_authenticated_attributes
        ):
            raise MalformedSignedDataError(
                "Not all required attributes found."
                f" Required: {self._required_authenticated_attributes};"
                f" Found: {list(self.authenticated_attributes)}"
            )

        for attribute in self._singular_authenticated_attributes:
            if attribute in self.authenticated_attributes:
                if len(self.authenticated_attributes[attribute]) != 1:
                    raise MalformedSignedDataError(
                        f"Only one {attribute} expected in"
                        f" SignerInfo.authenticatedAttributes, found"
                        f" {len(self.authenticated_attributes[attribute])}"
                    )

        for attribute in self._singular_unauthenticated_attributes:
            if attribute in self.unauthenticated_attributes:
                if len(self.unauthenticated_attributes[attribute]) != 1:
                    raise MalformedSignedDataError(
                        f"Only one {attribute} expected in"
                        f" SignerInfo.unauthenticatedAttributes, found"
                        f" {len(self.unauthenticated_attributes[attribute])}"
                    )

        if (
            "content_type" in self.authenticated_attributes
            and self._expected_content_type is not None
            and self.content_type != self._expected_content_type
        ):
            raise MalformedSignedDataError(
                "Unexpected content type for SignerInfo, expected"
                f" {self._expected_content_type}, got"
                f" {self.content_type}"
            )

        # force parsing of the values we always need
        self.digest_algorithm  # noqa: B018
        self.encrypted_digest  # noqa: B018

    @property
    def issuer(self) -> CertificateName | None:
        """The issuer of the signer's certificate, if the signer is identified by
        issuer and serial number.
        """
        if self.asn1["sid"].name != "issuer_and_serial_number":
            return None
        return CertificateName(self.asn1["sid"].chosen["issuer"])

    @property
    def serial_number(self) -> int | None:
        """The serial number as specified by the issuer."""
        if self.asn1["sid"].name != "issuer_and_serial_number":
            return None
        return cast(int, self.asn1["sid"].chosen["serial_number"].native)

    @property
    def subject_key_identifier(self) -> bytes | None:
        """The key identifier of the signer's certificate, if the signer is
        identified that way.
        """
        if self.asn1["sid"].name != "subject_key_identifier":
            return None
        return cast(bytes, self.asn1["sid"].chosen.native)

    @classmethod
    def _parse_attributes(cls, data: cms.CMSAttributes) -> dict[str, list[Asn1Value]]:
        """Given a set of Attributes, parses them and returns them as a dict

        :param data: The authenticatedAttributes or unauthenticatedAttributes to process
        """
        if isinstance(data, core.Void):
            return {}
        return {attr["type"].native: list(attr["values"]) for attr in data}

    @property
    def has_authenticated_attributes(self) -> bool:
        return not isinstance(self.asn1["signed_attrs"], core.Void)

    @property
    def authenticated_attributes(self) -> dict[str, list[Asn1Value]]:
        """The signed attributes of this SignerInfo, as a dictionary of attribute
        names to lists of values. You should not need to access this value directly,
        rather using one of the attributes listed below.
        """
        return self._parse_attributes(self.asn1["signed_attrs"])

    @classmethod
    def _encode_attributes(cls, data: cms.CMSAttributes) -> bytes:
        """Given a set of Attributes, prepares them for creating a digest. It as per
        RFC 5652 section 5.4, this changes the tag from implicit to explicit.

        :param data: The attributes to encode
        """

        new_attrs = type(data)(contents=data.contents)
        return cast(bytes, new_attrs.dump())

    @property
    def _encoded_authenticated_attributes(self) -> bytes:
        return self._encode_attributes(self.asn1["signed_attrs"])

    @property
    def unauthenticated_attributes(self) -> dict[str, list[Asn1Value]]:
        """The unsigned attributes of this SignerInfo. These are not covered by
        the signature.
        """
        return self._parse_attributes(self.asn1["unsigned_attrs"])

    @property
    def signature_algorithm(self) -> algos.SignedDigestAlgorithm:
        return cast(algos.SignedDigestAlgorithm, self.asn1["signature_algorithm"])

    @property
    def digest_encryption_algorithm(self) -> str:
        """This is the algorithm used for signing the digest with the signer's key."""
        return cast(str, self.signature_algorithm["algorithm"].native)

    @property
    def encrypted_digest(self) -> bytes:
        """The result of encrypting the message digest and associated information with
        the signer's private key.
        """
        return cast(bytes, self.asn1["signature"].native)

    @property
    def digest_algorithm(self) -> HashFunction:
        """The digest algorithm, i.e. the hash algorithm, under which the content and
        the authenticated attributes are signed.
        """
        return _get_digest_algorithm(
            self.asn1["digest_algorithm"], location="SignerInfo.digestAlgorithm"
        )

    ### parsed attributes
    @property
    def message_digest(self) -> bytes | None:
        """This is an authenticated attribute, containing the signed digest of
        the data.
        """
        if "message_digest" in self.authenticated_attributes:
            return cast(
                bytes, self.authenticated_attributes["message_digest"][0].native
            )
        return None

    @property
    def content_type(self) -> str | None:
        """This is an authenticated attribute, containing the content type of the
        content being signed.
        """
        if "content_type" in self.authenticated_attributes:
            return cast(str, self.authenticated_attributes["content_type"][0].native)
        return None

    @property
    def signing_time(self) -> datetime.datetime | None:
        """This is an authenticated attribute, containing the time of signing as
        claimed by the signer. It is not corroborated by anything.
        """
        if "signing_time" in self.authenticated_attributes:
            return cast(
                datetime.datetime,
                self.authenticated_attributes["signing_time"][0].native,
            )
        return None

    @property
    def timestamp_token(self) -> TimestampSignedData | None:
        """This is an unauthenticated attribute, containing an RFC3161 timestamp
        token over the :attr:`encrypted_digest`.

        :raises TimestampParseError: when the token is not a SignedData structure
        """
        if (
            self._timestamp_class_name is None
            or "signature_time_stamp_token" not in self.unauthenticated_attributes
        ):
            return None

        package_name, class_name = self._timestamp_class_name.rsplit(".", 1)
        timestamp_class = getattr(importlib.import_module(package_name), class_name)

        token = cast(
            cms.ContentInfo,
            self.unauthenticated_attributes["signature_time_stamp_token"][0],
        )
        try:
            content_type = token["content_type"].native
        except ValueError as e:
            raise TimestampParseError(f"Timestamp token could not be parsed: {e}")
        if content_type != "signed_data":
            raise TimestampParseError(
                f"Timestamp token does not contain SignedData, but {content_type}"
            )
        return cast("TimestampSignedData", timestamp_class(token["content"]))

    def check_message_digest(self, data: bytes) -> bool:
        """Given the data, returns whether the hash_algorithm and message_digest match
        the data provided.
        """
        return compute_digest(self.digest_algorithm, data) == self.message_digest

    def find_certificate(self, *stores: CertificateStore) -> Certificate:
        """Finds the certificate of the signer in the provided stores, by issuer and
        serial number or by subject key identifier.

        :raises NoSigningCertificateError: if no matching certificate exists
        """
        for store in stores:
            if self.issuer is not None:
                candidates = store.find_certificates(
                    issuer=self.issuer, serial_number=self.serial_number
                )
            else:
                candidates = (
                    cert
                    for cert in store
                    if cert.asn1.key_identifier == self.subject_key_identifier
                )
            for certificate in candidates:
                return certificate

        raise NoSigningCertificateError(
            "No certificate found for the signer identified by"
            f" {self.issuer.dn if self.issuer else self.subject_key_identifier!r}"
        )

    def check_signature(
        self, certificate: Certificate, digest: bytes
    ) -> tuple[bool, bool]:
        """Checks the signature of this SignerInfo for content with the given
        digest, and returns a tuple of two booleans: whether the digest matches the
        signed digest (integrity) and whether the signature was produced by the key
        of ``certificate`` (authenticity). Mismatches are not errors.

        :param certificate: The certificate of the signer
        :param digest: The digest of the content, computed with
            :attr:`digest_algorithm`
        """

        if self.has_authenticated_attributes:
            intact = self.message_digest == digest
            try:
                certificate.verify_signature(
                    self.encrypted_digest,
                    self._encoded_authenticated_attributes,
                    self.digest_algorithm,
                    self.signature_algorithm,
                )
            except CertificateVerificationError as e:
                logger.debug(f"Signature over the signed attributes is invalid: {e}")
                return intact, False
            return intact, True

        # Without signed attributes, the signature is over the content digest
        # itself. For RSA we can recover the signed digest, which allows us to
        # report integrity separately from authenticity.
        if certificate.public_key_algorithm == "rsa" and (
            self.signature_algorithm.signature_algo == "rsassa_pkcs1v15"
        ):
            try:
                algorithm, recovered = certificate.recover_digest_info(
                    self.encrypted_digest
                )
            except CertificateVerificationError as e:
                logger.debug(f"Could not recover the signed digest: {e}")
                return False, False
            expected_algorithm = self.digest_algorithm().name
            intact = recovered == digest and algorithm in (None, expected_algorithm)
            return intact, True

        try:
            certificate.verify_signature(
                self.encrypted_digest,
                digest,
                self.digest_algorithm,
                self.signature_algorithm,
                prehashed=True,
            )
        except CertificateVerificationError as e:
            logger.debug(f"Signature over the digest is invalid: {e}")
            return False, False
        return True, True

